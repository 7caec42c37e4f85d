"""Database models - import all models here for Alembic discovery."""

from cla_api.models.audit import AuditEvent
from cla_api.models.organization import BypassAccount, ClaArchive, Organization
from cla_api.models.signature import Signature, User
from cla_api.models.webhook import WebhookDelivery

__all__ = [
    "User",
    "Organization",
    "ClaArchive",
    "BypassAccount",
    "Signature",
    "WebhookDelivery",
    "AuditEvent",
]
