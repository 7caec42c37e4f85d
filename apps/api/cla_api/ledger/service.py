"""Signature ledger: organizations, CLA versions, signatures, bypass list and audit log."""

import hashlib
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cla_api.models import (
    AuditEvent,
    BypassAccount,
    ClaArchive,
    Organization,
    Signature,
    User,
    WebhookDelivery,
)

logger = logging.getLogger(__name__)


def sha256_hex(text: str) -> str:
    """Content address of a CLA text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_username(username: Optional[str]) -> str:
    """Trim, strip a leading ``@`` and lowercase a GitHub login."""
    value = (username or "").strip()
    if value.startswith("@"):
        value = value[1:]
    return value.strip().lower()


class SignatureLedger:
    """Persistence operations for CLA state.

    Methods flush but do not commit, except ``reserve_webhook_delivery`` which
    must be durable before any side effect runs. Callers own the transaction.
    """

    def __init__(self, db: Session):
        """Initialize signature ledger."""
        self.db = db

    # ---------- Organizations ----------

    def get_organization_by_slug(self, slug: str) -> Optional[Organization]:
        return (
            self.db.query(Organization)
            .filter(func.lower(Organization.github_org_slug) == slug.lower())
            .first()
        )

    def create_organization(
        self,
        slug: str,
        name: Optional[str] = None,
        account_type: str = "organization",
        account_id: Optional[str] = None,
        avatar_url: Optional[str] = None,
        installation_id: Optional[int] = None,
        admin_user_id: Optional[int] = None,
        cla_text: str = "",
    ) -> Organization:
        """Create an organization. A non-blank ``cla_text`` is published immediately."""
        org = Organization(
            github_org_slug=slug,
            name=name or slug,
            github_account_type=account_type,
            github_account_id=account_id,
            avatar_url=avatar_url,
            installation_id=installation_id,
            admin_user_id=admin_user_id,
            is_active=True,
            installed_at=datetime.utcnow(),
            cla_text="",
            cla_text_sha256=None,
        )
        self.db.add(org)
        self.db.flush()
        if cla_text.strip():
            self.publish_cla(org, cla_text)
        logger.info(f"Created organization {slug}", extra={"org_id": org.id, "account_type": account_type})
        return org

    def set_installation(self, org: Organization, installation_id: Optional[int]) -> Organization:
        org.installation_id = installation_id
        self.db.flush()
        return org

    def set_active(self, org: Organization, is_active: bool) -> Organization:
        org.is_active = is_active
        self.db.flush()
        return org

    def publish_cla(self, org: Organization, cla_text: str) -> Organization:
        """Replace the live CLA text, recomputing its hash and archiving it.

        Blank text unconfigures the organization. Republishing text that was
        published before reuses the existing archive row.
        """
        if not cla_text.strip():
            org.cla_text = ""
            org.cla_text_sha256 = None
            self.db.flush()
            return org

        digest = sha256_hex(cla_text)
        org.cla_text = cla_text
        org.cla_text_sha256 = digest
        self.get_or_create_archive(org.id, digest, cla_text)
        self.db.flush()
        return org

    # ---------- CLA Archives ----------

    def get_or_create_archive(self, org_id: int, digest: str, cla_text: str) -> ClaArchive:
        existing = (
            self.db.query(ClaArchive)
            .filter(ClaArchive.org_id == org_id, ClaArchive.sha256 == digest)
            .first()
        )
        if existing:
            return existing

        archive = ClaArchive(org_id=org_id, sha256=digest, cla_text=cla_text)
        self.db.add(archive)
        self.db.flush()
        return archive

    def get_archive(self, org_id: int, digest: str) -> Optional[ClaArchive]:
        return (
            self.db.query(ClaArchive)
            .filter(ClaArchive.org_id == org_id, ClaArchive.sha256 == digest)
            .first()
        )

    def list_archives(self, org_id: int) -> list[ClaArchive]:
        return (
            self.db.query(ClaArchive)
            .filter(ClaArchive.org_id == org_id)
            .order_by(ClaArchive.created_at.desc())
            .all()
        )

    # ---------- Users ----------

    def get_user_by_github_id(self, github_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.github_id == str(github_id)).first()

    def get_user_by_username(self, username: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(func.lower(User.github_username) == normalize_username(username))
            .first()
        )

    def upsert_user(
        self,
        github_id: str,
        github_username: str,
        name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[str] = None,
    ) -> User:
        """Insert or refresh a user keyed by GitHub id."""
        user = self.get_user_by_github_id(github_id)
        if user is None:
            user = User(
                github_id=str(github_id),
                github_username=github_username,
                name=name,
                avatar_url=avatar_url,
                email=email,
                role=role or "contributor",
            )
            self.db.add(user)
        else:
            user.github_username = github_username
            if name is not None:
                user.name = name
            if avatar_url is not None:
                user.avatar_url = avatar_url
            if email is not None:
                user.email = email
            if role is not None:
                user.role = role
        self.db.flush()
        return user

    # ---------- Signatures ----------

    def signed_hashes(
        self,
        org_id: int,
        github_user_id: Optional[str],
        github_username: Optional[str],
    ) -> set[str]:
        """Every CLA hash the contributor has signed for this organization.

        Matches by GitHub id when known. The login is only consulted when no id
        is available.
        """
        user = None
        if github_user_id:
            user = self.get_user_by_github_id(str(github_user_id))
        elif github_username:
            user = self.get_user_by_username(github_username)

        conditions = []
        if user is not None:
            conditions.append(Signature.user_id == user.id)
        if github_user_id:
            conditions.append(Signature.github_user_id_at_signature == str(github_user_id))
        if not conditions:
            return set()

        rows = (
            self.db.query(Signature.cla_sha256)
            .filter(Signature.org_id == org_id, or_(*conditions))
            .all()
        )
        return {row[0] for row in rows}

    def get_latest_signature(self, org_id: int, user_id: int) -> Optional[Signature]:
        return (
            self.db.query(Signature)
            .filter(Signature.org_id == org_id, Signature.user_id == user_id)
            .order_by(Signature.signed_at.desc(), Signature.id.desc())
            .first()
        )

    def has_signature_for(self, org_id: int, user_id: int, digest: str) -> bool:
        return (
            self.db.query(Signature.id)
            .filter(
                Signature.org_id == org_id,
                Signature.user_id == user_id,
                Signature.cla_sha256 == digest,
            )
            .first()
            is not None
        )

    def create_signature(
        self,
        org: Organization,
        user: User,
        accepted_sha256: Optional[str] = None,
        consent_text_version: str = "v1",
        email: Optional[str] = None,
        ip_hash: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Signature:
        """Record consent to the organization's current CLA, archiving its text."""
        self.get_or_create_archive(org.id, org.cla_text_sha256, org.cla_text)

        signature = Signature(
            org_id=org.id,
            user_id=user.id,
            cla_sha256=org.cla_text_sha256,
            accepted_sha256=accepted_sha256 or org.cla_text_sha256,
            consent_text_version=consent_text_version,
            assented=True,
            signed_at=datetime.utcnow(),
            github_user_id_at_signature=user.github_id,
            github_username=user.github_username,
            email_at_signature=email or user.email,
            name=user.name,
            avatar_url=user.avatar_url,
            ip_hash=ip_hash,
            user_agent=user_agent,
        )
        self.db.add(signature)
        self.db.flush()
        return signature

    def list_signatures(self, org_id: int) -> list[Signature]:
        return (
            self.db.query(Signature)
            .filter(Signature.org_id == org_id)
            .order_by(Signature.signed_at.desc())
            .all()
        )

    # ---------- Bypass accounts ----------

    def list_bypass_accounts(self, org_id: int) -> list[BypassAccount]:
        return (
            self.db.query(BypassAccount)
            .filter(BypassAccount.org_id == org_id)
            .order_by(BypassAccount.created_at.asc())
            .all()
        )

    def count_bypass_accounts(self, org_id: int) -> int:
        return self.db.query(func.count(BypassAccount.id)).filter(BypassAccount.org_id == org_id).scalar()

    def find_bypass_account(
        self,
        org_id: int,
        github_user_id: Optional[str],
        github_username: Optional[str],
    ) -> Optional[BypassAccount]:
        """Bypass entry matching the author's id or (case-insensitive) login."""
        conditions = []
        if github_user_id:
            conditions.append(BypassAccount.github_user_id == str(github_user_id))
        login = normalize_username(github_username)
        if login:
            conditions.append(func.lower(BypassAccount.github_username) == login)
        if not conditions:
            return None
        return (
            self.db.query(BypassAccount)
            .filter(BypassAccount.org_id == org_id, or_(*conditions))
            .first()
        )

    def add_bypass_account(
        self,
        org_id: int,
        github_user_id: str,
        github_username: str,
        created_by_user_id: Optional[int] = None,
    ) -> BypassAccount:
        entry = BypassAccount(
            org_id=org_id,
            github_user_id=str(github_user_id),
            github_username=normalize_username(github_username),
            created_by_user_id=created_by_user_id,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def remove_bypass_account(self, org_id: int, github_user_id: str) -> Optional[BypassAccount]:
        entry = (
            self.db.query(BypassAccount)
            .filter(BypassAccount.org_id == org_id, BypassAccount.github_user_id == str(github_user_id))
            .first()
        )
        if entry is None:
            return None
        self.db.delete(entry)
        self.db.flush()
        return entry

    # ---------- Webhook deliveries ----------

    def reserve_webhook_delivery(self, delivery_id: str, event: str) -> bool:
        """Atomically record a delivery id. Returns False when it was already seen."""
        if self.db.get(WebhookDelivery, delivery_id) is not None:
            logger.info(f"Duplicate webhook delivery {delivery_id}", extra={"delivery_id": delivery_id})
            return False
        self.db.add(WebhookDelivery(delivery_id=delivery_id, event=event, received_at=datetime.utcnow()))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Duplicate webhook delivery {delivery_id}", extra={"delivery_id": delivery_id})
            return False
        return True

    # ---------- Audit ----------

    def append_audit_event(
        self,
        event_type: str,
        payload: Optional[dict] = None,
        org_id: Optional[int] = None,
        user_id: Optional[int] = None,
        actor_github_id: Optional[str] = None,
        actor_github_username: Optional[str] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            event_type=event_type,
            org_id=org_id,
            user_id=user_id,
            actor_github_id=str(actor_github_id) if actor_github_id is not None else None,
            actor_github_username=actor_github_username,
            payload=payload or {},
            created_at=datetime.utcnow(),
        )
        self.db.add(event)
        self.db.flush()
        return event

    def list_audit_events(self, org_id: Optional[int] = None, event_type: Optional[str] = None) -> list[AuditEvent]:
        query = self.db.query(AuditEvent)
        if org_id is not None:
            query = query.filter(AuditEvent.org_id == org_id)
        if event_type is not None:
            query = query.filter(AuditEvent.event_type == event_type)
        return query.order_by(AuditEvent.id.asc()).all()
