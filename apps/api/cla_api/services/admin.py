"""Organization admin operations: CLA publishing, bypass list, activation, rechecks."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from cla_api.compliance.recheck import (
    TRIGGER_BYPASS_CHANGED,
    TRIGGER_CLA_UPDATED,
    TRIGGER_MANUAL,
    RecheckTrigger,
)
from cla_api.compliance.scheduler import ScheduleResult, TaskScheduler, schedule_recheck
from cla_api.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from cla_api.github.client import GitHubError
from cla_api.github.factory import GitHubClientFactory
from cla_api.ledger.service import SignatureLedger, normalize_username
from cla_api.models import BypassAccount, Organization
from cla_api.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Actor:
    """Who performed an admin action."""

    github_id: Optional[str] = None
    github_username: Optional[str] = None


class OrganizationAdminService:
    """State-changing admin actions. Each one commits, audits and may schedule a recheck."""

    def __init__(
        self,
        db: Session,
        factory: GitHubClientFactory,
        scheduler: TaskScheduler,
        settings: Settings,
    ):
        """Initialize admin service."""
        self.db = db
        self.ledger = SignatureLedger(db)
        self.factory = factory
        self.scheduler = scheduler
        self.settings = settings

    def get_organization(self, slug: str) -> Organization:
        org = self.ledger.get_organization_by_slug(slug)
        if org is None:
            raise NotFoundError(f'Organization "{slug}" not found')
        return org

    def _actor_user_id(self, actor: Actor) -> Optional[int]:
        if not actor.github_id:
            return None
        user = self.ledger.get_user_by_github_id(actor.github_id)
        return user.id if user else None

    def _schedule(self, org: Organization, kind: str, actor: Actor) -> ScheduleResult:
        trigger = RecheckTrigger(
            kind=kind,
            org_slug=org.github_org_slug,
            cla_sha256=org.cla_text_sha256 if kind == TRIGGER_CLA_UPDATED else None,
            actor_github_id=actor.github_id,
            actor_github_username=actor.github_username,
        )
        result = schedule_recheck(self.ledger, self.scheduler, trigger, org_id=org.id)
        self.db.commit()
        return result

    def publish_cla(self, slug: str, cla_text: str, actor: Actor) -> tuple[Organization, Optional[ScheduleResult]]:
        """Publish a new CLA version and recheck open PRs against it."""
        org = self.get_organization(slug)
        previous = org.cla_text_sha256
        self.ledger.publish_cla(org, cla_text)
        self.ledger.append_audit_event(
            "cla.updated",
            org_id=org.id,
            user_id=self._actor_user_id(actor),
            actor_github_id=actor.github_id,
            actor_github_username=actor.github_username,
            payload={"previous_sha256": previous, "sha256": org.cla_text_sha256},
        )
        self.db.commit()
        logger.info(
            f"Published CLA for {slug}",
            extra={"org_slug": slug, "sha256": org.cla_text_sha256, "previous_sha256": previous},
        )

        if previous == org.cla_text_sha256:
            return org, None
        return org, self._schedule(org, TRIGGER_CLA_UPDATED, actor)

    def add_bypass_account(
        self,
        slug: str,
        github_username: str,
        actor: Actor,
        github_user_id: Optional[str] = None,
    ) -> tuple[BypassAccount, ScheduleResult]:
        org = self.get_organization(slug)
        username = normalize_username(github_username)
        if not username:
            raise ValidationError("github_username is required")

        if not github_user_id:
            try:
                with self.factory.for_installation(org.installation_id) as client:
                    user = client.get_user(username)
            except GitHubError as e:
                raise UpstreamError(f"Failed to look up GitHub user: {e.message}")
            if user is None:
                raise NotFoundError(f'GitHub user "{username}" not found')
            github_user_id = str(user.id)
            username = normalize_username(user.login)

        existing = [
            entry
            for entry in self.ledger.list_bypass_accounts(org.id)
            if entry.github_user_id == str(github_user_id)
        ]
        if existing:
            raise ConflictError(f'"{username}" is already on the bypass list')
        if self.ledger.count_bypass_accounts(org.id) >= self.settings.max_bypass_accounts:
            raise ValidationError(
                f"Bypass list is limited to {self.settings.max_bypass_accounts} accounts per organization"
            )

        entry = self.ledger.add_bypass_account(
            org.id,
            github_user_id=str(github_user_id),
            github_username=username,
            created_by_user_id=self._actor_user_id(actor),
        )
        self.ledger.append_audit_event(
            "bypass.added",
            org_id=org.id,
            actor_github_id=actor.github_id,
            actor_github_username=actor.github_username,
            payload={"github_user_id": entry.github_user_id, "github_username": entry.github_username},
        )
        self.db.commit()
        return entry, self._schedule(org, TRIGGER_BYPASS_CHANGED, actor)

    def remove_bypass_account(self, slug: str, github_user_id: str, actor: Actor) -> ScheduleResult:
        org = self.get_organization(slug)
        entry = self.ledger.remove_bypass_account(org.id, github_user_id)
        if entry is None:
            raise NotFoundError(f"Bypass account {github_user_id} not found")
        self.ledger.append_audit_event(
            "bypass.removed",
            org_id=org.id,
            actor_github_id=actor.github_id,
            actor_github_username=actor.github_username,
            payload={"github_user_id": entry.github_user_id, "github_username": entry.github_username},
        )
        self.db.commit()
        return self._schedule(org, TRIGGER_BYPASS_CHANGED, actor)

    def set_active(self, slug: str, is_active: bool, actor: Actor) -> Organization:
        org = self.get_organization(slug)
        previous = org.is_active
        self.ledger.set_active(org, is_active)
        self.ledger.append_audit_event(
            "organization.activation_changed",
            org_id=org.id,
            actor_github_id=actor.github_id,
            actor_github_username=actor.github_username,
            payload={"previous": previous, "is_active": is_active},
        )
        self.db.commit()
        return org

    def schedule_manual_recheck(self, slug: str, actor: Actor) -> ScheduleResult:
        org = self.get_organization(slug)
        return self._schedule(org, TRIGGER_MANUAL, actor)
