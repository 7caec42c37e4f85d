"""Contributor CLA signing."""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from cla_api.compliance.recheck import TRIGGER_SIGNATURE_CREATED, RecheckTrigger
from cla_api.compliance.scheduler import ScheduleResult, TaskScheduler, schedule_recheck
from cla_api.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from cla_api.ledger.service import SignatureLedger
from cla_api.models import Signature
from cla_api.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_CONSENT_TEXT_VERSION = "v1"


@dataclass
class SignerIdentity:
    """The authenticated GitHub user signing, as vouched for by the frontend."""

    github_id: str
    github_username: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    email: Optional[str] = None


@dataclass
class RequestEvidence:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def resolve_request_evidence(headers) -> RequestEvidence:
    """Client IP (first ``x-forwarded-for`` hop, else ``x-real-ip``) and user agent."""
    forwarded_for = headers.get("x-forwarded-for")
    real_ip = headers.get("x-real-ip")
    ip_address = None
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip() or None
    if not ip_address and real_ip:
        ip_address = real_ip.strip() or None
    return RequestEvidence(ip_address=ip_address, user_agent=headers.get("user-agent"))


def hash_ip_address(ip_address: Optional[str], secret: str) -> Optional[str]:
    if not ip_address or not secret:
        return None
    return hmac.new(secret.encode(), ip_address.encode(), hashlib.sha256).hexdigest()


class ClaSigningService:
    """Records signatures and reconciles the signer's open PRs."""

    def __init__(self, db: Session, scheduler: TaskScheduler, settings: Settings):
        """Initialize signing service."""
        self.db = db
        self.ledger = SignatureLedger(db)
        self.scheduler = scheduler
        self.settings = settings

    def sign_cla(
        self,
        slug: str,
        signer: SignerIdentity,
        assented: Optional[bool] = True,
        accepted_sha256: Optional[str] = None,
        consent_text_version: Optional[str] = None,
        repo_name: Optional[str] = None,
        pr_number: Optional[int] = None,
        evidence: Optional[RequestEvidence] = None,
    ) -> tuple[Signature, ScheduleResult]:
        if assented is not True:
            raise ValidationError("Explicit assent is required before signing")

        consent_version = (consent_text_version or "").strip() or DEFAULT_CONSENT_TEXT_VERSION

        repo_name = repo_name.strip() if repo_name and repo_name.strip() else None
        if pr_number is not None and pr_number <= 0:
            pr_number = None
        if bool(repo_name) != bool(pr_number):
            raise ValidationError("repo_name and pr_number must be provided together")

        org = self.ledger.get_organization_by_slug(slug)
        if org is None:
            raise NotFoundError("Organization not found")
        if not org.is_active:
            raise ForbiddenError("CLA bot is not active for this organization")
        if not org.has_cla:
            raise ValidationError("No CLA configured for this organization")

        accepted = (accepted_sha256 or "").strip() or org.cla_text_sha256
        if accepted != org.cla_text_sha256:
            raise ConflictError(
                "CLA version mismatch. Reload the page and review the latest agreement before signing.",
                details={"code": "VERSION_MISMATCH", "current_sha256": org.cla_text_sha256},
            )

        email = (signer.email or "").strip() or f"{signer.github_username}@users.noreply.github.com"
        user = self.ledger.upsert_user(
            github_id=signer.github_id,
            github_username=signer.github_username,
            name=signer.name,
            avatar_url=signer.avatar_url,
            email=signer.email,
        )
        if self.ledger.has_signature_for(org.id, user.id, org.cla_text_sha256):
            raise ConflictError("Already signed current version", details={"code": "ALREADY_SIGNED"})

        evidence = evidence or RequestEvidence()
        signature = self.ledger.create_signature(
            org,
            user,
            accepted_sha256=accepted,
            consent_text_version=consent_version,
            email=email,
            ip_hash=hash_ip_address(evidence.ip_address, self.settings.secret_key),
            user_agent=(evidence.user_agent or "")[:512] or None,
        )
        self.ledger.append_audit_event(
            "signature.created",
            org_id=org.id,
            user_id=user.id,
            actor_github_id=signer.github_id,
            actor_github_username=signer.github_username,
            payload={
                "cla_sha256": org.cla_text_sha256,
                "accepted_sha256": accepted,
                "consent_text_version": consent_version,
                "repo_name": repo_name,
                "pr_number": pr_number,
            },
        )
        self.db.commit()
        logger.info(
            f"{signer.github_username} signed CLA for {slug}",
            extra={"org_slug": slug, "sha256": org.cla_text_sha256},
        )

        trigger = RecheckTrigger(
            kind=TRIGGER_SIGNATURE_CREATED,
            org_slug=org.github_org_slug,
            signer_github_id=signer.github_id,
            signer_username=signer.github_username,
            target_repo=repo_name,
            target_pr_number=pr_number,
            actor_github_id=signer.github_id,
            actor_github_username=signer.github_username,
        )
        schedule = schedule_recheck(self.ledger, self.scheduler, trigger, org_id=org.id)
        self.db.commit()
        return signature, schedule

    def get_status(self, slug: str, github_id: Optional[str], github_username: Optional[str]) -> dict:
        org = self.ledger.get_organization_by_slug(slug)
        if org is None:
            raise NotFoundError("Organization not found")
        signed = self.ledger.signed_hashes(org.id, github_id, github_username)
        current = org.cla_text_sha256
        return {
            "org_slug": org.github_org_slug,
            "current_sha256": current,
            "signed": bool(signed),
            "current_version": current is not None and current in signed,
            "needs_resign": bool(signed) and (current is None or current not in signed),
        }
