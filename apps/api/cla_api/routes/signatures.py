"""Contributor signing routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from cla_api.auth.service_key import require_service_key
from cla_api.compliance.scheduler import TaskScheduler, get_task_scheduler
from cla_api.db.session import get_db
from cla_api.services.signing import ClaSigningService, SignerIdentity, resolve_request_evidence
from cla_api.settings import Settings, get_settings

router = APIRouter(
    prefix="/v1/orgs/{slug}",
    tags=["signatures"],
    dependencies=[Depends(require_service_key)],
)


class SignRequest(BaseModel):
    """CLA signing request. The signer identity is vouched for by the frontend session."""

    github_id: str
    github_username: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    email: Optional[str] = None
    assented: Optional[bool] = True
    accepted_sha256: Optional[str] = None
    consent_text_version: Optional[str] = None
    repo_name: Optional[str] = None
    pr_number: Optional[int] = None


class SignatureResponse(BaseModel):
    """Signature response."""

    id: int
    cla_sha256: str
    accepted_sha256: Optional[str] = None
    consent_text_version: str
    github_username: str
    signed_at: datetime

    class Config:
        from_attributes = True


def get_signing_service(
    db: Session = Depends(get_db),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
    settings: Settings = Depends(get_settings),
) -> ClaSigningService:
    return ClaSigningService(db, scheduler, settings)


@router.post("/signatures", status_code=status.HTTP_201_CREATED)
async def sign_cla(
    slug: str,
    body: SignRequest,
    request: Request,
    service: ClaSigningService = Depends(get_signing_service),
):
    """Sign the organization's current CLA."""
    signature, schedule = service.sign_cla(
        slug,
        SignerIdentity(
            github_id=body.github_id,
            github_username=body.github_username,
            name=body.name,
            avatar_url=body.avatar_url,
            email=body.email,
        ),
        assented=body.assented,
        accepted_sha256=body.accepted_sha256,
        consent_text_version=body.consent_text_version,
        repo_name=body.repo_name,
        pr_number=body.pr_number,
        evidence=resolve_request_evidence(request.headers),
    )
    return {
        "signature": SignatureResponse.model_validate(signature).model_dump(mode="json"),
        "recheck": schedule.to_dict(),
    }


@router.get("/signatures/status")
async def signature_status(
    slug: str,
    github_id: Optional[str] = Query(default=None),
    github_username: Optional[str] = Query(default=None),
    service: ClaSigningService = Depends(get_signing_service),
):
    """Whether a user has signed, and whether the current version."""
    return service.get_status(slug, github_id, github_username)
