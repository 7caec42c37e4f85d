"""Admin routes for organization CLA management."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from cla_api.auth.service_key import require_service_key
from cla_api.compliance.scheduler import TaskScheduler, get_task_scheduler
from cla_api.db.session import get_db
from cla_api.github.factory import GitHubClientFactory, get_github_factory
from cla_api.ledger.service import SignatureLedger
from cla_api.services.admin import Actor, OrganizationAdminService
from cla_api.settings import Settings, get_settings

router = APIRouter(
    prefix="/admin/orgs/{slug}",
    tags=["admin"],
    dependencies=[Depends(require_service_key)],
)


class ClaPublishRequest(BaseModel):
    """CLA publish request."""

    cla_text: str


class BypassAddRequest(BaseModel):
    """Bypass account request."""

    github_username: str
    github_user_id: Optional[str] = None


class ActiveRequest(BaseModel):
    is_active: bool


class BypassAccountResponse(BaseModel):
    """Bypass account response."""

    github_user_id: str
    github_username: str
    created_at: datetime

    class Config:
        from_attributes = True


class OrganizationResponse(BaseModel):
    """Organization response."""

    github_org_slug: str
    github_account_type: str
    name: str
    is_active: bool
    installation_id: Optional[int] = None
    cla_text_sha256: Optional[str] = None
    installed_at: datetime

    class Config:
        from_attributes = True


def get_actor(
    x_actor_github_id: Optional[str] = Header(default=None),
    x_actor_github_username: Optional[str] = Header(default=None),
) -> Actor:
    """Admin identity forwarded by the frontend."""
    return Actor(github_id=x_actor_github_id, github_username=x_actor_github_username)


def get_admin_service(
    db: Session = Depends(get_db),
    factory: GitHubClientFactory = Depends(get_github_factory),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
    settings: Settings = Depends(get_settings),
) -> OrganizationAdminService:
    return OrganizationAdminService(db, factory, scheduler, settings)


@router.get("")
async def get_organization_summary(
    slug: str,
    service: OrganizationAdminService = Depends(get_admin_service),
):
    """Organization state, bypass list and CLA history."""
    org = service.get_organization(slug)
    ledger = SignatureLedger(service.db)
    return {
        "organization": OrganizationResponse.model_validate(org).model_dump(mode="json"),
        "cla_text": org.cla_text,
        "bypass_accounts": [
            BypassAccountResponse.model_validate(entry).model_dump(mode="json")
            for entry in ledger.list_bypass_accounts(org.id)
        ],
        "archives": [
            {"sha256": archive.sha256, "created_at": archive.created_at.isoformat()}
            for archive in ledger.list_archives(org.id)
        ],
        "signature_count": len(ledger.list_signatures(org.id)),
    }


@router.put("/cla")
async def publish_cla(
    slug: str,
    request: ClaPublishRequest,
    service: OrganizationAdminService = Depends(get_admin_service),
    actor: Actor = Depends(get_actor),
):
    """Publish the CLA text. A changed hash rechecks every open PR."""
    org, schedule = service.publish_cla(slug, request.cla_text, actor)
    return {
        "cla_text_sha256": org.cla_text_sha256,
        "recheck": schedule.to_dict() if schedule else None,
    }


@router.post("/bypass", status_code=status.HTTP_201_CREATED)
async def add_bypass_account(
    slug: str,
    request: BypassAddRequest,
    service: OrganizationAdminService = Depends(get_admin_service),
    actor: Actor = Depends(get_actor),
):
    """Add an account to the bypass list."""
    entry, schedule = service.add_bypass_account(
        slug,
        request.github_username,
        actor,
        github_user_id=request.github_user_id,
    )
    return {
        "bypass_account": BypassAccountResponse.model_validate(entry).model_dump(mode="json"),
        "recheck": schedule.to_dict(),
    }


@router.delete("/bypass/{github_user_id}")
async def remove_bypass_account(
    slug: str,
    github_user_id: str,
    service: OrganizationAdminService = Depends(get_admin_service),
    actor: Actor = Depends(get_actor),
):
    """Remove an account from the bypass list."""
    schedule = service.remove_bypass_account(slug, github_user_id, actor)
    return {"removed": github_user_id, "recheck": schedule.to_dict()}


@router.post("/active")
async def set_active(
    slug: str,
    request: ActiveRequest,
    service: OrganizationAdminService = Depends(get_admin_service),
    actor: Actor = Depends(get_actor),
):
    org = service.set_active(slug, request.is_active, actor)
    return {"github_org_slug": org.github_org_slug, "is_active": org.is_active}


@router.post("/recheck", status_code=status.HTTP_202_ACCEPTED)
async def recheck_open_pull_requests(
    slug: str,
    service: OrganizationAdminService = Depends(get_admin_service),
    actor: Actor = Depends(get_actor),
):
    """Schedule a recheck of every open PR in the organization."""
    return service.schedule_manual_recheck(slug, actor).to_dict()
