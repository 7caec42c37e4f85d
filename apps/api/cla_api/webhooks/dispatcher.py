"""GitHub webhook dispatcher.

Pipeline per delivery: event header, delivery id, signature, dedup, JSON
parse, then dispatch on the event type. Errors are raised as ``ClaBotError``
subclasses and rendered by the route; success returns a JSON-able dict.
"""

import json
import logging
import time
from typing import Optional

from sqlalchemy.orm import Session

from cla_api.compliance.evaluator import OrgFacts, is_account_owner
from cla_api.compliance.executor import PrContext, PrSyncExecutor
from cla_api.compliance.flow import decide_and_sync
from cla_api.errors import (
    AuthenticationError,
    ConfigurationError,
    ForbiddenError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from cla_api.github.client import GitHubClient, GitHubError
from cla_api.github.factory import GitHubClientFactory
from cla_api.github.types import MEMBERSHIP_ACTIVE, RECHECK_PERMISSIONS, PullRequestRef
from cla_api.github.webhook_signature import verify_signature
from cla_api.ledger.service import SignatureLedger
from cla_api.models import Organization
from cla_api.settings import Settings
from cla_api.utils.metrics import webhook_deliveries

logger = logging.getLogger(__name__)

PR_ACTIONS = ("opened", "synchronize", "reopened")


def normalize_account_type(account_type: Optional[str]) -> str:
    return "user" if account_type == "User" else "organization"


class WebhookDispatcher:
    """Verifies, deduplicates and routes GitHub webhook deliveries."""

    def __init__(self, db: Session, factory: GitHubClientFactory, settings: Settings):
        """Initialize webhook dispatcher."""
        self.db = db
        self.ledger = SignatureLedger(db)
        self.factory = factory
        self.settings = settings
        self.executor = PrSyncExecutor(self.ledger, settings.app_base_url)

    def handle(
        self,
        event: Optional[str],
        delivery_id: Optional[str],
        signature: Optional[str],
        raw_body: bytes,
    ) -> dict:
        if not event:
            raise ValidationError("Missing x-github-event header")
        if not delivery_id and self.settings.is_strict:
            raise ValidationError("Missing x-github-delivery header")

        self._verify(raw_body, signature)

        if delivery_id and not self.ledger.reserve_webhook_delivery(delivery_id, event):
            webhook_deliveries.labels(event=event, outcome="duplicate").inc()
            return {"message": "Duplicate delivery ignored", "delivery_id": delivery_id}

        try:
            payload = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Invalid JSON payload")
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")

        logger.info(
            f"Processing webhook {event}",
            extra={"event": event, "delivery_id": delivery_id, "action": payload.get("action")},
        )

        if event == "ping":
            result = self._handle_ping(payload)
        elif event == "installation":
            result = self._handle_installation(payload)
        elif event == "installation_repositories":
            result = self._handle_installation_repositories(payload)
        elif event == "pull_request":
            result = self._handle_pull_request(payload)
        elif event == "issue_comment":
            result = self._handle_issue_comment(payload)
        else:
            result = {"message": f"Ignored event: {event}"}

        webhook_deliveries.labels(event=event, outcome="processed").inc()
        return result

    # ---------- Verification ----------

    def _verify(self, raw_body: bytes, signature: Optional[str]) -> None:
        secret = self.settings.normalized_webhook_secret
        if not secret:
            if self.settings.is_strict:
                raise ConfigurationError("GITHUB_WEBHOOK_SECRET is not configured")
            return

        if not signature:
            if self.settings.is_strict:
                raise AuthenticationError("Missing x-hub-signature-256 header")
            return

        if not verify_signature(secret, raw_body, signature):
            raise AuthenticationError(
                "Invalid webhook signature. Ensure GITHUB_WEBHOOK_SECRET exactly matches "
                "the GitHub App webhook secret."
            )

    # ---------- Event handlers ----------

    def _handle_ping(self, payload: dict) -> dict:
        hook = payload.get("hook") or {}
        return {
            "message": "Webhook ping received",
            "zen": payload.get("zen"),
            "hook_id": payload.get("hook_id") or hook.get("id"),
        }

    def _handle_installation(self, payload: dict) -> dict:
        action = payload.get("action")
        installation = payload.get("installation") or {}
        account = installation.get("account") or {}
        slug = account.get("login")
        if not slug:
            raise ValidationError("Missing installation account login")

        account_type = normalize_account_type(account.get("type"))
        account_id = str(account["id"]) if account.get("id") is not None else None
        installation_id = installation.get("id")
        org = self.ledger.get_organization_by_slug(slug)

        if action in ("created", "unsuspend"):
            admin_user_id = None
            sender = payload.get("sender") or {}
            if sender.get("login") and sender.get("id"):
                admin = self.ledger.upsert_user(
                    github_id=str(sender["id"]),
                    github_username=sender["login"],
                    name=sender["login"],
                    avatar_url=sender.get("avatar_url"),
                    role="admin",
                )
                admin_user_id = admin.id
            elif self.settings.is_strict:
                raise ValidationError("Missing installation sender info")

            if org is not None:
                org.is_active = True
                org.installation_id = installation_id
                org.github_account_type = account_type
                org.github_account_id = account_id or org.github_account_id
                if admin_user_id and not org.admin_user_id:
                    org.admin_user_id = admin_user_id
                message = f"App active on account: {slug}"
            else:
                org = self.ledger.create_organization(
                    slug=slug,
                    name=slug,
                    account_type=account_type,
                    account_id=account_id,
                    avatar_url=account.get("avatar_url"),
                    installation_id=installation_id,
                    admin_user_id=admin_user_id,
                )
                message = f"App installed on account: {slug}"

            self.ledger.append_audit_event(
                f"installation.{action}",
                org_id=org.id,
                user_id=admin_user_id,
                actor_github_id=sender.get("id"),
                actor_github_username=sender.get("login"),
                payload={"installation_id": installation_id, "account_type": account_type},
            )
            self.db.commit()
            return {"message": message, "org": self._org_summary(org)}

        if action in ("deleted", "suspend"):
            if org is not None:
                org.is_active = False
                org.installation_id = None
                org.github_account_type = account_type
                org.github_account_id = account_id or org.github_account_id
                self.ledger.append_audit_event(
                    f"installation.{action}",
                    org_id=org.id,
                    actor_github_id=(payload.get("sender") or {}).get("id"),
                    actor_github_username=(payload.get("sender") or {}).get("login"),
                    payload={"installation_id": installation_id},
                )
                self.db.commit()
            verb = "uninstalled from" if action == "deleted" else "suspended on"
            return {"message": f"App {verb} account: {slug}"}

        return {"message": f"Ignored installation action: {action}"}

    def _handle_installation_repositories(self, payload: dict) -> dict:
        installation = payload.get("installation") or {}
        account = installation.get("account") or {}
        slug = account.get("login")
        if not slug:
            raise ValidationError("Missing installation account login")

        org = self.ledger.get_organization_by_slug(slug)
        if org is not None:
            org.installation_id = installation.get("id")
            org.github_account_type = normalize_account_type(account.get("type"))
            if account.get("id") is not None:
                org.github_account_id = str(account["id"])
            self.db.commit()
        return {
            "message": f"installation_repositories processed for account: {slug}",
            "action": payload.get("action"),
        }

    def _handle_pull_request(self, payload: dict) -> dict:
        action = payload.get("action")
        if action not in PR_ACTIONS:
            return {"message": "PR action ignored", "action": action or "unknown"}

        repository = payload.get("repository") or {}
        pull_request = payload.get("pull_request") or {}
        author = pull_request.get("user") or {}
        slug = (repository.get("owner") or {}).get("login")
        repo = repository.get("name")
        number = payload.get("number") or pull_request.get("number")
        author_login = author.get("login")
        head_sha = (pull_request.get("head") or {}).get("sha")
        if not (slug and repo and number and author_login and head_sha):
            raise ValidationError("Missing required pull_request payload fields")

        org = self._require_org(slug)
        context = PrContext(
            owner=slug,
            repo=repo,
            pr_number=number,
            head_sha=head_sha,
            author_login=author_login,
            author_id=str(author["id"]) if author.get("id") is not None else None,
        )
        with self._client_for(org, (payload.get("installation") or {}).get("id")) as client:
            client.observe_pull_request(
                PullRequestRef(
                    owner=slug,
                    repo=repo,
                    number=number,
                    head_sha=head_sha,
                    author_login=author_login,
                    author_id=author.get("id"),
                )
            )
            return self._sync(org, client, context, trigger=f"pull_request.{action}")

    def _handle_issue_comment(self, payload: dict) -> dict:
        if payload.get("action") != "created":
            return {"message": "Ignored non-created comment"}

        comment = payload.get("comment") or {}
        if not (comment.get("body") or "").strip().lower().startswith("/recheck"):
            return {"message": "Not a /recheck command"}

        issue = payload.get("issue") or {}
        if not issue.get("pull_request"):
            return {"message": "Ignored /recheck on non-PR issue"}

        repository = payload.get("repository") or {}
        slug = (repository.get("owner") or {}).get("login")
        repo = repository.get("name")
        number = issue.get("number")
        author = issue.get("user") or {}
        author_login = author.get("login")
        requester_user = comment.get("user") or {}
        requester = requester_user.get("login")
        if not (slug and repo and number and author_login and requester):
            raise ValidationError("Missing required issue_comment payload fields")

        org = self._require_org(slug)
        with self._client_for(org, (payload.get("installation") or {}).get("id")) as client:
            self._authorize_recheck(client, org, repo, requester, requester_user.get("id"), author_login)

            try:
                head_sha = client.get_pull_request_head_sha(slug, repo, number)
            except GitHubError as e:
                if self.settings.is_strict:
                    logger.error(f"Failed to resolve PR head SHA for /recheck: {e}", exc_info=True)
                    raise UpstreamError("Failed to resolve PR head SHA")
                head_sha = f"recheck-{int(time.time() * 1000)}"

            context = PrContext(
                owner=slug,
                repo=repo,
                pr_number=number,
                head_sha=head_sha,
                author_login=author_login,
                author_id=str(author["id"]) if author.get("id") is not None else None,
            )
            result = self._sync(org, client, context, trigger="issue_comment.recheck")
        result["requested_by"] = requester
        return result

    # ---------- Single-PR flow ----------

    def _require_org(self, slug: str) -> Organization:
        org = self.ledger.get_organization_by_slug(slug)
        if org is None:
            raise NotFoundError(f'Organization "{slug}" not found')
        return org

    def _client_for(self, org: Organization, payload_installation_id: Optional[int]) -> GitHubClient:
        """Installation from the payload wins; a changed id is persisted."""
        installation_id = payload_installation_id or org.installation_id
        if payload_installation_id and payload_installation_id != org.installation_id:
            self.ledger.set_installation(org, payload_installation_id)
            self.db.commit()
        return self.factory.for_installation(installation_id)

    def _authorize_recheck(
        self,
        client: GitHubClient,
        org: Organization,
        repo: str,
        requester: str,
        requester_id: Optional[int],
        pr_author: str,
    ) -> None:
        if requester.lower() == pr_author.lower():
            return
        requester_github_id = str(requester_id) if requester_id is not None else None
        if is_account_owner(OrgFacts.from_model(org), requester, requester_github_id):
            return
        try:
            if org.github_account_type != "user":
                if client.check_org_membership(org.github_org_slug, requester) == MEMBERSHIP_ACTIVE:
                    return
            permission = client.get_repository_permission_level(org.github_org_slug, repo, requester)
        except GitHubError as e:
            logger.error(f"Failed to authorize /recheck requester {requester}: {e}", exc_info=True)
            raise UpstreamError("Failed to authorize /recheck requester")
        if permission in RECHECK_PERMISSIONS:
            return
        raise ForbiddenError(
            "Forbidden: /recheck requires account owner access, org membership, "
            "PR author access, or maintainer permissions"
        )

    def _sync(self, org: Organization, client: GitHubClient, context: PrContext, trigger: str) -> dict:
        try:
            outcome = decide_and_sync(self.ledger, client, self.executor, org, context, trigger=trigger)
        except GitHubError as e:
            self.db.rollback()
            logger.error(
                f"GitHub error while syncing {context.owner}/{context.repo}#{context.pr_number}: {e}",
                extra={"org_slug": org.github_org_slug},
                exc_info=True,
            )
            raise UpstreamError(f"GitHub API error: {e.message}")
        self.db.commit()

        return {
            "message": f"{outcome.decision.title} for @{context.author_login}",
            "repo": f"{context.owner}/{context.repo}",
            "pr_number": context.pr_number,
            "head_sha": context.head_sha,
            **outcome.to_dict(),
        }

    @staticmethod
    def _org_summary(org: Organization) -> dict:
        return {
            "slug": org.github_org_slug,
            "account_type": org.github_account_type,
            "installation_id": org.installation_id,
            "is_active": org.is_active,
            "cla_configured": org.has_cla,
        }
