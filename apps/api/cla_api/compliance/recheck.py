"""Bulk recheck of every open pull request for an organization.

Each PR is processed on its own: a failure on one PR is recorded as a
``PrRecheckResult`` with an error and the run moves on. Results fold into a
``RecheckSummary`` that is returned and persisted as one audit event.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from cla_api.compliance.executor import (
    COMMENT_CREATED,
    COMMENT_DELETED,
    COMMENT_UPDATED,
    PrContext,
    PrSyncExecutor,
    SyncOutcome,
)
from cla_api.compliance.flow import decide_and_sync
from cla_api.errors import ClaBotError
from cla_api.github.client import GitHubClient, GitHubError
from cla_api.github.factory import GitHubClientFactory
from cla_api.github.types import PullRequestRef
from cla_api.ledger.service import SignatureLedger, normalize_username
from cla_api.utils.metrics import recheck_duration, recheck_runs

logger = logging.getLogger(__name__)

TRIGGER_CLA_UPDATED = "cla_updated"
TRIGGER_BYPASS_CHANGED = "bypass_changed"
TRIGGER_SIGNATURE_CREATED = "signature_created"
TRIGGER_MANUAL = "manual"
TRIGGERS = (TRIGGER_CLA_UPDATED, TRIGGER_BYPASS_CHANGED, TRIGGER_SIGNATURE_CREATED, TRIGGER_MANUAL)

# Targeted PR statuses
TARGET_MATCHED = "matched"
TARGET_NOT_FOUND = "pull_request_not_found"
TARGET_NOT_AUTHOR = "signer_not_pr_author"


@dataclass
class RecheckTrigger:
    """Why a recheck runs and what it is scoped to. Serialised as task kwargs."""

    kind: str
    org_slug: str
    cla_sha256: Optional[str] = None  # hash the run was scheduled for
    signer_github_id: Optional[str] = None
    signer_username: Optional[str] = None
    target_repo: Optional[str] = None
    target_pr_number: Optional[int] = None
    actor_github_id: Optional[str] = None
    actor_github_username: Optional[str] = None

    def __post_init__(self):
        if self.kind not in TRIGGERS:
            raise ValueError(f"Unknown recheck trigger: {self.kind}")

    @property
    def has_signer_filter(self) -> bool:
        return bool(self.signer_github_id or self.signer_username)

    def to_kwargs(self) -> dict:
        return asdict(self)

    @classmethod
    def from_kwargs(cls, kwargs: dict) -> "RecheckTrigger":
        return cls(**kwargs)


@dataclass
class PrRecheckResult:
    """Outcome of one PR: either ``outcome`` or ``error`` is set."""

    repo: str
    pr_number: int
    author_login: str
    outcome: Optional[SyncOutcome] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RecheckSummary:
    org_slug: str
    trigger: str
    attempted: int = 0
    rechecked: int = 0
    decisions: dict = field(default_factory=dict)
    passing_checks: int = 0
    failing_checks: int = 0
    comments_created: int = 0
    comments_updated: int = 0
    comments_deleted: int = 0
    skipped: dict = field(default_factory=dict)
    errors: int = 0
    error_messages: list = field(default_factory=list)
    skipped_inactive: bool = False
    superseded: bool = False
    targeted_pr_status: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0

    def skip(self, reason: str, count: int = 1) -> None:
        if count:
            self.skipped[reason] = self.skipped.get(reason, 0) + count

    def add_error(self, message: str, error_detail_limit: int = 20) -> None:
        """Count one error; only the first ``error_detail_limit`` messages are kept."""
        self.errors += 1
        if len(self.error_messages) < error_detail_limit:
            self.error_messages.append(message)

    def add(self, result: PrRecheckResult, error_detail_limit: int = 20) -> None:
        """Fold one PR result into the counters."""
        if not result.ok:
            self.add_error(f"{result.repo}#{result.pr_number}: {result.error}", error_detail_limit)
            return

        outcome = result.outcome
        self.rechecked += 1
        kind = outcome.decision.kind.value
        self.decisions[kind] = self.decisions.get(kind, 0) + 1
        if outcome.conclusion == "success":
            self.passing_checks += 1
        else:
            self.failing_checks += 1
        if outcome.comment_action == COMMENT_CREATED:
            self.comments_created += 1
        elif outcome.comment_action == COMMENT_UPDATED:
            self.comments_updated += 1
        elif outcome.comment_action == COMMENT_DELETED:
            self.comments_deleted += 1

    @property
    def status(self) -> str:
        return "failed" if self.error else "completed"

    def to_dict(self) -> dict:
        return asdict(self)


def signer_matches(trigger: RecheckTrigger, author_login: str, author_id: Optional[int]) -> bool:
    """Match by GitHub id when both sides have one, else by case-insensitive login."""
    if trigger.signer_github_id and author_id is not None:
        return str(trigger.signer_github_id) == str(author_id)
    if trigger.signer_username:
        return normalize_username(trigger.signer_username) == normalize_username(author_login)
    return False


class BulkRecheckOrchestrator:
    """Re-applies compliance to every open PR of one organization."""

    def __init__(
        self,
        db: Session,
        factory: GitHubClientFactory,
        app_base_url: str,
        error_detail_limit: int = 20,
    ):
        """Initialize bulk recheck orchestrator."""
        self.db = db
        self.ledger = SignatureLedger(db)
        self.factory = factory
        self.executor = PrSyncExecutor(self.ledger, app_base_url)
        self.error_detail_limit = error_detail_limit

    def run(self, trigger: RecheckTrigger) -> RecheckSummary:
        started = time.monotonic()
        summary = RecheckSummary(org_slug=trigger.org_slug, trigger=trigger.kind)
        org = self.ledger.get_organization_by_slug(trigger.org_slug)
        try:
            if org is None:
                summary.error = f'Organization "{trigger.org_slug}" not found'
            else:
                self._run_for_org(org, trigger, summary)
        finally:
            summary.duration_ms = int((time.monotonic() - started) * 1000)
            recheck_duration.labels(trigger=trigger.kind).observe(time.monotonic() - started)

        if summary.superseded:
            self._persist(org, trigger, "recheck.superseded", summary)
            recheck_runs.labels(trigger=trigger.kind, status="superseded").inc()
            return summary

        self._persist(org, trigger, f"recheck.{summary.status}", summary)
        recheck_runs.labels(trigger=trigger.kind, status=summary.status).inc()
        logger.info(
            f"Recheck for {trigger.org_slug} {summary.status}: "
            f"{summary.rechecked}/{summary.attempted} rechecked, {summary.errors} errors",
            extra={"org_slug": trigger.org_slug, "trigger": trigger.kind, "errors": summary.errors},
        )
        return summary

    def _run_for_org(self, org, trigger: RecheckTrigger, summary: RecheckSummary) -> None:
        if not org.is_active:
            summary.skipped_inactive = True
            return

        if trigger.cla_sha256 and org.cla_text_sha256 != trigger.cla_sha256:
            # A newer publish scheduled its own run.
            summary.superseded = True
            return

        try:
            client = self.factory.for_installation(org.installation_id)
        except ClaBotError as e:
            summary.error = e.message
            return

        with client:
            try:
                open_prs = client.list_open_pull_requests_for_organization(org.github_org_slug)
            except GitHubError as e:
                summary.error = f"Failed to list open pull requests: {e.message}"
                return

            candidates = self._select_candidates(client, org.github_org_slug, open_prs, trigger, summary)
            summary.attempted = len(candidates)

            for pr in candidates:
                result = self._recheck_one(client, org, pr, trigger)
                summary.add(result, self.error_detail_limit)

    def _select_candidates(
        self,
        client: GitHubClient,
        owner: str,
        open_prs: list[PullRequestRef],
        trigger: RecheckTrigger,
        summary: RecheckSummary,
    ) -> list[PullRequestRef]:
        candidates = list(open_prs)
        if trigger.has_signer_filter:
            candidates = [pr for pr in open_prs if signer_matches(trigger, pr.author_login, pr.author_id)]
            summary.skip("not_signer_pull_request", len(open_prs) - len(candidates))

        if trigger.target_repo and trigger.target_pr_number is not None:
            try:
                target = client.get_pull_request(owner, trigger.target_repo, trigger.target_pr_number)
            except GitHubError as e:
                summary.add_error(
                    f"{trigger.target_repo}#{trigger.target_pr_number}: {e.message}",
                    self.error_detail_limit,
                )
                target = None
                summary.targeted_pr_status = TARGET_NOT_FOUND
            else:
                if target is None:
                    summary.targeted_pr_status = TARGET_NOT_FOUND
                elif trigger.has_signer_filter and not signer_matches(trigger, target.author_login, target.author_id):
                    summary.targeted_pr_status = TARGET_NOT_AUTHOR
                else:
                    summary.targeted_pr_status = TARGET_MATCHED
                    already = any(
                        pr.repo.lower() == target.repo.lower() and pr.number == target.number for pr in candidates
                    )
                    if target.state != "open":
                        summary.skip("not_open")
                    elif not already:
                        candidates.append(target)
        return candidates

    def _recheck_one(self, client: GitHubClient, org, pr: PullRequestRef, trigger: RecheckTrigger) -> PrRecheckResult:
        result = PrRecheckResult(repo=pr.repo, pr_number=pr.number, author_login=pr.author_login)
        context = PrContext(
            owner=pr.owner,
            repo=pr.repo,
            pr_number=pr.number,
            head_sha=pr.head_sha,
            author_login=pr.author_login,
            author_id=str(pr.author_id) if pr.author_id is not None else None,
        )
        try:
            result.outcome = decide_and_sync(
                self.ledger, client, self.executor, org, context, trigger=f"recheck:{trigger.kind}"
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            result.error = e.message if isinstance(e, (GitHubError, ClaBotError)) else str(e)
            logger.warning(
                f"Recheck failed for {pr.owner}/{pr.repo}#{pr.number}: {e}",
                extra={"org_slug": org.github_org_slug, "trigger": trigger.kind},
                exc_info=True,
            )
        return result

    def _persist(self, org, trigger: RecheckTrigger, event_type: str, summary: RecheckSummary) -> None:
        payload = summary.to_dict()
        payload["cla_sha256"] = trigger.cla_sha256
        if org is not None:
            payload["current_cla_sha256"] = org.cla_text_sha256
        self.ledger.append_audit_event(
            event_type,
            org_id=org.id if org is not None else None,
            actor_github_id=trigger.actor_github_id,
            actor_github_username=trigger.actor_github_username,
            payload=payload,
        )
        self.db.commit()
