"""Applies a compliance Decision to a pull request on GitHub."""

import logging
from dataclasses import dataclass
from typing import Optional

from cla_api.compliance.comments import render_prompt
from cla_api.compliance.evaluator import CHECK_RUN_NAME, Decision, OrgFacts
from cla_api.github.client import GitHubClient
from cla_api.github.comment_ownership import is_removable_prompt_comment
from cla_api.ledger.service import SignatureLedger
from cla_api.utils.metrics import pr_decisions

logger = logging.getLogger(__name__)

COMMENT_CREATED = "created"
COMMENT_UPDATED = "updated"
COMMENT_DELETED = "deleted"
COMMENT_NONE = "none"


@dataclass(frozen=True)
class PrContext:
    """Identifies one pull request head to evaluate."""

    owner: str
    repo: str
    pr_number: int
    head_sha: str
    author_login: str
    author_id: Optional[str] = None


@dataclass
class SyncOutcome:
    decision: Decision
    check_run_id: int
    conclusion: str
    comment_action: str = COMMENT_NONE
    comment_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "decision": self.decision.kind.value,
            "conclusion": self.conclusion,
            "title": self.decision.title,
            "version_label": self.decision.version_label,
            "check_run_id": self.check_run_id,
            "comment_action": self.comment_action,
            "comment_id": self.comment_id,
        }


class PrSyncExecutor:
    """Creates the check run and reconciles the bot's prompt comment."""

    def __init__(self, ledger: SignatureLedger, app_base_url: str):
        """Initialize PR sync executor."""
        self.ledger = ledger
        self.app_base_url = app_base_url.rstrip("/")

    def apply(
        self,
        client: GitHubClient,
        org_id: int,
        org: OrgFacts,
        pr: PrContext,
        decision: Decision,
        trigger: str = "webhook",
    ) -> SyncOutcome:
        check_run = client.create_check_run(
            owner=pr.owner,
            repo=pr.repo,
            name=CHECK_RUN_NAME,
            head_sha=pr.head_sha,
            status="completed",
            conclusion=decision.conclusion,
            title=decision.title,
            summary=decision.summary,
        )
        outcome = SyncOutcome(decision=decision, check_run_id=check_run.id, conclusion=decision.conclusion)

        existing = client.find_bot_comment(pr.owner, pr.repo, pr.pr_number)
        if decision.needs_prompt:
            body = render_prompt(decision, pr.author_login, org, self.app_base_url, pr.repo, pr.pr_number)
            if existing is not None:
                comment = client.update_comment(pr.owner, pr.repo, existing.id, body)
                outcome.comment_action = COMMENT_UPDATED
            else:
                comment = client.create_comment(pr.owner, pr.repo, pr.pr_number, body)
                outcome.comment_action = COMMENT_CREATED
            outcome.comment_id = comment.id
        elif existing is not None and is_removable_prompt_comment(existing.body):
            client.delete_comment(pr.owner, pr.repo, existing.id)
            outcome.comment_action = COMMENT_DELETED
            outcome.comment_id = existing.id

        self.ledger.append_audit_event(
            "pr_check.decision",
            org_id=org_id,
            actor_github_id=pr.author_id,
            actor_github_username=pr.author_login,
            payload={
                "trigger": trigger,
                "repo": f"{pr.owner}/{pr.repo}",
                "pr_number": pr.pr_number,
                "head_sha": pr.head_sha,
                **outcome.to_dict(),
            },
        )
        pr_decisions.labels(kind=decision.kind.value, conclusion=decision.conclusion).inc()
        logger.info(
            f"Applied {decision.kind.value} to {pr.owner}/{pr.repo}#{pr.pr_number}",
            extra={
                "org_slug": org.slug,
                "decision": decision.kind.value,
                "conclusion": decision.conclusion,
                "comment_action": outcome.comment_action,
            },
        )
        return outcome
