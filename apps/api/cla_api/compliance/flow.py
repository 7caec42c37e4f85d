"""Single entry point that evaluates and syncs one pull request.

Used by the webhook dispatcher and the bulk recheck orchestrator alike.
"""

import logging

from cla_api.compliance.evaluator import (
    ComplianceFacts,
    OrgFacts,
    SignatureStatus,
    evaluate,
    is_account_owner,
)
from cla_api.compliance.executor import PrContext, PrSyncExecutor, SyncOutcome
from cla_api.github.client import GitHubClient
from cla_api.github.types import MEMBERSHIP_ACTIVE
from cla_api.ledger.service import SignatureLedger
from cla_api.models import Organization

logger = logging.getLogger(__name__)


def gather_facts(
    ledger: SignatureLedger,
    client: GitHubClient,
    org: Organization,
    org_facts: OrgFacts,
    pr: PrContext,
) -> ComplianceFacts:
    """Fetch only the facts the evaluator will actually read."""
    base = {"author_login": pr.author_login, "author_id": pr.author_id}
    if not org_facts.is_active:
        return ComplianceFacts(**base)

    if ledger.find_bypass_account(org.id, pr.author_id, pr.author_login) is not None:
        return ComplianceFacts(**base, bypass_match=True)

    if org_facts.account_type == "user":
        if is_account_owner(org_facts, pr.author_login, pr.author_id):
            return ComplianceFacts(**base, account_owner_match=True)
    elif client.check_org_membership(org_facts.slug, pr.author_login) == MEMBERSHIP_ACTIVE:
        return ComplianceFacts(**base, membership_status=MEMBERSHIP_ACTIVE)

    signed = ledger.signed_hashes(org.id, pr.author_id, pr.author_login)
    return ComplianceFacts(
        **base,
        membership_status=None if org_facts.account_type == "user" else "not_member",
        signature_status=SignatureStatus.from_hashes(signed, org_facts.cla_text_sha256),
    )


def decide_and_sync(
    ledger: SignatureLedger,
    client: GitHubClient,
    executor: PrSyncExecutor,
    org: Organization,
    pr: PrContext,
    trigger: str = "webhook",
) -> SyncOutcome:
    """Gather facts, evaluate and apply the decision to one PR head."""
    org_facts = OrgFacts.from_model(org)
    facts = gather_facts(ledger, client, org, org_facts, pr)
    decision = evaluate(org_facts, facts)
    return executor.apply(client, org.id, org_facts, pr, decision, trigger=trigger)
