"""Tests for bulk rechecks of open pull requests."""

from unittest.mock import patch

import pytest

from cla_api.compliance.executor import PrContext, PrSyncExecutor
from cla_api.compliance.flow import decide_and_sync
from cla_api.compliance.recheck import (
    TARGET_MATCHED,
    TARGET_NOT_AUTHOR,
    TARGET_NOT_FOUND,
    TRIGGER_BYPASS_CHANGED,
    TRIGGER_CLA_UPDATED,
    TRIGGER_MANUAL,
    TRIGGER_SIGNATURE_CREATED,
    BulkRecheckOrchestrator,
    RecheckTrigger,
    signer_matches,
)
from cla_api.github.client import GitHubError
from conftest import CLA_V2


@pytest.fixture
def orchestrator(db, factory):
    return BulkRecheckOrchestrator(db, factory, "https://cla.example.com", error_detail_limit=2)


def sync_pr(ledger, github, org, number, author, sha):
    """Open a PR and apply the webhook-path decision to it."""
    pr = github.open_pull_request("acme", "widgets", number, author, sha)
    context = PrContext(
        owner="acme",
        repo="widgets",
        pr_number=number,
        head_sha=sha,
        author_login=author,
        author_id=str(pr.author_id),
    )
    return decide_and_sync(ledger, github, PrSyncExecutor(ledger, "https://cla.example.com"), org, context)


def sign(ledger, db, org, login, github_id):
    user = ledger.upsert_user(github_id=github_id, github_username=login)
    signature = ledger.create_signature(org, user)
    db.commit()
    return signature


def test_trigger_rejects_unknown_kind():
    with pytest.raises(ValueError):
        RecheckTrigger(kind="nightly", org_slug="acme")


def test_trigger_round_trips_through_task_kwargs():
    trigger = RecheckTrigger(kind=TRIGGER_SIGNATURE_CREATED, org_slug="acme", signer_github_id="2001", target_pr_number=3)
    assert RecheckTrigger.from_kwargs(trigger.to_kwargs()) == trigger


def test_signer_matches_by_id_then_login():
    trigger = RecheckTrigger(kind=TRIGGER_SIGNATURE_CREATED, org_slug="acme", signer_github_id="2001", signer_username="alice")
    assert signer_matches(trigger, "ALICE", 2001)
    assert not signer_matches(trigger, "alice", 9999)
    assert signer_matches(trigger, "Alice", None)


def test_cla_update_flips_signed_pr_to_needs_resign(ledger, github, org, db, orchestrator):
    sign(ledger, db, org, "alice", "2001")
    assert sync_pr(ledger, github, org, 1, "alice", "sha-1").decision.kind.value == "signed"
    assert github.list_comments("acme", "widgets", 1) == []

    ledger.publish_cla(org, CLA_V2)
    db.commit()
    summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_CLA_UPDATED, org_slug="acme", cla_sha256=org.cla_text_sha256))

    assert summary.status == "completed"
    assert summary.attempted == 1
    assert summary.decisions == {"needs_resign": 1}
    assert summary.failing_checks == 1
    assert summary.comments_created == 1
    assert github.check_runs_for("acme", "widgets", "sha-1")[-1].conclusion == "failure"
    body = github.list_comments("acme", "widgets", 1)[0].body
    assert "Re-signing Required" in body
    assert org.cla_text_sha256[:7] in body


def test_bypass_add_flips_failing_pr_and_removes_prompt(ledger, github, org, db, orchestrator):
    sync_pr(ledger, github, org, 2, "bob", "sha-2")
    assert len(github.list_comments("acme", "widgets", 2)) == 1

    ledger.add_bypass_account(org.id, github_user_id="2002", github_username="bob")
    db.commit()
    summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_BYPASS_CHANGED, org_slug="acme"))

    assert summary.decisions == {"bypass": 1}
    assert summary.passing_checks == 1
    assert summary.comments_deleted == 1
    assert github.check_runs_for("acme", "widgets", "sha-2")[-1].conclusion == "success"
    assert github.list_comments("acme", "widgets", 2) == []


def test_inactive_org_short_circuits(ledger, github, org, db, orchestrator):
    sync_pr(ledger, github, org, 1, "alice", "sha-1")
    ledger.set_active(org, False)
    db.commit()
    runs_before = len(github.check_runs)

    summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_MANUAL, org_slug="acme"))
    assert summary.skipped_inactive is True
    assert summary.attempted == 0
    assert len(github.check_runs) == runs_before


def test_stale_cla_trigger_is_superseded(ledger, github, org, db, orchestrator):
    old_sha = org.cla_text_sha256
    github.open_pull_request("acme", "widgets", 1, "alice", "sha-1")
    ledger.publish_cla(org, CLA_V2)
    db.commit()

    summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_CLA_UPDATED, org_slug="acme", cla_sha256=old_sha))
    assert summary.superseded is True
    assert github.check_runs == []
    assert ledger.list_audit_events(org_id=org.id, event_type="recheck.superseded")


def test_one_failing_pr_does_not_abort_batch(ledger, github, org, db, orchestrator):
    github.open_pull_request("acme", "widgets", 1, "alice", "sha-1")
    github.open_pull_request("acme", "widgets", 2, "bob", "sha-2")
    github.open_pull_request("acme", "gadgets", 3, "carol", "sha-3")

    original = github.create_check_run

    def flaky_create_check_run(owner, repo, name, head_sha, **kwargs):
        if head_sha == "sha-2":
            raise GitHubError(403, "rate limited", "create_check_run")
        return original(owner, repo, name, head_sha, **kwargs)

    with patch.object(github, "create_check_run", side_effect=flaky_create_check_run):
        summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_MANUAL, org_slug="acme"))

    assert summary.attempted == 3
    assert summary.rechecked == 2
    assert summary.errors == 1
    assert summary.error_messages == ["widgets#2: rate limited"]
    assert summary.status == "completed"
    events = ledger.list_audit_events(org_id=org.id, event_type="recheck.completed")
    assert events[-1].payload["errors"] == 1


def test_error_details_are_capped(ledger, github, org, orchestrator):
    for number in range(1, 5):
        github.open_pull_request("acme", "widgets", number, "alice", f"sha-{number}")
    github.fail_on["create_check_run"] = 500

    summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_MANUAL, org_slug="acme"))
    assert summary.errors == 4
    assert len(summary.error_messages) == 2


def test_listing_failure_fails_run(ledger, github, org, orchestrator):
    github.fail_on["list_open_pull_requests_for_organization"] = 502
    summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_MANUAL, org_slug="acme"))
    assert summary.status == "failed"
    assert "Failed to list open pull requests" in summary.error
    assert ledger.list_audit_events(org_id=org.id, event_type="recheck.failed")


def test_unknown_org_fails_run(orchestrator, ledger):
    summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_MANUAL, org_slug="ghost"))
    assert summary.status == "failed"
    assert ledger.list_audit_events(event_type="recheck.failed")


def test_signature_trigger_only_touches_signer_prs(ledger, github, org, db, orchestrator):
    sync_pr(ledger, github, org, 1, "alice", "sha-1")
    sync_pr(ledger, github, org, 2, "bob", "sha-2")
    sign(ledger, db, org, "alice", "2001")

    trigger = RecheckTrigger(
        kind=TRIGGER_SIGNATURE_CREATED,
        org_slug="acme",
        signer_github_id="2001",
        signer_username="alice",
    )
    summary = orchestrator.run(trigger)

    assert summary.attempted == 1
    assert summary.decisions == {"signed": 1}
    assert summary.skipped == {"not_signer_pull_request": 1}
    assert github.list_comments("acme", "widgets", 1) == []
    assert len(github.list_comments("acme", "widgets", 2)) == 1


def test_targeted_pr_statuses(ledger, github, org, db, orchestrator):
    github.open_pull_request("acme", "widgets", 1, "alice", "sha-1")
    github.open_pull_request("acme", "widgets", 2, "bob", "sha-2")
    sign(ledger, db, org, "alice", "2001")
    base = {"kind": TRIGGER_SIGNATURE_CREATED, "org_slug": "acme", "signer_github_id": "2001", "signer_username": "alice"}

    matched = orchestrator.run(RecheckTrigger(**base, target_repo="widgets", target_pr_number=1))
    assert matched.targeted_pr_status == TARGET_MATCHED
    assert matched.attempted == 1

    not_author = orchestrator.run(RecheckTrigger(**base, target_repo="widgets", target_pr_number=2))
    assert not_author.targeted_pr_status == TARGET_NOT_AUTHOR

    missing = orchestrator.run(RecheckTrigger(**base, target_repo="widgets", target_pr_number=99))
    assert missing.targeted_pr_status == TARGET_NOT_FOUND


def test_closed_targeted_pr_is_skipped(ledger, github, org, db, orchestrator):
    github.open_pull_request("acme", "widgets", 1, "alice", "sha-1")
    github.close_pull_request("acme", "widgets", 1)
    sign(ledger, db, org, "alice", "2001")

    summary = orchestrator.run(
        RecheckTrigger(
            kind=TRIGGER_SIGNATURE_CREATED,
            org_slug="acme",
            signer_github_id="2001",
            target_repo="widgets",
            target_pr_number=1,
        )
    )
    assert summary.attempted == 0
    assert summary.skipped == {"not_open": 1}
    assert github.check_runs == []


def test_targeted_fetch_error_respects_detail_cap(github, org, orchestrator):
    for number in range(1, 4):
        github.open_pull_request("acme", "widgets", number, "alice", f"sha-{number}")
    github.fail_on["get_pull_request"] = 502
    github.fail_on["create_check_run"] = 500

    trigger = RecheckTrigger(
        kind=TRIGGER_SIGNATURE_CREATED,
        org_slug="acme",
        signer_github_id="2001",
        signer_username="alice",
        target_repo="widgets",
        target_pr_number=9,
    )
    summary = orchestrator.run(trigger)

    assert summary.targeted_pr_status == TARGET_NOT_FOUND
    assert summary.errors == 4
    assert len(summary.error_messages) == 2
    assert summary.error_messages[0].startswith("widgets#9:")


def test_run_closes_github_client(github, org, orchestrator):
    github.open_pull_request("acme", "widgets", 1, "alice", "sha-1")
    with patch.object(github, "close") as close:
        orchestrator.run(RecheckTrigger(kind=TRIGGER_MANUAL, org_slug="acme"))
    close.assert_called_once()


def test_run_closes_github_client_after_listing_failure(github, org, orchestrator):
    github.fail_on["list_open_pull_requests_for_organization"] = 502
    with patch.object(github, "close") as close:
        summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_MANUAL, org_slug="acme"))
    assert summary.status == "failed"
    close.assert_called_once()
