"""Tests for the pure CLA decision function."""

import pytest

from cla_api.compliance.evaluator import (
    ComplianceFacts,
    DecisionKind,
    OrgFacts,
    SignatureStatus,
    evaluate,
    is_account_owner,
    version_label,
)

SHA_V1 = "a" * 64
SHA_V2 = "b" * 64


def make_org(**overrides) -> OrgFacts:
    values = {
        "slug": "acme",
        "name": "Acme",
        "is_active": True,
        "account_type": "organization",
        "account_id": "5001",
        "cla_text_sha256": SHA_V2,
        "has_cla_text": True,
    }
    values.update(overrides)
    return OrgFacts(**values)


def test_inactive_wins_over_everything():
    """Inactive organizations pass even when the author would otherwise fail."""
    decision = evaluate(make_org(is_active=False, cla_text_sha256=None), ComplianceFacts(author_login="alice"))
    assert decision.kind == DecisionKind.INACTIVE
    assert decision.conclusion == "success"
    assert decision.title == "CLA: Bot deactivated"


def test_bypass_before_membership_and_signature():
    facts = ComplianceFacts(author_login="dependabot[bot]", bypass_match=True, membership_status="not_member")
    decision = evaluate(make_org(), facts)
    assert decision.kind == DecisionKind.BYPASS
    assert decision.passing


def test_bypass_passes_even_without_cla():
    decision = evaluate(make_org(cla_text_sha256=None, has_cla_text=False), ComplianceFacts("bot", bypass_match=True))
    assert decision.kind == DecisionKind.BYPASS


def test_account_owner_only_for_personal_accounts():
    owner_facts = ComplianceFacts(author_login="carol", account_owner_match=True)
    personal = make_org(slug="carol", name="carol", account_type="user", account_id="2003")
    assert evaluate(personal, owner_facts).kind == DecisionKind.ACCOUNT_OWNER
    # The same flag on an organization account is ignored
    assert evaluate(make_org(), owner_facts).kind == DecisionKind.UNSIGNED


def test_org_member_passes():
    decision = evaluate(make_org(), ComplianceFacts(author_login="alice", membership_status="active"))
    assert decision.kind == DecisionKind.ORG_MEMBER
    assert decision.title == "CLA: Org member"


def test_membership_ignored_for_personal_accounts():
    personal = make_org(slug="carol", account_type="user", account_id="2003")
    decision = evaluate(personal, ComplianceFacts(author_login="alice", membership_status="active"))
    assert decision.kind == DecisionKind.UNSIGNED


def test_unconfigured_fails_for_outsiders():
    decision = evaluate(make_org(cla_text_sha256=None, has_cla_text=False), ComplianceFacts(author_login="alice"))
    assert decision.kind == DecisionKind.CLA_UNCONFIGURED
    assert decision.conclusion == "failure"
    assert decision.title == "CLA: Configuration required"
    assert decision.version_label is None


def test_blank_text_with_hash_counts_as_unconfigured():
    decision = evaluate(make_org(has_cla_text=False), ComplianceFacts(author_login="alice"))
    assert decision.kind == DecisionKind.CLA_UNCONFIGURED


@pytest.mark.parametrize(
    "signed,expected_kind,expected_conclusion",
    [
        ({SHA_V2}, DecisionKind.SIGNED, "success"),
        ({SHA_V1, SHA_V2}, DecisionKind.SIGNED, "success"),
        ({SHA_V1}, DecisionKind.NEEDS_RESIGN, "failure"),
        (set(), DecisionKind.UNSIGNED, "failure"),
    ],
)
def test_signature_outcomes(signed, expected_kind, expected_conclusion):
    facts = ComplianceFacts(
        author_login="alice",
        membership_status="not_member",
        signature_status=SignatureStatus.from_hashes(signed, SHA_V2),
    )
    decision = evaluate(make_org(), facts)
    assert decision.kind == expected_kind
    assert decision.conclusion == expected_conclusion
    assert decision.version_label == SHA_V2[:7]


def test_needs_resign_title_and_label():
    facts = ComplianceFacts("alice", signature_status=SignatureStatus.from_hashes({SHA_V1}, SHA_V2))
    decision = evaluate(make_org(), facts)
    assert decision.title == "CLA: Re-signing required"
    assert f"`{SHA_V2[:7]}`" in decision.summary
    assert decision.needs_prompt


def test_evaluate_is_deterministic():
    org = make_org()
    facts = ComplianceFacts("alice", signature_status=SignatureStatus.from_hashes({SHA_V1}, SHA_V2))
    assert evaluate(org, facts) == evaluate(org, facts)


def test_version_label():
    assert version_label(SHA_V1) == "aaaaaaa"
    assert version_label(None) is None


def test_is_account_owner_prefers_id_match():
    personal = make_org(slug="carol", account_type="user", account_id="2003")
    assert is_account_owner(personal, "carol", "2003")
    assert is_account_owner(personal, "renamed-carol", "2003")
    # Same login but a different id is not the owner
    assert not is_account_owner(personal, "carol", "9999")
    # Without an author id the login must equal the slug
    assert is_account_owner(personal, "Carol", None)
    assert not is_account_owner(make_org(), "acme", "5001")
