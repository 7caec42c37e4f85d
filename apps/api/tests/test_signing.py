"""Tests for contributor signing."""

import pytest

from cla_api.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from cla_api.services.signing import (
    ClaSigningService,
    RequestEvidence,
    SignerIdentity,
    hash_ip_address,
    resolve_request_evidence,
)
from conftest import CLA_V2, SERVICE_API_KEY, RecordingScheduler

ALICE = SignerIdentity(github_id="2001", github_username="alice", name="Alice")


@pytest.fixture
def signing(db, scheduler, settings):
    return ClaSigningService(db, scheduler, settings)


def test_sign_records_signature_and_schedules_recheck(signing, ledger, org, scheduler):
    signature, schedule = signing.sign_cla(
        "acme",
        ALICE,
        accepted_sha256=org.cla_text_sha256,
        repo_name="widgets",
        pr_number=5,
        evidence=RequestEvidence(ip_address="203.0.113.9", user_agent="pytest"),
    )

    assert signature.cla_sha256 == org.cla_text_sha256
    assert signature.consent_text_version == "v1"
    assert signature.email_at_signature == "alice@users.noreply.github.com"
    assert signature.ip_hash == hash_ip_address("203.0.113.9", "test-secret-key")
    assert signature.ip_hash != "203.0.113.9"
    assert schedule.scheduled

    trigger = scheduler.triggers[0]
    assert trigger["kind"] == "signature_created"
    assert trigger["signer_github_id"] == "2001"
    assert trigger["target_repo"] == "widgets"
    assert trigger["target_pr_number"] == 5

    event = ledger.list_audit_events(org_id=org.id, event_type="signature.created")[0]
    assert event.payload["repo_name"] == "widgets"
    assert event.payload["cla_sha256"] == org.cla_text_sha256


def test_sign_requires_assent(signing, org):
    with pytest.raises(ValidationError, match="Explicit assent"):
        signing.sign_cla("acme", ALICE, assented=False)


def test_repo_and_pr_must_come_together(signing, org):
    with pytest.raises(ValidationError, match="provided together"):
        signing.sign_cla("acme", ALICE, repo_name="widgets")


def test_unknown_org(signing):
    with pytest.raises(NotFoundError):
        signing.sign_cla("ghost", ALICE)


def test_inactive_org(signing, ledger, org, db):
    ledger.set_active(org, False)
    db.commit()
    with pytest.raises(ForbiddenError):
        signing.sign_cla("acme", ALICE)


def test_unconfigured_org(signing, ledger, org, db):
    ledger.publish_cla(org, "")
    db.commit()
    with pytest.raises(ValidationError, match="No CLA configured"):
        signing.sign_cla("acme", ALICE)


def test_stale_accepted_hash_conflicts(signing, ledger, org, db):
    old_sha = org.cla_text_sha256
    ledger.publish_cla(org, CLA_V2)
    db.commit()

    with pytest.raises(ConflictError) as exc_info:
        signing.sign_cla("acme", ALICE, accepted_sha256=old_sha)
    assert exc_info.value.details["current_sha256"] == org.cla_text_sha256


def test_signing_twice_conflicts(signing, org):
    signing.sign_cla("acme", ALICE)
    with pytest.raises(ConflictError, match="Already signed"):
        signing.sign_cla("acme", ALICE)


def test_resign_after_update(signing, ledger, org, db):
    signing.sign_cla("acme", ALICE)
    ledger.publish_cla(org, CLA_V2)
    db.commit()
    assert signing.get_status("acme", "2001", "alice")["needs_resign"] is True

    signing.sign_cla("acme", ALICE)
    status = signing.get_status("acme", "2001", "alice")
    assert status["current_version"] is True
    assert status["needs_resign"] is False


def test_schedule_failure_does_not_undo_signature(db, settings, org, ledger):
    service = ClaSigningService(db, RecordingScheduler(fail=RuntimeError("redis unavailable")), settings)
    signature, schedule = service.sign_cla("acme", ALICE)

    assert signature.id is not None
    assert schedule.scheduled is False
    assert ledger.has_signature_for(org.id, signature.user_id, org.cla_text_sha256)


def test_resolve_request_evidence():
    evidence = resolve_request_evidence({"x-forwarded-for": "198.51.100.1, 10.0.0.1", "user-agent": "ua"})
    assert evidence.ip_address == "198.51.100.1"
    assert evidence.user_agent == "ua"
    assert resolve_request_evidence({"x-real-ip": "198.51.100.2"}).ip_address == "198.51.100.2"
    assert resolve_request_evidence({}).ip_address is None
    assert hash_ip_address(None, "secret") is None


def test_sign_route(client, org, scheduler):
    response = client.post(
        "/v1/orgs/acme/signatures",
        json={"github_id": "2001", "github_username": "alice", "accepted_sha256": org.cla_text_sha256},
        headers={"x-api-key": SERVICE_API_KEY, "x-forwarded-for": "203.0.113.7"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["signature"]["cla_sha256"] == org.cla_text_sha256
    assert data["recheck"]["scheduled"] is True


def test_sign_route_requires_service_key(client, org):
    response = client.post("/v1/orgs/acme/signatures", json={"github_id": "2001", "github_username": "alice"})
    assert response.status_code == 401
    assert "error" in response.json()


def test_sign_route_version_mismatch(client, org):
    response = client.post(
        "/v1/orgs/acme/signatures",
        json={"github_id": "2001", "github_username": "alice", "accepted_sha256": "0" * 64},
        headers={"x-api-key": SERVICE_API_KEY},
    )
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "VERSION_MISMATCH"
    assert body["current_sha256"] == org.cla_text_sha256


def test_signature_status_route(client, org):
    headers = {"x-api-key": SERVICE_API_KEY}
    response = client.get("/v1/orgs/acme/signatures/status", params={"github_username": "alice"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["signed"] is False
