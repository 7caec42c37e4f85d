"""Tests for the signature ledger."""

from cla_api.ledger.service import normalize_username, sha256_hex
from conftest import CLA_V1, CLA_V2


def test_publish_cla_hashes_and_archives(ledger, db):
    org = ledger.create_organization("acme", name="Acme")
    assert org.cla_text_sha256 is None
    assert not org.has_cla

    ledger.publish_cla(org, CLA_V1)
    db.commit()

    assert org.cla_text_sha256 == sha256_hex(CLA_V1)
    archive = ledger.get_archive(org.id, org.cla_text_sha256)
    assert archive is not None
    assert archive.cla_text == CLA_V1


def test_republishing_reuses_archive(ledger, db):
    org = ledger.create_organization("acme", cla_text=CLA_V1)
    ledger.publish_cla(org, CLA_V2)
    ledger.publish_cla(org, CLA_V1)
    db.commit()

    assert [archive.sha256 for archive in ledger.list_archives(org.id)].count(sha256_hex(CLA_V1)) == 1
    assert len(ledger.list_archives(org.id)) == 2


def test_blank_cla_unconfigures(ledger, db):
    org = ledger.create_organization("acme", cla_text=CLA_V1)
    ledger.publish_cla(org, "  \n ")
    assert org.cla_text_sha256 is None
    assert org.cla_text == ""


def test_slug_lookup_is_case_insensitive(ledger, org):
    assert ledger.get_organization_by_slug("ACME").id == org.id
    assert ledger.get_organization_by_slug("nobody") is None


def test_normalize_username():
    assert normalize_username("  @Alice ") == "alice"
    assert normalize_username(None) == ""


def test_signed_hashes_by_id_and_username(ledger, db, org):
    user = ledger.upsert_user(github_id="2001", github_username="alice")
    ledger.create_signature(org, user)
    db.commit()

    assert ledger.signed_hashes(org.id, "2001", None) == {org.cla_text_sha256}
    assert ledger.signed_hashes(org.id, None, "ALICE") == {org.cla_text_sha256}
    assert ledger.signed_hashes(org.id, "9999", "mallory") == set()


def test_signature_survives_username_change(ledger, db, org):
    user = ledger.upsert_user(github_id="2001", github_username="alice")
    ledger.create_signature(org, user)
    ledger.upsert_user(github_id="2001", github_username="alice-renamed")
    db.commit()

    assert ledger.signed_hashes(org.id, "2001", "alice-renamed") == {org.cla_text_sha256}


def test_signature_archives_current_text(ledger, db, org):
    user = ledger.upsert_user(github_id="2001", github_username="alice")
    signature = ledger.create_signature(org, user, consent_text_version="v2", email="alice@example.com")
    db.commit()

    assert signature.cla_sha256 == org.cla_text_sha256
    assert signature.accepted_sha256 == org.cla_text_sha256
    assert signature.email_at_signature == "alice@example.com"
    assert ledger.get_archive(org.id, signature.cla_sha256) is not None
    assert ledger.get_latest_signature(org.id, user.id).id == signature.id


def test_bypass_lookup_by_id_or_login(ledger, db, org):
    ledger.add_bypass_account(org.id, github_user_id="49699333", github_username="@Dependabot[bot]")
    db.commit()

    assert ledger.find_bypass_account(org.id, "49699333", None) is not None
    assert ledger.find_bypass_account(org.id, None, "dependabot[bot]") is not None
    assert ledger.find_bypass_account(org.id, "1", "someone") is None
    assert ledger.remove_bypass_account(org.id, "49699333") is not None
    assert ledger.count_bypass_accounts(org.id) == 0


def test_webhook_delivery_reserved_once(ledger):
    assert ledger.reserve_webhook_delivery("abc-123", "ping") is True
    assert ledger.reserve_webhook_delivery("abc-123", "ping") is False


def test_audit_events_filter(ledger, db, org):
    ledger.append_audit_event("cla.updated", org_id=org.id, payload={"sha256": "x"}, actor_github_id=1001)
    ledger.append_audit_event("bypass.added", org_id=org.id)
    db.commit()

    events = ledger.list_audit_events(org_id=org.id, event_type="cla.updated")
    assert len(events) == 1
    assert events[0].actor_github_id == "1001"
    assert events[0].payload == {"sha256": "x"}


def test_reclaimed_login_does_not_inherit_signatures(ledger, db, org):
    user = ledger.upsert_user(github_id="2001", github_username="alice")
    ledger.create_signature(org, user)
    db.commit()

    assert ledger.signed_hashes(org.id, "666", "alice") == set()
