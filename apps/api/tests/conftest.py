"""Pytest configuration and fixtures."""

import hashlib
import hmac
import json
import os
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cla_api.compliance.scheduler import TaskScheduler, get_task_scheduler
from cla_api.db.base import Base
from cla_api.db.session import get_db
from cla_api.github.factory import GitHubClientFactory
from cla_api.github.memory_client import InMemoryGitHubClient
from cla_api.ledger.service import SignatureLedger
from cla_api.main import app
from cla_api.models import Organization
from cla_api.settings import Settings, get_settings

# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

WEBHOOK_SECRET = "test-webhook-secret"
SERVICE_API_KEY = "test-service-key"
CLA_V1 = "# CLA\n\nVersion one of the agreement."
CLA_V2 = "# CLA\n\nVersion two of the agreement."


class RecordingScheduler(TaskScheduler):
    """Scheduler double that records every task instead of sending it."""

    def __init__(self, fail: Optional[Exception] = None):
        self.calls: list[tuple[str, dict]] = []
        self.fail = fail

    def schedule(self, task_name: str, kwargs: dict) -> str:
        if self.fail is not None:
            raise self.fail
        self.calls.append((task_name, kwargs))
        return f"run-{len(self.calls)}"

    @property
    def triggers(self) -> list[dict]:
        return [kwargs["trigger"] for _, kwargs in self.calls]


def make_settings(**overrides) -> Settings:
    values = {
        "environment": "test",
        "authorization_mode": "permissive",
        "database_url": "sqlite:///:memory:",
        "github_webhook_secret": WEBHOOK_SECRET,
        "service_api_key": SERVICE_API_KEY,
        "secret_key": "test-secret-key",
        "app_base_url": "https://cla.example.com",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def sign_payload(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture(scope="function")
def db():
    """Create a test database session with a fresh schema."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def ledger(db: Session) -> SignatureLedger:
    return SignatureLedger(db)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def github() -> InMemoryGitHubClient:
    """In-memory GitHub with a few known users."""
    client = InMemoryGitHubClient()
    client.add_user("acme-admin", 1001)
    client.add_user("alice", 2001)
    client.add_user("bob", 2002)
    client.add_user("carol", 2003)
    client.add_user("dependabot[bot]", 49699333, type="Bot")
    return client


@pytest.fixture
def factory(settings: Settings, github: InMemoryGitHubClient) -> GitHubClientFactory:
    return GitHubClientFactory(settings, memory_client=github)


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def org(ledger: SignatureLedger, db: Session) -> Organization:
    """Active organization account with CLA_V1 published."""
    organization = ledger.create_organization(
        "acme",
        name="Acme",
        account_type="organization",
        account_id="5001",
        installation_id=777,
        cla_text=CLA_V1,
    )
    db.commit()
    return organization


@pytest.fixture
def personal_org(ledger: SignatureLedger, db: Session) -> Organization:
    """Personal account installation owned by ``carol``."""
    organization = ledger.create_organization(
        "carol",
        name="carol",
        account_type="user",
        account_id="2003",
        installation_id=778,
        cla_text=CLA_V1,
    )
    db.commit()
    return organization


@pytest.fixture
def client(db: Session, settings: Settings, factory: GitHubClientFactory, scheduler: RecordingScheduler):
    """FastAPI test client wired to the test database, settings and doubles."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_task_scheduler] = lambda: scheduler
    previous_factory = getattr(app.state, "github_factory", None)
    app.state.github_factory = factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.github_factory = previous_factory


@pytest.fixture
def send_webhook(client: TestClient):
    """Post a signed webhook delivery."""
    counter = {"n": 0}

    def _send(event: str, payload: dict, delivery_id: Optional[str] = None, signature: Optional[str] = None):
        counter["n"] += 1
        body = json.dumps(payload).encode()
        headers = {
            "content-type": "application/json",
            "x-github-event": event,
            "x-github-delivery": delivery_id or f"delivery-{counter['n']}",
            "x-hub-signature-256": signature or sign_payload(body),
        }
        return client.post("/api/webhook/github", content=body, headers=headers)

    return _send


def pull_request_payload(
    owner: str,
    repo: str,
    number: int,
    author: str,
    author_id: Optional[int],
    head_sha: str,
    action: str = "opened",
    installation_id: Optional[int] = None,
) -> dict:
    payload = {
        "action": action,
        "number": number,
        "pull_request": {
            "number": number,
            "user": {"login": author, "id": author_id},
            "head": {"sha": head_sha},
        },
        "repository": {"name": repo, "owner": {"login": owner}},
    }
    if installation_id is not None:
        payload["installation"] = {"id": installation_id}
    return payload
