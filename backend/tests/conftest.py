"""Pytest fixtures: SQLite file database and a recording email gateway."""
import os
import re
from dataclasses import dataclass

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("BCRYPT_COST_FACTOR", "4")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("ADMIN_EMAIL", "moderator@example.com")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.main import app
from app.services import identity_service
from app.services.notification_service import get_notification_gateway

# Import all models so they register with Base.metadata
from app.models.user import User                    # noqa: F401
from app.models.event import Event                  # noqa: F401
from app.models.analytics import AnalyticsRecord    # noqa: F401
from app.models.tokens import EventApprovalToken, PasswordResetToken  # noqa: F401

SQLITE_URL = "sqlite:///./test.db"
ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
APPROVAL_LINK = re.compile(r"/api/events/(approve|reject)-email/([0-9a-f]{64})")


@dataclass
class SentEmail:
    to: str
    subject: str
    html_body: str


class RecordingGateway:
    """Stands in for SMTP. Can be told to fail or to raise."""

    def __init__(self):
        self.sent: list[SentEmail] = []
        self.fail = False
        self.raise_error = False

    def send(self, to: str, subject: str, html_body: str) -> bool:
        if self.raise_error:
            raise RuntimeError("mail server unreachable")
        if self.fail:
            return False
        self.sent.append(SentEmail(to, subject, html_body))
        return True

    def to(self, address: str) -> list[SentEmail]:
        return [m for m in self.sent if m.to == address]


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False, "timeout": 30})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def gateway():
    return RecordingGateway()


@pytest.fixture(scope="function")
def client(session_factory, gateway):
    """FastAPI TestClient with the database and email gateway overridden."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_notification_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def register_user(client: TestClient, email: str = "poster@example.com", password: str = "secret123",
                  first_name: str = "Priya", last_name: str = "Shah") -> dict:
    """Helper: POST /api/auth/register and return response JSON plus auth headers."""
    resp = client.post("/api/auth/register", json={
        "email": email,
        "password": password,
        "first_name": first_name,
        "last_name": last_name,
    })
    assert resp.status_code == 201, resp.text
    data = resp.json()
    data["headers"] = {"Authorization": f"Bearer {data['access_token']}"}
    return data


def create_admin(client: TestClient, db, email: str = "admin@example.com") -> dict:
    """Helper: register a user and promote it out-of-band."""
    data = register_user(client, email=email, first_name="Ada", last_name="Admin")
    identity_service.promote_to_admin(db, email)
    return data


def event_payload(**overrides) -> dict:
    payload = {
        "title": "Diwali Night",
        "description": "Lights, food and music for the whole family.",
        "date": "2030-11-01",
        "time": "19:30",
        "location_text": "Leeds Town Hall",
        "category": "Cultural",
        "contact_email": "organiser@example.com",
    }
    payload.update(overrides)
    return payload


def submit_event(client: TestClient, headers: dict, **overrides) -> dict:
    """Helper: POST /api/events and return response JSON."""
    resp = client.post("/api/events/", json=event_payload(**overrides), headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def approve_event(client: TestClient, admin_headers: dict, event_id: str) -> dict:
    resp = client.post(f"/api/admin/approve/{event_id}", headers=admin_headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def approval_tokens(gateway: RecordingGateway) -> tuple[str, str]:
    """Helper: (approve, reject) tokens from the latest pending-approval email to the admin."""
    mail = gateway.to(ADMIN_EMAIL)[-1]
    links = dict(APPROVAL_LINK.findall(mail.html_body))
    return links["approve"], links["reject"]
