import os

# Settings are read on import; keep the app from touching real services
os.environ["SCHEDULER_MODE"] = "disabled"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ONESIGNAL_APP_ID"] = "test-app-id"
os.environ["ONESIGNAL_REST_API_KEY"] = "test-rest-key"

from datetime import timedelta
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from notifier.db.models import (
    Base,
    Notification,
    NotificationStatus,
    NotificationTarget,
    User,
)
from notifier.db.session import get_sync_session
from notifier.services.onesignal.onesignal_client import (
    DeliveryResult,
    RecipientSet,
    get_onesignal_client,
)
from notifier.utils.datetime_utils import naive_utc_now


TEST_DATABASE_URL = "sqlite://"


class FakeGateway:
    """
    Stands in for OneSignalClient and records every send.

    `results` are handed out in call order; an Exception entry is raised instead
    of returned. Once exhausted every send succeeds.
    """

    def __init__(self, results: Optional[List[Any]] = None):
        self.calls: List[Dict[str, Any]] = []
        self.results = list(results or [])

    async def send(
        self,
        title: str,
        body: str,
        recipients: RecipientSet,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DeliveryResult:
        self.calls.append(
            {
                "title": title,
                "body": body,
                "recipients": recipients,
                "metadata": metadata,
            }
        )
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return DeliveryResult(
            success=True,
            notification_id=f"onesignal-{len(self.calls)}",
            status_code=200,
        )


@pytest.fixture
def test_engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(bind=test_engine, class_=Session, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


# Test data factories
@pytest.fixture
def make_user(db_session: Session):
    def _make_user(is_active: bool = True, **kwargs) -> User:
        user = User(
            name=kwargs.pop("name", "Test User"),
            is_active=is_active,
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_notification(db_session: Session):
    def _make_notification(**kwargs) -> Notification:
        values = {
            "title": "Reminder",
            "message": "Don't forget!",
            "target": NotificationTarget.ALL,
            "recipient_ids": [],
            "status": NotificationStatus.DRAFT,
        }
        values.update(kwargs)
        notification = Notification(**values)
        db_session.add(notification)
        db_session.commit()
        db_session.refresh(notification)
        return notification

    return _make_notification


@pytest.fixture
def due_time():
    """A scheduled_for one minute in the past."""
    return naive_utc_now() - timedelta(minutes=1)


@pytest.fixture
def client(session_factory, fake_gateway) -> Generator[TestClient, None, None]:
    """API client wired to the test database and the fake gateway."""
    from notifier.main import create_application

    application = create_application()

    def override_get_sync_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    application.dependency_overrides[get_sync_session] = override_get_sync_session
    application.dependency_overrides[get_onesignal_client] = lambda: fake_gateway

    with TestClient(application) as test_client:
        yield test_client

    application.dependency_overrides.clear()


@pytest.fixture
def make_gateway():
    """Build a FakeGateway with scripted results."""
    return FakeGateway
