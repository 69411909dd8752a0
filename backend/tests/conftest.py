"""Shared test fixtures for all test modules."""

import contextlib
import uuid

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import casenotify.models  # noqa: F401
from casenotify.core import database as db_module
from casenotify.core.auth import CurrentUser
from casenotify.core.database import Base, get_db
from casenotify.models.notification import ChannelName
from casenotify.models.user import User, UserEligibilityCategory, UserRole
from casenotify.repositories.notification_repository import NotificationRepository
from casenotify.services.channel_providers import ChannelProvider, DeliveryResult

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known staff identities used across tests
ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
CASE_WORKER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
FINANCE_MANAGER_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def make_user(db_session):
    """Factory inserting a directory user. Categories go to the association table."""

    def _make_user(categories=None, **overrides):  # type: ignore[no-untyped-def]
        defaults = {
            "name": "Test User",
            "email": f"user-{uuid.uuid4().hex[:8]}@example.com",
            "phone_number": "+213555000000",
            "device_tokens": [],
            "role": UserRole.USER.value,
            "account_status": "active",
            "preferences": {},
        }
        defaults.update(overrides)
        user = User(**defaults)
        for category in categories or []:
            user.category_links.append(UserEligibilityCategory(category=category))
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def admin():
    return CurrentUser(user_id=ADMIN_ID, role=UserRole.ADMIN)


@pytest.fixture
def case_worker():
    return CurrentUser(user_id=CASE_WORKER_ID, role=UserRole.CASE_WORKER)


@pytest.fixture
def finance_manager():
    return CurrentUser(user_id=FINANCE_MANAGER_ID, role=UserRole.FINANCE_MANAGER)


def as_caller(user: User) -> CurrentUser:
    """Identity of a directory user acting on their own feed."""
    return CurrentUser(user_id=user.id, role=UserRole(user.role))  # type: ignore[arg-type]


class FakeProvider(ChannelProvider):
    """Deterministic channel provider recording every send."""

    def __init__(self, channel, succeed=True, error="Gateway unavailable", raises=None):  # type: ignore[no-untyped-def]
        self._channel = ChannelName(channel)
        self.succeed = succeed
        self.error = error
        self.raises = raises
        self.calls: list = []

    @property
    def channel(self) -> ChannelName:
        return self._channel

    async def send(self, recipient, content):  # type: ignore[no-untyped-def]
        self.calls.append((recipient.id, content))
        if self.raises is not None:
            raise self.raises
        if self.succeed:
            return DeliveryResult.ok()
        return DeliveryResult.failed(self.error)


@pytest.fixture
def providers():
    """All external channels succeed."""
    return {
        ChannelName.EMAIL: FakeProvider(ChannelName.EMAIL),
        ChannelName.SMS: FakeProvider(ChannelName.SMS),
        ChannelName.PUSH: FakeProvider(ChannelName.PUSH),
    }


@pytest.fixture
def failing_providers():
    """All external channels report failure."""
    return {
        ChannelName.EMAIL: FakeProvider(ChannelName.EMAIL, succeed=False, error="SMTP down"),
        ChannelName.SMS: FakeProvider(ChannelName.SMS, succeed=False, error="SMS down"),
        ChannelName.PUSH: FakeProvider(ChannelName.PUSH, succeed=False, error="Push down"),
    }


@pytest.fixture
def make_notification(db_session):
    """Factory inserting a notification through the repository.

    ``channels`` maps channel names to their enabled flag; in_app only by default.
    """
    repo = NotificationRepository(db_session)

    def _make_notification(recipient, channels=None, **overrides):  # type: ignore[no-untyped-def]
        enabled = channels if channels is not None else {"in_app": True}
        fields = {
            "title": "Request update",
            "message": "Your request has been reviewed.",
            "type": "request_status",
            "category": "info",
            "priority": "normal",
            "recipient_id": recipient.id,
        }
        fields.update(overrides)
        fields["channels"] = [(name.value, bool(enabled.get(name.value))) for name in ChannelName]
        return repo.create_many([fields])[0]

    return _make_notification
