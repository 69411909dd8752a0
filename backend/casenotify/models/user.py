"""User directory record.

Owned by the account service; the notification engine only reads it to
resolve recipients, preferences and targeting attributes.
"""

from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from casenotify.core.database import Base
from casenotify.models.shared import UUIDType, generate_uuid


class UserRole(str, Enum):
    ADMIN = "admin"
    CASE_WORKER = "case_worker"
    FINANCE_MANAGER = "finance_manager"
    USER = "user"

    @classmethod
    def staff(cls) -> tuple["UserRole", ...]:
        return (cls.ADMIN, cls.CASE_WORKER, cls.FINANCE_MANAGER)


class AccountStatus(str, Enum):
    ACTIVE = "active"
    PENDING_VERIFICATION = "pending_verification"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"


# Accounts that may receive notifications
REACHABLE_ACCOUNT_STATUSES = (
    AccountStatus.ACTIVE.value,
    AccountStatus.PENDING_VERIFICATION.value,
)


class User(Base):
    __tablename__ = "users"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone_number = Column(String(50), nullable=True)
    device_tokens = Column(JSON, nullable=False, default=list)
    role = Column(String(30), nullable=False, default=UserRole.USER.value, index=True)
    account_status = Column(
        String(30), nullable=False, default=AccountStatus.ACTIVE.value, index=True
    )
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    wilaya = Column(String(100), nullable=True, index=True)
    date_of_birth = Column(Date, nullable=True)
    eligibility_status = Column(String(50), nullable=True, index=True)
    preferences = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category_links = relationship(
        "UserEligibilityCategory",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def language(self) -> str:
        prefs: dict[str, Any] = self.preferences or {}  # type: ignore[assignment]
        return str(prefs.get("language") or "ar")


class UserEligibilityCategory(Base):
    """One eligibility category held by a user (a user may hold several)."""

    __tablename__ = "user_eligibility_categories"
    __table_args__ = (UniqueConstraint("user_id", "category"),)

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category = Column(String(50), nullable=False, index=True)
