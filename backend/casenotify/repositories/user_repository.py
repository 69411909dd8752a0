"""Read-only access to the user directory."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Query, Session

from casenotify.models.user import (
    REACHABLE_ACCOUNT_STATUSES,
    User,
    UserEligibilityCategory,
)


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def _reachable(self) -> Query:  # type: ignore[type-arg]
        """Users that are not deleted and whose account can receive messages."""
        return self.db.query(User).filter(
            User.is_deleted == False,  # noqa: E712
            User.account_status.in_(REACHABLE_ACCOUNT_STATUSES),
        )

    def get_reachable_by_ids(self, user_ids: Iterable[UUID]) -> list[User]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        return self._reachable().filter(User.id.in_(ids)).all()

    def find_targets(
        self,
        *,
        roles: Sequence[str] | None = None,
        wilayas: Sequence[str] | None = None,
        eligibility_statuses: Sequence[str] | None = None,
        categories: Sequence[str] | None = None,
        born_on_or_before: date | None = None,
        born_on_or_after: date | None = None,
    ) -> list[User]:
        """Return reachable users matching every supplied filter."""
        query = self._reachable()
        if roles:
            query = query.filter(User.role.in_(list(roles)))
        if wilayas:
            query = query.filter(User.wilaya.in_(list(wilayas)))
        if eligibility_statuses:
            query = query.filter(User.eligibility_status.in_(list(eligibility_statuses)))
        if categories:
            query = query.filter(
                User.category_links.any(UserEligibilityCategory.category.in_(list(categories)))
            )
        if born_on_or_before is not None:
            query = query.filter(User.date_of_birth <= born_on_or_before)
        if born_on_or_after is not None:
            query = query.filter(User.date_of_birth >= born_on_or_after)
        return query.order_by(User.created_at.asc(), User.id.asc()).all()
