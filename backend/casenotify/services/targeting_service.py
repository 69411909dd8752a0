"""Resolve declarative targeting criteria into a recipient set."""

from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from casenotify.core.errors import BadRequestError
from casenotify.models.shared import utc_now
from casenotify.models.user import User, UserRole
from casenotify.repositories.user_repository import UserRepository
from casenotify.schemas.notification import TargetCriteria


def years_before(day: date, years: int) -> date:
    """Same calendar day ``years`` earlier; Feb 29 falls back to Feb 28."""
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        return day.replace(year=day.year - years, day=28)


class TargetingService:
    def __init__(self, db: Session):
        self.db = db
        self.user_repo = UserRepository(db)

    def resolve_recipients(self, criteria: TargetCriteria, today: date | None = None) -> list[User]:
        """Reachable users matching every criterion.

        Raises:
            BadRequestError: On an unknown role, an inverted age range, or when
                nobody matches.
        """
        roles = criteria.roles or []
        valid_roles = {role.value for role in UserRole}
        unknown = [role for role in roles if role not in valid_roles]
        if unknown:
            raise BadRequestError(f"Invalid roles: {', '.join(unknown)}")

        born_on_or_before = None
        born_on_or_after = None
        if criteria.age_range is not None:
            age_min = criteria.age_range.min
            age_max = criteria.age_range.max
            if age_min is not None and age_max is not None and age_min > age_max:
                raise BadRequestError("Age range minimum must not exceed maximum")
            reference = today or utc_now().date()
            if age_min is not None:
                born_on_or_before = years_before(reference, age_min)
            if age_max is not None:
                born_on_or_after = years_before(reference, age_max)

        users = self.user_repo.find_targets(
            roles=roles,
            wilayas=criteria.departments,
            eligibility_statuses=criteria.eligibility_status,
            categories=criteria.categories,
            born_on_or_before=born_on_or_before,
            born_on_or_after=born_on_or_after,
        )
        if not users:
            raise BadRequestError("No users match the specified criteria")
        return users
