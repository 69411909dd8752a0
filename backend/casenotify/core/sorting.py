"""Shared sorting utilities for repository queries."""

from __future__ import annotations

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query
from sqlalchemy.orm.attributes import InstrumentedAttribute

from casenotify.core.database import Base


def apply_order_by(
    query: Query,  # type: ignore[type-arg]
    model: type[Base],
    sort_by: str | None,
    sort_order: str | None = None,
    default_field: str = "created_at",
    default_direction: str = "desc",
) -> Query:  # type: ignore[type-arg]
    """Apply ordering to a SQLAlchemy query.

    Args:
        query: The SQLAlchemy query to sort.
        model: The SQLAlchemy model class.
        sort_by: Column name to sort by. A "field:direction" string is also
            accepted, in which case ``sort_order`` is ignored.
        sort_order: "asc" or "desc".
        default_field: Column used when ``sort_by`` is missing or unknown.
        default_direction: Direction used when ``sort_order`` is missing or invalid.

    Returns:
        The query with ordering applied.
    """
    field = default_field
    direction = default_direction

    if sort_by:
        candidate_field, _, inline_direction = sort_by.partition(":")
        candidate_direction = inline_direction or sort_order or default_direction

        # Only mapped columns are sortable, not relationships
        attr = getattr(model, candidate_field, None)
        if isinstance(attr, InstrumentedAttribute) and candidate_field in model.__table__.columns:
            field = candidate_field
            if candidate_direction in ("asc", "desc"):
                direction = candidate_direction
    elif sort_order in ("asc", "desc"):
        direction = sort_order

    column = getattr(model, field)
    order_func = asc if direction == "asc" else desc
    return query.order_by(order_func(column))
