"""Shared sorting utilities for repository queries."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

from clinic_billing.core.database import Base


def apply_order_by(
    query: Query,  # type: ignore[type-arg]
    model: type[Base],
    field: str | None,
    direction: str | None,
    allowed_fields: Iterable[str],
    default_field: str = "created_at",
    default_direction: str = "desc",
) -> Query:  # type: ignore[type-arg]
    """Apply ordering to a SQLAlchemy query.

    Args:
        query: The SQLAlchemy query to sort.
        model: The SQLAlchemy model class.
        field: Column to sort by. Falls back to ``default_field`` when it is
            missing or not in ``allowed_fields``.
        direction: ``"asc"`` or ``"desc"``; anything else uses the default.
        allowed_fields: Column names callers may sort by.
        default_field: Default column to sort by.
        default_direction: Default sort direction.

    Returns:
        The query ordered by the chosen column, then by primary key so page
        boundaries are stable between requests.
    """
    if not field or field not in set(allowed_fields) or not hasattr(model, field):
        field = default_field
    if direction not in ("asc", "desc"):
        direction = default_direction

    order_func = asc if direction == "asc" else desc
    return query.order_by(order_func(getattr(model, field)), order_func(model.id))
