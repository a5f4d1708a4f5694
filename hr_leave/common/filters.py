"""Generic filtering, sorting, and free-text search utilities."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import Select, String, and_, cast, or_
from sqlalchemy.orm import InstrumentedAttribute


# ── Sorting ─────────────────────────────────────────────────────────

def apply_sorting(
    query: Select,
    columns: Mapping[str, Any],
    sort: Optional[str],
    *,
    default: Optional[str] = None,
    tiebreaker: Any = None,
) -> Select:
    """
    Parse a sort string like ``"-start_date"`` and apply ORDER BY.

    * Leading ``-`` → DESC; otherwise ASC.
    * Only names present in *columns* are sortable; anything else falls
      back to *default* (itself a sort string), so callers never reach
      raw SQL through the sort parameter.
    * *tiebreaker* is appended so equal keys come back in a stable order.
    """
    sort = sort or default
    if not sort:
        return query

    descending = sort.startswith("-")
    col = columns.get(sort.lstrip("-"))
    if col is None:
        if default and sort != default:
            return apply_sorting(query, columns, default, tiebreaker=tiebreaker)
        return query

    query = query.order_by(col.desc() if descending else col.asc())
    if tiebreaker is not None:
        query = query.order_by(tiebreaker.desc() if descending else tiebreaker.asc())
    return query


# ── Generic filtering ──────────────────────────────────────────────

def apply_filters(
    query: Select,
    model: Any,
    filters: dict[str, Any],
) -> Select:
    """
    Apply a dict of filter parameters to a SQLAlchemy ``Select``.

    Key suffixes determine the operator:

    ============  ==================
    Suffix        Operator
    ============  ==================
    (none)        ``==``
    ``__ilike``   case-insensitive LIKE (wraps ``%…%``)
    ``__from``    ``>=``
    ``__to``      ``<=``
    ``__before``  ``<``
    ``__in``      ``IN (…)``
    ============  ==================

    ``None`` values are silently skipped.
    """
    conditions: list = []

    for key, value in filters.items():
        if value is None:
            continue

        if key.endswith("__ilike"):
            col = _get_column(model, key.removesuffix("__ilike"))
            if col is not None:
                conditions.append(col.ilike(f"%{value}%"))

        elif key.endswith("__from"):
            col = _get_column(model, key.removesuffix("__from"))
            if col is not None:
                conditions.append(col >= value)

        elif key.endswith("__to"):
            col = _get_column(model, key.removesuffix("__to"))
            if col is not None:
                conditions.append(col <= value)

        elif key.endswith("__before"):
            col = _get_column(model, key.removesuffix("__before"))
            if col is not None:
                conditions.append(col < value)

        elif key.endswith("__in"):
            col = _get_column(model, key.removesuffix("__in"))
            if col is not None:
                conditions.append(col.in_(value))

        else:
            col = _get_column(model, key)
            if col is not None:
                conditions.append(col == value)

    if conditions:
        query = query.where(and_(*conditions))

    return query


# ── Free-text search ────────────────────────────────────────────────

def apply_search(
    query: Select,
    search: Optional[str],
    columns: Sequence[InstrumentedAttribute],
) -> Select:
    """
    Case-insensitive substring match of *search* against any of *columns*.

    Columns may come from any entity already joined into *query*. Blank
    search strings leave the query untouched.
    """
    if not search or not search.strip():
        return query

    pattern = f"%{search.strip()}%"
    like_conds = [cast(col, String).ilike(pattern) for col in columns]
    if not like_conds:
        return query
    return query.where(or_(*like_conds))


# ── Internal helper ─────────────────────────────────────────────────

def _get_column(model: Any, name: str) -> Optional[InstrumentedAttribute]:
    """Safely retrieve a mapped column attribute by name."""
    return getattr(model, name, None)
