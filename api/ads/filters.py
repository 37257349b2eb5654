"""
Ad filter predicates.

A filter is turned into a flat list of clauses once, and every query path
(offset paging, cursor declaration) renders that same list. Clause order is
fixed:

  title_contains, description_contains, price_lt, price_gt,
  updated_at_lt, updated_at_gt

so positional parameters line up the same way everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import ValidationError

from .schemas import AdFilter


class FilterParseError(ValueError):
    pass


@dataclass(frozen=True)
class Clause:
    column: str
    operator: str
    value: Any


# (filter field, column, operator). Order here is the clause order.
_CLAUSE_SPECS: tuple[tuple[str, str, str], ...] = (
    ("title_contains", "title", "ILIKE"),
    ("description_contains", "description", "ILIKE"),
    ("price_lt", "price", "<"),
    ("price_gt", "price", ">"),
    ("updated_at_lt", "updated_at", "<"),
    ("updated_at_gt", "updated_at", ">"),
)


def parse_filter(raw: Mapping[str, Any] | AdFilter | None) -> AdFilter:
    """
    Validate a raw mapping (e.g. a JSON body) into an AdFilter.

    Bad decimals/timestamps and unknown keys raise FilterParseError here,
    before anything reaches the database.
    """
    if raw is None:
        return AdFilter()
    if isinstance(raw, AdFilter):
        return raw
    try:
        return AdFilter.model_validate(dict(raw))
    except (ValidationError, TypeError, ValueError) as exc:
        raise FilterParseError(f"Invalid ad filter: {exc}") from exc


def _contains_pattern(term: str) -> str:
    return f"%{term}%"


def build_clauses(ad_filter: AdFilter) -> list[Clause]:
    clauses: list[Clause] = []
    for field_name, column, operator in _CLAUSE_SPECS:
        value = getattr(ad_filter, field_name)
        if value is None:
            continue
        if operator == "ILIKE":
            value = _contains_pattern(value)
        clauses.append(Clause(column=column, operator=operator, value=value))
    return clauses


def render_where(clauses: list[Clause], *, start: int = 1) -> tuple[str, list[Any]]:
    """
    Render clauses into "WHERE a AND b ..." with $n placeholders from `start`.

    Returns ("", []) for an empty clause list.
    """
    if not clauses:
        return "", []

    parts: list[str] = []
    args: list[Any] = []
    for i, clause in enumerate(clauses, start=start):
        parts.append(f"{clause.column} {clause.operator} ${i}")
        args.append(clause.value)
    return "WHERE " + " AND ".join(parts), args


def describe(clauses: list[Clause]) -> str:
    """
    Short, value-free summary for logs: "title ILIKE, price <".
    """
    return ", ".join(f"{c.column} {c.operator}" for c in clauses) or "none"
