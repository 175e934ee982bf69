"""
Compound clause aggregation for Custom Fields conditions.

ALL stops at the first false clause and ANY at the first true one, so
clauses after the deciding one are never looked up.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Iterable

from rmmwatch.errors import ConfigurationError
from rmmwatch.schemas.conditions import (
    AggregationMode,
    ClauseGroup,
    FieldClause,
    FieldComparator,
    FieldType,
)

logger = logging.getLogger("rmmwatch.clauses")


class ClauseOutcome(str, Enum):
    SATISFIED = "satisfied"
    NOT_SATISFIED = "not_satisfied"
    NOT_APPLICABLE = "not_applicable"  # field not set on the endpoint


def aggregate(mode: AggregationMode, results: Iterable[bool]) -> bool:
    it = iter(results)
    try:
        first = next(it)
    except StopIteration:
        raise ConfigurationError("clause group is empty") from None
    if mode is AggregationMode.ALL:
        return bool(first) and all(it)
    return bool(first) or any(it)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "checked")
    return bool(value)


def _fragments(text: str):
    return [f.strip() for f in text.split(",") if f.strip()]


def evaluate_clause(clause: FieldClause, observed: Any) -> ClauseOutcome:
    comparator = clause.comparator
    if observed is None:
        if comparator is FieldComparator.DOES_NOT_EXIST:
            return ClauseOutcome.SATISFIED
        return ClauseOutcome.NOT_APPLICABLE
    if comparator is FieldComparator.EXISTS:
        return ClauseOutcome.SATISFIED
    if comparator is FieldComparator.DOES_NOT_EXIST:
        return ClauseOutcome.NOT_SATISFIED

    if clause.field_type is FieldType.CHECKBOX:
        left, right = _as_bool(observed), bool(clause.value)
    else:
        left, right = str(observed), str(clause.value)

    if comparator is FieldComparator.EQUALS:
        matched = left == right
    elif comparator is FieldComparator.NOT_EQUAL:
        matched = left != right
    elif comparator is FieldComparator.CONTAINS:
        matched = any(f in left for f in _fragments(right))
    else:
        matched = not any(f in left for f in _fragments(right))
    return ClauseOutcome.SATISFIED if matched else ClauseOutcome.NOT_SATISFIED


def evaluate_group(group: ClauseGroup, lookup: Callable[[str], Any]) -> bool:
    def outcomes():
        for clause in group.clauses:
            outcome = evaluate_clause(clause, lookup(clause.custom_field))
            if outcome is ClauseOutcome.NOT_APPLICABLE:
                logger.debug("custom field %s not set; clause not applicable", clause.custom_field)
            yield outcome is ClauseOutcome.SATISFIED

    return aggregate(group.mode, outcomes())
