"""
Record-level filter evaluation.

Applies a FilterLogic (AND/OR over FilterConditions) to flat records.

Rules:
- A missing or null field never matches, except for ``isNull`` (matches) and
  ``isNotNull`` (fails).
- Equality-family operators (equals, notEquals, in, notIn) compare strings
  case-insensitively after trimming; numeric operands compare numerically.
- Substring operators (contains, startsWith, endsWith) are case-insensitive.
- Ordering operators compare numerically when both sides are numbers, as
  dates when either side is a date, and as strings otherwise. Operands that
  cannot be compared do not match.
- ``in`` without a ``values`` list is false; ``notIn`` without one is true.
- An empty condition list passes every record.
"""

import logging
from datetime import date, datetime
from numbers import Number
from typing import Any, Iterable, List, Mapping, Optional

from measure_engine.models.enums import FilterLogicType, FilterOperator
from measure_engine.models.schemas import FilterCondition, FilterLogic

logger = logging.getLogger(__name__)


# =============================================================================
# Operand Helpers
# =============================================================================


def _as_number(value: Any) -> Optional[float]:
    # Decimal (asyncpg NUMERIC) and numpy scalars are Numbers; bool is not a quantity
    if isinstance(value, bool):
        return None
    if isinstance(value, Number) and not isinstance(value, complex):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _normalize(value: Any) -> str:
    return str(value).strip().lower()


def _equals(record_value: Any, expected: Any) -> bool:
    left, right = _as_number(record_value), _as_number(expected)
    if left is not None and right is not None:
        return left == right
    return _normalize(record_value) == _normalize(expected)


def _compare(record_value: Any, expected: Any) -> Optional[int]:
    """Three-way comparison, or None when the operands are incomparable."""
    left, right = _as_number(record_value), _as_number(expected)
    if left is None or right is None:
        if isinstance(record_value, date) or isinstance(expected, date):
            left, right = _as_date(record_value), _as_date(expected)
        elif isinstance(record_value, str) and isinstance(expected, str):
            left, right = record_value.strip(), expected.strip()
        else:
            return None
    if left is None or right is None:
        return None
    return (left > right) - (left < right)


# =============================================================================
# Condition Evaluation
# =============================================================================


def evaluate_condition(record: Mapping[str, Any], condition: FilterCondition) -> bool:
    """
    Evaluate a single condition against a record.

    Args:
        record: Flat key/value record.
        condition: Column predicate.

    Returns:
        True if the record satisfies the condition.
    """
    operator = FilterOperator(condition.operator)
    record_value = record.get(condition.column)

    if operator == FilterOperator.IS_NULL:
        return record_value is None
    if operator == FilterOperator.IS_NOT_NULL:
        return record_value is not None
    if record_value is None:
        return False

    if operator == FilterOperator.EQUALS:
        return condition.value is not None and _equals(record_value, condition.value)
    if operator == FilterOperator.NOT_EQUALS:
        return condition.value is None or not _equals(record_value, condition.value)

    if operator == FilterOperator.IN:
        if not condition.values:
            return False
        return any(_equals(record_value, candidate) for candidate in condition.values)
    if operator == FilterOperator.NOT_IN:
        if not condition.values:
            return True
        return not any(_equals(record_value, candidate) for candidate in condition.values)

    if operator in (FilterOperator.CONTAINS, FilterOperator.STARTS_WITH, FilterOperator.ENDS_WITH):
        if condition.value is None:
            return False
        haystack, needle = _normalize(record_value), _normalize(condition.value)
        if operator == FilterOperator.CONTAINS:
            return needle in haystack
        if operator == FilterOperator.STARTS_WITH:
            return haystack.startswith(needle)
        return haystack.endswith(needle)

    if condition.value is None:
        return False
    ordering = _compare(record_value, condition.value)
    if ordering is None:
        return False
    if operator == FilterOperator.GREATER_THAN:
        return ordering > 0
    if operator == FilterOperator.GREATER_THAN_OR_EQUAL:
        return ordering >= 0
    if operator == FilterOperator.LESS_THAN:
        return ordering < 0
    if operator == FilterOperator.LESS_THAN_OR_EQUAL:
        return ordering <= 0

    raise ValueError(f"Unsupported filter operator: {condition.operator}")


def matches(record: Mapping[str, Any], filter_logic: Optional[FilterLogic]) -> bool:
    """Combine condition results per the filter's AND/OR logic."""
    if filter_logic is None or not filter_logic.conditions:
        return True

    results = (evaluate_condition(record, c) for c in filter_logic.conditions)
    if FilterLogicType(filter_logic.logic) == FilterLogicType.OR:
        return any(results)
    return all(results)


def apply_filters(
    records: Iterable[Mapping[str, Any]],
    filter_logic: Optional[FilterLogic],
) -> List[Mapping[str, Any]]:
    """Return the records that pass ``filter_logic``, preserving order."""
    records = list(records)
    if filter_logic is None or not filter_logic.conditions:
        return records

    kept = [r for r in records if matches(r, filter_logic)]
    logger.debug(f"Filter kept {len(kept)} of {len(records)} records")
    return kept
