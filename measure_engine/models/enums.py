"""
Enumeration definitions for measure definitions and execution.

All enums inherit from both `str` and `Enum` so measure definitions loaded from
JSON validate directly and serialize back unchanged in API responses.

Vocabulary:
- AggregationType: how a table component reduces fetched records to a number
- OperationType: how a component folds into the measure accumulator
- FilterOperator: column-level predicate operators
- FilterLogicType: AND/OR combination of predicates
- TimeIntelligenceType: relative time-window policies
"""

from enum import Enum


class AggregationType(str, Enum):
    """
    Aggregation functions applied to a table component's field.

    ``average`` and ``avg`` are synonyms; ``count`` counts filtered records
    regardless of field value.
    """
    SUM = "sum"
    COUNT = "count"
    COUNT_DISTINCT = "countDistinct"
    AVERAGE = "average"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class OperationType(str, Enum):
    """
    Operations combining a component's value with the running accumulator.

    - sum/add: accumulator += value
    - subtract: accumulator -= value
    - multiply: accumulator *= value
    - divide: accumulator /= value (divide-by-zero yields 0)
    - fallback: keep the first non-zero value in fold order
    - conditional: folds like add; the branch choice lives in the source
    """
    SUM = "sum"
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    FALLBACK = "fallback"
    CONDITIONAL = "conditional"


# Operations that seed the accumulator with the first component's value
SEEDING_OPERATIONS = frozenset({
    OperationType.MULTIPLY,
    OperationType.DIVIDE,
    OperationType.FALLBACK,
})


class FilterOperator(str, Enum):
    """
    Column-level predicate operators.

    Equality-family operators (equals, notEquals, in, notIn) compare strings
    case-insensitively after trimming.
    """
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUAL = "greaterThanOrEqual"
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    IN = "in"
    NOT_IN = "notIn"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"


# Symbolic spellings accepted in definitions
FILTER_OPERATOR_ALIASES = {
    "=": FilterOperator.EQUALS,
    "==": FilterOperator.EQUALS,
    "!=": FilterOperator.NOT_EQUALS,
    "<>": FilterOperator.NOT_EQUALS,
    ">": FilterOperator.GREATER_THAN,
    ">=": FilterOperator.GREATER_THAN_OR_EQUAL,
    "<": FilterOperator.LESS_THAN,
    "<=": FilterOperator.LESS_THAN_OR_EQUAL,
}


class FilterLogicType(str, Enum):
    """Combination of filter conditions."""
    AND = "AND"
    OR = "OR"


class TimeIntelligenceType(str, Enum):
    """
    Relative time-window policies.

    - sameperiodlastyear: context month, one year earlier
    - ytd: Jan 1 up to (excluding) the context month
    - rolling: N months ending before the context month
    - forward: N months starting after the context month
    - lastyear: full previous calendar year
    - pastlastyear: full calendar year two years back
    - custom: context month, used to override the date field only
    """
    SAME_PERIOD_LAST_YEAR = "sameperiodlastyear"
    YTD = "ytd"
    ROLLING = "rolling"
    FORWARD = "forward"
    LAST_YEAR = "lastyear"
    PAST_LAST_YEAR = "pastlastyear"
    CUSTOM = "custom"


class ThresholdOperator(str, Enum):
    """Comparison used to band a measure value against a threshold."""
    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUAL = "greaterThanOrEqual"
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    EQUALS = "equals"
