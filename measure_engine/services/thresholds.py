"""
Threshold banding for measure values.

Thresholds live in measure metadata and are checked in declaration order;
the first one whose comparison holds is the value's band (e.g. a growth
measure banded into 'strong' / 'flat' / 'declining').
"""

import operator
from typing import Callable, Dict, Iterable, Optional

from measure_engine.models.enums import ThresholdOperator
from measure_engine.models.schemas import MeasureThreshold


_COMPARATORS: Dict[ThresholdOperator, Callable[[float, float], bool]] = {
    ThresholdOperator.GREATER_THAN: operator.gt,
    ThresholdOperator.GREATER_THAN_OR_EQUAL: operator.ge,
    ThresholdOperator.LESS_THAN: operator.lt,
    ThresholdOperator.LESS_THAN_OR_EQUAL: operator.le,
    ThresholdOperator.EQUALS: operator.eq,
}


def threshold_holds(threshold: MeasureThreshold, value: float) -> bool:
    return _COMPARATORS[ThresholdOperator(threshold.operator)](value, threshold.value)


def evaluate_thresholds(
    thresholds: Iterable[MeasureThreshold],
    value: Optional[float],
) -> Optional[MeasureThreshold]:
    """
    First threshold satisfied by ``value``, or None.

    Example:
        >>> bands = [MeasureThreshold(key='high', name='High', value=10),
        ...          MeasureThreshold(key='low', name='Low', value=0)]
        >>> evaluate_thresholds(bands, 4).key
        'low'
    """
    if value is None:
        return None
    return next((t for t in thresholds if threshold_holds(t, value)), None)
