"""
Operation composer: folds ordered component values into one scalar.

Fold rules:
- The accumulator starts at 0, unless the first component's operation is
  multiply, divide or fallback, in which case it starts at the first
  component's value and folding continues from the second component.
- sum/add: acc += value
- subtract: acc -= value
- multiply: acc *= value
- divide: acc /= value; dividing by zero yields 0 (business-safe clamp)
- fallback: keep the first non-zero, non-null value seen in fold order;
  0 if every value is zero or null
- conditional: folds like add; the branch was already chosen by the source

A non-finite final result (float overflow) is clamped to 0 as well.
"""

import math
from typing import Iterable, Optional, Sequence, Tuple

from measure_engine.models.enums import SEEDING_OPERATIONS, OperationType


def _is_blank(value: Optional[float]) -> bool:
    return value is None or value == 0 or (isinstance(value, float) and not math.isfinite(value))


def apply_operation(accumulator: float, value: Optional[float], operation: OperationType) -> float:
    """Apply one operation to the running accumulator."""
    operation = OperationType(operation)
    value = 0.0 if value is None else value

    if operation in (OperationType.SUM, OperationType.ADD, OperationType.CONDITIONAL):
        return accumulator + value
    if operation == OperationType.SUBTRACT:
        return accumulator - value
    if operation == OperationType.MULTIPLY:
        return accumulator * value
    if operation == OperationType.DIVIDE:
        if value == 0:
            return 0.0
        return accumulator / value
    if operation == OperationType.FALLBACK:
        return value if _is_blank(accumulator) else accumulator

    raise ValueError(f"Unsupported operation: {operation}")


def compose(values: Sequence[Tuple[OperationType, Optional[float]]]) -> float:
    """
    Fold ``(operation, value)`` pairs, already in fold order, into one scalar.

    Example:
        >>> compose([(OperationType.SUM, 7.0), (OperationType.SUBTRACT, 15.0)])
        -8.0
        >>> compose([(OperationType.DIVIDE, 10.0), (OperationType.DIVIDE, 0.0)])
        0.0
    """
    if not values:
        return 0.0

    first_operation, first_value = values[0]
    remaining: Iterable[Tuple[OperationType, Optional[float]]]
    if OperationType(first_operation) in SEEDING_OPERATIONS:
        accumulator = 0.0 if _is_blank(first_value) else float(first_value)
        remaining = values[1:]
    else:
        accumulator = 0.0
        remaining = values

    for operation, value in remaining:
        accumulator = apply_operation(accumulator, value, operation)

    if not math.isfinite(accumulator):
        return 0.0
    return float(accumulator)
