"""
Aggregation of fetched records into a single number.

Field values are coerced with pandas.to_numeric; values that are not numbers
(strings such as 'x', booleans, NaN, infinities) are dropped rather than
counted as zero.

Empty inputs are business-safe clamps, not errors:
- sum, average, min, max of no numeric values -> 0
- count of no records -> 0
"""

from typing import Any, List, Mapping, Sequence

import numpy as np
import pandas as pd

from measure_engine.models.enums import AggregationType


def numeric_values(records: Sequence[Mapping[str, Any]], field: str) -> pd.Series:
    """
    Numeric values of ``field`` across records, non-numeric entries dropped.

    Example:
        >>> numeric_values([{'qty': 10}, {'qty': 5}, {'qty': 'x'}], 'qty').tolist()
        [10.0, 5.0]
    """
    raw: List[Any] = [
        None if isinstance(r.get(field), bool) else r.get(field)
        for r in records
    ]
    if not raw:
        return pd.Series([], dtype='float64')

    coerced = pd.to_numeric(pd.Series(raw, dtype='object'), errors='coerce').astype('float64')
    return coerced[np.isfinite(coerced)]


def aggregate(
    records: Sequence[Mapping[str, Any]],
    aggregation: AggregationType,
    field: str,
) -> float:
    """
    Reduce records to one number.

    Args:
        records: Records that passed the component filters.
        aggregation: Aggregation function.
        field: Field to aggregate (ignored by ``count``).

    Returns:
        Aggregated value as float.
    """
    aggregation = AggregationType(aggregation)

    if aggregation == AggregationType.COUNT:
        return float(len(records))

    if aggregation == AggregationType.COUNT_DISTINCT:
        distinct = pd.Series([r.get(field) for r in records], dtype='object').dropna()
        return float(distinct.nunique())

    values = numeric_values(records, field)
    if values.empty:
        return 0.0

    if aggregation == AggregationType.SUM:
        return float(values.sum())
    if aggregation in (AggregationType.AVERAGE, AggregationType.AVG):
        return float(values.mean())
    if aggregation == AggregationType.MIN:
        return float(values.min())
    if aggregation == AggregationType.MAX:
        return float(values.max())

    raise ValueError(f"Unsupported aggregation: {aggregation}")
