"""
Months cover: how many future months the current stock lasts.

Consumption is evaluated month by month for the next ``horizon`` months
after the context month. Months without positive consumption are dropped.
The stock covers every remaining month whose cumulative consumption it
reaches; the remainder covers a fraction (at most 1) of the following
month. Stock left over after the last month is spread at the average
monthly consumption. The result is rounded to 2 decimals.

Edge cases:
- stock <= 0 -> 0
- no month with positive consumption -> horizon
"""

import logging
from typing import Any, Mapping, Optional, Sequence

import numpy as np

from measure_engine.models.schemas import ExecutionContext
from measure_engine.services.time_window import context_period, month_start

logger = logging.getLogger(__name__)

DEFAULT_HORIZON = 12


def calculate_months_cover(
    stock: Optional[float],
    consumption: Sequence[Optional[float]],
    horizon: int = DEFAULT_HORIZON,
) -> float:
    """
    Months cover of ``stock`` against consecutive monthly consumption.

    Example:
        >>> calculate_months_cover(250, [100, 100, 100])
        2.5
    """
    if stock is None or stock <= 0:
        return 0.0

    values = np.array([v for v in consumption if v is not None and v > 0], dtype=float)
    if values.size == 0:
        return float(horizon)

    cumulative = np.cumsum(values)
    full_months = int(np.searchsorted(cumulative, stock, side='right'))

    if full_months == 0:
        cover = stock / values[0]
    else:
        remainder = stock - cumulative[full_months - 1]
        if full_months < values.size:
            cover = full_months + min(remainder / values[full_months], 1.0)
        else:
            cover = full_months + remainder / (cumulative[-1] / values.size)

    return round(float(cover), 2)


async def compute_months_cover(
    orchestrator,
    stock_key: str,
    consumption_key: str,
    context: ExecutionContext,
    horizon: int = DEFAULT_HORIZON,
    filters: Optional[Mapping[str, Any]] = None,
) -> float:
    """
    Evaluate ``stock_key`` in ``context`` and ``consumption_key`` in each of
    the next ``horizon`` months, then compute the months cover.

    Raises:
        BatchExecutionError: A stock or consumption evaluation failed.
    """
    stock = await orchestrator.execute_measure(stock_key, filters, context)
    if stock is None or stock <= 0:
        return 0.0

    year, month = context_period(context, orchestrator.today)

    consumption = []
    for offset in range(1, horizon + 1):
        target = month_start(year, month, offset)
        value = await orchestrator.execute_measure(
            consumption_key, filters, context.with_period(target.year, target.month)
        )
        consumption.append(value)

    cover = calculate_months_cover(stock, consumption, horizon)
    logger.debug(f"Months cover {stock_key}/{consumption_key}: stock={stock} cover={cover}")
    return cover
