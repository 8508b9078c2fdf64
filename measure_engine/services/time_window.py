"""
Time window resolution for measure evaluation.

Turns a time-intelligence directive plus an execution context into a concrete
half-open date range ``[start, end)``. Every consumer filtering raw records
must use ``>= start`` and ``< end``; equality on a single date would exclude
boundary records.

Windows (context period = year/month of the execution context):
- no directive: the context month (or the context's explicit dateRange)
- sameperiodlastyear: the context month one year earlier
- ytd: Jan 1 of the context year up to the context month start, or up to the
  explicit context date when one is given
- rolling(N): N months ending at the context month start
- forward(N): N months starting the month after the context month
- lastyear / pastlastyear: full calendar year, one / two years back
- custom: the context month; used to override the date field only

Explicit startDate/endDate on the directive always override computed bounds.

Example:
    >>> ctx = ExecutionContext(year=2025, month=6)
    >>> resolve_time_window(TimeIntelligence(type='rolling', periods=3), ctx)
    DateWindow(start=datetime.date(2025, 3, 1), end=datetime.date(2025, 6, 1), date_field='date')
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

from measure_engine.models.enums import TimeIntelligenceType
from measure_engine.models.schemas import ExecutionContext, TimeIntelligence


DEFAULT_DATE_FIELD = 'date'
DEFAULT_PERIODS = 12


@dataclass(frozen=True)
class DateWindow:
    """Half-open date range ``[start, end)`` on ``date_field``."""

    start: date
    end: date
    date_field: str = DEFAULT_DATE_FIELD


# =============================================================================
# Month Arithmetic
# =============================================================================


def month_start(year: int, month: int, offset: int = 0) -> date:
    """First day of the month ``offset`` months away from year/month."""
    index = year * 12 + (month - 1) + offset
    return date(index // 12, index % 12 + 1, 1)


def context_period(context: ExecutionContext, today: Optional[date] = None) -> Tuple[int, int]:
    """
    Year and month the context points at.

    Falls back to the explicit context date, the start of the context
    dateRange, then today.
    """
    if context.year is not None and context.month is not None:
        return context.year, context.month
    if context.date is not None:
        return context.date.year, context.date.month
    if context.dateRange is not None:
        return context.dateRange.start.year, context.dateRange.start.month
    reference = today or date.today()
    return (context.year or reference.year), (context.month or reference.month)


def period_relative_to_today(context: ExecutionContext, today: Optional[date] = None) -> int:
    """-1 if the context month is past, 0 if current, 1 if future."""
    reference = today or date.today()
    year, month = context_period(context, reference)
    current = (reference.year, reference.month)
    if (year, month) < current:
        return -1
    if (year, month) > current:
        return 1
    return 0


# =============================================================================
# Window Resolution
# =============================================================================


def _default_window(context: ExecutionContext) -> Optional[Tuple[date, date]]:
    if context.dateRange is not None:
        return context.dateRange.start, context.dateRange.end
    if context.year is not None and context.month is not None:
        return month_start(context.year, context.month), month_start(context.year, context.month, 1)
    if context.date is not None:
        return (
            month_start(context.date.year, context.date.month),
            month_start(context.date.year, context.date.month, 1),
        )
    return None


def resolve_time_window(
    directive: Optional[TimeIntelligence],
    context: ExecutionContext,
    *,
    today: Optional[date] = None,
    default_periods: int = DEFAULT_PERIODS,
    default_date_field: str = DEFAULT_DATE_FIELD,
) -> Optional[DateWindow]:
    """
    Compute the date window for a directive in a context.

    Args:
        directive: Time-intelligence directive, or None for the plain context window.
        context: Execution context carrying year/month (or date/dateRange).
        today: Reference date when the context carries no period.
        default_periods: Window length for rolling/forward without ``periods``.
        default_date_field: Date column used when the directive does not name one.

    Returns:
        DateWindow, or None when there is neither a directive nor any period in
        the context (no date restriction).
    """
    date_field = (directive.dateField if directive and directive.dateField else default_date_field)

    if directive is None:
        bounds = _default_window(context)
        if bounds is None:
            return None
        return DateWindow(start=bounds[0], end=bounds[1], date_field=date_field)

    year, month = context_period(context, today)
    periods = directive.periods or default_periods
    kind = TimeIntelligenceType(directive.type)

    if kind == TimeIntelligenceType.SAME_PERIOD_LAST_YEAR:
        start, end = month_start(year - 1, month), month_start(year - 1, month, 1)
    elif kind == TimeIntelligenceType.YTD:
        start = date(year, 1, 1)
        end = context.date if context.date is not None else month_start(year, month)
    elif kind == TimeIntelligenceType.ROLLING:
        start, end = month_start(year, month, -periods), month_start(year, month)
    elif kind == TimeIntelligenceType.FORWARD:
        start, end = month_start(year, month, 1), month_start(year, month, 1 + periods)
    elif kind == TimeIntelligenceType.LAST_YEAR:
        start, end = date(year - 1, 1, 1), date(year, 1, 1)
    elif kind == TimeIntelligenceType.PAST_LAST_YEAR:
        start, end = date(year - 2, 1, 1), date(year - 1, 1, 1)
    elif kind == TimeIntelligenceType.CUSTOM:
        bounds = _default_window(context) or (month_start(year, month), month_start(year, month, 1))
        start, end = bounds
    else:
        raise ValueError(f"Unsupported time intelligence type: {directive.type}")

    if directive.startDate is not None:
        start = directive.startDate
    if directive.endDate is not None:
        end = directive.endDate

    return DateWindow(start=start, end=end, date_field=date_field)
