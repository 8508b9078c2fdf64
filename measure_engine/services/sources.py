"""
Component source resolution: one number per measure component.

Sources form a tagged union and are dispatched exhaustively:

- TableSource: fetch records through the TableDataSource (restricted to the
  context entity, dimension and date window), apply the component filters,
  then aggregate the declared field.
- MeasureSource: the scalar result of another measure, evaluated through the
  orchestrator's memoized evaluator.
- ConditionalSource: choose primarySource or fallbackSource depending on
  whether every declared predicate of conditionalConfig holds, then resolve
  the chosen branch with the component's aggregation and filters.

Time intelligence precedence for table fetches:
    component directive -> measure directive -> context directive -> context month

A measure-typed component with its own directive evaluates the referenced
measure in a copy of the context carrying that directive.

``hasData`` is a probe: it fetches and filters the primary branch's records
(or, for a measure branch, the records behind that measure's components) and
checks that at least one survives, without aggregating or composing anything.

Resolution failures raise ResolutionError subclasses located on the owning
measure and component; they are never turned into zero.
"""

import logging
from datetime import date
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from measure_engine.core.exceptions import DatasetNotFoundError, FieldResolutionError, ResolutionError
from measure_engine.data.base import Record, TableDataSource, TableQuery
from measure_engine.models.enums import AggregationType
from measure_engine.models.schemas import (
    ConditionalConfig,
    ConditionalSource,
    ExecutionContext,
    Measure,
    MeasureComponent,
    MeasureSource,
    TableSource,
    TimeIntelligence,
)
from measure_engine.services.aggregation import aggregate
from measure_engine.services.filters import apply_filters
from measure_engine.services.time_window import (
    DEFAULT_DATE_FIELD,
    DEFAULT_PERIODS,
    DateWindow,
    period_relative_to_today,
    resolve_time_window,
)

logger = logging.getLogger(__name__)

MeasureEvaluator = Callable[[str, ExecutionContext], Awaitable[float]]
ContextKey = Callable[[ExecutionContext], str]

# Predicate name -> relative period (-1 past, 0 current, 1 future) it asserts
_PERIOD_PREDICATES = {
    'isPastMonth': -1,
    'isCurrentMonth': 0,
    'isFutureMonth': 1,
}


class SourceResolver:
    """
    Resolves components for one batch call.

    Holds a fetch cache and a hasData probe cache, both scoped to the call
    that created the resolver.

    Args:
        registry: Registry used to look up measures behind a hasData probe.
        data_source: Tabular data collaborator.
        evaluate_measure: Coroutine returning a measure's value in a context.
        context_key: Fingerprint function for contexts (probe cache key).
        extra_filters: Execution filters passed to every fetch.
        undated_datasets: Dataset keys fetched without a date window.
        default_periods: Months for rolling/forward directives without periods.
        default_date_field: Date column when a directive names none.
        today: Reference date for period predicates and context-less windows.
    """

    def __init__(
        self,
        registry,
        data_source: TableDataSource,
        evaluate_measure: MeasureEvaluator,
        context_key: ContextKey,
        *,
        extra_filters: Optional[Dict[str, object]] = None,
        undated_datasets: Sequence[str] = (),
        default_periods: int = DEFAULT_PERIODS,
        default_date_field: str = DEFAULT_DATE_FIELD,
        today: Optional[date] = None,
    ):
        self.registry = registry
        self.data_source = data_source
        self.evaluate_measure = evaluate_measure
        self.context_key = context_key
        self.extra_filters = dict(extra_filters or {})
        self.undated_datasets = set(undated_datasets)
        self.default_periods = default_periods
        self.default_date_field = default_date_field
        self.today = today

        self._fetch_cache: Dict[tuple, List[Record]] = {}
        self._probe_cache: Dict[Tuple[str, str], bool] = {}

    # =========================================================================
    # Entry Point
    # =========================================================================

    async def resolve_component(
        self,
        measure: Measure,
        component: MeasureComponent,
        context: ExecutionContext,
    ) -> float:
        """
        Resolve one component of ``measure`` to a number.

        Raises:
            ResolutionError: Located on measure.key / component.id.
        """
        try:
            value = await self._resolve_source(component.source, measure, component, context)
        except ResolutionError as e:
            raise e.locate(measure.key, component.id)

        logger.debug(f"{measure.key}.{component.id} = {value}")
        return value

    async def _resolve_source(
        self,
        source: Union[TableSource, MeasureSource, ConditionalSource],
        measure: Measure,
        component: MeasureComponent,
        context: ExecutionContext,
    ) -> float:
        if isinstance(source, TableSource):
            return await self._resolve_table(source, measure, component, context)
        if isinstance(source, MeasureSource):
            return await self._resolve_measure(source, component, context)
        if isinstance(source, ConditionalSource):
            return await self._resolve_conditional(component.conditionalConfig, measure, component, context)
        raise TypeError(f"Unsupported component source: {type(source).__name__}")

    # =========================================================================
    # Table Sources
    # =========================================================================

    def effective_directive(
        self,
        measure: Measure,
        component: MeasureComponent,
        context: ExecutionContext,
    ) -> Optional[TimeIntelligence]:
        return component.timeIntelligence or measure.timeIntelligence or context.timeIntelligence

    def build_query(
        self,
        source: TableSource,
        measure: Measure,
        component: MeasureComponent,
        context: ExecutionContext,
    ) -> TableQuery:
        window: Optional[DateWindow] = None
        if source.tableKey not in self.undated_datasets:
            window = resolve_time_window(
                self.effective_directive(measure, component, context),
                context,
                today=self.today,
                default_periods=self.default_periods,
                default_date_field=self.default_date_field,
            )

        filters = context.extra_filters()
        filters.update(self.extra_filters)

        return TableQuery(
            dataset=source.tableKey,
            entity_id=context.entityId,
            dimension_id=context.dimensionId,
            window=window,
            filters=filters,
        )

    async def fetch(self, query: TableQuery) -> List[Record]:
        if not self.data_source.has_dataset(query.dataset):
            raise DatasetNotFoundError(query.dataset, "unknown dataset key")

        cache_key = query.cache_key()
        if cache_key not in self._fetch_cache:
            self._fetch_cache[cache_key] = list(await self.data_source.fetch(query))
        return self._fetch_cache[cache_key]

    async def _resolve_table(
        self,
        source: TableSource,
        measure: Measure,
        component: MeasureComponent,
        context: ExecutionContext,
    ) -> float:
        records = await self.fetch(self.build_query(source, measure, component, context))
        aggregation = AggregationType(component.aggregation)
        field = source.field

        if (
            aggregation != AggregationType.COUNT
            and records
            and not any(field in record for record in records)
        ):
            raise FieldResolutionError(source.tableKey, field)

        filtered = apply_filters(records, component.filters)
        return aggregate(filtered, aggregation, field)

    # =========================================================================
    # Measure Sources
    # =========================================================================

    def child_context(self, component: MeasureComponent, context: ExecutionContext) -> ExecutionContext:
        if component.timeIntelligence is not None:
            return context.with_time_intelligence(component.timeIntelligence)
        return context

    async def _resolve_measure(
        self,
        source: MeasureSource,
        component: MeasureComponent,
        context: ExecutionContext,
    ) -> float:
        return await self.evaluate_measure(source.measureKey, self.child_context(component, context))

    # =========================================================================
    # Conditional Sources
    # =========================================================================

    async def conditions_hold(
        self,
        config: ConditionalConfig,
        measure: Measure,
        component: MeasureComponent,
        context: ExecutionContext,
    ) -> bool:
        """Whether every declared predicate equals its declared value."""
        declared = config.conditions.declared()
        if not declared:
            return True

        relative = period_relative_to_today(context, self.today)
        for name, expected in declared.items():
            if name in _PERIOD_PREDICATES and (relative == _PERIOD_PREDICATES[name]) != expected:
                return False

        if 'hasData' in declared:
            present = await self.has_data(config.primarySource, measure, component, context)
            if present != declared['hasData']:
                return False

        return True

    async def _resolve_conditional(
        self,
        config: ConditionalConfig,
        measure: Measure,
        component: MeasureComponent,
        context: ExecutionContext,
    ) -> float:
        use_primary = await self.conditions_hold(config, measure, component, context)
        branch = config.primarySource if use_primary else config.fallbackSource
        logger.debug(
            f"{measure.key}.{component.id}: using {'primary' if use_primary else 'fallback'} source"
        )
        return await self._resolve_source(branch, measure, component, context)

    # =========================================================================
    # hasData Probe
    # =========================================================================

    async def has_data(
        self,
        source: Union[TableSource, MeasureSource, ConditionalSource],
        measure: Measure,
        component: MeasureComponent,
        context: ExecutionContext,
    ) -> bool:
        """
        Whether ``source`` has at least one record after filtering.

        Measure branches are probed through their components; nothing is
        aggregated or composed.
        """
        if isinstance(source, TableSource):
            records = await self.fetch(self.build_query(source, measure, component, context))
            present = bool(apply_filters(records, component.filters))
            if not present:
                logger.warning(
                    f"hasData probe for {measure.key}.{component.id}: no records in {source.tableKey}"
                )
            return present

        if isinstance(source, MeasureSource):
            return await self._measure_has_data(source.measureKey, self.child_context(component, context))

        if isinstance(source, ConditionalSource):
            config = component.conditionalConfig
            return (
                await self.has_data(config.primarySource, measure, component, context)
                or await self.has_data(config.fallbackSource, measure, component, context)
            )

        raise TypeError(f"Unsupported component source: {type(source).__name__}")

    async def _measure_has_data(self, measure_key: str, context: ExecutionContext) -> bool:
        probe_key = (measure_key, self.context_key(context))
        if probe_key not in self._probe_cache:
            measure = self.registry.get(measure_key)
            present = False
            for component in measure.sorted_components():
                if await self.has_data(component.source, measure, component, context):
                    present = True
                    break
            self._probe_cache[probe_key] = present
        return self._probe_cache[probe_key]
