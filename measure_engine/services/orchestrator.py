"""
Execution orchestrator: evaluates measures over their dependency closure.

For a batch of requested keys the orchestrator:
1. builds the dependency graph of the full transitive closure,
2. sorts it topologically and groups it into levels,
3. evaluates every measure in the closure level by level, memoizing each
   value by (measureKey, context fingerprint) for the duration of the call,
4. returns only the requested keys.

Each call creates its own _BatchEvaluator, so the memo table, failure table,
fetch cache and hasData probe cache never leak between calls or contexts.
The registry is only read.

Levels run strictly in order. Measures within a level run one after another;
they share the call's memo table.

A measure that fails does not stop its siblings. Its dependents fail with
DependencyFailedError, and once the whole closure has been visited the call
raises BatchExecutionError listing every failure with the values that did
compute.

Usage:
    orchestrator = MeasureOrchestrator(registry, DataFrameTableSource(frames))
    value = await orchestrator.execute_measure('netSales', context={'year': 2025, 'month': 6})
"""

import hashlib
import json
import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from measure_engine.core.config import Settings, get_settings
from measure_engine.core.exceptions import (
    BatchExecutionError,
    DependencyFailedError,
    ResolutionError,
)
from measure_engine.data.base import TableDataSource
from measure_engine.models.enums import OperationType
from measure_engine.models.schemas import ExecutionContext, ExecutionPlanResponse
from measure_engine.services.operations import compose
from measure_engine.services.registry import MeasureRegistry
from measure_engine.services.sources import SourceResolver

logger = logging.getLogger(__name__)

ContextInput = Union[ExecutionContext, Mapping[str, Any], None]


def context_fingerprint(context: ExecutionContext) -> str:
    """Stable hash of everything in the context, extra keys included."""
    payload = context.model_dump(mode='json', exclude_none=True)
    encoded = json.dumps(payload, sort_keys=True, default=str).encode('utf-8')
    return hashlib.sha256(encoded).hexdigest()


def _as_context(context: ContextInput) -> ExecutionContext:
    if context is None:
        return ExecutionContext()
    if isinstance(context, ExecutionContext):
        return context
    return ExecutionContext.model_validate(dict(context))


# =============================================================================
# Per-call Evaluator
# =============================================================================


class _BatchEvaluator:
    """Memoized recursive evaluation for one orchestrator call."""

    def __init__(
        self,
        registry: MeasureRegistry,
        data_source: TableDataSource,
        settings: Settings,
        filters: Optional[Mapping[str, Any]],
        today: Optional[date],
    ):
        self.registry = registry
        self.memo: Dict[Tuple[str, str], float] = {}
        self.failures: Dict[Tuple[str, str], ResolutionError] = {}
        self.resolver = SourceResolver(
            registry,
            data_source,
            self.evaluate_dependency,
            context_fingerprint,
            extra_filters=dict(filters or {}),
            undated_datasets=settings.undated_datasets,
            default_periods=settings.default_rolling_periods,
            default_date_field=settings.default_date_field,
            today=today,
        )

    async def evaluate(self, key: str, context: ExecutionContext) -> float:
        """
        Value of ``key`` in ``context``, computed at most once per call.

        Raises:
            ResolutionError: A component of ``key`` (or of a dependency) failed.
        """
        memo_key = (key, context_fingerprint(context))
        if memo_key in self.memo:
            return self.memo[memo_key]
        if memo_key in self.failures:
            raise self.failures[memo_key]

        measure = self.registry.get(key)
        values: List[Tuple[OperationType, float]] = []
        try:
            for component in measure.sorted_components():
                value = await self.resolver.resolve_component(measure, component, context)
                values.append((OperationType(component.operation), value))
        except ResolutionError as e:
            self.failures[memo_key] = e
            raise

        result = compose(values)
        self.memo[memo_key] = result
        logger.debug(f"Computed {key} = {result}")
        return result

    async def evaluate_dependency(self, key: str, context: ExecutionContext) -> float:
        try:
            return await self.evaluate(key, context)
        except ResolutionError as e:
            raise DependencyFailedError(key, e) from e


# =============================================================================
# Orchestrator
# =============================================================================


class MeasureOrchestrator:
    """
    Evaluates registered measures against a tabular data source.

    Args:
        registry: Finalized measure registry.
        data_source: Tabular data collaborator.
        settings: Settings for time-window defaults and undated datasets.
        today: Fixed reference date (for period predicates); defaults to the
            current date at evaluation time.
    """

    def __init__(
        self,
        registry: MeasureRegistry,
        data_source: TableDataSource,
        settings: Optional[Settings] = None,
        today: Optional[date] = None,
    ):
        self.registry = registry
        self.data_source = data_source
        self.settings = settings or get_settings()
        self.today = today

    async def execute_measure(
        self,
        measure_key: str,
        filters: Optional[Mapping[str, Any]] = None,
        context: ContextInput = None,
    ) -> Optional[float]:
        """
        Evaluate a single measure.

        Returns:
            The measure value, or None if it produced no result.

        Raises:
            MeasureNotFoundError: Unknown measure key.
            ConfigurationError: Unresolved reference or cycle in the closure.
            BatchExecutionError: The measure or one of its dependencies failed.
        """
        results = await self.execute_batch([measure_key], filters, context)
        return results.get(measure_key)

    async def execute_batch(
        self,
        measure_keys: Sequence[str],
        filters: Optional[Mapping[str, Any]] = None,
        context: ContextInput = None,
    ) -> Dict[str, float]:
        """
        Evaluate several measures in one context, sharing dependencies.

        Returns:
            Mapping of each requested key to its value.

        Raises:
            MeasureNotFoundError: A requested key is unknown.
            ConfigurationError: Unresolved reference or cycle in the closure.
            BatchExecutionError: At least one measure in the closure failed.
        """
        requested = list(dict.fromkeys(measure_keys))
        if not requested:
            return {}

        ctx = _as_context(context)
        graph = self.registry.build_dependency_graph(requested)
        order = self.registry.topological_sort(graph)
        levels = self.registry.group_by_level(graph, order)

        logger.info(
            f"Executing batch of {len(requested)} measures "
            f"({len(order)} in closure, {len(levels)} levels)"
        )

        evaluator = _BatchEvaluator(self.registry, self.data_source, self.settings, filters, self.today)
        failures: Dict[str, ResolutionError] = {}
        values: Dict[str, float] = {}

        for index, level in enumerate(levels):
            logger.debug(f"Evaluating level {index}: {', '.join(level)}")
            for key in level:
                try:
                    values[key] = await evaluator.evaluate(key, ctx)
                except ResolutionError as e:
                    failures[key] = e
                    if isinstance(e, DependencyFailedError):
                        logger.error(f"Measure {key} failed: {e}")
                    else:
                        logger.exception(f"Measure {key} failed: {e}")

        results = {key: values[key] for key in requested if key in values}

        if failures:
            raise BatchExecutionError(failures, results)

        logger.info(f"Batch complete: {len(results)} results")
        return results

    def get_execution_plan(self, measure_keys: Sequence[str]) -> ExecutionPlanResponse:
        """
        Dependency graph, topological order and levels for ``measure_keys``.

        Raises:
            MeasureNotFoundError: A requested key is unknown.
            ConfigurationError: Unresolved reference or cycle in the closure.
        """
        graph = self.registry.build_dependency_graph(list(measure_keys))
        order = self.registry.topological_sort(graph)
        levels = self.registry.group_by_level(graph, order)
        return ExecutionPlanResponse(
            executionOrder=order,
            levels=levels,
            graph={key: sorted(dependencies) for key, dependencies in sorted(graph.items())},
        )
