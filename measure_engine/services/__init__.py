"""
Measure Engine Services Module

This module contains the evaluation logic of the measure engine. Apart from
the registry (read-only after finalize) and the per-call orchestrator state,
every service is a stateless function.

Services:
- time_window: Time-intelligence directive -> half-open date window
- filters: AND/OR record filtering
- aggregation: Record -> number reduction (sum, count, average, ...)
- operations: Ordered fold of component values
- validator: Cross-field and cross-measure definition checks
- registry: Measure storage, dependency graph, topological levels
- sources: Table / measure / conditional component resolution
- orchestrator: Memoized batch evaluation over the dependency closure
- thresholds: Status banding of measure values
- months_cover: Stock cover in months from stock and consumption measures

All services are designed to be consumed by the API layer (measure_engine/api/).
"""

# =============================================================================
# Time Window Exports
# =============================================================================

from measure_engine.services.time_window import (
    DateWindow,
    context_period,
    month_start,
    period_relative_to_today,
    resolve_time_window,
)

# =============================================================================
# Filter, Aggregation and Operation Exports
# =============================================================================

from measure_engine.services.filters import (
    apply_filters,
    evaluate_condition,
    matches,
)

from measure_engine.services.aggregation import (
    aggregate,
    numeric_values,
)

from measure_engine.services.operations import (
    apply_operation,
    compose,
)

# =============================================================================
# Registry and Validation Exports
# =============================================================================

from measure_engine.services.validator import (
    ValidationResult,
    detect_circular_dependencies,
    validate_all_measures,
    validate_measure,
)

from measure_engine.services.registry import (
    DependencyGraph,
    MeasureRegistry,
)

from measure_engine.services.thresholds import (
    evaluate_thresholds,
    threshold_holds,
)

# =============================================================================
# Evaluation Exports
# =============================================================================

from measure_engine.services.sources import SourceResolver

from measure_engine.services.orchestrator import (
    MeasureOrchestrator,
    context_fingerprint,
)

from measure_engine.services.months_cover import (
    calculate_months_cover,
    compute_months_cover,
)


__all__ = [
    # Time windows
    'DateWindow',
    'context_period',
    'month_start',
    'period_relative_to_today',
    'resolve_time_window',
    # Filters / aggregation / operations
    'apply_filters',
    'evaluate_condition',
    'matches',
    'aggregate',
    'numeric_values',
    'apply_operation',
    'compose',
    # Registry and validation
    'ValidationResult',
    'detect_circular_dependencies',
    'validate_all_measures',
    'validate_measure',
    'DependencyGraph',
    'MeasureRegistry',
    'evaluate_thresholds',
    'threshold_holds',
    # Evaluation
    'SourceResolver',
    'MeasureOrchestrator',
    'context_fingerprint',
    'calculate_months_cover',
    'compute_months_cover',
]
