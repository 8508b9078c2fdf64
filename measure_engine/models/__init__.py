"""
Package initialization file for measure engine models.

Exports the enumerations from enums.py and the Pydantic schemas from
schemas.py so other modules can import data models from
measure_engine.models directly.

Usage:
    from measure_engine.models import (
        Measure,
        MeasureComponent,
        ExecutionContext,
        OperationType,
    )
"""

# =============================================================================
# Enums
# =============================================================================

from measure_engine.models.enums import (
    AggregationType,
    OperationType,
    SEEDING_OPERATIONS,
    FilterOperator,
    FilterLogicType,
    TimeIntelligenceType,
    ThresholdOperator,
)


# =============================================================================
# Schemas
# =============================================================================

from measure_engine.models.schemas import (
    # -------------------------------------------------------------------------
    # Definition Models
    # -------------------------------------------------------------------------
    FilterCondition,
    FilterLogic,
    TimeIntelligence,
    TableSource,
    MeasureSource,
    ConditionalSource,
    ComponentSource,
    BranchSource,
    ConditionalConditions,
    ConditionalConfig,
    MeasureComponent,
    MeasureThreshold,
    MeasureMetadata,
    Measure,

    # -------------------------------------------------------------------------
    # Execution Models
    # -------------------------------------------------------------------------
    DateRange,
    ExecutionContext,

    # -------------------------------------------------------------------------
    # API Contracts
    # -------------------------------------------------------------------------
    ExecuteMeasureRequest,
    ExecuteMeasureResponse,
    ExecuteBatchRequest,
    ExecuteBatchResponse,
    ExecutionPlanRequest,
    ExecutionPlanResponse,
    MeasureCatalogItem,
)


__all__ = [
    # Enums
    'AggregationType',
    'OperationType',
    'SEEDING_OPERATIONS',
    'FilterOperator',
    'FilterLogicType',
    'TimeIntelligenceType',
    'ThresholdOperator',
    # Definition models
    'FilterCondition',
    'FilterLogic',
    'TimeIntelligence',
    'TableSource',
    'MeasureSource',
    'ConditionalSource',
    'ComponentSource',
    'BranchSource',
    'ConditionalConditions',
    'ConditionalConfig',
    'MeasureComponent',
    'MeasureThreshold',
    'MeasureMetadata',
    'Measure',
    # Execution models
    'DateRange',
    'ExecutionContext',
    # API contracts
    'ExecuteMeasureRequest',
    'ExecuteMeasureResponse',
    'ExecuteBatchRequest',
    'ExecuteBatchResponse',
    'ExecutionPlanRequest',
    'ExecutionPlanResponse',
    'MeasureCatalogItem',
]
