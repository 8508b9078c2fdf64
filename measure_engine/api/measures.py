"""
FastAPI router module for measure introspection and execution.

Implements GET /measures (catalog), GET /measures/{key} (definition),
POST /measures/execute (single measure), POST /measures/execute-batch
(several measures sharing dependencies) and POST /measures/plan (dependency
order and levels, for diagnostics).

Error mapping:
- ConfigurationError -> 422 (invalid definitions, unresolved reference, cycle)
- MeasureNotFoundError -> 404
- BatchExecutionError -> 502, body lists every failed measure/component
"""

import logging
from typing import List

from fastapi import APIRouter, HTTPException

from measure_engine.core.dependencies import OrchestratorDep, RegistryDep
from measure_engine.core.exceptions import (
    BatchExecutionError,
    ConfigurationError,
    MeasureNotFoundError,
)
from measure_engine.models.schemas import (
    ExecuteBatchRequest,
    ExecuteBatchResponse,
    ExecuteMeasureRequest,
    ExecuteMeasureResponse,
    ExecutionPlanRequest,
    ExecutionPlanResponse,
    Measure,
    MeasureCatalogItem,
)


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(error: Exception) -> HTTPException:
    """Translate an engine error into the matching HTTPException."""
    if isinstance(error, MeasureNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConfigurationError):
        return HTTPException(
            status_code=422,
            detail={
                "message": str(error),
                "errors": [{"path": e.path, "message": e.message} for e in error.errors],
            },
        )
    if isinstance(error, BatchExecutionError):
        return HTTPException(status_code=502, detail=error.to_dict())
    return HTTPException(status_code=500, detail=str(error))


# =============================================================================
# Introspection
# =============================================================================


@router.get("", response_model=List[MeasureCatalogItem])
async def list_measures(registry: RegistryDep) -> List[MeasureCatalogItem]:
    """Catalog of every registered measure with its transitive dependencies."""
    return registry.get_catalog()


@router.get("/{measure_key}", response_model=Measure)
async def get_measure(measure_key: str, registry: RegistryDep) -> Measure:
    """
    Definition of a single measure.

    Raises:
        HTTPException(404) if the measure is not registered
    """
    try:
        return registry.get(measure_key)
    except MeasureNotFoundError as e:
        raise _http_error(e)


@router.post("/plan", response_model=ExecutionPlanResponse)
async def get_execution_plan(
    request: ExecutionPlanRequest,
    orchestrator: OrchestratorDep,
) -> ExecutionPlanResponse:
    """Evaluation order and dependency levels for the requested measures."""
    try:
        return orchestrator.get_execution_plan(request.measureKeys)
    except (MeasureNotFoundError, ConfigurationError) as e:
        raise _http_error(e)


# =============================================================================
# Execution
# =============================================================================


@router.post("/execute", response_model=ExecuteMeasureResponse)
async def execute_measure(
    request: ExecuteMeasureRequest,
    orchestrator: OrchestratorDep,
) -> ExecuteMeasureResponse:
    """
    Evaluate one measure in the given context.

    Request body:
        {"measureKey": "netSales", "filters": {}, "context": {"entityId": "SA", "year": 2025, "month": 6}}
    """
    try:
        value = await orchestrator.execute_measure(request.measureKey, request.filters, request.context)
    except (MeasureNotFoundError, ConfigurationError) as e:
        raise _http_error(e)
    except BatchExecutionError as e:
        logger.error(f"Execution of {request.measureKey} failed: {e}")
        raise _http_error(e)

    return ExecuteMeasureResponse(measureKey=request.measureKey, value=value)


@router.post("/execute-batch", response_model=ExecuteBatchResponse)
async def execute_batch(
    request: ExecuteBatchRequest,
    orchestrator: OrchestratorDep,
) -> ExecuteBatchResponse:
    """Evaluate several measures in one context, computing shared dependencies once."""
    try:
        results = await orchestrator.execute_batch(request.measureKeys, request.filters, request.context)
    except (MeasureNotFoundError, ConfigurationError) as e:
        raise _http_error(e)
    except BatchExecutionError as e:
        logger.error(f"Batch execution of {len(request.measureKeys)} measures failed: {e}")
        raise _http_error(e)

    return ExecuteBatchResponse(results=results)
