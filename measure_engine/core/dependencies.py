"""
FastAPI dependency injection module for the measure engine API.

Provides the shared measure registry, the tabular data source and a
per-request orchestrator to endpoint handlers, each overridable through
``app.dependency_overrides`` in tests.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_registry: Returns the process-wide registry built from the configured
  (or bundled) measure definitions
- get_data_source: PostgresTableSource when DATABASE_URL is set, otherwise an
  empty in-memory DataFrameTableSource
- get_orchestrator: A MeasureOrchestrator over the registry and data source
- SettingsDep / RegistryDep / DataSourceDep / OrchestratorDep: Annotated aliases

Usage Examples:
    @router.post("/measures/execute")
    async def execute(request: ExecuteMeasureRequest, orchestrator: OrchestratorDep):
        return await orchestrator.execute_measure(request.measureKey, ...)

    # In tests
    app.dependency_overrides[get_data_source] = lambda: DataFrameTableSource(frames)
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from measure_engine.catalog.loader import build_registry
from measure_engine.core.config import Settings, get_settings
from measure_engine.data.base import TableDataSource
from measure_engine.data.frame_source import DataFrameTableSource
from measure_engine.data.postgres_source import PostgresTableSource
from measure_engine.services.orchestrator import MeasureOrchestrator
from measure_engine.services.registry import MeasureRegistry


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so tests can override it:

        app.dependency_overrides[get_settings_dependency] = lambda: mock_settings
    """
    return get_settings()


# =============================================================================
# Registry Dependency
# =============================================================================

@lru_cache()
def get_registry() -> MeasureRegistry:
    """
    Return the registry built once from ``Settings.measures_path``.

    Raises:
        ConfigurationError: The definitions are invalid; nothing is served.

    Note:
        To rebuild after changing MEASURES_PATH, clear the cache:
        >>> get_registry.cache_clear()
    """
    return build_registry(get_settings().measures_path)


# =============================================================================
# Data Source and Orchestrator Dependencies
# =============================================================================

def get_data_source(settings: Annotated[Settings, Depends(get_settings_dependency)]) -> TableDataSource:
    """PostgreSQL when a database is configured, otherwise an empty in-memory source."""
    if settings.database_url:
        return PostgresTableSource(settings)
    return DataFrameTableSource(
        entity_column=settings.entity_column,
        dimension_column=settings.dimension_column,
    )


def get_orchestrator(
    registry: Annotated[MeasureRegistry, Depends(get_registry)],
    data_source: Annotated[TableDataSource, Depends(get_data_source)],
    settings: Annotated[Settings, Depends(get_settings_dependency)],
) -> MeasureOrchestrator:
    return MeasureOrchestrator(registry, data_source, settings)


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

RegistryDep = Annotated[MeasureRegistry, Depends(get_registry)]

DataSourceDep = Annotated[TableDataSource, Depends(get_data_source)]

OrchestratorDep = Annotated[MeasureOrchestrator, Depends(get_orchestrator)]
