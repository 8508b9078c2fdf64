"""
Core infrastructure package for the measure engine.

Provides:
- Configuration management via pydantic-settings
- The error taxonomy shared by registry, resolver and orchestrator
- Async PostgreSQL connectivity via asyncpg (SQL data source only)

This module re-exports key components from submodules for convenient
importing:

    from measure_engine.core import get_settings, ConfigurationError

FastAPI dependencies live in measure_engine.core.dependencies and are not
re-exported here; they import the service layer, which itself imports core.
"""

# =============================================================================
# Re-exports from measure_engine.core.config
# =============================================================================
from measure_engine.core.config import Settings, get_settings

# =============================================================================
# Re-exports from measure_engine.core.database
# =============================================================================
from measure_engine.core.database import init_db, close_db, get_db_pool

# =============================================================================
# Re-exports from measure_engine.core.exceptions
# =============================================================================
from measure_engine.core.exceptions import (
    BatchExecutionError,
    CircularDependencyError,
    ConfigurationError,
    DatasetNotFoundError,
    DependencyFailedError,
    DuplicateMeasureError,
    FieldResolutionError,
    MeasureEngineError,
    MeasureNotFoundError,
    ResolutionError,
    UnresolvedDependencyError,
    ValidationIssue,
)

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Database pool lifecycle (from database.py)
    'init_db',
    'close_db',
    'get_db_pool',
    # Errors (from exceptions.py)
    'BatchExecutionError',
    'CircularDependencyError',
    'ConfigurationError',
    'DatasetNotFoundError',
    'DependencyFailedError',
    'DuplicateMeasureError',
    'FieldResolutionError',
    'MeasureEngineError',
    'MeasureNotFoundError',
    'ResolutionError',
    'UnresolvedDependencyError',
    'ValidationIssue',
]
