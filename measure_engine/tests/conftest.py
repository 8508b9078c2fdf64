"""
Pytest Configuration and Shared Fixtures for Measure Engine Tests.

This module provides fixtures and configuration for all measure engine tests:
- Async test execution with pytest-asyncio (``@pytest.mark.asyncio``)
- Measure definition factories (table / measure / conditional components)
- Registries built from ad hoc definitions or from the bundled catalog
- In-memory datasets served through DataFrameTableSource
- A counting data source wrapper for memoization assertions
- Settings with a fixed reference date

Dependency References:
- measure_engine/services/registry.py: MeasureRegistry
- measure_engine/services/orchestrator.py: MeasureOrchestrator
- measure_engine/data/frame_source.py: DataFrameTableSource
"""

from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd
import pytest

from measure_engine.catalog.loader import build_registry
from measure_engine.core.config import Settings
from measure_engine.data.base import TableDataSource, TableQuery
from measure_engine.data.frame_source import DataFrameTableSource
from measure_engine.services.orchestrator import MeasureOrchestrator
from measure_engine.services.registry import MeasureRegistry


# Reference "today" for every test that depends on the current month
TODAY = date(2025, 6, 15)


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - property: randomized property tests over seeded inputs
    - integration: tests requiring a real PostgreSQL instance
    """
    config.addinivalue_line(
        'markers',
        'property: randomized property tests over seeded inputs'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks tests requiring external service connectivity'
    )


# ============================================================
# DEFINITION FACTORIES
# ============================================================

def table_component(
    component_id: str,
    table_key: str,
    field: str,
    sort_order: int = 0,
    operation: str = 'sum',
    aggregation: str = 'sum',
    **extra: Any,
) -> Dict[str, Any]:
    """Raw definition of a table-typed component."""
    component = {
        'id': component_id,
        'name': component_id,
        'source': {'type': 'table', 'tableKey': table_key, 'fieldName': field},
        'operation': operation,
        'aggregation': aggregation,
        'sortOrder': sort_order,
    }
    component.update(extra)
    return component


def measure_component(
    component_id: str,
    measure_key: str,
    sort_order: int = 0,
    operation: str = 'sum',
    **extra: Any,
) -> Dict[str, Any]:
    """Raw definition of a measure-typed component."""
    component = {
        'id': component_id,
        'name': component_id,
        'source': {'type': 'measure', 'measureKey': measure_key},
        'operation': operation,
        'sortOrder': sort_order,
    }
    component.update(extra)
    return component


def measure_definition(key: str, *components: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    """Raw definition of a measure."""
    definition = {'key': key, 'name': key, 'components': list(components)}
    definition.update(extra)
    return definition


def make_registry(*definitions: Dict[str, Any]) -> MeasureRegistry:
    registry = MeasureRegistry()
    registry.initialize(definitions)
    return registry


class CountingSource(TableDataSource):
    """Wraps a data source and records every fetch."""

    def __init__(self, inner: TableDataSource):
        self.inner = inner
        self.queries: List[TableQuery] = []

    def has_dataset(self, dataset: str) -> bool:
        return self.inner.has_dataset(dataset)

    async def fetch(self, query: TableQuery):
        self.queries.append(query)
        return await self.inner.fetch(query)

    def fetches_of(self, dataset: str) -> int:
        return sum(1 for q in self.queries if q.dataset == dataset)


# ============================================================
# SETTINGS FIXTURES
# ============================================================

@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def settings() -> Settings:
    """Default settings, ignoring any local .env file."""
    return Settings(_env_file=None)


# ============================================================
# DATA FIXTURES
# ============================================================

@pytest.fixture
def raw_aggregated_df() -> pd.DataFrame:
    """
    Transaction-level records for two countries across 2024-2025.

    SA / SKU-1, June 2025: Sales 100 + 50, Return 20, Samples 5
    SA / SKU-1, June 2024: Sales 120
    SA / SKU-1, March-May 2025: Sales 30, 40, 50
    AE / SKU-1, June 2025: Sales 999
    """
    rows = [
        ('SA', 'SKU-1', '2025-06-01', 'Sales', 100),
        ('SA', 'SKU-1', '2025-06-30', 'Sales', 50),
        ('SA', 'SKU-1', '2025-06-10', 'Return', 20),
        ('SA', 'SKU-1', '2025-06-12', 'Samples to HCP', 5),
        ('SA', 'SKU-1', '2025-07-01', 'Sales', 7000),
        ('SA', 'SKU-1', '2024-06-15', 'Sales', 120),
        ('SA', 'SKU-1', '2025-03-05', 'Sales', 30),
        ('SA', 'SKU-1', '2025-04-05', 'Sales', 40),
        ('SA', 'SKU-1', '2025-05-05', 'Sales', 50),
        ('AE', 'SKU-1', '2025-06-03', 'Sales', 999),
    ]
    return pd.DataFrame(rows, columns=['entityId', 'dimensionId', 'date', 'docType', 'stockOutQty'])


@pytest.fixture
def datasets(raw_aggregated_df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    return {
        'rawAggregated': raw_aggregated_df,
        'budgets': pd.DataFrame([
            {'entityId': 'SA', 'dimensionId': 'SKU-1', 'monthYear': '2025-06-01', 'budgetedQty': 200},
            {'entityId': 'SA', 'dimensionId': 'SKU-1', 'monthYear': '2025-07-01', 'budgetedQty': 210},
        ]),
        'forecasts': pd.DataFrame([
            {'entityId': 'SA', 'dimensionId': 'SKU-1', 'monthYear': '2025-07-01', 'forecastQty': 90},
            {'entityId': 'SA', 'dimensionId': 'SKU-1', 'monthYear': '2025-08-01', 'forecastQty': 80},
        ]),
        'procurementSafeMargin': pd.DataFrame([
            {'entityId': 'SA', 'dimensionId': 'SKU-1', 'margin': 1.1},
        ]),
        'targetCoverStock': pd.DataFrame([
            {'entityId': 'SA', 'noOfMonths': 3},
        ]),
    }


@pytest.fixture
def frame_source(datasets: Dict[str, pd.DataFrame]) -> DataFrameTableSource:
    return DataFrameTableSource(datasets)


@pytest.fixture
def counting_source(frame_source: DataFrameTableSource) -> CountingSource:
    return CountingSource(frame_source)


@pytest.fixture
def sa_context() -> Dict[str, Any]:
    return {'entityId': 'SA', 'dimensionId': 'SKU-1', 'year': 2025, 'month': 6}


# ============================================================
# REGISTRY / ORCHESTRATOR FIXTURES
# ============================================================

@pytest.fixture
def catalog_registry() -> MeasureRegistry:
    """Registry built from the bundled default catalog."""
    return build_registry()


@pytest.fixture
def catalog_orchestrator(
    catalog_registry: MeasureRegistry,
    counting_source: CountingSource,
    settings: Settings,
    today: date,
) -> MeasureOrchestrator:
    return MeasureOrchestrator(catalog_registry, counting_source, settings, today=today)


def make_orchestrator(
    registry: MeasureRegistry,
    data_source: TableDataSource,
    settings: Optional[Settings] = None,
    today: date = TODAY,
) -> MeasureOrchestrator:
    return MeasureOrchestrator(registry, data_source, settings or Settings(_env_file=None), today=today)
