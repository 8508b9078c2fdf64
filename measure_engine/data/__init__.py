"""
Tabular data collaborators.

- TableDataSource / TableQuery: the contract the engine fetches through
- DataFrameTableSource: pandas-backed in-memory datasets
- PostgresTableSource: asyncpg-backed datasets
"""

from measure_engine.data.base import Record, TableDataSource, TableQuery
from measure_engine.data.frame_source import DataFrameTableSource
from measure_engine.data.postgres_source import PostgresTableSource


__all__ = [
    'Record',
    'TableDataSource',
    'TableQuery',
    'DataFrameTableSource',
    'PostgresTableSource',
]
