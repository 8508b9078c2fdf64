"""
SQL Query Module for the measure engine.

Provides parameterized SQL for the PostgreSQL tabular data source.

Submodules:
    table_queries: Record fetch queries for table-typed measure components,
                   restricted by entity, dimension, date window and filters.

Example usage:
    from measure_engine.sql import get_table_records_query

    sql, args = get_table_records_query(
        'raw_aggregated',
        entity_column='entity_id',
        dimension_column='dimension_id',
        entity_id='SA',
        date_column='date',
        start_date=date(2025, 1, 1),
        end_date=date(2025, 2, 1),
    )
"""

from measure_engine.sql.table_queries import (
    IDENTIFIER_PATTERN,
    get_table_records_query,
    quote_identifier,
)


__all__ = [
    'IDENTIFIER_PATTERN',
    'get_table_records_query',
    'quote_identifier',
]
