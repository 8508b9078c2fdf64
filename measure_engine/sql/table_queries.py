"""
Parameterized record queries for table-typed measure components.

Builds the single SELECT the PostgreSQL data source issues per component:
all columns of one dataset table, restricted to the context entity and
dimension, the half-open date window and any extra column filters.

Date restriction always uses ``>= start`` and ``< end`` so records on the
first day of the window are included and records on the first day after it
are not.

Identifiers cannot be bound as parameters, so table and column names are
checked against IDENTIFIER_PATTERN and double-quoted.
"""

import re
from datetime import date
from typing import Any, Dict, List, Optional, Tuple


IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def quote_identifier(name: str) -> str:
    """
    Double-quote a table or column name after validating it.

    Raises:
        ValueError: If ``name`` is not a plain identifier.
    """
    if not IDENTIFIER_PATTERN.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def get_table_records_query(
    table: str,
    *,
    entity_column: str,
    dimension_column: str,
    entity_id: Optional[str] = None,
    dimension_id: Optional[str] = None,
    date_column: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    filters: Optional[Dict[str, Any]] = None,
) -> Tuple[str, List[Any]]:
    """
    Build the record query for one dataset table.

    Args:
        table: Physical table name.
        entity_column: Column matched against ``entity_id``.
        dimension_column: Column matched against ``dimension_id``.
        entity_id: Entity restriction, skipped when None.
        dimension_id: Dimension restriction, skipped when None.
        date_column: Column carrying the record date; required with a window.
        start_date: Inclusive window start.
        end_date: Exclusive window end.
        filters: Extra column restrictions; list values become ``= ANY``.

    Returns:
        Tuple of (SQL with $n placeholders, positional arguments).

    Example:
        >>> sql, args = get_table_records_query(
        ...     'budgets', entity_column='entity_id', dimension_column='dimension_id',
        ...     entity_id='SA', date_column='month_year',
        ...     start_date=date(2025, 1, 1), end_date=date(2025, 2, 1))
        >>> args
        ['SA', datetime.date(2025, 1, 1), datetime.date(2025, 2, 1)]
    """
    conditions: List[str] = []
    args: List[Any] = []

    def bind(value: Any) -> str:
        args.append(value)
        return f"${len(args)}"

    if entity_id is not None:
        conditions.append(f"{quote_identifier(entity_column)} = {bind(entity_id)}")

    if dimension_id is not None:
        conditions.append(f"{quote_identifier(dimension_column)} = {bind(dimension_id)}")

    if start_date is not None or end_date is not None:
        if not date_column:
            raise ValueError("A date window requires a date column")
        column = quote_identifier(date_column)
        if start_date is not None:
            conditions.append(f"{column} >= {bind(start_date)}")
        if end_date is not None:
            conditions.append(f"{column} < {bind(end_date)}")

    for column_name, value in sorted((filters or {}).items()):
        column = quote_identifier(column_name)
        if isinstance(value, (list, tuple, set)):
            conditions.append(f"{column} = ANY({bind(list(value))})")
        elif value is None:
            conditions.append(f"{column} IS NULL")
        else:
            conditions.append(f"{column} = {bind(value)}")

    query = f"SELECT * FROM {quote_identifier(table)}"
    if conditions:
        query += "\nWHERE " + "\n  AND ".join(conditions)

    return query, args
