"""
PostgreSQL tabular data source using the shared asyncpg pool.

Dataset keys are mapped to physical tables through ``Settings.dataset_tables``.
Queries are built by measure_engine.sql.table_queries and executed through
measure_engine.core.database.fetch_rows.

Retrying transient connection failures happens here, never in the engine.
"""

import asyncio
import logging
from typing import Any, List, Optional, Tuple

import asyncpg

from measure_engine.core.config import Settings, get_settings
from measure_engine.core.database import fetch_rows
from measure_engine.core.exceptions import DatasetNotFoundError
from measure_engine.data.base import Record, TableDataSource, TableQuery
from measure_engine.sql.table_queries import get_table_records_query

logger = logging.getLogger(__name__)


class PostgresTableSource(TableDataSource):
    """
    Fetch dataset records from PostgreSQL.

    Args:
        settings: Settings supplying table map and entity/dimension columns.
        retries: Extra attempts after a connection-level failure.
        retry_delay: Seconds between attempts.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        retries: int = 2,
        retry_delay: float = 0.5,
    ):
        self.settings = settings or get_settings()
        self.retries = retries
        self.retry_delay = retry_delay

    def has_dataset(self, dataset: str) -> bool:
        return dataset in self.settings.dataset_tables

    def build_query(self, query: TableQuery) -> Tuple[str, List[Any]]:
        """
        Translate a TableQuery into SQL and positional arguments.

        Raises:
            DatasetNotFoundError: The dataset key has no table mapping or an
                identifier fails validation.
        """
        table = self.settings.dataset_tables.get(query.dataset)
        if table is None:
            raise DatasetNotFoundError(query.dataset, "no table mapping configured")

        window = query.window
        try:
            return get_table_records_query(
                table,
                entity_column=self.settings.entity_column,
                dimension_column=self.settings.dimension_column,
                entity_id=query.entity_id,
                dimension_id=query.dimension_id,
                date_column=window.date_field if window else None,
                start_date=window.start if window else None,
                end_date=window.end if window else None,
                filters=query.filters,
            )
        except ValueError as e:
            raise DatasetNotFoundError(query.dataset, str(e)) from e

    async def fetch(self, query: TableQuery) -> List[Record]:
        sql, args = self.build_query(query)

        attempt = 0
        while True:
            try:
                rows = await fetch_rows(sql, *args)
                break
            except (OSError, asyncpg.exceptions.ConnectionDoesNotExistError) as e:
                if attempt >= self.retries:
                    logger.error(f"Fetch from {query.dataset} failed after {attempt + 1} attempts: {e}")
                    raise DatasetNotFoundError(query.dataset, str(e)) from e
                attempt += 1
                logger.warning(f"Fetch from {query.dataset} failed ({e}), retrying ({attempt}/{self.retries})")
                await asyncio.sleep(self.retry_delay)
            except asyncpg.PostgresError as e:
                logger.error(f"Query on {query.dataset} failed: {e}")
                raise DatasetNotFoundError(query.dataset, str(e)) from e

        logger.debug(f"Fetched {len(rows)} rows from {query.dataset}")
        return [dict(row) for row in rows]
