"""
In-memory tabular data source backed by pandas DataFrames.

One DataFrame per dataset key. Used for tests, notebooks and any host that
already holds its raw data in memory. Fetch semantics mirror the SQL source:

- entity/dimension restrictions apply only when the dataset has the column
- the date window keeps rows with ``date >= start`` and ``date < end``
- extra filters are strict: a filter on a column the dataset lacks matches
  nothing
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import numpy as np
import pandas as pd

from measure_engine.core.exceptions import DatasetNotFoundError, FieldResolutionError
from measure_engine.data.base import Record, TableDataSource, TableQuery

logger = logging.getLogger(__name__)

DatasetInput = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


def _normalize_text(series: pd.Series) -> pd.Series:
    return series.astype(str).str.strip().str.lower()


class DataFrameTableSource(TableDataSource):
    """
    Serve dataset records from pandas DataFrames.

    Args:
        datasets: Dataset key -> DataFrame (or list of record dicts).
        entity_column: Column matched against the query's entity id.
        dimension_column: Column matched against the query's dimension id.

    Example:
        >>> source = DataFrameTableSource({'sales': [{'qty': 10, 'date': '2025-01-03'}]})
        >>> await source.fetch(TableQuery('sales'))
        [{'qty': 10, 'date': '2025-01-03'}]
    """

    def __init__(
        self,
        datasets: Optional[Mapping[str, DatasetInput]] = None,
        entity_column: str = 'entityId',
        dimension_column: str = 'dimensionId',
    ):
        self.entity_column = entity_column
        self.dimension_column = dimension_column
        self._frames: Dict[str, pd.DataFrame] = {}
        for key, data in (datasets or {}).items():
            self.add_dataset(key, data)

    def add_dataset(self, key: str, data: DatasetInput) -> None:
        frame = data.copy() if isinstance(data, pd.DataFrame) else pd.DataFrame(list(data))
        self._frames[key] = frame

    def has_dataset(self, dataset: str) -> bool:
        return dataset in self._frames

    async def fetch(self, query: TableQuery) -> List[Record]:
        if query.dataset not in self._frames:
            raise DatasetNotFoundError(query.dataset, "unknown dataset key")

        frame = self._frames[query.dataset]
        if frame.empty:
            return []

        mask = pd.Series(True, index=frame.index)

        if query.entity_id is not None and self.entity_column in frame.columns:
            mask &= _normalize_text(frame[self.entity_column]) == str(query.entity_id).strip().lower()

        if query.dimension_id is not None and self.dimension_column in frame.columns:
            mask &= _normalize_text(frame[self.dimension_column]) == str(query.dimension_id).strip().lower()

        if query.window is not None:
            date_field = query.window.date_field
            if date_field not in frame.columns:
                raise FieldResolutionError(query.dataset, date_field)
            dates = pd.to_datetime(frame[date_field], errors='coerce')
            mask &= (dates >= pd.Timestamp(query.window.start)) & (dates < pd.Timestamp(query.window.end))

        for column, value in query.filters.items():
            if column not in frame.columns:
                mask &= False
                continue
            if isinstance(value, (list, tuple, set)):
                wanted = {str(v).strip().lower() for v in value}
                mask &= _normalize_text(frame[column]).isin(wanted)
            elif value is None:
                mask &= frame[column].isna()
            else:
                mask &= _normalize_text(frame[column]) == str(value).strip().lower()

        selected = frame[mask]
        logger.debug(f"Fetched {len(selected)}/{len(frame)} rows from {query.dataset}")

        # NaN cells become None so missing values read as absent
        cleaned = selected.astype(object).where(pd.notna(selected), None)
        return [
            {k: (v.item() if isinstance(v, np.generic) else v) for k, v in row.items()}
            for row in cleaned.to_dict(orient='records')
        ]
