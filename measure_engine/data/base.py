"""
Tabular data collaborator contract.

The engine asks the data source for "records of dataset X where entity = e,
dimension = d and date in [start, end)" and only needs record-level field
access afterwards. Transport, query syntax and retrying belong to the
concrete source.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

if TYPE_CHECKING:
    from measure_engine.services.time_window import DateWindow


Record = Mapping[str, Any]


@dataclass(frozen=True)
class TableQuery:
    """
    A fetch request for one table-typed component.

    Attributes:
        dataset: Dataset key referenced by the component (e.g. 'rawAggregated').
        entity_id: Context entity (country); None means unrestricted.
        dimension_id: Context dimension (SKU); None means unrestricted.
        window: Half-open date window, or None for undated fetches.
        filters: Extra column restrictions; list values mean membership.
    """

    dataset: str
    entity_id: Optional[str] = None
    dimension_id: Optional[str] = None
    window: Optional["DateWindow"] = None
    filters: Dict[str, Any] = field(default_factory=dict)

    def cache_key(self) -> tuple:
        return (
            self.dataset,
            self.entity_id,
            self.dimension_id,
            self.window,
            tuple(sorted((k, repr(v)) for k, v in self.filters.items())),
        )


class TableDataSource(ABC):
    """Fetches flat records for table-typed measure components."""

    @abstractmethod
    async def fetch(self, query: TableQuery) -> List[Record]:
        """
        Return records matching ``query``.

        Raises:
            DatasetNotFoundError: The dataset key is unknown or unreachable.
        """

    def has_dataset(self, dataset: str) -> bool:
        """Whether ``dataset`` is known; sources that cannot tell return True."""
        return True
