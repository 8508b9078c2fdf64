"""
Measure registry: storage, validation, and dependency graph construction.

Measures are registered once at startup and are read-only afterwards. The
registry is safe for concurrent reads from simultaneous batch evaluations
because nothing mutates it after ``finalize()``.

Lifecycle:
    registry = MeasureRegistry()
    registry.initialize(definitions)   # register all + finalize
    graph = registry.build_dependency_graph(['netSales'])
    order = registry.topological_sort(graph)
    levels = registry.group_by_level(graph, order)

Configuration errors (duplicate key, unresolved reference, cycle, schema
violations such as a missing ``sortOrder``) raise ConfigurationError
subclasses and are never silently dropped.
"""

import heapq
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from pydantic import ValidationError

from measure_engine.core.exceptions import (
    CircularDependencyError,
    ConfigurationError,
    DuplicateMeasureError,
    MeasureNotFoundError,
    UnresolvedDependencyError,
)
from measure_engine.models.schemas import Measure, MeasureCatalogItem, MeasureThreshold
from measure_engine.services.thresholds import evaluate_thresholds
from measure_engine.services.validator import (
    ValidationResult,
    detect_circular_dependencies,
    issues_from_pydantic,
    parse_measure,
    validate_all_measures,
    validate_measure,
)

logger = logging.getLogger(__name__)

DependencyGraph = Dict[str, Set[str]]


class MeasureRegistry:
    """Central registry holding one immutable Measure per key."""

    def __init__(self) -> None:
        self._measures: Dict[str, Measure] = {}
        self._sealed = False

    # =========================================================================
    # Registration
    # =========================================================================

    def initialize(self, definitions: Iterable[Union[Measure, Mapping[str, Any]]]) -> None:
        """
        Register a batch of definitions and finalize the registry.

        On any failure the registry is cleared and the error re-raised, so a
        partially configured registry is never served.
        """
        try:
            count = 0
            for definition in definitions:
                self.register(definition)
                count += 1
            logger.info(f"Registered {count} measures")
            self.finalize()
        except ConfigurationError:
            logger.exception("Measure registry initialization failed")
            self.clear()
            raise

    def register(self, definition: Union[Measure, Mapping[str, Any]]) -> Measure:
        """
        Validate and store one measure.

        References to other measures may point at keys registered later;
        they are resolved by ``finalize()`` and by ``build_dependency_graph()``.

        Raises:
            ConfigurationError: Schema violation, duplicate component ids,
                malformed filters, or registration after finalize().
            DuplicateMeasureError: The key is already registered.
        """
        if self._sealed:
            raise ConfigurationError("Registry is finalized; measures can no longer be registered")

        label = definition.key if isinstance(definition, Measure) else dict(definition).get('key', '<unknown>')
        try:
            measure = parse_measure(definition)
        except ValidationError as exc:
            raise ConfigurationError(f'Invalid measure "{label}"', issues_from_pydantic(exc)) from exc

        if measure.key in self._measures:
            raise DuplicateMeasureError(measure.key)

        result = validate_measure(measure)
        if not result.valid:
            raise ConfigurationError(f'Invalid measure "{measure.key}"', result.errors)

        self._measures[measure.key] = measure
        logger.debug(f"Registered measure {measure.key} ({len(measure.components)} components)")
        return measure

    def unresolved_references(self) -> Dict[str, List[str]]:
        """Referenced keys that are not registered, mapped to the measures referencing them."""
        missing: Dict[str, List[str]] = {}
        for key, measure in self._measures.items():
            for dependency in measure.referenced_measure_keys():
                if dependency not in self._measures:
                    missing.setdefault(dependency, []).append(key)
        return missing

    def finalize(self) -> None:
        """
        Check cross-measure consistency and seal the registry.

        Raises:
            UnresolvedDependencyError: A reference points at an unregistered key.
            CircularDependencyError: The reference graph has a cycle.
        """
        missing = self.unresolved_references()
        if missing:
            raise UnresolvedDependencyError(missing)

        for key in sorted(self._measures):
            cycle = detect_circular_dependencies(self._measures, key)
            if cycle:
                raise CircularDependencyError(cycle)

        self._sealed = True
        logger.info(f"Measure registry finalized with {len(self._measures)} measures")

    @property
    def is_finalized(self) -> bool:
        return self._sealed

    def clear(self) -> None:
        self._measures.clear()
        self._sealed = False

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, key: str) -> Measure:
        """
        Return the measure registered under ``key``.

        Raises:
            MeasureNotFoundError: If no such measure exists.
        """
        try:
            return self._measures[key]
        except KeyError:
            raise MeasureNotFoundError(key) from None

    def has(self, key: str) -> bool:
        return key in self._measures

    __contains__ = has

    def __len__(self) -> int:
        return len(self._measures)

    def get_all(self) -> List[Measure]:
        return list(self._measures.values())

    def get_keys(self) -> List[str]:
        return list(self._measures)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self, key: str) -> ValidationResult:
        return validate_measure(self.get(key))

    def validate_all(self) -> ValidationResult:
        return validate_all_measures(self._measures)

    # =========================================================================
    # Dependencies
    # =========================================================================

    def get_direct_dependencies(self, key: str) -> List[str]:
        return self.get(key).referenced_measure_keys()

    def get_measure_dependencies(self, key: str) -> List[str]:
        """Transitive dependencies of ``key`` in discovery order."""
        graph = self.build_dependency_graph([key])
        found: List[str] = []
        pending = sorted(graph[key])
        while pending:
            dependency = pending.pop(0)
            if dependency in found:
                continue
            found.append(dependency)
            pending.extend(sorted(graph.get(dependency, ())))
        return found

    def build_dependency_graph(self, keys: Sequence[str]) -> DependencyGraph:
        """
        Collect the transitive closure of ``keys`` as key -> direct dependencies.

        References inside conditional branches count as dependencies.

        Raises:
            MeasureNotFoundError: A requested key is not registered.
            UnresolvedDependencyError: A referenced key is not registered.
            CircularDependencyError: A self-reference or cycle is reachable.
        """
        missing_requested = [k for k in keys if k not in self._measures]
        if missing_requested:
            raise MeasureNotFoundError(', '.join(missing_requested))

        graph: DependencyGraph = {}
        missing: Dict[str, List[str]] = {}
        stack: List[str] = []
        on_stack: Set[str] = set()

        def collect(key: str) -> None:
            if key in on_stack:
                raise CircularDependencyError(stack[stack.index(key):] + [key])
            if key in graph:
                return

            stack.append(key)
            on_stack.add(key)
            dependencies = set(self._measures[key].referenced_measure_keys())
            for dependency in sorted(dependencies):
                if dependency not in self._measures:
                    missing.setdefault(dependency, []).append(key)
                    continue
                collect(dependency)
            stack.pop()
            on_stack.discard(key)
            graph[key] = dependencies

        for key in keys:
            collect(key)

        if missing:
            raise UnresolvedDependencyError(missing)

        return graph

    def topological_sort(self, graph: Mapping[str, Set[str]]) -> List[str]:
        """
        Order measures so every measure follows all of its dependencies.

        Ties are broken by lexical key order, so the result is deterministic.

        Raises:
            CircularDependencyError: If the graph is not acyclic.
        """
        nodes: Set[str] = set(graph)
        for dependencies in graph.values():
            nodes.update(dependencies)

        remaining = {node: len(graph.get(node, ())) for node in nodes}
        dependents: Dict[str, List[str]] = {node: [] for node in nodes}
        for node, dependencies in graph.items():
            for dependency in dependencies:
                dependents[dependency].append(node)

        ready = [node for node, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        order: List[str] = []

        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for dependent in dependents[node]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(order) != len(nodes):
            blocked = {n: set(graph.get(n, ())) for n in nodes if n not in order}
            raise CircularDependencyError(_find_cycle(blocked))

        return order

    def group_by_level(self, graph: Mapping[str, Set[str]], order: Sequence[str]) -> List[List[str]]:
        """
        Partition a topological order into dependency levels.

        Level 0 holds measures without dependencies; a measure at level n
        depends only on measures at levels below n. Within a level the
        topological order is kept.

        Raises:
            ConfigurationError: If ``order`` lists a measure before one of its dependencies.
        """
        level_of: Dict[str, int] = {}
        levels: List[List[str]] = []

        for key in order:
            dependencies = graph.get(key, set())
            unplaced = [d for d in dependencies if d not in level_of]
            if unplaced:
                raise ConfigurationError(
                    f'Measure "{key}" is ordered before its dependencies: {", ".join(sorted(unplaced))}'
                )
            level = 1 + max((level_of[d] for d in dependencies), default=-1)
            level_of[key] = level
            while len(levels) <= level:
                levels.append([])
            levels[level].append(key)

        return levels

    # =========================================================================
    # Catalog and Thresholds
    # =========================================================================

    def get_catalog(self) -> List[MeasureCatalogItem]:
        """Summary of every registered measure, for introspection screens."""
        catalog = []
        for measure in self._measures.values():
            metadata = measure.metadata
            catalog.append(MeasureCatalogItem(
                key=measure.key,
                name=measure.name,
                description=measure.description,
                componentCount=len(measure.components),
                category=metadata.category if metadata else None,
                unit=metadata.unit if metadata else None,
                dependencies=self.get_measure_dependencies(measure.key),
            ))
        return catalog

    def get_thresholds(self, key: str) -> List[MeasureThreshold]:
        metadata = self.get(key).metadata
        return list(metadata.thresholds) if metadata else []

    def get_threshold(self, key: str, threshold_key: Optional[str] = None) -> Optional[MeasureThreshold]:
        """A named threshold of ``key``, or its first threshold when no name is given."""
        thresholds = self.get_thresholds(key)
        if threshold_key is None:
            return thresholds[0] if thresholds else None
        return next((t for t in thresholds if t.key == threshold_key), None)

    def evaluate_thresholds(self, key: str, value: Optional[float]) -> Optional[MeasureThreshold]:
        """Band ``value`` against the thresholds of ``key``."""
        return evaluate_thresholds(self.get_thresholds(key), value)


def _find_cycle(graph: Mapping[str, Set[str]]) -> List[str]:
    """Any cycle in a graph known to contain one."""
    for start in sorted(graph):
        path = [start]
        seen = {start}
        node = start
        while True:
            candidates = sorted(d for d in graph.get(node, ()) if d in graph)
            if not candidates:
                break
            node = candidates[0]
            if node in seen:
                return path[path.index(node):] + [node]
            path.append(node)
            seen.add(node)
    return sorted(graph)
