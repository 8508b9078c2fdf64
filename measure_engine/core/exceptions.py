"""
Error taxonomy for the measure engine.

Three families of failure exist:

1. Configuration errors - duplicate measure keys, unresolved references,
   dependency cycles, malformed definitions. Detected at registration or
   graph-build time and fatal: nothing is evaluated.
2. Resolution errors - a component could not produce a value (unknown
   dataset, missing field, failed dependency). Raised per component and
   propagated to every dependent measure in the same batch.
3. Batch errors - raised by the orchestrator once all independent measures
   have completed, listing every measure/component that failed.

Business-safe clamps (divide-by-zero -> 0, empty aggregation -> 0) are not
errors and never raise.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence


@dataclass(frozen=True)
class ValidationIssue:
    """A single configuration problem, addressed by a dotted path."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class MeasureEngineError(Exception):
    """Base class for all measure engine errors."""


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(MeasureEngineError):
    """A measure definition or the set of definitions is invalid."""

    def __init__(self, message: str, errors: Optional[Sequence[ValidationIssue]] = None):
        self.errors: List[ValidationIssue] = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(str(e) for e in self.errors)
        super().__init__(message)


class DuplicateMeasureError(ConfigurationError):
    """A measure key was registered twice."""

    def __init__(self, measure_key: str):
        self.measure_key = measure_key
        super().__init__(f'Measure "{measure_key}" is already registered')


class UnresolvedDependencyError(ConfigurationError):
    """One or more measure references point at keys that were never registered."""

    def __init__(self, missing: Dict[str, List[str]]):
        # missing: referenced key -> measures referencing it
        self.missing = missing
        details = ", ".join(
            f'"{ref}" (referenced by {", ".join(sorted(owners))})'
            for ref, owners in sorted(missing.items())
        )
        super().__init__(f"Unresolved measure references: {details}")


class CircularDependencyError(ConfigurationError):
    """The measure reference graph contains a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


class MeasureNotFoundError(MeasureEngineError, KeyError):
    """A requested measure key is not in the registry."""

    def __init__(self, measure_key: str):
        self.measure_key = measure_key
        super().__init__(f'Measure "{measure_key}" not found')

    def __str__(self) -> str:
        return self.args[0]


# =============================================================================
# Resolution Errors
# =============================================================================


class ResolutionError(MeasureEngineError):
    """A measure component could not be resolved to a number."""

    def __init__(
        self,
        reason: str,
        measure_key: Optional[str] = None,
        component_id: Optional[str] = None,
    ):
        self.reason = reason
        self.measure_key = measure_key
        self.component_id = component_id
        super().__init__(self._format())

    def _format(self) -> str:
        location = []
        if self.measure_key:
            location.append(f"measure={self.measure_key}")
        if self.component_id:
            location.append(f"component={self.component_id}")
        if location:
            return f"[{' '.join(location)}] {self.reason}"
        return self.reason

    def locate(self, measure_key: str, component_id: str) -> "ResolutionError":
        """Attach the owning measure/component if not already known."""
        if self.measure_key is None:
            self.measure_key = measure_key
        if self.component_id is None:
            self.component_id = component_id
        self.args = (self._format(),)
        return self

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "measureKey": self.measure_key,
            "componentId": self.component_id,
            "error": type(self).__name__,
            "reason": self.reason,
        }


class DatasetNotFoundError(ResolutionError):
    """The referenced dataset is unknown to, or unreachable through, the data source."""

    def __init__(self, dataset_key: str, detail: Optional[str] = None):
        self.dataset_key = dataset_key
        reason = f'Dataset "{dataset_key}" could not be fetched'
        if detail:
            reason = f"{reason}: {detail}"
        super().__init__(reason)


class FieldResolutionError(ResolutionError):
    """The declared field is absent from every fetched record."""

    def __init__(self, dataset_key: str, field_name: str):
        self.dataset_key = dataset_key
        self.field_name = field_name
        super().__init__(f'Field "{field_name}" not present in dataset "{dataset_key}"')


class DependencyFailedError(ResolutionError):
    """A measure-typed component references a measure that failed."""

    def __init__(self, dependency_key: str, cause: Optional[ResolutionError] = None):
        self.dependency_key = dependency_key
        self.cause = cause
        reason = f'Dependency "{dependency_key}" failed'
        if cause is not None:
            reason = f"{reason} ({cause})"
        super().__init__(reason)


# =============================================================================
# Batch Errors
# =============================================================================


class BatchExecutionError(MeasureEngineError):
    """One or more measures in a batch failed to resolve."""

    def __init__(
        self,
        failures: Dict[str, ResolutionError],
        partial_results: Optional[Dict[str, float]] = None,
    ):
        self.failures = dict(failures)
        self.partial_results = dict(partial_results or {})
        details = "; ".join(str(err) for _, err in sorted(self.failures.items()))
        super().__init__(f"{len(self.failures)} measure(s) failed: {details}")

    def to_dict(self) -> Dict[str, object]:
        return {
            "failures": [err.to_dict() for _, err in sorted(self.failures.items())],
            "partialResults": self.partial_results,
        }
