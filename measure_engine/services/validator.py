"""
Structural validation of measure definitions.

Pydantic enforces the schema (required fields such as ``sortOrder``, the
source tagged union, enum values). This module adds the checks that span
fields or measures:

- duplicate component ids within a measure
- ``in``/``notIn`` filters without a non-empty ``values`` list
- comparison filters without a ``value``
- circular measure references

Results are returned as ValidationResult rather than raised so callers can
report every problem at once; the registry turns an invalid result into a
ConfigurationError.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from measure_engine.core.exceptions import ValidationIssue
from measure_engine.models.enums import FilterOperator
from measure_engine.models.schemas import FilterLogic, Measure


_VALUELESS_OPERATORS = {FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL}
_LIST_OPERATORS = {FilterOperator.IN, FilterOperator.NOT_IN}


@dataclass
class ValidationResult:
    """Outcome of validating one or more measures."""

    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)


def issues_from_pydantic(error: ValidationError, prefix: str = '') -> List[ValidationIssue]:
    """Convert a pydantic ValidationError into dotted-path issues."""
    issues = []
    for detail in error.errors():
        path = '.'.join(str(part) for part in detail.get('loc', ()))
        if prefix:
            path = f"{prefix}.{path}" if path else prefix
        issues.append(ValidationIssue(path=path or '<root>', message=detail.get('msg', 'invalid')))
    return issues


def parse_measure(definition: Union[Measure, Mapping[str, Any]]) -> Measure:
    """
    Return a Measure, validating raw mappings.

    Raises:
        pydantic.ValidationError: If a raw definition does not match the schema.
    """
    if isinstance(definition, Measure):
        return definition
    return Measure.model_validate(dict(definition))


def _validate_filters(filters: FilterLogic, path: str) -> List[ValidationIssue]:
    issues = []
    for index, condition in enumerate(filters.conditions):
        condition_path = f"{path}.conditions[{index}]"
        operator = FilterOperator(condition.operator)
        if operator in _LIST_OPERATORS:
            if not condition.values:
                issues.append(ValidationIssue(
                    f"{condition_path}.values",
                    f'Operator "{operator.value}" requires a non-empty values array',
                ))
        elif operator not in _VALUELESS_OPERATORS and condition.value is None:
            issues.append(ValidationIssue(
                f"{condition_path}.value",
                f'Operator "{operator.value}" requires a value',
            ))
    return issues


def validate_measure(definition: Union[Measure, Mapping[str, Any]]) -> ValidationResult:
    """Validate a single measure definition (schema plus cross-field checks)."""
    try:
        measure = parse_measure(definition)
    except ValidationError as exc:
        return ValidationResult(valid=False, errors=issues_from_pydantic(exc))

    errors: List[ValidationIssue] = []

    seen_ids: Dict[str, int] = {}
    for index, component in enumerate(measure.components):
        path = f"components[{index}]"
        if component.id in seen_ids:
            errors.append(ValidationIssue(
                f"{path}.id",
                f'Duplicate component id "{component.id}" '
                f'(also at components[{seen_ids[component.id]}])',
            ))
        else:
            seen_ids[component.id] = index

        if component.filters is not None:
            errors.extend(_validate_filters(component.filters, f"{path}.filters"))

    return ValidationResult(valid=not errors, errors=errors)


def detect_circular_dependencies(
    measures: Mapping[str, Measure],
    measure_key: str,
) -> Optional[List[str]]:
    """
    Find a reference cycle reachable from ``measure_key``.

    Unknown keys are skipped; they are reported as unresolved references
    elsewhere.

    Returns:
        The cycle as a path that starts and ends on the same key
        (e.g. ['A', 'B', 'A']), or None.
    """
    done = set()
    stack: List[str] = []
    on_stack = set()

    def visit(key: str) -> Optional[List[str]]:
        if key in on_stack:
            return stack[stack.index(key):] + [key]
        if key in done or key not in measures:
            return None

        stack.append(key)
        on_stack.add(key)
        for dependency in measures[key].referenced_measure_keys():
            cycle = visit(dependency)
            if cycle:
                return cycle
        stack.pop()
        on_stack.discard(key)
        done.add(key)
        return None

    return visit(measure_key)


def validate_all_measures(measures: Mapping[str, Measure]) -> ValidationResult:
    """Validate every measure, then check references and cycles across the set."""
    errors: List[ValidationIssue] = []

    for key, measure in measures.items():
        result = validate_measure(measure)
        errors.extend(ValidationIssue(f"{key}.{e.path}", e.message) for e in result.errors)

        for dependency in measure.referenced_measure_keys():
            if dependency not in measures:
                errors.append(ValidationIssue(
                    key, f'References unknown measure "{dependency}"'
                ))

        cycle = detect_circular_dependencies(measures, key)
        if cycle:
            errors.append(ValidationIssue(
                key, f"Circular dependency detected: {' -> '.join(cycle)}"
            ))

    return ValidationResult(valid=not errors, errors=errors)
