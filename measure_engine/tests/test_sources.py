"""
Component Source Resolution Tests

Conditional branch selection (period predicates, hasData probe), time
intelligence precedence and the probe's behaviour of not evaluating the
probed measure.
"""

from datetime import date

import pandas as pd
import pytest

from measure_engine.data.frame_source import DataFrameTableSource
from measure_engine.models.schemas import ExecutionContext, Measure
from measure_engine.services.sources import SourceResolver
from measure_engine.tests.conftest import (
    CountingSource,
    make_orchestrator,
    make_registry,
    measure_component,
    measure_definition,
    table_component,
)


@pytest.fixture
def source() -> CountingSource:
    return CountingSource(DataFrameTableSource({
        'actuals': pd.DataFrame({
            'qty': [10, 20, 4],
            'kind': ['A', 'A', 'B'],
            'date': ['2025-05-03', '2025-06-03', '2025-06-04'],
        }),
        'forecast': pd.DataFrame({
            'qty': [7, 8, 9],
            'date': ['2025-05-01', '2025-06-01', '2025-07-01'],
        }),
    }))


def _conditional(key, conditions, primary=None, fallback=None, **extra):
    primary = primary or {'type': 'table', 'tableKey': 'actuals', 'fieldName': 'qty'}
    fallback = fallback or {'type': 'table', 'tableKey': 'forecast', 'fieldName': 'qty'}
    component = {
        'id': f'{key}-c',
        'name': 'conditional',
        'source': {'type': 'conditional'},
        'conditionalConfig': {
            'conditions': conditions,
            'primarySource': primary,
            'fallbackSource': fallback,
        },
        'sortOrder': 0,
        'operation': 'conditional',
    }
    component.update(extra)
    return measure_definition(key, component)


async def _run(registry, source, key, year, month, **context):
    orchestrator = make_orchestrator(registry, source, today=date(2025, 6, 15))
    return await orchestrator.execute_measure(key, context=dict(year=year, month=month, **context))


class TestPeriodPredicates:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("month,expected", [(5, 7.0), (6, 24.0), (7, 9.0)])
    async def test_is_current_month(self, source, month, expected):
        registry = make_registry(_conditional('C', {'isCurrentMonth': True}))
        assert await _run(registry, source, 'C', 2025, month) == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("month,expected", [(5, 10.0), (6, 8.0), (7, 9.0)])
    async def test_is_past_month(self, source, month, expected):
        registry = make_registry(_conditional('C', {'isPastMonth': True}))
        assert await _run(registry, source, 'C', 2025, month) == expected

    @pytest.mark.asyncio
    async def test_predicate_declared_false(self, source):
        registry = make_registry(_conditional('C', {'isFutureMonth': False}))
        assert await _run(registry, source, 'C', 2025, 6) == 24.0
        assert await _run(registry, source, 'C', 2025, 7) == 9.0

    @pytest.mark.asyncio
    async def test_no_declared_predicates_uses_primary(self, source):
        registry = make_registry(_conditional('C', {}))
        assert await _run(registry, source, 'C', 2025, 5) == 10.0

    @pytest.mark.asyncio
    async def test_all_declared_predicates_must_hold(self, source):
        registry = make_registry(_conditional('C', {'isCurrentMonth': True, 'hasData': True}))
        assert await _run(registry, source, 'C', 2025, 6) == 24.0
        assert await _run(registry, source, 'C', 2025, 5) == 7.0


class TestHasData:

    @pytest.mark.asyncio
    async def test_table_primary_with_records(self, source):
        registry = make_registry(_conditional('C', {'hasData': True}))
        assert await _run(registry, source, 'C', 2025, 6) == 24.0

    @pytest.mark.asyncio
    async def test_table_primary_without_records(self, source):
        registry = make_registry(_conditional('C', {'hasData': True}))
        assert await _run(registry, source, 'C', 2025, 7) == 9.0

    @pytest.mark.asyncio
    async def test_component_filters_apply_to_has_data(self, source):
        registry = make_registry(_conditional(
            'C', {'hasData': True},
            filters={'conditions': [{'column': 'kind', 'operator': 'equals', 'value': 'B'}]},
        ))
        assert await _run(registry, source, 'C', 2025, 6) == 4.0
        # Filters also apply to the fallback branch
        assert await _run(registry, source, 'C', 2025, 5) == 0.0

    @pytest.mark.asyncio
    async def test_has_data_false_expected(self, source):
        registry = make_registry(_conditional('C', {'hasData': False}))
        assert await _run(registry, source, 'C', 2025, 6) == 8.0
        assert await _run(registry, source, 'C', 2025, 7) == 0.0

    @pytest.mark.asyncio
    async def test_measure_primary_checks_components(self, source):
        registry = make_registry(
            measure_definition('Actual', table_component('Actual-c', 'actuals', 'qty')),
            _conditional('C', {'hasData': True}, primary={'type': 'measure', 'measureKey': 'Actual'}),
        )
        assert await _run(registry, source, 'C', 2025, 6) == 24.0
        assert await _run(registry, source, 'C', 2025, 7) == 9.0

    @pytest.mark.asyncio
    async def test_has_data_does_not_evaluate_measure(self, source):
        registry = make_registry(
            measure_definition('Actual', table_component('Actual-c', 'actuals', 'qty')),
            _conditional('C', {'hasData': True}, primary={'type': 'measure', 'measureKey': 'Actual'}),
        )
        calls = []

        async def evaluate(key, context):
            calls.append(key)
            return 0.0

        resolver = SourceResolver(registry, source, evaluate, lambda ctx: repr(ctx))
        measure: Measure = registry.get('C')
        component = measure.components[0]
        context = ExecutionContext(year=2025, month=6)

        present = await resolver.has_data(component.conditionalConfig.primarySource, measure, component, context)

        assert present is True
        assert calls == []


class TestTimeIntelligencePrecedence:

    @pytest.mark.asyncio
    async def test_component_over_measure_over_context(self, source):
        registry = make_registry(
            measure_definition(
                'M',
                table_component('M-own', 'forecast', 'qty', sort_order=0,
                                timeIntelligence={'type': 'forward', 'periods': 1}),
                table_component('M-inherited', 'forecast', 'qty', sort_order=1),
                timeIntelligence={'type': 'rolling', 'periods': 1},
            ),
            measure_definition('Plain', table_component('Plain-c', 'forecast', 'qty')),
        )
        # M-own: July (9); M-inherited: rolling 1 -> May (7)
        assert await _run(registry, source, 'M', 2025, 6) == 16.0

        # Context directive applies when neither component nor measure has one
        assert await _run(
            registry, source, 'Plain', 2025, 6,
            timeIntelligence={'type': 'forward', 'periods': 1},
        ) == 9.0

    @pytest.mark.asyncio
    async def test_measure_component_directive_replaces_context_directive(self, source):
        registry = make_registry(
            measure_definition('Plain', table_component('Plain-c', 'forecast', 'qty')),
            measure_definition('Next', measure_component(
                'Next-plain', 'Plain', timeIntelligence={'type': 'forward', 'periods': 1},
            )),
        )
        assert await _run(
            registry, source, 'Next', 2025, 6,
            timeIntelligence={'type': 'rolling', 'periods': 1},
        ) == 9.0
