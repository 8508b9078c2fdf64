"""
Execution Orchestrator Tests

End-to-end evaluation through DataFrameTableSource:
- single table measure with non-numeric values dropped (A = 15)
- table minus measure composition (B = 7 - 15 = -8)
- batch results contain only requested keys, shared dependencies computed once
- failures propagate to dependents while independent siblings complete
- memoization is keyed by context (component time intelligence)
- the bundled supply-chain catalog evaluated over sample data
"""

from unittest.mock import patch

import pandas as pd
import pytest

from measure_engine.core.exceptions import (
    BatchExecutionError,
    CircularDependencyError,
    DatasetNotFoundError,
    DependencyFailedError,
    FieldResolutionError,
    MeasureNotFoundError,
)
from measure_engine.data.frame_source import DataFrameTableSource
from measure_engine.models.schemas import ExecutionContext
from measure_engine.services.operations import compose
from measure_engine.services.orchestrator import context_fingerprint
from measure_engine.services.registry import MeasureRegistry
from measure_engine.tests.conftest import (
    CountingSource,
    make_orchestrator,
    make_registry,
    measure_component,
    measure_definition,
    table_component,
)


JUNE = {'year': 2025, 'month': 6}


@pytest.fixture
def scenario_source() -> CountingSource:
    return CountingSource(DataFrameTableSource({
        'sales': pd.DataFrame({
            'qty': [10, 5, 'x'],
            'date': ['2025-06-02', '2025-06-15', '2025-06-20'],
        }),
        'other': pd.DataFrame({
            'amount': [7, 100],
            'date': ['2025-06-10', '2025-07-01'],
        }),
    }))


@pytest.fixture
def scenario_registry() -> MeasureRegistry:
    return make_registry(
        measure_definition('A', table_component('A-qty', 'sales', 'qty')),
        measure_definition(
            'B',
            table_component('B-other', 'other', 'amount', sort_order=0, operation='sum'),
            measure_component('B-A', 'A', sort_order=1, operation='subtract'),
        ),
    )


class TestScenarios:

    @pytest.mark.asyncio
    async def test_table_measure_drops_non_numeric(self, scenario_registry, scenario_source):
        orchestrator = make_orchestrator(scenario_registry, scenario_source)
        assert await orchestrator.execute_measure('A', context=JUNE) == 15.0

    @pytest.mark.asyncio
    async def test_table_minus_measure(self, scenario_registry, scenario_source):
        orchestrator = make_orchestrator(scenario_registry, scenario_source)
        assert await orchestrator.execute_measure('B', context=JUNE) == -8.0

    @pytest.mark.asyncio
    async def test_batch_returns_requested_keys_only(self, scenario_registry, scenario_source):
        orchestrator = make_orchestrator(scenario_registry, scenario_source)
        assert await orchestrator.execute_batch(['B'], context=JUNE) == {'B': -8.0}

    @pytest.mark.asyncio
    async def test_dependency_computed_once(self, scenario_registry, scenario_source):
        orchestrator = make_orchestrator(scenario_registry, scenario_source)
        with patch('measure_engine.services.orchestrator.compose', wraps=compose) as spy:
            results = await orchestrator.execute_batch(['B', 'A'], context=JUNE)

        assert results == {'B': -8.0, 'A': 15.0}
        assert spy.call_count == 2
        assert scenario_source.fetches_of('sales') == 1

    @pytest.mark.asyncio
    async def test_dependency_computed_once_when_only_dependent_requested(self, scenario_registry, scenario_source):
        orchestrator = make_orchestrator(scenario_registry, scenario_source)
        with patch('measure_engine.services.orchestrator.compose', wraps=compose) as spy:
            results = await orchestrator.execute_batch(['B'], context=JUNE)

        assert results == {'B': -8.0}
        assert spy.call_count == 2
        assert scenario_source.fetches_of('sales') == 1
        assert scenario_source.fetches_of('other') == 1

    @pytest.mark.asyncio
    async def test_memo_not_shared_between_calls(self, scenario_registry, scenario_source):
        orchestrator = make_orchestrator(scenario_registry, scenario_source)
        await orchestrator.execute_measure('A', context=JUNE)
        assert await orchestrator.execute_measure('A', context={'year': 2025, 'month': 7}) == 0.0
        assert scenario_source.fetches_of('sales') == 2

    @pytest.mark.asyncio
    async def test_empty_batch(self, scenario_registry, scenario_source):
        orchestrator = make_orchestrator(scenario_registry, scenario_source)
        assert await orchestrator.execute_batch([], context=JUNE) == {}

    @pytest.mark.asyncio
    async def test_unknown_measure(self, scenario_registry, scenario_source):
        orchestrator = make_orchestrator(scenario_registry, scenario_source)
        with pytest.raises(MeasureNotFoundError):
            await orchestrator.execute_measure('Z', context=JUNE)

    @pytest.mark.asyncio
    async def test_end_boundary_excluded(self, scenario_registry, scenario_source):
        registry = make_registry(measure_definition('O', table_component('O-c', 'other', 'amount')))
        orchestrator = make_orchestrator(registry, scenario_source)
        assert await orchestrator.execute_measure('O', context=JUNE) == 7.0
        assert await orchestrator.execute_measure('O', context={'year': 2025, 'month': 7}) == 100.0


class TestFailurePropagation:

    @pytest.fixture
    def registry(self) -> MeasureRegistry:
        return make_registry(
            measure_definition('Broken', table_component('Broken-c', 'ghost', 'qty')),
            measure_definition('NoField', table_component('NoField-c', 'sales', 'missing')),
            measure_definition('Dependent', measure_component('Dependent-broken', 'Broken')),
            measure_definition('Indirect', measure_component('Indirect-dep', 'Dependent')),
            measure_definition('Healthy', table_component('Healthy-c', 'sales', 'qty')),
        )

    @pytest.mark.asyncio
    async def test_siblings_complete_and_failures_reported(self, registry, scenario_source):
        orchestrator = make_orchestrator(registry, scenario_source)
        with pytest.raises(BatchExecutionError) as exc_info:
            await orchestrator.execute_batch(['Indirect', 'Healthy', 'NoField'], context=JUNE)

        error = exc_info.value
        assert error.partial_results == {'Healthy': 15.0}
        assert set(error.failures) == {'Broken', 'Dependent', 'Indirect', 'NoField'}

        broken = error.failures['Broken']
        assert isinstance(broken, DatasetNotFoundError)
        assert (broken.measure_key, broken.component_id) == ('Broken', 'Broken-c')

        dependent = error.failures['Dependent']
        assert isinstance(dependent, DependencyFailedError)
        assert dependent.dependency_key == 'Broken'
        assert (dependent.measure_key, dependent.component_id) == ('Dependent', 'Dependent-broken')

        assert isinstance(error.failures['Indirect'], DependencyFailedError)

        no_field = error.failures['NoField']
        assert isinstance(no_field, FieldResolutionError)
        assert no_field.field_name == 'missing'

    @pytest.mark.asyncio
    async def test_failure_is_never_zero(self, registry, scenario_source):
        orchestrator = make_orchestrator(registry, scenario_source)
        with pytest.raises(BatchExecutionError):
            await orchestrator.execute_measure('Dependent', context=JUNE)

    @pytest.mark.asyncio
    async def test_error_payload_names_measure_and_component(self, registry, scenario_source):
        orchestrator = make_orchestrator(registry, scenario_source)
        with pytest.raises(BatchExecutionError) as exc_info:
            await orchestrator.execute_measure('Broken', context=JUNE)
        payload = exc_info.value.to_dict()
        assert payload['failures'][0]['measureKey'] == 'Broken'
        assert payload['failures'][0]['componentId'] == 'Broken-c'
        assert payload['failures'][0]['error'] == 'DatasetNotFoundError'

    @pytest.mark.asyncio
    async def test_field_check_skipped_for_count(self, scenario_source):
        registry = make_registry(measure_definition(
            'Rows', table_component('Rows-c', 'sales', 'missing', aggregation='count'),
        ))
        orchestrator = make_orchestrator(registry, scenario_source)
        assert await orchestrator.execute_measure('Rows', context=JUNE) == 3.0

    @pytest.mark.asyncio
    async def test_no_records_is_zero_not_error(self, scenario_source):
        registry = make_registry(measure_definition('A', table_component('A-c', 'sales', 'missing')))
        orchestrator = make_orchestrator(registry, scenario_source)
        assert await orchestrator.execute_measure('A', context={'year': 2024, 'month': 1}) == 0.0

    @pytest.mark.asyncio
    async def test_empty_dataset_is_zero(self):
        source = CountingSource(DataFrameTableSource({'sales': []}))
        registry = make_registry(measure_definition('A', table_component('A-c', 'sales', 'qty')))
        orchestrator = make_orchestrator(registry, source)
        assert await orchestrator.execute_measure('A', context=JUNE) == 0.0

    @pytest.mark.asyncio
    async def test_unknown_dataset_fails_before_fetching(self, registry, scenario_source):
        orchestrator = make_orchestrator(registry, scenario_source)
        with pytest.raises(BatchExecutionError) as exc_info:
            await orchestrator.execute_measure('Broken', context=JUNE)

        assert isinstance(exc_info.value.failures['Broken'], DatasetNotFoundError)
        assert scenario_source.fetches_of('ghost') == 0

    @pytest.mark.asyncio
    async def test_cycle_blocks_evaluation(self, scenario_source):
        registry = MeasureRegistry()
        registry.register(measure_definition('X', measure_component('X-y', 'Y')))
        registry.register(measure_definition('Y', measure_component('Y-x', 'X')))
        orchestrator = make_orchestrator(registry, scenario_source)
        with pytest.raises(CircularDependencyError):
            await orchestrator.execute_measure('X', context=JUNE)
        assert scenario_source.queries == []


class TestContextHandling:

    @pytest.mark.asyncio
    async def test_component_time_intelligence_gets_own_memo_entry(self, scenario_source):
        registry = make_registry(
            measure_definition('A', table_component('A-c', 'sales', 'qty')),
            measure_definition('LastYear', measure_component(
                'LastYear-a', 'A', timeIntelligence={'type': 'sameperiodlastyear'},
            )),
        )
        orchestrator = make_orchestrator(registry, scenario_source)
        results = await orchestrator.execute_batch(['A', 'LastYear'], context=JUNE)

        assert results == {'A': 15.0, 'LastYear': 0.0}
        windows = sorted(q.window.start.isoformat() for q in scenario_source.queries)
        assert windows == ['2024-06-01', '2025-06-01']

    def test_fingerprint_distinguishes_contexts(self):
        base = ExecutionContext(entityId='SA', year=2025, month=6)
        assert context_fingerprint(base) == context_fingerprint(ExecutionContext(countryId='SA', year=2025, month=6))
        assert context_fingerprint(base) != context_fingerprint(base.with_period(2025, 7))
        assert context_fingerprint(base) != context_fingerprint(ExecutionContext(entityId='SA', year=2025, month=6, channel='x'))

    @pytest.mark.asyncio
    async def test_execution_filters_restrict_records(self, catalog_registry, frame_source, sa_context):
        orchestrator = make_orchestrator(catalog_registry, frame_source)
        assert await orchestrator.execute_measure('grossSales', {'docType': ['sales', 'return']}, sa_context) == 150.0
        assert await orchestrator.execute_measure('grossSales', {'warehouse': 'W1'}, sa_context) == 0.0

    @pytest.mark.asyncio
    async def test_context_extra_keys_are_filters(self, catalog_registry, frame_source, sa_context):
        orchestrator = make_orchestrator(catalog_registry, frame_source)
        context = dict(sa_context, docType='Return')
        assert await orchestrator.execute_measure('returns', context=context) == 20.0
        assert await orchestrator.execute_measure('grossSales', context=context) == 0.0

    @pytest.mark.asyncio
    async def test_execution_plan(self, scenario_registry, scenario_source):
        orchestrator = make_orchestrator(scenario_registry, scenario_source)
        plan = orchestrator.get_execution_plan(['B'])
        assert plan.executionOrder == ['A', 'B']
        assert plan.levels == [['A'], ['B']]
        assert plan.graph == {'A': [], 'B': ['A']}


class TestBundledCatalog:

    @pytest.mark.asyncio
    async def test_sales_measures(self, catalog_orchestrator, sa_context):
        results = await catalog_orchestrator.execute_batch(
            ['grossSales', 'returns', 'netSales', 'selectedMeasure'], context=sa_context,
        )
        assert results == {'grossSales': 150.0, 'returns': 20.0, 'netSales': 130.0, 'selectedMeasure': 130.0}

    @pytest.mark.asyncio
    async def test_entity_restriction(self, catalog_orchestrator):
        value = await catalog_orchestrator.execute_measure(
            'grossSales', context={'entityId': 'AE', 'year': 2025, 'month': 6},
        )
        assert value == 999.0

    @pytest.mark.asyncio
    async def test_time_intelligence_measures(self, catalog_orchestrator, sa_context):
        results = await catalog_orchestrator.execute_batch(
            ['samePeriodLastYear', 'growthVsSPLY', 'movingAverageSales', 'ytdAMS', 'budgetAchievement'],
            context=sa_context,
        )
        assert results['samePeriodLastYear'] == 120.0
        assert results['growthVsSPLY'] == pytest.approx(130.0 / 120.0)
        assert results['movingAverageSales'] == 120.0
        assert results['ytdAMS'] == 120.0
        assert results['budgetAchievement'] == pytest.approx(0.65)

    @pytest.mark.asyncio
    async def test_undated_datasets(self, catalog_orchestrator, sa_context):
        results = await catalog_orchestrator.execute_batch(
            ['targetCoverStock', 'procurementSafeMargin'], context=sa_context,
        )
        assert results == {'targetCoverStock': 3.0, 'procurementSafeMargin': pytest.approx(1.1)}

    @pytest.mark.asyncio
    async def test_selected_measure_falls_back_to_forecast(self, catalog_orchestrator):
        value = await catalog_orchestrator.execute_measure(
            'selectedMeasure', context={'entityId': 'SA', 'dimensionId': 'SKU-1', 'year': 2025, 'month': 8},
        )
        assert value == 80.0

    @pytest.mark.asyncio
    async def test_issues_from_stock_uses_actuals_for_current_month(self, catalog_orchestrator, sa_context):
        assert await catalog_orchestrator.execute_measure('issuesFromStock', context=sa_context) == 135.0

    @pytest.mark.asyncio
    async def test_issues_from_stock_uses_forecast_for_future_month(self, catalog_orchestrator):
        value = await catalog_orchestrator.execute_measure(
            'issuesFromStock', context={'entityId': 'SA', 'dimensionId': 'SKU-1', 'year': 2025, 'month': 8},
        )
        assert value == pytest.approx(88.0)

    @pytest.mark.asyncio
    async def test_unconfigured_dataset_fails_loudly(self, catalog_orchestrator, sa_context):
        with pytest.raises(BatchExecutionError) as exc_info:
            await catalog_orchestrator.execute_measure('closingStock', context=sa_context)
        failure = exc_info.value.failures['closingStock']
        assert isinstance(failure, DatasetNotFoundError)
        assert failure.component_id == 'closingStock-actual'
