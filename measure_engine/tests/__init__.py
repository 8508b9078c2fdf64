'''
Measure Engine Test Suite

Test Modules:
-------------
- test_time_window.py: Time intelligence windows and period predicates
- test_filters.py: Filter operators and AND/OR combination
- test_operations.py: Component operations and composition
- test_registry.py: Registration, validation, dependency graph, levels
- test_orchestrator.py: Batch evaluation, memoization, failure propagation
- test_sources.py: Conditional sources, hasData probe, directive precedence
- test_data_sources.py: DataFrame and PostgreSQL tabular data sources
- test_catalog.py: Loading measure definitions from JSON
- test_months_cover.py: Stock cover in months
- test_api.py: Measures API endpoints

Run with:
    pytest measure_engine/tests -v
    pytest measure_engine/tests -m "not property"
'''
