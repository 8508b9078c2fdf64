"""
API routers for the measure engine.

Routers:
- measures: catalog, definitions, execution and execution plans (/measures)
"""

from measure_engine.api.measures import router as measures_router


__all__ = ['measures_router']
