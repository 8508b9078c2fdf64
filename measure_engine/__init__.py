"""
Measure Engine Package.

Declarative measure calculation engine for the supply-chain operations console.
Evaluates registered measure definitions (sales, stock, forecast and cover
formulas) against an execution context of entity, dimension and period.

Subpackages:
    - api: FastAPI route handlers exposing execution and introspection
    - core: Configuration, exceptions, database, and dependencies
    - models: Pydantic schemas and enums for measure definitions
    - services: Time windows, filters, source resolution, operations,
      registry, and orchestration
    - data: Tabular data source collaborators (pandas, PostgreSQL)
    - catalog: Bundled measure definitions and the JSON loader
"""

__version__ = "1.0.0"
