"""
Measure Engine API application.

Startup registers the measure definitions before any request is served; an
invalid catalog raises out of the lifespan and the process does not start.
When DATABASE_URL is set the asyncpg pool is opened up front as well.

Run locally:
    uvicorn measure_engine.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from measure_engine import __version__
from measure_engine.api.measures import router as measures_router
from measure_engine.core.config import get_settings
from measure_engine.core.database import close_db, init_db
from measure_engine.core.dependencies import RegistryDep, get_registry

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    registry = get_registry()
    logger.info(f"Measure Engine API {__version__} starting with {len(registry)} measures")

    if settings.database_url:
        try:
            await init_db(settings)
        except Exception as e:
            # The pool is retried lazily on the first dataset fetch
            logger.error(f"Could not open database pool at startup: {e}")

    yield

    logger.info("Measure Engine API shutting down")
    await close_db()


app = FastAPI(
    title="Measure Engine API",
    version=__version__,
    description="Evaluate declarative measures against an entity, dimension and period.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(measures_router, prefix="/measures", tags=["measures"])


@app.get("/health")
async def health_check(registry: RegistryDep):
    """Liveness probe; also reports how many measures are registered."""
    return {"status": "healthy", "measures": len(registry)}


@app.get("/")
async def root():
    return {
        "name": "Measure Engine API",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("measure_engine.main:app", host="0.0.0.0", port=8000, reload=True)
