"""
Application factory - creates and configures the FastAPI application.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from strawberry.fastapi import GraphQLRouter

from taskgrove import __version__
from taskgrove.dependencies.services import ServiceContainer, get_services
from taskgrove.exceptions.handlers import setup_exception_handlers
from taskgrove.graphql_schema import get_context, schema
from taskgrove.middleware.logging_setup import setup_logging
from taskgrove.middleware.setup import setup_middleware
from taskgrove.monitoring import get_health_info, get_metrics
from taskgrove.tracing import instrument_database, instrument_fastapi, setup_tracing


@asynccontextmanager
async def lifespan(app):
    """Initialize services and tracing on startup."""
    logger = logging.getLogger(__name__)
    logger.info("Application starting up...")

    services = get_services()
    logger.info(f"Database ready at {services.db.db_path}")

    instrument_database()

    yield

    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app serving /graphql, /health and /metrics
    """
    setup_logging()

    app = FastAPI(
        title="taskgrove",
        description="Organizations, task forests and users over GraphQL",
        version=__version__,
        lifespan=lifespan
    )

    setup_middleware(app)
    setup_exception_handlers(app)

    # Middleware cannot be added once the app has started
    setup_tracing()
    instrument_fastapi(app)

    graphql_app = GraphQLRouter(schema, context_getter=get_context)
    app.include_router(graphql_app, prefix="/graphql")

    @app.get("/health")
    async def health_check(services: ServiceContainer = Depends(get_services)):
        """Health check with database status."""
        health_info = get_health_info(services.db)
        if health_info.get("status") == "unhealthy":
            return JSONResponse(content=health_info, status_code=503)
        return health_info

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)

    return app
