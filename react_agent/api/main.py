"""
FastAPI application for react-agent.

Exposes the agent through a native run API and an OpenAI-compatible
chat API usable from tools like OpenWebUI.

Usage:
    # Development server with auto-reload
    uvicorn react_agent.api.main:app --reload --host 0.0.0.0 --port 8000

    # Production server
    uvicorn react_agent.api.main:app --host 0.0.0.0 --port 8000 --workers 4

    # Debug mode (verbose logging)
    LOG_LEVEL=DEBUG uvicorn react_agent.api.main:app --reload --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import config
from ..tracing import init_tracing_client, shutdown_tracing
from .routes import chat, health, runs
from .runner import reset_orchestrator


def configure_logging():
    """Configure logging based on LOG_LEVEL environment variable."""
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("react_agent").setLevel(log_level)


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting react-agent API server")

    logger.info("=" * 60)
    logger.info("MODEL CONFIGURATION")
    logger.info("  Base URL: %s", config.model.base_url)
    logger.info("  Model: %s", config.model.model)
    logger.info("  Temperature: %s", config.model.temperature)
    logger.info("  Request Timeout: %ss", config.model.request_timeout)

    logger.info("-" * 60)
    logger.info("AGENT BUDGETS")
    logger.info("  Max Steps: %d", config.agent.max_steps)
    logger.info("  Run Timeout: %ss", config.agent.run_timeout)
    logger.info("  Tool Timeout: %ss", config.agent.tool_timeout)
    logger.info("  Tool Workers: %d", config.agent.max_tool_workers)
    logger.info("  Retry Attempts: %d", config.agent.retry.max_attempts)

    logger.info("-" * 60)
    logger.info("TOOL ENDPOINTS")
    logger.info("  Weather: %s", config.tools.weather.url)
    logger.info("  SearXNG: %s", config.tools.searxng.url)
    logger.info("  Enabled: %s", ", ".join(config.tools.enabled))

    logger.info("-" * 60)
    logger.info("LANGFUSE OBSERVABILITY")
    tracing_client = init_tracing_client(
        public_key=config.langfuse.public_key,
        secret_key=config.langfuse.secret_key,
        host=config.langfuse.host,
        debug=config.langfuse.debug,
    )
    if tracing_client.enabled:
        logger.info("  Status: ENABLED")
        logger.info("  Host: %s", config.langfuse.host or "https://cloud.langfuse.com")
    else:
        logger.info("  Status: DISABLED")
        if tracing_client.error:
            logger.info("  Reason: %s", tracing_client.error)

    logger.info("=" * 60)

    yield

    logger.info("Shutting down react-agent API server")
    reset_orchestrator()
    shutdown_tracing()
    logger.info("Tracing client shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="react-agent API",
        description=(
            "ReAct agent with tool calling. Use /v1/runs for the native result "
            "format, or point any OpenAI-compatible client at the /v1 endpoint."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Allow all origins; restrict in production deployments
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(runs.router, tags=["Runs"])
    app.include_router(chat.router, tags=["Chat"])

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log validation errors before returning 400 response."""
        logger.warning(
            "Validation error on %s %s: %s", request.method, request.url.path, exc.errors()
        )
        body = await request.body()
        logger.debug("Request body: %s", body.decode("utf-8", errors="replace")[:1000])
        return JSONResponse(
            status_code=400,
            content={"detail": jsonable_errors(exc)},
        )

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors with non-JSON values (e.g. exceptions in ctx) stringified."""
    return jsonable_encoder(exc.errors(), custom_encoder={Exception: str})


app = create_app()


def run_server():
    """
    Run the server using uvicorn.

    This is the entry point for running the server programmatically.
    """
    import uvicorn

    uvicorn.run(
        "react_agent.api.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
        workers=1 if config.server.reload else config.server.workers,
    )


if __name__ == "__main__":
    run_server()
