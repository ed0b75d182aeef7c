"""Forge Review webhook server.

FastAPI application receiving GitHub pull request webhooks.

Usage:
    forge-review serve --port 8765

    # Or with uvicorn directly:
    uvicorn forge_review.api.server:app --host 0.0.0.0 --port 8765
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI

from .. import __version__
from ..config import ReviewConfig
from ..logging_setup import configure_logging
from .webhook import router, set_config

logger = structlog.get_logger(__name__)


def create_app(config: ReviewConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        review_config = config or ReviewConfig.from_env()
        review_config.validate()
        set_config(review_config)
        logger.info(
            "Forge Review server started",
            model=review_config.model,
            signature_required=bool(review_config.webhook_secret),
        )

        yield

        logger.info("Shutting down Forge Review server")

    app = FastAPI(
        title="Forge Review",
        description="Pull request review webhook",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def run(host: str = "0.0.0.0", port: int = 8765, debug: bool = False) -> None:
    """Run the webhook server.

    Args:
        host: Host to bind to
        port: Port to listen on
        debug: Log at debug level
    """
    configure_logging(debug)
    logger.info("Starting server", url=f"http://{host}:{port}")
    uvicorn.run(
        "forge_review.api.server:create_app",
        factory=True,
        host=host,
        port=port,
        log_level="debug" if debug else "info",
    )
