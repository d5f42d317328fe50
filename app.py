"""Main FastAPI application for the Moxie service."""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

# Configure logging BEFORE importing any modules that use logger
log_level = os.getenv('LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=getattr(logging, log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Import after logging is configured
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from moxie import __version__
from moxie.constants import HOST, PORT
from moxie.routers import (
    chat_router,
    conversations_router,
    health_router,
    plugins_router,
    providers_router,
    tools_router,
)
from moxie.runtime import MoxieRuntime


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the runtime on startup, drain plugins on shutdown."""
    logger.info("Starting Moxie service")
    logger.info(f"Working directory: {Path.cwd()}")

    runtime = MoxieRuntime.build()
    await runtime.startup()
    app.state.runtime = runtime
    try:
        yield
    finally:
        logger.info("Shutting down Moxie service")
        for warning in await runtime.shutdown():
            logger.warning(str(warning))


def create_app() -> FastAPI:
    app = FastAPI(
        title="Moxie",
        description="Local-first AI assistant with pluggable tools and chat providers",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)   # /health
    app.include_router(chat_router)     # /v1/chat
    app.include_router(plugins_router)  # /api/plugins
    app.include_router(tools_router)    # /api/tools
    app.include_router(providers_router)  # /api/providers
    app.include_router(conversations_router)  # /api/conversations
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host=HOST, port=PORT, reload=False)
