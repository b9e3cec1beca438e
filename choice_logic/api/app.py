"""
FastAPI application factory for the choice logic backend.

This is the composition root: it builds the submission guard and the
render session store (which attaches a live runner to every rendered
form), hands both the shared choice evaluator, and wires the routes.

Run with:
    uvicorn choice_logic.api.app:app --reload
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from choice_logic.api.routes import configure_routes, router
from choice_logic.core.session import RenderSessionStore
from choice_logic.core.submission import SubmissionGuard
from choice_logic.core.visibility import is_choice_visible

# Load environment variables from .env
load_dotenv()

# Logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    application = FastAPI(
        title="Choice Logic",
        description="Conditional visibility for individual form choices",
        version="0.1.0",
    )

    # CORS — allow all origins in development
    allowed_origins = os.getenv("CORS_ALLOWED_ORIGINS", "*").split(",")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Live and submission contexts share the same evaluator
    guard = SubmissionGuard(evaluate=is_choice_visible)

    session_timeout = int(os.getenv("SESSION_TIMEOUT_SECONDS", "1800"))
    debounce_ms = int(os.getenv("CHOICE_LOGIC_DEBOUNCE_MS", "50"))
    session_store = RenderSessionStore(
        timeout_seconds=session_timeout,
        debounce_seconds=debounce_ms / 1000,
        evaluate=is_choice_visible,
    )

    # Configure routes with dependencies
    configure_routes(session_store, guard)
    application.include_router(router, prefix="/api")

    @application.on_event("startup")
    async def on_startup():
        logger.info("Choice logic backend starting up")
        logger.info("Session timeout: %d seconds", session_timeout)
        logger.info("Live evaluation debounce: %d ms", debounce_ms)

    return application


# Create the app instance (used by uvicorn)
app = create_app()
