import inspect
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from openai import AsyncOpenAI

from routes.artwork_route import router as artwork_router
from routes.session_route import router as session_router
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import ServerSettings

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


def _build_openai_client() -> Optional[AsyncOpenAI]:
    """Return an AsyncOpenAI client, or None when no API key is configured.

    Without a key the record API keeps working and /api/session answers 500.
    """
    if not os.getenv("OPENAI_API_KEY"):
        LOGGER.warning("OPENAI_API_KEY is not set; credential issuing is disabled")
        return None
    try:
        return AsyncOpenAI()
    except Exception as exc:
        raise RuntimeError("Failed to initialize OpenAI Async client") from exc


async def _close_openai_client(client) -> None:
    closer = getattr(client, "close", None) or getattr(client, "aclose", None)
    if closer is None:
        return
    try:
        result = closer()
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        LOGGER.warning("Error closing OpenAI client: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Attach the artwork store, server settings and the OpenAI client used by
    the credential broker to `app.state`.

    The SQLite file lives at DATABASE_DIR/app.db and survives restarts.
    """
    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer
    app.state.settings = ServerSettings.from_env()
    app.state.openai_client = _build_openai_client()
    LOGGER.info("Artwork store ready at %s", db_initializer.db_path)

    try:
        yield
    finally:
        client = getattr(app.state, "openai_client", None)
        if client is not None:
            await _close_openai_client(client)


def create_app() -> FastAPI:
    """
    Create the art expert API: artwork records, session credentials, health.
    """
    app = FastAPI(title="Art Expert", lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Report whether the artwork store is initialized and credentials can be issued.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        has_openai = getattr(request.app.state, "openai_client", None) is not None
        return {"ok": True, "db_initialized": has_db, "openai_available": has_openai}

    app.include_router(artwork_router)
    app.include_router(session_router)

    return app


app = create_app()
