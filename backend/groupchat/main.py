"""Group Chat Backend Application.

This is the main entry point for the group chat service: clients join a
shared group, exchange messages broadcast to every member, and see live
typing indicators.

Modules:
    - chat: WebSocket transport, connection registry, broker, typing presence
    - store: DuckDB persistence gateway
    - users: Identity creation endpoints
    - groups: Group listing and message history
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from groupchat.chat.router import router as chat_router
from groupchat.chat.runtime import ChatRuntime
from groupchat.config import AppSettings, get_config
from groupchat.errors import ChatError
from groupchat.groups.router import router as groups_router
from groupchat.store.service import ChatStore
from groupchat.users.router import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

for _noisy in ("uvicorn.access", "websockets", "httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(config: Optional[AppSettings] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Settings to use; defaults to ``get_config()`` at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Startup
        settings = config or get_config()

        configured_level = getattr(logging, settings.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", settings.logging.level.upper())

        store = ChatStore(
            db_path=settings.database.path,
            seed_sample=settings.database.seed_sample,
        )
        app.state.chat = ChatRuntime(store, settings.chat)
        logger.info(
            f"Chat broker ready on http://{settings.server.host}:{settings.server.port}"
        )

        yield  # Application runs here

        # Shutdown
        app.state.chat.shutdown()
        store.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Group Chat API",
        description="Real-time group chat broker with typing indicators",
        version="0.1.0",
        lifespan=lifespan,
    )

    origins = (config or get_config()).server.allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
        return JSONResponse(
            {"error": exc.message, "code": exc.code},
            status_code=exc.status_code,
        )

    # Register all routers
    app.include_router(chat_router)
    app.include_router(groups_router)
    app.include_router(users_router)

    @app.get("/health")
    async def health(request: Request) -> dict:
        """Health check endpoint.

        Returns:
            dict: Status plus live connection and room counts.
        """
        runtime: ChatRuntime = request.app.state.chat
        return {
            "status": "ok",
            "connections": len(runtime.registry),
            "rooms": runtime.registry.rooms(),
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_config()
    uvicorn.run(
        "groupchat.main:app",
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level,
    )
