from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from backend import RoomStore, connect_store
from constants import LOG_FILE, LOG_LEVEL
from logging_config import get_logger, setup_logging
from realtime import RealtimeServer
from routers.rooms import rooms_router

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(store: Optional[RoomStore] = None) -> FastAPI:
    """Build the application.

    With no *store* the lifespan picks Redis or the in-memory fallback once at
    startup and closes it on shutdown; an injected store is left open for the
    caller to manage.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = store is None
        app.state.store = await connect_store() if owned else store
        app.state.realtime = RealtimeServer(app.state.store)
        logger.info(f"Server started with {app.state.store.name} store")
        try:
            yield
        finally:
            logger.info("Server shutting down, flushing pending room writes")
            await app.state.realtime.shutdown()
            if owned:
                await app.state.store.close()

    app = FastAPI(title="VTT room server", lifespan=lifespan)

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins
        allow_credentials=True,
        allow_methods=["*"],  # Allow all HTTP methods
        allow_headers=["*"],  # Allow all headers
    )

    app.include_router(rooms_router)

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz():
        return "ok"

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Realtime endpoint. Clients send JOIN_ROOM first, then state updates."""
        await app.state.realtime.serve(websocket)

    return app


app = create_app()
