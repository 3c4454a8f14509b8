"""
SNES Online connection service: FastAPI application entry point.

Owns the rendezvous core (connection codes, STUN, room server) and the native
session hand-off; serves the REST API and WebSocket event stream.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from api.routes import init_routes, router
from api.websocket import EventStream
from config import API_HOST, API_PORT, APP_VERSION, LOG_LEVEL, NATIVE_LIB_PATH
from discovery.stun import StunClient
from session.bridge import NativeSessionBridge, NativeUnavailable
from session.connection import ConnectionStateMachine
from session.manager import SessionManager
from session.store import SessionStore

# --- Logging ---
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _load_bridge():
    try:
        return NativeSessionBridge(NATIVE_LIB_PATH)
    except NativeUnavailable as e:
        logger.warning(f"{e}. Launch is disabled.")
        return None


# --- Service singletons ---
session_store = SessionStore()
connection = ConnectionStateMachine(session_store, stun=StunClient())
session_manager = SessionManager(_load_bridge())
event_stream = EventStream(
    lambda: ("connection_state", connection.snapshot().model_dump(mode="json"))
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire events on startup; stop background work on shutdown."""
    logger.info("Starting SNES Online connection service...")

    try:
        connection.on_change(event_stream.handle_event)
        session_manager.on_event(event_stream.handle_event)

        snap = connection.snapshot()
        logger.info(
            f"Connection service ready. API: {API_HOST}:{API_PORT}, "
            f"state: {snap.state.value}, netplay: {snap.netplay_enabled}"
        )

        yield

    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise
    finally:
        logger.info("Shutting down connection service...")
        connection.shutdown()
        await session_manager.stop()


# --- FastAPI app ---
app = FastAPI(
    title="SNES Online Connection Service",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173", "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


# Inject services into routes
init_routes(connection, session_manager, session_store)
app.include_router(router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await event_stream.attach(websocket)
    try:
        while True:
            # Keep the connection alive; clients don't send anything
            await websocket.receive_text()
    except WebSocketDisconnect:
        await event_stream.detach(websocket)
    except Exception as e:
        logger.debug(f"WebSocket receive failed: {e}")
        await event_stream.detach(websocket)


# --- Static Files (Frontend) ---
BASE_DIR = Path(__file__).parent.parent / "frontend" / "dist"

if BASE_DIR.exists():
    app.mount("/assets", StaticFiles(directory=BASE_DIR / "assets"), name="assets")

    @app.get("/")
    async def read_index():
        return FileResponse(BASE_DIR / "index.html")
else:
    logger.info(f"Frontend dist not found at {BASE_DIR}. API only mode.")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )
