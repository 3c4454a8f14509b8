"""REST API routes for the netplay connection service."""

import logging
import os

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, ValidationError

from codec.connection_code import CodeError
from codec.endpoint import EndpointError
from discovery.stun import DiscoveryError
from rendezvous.client import RendezvousCancelled, RendezvousError, RendezvousTimeout
from session.bridge import NativeUnavailable
from session.connection import InvalidTransition, LaunchRefused, OperationInProgress
from session.manager import SessionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# These will be injected by main.py at startup
_connection = None
_session_manager = None
_store = None


def init_routes(connection, session_manager, store) -> None:
    """Inject service dependencies into the routes module."""
    global _connection, _session_manager, _store
    _connection = connection
    _session_manager = session_manager
    _store = store


# Most specific first: RendezvousTimeout subclasses RendezvousError.
_ERROR_STATUS = [
    ((CodeError, EndpointError, ValidationError), 400),
    ((OperationInProgress, LaunchRefused, InvalidTransition, RendezvousCancelled), 409),
    ((DiscoveryError,), 502),
    ((RendezvousTimeout,), 504),
    ((RendezvousError,), 502),
    ((NativeUnavailable,), 503),
    ((SessionError,), 500),
]


async def _call(coro):
    try:
        return await coro
    except Exception as e:
        for types, status in _ERROR_STATUS:
            if isinstance(e, types):
                raise HTTPException(status_code=status, detail=str(e)) from e
        raise


# --- Connection ---

@router.get("/connection")
async def get_connection():
    """Current connection panel state."""
    return _connection.snapshot().model_dump(mode="json")


class HostBody(BaseModel):
    local_port: int | None = Field(default=None, ge=1, le=65535)
    secret: str | None = None
    random_secret: bool = False


@router.post("/connection/host")
async def start_host(body: HostBody | None = None):
    body = body or HostBody()
    snap = await _call(_connection.start_host(
        local_port=body.local_port,
        secret=body.secret,
        random_secret=body.random_secret,
    ))
    return snap.model_dump(mode="json")


@router.post("/connection/join-intent")
async def join_intent():
    snap = await _call(_connection.join_intent())
    return snap.model_dump(mode="json")


class JoinBody(BaseModel):
    code: str
    local_port: int | None = Field(default=None, ge=1, le=65535)


@router.post("/connection/join")
async def join(body: JoinBody):
    snap = await _call(_connection.join(body.code, local_port=body.local_port))
    return snap.model_dump(mode="json")


class InviteBody(BaseModel):
    uri: str


@router.post("/connection/invite")
async def accept_invite(body: InviteBody):
    """Handle a deep link forwarded by the front-end."""
    snap = await _call(_connection.accept_invite(body.uri))
    return snap.model_dump(mode="json")


class RoomBody(BaseModel):
    server_url: str | None = None
    code: str
    password: str
    local_port: int | None = Field(default=None, ge=1, le=65535)


@router.post("/connection/room")
async def start_room(body: RoomBody):
    snap = await _call(_connection.start_room(
        body.code,
        body.password,
        server_url=body.server_url,
        local_port=body.local_port,
    ))
    return snap.model_dump(mode="json")


@router.post("/connection/cancel")
async def cancel_connection():
    snap = await _connection.cancel()
    return snap.model_dump(mode="json")


class NetplayBody(BaseModel):
    enabled: bool


@router.put("/netplay")
async def set_netplay(body: NetplayBody):
    snap = await _connection.set_netplay_enabled(body.enabled)
    return snap.model_dump(mode="json")


# --- Session ---

async def _launch():
    plan = _connection.launch_plan()
    await _session_manager.launch(plan)
    return plan


@router.post("/launch")
async def launch():
    """Start the native session with the resolved connection."""
    plan = await _call(_launch())
    return {"plan": plan.model_dump(mode="json"), "status": _session_manager.last_status}


@router.get("/netplay/status")
async def netplay_status():
    return {
        "status": _session_manager.last_ordinal,
        "message": _session_manager.last_status,
        "running": _session_manager.running,
    }


# --- Settings ---

class SettingsBody(BaseModel):
    rom_path: str | None = None
    local_port: int | None = Field(default=None, ge=1, le=65535)
    show_onscreen_controls: bool | None = None
    show_save_button: bool | None = None
    room_server_url: str | None = None


def _settings(params) -> dict:
    return params.model_dump(
        include={
            "rom_path",
            "local_port",
            "netplay_enabled",
            "show_onscreen_controls",
            "show_save_button",
            "room_server_url",
        }
    )


@router.get("/settings")
async def get_settings():
    return _settings(_store.params)


@router.put("/settings")
async def update_settings(body: SettingsBody):
    changes = body.model_dump(exclude_none=True)
    rom_path = changes.get("rom_path")
    if rom_path and not os.path.isfile(rom_path):
        raise HTTPException(status_code=400, detail=f"ROM not found: {rom_path}")
    params = _store.update(**changes)
    logger.info(f"Settings updated: {sorted(changes)}")
    return _settings(params)
