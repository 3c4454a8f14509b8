"""Models shared by the connection state machine, the store and the API."""

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field

from config import DEFAULT_LOCAL_PORT, DEFAULT_ROOM_SERVER_URL


class Role(IntEnum):
    """Netplay role; doubles as the native local player number."""
    UNASSIGNED = 0
    HOST = 1
    JOIN = 2


class ConnectionUiState(str, Enum):
    """What the connection panel shows and whether a netplay launch is allowed."""
    IDLE = "idle"
    HOST_READY = "host_ready"
    JOIN_INPUT = "join_input"
    JOIN_READY = "join_ready"


class NetplayStatus(IntEnum):
    """Ordinals reported by the native session layer."""
    OFF = 0
    CONNECTING = 1
    WAITING_FOR_INPUT = 2
    READY = 3
    SYNCING_STATE = 4


class SessionParameters(BaseModel):
    """Everything persisted between runs. Replaced whole, never mutated."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    rom_path: str = ""
    netplay_enabled: bool = False
    local_port: int = Field(default=DEFAULT_LOCAL_PORT, ge=1, le=65535)
    show_onscreen_controls: bool = True
    show_save_button: bool = False

    role: Role = Role.HOST
    remote_host: str = ""
    remote_port: int = 0
    secret: str = ""
    connection_code: str = ""

    room_server_url: str = DEFAULT_ROOM_SERVER_URL
    room_code: str = ""
    room_password: str = ""


# Fields reset by a cancel; preferences survive it.
CONNECTION_DEFAULTS = {
    "role": Role.HOST,
    "remote_host": "",
    "remote_port": 0,
    "secret": "",
    "connection_code": "",
    "room_code": "",
    "room_password": "",
}


class ConnectionSnapshot(BaseModel):
    """What the front-end needs to render the connection panel."""
    state: ConnectionUiState
    status: str = ""
    busy: bool = False
    netplay_enabled: bool = False
    role: Role = Role.HOST
    connection_code: str = ""
    invite_link: str = ""
    host_public_endpoint: str = ""
    join_target: str = ""


class LaunchPlan(BaseModel):
    """Arguments handed to the native session layer."""
    model_config = ConfigDict(frozen=True)

    rom_path: str
    enable_netplay: bool
    remote_host: str = ""
    remote_port: int = 0
    local_port: int = DEFAULT_LOCAL_PORT
    local_player_num: int = 1
    secret: str = ""
    show_onscreen_controls: bool = True
    show_save_button: bool = False
    # Display only
    self_endpoint: str = ""
    target_endpoint: str = ""
