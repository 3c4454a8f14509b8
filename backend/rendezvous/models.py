"""Pydantic models for the room server protocol."""

from pydantic import BaseModel, ConfigDict, Field

from codec.endpoint import Endpoint


class RoomConnectRequest(BaseModel):
    """JSON body of ``POST /rooms/connect``."""
    code: str
    password: str
    port: int | None = None
    creator_token: str | None = Field(default=None, serialization_alias="creatorToken")
    local_ip: str | None = Field(default=None, serialization_alias="localIp")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class RoomInfo(BaseModel):
    """The ``room`` object of a connect response."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ip: str = ""
    local_ip: str = Field(default="", alias="localIp")
    port: int = 0

    @property
    def host(self) -> str:
        """LAN address when the server exposed one, else the public address."""
        return self.local_ip or self.ip


class RoomConnectResponse(BaseModel):
    """A successful (``ok: true``) connect response."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ok: bool = False
    error: str | None = None
    role: int = 0
    waiting: bool = False
    creator_token: str = Field(default="", alias="creatorToken")
    room: RoomInfo | None = None

    @property
    def host(self) -> str:
        return self.room.host if self.room else ""

    @property
    def port(self) -> int:
        return self.room.port if self.room else 0


class RoomSession(BaseModel):
    """Working state of one rendezvous attempt."""
    server_base_url: str
    code: str
    password: str
    role: int = 0
    creator_token: str = ""
    host: str = ""
    port: int = 0
    waiting: bool = True

    def absorb(self, response: RoomConnectResponse) -> None:
        """Take role, token and endpoint from a server response.

        The role is fixed by the first response that assigns one.
        """
        if response.role and not self.role:
            self.role = response.role
        if response.creator_token:
            self.creator_token = response.creator_token
        self.waiting = response.waiting
        self.host = response.host
        self.port = response.port


class RoomResult(BaseModel):
    """Terminal outcome of a successful rendezvous."""
    model_config = ConfigDict(frozen=True)

    role: int
    # Host endpoint as the room server reports it; only guaranteed for a Join.
    endpoint: Endpoint | None = None
