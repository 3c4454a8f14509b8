"""
Room server rendezvous client.

The first device to ``POST /rooms/connect`` with a code/password becomes the
Host (role 1). A Host that has not published a port yet discovers its public
UDP port via STUN and posts again with its creator token to finalize the room.
The second device becomes the Join (role 2) and polls until the room is
finalized or the deadline passes.
"""

import asyncio
import logging
import time
from typing import Callable

import httpx
from pydantic import ValidationError

from codec.endpoint import EndpointError, is_valid_port, make_endpoint
from config import (
    DEFAULT_ROOM_SERVER_URL,
    HTTP_CONNECT_TIMEOUT,
    HTTP_READ_TIMEOUT,
    ROOM_POLL_DEADLINE,
    ROOM_POLL_INTERVAL,
)
from discovery.lan import local_lan_ipv4
from discovery.stun import DiscoveryError, StunClient
from rendezvous.models import (
    RoomConnectRequest,
    RoomConnectResponse,
    RoomResult,
    RoomSession,
)
from session.models import Role

logger = logging.getLogger(__name__)

CONNECT_PATH = "/rooms/connect"


class RendezvousError(RuntimeError):
    """The room server refused the request or returned something unusable."""


class RendezvousTimeout(RendezvousError):
    """The Host never finalized the room before the deadline."""


class RendezvousCancelled(RendezvousError):
    """The caller went away while the Join was still polling."""


def normalize_room_code(code: str | None) -> str:
    """Uppercase and keep ASCII letters/digits only."""
    return "".join(
        ch for ch in (code or "").strip().upper()
        if ch.isascii() and ch.isalnum()
    )


class RoomClient:
    """Runs one Host/Join arbitration against a room server."""

    def __init__(
        self,
        base_url: str = DEFAULT_ROOM_SERVER_URL,
        stun: StunClient | None = None,
        lan_ip_provider: Callable[[], str] = local_lan_ipv4,
        poll_interval: float = ROOM_POLL_INTERVAL,
        deadline: float = ROOM_POLL_DEADLINE,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or DEFAULT_ROOM_SERVER_URL).strip().rstrip("/")
        self._stun = stun or StunClient()
        self._lan_ip_provider = lan_ip_provider
        self._poll_interval = poll_interval
        self._deadline = deadline
        self._clock = clock
        self._sleep = sleep
        self._transport = transport
        self._timeout = httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT)

    async def connect(
        self,
        code: str,
        password: str,
        local_port: int,
        is_alive: Callable[[], bool] = lambda: True,
    ) -> RoomResult:
        """
        Arbitrate roles for ``code`` and resolve the Host endpoint.

        Raises:
            RendezvousError: server error, bad role or bad endpoint.
            RendezvousTimeout: Join gave up waiting for the Host.
            RendezvousCancelled: ``is_alive`` turned false before the room settled.
            DiscoveryError: Host could not discover its public port.
        """
        code = normalize_room_code(code)
        if not code:
            raise RendezvousError("Room code is required")
        if not (password or "").strip():
            raise RendezvousError("Room password is required")

        session = RoomSession(server_base_url=self.base_url, code=code, password=password)
        local_ip = await asyncio.to_thread(self._lan_ip_provider)

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as http:
            first = await self._post(http, self._request(session, local_ip))
            session.absorb(first)
            logger.info(
                f"Room {code}: assigned role {session.role} (waiting={session.waiting})"
            )

            if session.role == Role.HOST:
                await self._finalize_host(http, session, local_ip, local_port, is_alive)
            elif session.role == Role.JOIN:
                await self._wait_for_host(http, session, local_ip, is_alive)
            else:
                raise RendezvousError("Room server did not assign a role")

        return self._result(session)

    @staticmethod
    def _request(session: RoomSession, local_ip: str, port: int | None = None) -> RoomConnectRequest:
        return RoomConnectRequest(
            code=session.code,
            password=session.password,
            port=port,
            creator_token=(session.creator_token or None) if port else None,
            local_ip=local_ip or None,
        )

    async def _post(self, http: httpx.AsyncClient, request: RoomConnectRequest) -> RoomConnectResponse:
        try:
            response = await http.post(CONNECT_PATH, json=request.to_wire())
        except httpx.HTTPError as e:
            raise RendezvousError(f"Room server unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.is_success or not data.get("ok", False):
            raise RendezvousError(str(data.get("error") or f"http_{response.status_code}"))

        try:
            return RoomConnectResponse.model_validate(data)
        except ValidationError as e:
            raise RendezvousError("invalid_response") from e

    async def _finalize_host(
        self,
        http: httpx.AsyncClient,
        session: RoomSession,
        local_ip: str,
        local_port: int,
        is_alive: Callable[[], bool],
    ) -> None:
        if session.port != 0:
            return

        public_port = await asyncio.to_thread(self._stun.public_udp_port, local_port)
        if not is_valid_port(public_port):
            raise DiscoveryError("STUN failed (cannot discover public UDP port)")
        # An abandoned attempt must not publish the room
        if not is_alive():
            raise RendezvousCancelled("Rendezvous abandoned")

        session.absorb(await self._post(http, self._request(session, local_ip, port=public_port)))
        if session.port == 0:
            session.port = public_port
        logger.info(f"Room {session.code}: finalized with public port {session.port}")

    async def _wait_for_host(
        self,
        http: httpx.AsyncClient,
        session: RoomSession,
        local_ip: str,
        is_alive: Callable[[], bool],
    ) -> None:
        deadline = self._clock() + self._deadline
        while session.waiting or session.port == 0:
            if self._clock() > deadline:
                raise RendezvousTimeout("Timed out waiting for host")
            if not is_alive():
                raise RendezvousCancelled("Rendezvous abandoned")
            await self._sleep(self._poll_interval)
            if not is_alive():
                raise RendezvousCancelled("Rendezvous abandoned")
            session.absorb(await self._post(http, self._request(session, local_ip)))

    @staticmethod
    def _result(session: RoomSession) -> RoomResult:
        try:
            endpoint = make_endpoint(session.host, session.port)
        except EndpointError as e:
            if session.role == Role.JOIN:
                raise RendezvousError("Room server returned invalid host endpoint") from e
            endpoint = None
        logger.info(f"Room {session.code}: role {session.role}, host endpoint {endpoint}")
        return RoomResult(role=session.role, endpoint=endpoint)
