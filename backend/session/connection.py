"""
Connection state machine.

    IDLE ----start_host----> HOST_READY
    IDLE/HOST_READY --join_intent--> JOIN_INPUT --join--> JOIN_READY
    any --cancel / netplay off--> IDLE

All transitions run on the event loop. Blocking work (STUN, LAN enumeration,
decoding) goes to a worker thread. At most one operation is in flight; a
cancel or netplay toggle bumps the epoch so a late result is dropped instead
of resurrecting a state the user already left.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable

from codec.connection_code import (
    CodeError,
    decode_connection_code,
    describe,
    encode_connection_code,
    encode_connection_string,
    secret_of,
    validate_secret,
)
from codec.endpoint import (
    Endpoint,
    EndpointError,
    format_endpoint,
    is_valid_port,
    make_endpoint,
    try_parse_endpoint,
)
from codec.invite import make_invite_link, parse_invite_link
from discovery.lan import local_lan_ipv4
from discovery.stun import DiscoveryError, StunClient
from rendezvous.client import (
    RendezvousCancelled,
    RendezvousError,
    RendezvousTimeout,
    RoomClient,
    normalize_room_code,
)
from security.crypto import generate_secret
from session.models import (
    ConnectionSnapshot,
    ConnectionUiState,
    LaunchPlan,
    Role,
)
from session.store import SessionStore

logger = logging.getLogger(__name__)

State = ConnectionUiState


class OperationInProgress(RuntimeError):
    """A rendezvous operation is already running."""


class InvalidTransition(RuntimeError):
    """The requested action is not available in the current state."""


class LaunchRefused(RuntimeError):
    """Gameplay cannot start yet; the message says what to do."""


def _check_port(port: int, who: str) -> int:
    if not isinstance(port, int) or not is_valid_port(port):
        raise EndpointError(f"{who}: local UDP port must be 1..65535")
    return port


class ConnectionStateMachine:
    """Owns the connection UI state and the persisted session parameters."""

    def __init__(
        self,
        store: SessionStore,
        stun: StunClient | None = None,
        lan_ip_provider: Callable[[], str] = local_lan_ipv4,
        room_client_factory=RoomClient,
    ) -> None:
        self._store = store
        self._stun = stun or StunClient()
        self._lan_ip_provider = lan_ip_provider
        self._room_client_factory = room_client_factory
        self._listeners: list = []  # async fn(event, data)

        self._busy = False
        self._epoch = 0
        self._alive = True
        self._status = ""
        self._host_public_endpoint = ""

        params = store.params
        self._role = params.role
        self._state = State.IDLE
        # A Join target survives restarts; a Host's NAT mapping does not.
        if (
            params.netplay_enabled
            and params.role == Role.JOIN
            and params.remote_host
            and is_valid_port(params.remote_port)
        ):
            self._state = State.JOIN_READY

    # --- Observers ---

    @property
    def state(self) -> ConnectionUiState:
        return self._state

    @property
    def status(self) -> str:
        return self._status

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def role(self) -> Role:
        return self._role

    def on_change(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._listeners.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._listeners:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Connection listener error: {e}")

    async def _publish(self) -> None:
        await self._emit("connection_state", self.snapshot().model_dump(mode="json"))

    async def _notify_error(self, message: str) -> None:
        await self._emit("notification", {"type": "error", "message": message})

    def snapshot(self) -> ConnectionSnapshot:
        params = self._store.params
        st = self._state
        code = params.connection_code if st in (State.HOST_READY, State.JOIN_READY) else ""

        join_target = ""
        if st == State.JOIN_READY and params.remote_host and is_valid_port(params.remote_port):
            join_target = format_endpoint(params.remote_host, params.remote_port)

        return ConnectionSnapshot(
            state=st,
            status=self._status,
            busy=self._busy,
            netplay_enabled=params.netplay_enabled,
            role=self._role,
            connection_code=code,
            invite_link=make_invite_link(code) if st == State.HOST_READY and code else "",
            host_public_endpoint=self._host_public_endpoint if st == State.HOST_READY else "",
            join_target=join_target,
        )

    # --- Internals ---

    def _set(self, state: ConnectionUiState, status: str = "") -> None:
        if state != self._state:
            logger.info(f"Connection state {self._state.value} -> {state.value}")
        self._state = state
        self._status = status

    def _is_current(self, epoch: int) -> bool:
        return self._alive and epoch == self._epoch

    def _invalidate(self) -> None:
        self._epoch += 1

    def _require_free(self) -> None:
        if self._busy:
            raise OperationInProgress("Another connection attempt is still running")

    @asynccontextmanager
    async def _operation(self, status: str):
        """Guard one in-flight operation; yields its epoch."""
        self._require_free()
        self._busy = True
        self._status = status
        await self._publish()
        try:
            yield self._epoch
        finally:
            self._busy = False
            await self._publish()

    async def _fail(self, epoch: int, state: ConnectionUiState, message: str) -> None:
        logger.warning(message)
        if self._is_current(epoch):
            self._set(state, message)
            await self._notify_error(message)

    # --- Host ---

    async def _discover_host_code(self, port: int, secret: str | None) -> tuple[Endpoint, str]:
        mapped = await asyncio.to_thread(self._stun.mapped_address, port)
        public = try_parse_endpoint(mapped)
        if public is None:
            raise DiscoveryError("STUN failed")

        if secret:
            return public, encode_connection_string(public, secret)

        lan_ip = await asyncio.to_thread(self._lan_ip_provider)
        lan = make_endpoint(lan_ip, port) if lan_ip else None
        return public, encode_connection_code(public, lan)

    async def start_host(
        self,
        local_port: int | None = None,
        secret: str | None = None,
        random_secret: bool = False,
    ) -> ConnectionSnapshot:
        """
        Discover the public endpoint and publish a connection code.

        With a secret (given, or generated when ``random_secret`` is set) the
        code is a plain ``host:port:secret`` string; otherwise an SNO2 code
        carrying the LAN hint.
        """
        self._require_free()
        if self._state in (State.JOIN_INPUT, State.JOIN_READY):
            raise InvalidTransition("Cancel the join before hosting")
        port = _check_port(local_port or self._store.params.local_port, "Host")
        if random_secret and not secret:
            secret = generate_secret()
        if secret:
            validate_secret(secret)

        async with self._operation("Discovering public endpoint...") as epoch:
            try:
                public, code = await self._discover_host_code(port, secret)
            except (DiscoveryError, CodeError, EndpointError) as e:
                await self._fail(epoch, State.IDLE, f"Host failed: {e}")
                raise

            if self._is_current(epoch):
                self._store.update(
                    netplay_enabled=True,
                    local_port=port,
                    connection_code=code,
                    role=Role.HOST,
                    remote_host="",
                    remote_port=0,
                    secret=secret or "",
                    room_code="",
                    room_password="",
                )
                self._role = Role.HOST
                self._host_public_endpoint = str(public)
                self._set(State.HOST_READY, f"Share the code. Public endpoint {public}")
                logger.info(f"Hosting at {public}")
            else:
                logger.info("Dropping host result from a cancelled attempt")
        return self.snapshot()

    # --- Join ---

    async def join_intent(self) -> ConnectionSnapshot:
        """First press of Join: show the code input, validate nothing."""
        self._require_free()
        if self._state in (State.IDLE, State.HOST_READY):
            self._invalidate()
            self._role = Role.JOIN
            self._host_public_endpoint = ""
            self._set(State.JOIN_INPUT, "Paste the code")
            await self._publish()
        return self.snapshot()

    def _commit_join(self, code_text: str, code, port: int) -> None:
        self._store.update(
            netplay_enabled=True,
            local_port=port,
            connection_code=code_text,
            role=Role.JOIN,
            remote_host=code.public.host,
            remote_port=code.public.port,
            secret=secret_of(code),
            room_code="",
            room_password="",
        )
        self._role = Role.JOIN
        self._set(State.JOIN_READY, f"Will connect to {code.public}")
        logger.info(f"Join target resolved: {describe(code)}")

    async def join(self, code: str, local_port: int | None = None) -> ConnectionSnapshot:
        """Decode a pasted code or connection string."""
        self._require_free()
        if self._state != State.JOIN_INPUT:
            raise InvalidTransition("Press Join connection first")
        port = _check_port(local_port or self._store.params.local_port, "Join")
        code = (code or "").strip()
        if not code:
            raise CodeError("Paste the connection code from Player 1")

        async with self._operation("Parsing code...") as epoch:
            try:
                decoded = await asyncio.to_thread(decode_connection_code, code)
            except CodeError as e:
                await self._fail(epoch, State.JOIN_INPUT, f"Join failed: {e}")
                raise
            if self._is_current(epoch):
                self._commit_join(code, decoded, port)
        return self.snapshot()

    async def accept_invite(self, uri: str) -> ConnectionSnapshot:
        """Handle a ``snesonline://join?code=...`` deep link.

        A link that is not a join invite leaves the current state and the
        persisted session alone. Nothing is written until the code decodes.
        """
        self._require_free()
        try:
            code = parse_invite_link(uri)
        except CodeError as e:
            logger.warning(f"Ignoring link: {e}")
            raise

        self._invalidate()
        self._role = Role.JOIN
        self._host_public_endpoint = ""
        self._set(State.JOIN_INPUT)

        async with self._operation("Parsing invite...") as epoch:
            try:
                decoded = await asyncio.to_thread(decode_connection_code, code)
            except CodeError as e:
                await self._fail(epoch, State.JOIN_INPUT, f"Invalid invite link: {e}")
                raise
            if self._is_current(epoch):
                self._commit_join(code, decoded, self._store.params.local_port)
        return self.snapshot()

    # --- Room server ---

    async def start_room(
        self,
        code: str,
        password: str,
        server_url: str | None = None,
        local_port: int | None = None,
    ) -> ConnectionSnapshot:
        """Let a room server decide Host/Join and resolve the Host endpoint."""
        self._require_free()
        params = self._store.params
        port = _check_port(local_port or params.local_port, "Room")
        client = self._room_client_factory(
            base_url=server_url or params.room_server_url,
            stun=self._stun,
            lan_ip_provider=self._lan_ip_provider,
        )

        async with self._operation("Connecting to room...") as epoch:
            try:
                result = await client.connect(
                    code, password, port, is_alive=lambda: self._is_current(epoch)
                )
            except RendezvousCancelled:
                logger.info("Room rendezvous abandoned")
                raise
            except RendezvousTimeout as e:
                await self._fail(epoch, State.JOIN_INPUT, f"Room connect failed: {e}")
                raise
            except (RendezvousError, DiscoveryError) as e:
                await self._fail(epoch, State.IDLE, f"Room connect failed: {e}")
                raise

            if self._is_current(epoch):
                role = Role(result.role)
                is_join = role == Role.JOIN
                self._store.update(
                    netplay_enabled=True,
                    local_port=port,
                    role=role,
                    remote_host=result.endpoint.host if is_join else "",
                    remote_port=result.endpoint.port if is_join else 0,
                    secret="",
                    connection_code="",
                    room_server_url=client.base_url,
                    room_code=normalize_room_code(code),
                    room_password=password,
                )
                self._role = role
                if is_join:
                    self._host_public_endpoint = ""
                    self._set(State.JOIN_READY, f"Will connect to {result.endpoint}")
                else:
                    self._host_public_endpoint = str(result.endpoint) if result.endpoint else ""
                    self._set(State.HOST_READY, "Room ready. Waiting for Player 2")
        return self.snapshot()

    # --- Cancel / toggle ---

    async def cancel(self) -> ConnectionSnapshot:
        """Drop the current connection from any state."""
        self._invalidate()
        params = self._store.clear_connection()
        self._role = params.role
        self._host_public_endpoint = ""
        self._set(State.IDLE)
        await self._publish()
        return self.snapshot()

    async def set_netplay_enabled(self, enabled: bool) -> ConnectionSnapshot:
        self._store.update(netplay_enabled=enabled)
        if not enabled:
            self._invalidate()
            self._host_public_endpoint = ""
            self._set(State.IDLE)
        await self._publish()
        return self.snapshot()

    def shutdown(self) -> None:
        """Stop any in-flight operation from touching state again."""
        self._alive = False
        self._invalidate()

    # --- Launch gating ---

    def launch_plan(self) -> LaunchPlan:
        """
        Arguments for the native session, or LaunchRefused when the
        connection is not ready for the current role.
        """
        params = self._store.params
        if not params.rom_path:
            raise LaunchRefused("Pick a ROM first")
        if self._busy:
            raise LaunchRefused("Wait for the connection attempt to finish")

        common = dict(
            rom_path=params.rom_path,
            local_port=params.local_port,
            show_onscreen_controls=params.show_onscreen_controls,
            show_save_button=params.show_save_button,
        )
        if not params.netplay_enabled:
            return LaunchPlan(enable_netplay=False, local_player_num=1, **common)

        if self._role != Role.JOIN:
            ready = params.connection_code or params.room_code
            if self._state != State.HOST_READY or not ready:
                self._status = "Press Start connection first"
                raise LaunchRefused(self._status)
            return LaunchPlan(
                enable_netplay=True,
                local_player_num=Role.HOST,
                secret=params.secret,
                self_endpoint=self._host_public_endpoint or f":{params.local_port}",
                **common,
            )

        if self._state != State.JOIN_READY:
            self._status = "Paste the code and press Join connection"
            raise LaunchRefused(self._status)
        if not params.remote_host or not is_valid_port(params.remote_port):
            self._set(State.JOIN_INPUT, "Join endpoint missing. Press Join connection again.")
            raise LaunchRefused(self._status)

        return LaunchPlan(
            enable_netplay=True,
            remote_host=params.remote_host,
            remote_port=params.remote_port,
            local_player_num=Role.JOIN,
            secret=params.secret,
            target_endpoint=format_endpoint(params.remote_host, params.remote_port),
            **common,
        )
