"""
Session Manager: hands a resolved launch plan to the native session layer and
tracks its netplay status until gameplay starts.
"""

import asyncio
import logging

from config import CORE_PATH, STATUS_POLL_INTERVAL
from session.bridge import NativeUnavailable, SessionBridge
from session.models import LaunchPlan, NetplayStatus
from session.status import NetplayStatusPoller

logger = logging.getLogger(__name__)


class SessionError(RuntimeError):
    """The native session could not be started."""


class SessionManager:
    """Owns at most one running native session."""

    def __init__(
        self,
        bridge: SessionBridge | None,
        core_path: str = CORE_PATH,
        poll_interval: float = STATUS_POLL_INTERVAL,
    ) -> None:
        self._bridge = bridge
        self._core_path = core_path
        self._poll_interval = poll_interval
        self._event_callbacks: list = []  # async fn(event_type, data)
        self._poller: NetplayStatusPoller | None = None
        self._task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._running = False
        self.last_status = ""
        self.last_ordinal = int(NetplayStatus.OFF)

    @property
    def available(self) -> bool:
        return self._bridge is not None

    @property
    def running(self) -> bool:
        return self._running

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    async def _on_status(self, ordinal: int, line: str) -> None:
        self.last_ordinal = ordinal
        self.last_status = line
        await self._emit("netplay_status", {"status": ordinal, "message": line})

    async def _on_ready(self) -> None:
        logger.info("Netplay ready, gameplay started")
        await self._emit("gameplay_started", {"netplay": True})

    async def launch(self, plan: LaunchPlan) -> None:
        """Initialize the native session for ``plan`` and start status polling.

        Launches are serialized: a second call waits for the first to finish
        and then replaces its session.
        """
        if self._bridge is None:
            raise NativeUnavailable("Native session library is not configured")
        async with self._lock:
            await self._stop()

            logger.info(
                f"Launching session: netplay={plan.enable_netplay} "
                f"player={plan.local_player_num} local_port={plan.local_port}"
            )
            ok = await asyncio.to_thread(
                self._bridge.initialize,
                self._core_path,
                plan.rom_path,
                plan.enable_netplay,
                plan.remote_host,
                plan.remote_port,
                plan.local_port,
                plan.local_player_num,
                plan.secret,
            )
            if not ok:
                raise SessionError("Native init failed")
            self._running = True

            if not plan.enable_netplay:
                self.last_ordinal = int(NetplayStatus.OFF)
                self.last_status = "Netplay is off"
                await self._emit("gameplay_started", {"netplay": False})
                return

            self._poller = NetplayStatusPoller(
                self._bridge,
                role=plan.local_player_num,
                self_endpoint=plan.self_endpoint,
                target_endpoint=plan.target_endpoint,
                interval=self._poll_interval,
                on_status=self._on_status,
                on_ready=self._on_ready,
            )
            self._task = asyncio.create_task(self._poller.run())

    async def stop(self) -> None:
        """Stop polling and shut the native session down."""
        async with self._lock:
            await self._stop()

    async def _stop(self) -> None:
        # Caller holds self._lock.
        if self._poller is not None:
            self._poller.stop()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._poller = None

        if self._running and self._bridge is not None:
            await asyncio.to_thread(self._bridge.shutdown)
            logger.info("Native session shut down")
        self._running = False
