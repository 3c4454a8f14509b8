"""Polls the native session for netplay status until gameplay can start."""

import asyncio
import logging

from config import STATUS_POLL_INTERVAL
from session.models import NetplayStatus, Role

logger = logging.getLogger(__name__)


def describe_status(ordinal: int, role: int, self_endpoint: str = "", target_endpoint: str = "") -> str:
    """Human-readable status line for a native status ordinal."""
    if ordinal == NetplayStatus.OFF:
        return "Netplay is off"
    if ordinal == NetplayStatus.READY:
        return "Connected"
    if ordinal == NetplayStatus.SYNCING_STATE:
        return "SYNCING SAVE STATE... Please wait."
    if ordinal == NetplayStatus.CONNECTING:
        if role == Role.HOST and self_endpoint:
            return f"Waiting for peer to connect to your port {self_endpoint}"
        if role == Role.JOIN and target_endpoint:
            return f"Waiting for peer to connect at {target_endpoint}"
        return "Waiting for peer..."
    return "WAITING FOR INPUTS... Connecting..."


class NetplayStatusPoller:
    """
    Maps native status ordinals to status lines and fires ``on_ready`` once.

    ``on_status(ordinal, line)`` and ``on_ready()`` are async callables.
    """

    def __init__(
        self,
        bridge,
        role: int,
        self_endpoint: str = "",
        target_endpoint: str = "",
        interval: float = STATUS_POLL_INTERVAL,
        on_status=None,
        on_ready=None,
    ) -> None:
        self._bridge = bridge
        self._role = role
        self._self_endpoint = self_endpoint
        self._target_endpoint = target_endpoint
        self._interval = interval
        self._on_status = on_status
        self._on_ready = on_ready
        self._ready = False
        self._stopped = False
        self._last_ordinal: int | None = None
        self.last_line = ""

    @property
    def ready(self) -> bool:
        return self._ready

    async def observe(self, ordinal: int) -> str:
        """Handle one status sample and return its status line."""
        line = describe_status(ordinal, self._role, self._self_endpoint, self._target_endpoint)
        self.last_line = line

        if ordinal != self._last_ordinal:
            logger.info(f"Netplay status {ordinal}: {line}")
            self._last_ordinal = ordinal
            if self._on_status is not None:
                await self._on_status(ordinal, line)

        if ordinal == NetplayStatus.READY and not self._ready:
            self._ready = True
            if self._on_ready is not None:
                await self._on_ready()
        return line

    async def run(self) -> None:
        """Poll until READY or :meth:`stop`."""
        while not self._ready and not self._stopped:
            try:
                ordinal = await asyncio.to_thread(self._bridge.get_netplay_status)
            except Exception as e:
                logger.warning(f"Reading netplay status failed: {e}")
                ordinal = NetplayStatus.WAITING_FOR_INPUT
            await self.observe(int(ordinal))
            if self._ready:
                break
            await asyncio.sleep(self._interval)

    def stop(self) -> None:
        self._stopped = True
