"""
Seam to the native emulator/netplay session.

The native library exports a small C API:

    bool snesonline_initialize(const char* core, const char* rom, bool netplay,
                               const char* remote_host, uint16_t remote_port,
                               uint16_t local_port, uint8_t local_player_num,
                               const char* secret);
    int  snesonline_get_netplay_status(void);
    void snesonline_shutdown(void);
"""

import ctypes
import logging
from typing import Protocol

from config import NATIVE_LIB_PATH

logger = logging.getLogger(__name__)


class NativeUnavailable(RuntimeError):
    """No native session library is configured or it failed to load."""


class SessionBridge(Protocol):
    def initialize(
        self,
        core_path: str,
        rom_path: str,
        enable_netplay: bool,
        remote_host: str,
        remote_port: int,
        local_port: int,
        local_player_num: int,
        secret: str,
    ) -> bool: ...

    def get_netplay_status(self) -> int: ...

    def shutdown(self) -> None: ...


def _c(text: str) -> bytes:
    return (text or "").encode("utf-8")


class NativeSessionBridge:
    """ctypes binding for the native session library."""

    def __init__(self, lib_path: str = NATIVE_LIB_PATH) -> None:
        if not lib_path:
            raise NativeUnavailable("Native session library is not configured (set SNO_NATIVE_LIB)")
        try:
            lib = ctypes.CDLL(lib_path)
        except OSError as e:
            raise NativeUnavailable(f"Cannot load native session library: {e}") from e

        lib.snesonline_initialize.argtypes = [
            ctypes.c_char_p, ctypes.c_char_p, ctypes.c_bool,
            ctypes.c_char_p, ctypes.c_uint16, ctypes.c_uint16,
            ctypes.c_uint8, ctypes.c_char_p,
        ]
        lib.snesonline_initialize.restype = ctypes.c_bool
        lib.snesonline_get_netplay_status.argtypes = []
        lib.snesonline_get_netplay_status.restype = ctypes.c_int
        lib.snesonline_shutdown.argtypes = []
        lib.snesonline_shutdown.restype = None

        self._lib = lib
        logger.info(f"Loaded native session library {lib_path}")

    def initialize(
        self,
        core_path: str,
        rom_path: str,
        enable_netplay: bool,
        remote_host: str,
        remote_port: int,
        local_port: int,
        local_player_num: int,
        secret: str,
    ) -> bool:
        return bool(self._lib.snesonline_initialize(
            _c(core_path), _c(rom_path), enable_netplay,
            _c(remote_host), remote_port, local_port,
            local_player_num, _c(secret),
        ))

    def get_netplay_status(self) -> int:
        return int(self._lib.snesonline_get_netplay_status())

    def shutdown(self) -> None:
        self._lib.snesonline_shutdown()
