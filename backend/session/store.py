"""Durable key-value store for the last resolved session parameters."""

import json
import logging
import os
import threading
from pathlib import Path

from config import SESSION_FILE
from session.models import CONNECTION_DEFAULTS, SessionParameters

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Persists :class:`SessionParameters` as a single JSON document.

    Every update is one batch: the new value is validated whole, written to a
    temp file and moved over the old one, then swapped in memory. Readers get
    either the previous or the next snapshot, never a mix.
    """

    def __init__(self, path: Path = SESSION_FILE) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._params = self._load()

    @property
    def params(self) -> SessionParameters:
        return self._params

    def _load(self) -> SessionParameters:
        if not self._path.exists():
            return SessionParameters()

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            params = SessionParameters.model_validate(data)
            logger.info(f"Loaded session parameters (role={params.role.name})")
            return params
        except Exception as e:
            logger.error(f"Failed to load session parameters: {e}")
            return SessionParameters()

    def _save(self, params: SessionParameters) -> None:
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(params.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            logger.error(f"Failed to save session parameters: {e}")

    def update(self, **changes) -> SessionParameters:
        """Apply ``changes`` as one atomic batch and return the new snapshot."""
        with self._lock:
            params = SessionParameters.model_validate(
                {**self._params.model_dump(), **changes}
            )
            self._save(params)
            self._params = params
            return params

    def clear_connection(self) -> SessionParameters:
        """Forget the current connection; preferences are kept."""
        logger.info("Clearing persisted connection parameters")
        return self.update(**CONNECTION_DEFAULTS)
