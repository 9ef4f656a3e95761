"""Short keys for transport file handles.

Telegram callback data is capped at 64 bytes, which is too small for a full
file ID plus the command token, so buttons carry a short key instead. Keys
live only in memory: after a restart outstanding buttons stop resolving.
"""

from __future__ import annotations

import secrets
import threading

DEFAULT_KEY_LENGTH = 12


class FileReferenceStore:
    """Process-lifetime mapping from short random keys to file handles.

    Entries are never removed. Safe to share between the update loop and
    concurrently running jobs.
    """

    def __init__(self, key_length: int = DEFAULT_KEY_LENGTH) -> None:
        if key_length < 4:
            raise ValueError("key_length must be at least 4")
        self._key_length = key_length
        self._refs: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def key_length(self) -> int:
        return self._key_length

    def put(self, file_id: str) -> str:
        """Store ``file_id`` under a fresh key and return the key."""
        with self._lock:
            while True:
                key = secrets.token_urlsafe(self._key_length)[: self._key_length]
                if key not in self._refs:
                    self._refs[key] = file_id
                    return key

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._refs.get(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._refs

    def __len__(self) -> int:
        with self._lock:
            return len(self._refs)
