"""Token record persistence: in-memory TTL cache and JSON file store."""

import json
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from core.config import CONFIG_DIR, Config

TOKENS_FILE = CONFIG_DIR / "tokens.json"


class MemoryTokenStore:
    """Process-local store; entries expire after their TTL."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float | None]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class FileTokenStore:
    """JSON file store shared by every worker process and surviving restarts."""

    def __init__(self, path: Path = TOKENS_FILE, clock: Callable[[], float] = time.time) -> None:
        self.path = path
        self._clock = clock

    def get(self, key: str) -> Any | None:
        entry = self._load().get(key)
        if not isinstance(entry, dict):
            return None
        expires_at = entry.get("expires_at")
        if isinstance(expires_at, (int, float)) and self._clock() >= expires_at:
            return None
        return entry.get("value")

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        entries = self._prune(self._load())
        entries[key] = {
            "value": value,
            "expires_at": self._clock() + ttl if ttl is not None else None,
        }
        self._save(entries)

    def delete(self, key: str) -> None:
        entries = self._load()
        if entries.pop(key, None) is not None:
            self._save(entries)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError):
            # Unreadable cache only costs one re-authentication
            return {}
        return data if isinstance(data, dict) else {}

    def _prune(self, entries: dict[str, Any]) -> dict[str, Any]:
        now = self._clock()
        return {
            key: entry
            for key, entry in entries.items()
            if isinstance(entry, dict)
            and not (isinstance(entry.get("expires_at"), (int, float)) and now >= entry["expires_at"])
        }

    def _save(self, entries: dict[str, Any]) -> None:
        """Write atomically so concurrent readers never see a partial file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(f".{os.getpid()}.tmp")
        tmp.write_text(json.dumps(entries, indent=2))
        tmp.chmod(0o600)
        tmp.replace(self.path)


def create_token_store(config: Config) -> MemoryTokenStore | FileTokenStore:
    if config.token.store == "file":
        return FileTokenStore()
    return MemoryTokenStore()
