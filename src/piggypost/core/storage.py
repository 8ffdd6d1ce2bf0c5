"""Key-value persistence for identity and profile state.

The client persists a handful of JSON-serializable values (the keypair, the
profile cache, the local profile). Everything that reads or writes them
depends only on the [KeyValueStore][piggypost.core.storage.KeyValueStore]
protocol, so the backing store can be swapped without touching the engine.

Two backends ship:

* [MemoryStore][piggypost.core.storage.MemoryStore] -- process-local dict,
  used by tests and ephemeral sessions.
* [JsonFileStore][piggypost.core.storage.JsonFileStore] -- a single JSON
  document on disk, rewritten atomically on every ``set``.

Both raise [PersistenceError][piggypost.core.exceptions.PersistenceError]
when the underlying medium fails.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .exceptions import PersistenceError


logger = logging.getLogger(__name__)


# Storage keys shared by Identity, ProfileStore and the messaging engine
KEY_SECRET = "identity.secretKey"  # pragma: allowlist secret
KEY_PUBLIC_ID = "identity.publicId"
KEY_PROFILES = "profiles"
KEY_LOCAL_PROFILE = "localProfile"


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal persistence contract: ``get(key)`` and ``set(key, value)``."""

    def get(self, key: str) -> Any | None:
        """Return the stored value, or ``None`` if the key is absent."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store *value* under *key*, replacing any previous value."""
        ...


class MemoryStore:
    """In-memory [KeyValueStore][piggypost.core.storage.KeyValueStore].

    Values are deep-copied on the way in and out so callers cannot mutate
    stored state by accident, mirroring the copy semantics of a real store.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class JsonFileStore:
    """[KeyValueStore][piggypost.core.storage.KeyValueStore] backed by one JSON file.

    The document is read lazily on first access and cached. Each ``set``
    rewrites the whole file through a temporary sibling and ``os.replace``
    so a crash never leaves a half-written document behind.

    Args:
        path: Location of the JSON document. Parent directories are created
            on the first write.

    Raises:
        PersistenceError: On I/O failure, on a corrupt document, or when a
            value is not JSON-serializable.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self._path.exists():
            self._data = {}
            return self._data
        try:
            with self._path.open(encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise PersistenceError(f"Cannot read {self._path}: {e}") from e
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt store {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Corrupt store {self._path}: root is not an object")
        self._data = data
        return self._data

    def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._load().get(key))

    def set(self, key: str, value: Any) -> None:
        data = dict(self._load())
        data[key] = copy.deepcopy(value)
        try:
            serialized = json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Value for {key!r} is not JSON-serializable: {e}") from e

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(serialized)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Cannot write {self._path}: {e}") from e

        self._data = data
        logger.debug("store_written path=%s key=%s", self._path, key)
