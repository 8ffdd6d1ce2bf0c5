"""Explicit client context replacing process-wide singletons.

A [ClientContext][piggypost.services.context.ClientContext] holds the
key-value store, the [Identity][piggypost.core.identity.Identity] (loaded on
first use), the [ProfileStore][piggypost.core.profiles.ProfileStore], and
the [RelaySession][piggypost.core.session.RelaySession]. The
[MessagingEngine][piggypost.services.messenger.MessagingEngine] receives one
at construction, so every test can build a fresh, isolated client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from piggypost.core.identity import Identity
from piggypost.core.profiles import ProfileStore
from piggypost.core.session import RelaySession
from piggypost.core.storage import JsonFileStore, KeyValueStore, MemoryStore
from piggypost.utils.transport import WebSocketTransport

from .configs import ClientConfig


if TYPE_CHECKING:
    from piggypost.utils.transport import Transport


class ClientContext:
    """Shared state of one client instance.

    Args:
        store: Key-value store for identity and profiles.
        transport: Relay transport handed to the session.
        config: Client configuration. Defaults to ``ClientConfig()``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        transport: Transport,
        *,
        config: ClientConfig | None = None,
    ) -> None:
        self._config = config if config is not None else ClientConfig()
        self._store = store
        self._identity: Identity | None = None
        self._profiles = ProfileStore(store)
        self._session = RelaySession(transport, connect_timeout=self._config.relay.connect_timeout)

    @classmethod
    def create(cls, config: ClientConfig | None = None) -> ClientContext:
        """Build a context with the configured storage and a WebSocket transport."""
        config = config if config is not None else ClientConfig()
        path = config.storage.resolved_path
        store: KeyValueStore = JsonFileStore(path) if path is not None else MemoryStore()
        return cls(store, WebSocketTransport(), config=config)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def identity(self) -> Identity:
        """The local identity, loaded (or generated) on first access.

        Raises:
            PersistenceError: If the identity cannot be loaded or persisted.
        """
        if self._identity is None:
            self._identity = Identity.load(self._store)
        return self._identity

    @property
    def profiles(self) -> ProfileStore:
        return self._profiles

    @property
    def session(self) -> RelaySession:
        return self._session
