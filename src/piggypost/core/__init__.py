"""Core layer: identity, profile cache, relay session, and shared infrastructure.

Depends on [piggypost.models][piggypost.models],
[piggypost.utils][piggypost.utils], and the codec in
[piggypost.nips][piggypost.nips]; depended upon by
[piggypost.services][piggypost.services].

Attributes:
    Identity: Local keypair, loaded or generated once and persisted.
        See [Identity][piggypost.core.identity.Identity].
    ProfileStore: Public id to last-known profile, last-write-wins.
        See [ProfileStore][piggypost.core.profiles.ProfileStore].
    RelaySession: Relay connection state machine with a single live
        subscription and verified dispatch.
        See [RelaySession][piggypost.core.session.RelaySession].
    KeyValueStore, MemoryStore, JsonFileStore: Persistence contract and
        its two backends. See [piggypost.core.storage][piggypost.core.storage].
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][piggypost.core.logger.Logger].
    YAML: Safe YAML loading with ``yaml.safe_load()``.
        See [load_yaml()][piggypost.core.yaml.load_yaml].

Examples:
    ```python
    from piggypost.core import Identity, MemoryStore, RelaySession

    identity = Identity.load(MemoryStore())
    ```
"""

# exceptions first: the nips layer imports them while core is initializing
from .exceptions import (
    ConfigurationError,
    ConnectivityError,
    CryptoError,
    DecryptionError,
    MalformedEventError,
    NotConnectedError,
    PersistenceError,
    PiggyPostError,
    ProtocolError,
    PublishingError,
)
from .identity import Identity
from .logger import Logger, StructuredFormatter, format_kv_pairs, setup_logging
from .profiles import ProfileStore
from .session import RelaySession, Subscription
from .storage import JsonFileStore, KeyValueStore, MemoryStore
from .yaml import load_yaml


__all__ = [
    "ConfigurationError",
    "ConnectivityError",
    "CryptoError",
    "DecryptionError",
    "Identity",
    "JsonFileStore",
    "KeyValueStore",
    "Logger",
    "MalformedEventError",
    "MemoryStore",
    "NotConnectedError",
    "PersistenceError",
    "PiggyPostError",
    "ProfileStore",
    "ProtocolError",
    "PublishingError",
    "RelaySession",
    "StructuredFormatter",
    "Subscription",
    "format_kv_pairs",
    "load_yaml",
    "setup_logging",
]
