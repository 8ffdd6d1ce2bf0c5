r"""PiggyPost -- Nostr chat client core.

Connects to a relay, subscribes to the application's event stream, signs and
verifies events, keeps public and end-to-end encrypted messages apart, and
tracks peer profiles, exposing a small send/receive contract to a UI.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              services         Messaging engine, context, configuration
             /   |   \
          core  nips  utils    Identity, session, codec, cipher, keys, transport
             \   |   /
              models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Pure frozen dataclasses. Zero I/O, depends only on stdlib.
    core: Identity, profile store, relay session, storage, exceptions,
        logging.
    nips: Event codec, event builders, NIP-44 encryption.
    utils: Nostr key handling and WebSocket transport.
    services: Configuration, client context, and the messaging engine.

Note:
    For lightweight usage, import directly from subpackages::

        from piggypost.models import Event
        from piggypost.core import Identity

    Top-level imports (``from piggypost import MessagingEngine``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("piggypost")

__all__ = [
    "ChatView",
    "ClientConfig",
    "ClientContext",
    "Event",
    "Identity",
    "Logger",
    "MessagingEngine",
    "Profile",
    "ProfileStore",
    "Recipient",
    "RelaySession",
    "SubscriptionFilter",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Identity": ("piggypost.core", "Identity"),
    "Logger": ("piggypost.core", "Logger"),
    "ProfileStore": ("piggypost.core", "ProfileStore"),
    "RelaySession": ("piggypost.core", "RelaySession"),
    "Event": ("piggypost.models", "Event"),
    "Profile": ("piggypost.models", "Profile"),
    "Recipient": ("piggypost.models", "Recipient"),
    "SubscriptionFilter": ("piggypost.models", "SubscriptionFilter"),
    "ChatView": ("piggypost.services", "ChatView"),
    "ClientConfig": ("piggypost.services", "ClientConfig"),
    "ClientContext": ("piggypost.services", "ClientContext"),
    "MessagingEngine": ("piggypost.services", "MessagingEngine"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'piggypost' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
