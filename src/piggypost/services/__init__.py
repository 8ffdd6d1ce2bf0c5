"""Client orchestration: configuration, context, and the messaging engine.

Services are the top layer, depending on [piggypost.core][piggypost.core],
[piggypost.nips][piggypost.nips], [piggypost.utils][piggypost.utils], and
[piggypost.models][piggypost.models].

Attributes:
    ClientConfig: Pydantic configuration tree loaded from YAML.
    ClientContext: Explicit holder of storage, identity, profiles, and the
        relay session for one client instance.
    MessagingEngine: Public and encrypted send, profile announcement, and
        incoming event handling.
    ChatView: Callback interface the engine renders through.

Examples:
    ```python
    from piggypost.services import ClientConfig, ClientContext, MessagingEngine

    config = ClientConfig.from_yaml("config/piggypost.yaml")
    engine = MessagingEngine(ClientContext.create(config))
    async with engine:
        await engine.send("hello")
    ```
"""

from .configs import (
    ClientConfig,
    LoggingConfig,
    MessengerConfig,
    RelayConfig,
    StorageConfig,
)
from .context import ClientContext
from .messenger import ChatView, MessagingEngine


__all__ = [
    "ChatView",
    "ClientConfig",
    "ClientContext",
    "LoggingConfig",
    "MessagingEngine",
    "MessengerConfig",
    "RelayConfig",
    "StorageConfig",
]
