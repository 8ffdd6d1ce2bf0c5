"""Configuration models for the PiggyPost client.

Pydantic v2 models with sensible defaults, so a YAML file only needs the
keys it wants to override. Loaded through
[ClientConfig.from_yaml()][piggypost.services.configs.ClientConfig.from_yaml],
which delegates parsing to [load_yaml()][piggypost.core.yaml.load_yaml].

Examples:
    ```yaml
    relay:
      url: wss://relay.example.com
      connect_timeout: 10
    storage:
      path: ~/.piggypost/state.json
    messenger:
      namespace: piggypost
      lookback: 86400
      show_undeliverable: false
    logging:
      level: INFO
      json_output: false
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Self

from pydantic import BaseModel, Field, field_validator

from piggypost.core.yaml import load_yaml
from piggypost.models.constants import DEFAULT_NAMESPACE


DEFAULT_RELAY_URL = "wss://relay.damus.io"


class RelayConfig(BaseModel):
    """Relay endpoint and handshake timeout.

    See Also:
        [RelaySession][piggypost.core.session.RelaySession]: Consumes
            ``connect_timeout``.
    """

    url: str = Field(default=DEFAULT_RELAY_URL, description="Relay WebSocket URL")
    connect_timeout: float = Field(default=10.0, ge=1.0, le=120.0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require a ``ws://`` or ``wss://`` URL."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"Relay URL must start with ws:// or wss://, got '{v}'")
        return v


class StorageConfig(BaseModel):
    """Location of the persisted identity and profile cache.

    ``path: null`` keeps everything in memory for the life of the process.
    """

    path: str | None = Field(default="~/.piggypost/state.json")

    @property
    def resolved_path(self) -> Path | None:
        return Path(self.path).expanduser() if self.path else None


class MessengerConfig(BaseModel):
    """Messaging engine behaviour.

    See Also:
        [MessagingEngine][piggypost.services.messenger.MessagingEngine]:
            The engine configured by this model.
    """

    namespace: str = Field(
        default=DEFAULT_NAMESPACE,
        min_length=1,
        description="Value of the 't' tag scoping events to this application",
    )
    lookback: int = Field(
        default=86_400, ge=0, description="Seconds of history requested on subscribe"
    )
    label_length: int = Field(
        default=8, ge=4, le=64, description="Pubkey characters shown when no profile is known"
    )
    show_undeliverable: bool = Field(
        default=False,
        description="Surface directed messages addressed to other users, undecrypted",
    )
    dedup_size: int = Field(default=4096, ge=16, le=1_000_000)
    key_cache_size: int = Field(
        default=256,
        ge=1,
        le=100_000,
        description="Conversation keys kept for reuse, least recently used evicted first",
    )


class LoggingConfig(BaseModel):
    """Root logger level and output format."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    json_output: bool = Field(default=False)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class ClientConfig(BaseModel):
    """Top-level client configuration."""

    relay: RelayConfig = Field(default_factory=RelayConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    messenger: MessengerConfig = Field(default_factory=MessengerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> Self:
        """Load and validate a YAML configuration file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigurationError: If the file is not valid YAML.
            pydantic.ValidationError: If a value fails validation.
        """
        return cls(**load_yaml(config_path))
