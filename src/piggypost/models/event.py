"""
Immutable Nostr event envelopes with NIP-01 canonical serialization.

[UnsignedEvent][piggypost.models.event.UnsignedEvent] holds the five fields
that feed the content hash; [Event][piggypost.models.event.Event] adds the
derived ``id`` and the Schnorr ``sig``. Both are frozen dataclasses validated
in ``__post_init__`` so a malformed envelope never escapes the constructor.

The event id is the SHA-256 of the compact JSON array
``[0, pubkey, created_at, kind, tags, content]``. Serialization is
bit-exact: no whitespace, non-ASCII characters left unescaped, control
characters escaped the way NIP-01 prescribes (which matches ``json.dumps``
with ``ensure_ascii=False``).

See Also:
    [piggypost.utils.keys][]: Signs an
        [UnsignedEvent][piggypost.models.event.UnsignedEvent] and verifies an
        [Event][piggypost.models.event.Event] with nostr-sdk.
    [piggypost.nips.codec][]: Builds outgoing events and parses inbound ones.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from ._validation import (
    normalize_tags,
    validate_hex,
    validate_int,
    validate_str,
    validate_timestamp,
    validate_utf8,
)
from .constants import HEX_KEY_LENGTH, HEX_SIGNATURE_LENGTH


Tags = tuple[tuple[str, ...], ...]

_EVENT_KIND_MAX = 65_535


def serialize_for_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Tags,
    content: str,
) -> bytes:
    """Return the canonical UTF-8 byte serialization hashed into an event id."""
    payload = [0, pubkey, created_at, kind, [list(tag) for tag in tags], content]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_event_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Tags,
    content: str,
) -> str:
    """Return the lowercase hex SHA-256 event id for the given fields."""
    return hashlib.sha256(serialize_for_id(pubkey, created_at, kind, tags, content)).hexdigest()


def _validate_common(pubkey: Any, created_at: Any, kind: Any, content: Any) -> None:
    validate_hex(pubkey, "pubkey", HEX_KEY_LENGTH)
    validate_timestamp(created_at, "created_at")
    validate_int(kind, "kind")
    if not 0 <= kind <= _EVENT_KIND_MAX:
        raise ValueError(f"kind must be between 0 and {_EVENT_KIND_MAX}")
    validate_str(content, "content")
    validate_utf8(content, "content")


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """Event fields prior to signing.

    Attributes:
        pubkey: Author public key (64-char lowercase hex).
        created_at: Unix timestamp in seconds.
        kind: Integer event kind.
        tags: Ordered tag tuples; converted from any sequence of sequences.
        content: Event payload (plaintext, JSON, or ciphertext depending on kind).
    """

    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str

    def __post_init__(self) -> None:
        _validate_common(self.pubkey, self.created_at, self.kind, self.content)
        object.__setattr__(self, "tags", normalize_tags(self.tags))

    def compute_id(self) -> str:
        """Return the canonical event id for these fields."""
        return compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)


@dataclass(frozen=True, slots=True)
class Event:
    """Signed Nostr event in wire shape.

    Construction validates field types and formats but not the signature;
    authenticity is checked by
    [verify_event()][piggypost.utils.keys.verify_event].
    An empty ``sig`` is representable so that callers can detect and refuse
    unsigned envelopes before they reach a relay.

    Attributes:
        id: 64-char lowercase hex event id.
        pubkey: 64-char lowercase hex author key.
        created_at: Unix timestamp in seconds.
        kind: Integer event kind.
        tags: Ordered tag tuples.
        content: Event payload.
        sig: 128-char lowercase hex Schnorr signature, or ``""`` if unsigned.

    Examples:
        ```python
        event = Event.from_dict(json.loads(raw))
        event.tag_values("p")   # ('ab12...',)
        event.to_json()          # compact wire JSON
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str
    sig: str = field(default="")

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", HEX_KEY_LENGTH)
        _validate_common(self.pubkey, self.created_at, self.kind, self.content)
        object.__setattr__(self, "tags", normalize_tags(self.tags))
        validate_str(self.sig, "sig")
        if self.sig:
            validate_hex(self.sig, "sig", HEX_SIGNATURE_LENGTH)

    @property
    def is_signed(self) -> bool:
        """Whether a signature is present (not whether it is valid)."""
        return bool(self.sig)

    def compute_id(self) -> str:
        """Recompute the canonical id from the signed fields."""
        return compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def tag_values(self, name: str) -> tuple[str, ...]:
        """Return the first value of every tag named *name*, in order."""
        return tuple(tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name)  # noqa: PLR2004

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 wire representation."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        """Return the wire representation as compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Build an event from its wire representation.

        Raises:
            KeyError: If a required field is missing.
            TypeError: If a field has the wrong type.
            ValueError: If a field has the wrong format.
        """
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=data["tags"],
            content=data["content"],
            sig=data["sig"],
        )
