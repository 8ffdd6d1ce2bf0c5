"""Closed set of chat event variants and inbound parse outcomes.

The [codec][piggypost.nips.codec] classifies every verified event into
exactly one of [ProfileEvent][piggypost.models.message.ProfileEvent],
[PublicMessage][piggypost.models.message.PublicMessage], or
[DirectedMessage][piggypost.models.message.DirectedMessage]. Consumers
dispatch on the variant type instead of the raw ``kind`` integer.

Inbound parsing yields one of
[Rejected][piggypost.models.message.Rejected] (structurally malformed),
[Unverified][piggypost.models.message.Unverified] (well formed, bad id or
signature), or [Accepted][piggypost.models.message.Accepted]. Only
``Accepted`` results travel past the relay session.
"""

from __future__ import annotations

from dataclasses import dataclass

from ._validation import validate_hex, validate_str
from .constants import HEX_KEY_LENGTH
from .event import Event  # noqa: TC001
from .profile import Profile  # noqa: TC001


@dataclass(frozen=True, slots=True)
class Recipient:
    """Target of encrypted sends while Recipient Mode is active.

    Attributes:
        pubkey: Recipient public key (64-char lowercase hex).
        name: Display name shown by the UI.
    """

    pubkey: str
    name: str = ""

    def __post_init__(self) -> None:
        validate_hex(self.pubkey, "pubkey", HEX_KEY_LENGTH)
        validate_str(self.name, "name")


# ---------------------------------------------------------------------------
# Chat variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProfileEvent:
    """Kind 0 announcement. ``profile`` is ``None`` when the content is unusable."""

    event: Event
    profile: Profile | None


@dataclass(frozen=True, slots=True)
class PublicMessage:
    """Kind 1 plaintext chat message."""

    event: Event


@dataclass(frozen=True, slots=True)
class DirectedMessage:
    """Kind 4 encrypted message addressed to the keys in ``recipients``."""

    event: Event
    recipients: tuple[str, ...]

    def is_addressed_to(self, pubkey: str) -> bool:
        """Whether *pubkey* appears among the ``p`` tags."""
        return pubkey in self.recipients


ChatEvent = ProfileEvent | PublicMessage | DirectedMessage


# ---------------------------------------------------------------------------
# Parse outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Rejected:
    """Inbound data failed structural validation."""

    reason: str


@dataclass(frozen=True, slots=True)
class Unverified:
    """Inbound event was well formed but its id or signature did not check out."""

    event: Event
    reason: str


@dataclass(frozen=True, slots=True)
class Accepted:
    """Inbound event passed validation and verification."""

    message: ChatEvent

    @property
    def event(self) -> Event:
        return self.message.event


ParseResult = Rejected | Unverified | Accepted
