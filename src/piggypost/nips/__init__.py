"""Nostr Implementation Possibilities -- event codec, builders, and NIP-44.

The NIPs layer depends on [piggypost.models][piggypost.models],
[piggypost.utils][piggypost.utils], and the exception hierarchy in
[piggypost.core.exceptions][piggypost.core.exceptions]. It holds the
protocol-aware logic of the client and performs no network I/O.

Warning:
    [parse_incoming()][piggypost.nips.codec.parse_incoming] **never
    raises**. Check the type of the returned result: only
    [Accepted][piggypost.models.message.Accepted] may be dispatched.

Attributes:
    codec: Builds and signs outgoing events; validates, verifies, and
        classifies inbound ones into closed chat variants.
    event_builders: Kind 0, 1, and 4 builders that tag events with the
        application namespace.
    nip44: ECDH conversation keys and NIP-44 v2 authenticated encryption.
"""

from piggypost.nips import nip44
from piggypost.nips.codec import build_event, classify, decode_event, parse_incoming
from piggypost.nips.event_builders import (
    build_direct_message,
    build_profile_event,
    build_text_note,
)


__all__ = [
    "build_direct_message",
    "build_event",
    "build_profile_event",
    "build_text_note",
    "classify",
    "decode_event",
    "nip44",
    "parse_incoming",
]
