"""Event codec: build outgoing events, validate and classify inbound ones.

Outgoing events are stamped with the current time and signed by the local
[Identity][piggypost.core.identity.Identity]. Inbound data from a relay is
untrusted and runs through three gates in order:

1. **Structure** -- a JSON object whose fields have the NIP-01 types and
   formats, with a supported kind. Failure yields
   [Rejected][piggypost.models.message.Rejected].
2. **Authenticity** -- the id matches the canonical serialization and the
   Schnorr signature verifies. Failure yields
   [Unverified][piggypost.models.message.Unverified].
3. **Classification** -- the event becomes exactly one chat variant, wrapped
   in [Accepted][piggypost.models.message.Accepted].

[parse_incoming()][piggypost.nips.codec.parse_incoming] never raises.
"""

from __future__ import annotations

import json
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from piggypost.core.exceptions import MalformedEventError
from piggypost.models.constants import SUPPORTED_KINDS, EventKind, TagName
from piggypost.models.event import Event, UnsignedEvent
from piggypost.models.message import (
    Accepted,
    ChatEvent,
    DirectedMessage,
    ParseResult,
    ProfileEvent,
    PublicMessage,
    Rejected,
    Unverified,
)
from piggypost.models.profile import Profile
from piggypost.utils.keys import verify_event


if TYPE_CHECKING:
    from piggypost.core.identity import Identity


def build_event(
    kind: int,
    content: str,
    tags: Sequence[Sequence[str]],
    identity: Identity,
    *,
    created_at: int | None = None,
) -> Event:
    """Assemble an event authored by *identity*, stamp it, and sign it.

    Args:
        kind: Event kind.
        content: Event payload.
        tags: Ordered tags; order is part of the signed id.
        identity: Local signing identity.
        created_at: Override for the timestamp. Defaults to the current
            unix time in seconds.
    """
    unsigned = UnsignedEvent(
        pubkey=identity.public_id,
        created_at=int(time.time()) if created_at is None else created_at,
        kind=kind,
        tags=tags,
        content=content,
    )
    return identity.sign(unsigned)


def decode_event(raw: Any) -> Event:
    """Validate the structure of a raw inbound event.

    Args:
        raw: Decoded JSON object, or a JSON string.

    Raises:
        MalformedEventError: If *raw* is not a well-formed, signed NIP-01 event.
    """
    if isinstance(raw, str | bytes):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedEventError(f"invalid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedEventError(f"event must be an object, got {type(raw).__name__}")

    try:
        event = Event.from_dict(raw)
    except KeyError as e:
        raise MalformedEventError(f"missing field {e}") from e
    except (TypeError, ValueError) as e:
        raise MalformedEventError(str(e)) from e

    if not event.sig:
        raise MalformedEventError("missing signature")
    return event


def classify(event: Event) -> ChatEvent:
    """Map a verified event of a supported kind to its chat variant.

    Raises:
        MalformedEventError: If the kind is not supported.
    """
    if event.kind == EventKind.SET_METADATA:
        return ProfileEvent(event=event, profile=Profile.from_content(event.content, event.created_at))
    if event.kind == EventKind.TEXT_NOTE:
        return PublicMessage(event=event)
    if event.kind == EventKind.ENCRYPTED_DIRECT_MESSAGE:
        return DirectedMessage(event=event, recipients=event.tag_values(TagName.PUBKEY))
    raise MalformedEventError(f"unsupported kind {event.kind}")


def parse_incoming(raw: Any) -> ParseResult:
    """Run inbound data through structure, authenticity, and classification.

    Returns:
        ``Rejected`` for malformed data or unsupported kinds, ``Unverified``
        when the id or signature fails, ``Accepted`` otherwise.
    """
    try:
        event = decode_event(raw)
    except MalformedEventError as e:
        return Rejected(reason=str(e))

    if event.kind not in SUPPORTED_KINDS:
        return Rejected(reason=f"unsupported kind {event.kind}")

    if event.compute_id() != event.id:
        return Unverified(event=event, reason="id mismatch")
    if not verify_event(event):
        return Unverified(event=event, reason="invalid signature")

    return Accepted(message=classify(event))
