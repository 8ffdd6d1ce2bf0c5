"""Nostr key management, signing, and verification for PiggyPost.

Thin wrappers around ``nostr_sdk`` (Rust-backed secp256k1 Schnorr) that
speak in terms of the pure [Event][piggypost.models.event.Event] and
[UnsignedEvent][piggypost.models.event.UnsignedEvent] models.

Warning:
    Secret keys must **never** be logged. The helpers here accept and return
    ``nostr_sdk.Keys`` objects or hex strings; callers decide where (if
    anywhere) the secret is persisted.

See Also:
    [Identity][piggypost.core.identity.Identity]: Loads or generates the
        local keypair and delegates to [sign_event][piggypost.utils.keys.sign_event]
        and [verify_event][piggypost.utils.keys.verify_event].

Examples:
    ```python
    keys = generate_keys()
    event = sign_event(keys, UnsignedEvent(public_id(keys), 1700000000, 1, (), "hi"))
    assert verify_event(event)
    ```
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from nostr_sdk import Event as NostrEvent
from nostr_sdk import EventBuilder, Keys, Kind, NostrSdkError, Tag, Timestamp

from piggypost.models.event import Event


if TYPE_CHECKING:
    from piggypost.models.event import UnsignedEvent


logger = logging.getLogger(__name__)


def generate_keys() -> Keys:
    """Generate a fresh keypair from the operating system's secure random source."""
    return Keys.generate()


def parse_keys(secret: str) -> Keys:
    """Parse a private key (64-char hex or ``nsec1`` bech32).

    Raises:
        ValueError: If the key is empty or malformed.
    """
    if not secret:
        raise ValueError("secret key is empty")
    try:
        return Keys.parse(secret)
    except NostrSdkError as e:
        raise ValueError(f"invalid secret key: {e}") from e


def public_id(keys: Keys) -> str:
    """Return the x-only public key as 64-char lowercase hex."""
    return keys.public_key().to_hex()


def secret_hex(keys: Keys) -> str:
    """Return the private key as 64-char lowercase hex."""
    return keys.secret_key().to_hex()


def sign_event(keys: Keys, unsigned: UnsignedEvent) -> Event:
    """Sign *unsigned* with *keys* and return the completed event.

    The nostr-sdk builder is used for the Schnorr signature; the resulting
    id is cross-checked against the canonical serialization in
    [compute_event_id][piggypost.models.event.compute_event_id] so a
    divergence can never be published silently.

    Raises:
        ValueError: If ``unsigned.pubkey`` does not belong to *keys*, or the
            signed id does not match the canonical id.
    """
    if unsigned.pubkey != public_id(keys):
        raise ValueError("event pubkey does not match the signing key")

    builder = (
        EventBuilder(Kind(unsigned.kind), unsigned.content)
        .tags([Tag.parse(list(tag)) for tag in unsigned.tags])
        .custom_created_at(Timestamp.from_secs(unsigned.created_at))
    )
    signed = builder.sign_with_keys(keys)
    event = Event.from_dict(json.loads(signed.as_json()))

    if event.id != unsigned.compute_id():
        raise ValueError(f"signed event id {event.id[:16]}... is not canonical")
    return event


def verify_event(event: Event) -> bool:
    """Check that *event*'s id matches its fields and its signature is valid.

    Never raises: anything that cannot be verified is reported as ``False``.
    """
    if not event.sig:
        return False
    if event.compute_id() != event.id:
        return False
    try:
        return bool(NostrEvent.from_json(event.to_json()).verify())
    except (NostrSdkError, ValueError, TypeError) as e:
        logger.debug("verify_failed event=%s error=%s", event.id[:16], e)
        return False
