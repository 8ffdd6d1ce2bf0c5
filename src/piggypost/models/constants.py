"""Shared constants for the models layer.

Defines enumerations and protocol constants used across multiple model
modules. Placing them here avoids circular dependencies between the models,
nips, and core layers.

See Also:
    [piggypost.models.event][]: Uses [EventKind][piggypost.models.constants.EventKind]
        to classify signed events.
    [piggypost.core.session][]: Uses [SessionState][piggypost.models.constants.SessionState]
        for the relay session state machine.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class EventKind(IntEnum):
    """Nostr event kinds understood by the chat client.

    Attributes:
        SET_METADATA: Kind 0 -- profile announcement carrying JSON
            ``{"name", "about"}`` content (NIP-01).
        TEXT_NOTE: Kind 1 -- public chat message (NIP-01).
        ENCRYPTED_DIRECT_MESSAGE: Kind 4 -- directed message whose content is
            ciphertext, addressed through a ``p`` tag.

    See Also:
        [SUPPORTED_KINDS][piggypost.models.constants.SUPPORTED_KINDS]: The set
            of kinds accepted on ingress.
    """

    SET_METADATA = 0
    TEXT_NOTE = 1
    ENCRYPTED_DIRECT_MESSAGE = 4


SUPPORTED_KINDS: frozenset[int] = frozenset(EventKind)


class TagName(StrEnum):
    """Single-letter tag names used by the chat client.

    Attributes:
        PUBKEY: ``p`` -- names the recipient of a directed message.
        TOPIC: ``t`` -- scopes events to the application namespace so relays
            can filter subscriptions with ``#t``.
    """

    PUBKEY = "p"
    TOPIC = "t"


class SessionState(StrEnum):
    """Lifecycle states of a [RelaySession][piggypost.core.session.RelaySession].

    Transitions:

    ```text
    DISCONNECTED -> CONNECTING -> CONNECTED -> SUBSCRIBED
         ^              |             |             |
         +--------------+-------------+-------------+   (failure / transport loss)
    ```
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"


DEFAULT_NAMESPACE = "piggypost"

HEX_KEY_LENGTH = 64
HEX_SIGNATURE_LENGTH = 128
