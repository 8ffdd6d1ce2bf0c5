"""Event builders for the three kinds the chat client publishes.

Every builder tags the event with ``["t", namespace]`` so relays can scope
subscriptions to PiggyPost traffic with a ``#t`` filter.

See Also:
    [build_event()][piggypost.nips.codec.build_event]: Stamps and signs the
        assembled event.
    [MessagingEngine][piggypost.services.messenger.MessagingEngine]: The
        only caller in the client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from piggypost.models.constants import DEFAULT_NAMESPACE, EventKind, TagName
from piggypost.models.profile import Profile

from .codec import build_event


if TYPE_CHECKING:
    from piggypost.core.identity import Identity
    from piggypost.models.event import Event


def _topic_tag(namespace: str) -> list[str]:
    return [TagName.TOPIC.value, namespace]


# =============================================================================
# Kind 0 (NIP-01)
# =============================================================================


def build_profile_event(
    identity: Identity,
    name: str,
    about: str = "",
    *,
    namespace: str = DEFAULT_NAMESPACE,
    created_at: int | None = None,
) -> Event:
    """Build a signed Kind 0 profile announcement with ``{name, about}`` content."""
    content = Profile(name=name, about=about).to_content()
    return build_event(
        EventKind.SET_METADATA,
        content,
        [_topic_tag(namespace)],
        identity,
        created_at=created_at,
    )


# =============================================================================
# Kind 1 (NIP-01)
# =============================================================================


def build_text_note(
    identity: Identity,
    text: str,
    *,
    namespace: str = DEFAULT_NAMESPACE,
    created_at: int | None = None,
) -> Event:
    """Build a signed Kind 1 public message with plaintext content."""
    return build_event(
        EventKind.TEXT_NOTE,
        text,
        [_topic_tag(namespace)],
        identity,
        created_at=created_at,
    )


# =============================================================================
# Kind 4 (NIP-04 envelope, NIP-44 payload)
# =============================================================================


def build_direct_message(
    identity: Identity,
    recipient: str,
    ciphertext: str,
    *,
    namespace: str = DEFAULT_NAMESPACE,
    created_at: int | None = None,
) -> Event:
    """Build a signed Kind 4 directed message.

    Args:
        identity: Sender identity.
        recipient: Recipient public key, placed in the ``p`` tag.
        ciphertext: Already encrypted payload from
            [nip44.encrypt()][piggypost.nips.nip44.encrypt].
    """
    return build_event(
        EventKind.ENCRYPTED_DIRECT_MESSAGE,
        ciphertext,
        [[TagName.PUBKEY.value, recipient], _topic_tag(namespace)],
        identity,
        created_at=created_at,
    )
