"""Pure frozen dataclasses with zero I/O for Nostr events, profiles, and filters.

The models layer is the foundation of the package. It has **no dependencies**
on any other PiggyPost package and no third-party imports -- only the Python
standard library. Every model uses ``@dataclass(frozen=True, slots=True)``
and validates in ``__post_init__`` so invalid instances never escape the
constructor.

Attributes:
    Event: Signed NIP-01 event envelope with canonical id computation.
    UnsignedEvent: The five hashed fields prior to signing.
    Profile: Display name and bio with the timestamp of its announcement.
    SubscriptionFilter: Relay subscription predicate (kinds, since, tag values).
    Recipient: Target of Recipient Mode.
    ProfileEvent, PublicMessage, DirectedMessage: Closed set of chat variants.
    Rejected, Unverified, Accepted: Inbound parse outcomes.
    EventKind, TagName, SessionState: Shared enumerations.

Note:
    Models use ``object.__setattr__`` in ``__post_init__`` to store
    normalized fields on frozen dataclasses. This runs during ``__init__``
    before the instance is exposed to other code.

See Also:
    [piggypost.nips.codec][]: Produces the chat variants and parse outcomes.
    [piggypost.core.session][]: Dispatches accepted variants.
"""

from .constants import (
    DEFAULT_NAMESPACE,
    SUPPORTED_KINDS,
    EventKind,
    SessionState,
    TagName,
)
from .event import Event, Tags, UnsignedEvent, compute_event_id, serialize_for_id
from .filter import SubscriptionFilter
from .message import (
    Accepted,
    ChatEvent,
    DirectedMessage,
    ParseResult,
    ProfileEvent,
    PublicMessage,
    Recipient,
    Rejected,
    Unverified,
)
from .profile import Profile


__all__ = [
    "DEFAULT_NAMESPACE",
    "SUPPORTED_KINDS",
    "Accepted",
    "ChatEvent",
    "DirectedMessage",
    "Event",
    "EventKind",
    "ParseResult",
    "Profile",
    "ProfileEvent",
    "PublicMessage",
    "Recipient",
    "Rejected",
    "SessionState",
    "SubscriptionFilter",
    "TagName",
    "Tags",
    "UnsignedEvent",
    "Unverified",
    "compute_event_id",
    "serialize_for_id",
]
