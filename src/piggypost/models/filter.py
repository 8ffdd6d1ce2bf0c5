"""Subscription filters sent to relays in ``REQ`` frames.

A [SubscriptionFilter][piggypost.models.filter.SubscriptionFilter] selects
events by kind, by a lower time bound, and by single-letter tag values.
Its wire form follows NIP-01 (``{"kinds": [...], "since": n, "#t": [...]}``).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ._validation import validate_int, validate_str, validate_timestamp


if TYPE_CHECKING:
    from .event import Event


@dataclass(frozen=True, slots=True)
class SubscriptionFilter:
    """Immutable relay subscription filter.

    Attributes:
        kinds: Accepted event kinds. Empty means any kind.
        since: Lower bound on ``created_at`` (inclusive), or ``None``.
        tags: Mapping of single-letter tag name to accepted values.

    Examples:
        ```python
        f = SubscriptionFilter(kinds={0, 1, 4}, since=1700000000, tags={"t": {"piggypost"}})
        f.to_wire()
        # {'kinds': [0, 1, 4], 'since': 1700000000, '#t': ['piggypost']}
        ```
    """

    kinds: frozenset[int] = field(default_factory=frozenset)
    since: int | None = None
    tags: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        kinds = frozenset(self.kinds)
        for kind in kinds:
            validate_int(kind, "kinds")
        if self.since is not None:
            validate_timestamp(self.since, "since")

        frozen_tags: dict[str, frozenset[str]] = {}
        for name, values in self.tags.items():
            validate_str(name, "tag name")
            if len(name) != 1:
                raise ValueError(f"tag filter name must be a single letter, got {name!r}")
            value_set = frozenset([values] if isinstance(values, str) else values)
            for value in value_set:
                validate_str(value, f"#{name} value")
            frozen_tags[name] = value_set

        object.__setattr__(self, "kinds", kinds)
        object.__setattr__(self, "tags", MappingProxyType(frozen_tags))

    def to_wire(self) -> dict[str, Any]:
        """Return the NIP-01 filter object with deterministically sorted values."""
        wire: dict[str, Any] = {}
        if self.kinds:
            wire["kinds"] = sorted(self.kinds)
        if self.since is not None:
            wire["since"] = self.since
        for name in sorted(self.tags):
            wire[f"#{name}"] = sorted(self.tags[name])
        return wire

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> SubscriptionFilter:
        """Parse a NIP-01 filter object. Unknown keys are ignored."""
        tags = {key[1:]: frozenset(values) for key, values in data.items() if key.startswith("#")}
        return cls(
            kinds=frozenset(data.get("kinds", ())),
            since=data.get("since"),
            tags=tags,
        )

    def matches(self, event: Event) -> bool:
        """Evaluate the filter against *event* the way a relay would."""
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        for name, accepted in self.tags.items():
            if not accepted.intersection(event.tag_values(name)):
                return False
        return True

    def replace(
        self,
        *,
        kinds: Iterable[int] | None = None,
        since: int | None = None,
    ) -> SubscriptionFilter:
        """Return a copy with *kinds* and/or *since* overridden."""
        return SubscriptionFilter(
            kinds=frozenset(kinds) if kinds is not None else self.kinds,
            since=since if since is not None else self.since,
            tags=dict(self.tags),
        )
