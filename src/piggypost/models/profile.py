"""Display profiles announced through kind 0 events.

A [Profile][piggypost.models.profile.Profile] is the last-known ``name`` and
``about`` text of a public key, together with the ``created_at`` of the
event (or local edit) that produced it. The timestamp drives the
last-write-wins policy of the
[ProfileStore][piggypost.core.profiles.ProfileStore].
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from ._validation import validate_str, validate_timestamp


# Older PiggyPost builds published {"username", "bio"}
_NAME_KEYS = ("name", "username")
_ABOUT_KEYS = ("about", "bio")


@dataclass(frozen=True, slots=True)
class Profile:
    """Immutable display profile.

    Attributes:
        name: Display name shown next to messages.
        about: Free-form bio text.
        updated_at: Unix timestamp of the announcement that set this profile.
    """

    name: str
    about: str = ""
    updated_at: int = 0

    def __post_init__(self) -> None:
        validate_str(self.name, "name")
        validate_str(self.about, "about")
        validate_timestamp(self.updated_at, "updated_at")

    def to_content(self) -> str:
        """Serialize as kind 0 event content."""
        return json.dumps({"name": self.name, "about": self.about}, ensure_ascii=False)

    @classmethod
    def from_content(cls, content: str, updated_at: int) -> Profile | None:
        """Parse kind 0 content, returning ``None`` when it carries no usable name.

        Content must be a JSON object with a string ``name`` (or the legacy
        ``username``). A missing or non-string ``about`` becomes ``""``.
        """
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, TypeError):
            return None
        if not isinstance(data, dict):
            return None

        name = _first_str(data, _NAME_KEYS)
        if name is None:
            return None
        about = _first_str(data, _ABOUT_KEYS) or ""
        return cls(name=name, about=about, updated_at=updated_at)

    def to_dict(self) -> dict[str, Any]:
        """Return the storage representation."""
        return {"name": self.name, "about": self.about, "updated_at": self.updated_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Profile:
        """Rebuild a profile from its storage representation."""
        return cls(
            name=data["name"],
            about=data.get("about", ""),
            updated_at=data.get("updated_at", 0),
        )


def _first_str(data: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            return value
    return None
