"""Last-known display profiles keyed by public id.

The [ProfileStore][piggypost.core.profiles.ProfileStore] is a read-through
cache over the ``profiles`` entry of the key-value store. Updates follow
last-write-wins by announcement timestamp: a profile older than the stored
one is dropped, an equal or newer one replaces it.

Persistence is best-effort. A failing store is logged and the in-memory
cache keeps serving, so a broken disk never stops message processing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from piggypost.models.profile import Profile

from .exceptions import PersistenceError
from .logger import Logger
from .storage import KEY_LOCAL_PROFILE, KEY_PROFILES


if TYPE_CHECKING:
    from .storage import KeyValueStore


logger = Logger("profiles")


class ProfileStore:
    """Mapping of public id to [Profile][piggypost.models.profile.Profile].

    Args:
        store: Backing key-value store. Read lazily on first access.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._profiles: dict[str, Profile] | None = None

    def _cache(self) -> dict[str, Profile]:
        if self._profiles is not None:
            return self._profiles

        profiles: dict[str, Profile] = {}
        try:
            raw = self._store.get(KEY_PROFILES)
        except PersistenceError as e:
            logger.warning("profiles_load_failed", error=str(e))
            raw = None

        if isinstance(raw, dict):
            for pubkey, data in raw.items():
                try:
                    profiles[pubkey] = Profile.from_dict(data)
                except (KeyError, TypeError, ValueError) as e:
                    logger.debug("profile_entry_skipped", pubkey=pubkey, error=str(e))
        self._profiles = profiles
        return profiles

    def _persist(self) -> None:
        data = {pubkey: profile.to_dict() for pubkey, profile in self._cache().items()}
        try:
            self._store.set(KEY_PROFILES, data)
        except PersistenceError as e:
            logger.warning("profiles_persist_failed", error=str(e))

    def get(self, pubkey: str) -> Profile | None:
        return self._cache().get(pubkey)

    def __contains__(self, pubkey: object) -> bool:
        return pubkey in self._cache()

    def __len__(self) -> int:
        return len(self._cache())

    def put(self, pubkey: str, profile: Profile) -> bool:
        """Store *profile* for *pubkey* unless a newer one is already held.

        Returns:
            ``True`` if the profile was stored, ``False`` if it was stale.
        """
        cache = self._cache()
        current = cache.get(pubkey)
        if current is not None and profile.updated_at < current.updated_at:
            logger.debug(
                "profile_stale",
                pubkey=pubkey,
                stored_at=current.updated_at,
                received_at=profile.updated_at,
            )
            return False
        if current == profile:
            return True
        cache[pubkey] = profile
        self._persist()
        return True

    def get_local(self) -> dict[str, Any] | None:
        """Return the locally edited ``{name, about}``, if any."""
        try:
            value = self._store.get(KEY_LOCAL_PROFILE)
        except PersistenceError as e:
            logger.warning("local_profile_load_failed", error=str(e))
            return None
        return value if isinstance(value, dict) else None

    def set_local(self, name: str, about: str) -> None:
        try:
            self._store.set(KEY_LOCAL_PROFILE, {"name": name, "about": about})
        except PersistenceError as e:
            logger.warning("local_profile_persist_failed", error=str(e))
