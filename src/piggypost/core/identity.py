"""Local signing identity.

Exactly one [Identity][piggypost.core.identity.Identity] exists per client.
It is loaded from the key-value store on first use, or generated from the
operating system's secure random source and persisted when the store holds
no key yet. Once loaded it never changes for the life of the process.

Warning:
    Storage failures while loading the identity are fatal: there is no
    secure fallback for a client that cannot remember who it is.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from piggypost.utils.keys import (
    generate_keys,
    parse_keys,
    public_id,
    secret_hex,
    sign_event,
    verify_event,
)

from .exceptions import PersistenceError
from .logger import Logger
from .storage import KEY_PUBLIC_ID, KEY_SECRET


if TYPE_CHECKING:
    from nostr_sdk import Keys

    from piggypost.models.event import Event, UnsignedEvent

    from .storage import KeyValueStore


logger = Logger("identity")


class Identity:
    """Holds the local keypair and signs or verifies events with it.

    Args:
        keys: nostr-sdk keypair.

    Examples:
        ```python
        identity = Identity.load(store)
        event = identity.sign(UnsignedEvent(identity.public_id, now, 1, (), "hi"))
        assert identity.verify(event)
        ```
    """

    def __init__(self, keys: Keys) -> None:
        self._keys = keys
        self._public_id = public_id(keys)

    def __repr__(self) -> str:
        return f"Identity(public_id={self._public_id!r})"

    @property
    def public_id(self) -> str:
        """64-char lowercase hex public key."""
        return self._public_id

    @property
    def secret_hex(self) -> str:
        """64-char lowercase hex secret key. Never log this."""
        return secret_hex(self._keys)

    @property
    def keys(self) -> Keys:
        return self._keys

    @classmethod
    def generate(cls) -> Identity:
        """Create an identity with a fresh random keypair (not persisted)."""
        return cls(generate_keys())

    @classmethod
    def load(cls, store: KeyValueStore) -> Identity:
        """Load the persisted identity, generating and persisting one if absent.

        Calling ``load`` again on the same store returns the same keypair.

        Raises:
            PersistenceError: If the store cannot be read or written, holds a
                malformed secret, or holds a public id that does not belong
                to the stored secret.
        """
        try:
            stored_secret = store.get(KEY_SECRET)
            stored_public = store.get(KEY_PUBLIC_ID)
        except OSError as e:
            raise PersistenceError(f"Identity storage unavailable: {e}") from e

        if stored_secret is None:
            identity = cls.generate()
            try:
                store.set(KEY_SECRET, identity.secret_hex)
                store.set(KEY_PUBLIC_ID, identity.public_id)
            except OSError as e:
                raise PersistenceError(f"Identity storage unavailable: {e}") from e
            logger.info("identity_generated", public_id=identity.public_id)
            return identity

        if not isinstance(stored_secret, str):
            raise PersistenceError("Stored secret key is not a string")
        try:
            identity = cls(parse_keys(stored_secret))
        except ValueError as e:
            raise PersistenceError(f"Stored secret key is invalid: {e}") from e

        if stored_public is not None and stored_public != identity.public_id:
            raise PersistenceError("Stored public id does not match the stored secret key")
        if stored_public is None:
            try:
                store.set(KEY_PUBLIC_ID, identity.public_id)
            except OSError as e:
                raise PersistenceError(f"Identity storage unavailable: {e}") from e

        logger.debug("identity_loaded", public_id=identity.public_id)
        return identity

    def sign(self, unsigned: UnsignedEvent) -> Event:
        """Compute the canonical id, sign it, and return the completed event.

        Raises:
            ValueError: If ``unsigned.pubkey`` is not this identity's key.
        """
        return sign_event(self._keys, unsigned)

    def verify(self, event: Event) -> bool:
        """Check id and signature of *event*. Never raises."""
        return verify_event(event)
