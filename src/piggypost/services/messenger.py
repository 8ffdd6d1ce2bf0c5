"""Messaging engine: the send/receive contract between the relay and the UI.

[MessagingEngine][piggypost.services.messenger.MessagingEngine] composes the
pieces held by a [ClientContext][piggypost.services.context.ClientContext]:

* **Outgoing** -- [send()][piggypost.services.messenger.MessagingEngine.send]
  publishes a public Kind 1 note, or, while a recipient is selected, a Kind 4
  message whose content is NIP-44 ciphertext.
  [publish_profile()][piggypost.services.messenger.MessagingEngine.publish_profile]
  announces the local profile with Kind 0.
* **Incoming** -- [handle_event()][piggypost.services.messenger.MessagingEngine.handle_event]
  receives verified chat variants from the relay session and turns them into
  [ChatView][piggypost.services.messenger.ChatView] callbacks.

Incoming failures (bad profile JSON, decryption failures) are logged and
absorbed. Outgoing failures propagate so the UI can keep the unsent text.

Note:
    One ``asyncio.Lock`` serializes incoming handling and outgoing sends: a
    send issued while an event is being handled waits for it to finish.
    Message and profile callbacks run while the lock is held. They may be
    coroutine functions; the engine awaits them before handling the next
    event or send, and they must not await engine operations directly.

Examples:
    ```python
    context = ClientContext.create(config)
    engine = MessagingEngine(context, view=TerminalView())
    await engine.start()
    engine.set_recipient(Recipient(pubkey=bob_pubkey, name="bob"))
    await engine.send("hello")
    ```
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Self, assert_never

from piggypost.core.exceptions import ConnectivityError, CryptoError
from piggypost.core.logger import Logger
from piggypost.models.constants import SUPPORTED_KINDS, SessionState, TagName
from piggypost.models.filter import SubscriptionFilter
from piggypost.models.message import (
    ChatEvent,
    DirectedMessage,
    ProfileEvent,
    PublicMessage,
    Recipient,
)
from piggypost.models.profile import Profile
from piggypost.nips import nip44
from piggypost.nips.event_builders import (
    build_direct_message,
    build_profile_event,
    build_text_note,
)


if TYPE_CHECKING:
    from types import TracebackType

    from piggypost.core.identity import Identity
    from piggypost.core.session import Subscription
    from piggypost.models.event import Event

    from .configs import MessengerConfig
    from .context import ClientContext


class ChatView:
    """Rendering callbacks invoked by the engine.

    Every method is a no-op here; override the ones the front-end renders.
    The message and profile callbacks may be ``async def``; recipient and
    connection callbacks are always called synchronously.
    """

    def on_public_message(
        self, pubkey: str, content: str, created_at: int, display_name: str
    ) -> None:
        """A Kind 1 message arrived."""

    def on_encrypted_message(
        self,
        pubkey: str,
        content: str,
        created_at: int,
        display_name: str,
        for_current_user: bool,  # noqa: FBT001
    ) -> None:
        """A Kind 4 message to show.

        ``for_current_user`` is ``True`` only for a message decrypted for the
        local identity. Local echoes of sent messages and undecrypted
        messages addressed to others carry ``False``.
        """

    def on_user_joined(self, name: str, created_at: int) -> None:
        """A public key announced a profile for the first time."""

    def on_user_renamed(self, old_name: str, new_name: str, created_at: int) -> None:
        """A known public key announced a different name."""

    def on_recipient_changed(self, recipient: Recipient | None) -> None:
        """Recipient Mode changed; ``None`` means public."""

    def on_connection_changed(self, online: bool) -> None:  # noqa: FBT001
        """The relay session went online or offline."""


class MessagingEngine:
    """Top-level orchestrator of identity, cipher, profiles, and relay session.

    Args:
        context: Client context holding storage, identity, profiles, and
            session.
        view: UI callbacks. Defaults to a silent
            [ChatView][piggypost.services.messenger.ChatView].
        config: Engine settings. Defaults to ``context.config.messenger``.
    """

    def __init__(
        self,
        context: ClientContext,
        view: ChatView | None = None,
        *,
        config: MessengerConfig | None = None,
    ) -> None:
        self._context = context
        self._view = view if view is not None else ChatView()
        self._config = config if config is not None else context.config.messenger
        self._logger = Logger("messenger")
        self._lock = asyncio.Lock()
        self._recipient: Recipient | None = None
        self._subscription: Subscription | None = None
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._conversation_keys: OrderedDict[str, bytes] = OrderedDict()
        self._online = False
        context.session.add_state_listener(self._on_session_state)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def context(self) -> ClientContext:
        return self._context

    @property
    def identity(self) -> Identity:
        return self._context.identity

    @property
    def recipient(self) -> Recipient | None:
        return self._recipient

    @property
    def online(self) -> bool:
        return self._online

    @property
    def subscription(self) -> Subscription | None:
        return self._subscription

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def subscription_filter(self, now: int | None = None) -> SubscriptionFilter:
        """Filter for the three chat kinds in this namespace within the lookback window."""
        now = int(time.time()) if now is None else now
        return SubscriptionFilter(
            kinds=SUPPORTED_KINDS,
            since=max(0, now - self._config.lookback),
            tags={TagName.TOPIC.value: {self._config.namespace}},
        )

    async def start(self) -> Subscription:
        """Load the identity, connect to the configured relay, and subscribe.

        Raises:
            PersistenceError: If the identity cannot be loaded.
            ConnectivityError: If the relay cannot be reached. The view is
                told the client is offline before the error propagates.
        """
        identity = self.identity
        url = self._context.config.relay.url
        try:
            await self._context.session.connect(url)
            self._subscription = await self._context.session.subscribe(
                self.subscription_filter(), on_event=self.handle_event
            )
        except ConnectivityError:
            self._set_online(False, force=True)
            raise
        self._logger.info(
            "messenger_started",
            url=url,
            public_id=identity.public_id,
            namespace=self._config.namespace,
        )
        return self._subscription

    async def stop(self) -> None:
        await self._context.session.disconnect()
        self._subscription = None
        self._logger.info("messenger_stopped")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    def _on_session_state(self, state: SessionState) -> None:
        self._set_online(state in (SessionState.CONNECTED, SessionState.SUBSCRIBED))

    def _set_online(self, online: bool, *, force: bool = False) -> None:  # noqa: FBT001
        if online == self._online and not force:
            return
        self._online = online
        self._view.on_connection_changed(online)

    # -------------------------------------------------------------------------
    # Outgoing
    # -------------------------------------------------------------------------

    def set_recipient(self, recipient: Recipient | None) -> None:
        """Enter Recipient Mode for *recipient*, or return to public with ``None``."""
        self._recipient = recipient
        if recipient is None:
            self._logger.info("recipient_cleared")
        else:
            self._logger.info("recipient_set", pubkey=recipient.pubkey, name=recipient.name)
        self._view.on_recipient_changed(recipient)

    async def send(self, text: str) -> Event | None:
        """Publish *text* publicly, or encrypted to the current recipient.

        Whitespace-only text is ignored without touching the relay.

        Returns:
            The published event, or ``None`` if nothing was sent.

        Raises:
            NotConnectedError: If the session is not connected.
            ConnectivityError: If the relay connection fails while sending.
            CryptoError: If the recipient key is invalid or the text is too long.
        """
        if not text or not text.strip():
            return None

        async with self._lock:
            identity = self.identity
            recipient = self._recipient
            if recipient is None:
                event = build_text_note(identity, text, namespace=self._config.namespace)
                await self._context.session.publish(event)
                self._logger.debug("public_message_sent", event_id=event.id)
                return event

            ciphertext = nip44.encrypt(text, self._conversation_key(recipient.pubkey))
            event = build_direct_message(
                identity, recipient.pubkey, ciphertext, namespace=self._config.namespace
            )
            await self._context.session.publish(event)
            # the relay echo is addressed to the recipient, not to us
            self._remember(event.id)
            self._logger.debug("direct_message_sent", event_id=event.id, to=recipient.pubkey)
            await self._render(
                self._view.on_encrypted_message,
                identity.public_id,
                text,
                event.created_at,
                self._display_name(identity.public_id),
                for_current_user=False,
            )
            return event

    async def publish_profile(self, name: str, about: str = "") -> Event:
        """Announce the local profile and record it locally.

        Raises:
            ValueError: If *name* is blank.
            NotConnectedError: If the session is not connected.
            ConnectivityError: If the relay connection fails while sending.
        """
        if not name.strip():
            raise ValueError("profile name must not be blank")

        async with self._lock:
            identity = self.identity
            event = build_profile_event(identity, name, about, namespace=self._config.namespace)
            await self._context.session.publish(event)
            profiles = self._context.profiles
            profiles.set_local(name, about)
            profiles.put(identity.public_id, Profile(name=name, about=about, updated_at=event.created_at))
            self._logger.info("profile_published", event_id=event.id, name=name)
            return event

    def _conversation_key(self, pubkey: str) -> bytes:
        """Return the NIP-44 key shared with *pubkey*, reusing recently derived keys."""
        keys = self._conversation_keys
        if pubkey in keys:
            keys.move_to_end(pubkey)
            return keys[pubkey]
        key = nip44.derive_shared_key(self.identity.secret_hex, pubkey)
        keys[pubkey] = key
        while len(keys) > self._config.key_cache_size:
            keys.popitem(last=False)
        return key

    # -------------------------------------------------------------------------
    # Incoming
    # -------------------------------------------------------------------------

    def _remember(self, event_id: str) -> bool:
        """Record *event_id*; return ``False`` if it was already seen."""
        if event_id in self._seen:
            return False
        self._seen[event_id] = None
        while len(self._seen) > self._config.dedup_size:
            self._seen.popitem(last=False)
        return True

    async def _render(self, callback: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        result = callback(*args, **kwargs)
        if inspect.isawaitable(result):
            await result

    def _display_name(self, pubkey: str) -> str:
        profile = self._context.profiles.get(pubkey)
        if profile is not None and profile.name:
            return profile.name
        return pubkey[: self._config.label_length]

    async def handle_event(self, message: ChatEvent) -> None:
        """Turn one verified chat variant into view callbacks.

        Registered as the session's ``on_event`` handler by
        [start()][piggypost.services.messenger.MessagingEngine.start].
        Duplicate event ids are handled once.
        """
        async with self._lock:
            if not self._remember(message.event.id):
                self._logger.debug("event_duplicate", event_id=message.event.id)
                return

            if isinstance(message, ProfileEvent):
                await self._handle_profile(message)
            elif isinstance(message, PublicMessage):
                await self._handle_public(message)
            elif isinstance(message, DirectedMessage):
                await self._handle_directed(message)
            else:
                assert_never(message)

    async def _handle_profile(self, message: ProfileEvent) -> None:
        event = message.event
        profile = message.profile
        if profile is None:
            self._logger.debug("profile_content_invalid", event_id=event.id, pubkey=event.pubkey)
            return

        profiles = self._context.profiles
        prior = profiles.get(event.pubkey)
        if not profiles.put(event.pubkey, profile):
            return

        if prior is None:
            await self._render(self._view.on_user_joined, profile.name, event.created_at)
        elif prior.name != profile.name:
            await self._render(
                self._view.on_user_renamed, prior.name, profile.name, event.created_at
            )

    async def _handle_public(self, message: PublicMessage) -> None:
        event = message.event
        await self._render(
            self._view.on_public_message,
            event.pubkey,
            event.content,
            event.created_at,
            self._display_name(event.pubkey),
        )

    async def _handle_directed(self, message: DirectedMessage) -> None:
        event = message.event
        display_name = self._display_name(event.pubkey)

        if not message.is_addressed_to(self.identity.public_id):
            if self._config.show_undeliverable:
                await self._render(
                    self._view.on_encrypted_message,
                    event.pubkey,
                    event.content,
                    event.created_at,
                    display_name,
                    for_current_user=False,
                )
            else:
                self._logger.debug("direct_message_not_addressed", event_id=event.id)
            return

        try:
            plaintext = nip44.decrypt(event.content, self._conversation_key(event.pubkey))
        except CryptoError as e:
            self._logger.warning(
                "decrypt_failed", event_id=event.id, sender=event.pubkey, error=str(e)
            )
            return

        await self._render(
            self._view.on_encrypted_message,
            event.pubkey,
            plaintext,
            event.created_at,
            display_name,
            for_current_user=True,
        )
