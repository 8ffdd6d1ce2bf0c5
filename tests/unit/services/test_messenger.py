"""
Unit tests for services.messenger module.

Tests:
- MessagingEngine lifecycle - start, stop, connection callbacks
- MessagingEngine.send() - Public notes, encrypted directed messages,
  whitespace-only input, not-connected and transport failures
- MessagingEngine.publish_profile() - Kind 0 announcement and local record
- MessagingEngine.handle_event() - Joined / renamed, public display,
  directed decryption, unaddressed messages, deduplication
- Ordering - Sends queue behind the event being handled
- Conversation keys - Bounded shared-key cache

Each simulated client owns a FakeTransport; relaying an event means
feeding the EVENT frame one client published into another client's
transport.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any
from unittest.mock import patch

import pytest

from piggypost.core.exceptions import ConnectivityError, CryptoError, NotConnectedError
from piggypost.core.identity import Identity
from piggypost.core.storage import KEY_LOCAL_PROFILE, MemoryStore
from piggypost.models.event import Event
from piggypost.models.message import Recipient
from piggypost.models.profile import Profile
from piggypost.nips import nip44
from piggypost.nips.event_builders import build_direct_message
from piggypost.services.configs import DEFAULT_RELAY_URL, ClientConfig
from piggypost.services.context import ClientContext
from piggypost.services.messenger import ChatView, MessagingEngine
from tests.conftest import FakeTransport, RecordingView, make_event, tampered


class Client:
    """One engine with its own store, transport, and recording view."""

    def __init__(self, **messenger: Any) -> None:
        self.transport = FakeTransport()
        self.view = RecordingView()
        self.store = MemoryStore()
        config = ClientConfig(messenger=messenger, storage={"path": None})
        self.engine = MessagingEngine(
            ClientContext(self.store, self.transport, config=config), self.view
        )

    @property
    def pubkey(self) -> str:
        return self.engine.identity.public_id

    async def receive(self, event: Event | dict[str, Any]) -> None:
        """Deliver *event* through this client's relay subscription."""
        wire = event.to_dict() if isinstance(event, Event) else event
        self.transport.feed(["EVENT", self.transport.sub_id, wire])
        await self.transport.settle()

    def published(self) -> list[Event]:
        return [Event.from_dict(frame[1]) for frame in self.transport.frames("EVENT")]


@pytest.fixture
async def clients() -> AsyncIterator[Callable[..., Any]]:
    """Factory for started clients; all are stopped at teardown."""
    started: list[Client] = []

    async def _start(**messenger: Any) -> Client:
        client = Client(**messenger)
        await client.engine.start()
        started.append(client)
        return client

    yield _start
    for client in started:
        await client.engine.stop()


# =============================================================================
# Lifecycle Tests
# =============================================================================


class TestLifecycle:
    """start() / stop()."""

    async def test_start(self) -> None:
        """start() connects to the configured relay and subscribes to the namespace."""
        client = Client()
        subscription = await client.engine.start()
        assert client.transport.urls == [DEFAULT_RELAY_URL]
        req = client.transport.frames("REQ")[0]
        assert req[1] == subscription.sub_id
        assert req[2]["kinds"] == [0, 1, 4]
        assert req[2]["#t"] == ["piggypost"]
        assert "since" in req[2]
        assert client.engine.online is True
        assert client.view.named("online") == [("online", True)]
        await client.engine.stop()
        assert client.engine.online is False
        assert client.view.named("online")[-1] == ("online", False)

    async def test_start_failure(self) -> None:
        """An unreachable relay raises and reports offline."""
        client = Client()
        client.transport.connect_error = OSError("refused")
        with pytest.raises(ConnectivityError):
            await client.engine.start()
        assert client.view.named("online") == [("online", False)]
        assert client.engine.online is False

    async def test_context_manager(self) -> None:
        """async with starts and stops the engine."""
        client = Client()
        async with client.engine as engine:
            assert engine.online is True
            assert engine.subscription is not None
        assert client.engine.subscription is None
        assert client.engine.context.session.is_connected is False

    async def test_identity_persisted(self) -> None:
        """Starting persists the generated identity in the store."""
        client = Client()
        await client.engine.start()
        assert Identity.load(client.store).public_id == client.pubkey
        await client.engine.stop()

    def test_subscription_filter(self) -> None:
        """The filter covers the lookback window in the namespace."""
        engine = Client(namespace="staging", lookback=600).engine
        f = engine.subscription_filter(now=10_000)
        assert f.since == 9_400
        assert f.kinds == frozenset({0, 1, 4})
        assert f.tags["t"] == frozenset({"staging"})

    def test_subscription_filter_clamped(self) -> None:
        """since never goes negative."""
        assert Client(lookback=86_400).engine.subscription_filter(now=100).since == 0

    async def test_transport_loss_reported(self, clients: Callable[..., Any]) -> None:
        """A dropped relay connection turns the view offline."""
        client = await clients()
        client.transport.drop()
        await client.transport.settle()
        assert client.engine.online is False
        assert client.view.named("online")[-1] == ("online", False)


# =============================================================================
# Send Tests
# =============================================================================


class TestSend:
    """Outgoing messages."""

    @pytest.mark.parametrize("text", ["", "   ", "\n\t "])
    async def test_whitespace_only(self, clients: Callable[..., Any], text: str) -> None:
        """Whitespace-only input produces no event and no transport call."""
        client = await clients()
        sent = len(client.transport.sent)
        assert await client.engine.send(text) is None
        assert len(client.transport.sent) == sent
        assert client.transport.frames("EVENT") == []

    async def test_not_connected(self) -> None:
        """Sending before start raises NotConnectedError."""
        with pytest.raises(NotConnectedError):
            await Client().engine.send("hello")

    async def test_public(self, clients: Callable[..., Any]) -> None:
        """Without a recipient, text goes out as a Kind 1 note."""
        client = await clients()
        event = await client.engine.send("hello world")
        assert client.published() == [event]
        assert event.kind == 1
        assert event.content == "hello world"
        assert event.tags == (("t", "piggypost"),)
        assert client.engine.identity.verify(event)

    async def test_public_echo_displayed(self, clients: Callable[..., Any]) -> None:
        """The relay echo of a public message is shown once."""
        client = await clients()
        event = await client.engine.send("hi")
        await client.receive(event)
        await client.receive(event)
        assert client.view.named("public") == [
            ("public", client.pubkey, "hi", event.created_at, client.pubkey[:8])
        ]

    async def test_send_failure(self, clients: Callable[..., Any]) -> None:
        """A transport failure raises ConnectivityError and reports offline."""
        client = await clients()
        client.transport.send_error = OSError("broken pipe")
        with pytest.raises(ConnectivityError):
            await client.engine.send("lost")
        assert client.engine.online is False

    async def test_invalid_recipient_key(self, clients: Callable[..., Any]) -> None:
        """A recipient key that is not a curve point cannot be encrypted to."""
        client = await clients()
        client.engine.set_recipient(Recipient(pubkey="f" * 64))
        with pytest.raises(CryptoError):
            await client.engine.send("hello")
        assert client.transport.frames("EVENT") == []


# =============================================================================
# Recipient Mode Tests
# =============================================================================


class TestDirectedMessages:
    """Recipient Mode end to end."""

    async def test_set_recipient(self, clients: Callable[..., Any]) -> None:
        """Recipient changes are reported to the view."""
        client = await clients()
        bob = Recipient(pubkey=Identity.generate().public_id, name="bob")
        client.engine.set_recipient(bob)
        assert client.engine.recipient == bob
        client.engine.set_recipient(None)
        assert client.engine.recipient is None
        assert client.view.named("recipient") == [("recipient", bob), ("recipient", None)]

    async def test_encrypted_exchange(self, clients: Callable[..., Any]) -> None:
        """A sends to B; B decrypts; C, not addressed, sees nothing."""
        a, b, c = await clients(), await clients(), await clients()
        a.engine.set_recipient(Recipient(pubkey=b.pubkey, name="bob"))

        event = await a.engine.send("hello")
        assert event.kind == 4
        assert event.tags == (("p", b.pubkey), ("t", "piggypost"))
        assert event.content != "hello"
        assert a.view.named("encrypted") == [
            ("encrypted", a.pubkey, "hello", event.created_at, a.pubkey[:8], False)
        ]

        await b.receive(event)
        await c.receive(event)
        assert b.view.named("encrypted") == [
            ("encrypted", a.pubkey, "hello", event.created_at, a.pubkey[:8], True)
        ]
        assert c.view.named("encrypted") == []

    async def test_reply(self, clients: Callable[..., Any]) -> None:
        """Both directions of a conversation decrypt."""
        a, b = await clients(), await clients()
        a.engine.set_recipient(Recipient(pubkey=b.pubkey))
        b.engine.set_recipient(Recipient(pubkey=a.pubkey))
        await b.receive(await a.engine.send("ping"))
        await a.receive(await b.engine.send("pong"))
        assert [call[2] for call in b.view.named("encrypted")] == ["ping", "pong"]
        assert [call[2] for call in a.view.named("encrypted")] == ["ping", "pong"]

    async def test_own_echo_not_duplicated(self, clients: Callable[..., Any]) -> None:
        """The relay echo of a sent directed message is not shown again."""
        a, b = await clients(), await clients()
        a.engine.set_recipient(Recipient(pubkey=b.pubkey))
        event = await a.engine.send("once")
        await a.receive(event)
        assert len(a.view.named("encrypted")) == 1

    async def test_unaddressed_never_decrypted(self, clients: Callable[..., Any]) -> None:
        """A message for someone else is not even attempted."""
        a, b, c = await clients(), await clients(), await clients()
        a.engine.set_recipient(Recipient(pubkey=b.pubkey))
        event = await a.engine.send("private")
        with patch("piggypost.nips.nip44.decrypt") as decrypt:
            await c.receive(event)
        decrypt.assert_not_called()
        assert c.view.named("encrypted") == []

    async def test_unaddressed_surfaced_when_configured(self, clients: Callable[..., Any]) -> None:
        """show_undeliverable reports the raw ciphertext, not for the current user."""
        a, b = await clients(), await clients()
        c = await clients(show_undeliverable=True)
        a.engine.set_recipient(Recipient(pubkey=b.pubkey))
        event = await a.engine.send("private")
        with patch("piggypost.nips.nip44.decrypt") as decrypt:
            await c.receive(event)
        decrypt.assert_not_called()
        assert c.view.named("encrypted") == [
            ("encrypted", a.pubkey, event.content, event.created_at, a.pubkey[:8], False)
        ]

    async def test_undecryptable_ignored(self, clients: Callable[..., Any]) -> None:
        """Garbage addressed to us is dropped and later messages still arrive."""
        b = await clients()
        sender = Identity.generate()
        garbage = make_event(
            sender, kind=4, content="not-a-payload", tags=[["p", b.pubkey], ["t", "piggypost"]]
        )
        await b.receive(garbage)
        await b.receive(make_event(sender, kind=1, content="still here"))
        assert b.view.named("encrypted") == []
        assert [call[2] for call in b.view.named("public")] == ["still here"]


# =============================================================================
# Profile Tests
# =============================================================================


class TestProfiles:
    """Profile announcements."""

    async def test_publish_profile(self, clients: Callable[..., Any]) -> None:
        """publish_profile() sends Kind 0 and records the local profile."""
        client = await clients()
        event = await client.engine.publish_profile("alice", "hi")
        assert event.kind == 0
        assert client.published() == [event]
        assert client.store.get(KEY_LOCAL_PROFILE) == {"name": "alice", "about": "hi"}
        assert client.engine.context.profiles.get(client.pubkey) == Profile(
            name="alice", about="hi", updated_at=event.created_at
        )

    async def test_publish_blank_name(self, clients: Callable[..., Any]) -> None:
        """A blank name is refused before anything is sent."""
        client = await clients()
        with pytest.raises(ValueError):
            await client.engine.publish_profile("  ")
        assert client.transport.frames("EVENT") == []

    async def test_joined_then_renamed(self, clients: Callable[..., Any]) -> None:
        """A first announcement joins; a new name renames."""
        alice, peer = await clients(), await clients()
        first = await alice.engine.publish_profile("alice", "hi")
        await peer.receive(first)
        assert peer.view.named("joined") == [("joined", "alice", first.created_at)]

        second = await alice.engine.publish_profile("alicia", "hi")
        await peer.receive(second)
        assert peer.view.named("renamed") == [("renamed", "alice", "alicia", second.created_at)]
        assert peer.engine.context.profiles.get(alice.pubkey).name == "alicia"

    async def test_same_name_silent(self, clients: Callable[..., Any]) -> None:
        """Re-announcing the same name fires no callback."""
        peer = await clients()
        author = Identity.generate()
        await peer.receive(make_event(author, kind=0, content='{"name": "bob"}', created_at=10))
        await peer.receive(
            make_event(author, kind=0, content='{"name": "bob", "about": "new"}', created_at=20)
        )
        assert len(peer.view.named("joined")) == 1
        assert peer.view.named("renamed") == []
        assert peer.engine.context.profiles.get(author.public_id).about == "new"

    async def test_stale_profile_dropped(self, clients: Callable[..., Any]) -> None:
        """An older announcement arriving late changes nothing."""
        peer = await clients()
        author = Identity.generate()
        await peer.receive(make_event(author, kind=0, content='{"name": "new"}', created_at=200))
        await peer.receive(make_event(author, kind=0, content='{"name": "old"}', created_at=100))
        assert peer.view.named("renamed") == []
        assert peer.engine.context.profiles.get(author.public_id).name == "new"

    async def test_bad_profile_content(self, clients: Callable[..., Any]) -> None:
        """Unusable Kind 0 content is ignored."""
        peer = await clients()
        await peer.receive(make_event(Identity.generate(), kind=0, content="{broken"))
        assert peer.view.calls == [("online", True)]

    async def test_display_name_from_profile(self, clients: Callable[..., Any]) -> None:
        """Public messages show the author's announced name."""
        peer = await clients()
        author = Identity.generate()
        await peer.receive(make_event(author, kind=0, content='{"name": "carol"}', created_at=1))
        await peer.receive(make_event(author, kind=1, content="hey", created_at=2))
        assert peer.view.named("public") == [("public", author.public_id, "hey", 2, "carol")]


# =============================================================================
# Inbound Filtering Tests
# =============================================================================


class TestInboundFiltering:
    """Only authentic, new events reach the view."""

    async def test_duplicates_delivered_once(self, clients: Callable[..., Any]) -> None:
        """The same event id is handled once."""
        peer = await clients()
        event = make_event(Identity.generate(), kind=1, content="dup")
        for _ in range(3):
            await peer.receive(event)
        assert len(peer.view.named("public")) == 1

    async def test_forged_not_dispatched(self, clients: Callable[..., Any]) -> None:
        """Tampered events never reach the view."""
        peer = await clients()
        event = make_event(Identity.generate(), kind=1, content="genuine")
        await peer.receive(tampered(event, content="forged"))
        await peer.receive(tampered(event, sig="0" * 128))
        assert peer.view.named("public") == []

    async def test_dedup_window_bounded(self, clients: Callable[..., Any]) -> None:
        """Ids older than the window are forgotten."""
        peer = await clients(dedup_size=16)
        author = Identity.generate()
        first = make_event(author, content="first")
        await peer.receive(first)
        for i in range(16):
            await peer.receive(make_event(author, content=f"filler {i}"))
        await peer.receive(first)
        contents = [call[2] for call in peer.view.named("public")]
        assert contents.count("first") == 2


# =============================================================================
# Concurrency and Resource Tests
# =============================================================================


class TestOrdering:
    """Incoming handling and outgoing sends never interleave."""

    async def test_send_waits_for_event_in_progress(self, clients: Callable[..., Any]) -> None:
        """A send issued while an event is being rendered is published after it."""
        peer = await clients()
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_render(*args: Any) -> None:
            entered.set()
            await release.wait()

        peer.view.on_public_message = slow_render
        incoming = make_event(Identity.generate(), content="incoming")
        peer.transport.feed(["EVENT", peer.transport.sub_id, incoming.to_dict()])
        await asyncio.wait_for(entered.wait(), 1)

        send = asyncio.create_task(peer.engine.send("outgoing"))
        for _ in range(20):
            await asyncio.sleep(0)
        assert not send.done()
        assert peer.transport.frames("EVENT") == []

        release.set()
        event = await asyncio.wait_for(send, 1)
        assert [e.content for e in peer.published()] == ["outgoing"]
        assert event.content == "outgoing"

    async def test_async_view_callbacks_awaited(self, clients: Callable[..., Any]) -> None:
        """Coroutine view callbacks run to completion."""
        peer = await clients()
        rendered: list[str] = []

        async def render(pubkey: str, content: str, *args: Any) -> None:
            await asyncio.sleep(0)
            rendered.append(content)

        peer.view.on_public_message = render
        await peer.receive(make_event(Identity.generate(), content="async"))
        assert rendered == ["async"]


class TestConversationKeys:
    """Shared-key cache."""

    async def test_cache_bounded(self, clients: Callable[..., Any]) -> None:
        """Keys beyond key_cache_size are evicted least recently used first."""
        peer = await clients(key_cache_size=2)
        senders = [Identity.generate() for _ in range(3)]

        def directed(sender: Identity, text: str) -> Event:
            key = nip44.derive_shared_key(sender.secret_hex, peer.pubkey)
            return build_direct_message(sender, peer.pubkey, nip44.encrypt(text, key))

        first_round = [directed(sender, f"hello {i}") for i, sender in enumerate(senders)]
        from_last = directed(senders[2], "again")
        from_first = directed(senders[0], "again")

        with patch(
            "piggypost.nips.nip44.derive_shared_key", wraps=nip44.derive_shared_key
        ) as derive:
            for event in first_round:
                await peer.receive(event)
            assert derive.call_count == 3
            await peer.receive(from_last)
            assert derive.call_count == 3
            await peer.receive(from_first)
            assert derive.call_count == 4

        assert len(peer.view.named("encrypted")) == 5


class TestChatView:
    """Default view."""

    def test_noop_callbacks(self) -> None:
        """The base view accepts every callback silently."""
        view = ChatView()
        view.on_public_message("a" * 64, "x", 1, "a")
        view.on_encrypted_message("a" * 64, "x", 1, "a", for_current_user=True)
        view.on_user_joined("a", 1)
        view.on_user_renamed("a", "b", 1)
        view.on_recipient_changed(None)
        view.on_connection_changed(True)
