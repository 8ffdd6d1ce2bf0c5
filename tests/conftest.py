"""
Pytest configuration and shared fixtures for PiggyPost tests.

Provides:
- FakeTransport, an in-memory relay transport driven by the test
- Store, identity, transport, and session fixtures
- RecordingView, a ChatView that records every callback
- Event factories for signed and tampered events
"""

import asyncio
import json
import logging
from typing import Any

import pytest

from piggypost.core.identity import Identity
from piggypost.core.session import RelaySession
from piggypost.core.storage import MemoryStore
from piggypost.models.event import Event
from piggypost.nips.codec import build_event
from piggypost.services.messenger import ChatView


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Fakes
# ============================================================================


class FakeTransport:
    """In-memory relay transport.

    Frames sent by the session are recorded in ``sent``. Frames pushed with
    ``feed`` are returned by ``receive`` in order. ``settle`` yields to the
    event loop until the session's reader has consumed every fed frame.
    """

    def __init__(self) -> None:
        self.sent: list[list[Any]] = []
        self.urls: list[str] = []
        self.connect_error: Exception | None = None
        self.send_error: Exception | None = None
        self.close_calls = 0
        self._connected = False
        self._waiting = False
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self, url: str, *, timeout: float) -> None:
        self.urls.append(url)
        if self.connect_error is not None:
            raise self.connect_error
        self._incoming = asyncio.Queue()
        self._connected = True

    async def send(self, frame: list[Any]) -> None:
        if not self._connected:
            raise OSError("not connected")
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(json.loads(json.dumps(frame)))

    async def receive(self) -> str | None:
        self._waiting = True
        try:
            return await self._incoming.get()
        finally:
            self._waiting = False

    async def close(self) -> None:
        self.close_calls += 1
        self._connected = False
        self._incoming.put_nowait(None)

    def feed(self, frame: list[Any] | str) -> None:
        """Queue a relay frame (list or raw text) for the session to read."""
        self._incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        """Simulate the relay closing the connection."""
        self._connected = False
        self._incoming.put_nowait(None)

    async def settle(self) -> None:
        for _ in range(100):
            await asyncio.sleep(0)
            if self._incoming.empty() and self._waiting:
                return

    def frames(self, frame_type: str) -> list[list[Any]]:
        return [frame for frame in self.sent if frame[0] == frame_type]

    @property
    def sub_id(self) -> str:
        """Subscription id of the most recent REQ."""
        return self.frames("REQ")[-1][1]


class RecordingView(ChatView):
    """ChatView that records every callback as ``(name, args...)`` tuples."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def on_public_message(
        self, pubkey: str, content: str, created_at: int, display_name: str
    ) -> None:
        self.calls.append(("public", pubkey, content, created_at, display_name))

    def on_encrypted_message(
        self,
        pubkey: str,
        content: str,
        created_at: int,
        display_name: str,
        for_current_user: bool,
    ) -> None:
        self.calls.append(("encrypted", pubkey, content, created_at, display_name, for_current_user))

    def on_user_joined(self, name: str, created_at: int) -> None:
        self.calls.append(("joined", name, created_at))

    def on_user_renamed(self, old_name: str, new_name: str, created_at: int) -> None:
        self.calls.append(("renamed", old_name, new_name, created_at))

    def on_recipient_changed(self, recipient: Any) -> None:
        self.calls.append(("recipient", recipient))

    def on_connection_changed(self, online: bool) -> None:
        self.calls.append(("online", online))

    def named(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def memory_store() -> MemoryStore:
    """Empty in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def identity() -> Identity:
    """Fresh random identity."""
    return Identity.generate()


@pytest.fixture
def peer() -> Identity:
    """A second, unrelated identity."""
    return Identity.generate()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def session(transport: FakeTransport) -> RelaySession:
    return RelaySession(transport)


# ============================================================================
# Event Factories
# ============================================================================


def make_event(
    author: Identity,
    kind: int = 1,
    content: str = "hello",
    tags: list[list[str]] | None = None,
    created_at: int = 1_700_000_000,
) -> Event:
    """Build a signed event in the default namespace."""
    return build_event(
        kind,
        content,
        tags if tags is not None else [["t", "piggypost"]],
        author,
        created_at=created_at,
    )


def tampered(event: Event, **changes: Any) -> dict[str, Any]:
    """Return the wire dict of *event* with fields overridden."""
    return {**event.to_dict(), **changes}
