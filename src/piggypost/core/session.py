"""Relay session: one transport, one live subscription, verified dispatch.

[RelaySession][piggypost.core.session.RelaySession] owns a
[Transport][piggypost.utils.transport.Transport] and walks the state machine
described by [SessionState][piggypost.models.constants.SessionState]:

```text
DISCONNECTED -> CONNECTING -> CONNECTED -> SUBSCRIBED -> DISCONNECTED
```

A background reader task consumes relay frames strictly in delivery order.
Every ``EVENT`` frame goes through
[parse_incoming()][piggypost.nips.codec.parse_incoming]; only
[Accepted][piggypost.models.message.Accepted] events reach the subscriber.
Malformed or unverified events are logged and dropped, and never stop the
reader.

Outgoing failures are raised to the caller: connect and send problems as
[ConnectivityError][piggypost.core.exceptions.ConnectivityError],
out-of-state calls as
[NotConnectedError][piggypost.core.exceptions.NotConnectedError]. The
session never reconnects on its own.

Examples:
    ```python
    session = RelaySession(WebSocketTransport())
    async with session:
        await session.connect("wss://relay.example.com")
        subscription = await session.subscribe(SubscriptionFilter(kinds={1}))
        async for message in subscription:
            print(message.event.content)
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import secrets
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Self

from piggypost.models.constants import SessionState
from piggypost.models.message import Accepted, ChatEvent, Rejected, Unverified
from piggypost.nips.codec import parse_incoming

from .exceptions import ConnectivityError, NotConnectedError, PublishingError
from .logger import Logger


if TYPE_CHECKING:
    from types import TracebackType

    from piggypost.models.event import Event
    from piggypost.models.filter import SubscriptionFilter
    from piggypost.utils.transport import Transport


EventHandler = Callable[[ChatEvent], Awaitable[None] | None]
StateListener = Callable[[SessionState], None]

_DEFAULT_CONNECT_TIMEOUT = 10.0
# Minimum element count of each relay-to-client frame type
_MIN_FRAME_LENGTH = {"EVENT": 3, "EOSE": 2, "OK": 4, "NOTICE": 2, "CLOSED": 2}


class Subscription:
    """Handle for the live subscription of a [RelaySession][piggypost.core.session.RelaySession].

    Without an ``on_event`` handler the handle is an async iterator of
    verified chat variants in delivery order. With a handler, variants go to
    the handler only and iteration simply waits for the end. Either way the
    subscription ends when it is closed, replaced, closed by the relay, or
    the session disconnects.
    """

    def __init__(
        self,
        session: RelaySession,
        sub_id: str,
        subscription_filter: SubscriptionFilter,
        on_event: EventHandler | None = None,
    ) -> None:
        self._session = session
        self._sub_id = sub_id
        self._filter = subscription_filter
        self._on_event = on_event
        self._queue: asyncio.Queue[ChatEvent | None] = asyncio.Queue()
        self._closed = False
        self._synced = asyncio.Event()

    def __repr__(self) -> str:
        return f"Subscription(sub_id={self._sub_id!r}, closed={self._closed})"

    @property
    def sub_id(self) -> str:
        return self._sub_id

    @property
    def filter(self) -> SubscriptionFilter:
        return self._filter

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def synced(self) -> bool:
        """Whether the relay has signalled end of stored events (``EOSE``)."""
        return self._synced.is_set()

    async def wait_synced(self, timeout: float | None = None) -> bool:  # noqa: ASYNC109
        """Wait for ``EOSE``. Returns ``False`` on timeout."""
        try:
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    async def close(self) -> None:
        """Send ``CLOSE`` to the relay and end the subscription."""
        await self._session.unsubscribe(self)

    async def _deliver(self, message: ChatEvent) -> None:
        if self._closed:
            return
        if self._on_event is None:
            self._queue.put_nowait(message)
            return
        result = self._on_event(message)
        if inspect.isawaitable(result):
            await result

    def _mark_synced(self) -> None:
        self._synced.set()

    def _end(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> ChatEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


class RelaySession:
    """Connection to a single relay with at most one live subscription.

    Args:
        transport: Relay transport; owned by the session from now on.
        connect_timeout: Seconds allowed for the transport handshake.

    Note:
        Deduplication is not performed here; events reach the subscriber
        exactly in the order and multiplicity the relay sends them.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        connect_timeout: float = _DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self._transport = transport
        self._connect_timeout = connect_timeout
        self._logger = Logger("session")
        self._state = SessionState.DISCONNECTED
        self._url: str | None = None
        self._subscription: Subscription | None = None
        self._reader: asyncio.Task[None] | None = None
        self._listeners: list[StateListener] = []

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state in (SessionState.CONNECTED, SessionState.SUBSCRIBED)

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def subscription(self) -> Subscription | None:
        return self._subscription

    def add_state_listener(self, listener: StateListener) -> None:
        """Register *listener* to be called with every new state."""
        self._listeners.append(listener)

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        self._logger.debug("session_state_changed", old=self._state, new=state)
        self._state = state
        for listener in self._listeners:
            listener(state)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, url: str) -> None:
        """Open the transport to *url*.

        An existing connection is torn down first. On failure the session is
        back in ``DISCONNECTED`` and retrying is up to the caller.

        Raises:
            ConnectivityError: If the transport cannot connect.
        """
        if self._state != SessionState.DISCONNECTED:
            await self.disconnect()

        self._url = url
        self._set_state(SessionState.CONNECTING)
        try:
            await self._transport.connect(url, timeout=self._connect_timeout)
        except (OSError, TimeoutError) as e:
            self._set_state(SessionState.DISCONNECTED)
            self._logger.warning("session_connect_failed", url=url, error=str(e))
            raise ConnectivityError(f"Cannot connect to {url}: {e}") from e

        self._set_state(SessionState.CONNECTED)
        self._reader = asyncio.create_task(self._read_loop(), name="piggypost-relay-reader")
        self._logger.info("session_connected", url=url)

    async def disconnect(self) -> None:
        """Close the subscription and the transport. Idempotent."""
        if self._state == SessionState.DISCONNECTED and self._reader is None:
            return

        subscription = self._subscription
        if subscription is not None and self.is_connected:
            try:
                await self._transport.send(["CLOSE", subscription.sub_id])
            except OSError as e:
                self._logger.debug("close_frame_failed", sub_id=subscription.sub_id, error=str(e))

        await self._teardown()
        self._logger.info("session_disconnected", url=self._url)

    async def _teardown(self) -> None:
        if self._subscription is not None:
            self._subscription._end()
            self._subscription = None

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        await self._transport.close()
        self._set_state(SessionState.DISCONNECTED)

    async def _lost(self, reason: str) -> None:
        if self._state == SessionState.DISCONNECTED:
            return
        self._logger.warning("session_lost", url=self._url, reason=reason)
        await self._teardown()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # -------------------------------------------------------------------------
    # Outgoing
    # -------------------------------------------------------------------------

    def _require_connected(self, operation: str) -> None:
        if not self.is_connected:
            raise NotConnectedError(f"Cannot {operation} while {self._state}")

    async def _send(self, frame: list[Any]) -> None:
        try:
            await self._transport.send(frame)
        except OSError as e:
            await self._lost(str(e))
            raise ConnectivityError(f"Send to {self._url} failed: {e}") from e

    async def subscribe(
        self,
        subscription_filter: SubscriptionFilter,
        on_event: EventHandler | None = None,
    ) -> Subscription:
        """Replace the live subscription with one for *subscription_filter*.

        The previous subscription, if any, is closed with a ``CLOSE`` frame
        before the new ``REQ`` is sent.

        Args:
            subscription_filter: Relay-side filter.
            on_event: Optional handler awaited for every accepted variant,
                in delivery order, on the reader task.

        Raises:
            NotConnectedError: If the session is not connected.
            ConnectivityError: If a frame cannot be sent.
        """
        self._require_connected("subscribe")

        previous = self._subscription
        if previous is not None:
            self._subscription = None
            previous._end()
            await self._send(["CLOSE", previous.sub_id])
            self._logger.debug("subscription_replaced", sub_id=previous.sub_id)

        subscription = Subscription(self, secrets.token_hex(8), subscription_filter, on_event)
        await self._send(["REQ", subscription.sub_id, subscription_filter.to_wire()])
        self._subscription = subscription
        self._set_state(SessionState.SUBSCRIBED)
        self._logger.info(
            "subscription_opened",
            sub_id=subscription.sub_id,
            filter=json.dumps(subscription_filter.to_wire(), separators=(",", ":")),
        )
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Close *subscription* if it is still the live one."""
        if subscription is not self._subscription:
            subscription._end()
            return
        self._subscription = None
        subscription._end()
        if self.is_connected:
            await self._send(["CLOSE", subscription.sub_id])
            self._set_state(SessionState.CONNECTED)
        self._logger.info("subscription_closed", sub_id=subscription.sub_id)

    async def publish(self, event: Event) -> None:
        """Send *event* to the relay.

        The event is not re-verified; the publisher is responsible for it.

        Raises:
            NotConnectedError: If the session is not connected.
            PublishingError: If the event carries no signature.
            ConnectivityError: If the frame cannot be sent.
        """
        self._require_connected("publish")
        if not event.sig:
            raise PublishingError(f"Refusing to publish unsigned event {event.id[:16]}...")
        await self._send(["EVENT", event.to_dict()])
        self._logger.debug("event_published", event_id=event.id, kind=event.kind)

    # -------------------------------------------------------------------------
    # Incoming
    # -------------------------------------------------------------------------

    async def _read_loop(self) -> None:
        while True:
            try:
                raw = await self._transport.receive()
            except OSError as e:
                await self._lost(str(e))
                return
            if raw is None:
                await self._lost("connection closed")
                return
            try:
                await self._handle_frame(raw)
            except Exception:
                self._logger.exception("frame_handling_failed", frame=raw)

    async def _handle_frame(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            self._logger.debug("frame_malformed", frame=raw)
            return
        if not isinstance(frame, list) or not frame or not isinstance(frame[0], str):
            self._logger.debug("frame_malformed", frame=raw)
            return

        frame_type = frame[0]
        if len(frame) < _MIN_FRAME_LENGTH.get(frame_type, 1):
            self._logger.debug("frame_truncated", frame_type=frame_type)
            return

        if frame_type == "EVENT":
            await self._handle_event(frame[1], frame[2])
        elif frame_type == "EOSE":
            if self._subscription is not None and frame[1] == self._subscription.sub_id:
                self._subscription._mark_synced()
                self._logger.debug("subscription_synced", sub_id=frame[1])
        elif frame_type == "OK":
            if frame[2] is True:
                self._logger.debug("event_accepted", event_id=frame[1])
            else:
                self._logger.warning("event_refused", event_id=frame[1], reason=frame[3])
        elif frame_type == "NOTICE":
            self._logger.warning("relay_notice", text=frame[1])
        elif frame_type == "CLOSED":
            await self._handle_closed(frame[1], frame[2] if len(frame) > 2 else "")  # noqa: PLR2004
        else:
            self._logger.debug("frame_ignored", frame_type=frame_type)

    async def _handle_event(self, sub_id: Any, raw_event: Any) -> None:
        subscription = self._subscription
        if subscription is None or sub_id != subscription.sub_id:
            self._logger.debug("event_for_stale_subscription", sub_id=sub_id)
            return

        result = parse_incoming(raw_event)
        if isinstance(result, Rejected):
            self._logger.debug("event_rejected", reason=result.reason)
            return
        if isinstance(result, Unverified):
            self._logger.warning("event_unverified", event_id=result.event.id, reason=result.reason)
            return
        if isinstance(result, Accepted):
            try:
                await subscription._deliver(result.message)
            except Exception:
                self._logger.exception("event_handler_failed", event_id=result.event.id)

    async def _handle_closed(self, sub_id: Any, message: Any) -> None:
        subscription = self._subscription
        if subscription is None or sub_id != subscription.sub_id:
            return
        self._subscription = None
        subscription._end()
        self._set_state(SessionState.CONNECTED)
        self._logger.warning("subscription_closed_by_relay", sub_id=sub_id, reason=message)
