"""WebSocket transport to a single Nostr relay.

The [RelaySession][piggypost.core.session.RelaySession] talks to the relay
only through the [Transport][piggypost.utils.transport.Transport] protocol:
connect, send one JSON frame, receive one raw text frame, close. The shipped
implementation, [WebSocketTransport][piggypost.utils.transport.WebSocketTransport],
is a thin aiohttp client; tests substitute an in-memory fake.

Failures are normalized to ``OSError`` so the session can map every
transport problem to one
[ConnectivityError][piggypost.core.exceptions.ConnectivityError] without
knowing which library produced it.

Note:
    There is no reconnection logic here. Reconnecting is the caller's
    decision, driven through
    [RelaySession.connect()][piggypost.core.session.RelaySession.connect].
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Protocol, runtime_checkable

import aiohttp


logger = logging.getLogger(__name__)

_WS_CLOSE_TIMEOUT = 5.0
_WS_HEARTBEAT = 30.0


@runtime_checkable
class Transport(Protocol):
    """Relay connection consumed by the session."""

    @property
    def is_connected(self) -> bool: ...

    async def connect(self, url: str, *, timeout: float) -> None:  # noqa: ASYNC109
        """Open the connection. Raises ``OSError`` on failure."""
        ...

    async def send(self, frame: list[Any]) -> None:
        """Serialize and send one frame. Raises ``OSError`` on failure."""
        ...

    async def receive(self) -> str | None:
        """Return the next text frame, or ``None`` once the connection is gone."""
        ...

    async def close(self) -> None:
        """Close the connection. Never raises."""
        ...


class WebSocketTransport:
    """aiohttp WebSocket client implementing [Transport][piggypost.utils.transport.Transport].

    One instance holds at most one connection. Binary frames are ignored;
    ping/pong is answered by aiohttp through the ``heartbeat`` setting.
    """

    def __init__(
        self,
        *,
        heartbeat: float = _WS_HEARTBEAT,
        close_timeout: float = _WS_CLOSE_TIMEOUT,
    ) -> None:
        self._heartbeat = heartbeat
        self._close_timeout = close_timeout
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self, url: str, *, timeout: float) -> None:  # noqa: ASYNC109
        """Open a WebSocket to *url*.

        Raises:
            OSError: On connection failure (network, TLS, DNS, handshake,
                timeout).
            asyncio.CancelledError: If cancelled.
        """
        await self.close()

        client_timeout = aiohttp.ClientTimeout(total=timeout)
        session = aiohttp.ClientSession(timeout=client_timeout)
        try:
            ws = await session.ws_connect(url, heartbeat=self._heartbeat)
        except aiohttp.ClientError as e:
            await session.close()
            logger.debug("ws_connect_failed url=%s error=%s", url, str(e))
            raise OSError(f"Connection failed: {e}") from e
        except TimeoutError:
            await session.close()
            logger.debug("ws_timeout url=%s", url)
            raise OSError(f"Connection timeout: {url}") from None
        except asyncio.CancelledError:
            await session.close()
            raise
        except OSError as e:
            await session.close()
            logger.debug("ws_error url=%s error=%s", url, str(e))
            raise OSError(f"Connection failed: {e}") from e

        self._session = session
        self._ws = ws

    async def send(self, frame: list[Any]) -> None:
        if self._ws is None or self._ws.closed:
            raise OSError("WebSocket is not open")
        text = json.dumps(frame, separators=(",", ":"), ensure_ascii=False)
        try:
            await self._ws.send_str(text)
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise OSError(f"Send failed: {e}") from e

    async def receive(self) -> str | None:
        while self._ws is not None:
            msg = await self._ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                return str(msg.data)
            if msg.type == aiohttp.WSMsgType.BINARY:
                logger.debug("ws_binary_frame_ignored size=%d", len(msg.data))
                continue
            # CLOSE, CLOSING, CLOSED, ERROR -> connection terminated
            return None
        return None

    async def close(self) -> None:
        """Close the WebSocket and its HTTP session with bounded waits."""
        ws, session = self._ws, self._session
        self._ws = None
        self._session = None
        # teardown of an already broken socket can raise anything aiohttp wraps
        if ws is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(ws.close(), timeout=self._close_timeout)
        if session is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(session.close(), timeout=self._close_timeout)
