"""Nostr key handling and relay WebSocket transport.

The utils layer depends only on [piggypost.models][piggypost.models]. It
provides the low-level cryptographic and network primitives used by
[piggypost.core][piggypost.core] and [piggypost.nips][piggypost.nips].

Attributes:
    keys: Key generation and parsing, event signing, and signature
        verification via nostr-sdk.
    transport: The [Transport][piggypost.utils.transport.Transport] protocol
        and its aiohttp WebSocket implementation.

Note:
    The utils layer has **zero** imports from ``piggypost.core`` or
    ``piggypost.services``. Failures surface as ``ValueError`` or
    ``OSError`` and are mapped to typed exceptions one layer up.

Examples:
    ```python
    from piggypost.utils.keys import generate_keys, sign_event
    from piggypost.utils.transport import WebSocketTransport
    ```
"""
