"""PiggyPost exception hierarchy.

Typed exceptions that separate failures the caller must act on (outgoing
connect and publish) from failures that are recovered locally (untrusted
inbound data).

Exception hierarchy:

```text
PiggyPostError (base -- never raised directly)
├── ConfigurationError    -- config validation, bad YAML
├── PersistenceError      -- key-value storage unavailable or corrupt
├── ConnectivityError     -- relay unreachable, transport dropped
├── NotConnectedError     -- operation attempted in the wrong session state
├── ProtocolError         -- wire-level violations
│   └── MalformedEventError  -- inbound event fails structural validation
├── CryptoError           -- invalid keys or cipher input
│   └── DecryptionError      -- authentication failure, wrong key, bad payload
└── PublishingError       -- event refused before it reaches the relay
```

Propagation policy:
    [MalformedEventError][piggypost.core.exceptions.MalformedEventError] and
    [DecryptionError][piggypost.core.exceptions.DecryptionError] raised
    while processing relay data never cross the dispatch boundary of
    [RelaySession][piggypost.core.session.RelaySession] or
    [MessagingEngine][piggypost.services.messenger.MessagingEngine].
    [ConnectivityError][piggypost.core.exceptions.ConnectivityError],
    [NotConnectedError][piggypost.core.exceptions.NotConnectedError], and
    [PublishingError][piggypost.core.exceptions.PublishingError] are raised
    to the caller so the UI can keep the unsent text and offer a retry.
"""

from __future__ import annotations


class PiggyPostError(Exception):
    """Base exception for all PiggyPost errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration and storage
# ---------------------------------------------------------------------------


class ConfigurationError(PiggyPostError):
    """Invalid or missing configuration (YAML, CLI flags)."""


class PersistenceError(PiggyPostError):
    """Key-value storage could not be read or written.

    Fatal when loading the [Identity][piggypost.core.identity.Identity];
    best-effort (logged) for the profile cache.
    """


# ---------------------------------------------------------------------------
# Relay session
# ---------------------------------------------------------------------------


class ConnectivityError(PiggyPostError):
    """Relay unreachable or transport lost.

    Recoverable by a caller-driven reconnect; the session never retries
    on its own.
    """


class NotConnectedError(PiggyPostError):
    """Operation attempted while the session is not connected.

    Surfaces a caller error immediately instead of queueing the operation.
    """


class PublishingError(PiggyPostError):
    """Event refused before it was handed to the transport (e.g. missing signature)."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(PiggyPostError):
    """Wire-level protocol violation."""


class MalformedEventError(ProtocolError):
    """Inbound event failed structural validation."""


# ---------------------------------------------------------------------------
# Cryptography
# ---------------------------------------------------------------------------


class CryptoError(PiggyPostError):
    """Invalid key material or cipher input."""


class DecryptionError(CryptoError):
    """Payload could not be authenticated or decrypted with the given key.

    Expected in normal operation for directed messages meant for someone
    else; callers treat it as "not for me".
    """
