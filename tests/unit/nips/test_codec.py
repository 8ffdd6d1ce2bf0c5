"""
Unit tests for nips.codec module.

Tests:
- build_event() - Stamping and signing
- decode_event() - Structural validation of inbound data
- classify() - Mapping to chat variants
- parse_incoming() - Rejected / Unverified / Accepted outcomes
"""

import json
import time

import pytest

from piggypost.core.exceptions import MalformedEventError
from piggypost.core.identity import Identity
from piggypost.models.message import (
    Accepted,
    DirectedMessage,
    ProfileEvent,
    PublicMessage,
    Rejected,
    Unverified,
)
from piggypost.models.profile import Profile
from piggypost.nips.codec import build_event, classify, decode_event, parse_incoming
from tests.conftest import make_event, tampered


# =============================================================================
# build_event() Tests
# =============================================================================


class TestBuildEvent:
    """Outgoing event construction."""

    def test_signed_by_identity(self, identity: Identity) -> None:
        """The event is authored and signed by the identity."""
        event = build_event(1, "hi", [["t", "piggypost"]], identity)
        assert event.pubkey == identity.public_id
        assert identity.verify(event) is True

    def test_current_time(self, identity: Identity) -> None:
        """created_at defaults to now."""
        before = int(time.time())
        event = build_event(1, "hi", [], identity)
        assert before <= event.created_at <= int(time.time())

    def test_explicit_time(self, identity: Identity) -> None:
        """created_at can be pinned."""
        assert build_event(1, "hi", [], identity, created_at=42).created_at == 42

    def test_tag_order_preserved(self, identity: Identity, peer: Identity) -> None:
        """Tags are signed in the given order."""
        event = build_event(4, "x", [["p", peer.public_id], ["t", "piggypost"]], identity)
        assert event.tags == (("p", peer.public_id), ("t", "piggypost"))


# =============================================================================
# decode_event() Tests
# =============================================================================


class TestDecodeEvent:
    """Structural validation."""

    def test_dict(self, identity: Identity) -> None:
        """A wire dict decodes to an equal event."""
        event = make_event(identity)
        assert decode_event(event.to_dict()) == event

    def test_json_string(self, identity: Identity) -> None:
        """JSON text and bytes are accepted."""
        event = make_event(identity)
        assert decode_event(event.to_json()) == event
        assert decode_event(event.to_json().encode()) == event

    @pytest.mark.parametrize("raw", ["{", b"\xff", "[]", "1", None, ["EVENT"]])
    def test_not_an_object(self, raw: object) -> None:
        """Non-object input raises MalformedEventError."""
        with pytest.raises(MalformedEventError):
            decode_event(raw)

    @pytest.mark.parametrize("field", ["id", "pubkey", "sig", "tags"])
    def test_missing_field(self, identity: Identity, field: str) -> None:
        """Missing fields raise MalformedEventError."""
        data = make_event(identity).to_dict()
        del data[field]
        with pytest.raises(MalformedEventError, match="missing"):
            decode_event(data)

    @pytest.mark.parametrize(
        "changes",
        [
            {"pubkey": "xyz"},
            {"created_at": "now"},
            {"kind": None},
            {"tags": [[1, 2]]},
            {"content": {"text": "hi"}},
            {"sig": "00"},
        ],
    )
    def test_bad_types(self, identity: Identity, changes: dict) -> None:
        """Wrong types or formats raise MalformedEventError."""
        with pytest.raises(MalformedEventError):
            decode_event(tampered(make_event(identity), **changes))

    def test_unsigned(self, identity: Identity) -> None:
        """An empty signature is malformed on ingress."""
        with pytest.raises(MalformedEventError, match="signature"):
            decode_event(tampered(make_event(identity), sig=""))


# =============================================================================
# classify() Tests
# =============================================================================


class TestClassify:
    """Chat variant mapping."""

    def test_profile(self, identity: Identity) -> None:
        """Kind 0 becomes a ProfileEvent with parsed content."""
        event = make_event(identity, kind=0, content='{"name": "alice", "about": "hi"}', created_at=7)
        message = classify(event)
        assert isinstance(message, ProfileEvent)
        assert message.profile == Profile(name="alice", about="hi", updated_at=7)

    def test_profile_bad_content(self, identity: Identity) -> None:
        """Unusable Kind 0 content still classifies, without a profile."""
        message = classify(make_event(identity, kind=0, content="not json"))
        assert isinstance(message, ProfileEvent)
        assert message.profile is None

    def test_public(self, identity: Identity) -> None:
        """Kind 1 becomes a PublicMessage."""
        assert isinstance(classify(make_event(identity, kind=1)), PublicMessage)

    def test_directed(self, identity: Identity, peer: Identity) -> None:
        """Kind 4 becomes a DirectedMessage with its p-tag recipients."""
        event = make_event(identity, kind=4, tags=[["p", peer.public_id], ["t", "piggypost"]])
        message = classify(event)
        assert isinstance(message, DirectedMessage)
        assert message.recipients == (peer.public_id,)

    def test_directed_without_recipient(self, identity: Identity) -> None:
        """A Kind 4 without p tags is addressed to nobody."""
        message = classify(make_event(identity, kind=4))
        assert message.recipients == ()

    def test_unsupported(self, identity: Identity) -> None:
        """Other kinds raise MalformedEventError."""
        with pytest.raises(MalformedEventError):
            classify(make_event(identity, kind=7))


# =============================================================================
# parse_incoming() Tests
# =============================================================================


class TestParseIncoming:
    """Three-gate inbound parsing."""

    def test_accepted(self, identity: Identity) -> None:
        """An authentic supported event is accepted."""
        event = make_event(identity)
        result = parse_incoming(event.to_dict())
        assert isinstance(result, Accepted)
        assert result.event == event

    def test_accepts_json_text(self, identity: Identity) -> None:
        """Raw JSON text goes through the same gates."""
        assert isinstance(parse_incoming(make_event(identity).to_json()), Accepted)

    def test_malformed(self) -> None:
        """Structural failures are Rejected."""
        result = parse_incoming({"kind": 1})
        assert isinstance(result, Rejected)
        assert "missing" in result.reason

    def test_unsupported_kind(self, identity: Identity) -> None:
        """Authentic events of other kinds are Rejected."""
        result = parse_incoming(make_event(identity, kind=30023).to_dict())
        assert isinstance(result, Rejected)
        assert "unsupported" in result.reason

    def test_id_mismatch(self, identity: Identity) -> None:
        """Changed content with the original id is Unverified."""
        result = parse_incoming(tampered(make_event(identity), content="forged"))
        assert isinstance(result, Unverified)
        assert result.reason == "id mismatch"

    def test_bad_signature(self, identity: Identity, peer: Identity) -> None:
        """A consistent id under the wrong author is Unverified."""
        data = make_event(identity).to_dict()
        forged = {**data, "pubkey": peer.public_id}
        forged["id"] = decode_event(forged).compute_id()
        result = parse_incoming(forged)
        assert isinstance(result, Unverified)
        assert result.reason == "invalid signature"

    @pytest.mark.parametrize("raw", [None, 42, "garbage", json.dumps([1, 2])])
    def test_never_raises(self, raw: object) -> None:
        """Arbitrary input yields a result instead of an exception."""
        assert isinstance(parse_incoming(raw), Rejected)

    @pytest.mark.parametrize(
        "changes",
        [
            {"content": "hi \ud800"},
            {"tags": [["t", "piggypost"], ["x", "\udfff"]]},
        ],
    )
    def test_lone_surrogate_rejected(self, identity: Identity, changes: dict) -> None:
        """Text with no UTF-8 encoding is Rejected before any id is computed."""
        raw = json.dumps(tampered(make_event(identity), **changes))
        result = parse_incoming(raw)
        assert isinstance(result, Rejected)
        assert "UTF-8" in result.reason
