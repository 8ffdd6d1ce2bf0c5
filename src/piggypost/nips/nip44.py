"""NIP-44 v2 authenticated encryption for directed messages.

Key agreement is ECDH on secp256k1 between the sender's secret key and the
recipient's x-only public key. The shared x-coordinate is run through
HKDF-extract with the salt ``nip44-v2`` to obtain a 32-byte conversation
key, identical for both parties.

Each message draws a fresh 32-byte nonce. HKDF-expand of the conversation
key over that nonce yields a ChaCha20 key, a ChaCha20 nonce and an HMAC key.
The plaintext is length-prefixed and padded to a bucket size, encrypted
with ChaCha20, and authenticated with HMAC-SHA256 over ``nonce || ciphertext``.
The payload is ``base64(0x02 || nonce || ciphertext || mac)``.

Warning:
    [decrypt()][piggypost.nips.nip44.decrypt] raises
    [DecryptionError][piggypost.core.exceptions.DecryptionError] for every
    failure mode (wrong key, tampering, bad encoding) without saying which,
    and checks the MAC before touching the ciphertext.

Examples:
    ```python
    key = derive_shared_key(alice.secret_hex, bob.public_id)
    payload = encrypt("hello", key)
    assert decrypt(payload, derive_shared_key(bob.secret_hex, alice.public_id)) == "hello"
    ```
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand

from piggypost.core.exceptions import CryptoError, DecryptionError


VERSION = 2
SALT = b"nip44-v2"

KEY_SIZE = 32
NONCE_SIZE = 32
MAC_SIZE = 32
MIN_PLAINTEXT_SIZE = 1
MAX_PLAINTEXT_SIZE = 65_535

_CHACHA_KEY_SIZE = 32
_CHACHA_NONCE_SIZE = 12
_HMAC_KEY_SIZE = 32
_MESSAGE_KEYS_SIZE = _CHACHA_KEY_SIZE + _CHACHA_NONCE_SIZE + _HMAC_KEY_SIZE

_MIN_PADDED_SIZE = 32
_LENGTH_PREFIX_SIZE = 2

# Bounds on the base64 payload and its decoded form
_MIN_PAYLOAD_SIZE = 132
_MAX_PAYLOAD_SIZE = 87_472
_MIN_DATA_SIZE = 99
_MAX_DATA_SIZE = 65_603


# =============================================================================
# Key agreement
# =============================================================================


def _parse_secret(secret_hex: str) -> ec.EllipticCurvePrivateKey:
    try:
        secret = bytes.fromhex(secret_hex)
    except (TypeError, ValueError) as e:
        raise CryptoError("secret key is not hex") from e
    if len(secret) != KEY_SIZE:
        raise CryptoError(f"secret key must be {KEY_SIZE} bytes")
    try:
        return ec.derive_private_key(int.from_bytes(secret, "big"), ec.SECP256K1())
    except ValueError as e:
        raise CryptoError("secret key is out of range") from e


def _parse_public(public_hex: str) -> ec.EllipticCurvePublicKey:
    try:
        x_only = bytes.fromhex(public_hex)
    except (TypeError, ValueError) as e:
        raise CryptoError("public key is not hex") from e
    if len(x_only) != KEY_SIZE:
        raise CryptoError(f"public key must be {KEY_SIZE} bytes")
    try:
        # BIP-340 x-only keys always denote the point with even y
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), b"\x02" + x_only)
    except ValueError as e:
        raise CryptoError("public key is not on the curve") from e


def derive_shared_key(our_secret: str, their_public: str) -> bytes:
    """Derive the 32-byte conversation key shared by two parties.

    ``derive_shared_key(a.secret, b.public) == derive_shared_key(b.secret, a.public)``.

    Args:
        our_secret: Local secret key, 64-char hex.
        their_public: Peer x-only public key, 64-char hex.

    Raises:
        CryptoError: If either key is malformed or invalid on secp256k1.
    """
    private_key = _parse_secret(our_secret)
    public_key = _parse_public(their_public)
    shared_x = private_key.exchange(ec.ECDH(), public_key)
    return hmac.new(SALT, shared_x, hashlib.sha256).digest()


# =============================================================================
# Padding
# =============================================================================


def calc_padded_len(unpadded_len: int) -> int:
    """Return the bucket size a plaintext of *unpadded_len* bytes is padded to."""
    if unpadded_len <= _MIN_PADDED_SIZE:
        return _MIN_PADDED_SIZE
    next_power = 1 << (unpadded_len - 1).bit_length()
    chunk = 32 if next_power <= 256 else next_power // 8  # noqa: PLR2004
    return chunk * ((unpadded_len - 1) // chunk + 1)


def _pad(plaintext: bytes) -> bytes:
    size = len(plaintext)
    prefix = size.to_bytes(_LENGTH_PREFIX_SIZE, "big")
    return prefix + plaintext + bytes(calc_padded_len(size) - size)


def _unpad(padded: bytes) -> bytes:
    size = int.from_bytes(padded[:_LENGTH_PREFIX_SIZE], "big")
    plaintext = padded[_LENGTH_PREFIX_SIZE : _LENGTH_PREFIX_SIZE + size]
    if (
        size < MIN_PLAINTEXT_SIZE
        or len(plaintext) != size
        or len(padded) != _LENGTH_PREFIX_SIZE + calc_padded_len(size)
    ):
        raise DecryptionError("invalid padding")
    return plaintext


# =============================================================================
# Encryption
# =============================================================================


def _message_keys(conversation_key: bytes, nonce: bytes) -> tuple[bytes, bytes, bytes]:
    okm = HKDFExpand(algorithm=hashes.SHA256(), length=_MESSAGE_KEYS_SIZE, info=nonce).derive(
        conversation_key
    )
    chacha_key = okm[:_CHACHA_KEY_SIZE]
    chacha_nonce = okm[_CHACHA_KEY_SIZE : _CHACHA_KEY_SIZE + _CHACHA_NONCE_SIZE]
    hmac_key = okm[_CHACHA_KEY_SIZE + _CHACHA_NONCE_SIZE :]
    return chacha_key, chacha_nonce, hmac_key


def _chacha20(key: bytes, nonce: bytes, data: bytes) -> bytes:
    # cryptography takes a 16-byte nonce: 4-byte little-endian counter, then the IETF nonce
    cipher = Cipher(algorithms.ChaCha20(key, b"\x00" * 4 + nonce), mode=None)
    transform = cipher.encryptor()
    return transform.update(data) + transform.finalize()


def _mac(hmac_key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    return hmac.new(hmac_key, nonce + ciphertext, hashlib.sha256).digest()


def _check_key(conversation_key: bytes) -> None:
    if not isinstance(conversation_key, bytes) or len(conversation_key) != KEY_SIZE:
        raise CryptoError(f"conversation key must be {KEY_SIZE} bytes")


def encrypt(plaintext: str, conversation_key: bytes, *, nonce: bytes | None = None) -> str:
    """Encrypt *plaintext* and return the base64 payload.

    Args:
        plaintext: Message text; 1 to 65535 bytes once UTF-8 encoded.
        conversation_key: Output of
            [derive_shared_key()][piggypost.nips.nip44.derive_shared_key].
        nonce: Fixed 32-byte nonce. Only for reproducing known vectors;
            leave unset so every call draws a fresh one from ``os.urandom``.

    Raises:
        CryptoError: If the key or nonce has the wrong size, or the
            plaintext length is out of range.
    """
    _check_key(conversation_key)
    if nonce is None:
        nonce = os.urandom(NONCE_SIZE)
    elif len(nonce) != NONCE_SIZE:
        raise CryptoError(f"nonce must be {NONCE_SIZE} bytes")

    data = plaintext.encode("utf-8")
    if not MIN_PLAINTEXT_SIZE <= len(data) <= MAX_PLAINTEXT_SIZE:
        raise CryptoError(
            f"plaintext must be {MIN_PLAINTEXT_SIZE}-{MAX_PLAINTEXT_SIZE} bytes, got {len(data)}"
        )

    chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)
    ciphertext = _chacha20(chacha_key, chacha_nonce, _pad(data))
    mac = _mac(hmac_key, nonce, ciphertext)
    return base64.b64encode(bytes([VERSION]) + nonce + ciphertext + mac).decode("ascii")


def decrypt(payload: str, conversation_key: bytes) -> str:
    """Authenticate and decrypt a payload produced by [encrypt()][piggypost.nips.nip44.encrypt].

    Raises:
        CryptoError: If the conversation key has the wrong size.
        DecryptionError: On unknown version, bad encoding or length, MAC
            mismatch (wrong key or tampering), or bad padding.
    """
    _check_key(conversation_key)
    if not isinstance(payload, str) or not payload or payload.startswith("#"):
        raise DecryptionError("unknown encryption version")
    if not _MIN_PAYLOAD_SIZE <= len(payload) <= _MAX_PAYLOAD_SIZE:
        raise DecryptionError("invalid payload size")

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("invalid base64") from e
    if not _MIN_DATA_SIZE <= len(data) <= _MAX_DATA_SIZE:
        raise DecryptionError("invalid data size")
    if data[0] != VERSION:
        raise DecryptionError(f"unknown encryption version {data[0]}")

    nonce = data[1 : 1 + NONCE_SIZE]
    ciphertext = data[1 + NONCE_SIZE : -MAC_SIZE]
    mac = data[-MAC_SIZE:]

    chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)
    if not hmac.compare_digest(_mac(hmac_key, nonce, ciphertext), mac):
        raise DecryptionError("invalid MAC")

    plaintext = _unpad(_chacha20(chacha_key, chacha_nonce, ciphertext))
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("plaintext is not UTF-8") from e
