"""
Nostrich key material and cryptographic primitives.

Provides secp256k1 key pair generation and import, BIP-340 Schnorr
signing/verification, SHA-256 hashing, and the hex and NIP-19 (bech32)
key encodings.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from bech32 import bech32_decode, bech32_encode, convertbits
from coincurve import PrivateKey, PublicKeyXOnly

logger = logging.getLogger(__name__)

KEY_SIZE = 32
SIGNATURE_SIZE = 64

NSEC_PREFIX = "nsec"
NPUB_PREFIX = "npub"

# Fixed auxiliary randomness makes BIP-340 signing deterministic.
_AUX_RANDOMNESS = b"\x00" * 32


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class InvalidKeyFormat(ValueError):
    """Raised when imported key material cannot be decoded into a key pair."""


# ---------------------------------------------------------------------------
# Key pair
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KeyPair:
    """A secp256k1 key pair.

    Only the raw bytes are stored; every encoding is derived on access.
    """
    private_key: bytes
    public_key: bytes

    @property
    def private_key_hex(self) -> str:
        return to_hex(self.private_key)

    @property
    def public_key_hex(self) -> str:
        return to_hex(self.public_key)

    @property
    def nsec(self) -> str:
        return encode_nsec(self.private_key)

    @property
    def npub(self) -> str:
        return encode_npub(self.public_key)

    def __repr__(self) -> str:
        return f"KeyPair(npub={self.npub!r})"


def generate_key_pair() -> KeyPair:
    """Generate a new key pair from cryptographically secure randomness.

    Returns:
        A KeyPair with a fresh 32-byte private key and its x-only public key.
    """
    private_key_obj = PrivateKey()
    return KeyPair(
        private_key=private_key_obj.secret,
        public_key=private_key_obj.public_key_xonly.format(),
    )


def key_pair_from_private_key(private_key: bytes) -> KeyPair:
    """Reconstruct a KeyPair from an existing 32-byte private key.

    Args:
        private_key: A 32-byte secp256k1 secret scalar.

    Returns:
        The KeyPair with the public key rederived from ``private_key``.

    Raises:
        InvalidKeyFormat: When the key is not exactly 32 bytes or is not a
            valid scalar for the curve.
    """
    if not isinstance(private_key, (bytes, bytearray)) or len(private_key) != KEY_SIZE:
        raise InvalidKeyFormat(
            f"Private key must be {KEY_SIZE} bytes, got "
            f"{len(private_key) if isinstance(private_key, (bytes, bytearray)) else type(private_key).__name__}"
        )
    try:
        private_key_obj = PrivateKey(bytes(private_key))
    except ValueError as err:
        raise InvalidKeyFormat(f"Private key is out of range: {err}") from err
    return KeyPair(
        private_key=bytes(private_key),
        public_key=private_key_obj.public_key_xonly.format(),
    )


def import_private_key(text: str) -> KeyPair:
    """Import a private key from its ``nsec1...`` or hex text form.

    Args:
        text: A NIP-19 ``nsec`` string or a 64-character hex string.
            Surrounding whitespace is ignored.

    Returns:
        The KeyPair. The public key and all encodings are rederived from
        the decoded private key.

    Raises:
        InvalidKeyFormat: When the text is neither form or does not decode
            to a valid 32-byte key.
    """
    if not isinstance(text, str):
        raise InvalidKeyFormat(
            f"import_private_key() expects a string, got {type(text).__name__}"
        )
    candidate = text.strip()
    if not candidate:
        raise InvalidKeyFormat("Private key is empty")

    if candidate.lower().startswith(NSEC_PREFIX + "1"):
        private_key = decode_nsec(candidate)
    else:
        if len(candidate) != KEY_SIZE * 2:
            raise InvalidKeyFormat(
                f"Hex private key must be {KEY_SIZE * 2} characters, got {len(candidate)}"
            )
        try:
            private_key = from_hex(candidate)
        except ValueError as err:
            raise InvalidKeyFormat(f"Invalid hex private key: {err}") from err

    key_pair = key_pair_from_private_key(private_key)
    logger.debug("Imported key pair %s", key_pair.npub)
    return key_pair


def export_key_pair(key_pair: KeyPair, now: Optional[datetime] = None) -> dict:
    """Build the JSON-ready export record for a key pair.

    Persisting the record is left to the caller.
    """
    exported_at = now or datetime.now(timezone.utc)
    return {
        "publicKey": key_pair.public_key_hex,
        "privateKey": key_pair.private_key_hex,
        "npub": key_pair.npub,
        "nsec": key_pair.nsec,
        "exportedAt": exported_at.strftime("%Y-%m-%dT%H:%M:%S.")
        + f"{exported_at.microsecond // 1000:03d}Z",
    }


# ---------------------------------------------------------------------------
# NIP-19 bech32 encodings
# ---------------------------------------------------------------------------

def _encode_bech32(prefix: str, data: bytes) -> str:
    if not isinstance(data, (bytes, bytearray)) or len(data) != KEY_SIZE:
        raise ValueError(f"{prefix} payload must be {KEY_SIZE} bytes")
    return bech32_encode(prefix, convertbits(bytes(data), 8, 5))


def _decode_bech32(prefix: str, text: str) -> bytes:
    hrp, words = bech32_decode(text)
    if hrp is None or words is None:
        raise InvalidKeyFormat(f"Invalid bech32 checksum or characters in {prefix} string")
    if hrp != prefix:
        raise InvalidKeyFormat(f"Expected {prefix} prefix, got {hrp}")
    data = convertbits(words, 5, 8, False)
    if data is None or len(data) != KEY_SIZE:
        raise InvalidKeyFormat(f"{prefix} payload must decode to {KEY_SIZE} bytes")
    return bytes(data)


def encode_nsec(private_key: bytes) -> str:
    """Encode a 32-byte private key as a NIP-19 ``nsec`` string."""
    return _encode_bech32(NSEC_PREFIX, private_key)


def decode_nsec(text: str) -> bytes:
    """Decode a NIP-19 ``nsec`` string to 32 private key bytes.

    Raises:
        InvalidKeyFormat: On checksum, prefix, or length errors.
    """
    return _decode_bech32(NSEC_PREFIX, text)


def encode_npub(public_key: bytes) -> str:
    """Encode a 32-byte x-only public key as a NIP-19 ``npub`` string."""
    return _encode_bech32(NPUB_PREFIX, public_key)


def decode_npub(text: str) -> bytes:
    """Decode a NIP-19 ``npub`` string to 32 public key bytes."""
    return _decode_bech32(NPUB_PREFIX, text)


# ---------------------------------------------------------------------------
# Signing and verification
# ---------------------------------------------------------------------------

def sign(message: bytes, private_key: bytes) -> bytes:
    """Sign a 32-byte message digest with BIP-340 Schnorr.

    Signing is deterministic: the same message and key always produce the
    same signature.

    Args:
        message: The 32-byte digest to sign.
        private_key: A 32-byte secp256k1 private key.

    Returns:
        A 64-byte Schnorr signature.

    Raises:
        TypeError: When message is not bytes.
        ValueError: When message is not 32 bytes or the key is malformed.
    """
    if not isinstance(message, (bytes, bytearray)):
        raise TypeError(
            f"sign() expects message to be bytes, got {type(message).__name__}"
        )
    if len(message) != 32:
        raise ValueError("sign() expects a 32-byte message digest")
    if not isinstance(private_key, (bytes, bytearray)) or len(private_key) != KEY_SIZE:
        raise ValueError(f"sign() expects private_key to be {KEY_SIZE} bytes")
    private_key_obj = PrivateKey(bytes(private_key))
    return private_key_obj.sign_schnorr(bytes(message), _AUX_RANDOMNESS)


def verify(message: bytes, signature: bytes, public_key: bytes) -> bool:
    """Verify a BIP-340 Schnorr signature against an x-only public key.

    This function never raises on untrusted inputs -- any internal error
    returns False.
    """
    try:
        if len(signature) != SIGNATURE_SIZE or len(message) != 32:
            return False
        public_key_obj = PublicKeyXOnly(bytes(public_key))
        return bool(public_key_obj.verify(bytes(signature), bytes(message)))
    except Exception:
        return False


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def sha256(data: bytes) -> str:
    """SHA-256 hash of arbitrary bytes, returned as a lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def sha256_string(data: str) -> str:
    """SHA-256 hash of a UTF-8 string, returned as a lowercase hex string."""
    return sha256(data.encode("utf-8"))


# ---------------------------------------------------------------------------
# Hex encoding / decoding
# ---------------------------------------------------------------------------

def to_hex(data: bytes) -> str:
    """Encode a byte sequence to a lowercase hex string."""
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(
            f"to_hex() expects bytes, got {type(data).__name__}"
        )
    return data.hex()


def from_hex(hex_str: str) -> bytes:
    """Decode a hex string to bytes.

    Args:
        hex_str: An even-length hexadecimal string.

    Returns:
        The decoded bytes.

    Raises:
        ValueError: When the hex string has odd length or invalid characters.
    """
    if not isinstance(hex_str, str):
        raise TypeError(
            f"from_hex() expects a string, got {type(hex_str).__name__}"
        )
    if len(hex_str) % 2 != 0:
        raise ValueError(
            f"Invalid hex string: odd length ({len(hex_str)})"
        )
    return bytes.fromhex(hex_str)
