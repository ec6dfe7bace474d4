"""
Nostrich authentication event builder, signer, verifier, and serializer.

Builds the kind 22242 event that answers a wallet-connect challenge,
computes its NIP-01 id, and signs it with BIP-340 Schnorr.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from . import crypto
from .crypto import KeyPair
from .uri import ChallengeDescriptor

# ---------------------------------------------------------------------------
# Protocol constants
# ---------------------------------------------------------------------------

AUTH_EVENT_KIND = 22242
AUTH_EVENT_CONTENT = ""

CHALLENGE_TAG = "challenge"
SECRET_TAG = "nwc"
RELAY_TAG = "relay"

WIRE_FIELDS = ("kind", "created_at", "tags", "content", "pubkey", "id", "sig")


# ---------------------------------------------------------------------------
# Types & errors
# ---------------------------------------------------------------------------

class SigningFault(RuntimeError):
    """Raised when signing fails on key material that should have been valid."""


@dataclass(frozen=True)
class SignedAssertion:
    """A signed authentication event, ready for submission."""
    kind: int
    created_at: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    pubkey: str
    id: str
    sig: str

    @property
    def issuer_public_key(self) -> bytes:
        return crypto.from_hex(self.pubkey)

    def to_dict(self) -> dict:
        """Return the wire representation with NIP-01 field names."""
        return {
            "kind": self.kind,
            "created_at": self.created_at,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "pubkey": self.pubkey,
            "id": self.id,
            "sig": self.sig,
        }


# ---------------------------------------------------------------------------
# Canonical form & ID computation
# ---------------------------------------------------------------------------

def build_tags(descriptor: ChallengeDescriptor) -> tuple[tuple[str, str], ...]:
    """Assemble the challenge, secret and relay tags in protocol order."""
    return (
        (CHALLENGE_TAG, descriptor.challenge_id),
        (SECRET_TAG, descriptor.secret),
        (RELAY_TAG, descriptor.relay),
    )


def canonical_form(
    pubkey: str, created_at: int, kind: int, tags: Any, content: str
) -> str:
    """Serialize the unsigned event fields per NIP-01.

    The result is the JSON array ``[0, pubkey, created_at, kind, tags,
    content]`` without whitespace and with non-ASCII characters left
    unescaped.
    """
    return json.dumps(
        [0, pubkey, created_at, kind, [list(tag) for tag in tags], content],
        ensure_ascii=False,
        separators=(",", ":"),
    )


def compute_id(
    pubkey: str, created_at: int, kind: int, tags: Any, content: str
) -> str:
    """Compute the event id: hex SHA-256 of the canonical form."""
    return crypto.sha256_string(canonical_form(pubkey, created_at, kind, tags, content))


# ---------------------------------------------------------------------------
# Build & sign
# ---------------------------------------------------------------------------

def build_and_sign(
    key_pair: KeyPair,
    descriptor: ChallengeDescriptor,
    created_at: Optional[int] = None,
    clock: Callable[[], float] = time.time,
) -> SignedAssertion:
    """Build the authentication event for a challenge and sign it.

    The output is a pure function of its inputs once ``created_at`` is
    fixed; pass it (or a fake ``clock``) to get reproducible events.

    Args:
        key_pair: The signer's key pair.
        descriptor: The parsed challenge.
        created_at: Unix timestamp in seconds. Read from ``clock`` if omitted.
        clock: Returns the current Unix time in seconds.

    Returns:
        A SignedAssertion with id and sig populated.

    Raises:
        SigningFault: When the key material cannot produce a signature.
    """
    if created_at is None:
        created_at = int(clock())

    pubkey = key_pair.public_key_hex
    tags = build_tags(descriptor)
    event_id = compute_id(pubkey, created_at, AUTH_EVENT_KIND, tags, AUTH_EVENT_CONTENT)

    try:
        signature = crypto.sign(crypto.from_hex(event_id), key_pair.private_key)
    except (TypeError, ValueError) as err:
        raise SigningFault(f"Failed to sign event {event_id}: {err}") from err

    return SignedAssertion(
        kind=AUTH_EVENT_KIND,
        created_at=created_at,
        tags=tags,
        content=AUTH_EVENT_CONTENT,
        pubkey=pubkey,
        id=event_id,
        sig=crypto.to_hex(signature),
    )


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------

def verify_assertion(assertion: SignedAssertion) -> dict:
    """Verify a signed assertion the way the receiving server would.

    Checks:
     1. id_match         - id equals the hash of the canonical form
     2. signature_valid  - sig verifies over id against pubkey
     3. kind_match       - kind is the authentication kind
     4. tags_present     - challenge, nwc and relay tags lead in that order

    Returns:
        A dict with 'valid' (bool) and 'checks' (list of dicts with
        name, passed, message).
    """
    checks: list[dict] = []

    expected_id = compute_id(
        assertion.pubkey, assertion.created_at, assertion.kind,
        assertion.tags, assertion.content,
    )
    id_match = assertion.id == expected_id
    checks.append({
        "name": "id_match",
        "passed": id_match,
        "message": (
            "Event id matches canonical hash"
            if id_match
            else f"ID mismatch: expected {expected_id}, got {assertion.id}"
        ),
    })

    sig_valid = False
    try:
        sig_valid = crypto.verify(
            crypto.from_hex(expected_id),
            crypto.from_hex(assertion.sig),
            assertion.issuer_public_key,
        )
    except (TypeError, ValueError):
        sig_valid = False
    checks.append({
        "name": "signature_valid",
        "passed": sig_valid,
        "message": (
            "Signature is valid"
            if sig_valid
            else "Signature verification failed"
        ),
    })

    kind_match = assertion.kind == AUTH_EVENT_KIND
    checks.append({
        "name": "kind_match",
        "passed": kind_match,
        "message": (
            f"Kind is {AUTH_EVENT_KIND}"
            if kind_match
            else f"Unexpected kind {assertion.kind}"
        ),
    })

    names = [tag[0] for tag in assertion.tags[:3] if tag]
    tags_ok = names == [CHALLENGE_TAG, SECRET_TAG, RELAY_TAG] and all(
        len(tag) >= 2 and tag[1] for tag in assertion.tags[:3]
    )
    checks.append({
        "name": "tags_present",
        "passed": tags_ok,
        "message": (
            "Challenge, nwc and relay tags present"
            if tags_ok
            else f"Unexpected leading tags: {names}"
        ),
    })

    return {
        "valid": all(c["passed"] for c in checks),
        "checks": checks,
    }


# ---------------------------------------------------------------------------
# Serialization / Deserialization
# ---------------------------------------------------------------------------

def serialize_assertion(assertion: SignedAssertion) -> str:
    """Serialize an assertion to its wire JSON string."""
    return json.dumps(assertion.to_dict())


def deserialize_assertion(json_str: str) -> SignedAssertion:
    """Deserialize a wire JSON string into a SignedAssertion.

    Only the structure is validated; use :func:`verify_assertion` for the
    cryptographic checks.

    Raises:
        ValueError: When the JSON is malformed or a field has the wrong type.
    """
    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError as err:
        raise ValueError(f"Invalid JSON: {err}") from err

    if not isinstance(parsed, dict):
        raise ValueError("Event must be a JSON object")

    for field_name in ("kind", "created_at"):
        value = parsed.get(field_name)
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"Missing or invalid required field: {field_name}")
    for field_name in ("content", "pubkey", "id", "sig"):
        if not isinstance(parsed.get(field_name), str):
            raise ValueError(f"Missing or invalid required field: {field_name}")

    tags = parsed.get("tags")
    if not isinstance(tags, list) or not all(
        isinstance(tag, list) and all(isinstance(item, str) for item in tag)
        for tag in tags
    ):
        raise ValueError("Invalid tags: must be a list of string lists")

    return SignedAssertion(
        kind=parsed["kind"],
        created_at=parsed["created_at"],
        tags=tuple(tuple(tag) for tag in tags),
        content=parsed["content"],
        pubkey=parsed["pubkey"],
        id=parsed["id"],
        sig=parsed["sig"],
    )
