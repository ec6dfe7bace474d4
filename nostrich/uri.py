"""
Nostrich wallet-connect challenge URI parser.

Turns an untrusted scanned or pasted string into a ChallengeDescriptor.
Every failure surfaces as MalformedChallengeUri; no other exception type
leaves :func:`parse_challenge_uri`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import SplitResult, parse_qsl, quote, unquote, urlencode, urlsplit

logger = logging.getLogger(__name__)

# Schemes are compared lower-cased. Extend only deliberately; lookalike
# schemes such as "nostr+evil" must keep failing.
ACCEPTED_SCHEMES = frozenset(["nostr+walletconnect", "nwc"])

DEFAULT_SCHEME = "nostr+walletconnect"

_BAD_PERCENT_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


# ---------------------------------------------------------------------------
# Types & errors
# ---------------------------------------------------------------------------

class MalformedChallengeUri(ValueError):
    """Raised when a challenge URI cannot be parsed into a descriptor."""

    def __init__(self, message: str, reason: str = ""):
        self.reason = reason
        super().__init__(message)


@dataclass(frozen=True)
class ChallengeDescriptor:
    """The parameters of one authentication challenge."""
    challenge_id: str
    relay: str
    secret: str
    domain: Optional[str] = None

    def to_uri(self, scheme: str = DEFAULT_SCHEME) -> str:
        """Rebuild a canonical URI carrying this challenge."""
        params = {"relay": self.relay, "secret": self.secret}
        if self.domain:
            params["domain"] = self.domain
        return f"{scheme}://{quote(self.challenge_id, safe='')}?{urlencode(params)}"


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------

def _decode_component(value: str, name: str) -> str:
    """Percent-decode one component, rejecting malformed escapes."""
    if _BAD_PERCENT_ESCAPE.search(value):
        raise MalformedChallengeUri(
            f"Malformed percent-encoding in {name}", "decode"
        )
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError as err:
        raise MalformedChallengeUri(
            f"{name} is not valid UTF-8 after decoding", "decode"
        ) from err


def _split(uri: str) -> SplitResult:
    try:
        parts = urlsplit(uri)
    except ValueError as err:
        raise MalformedChallengeUri(f"Not a valid URI: {err}", "syntax") from err
    if not parts.scheme:
        raise MalformedChallengeUri("URI has no scheme", "syntax")
    return parts


def _query_params(parts: SplitResult) -> dict[str, str]:
    try:
        pairs = parse_qsl(parts.query, keep_blank_values=True, errors="strict")
    except (UnicodeDecodeError, ValueError) as err:
        raise MalformedChallengeUri(
            f"Query string could not be decoded: {err}", "decode"
        ) from err
    params: dict[str, str] = {}
    for key, value in pairs:
        # First occurrence wins, as with URLSearchParams.get().
        params.setdefault(key, value)
    return params


# ---------------------------------------------------------------------------
# challengeId extraction strategies
# ---------------------------------------------------------------------------

ChallengeIdStrategy = Callable[[SplitResult, dict], Optional[str]]


def challenge_id_from_query(parts: SplitResult, params: dict) -> Optional[str]:
    """Take the ``challengeId`` query parameter."""
    return params.get("challengeId") or None


def challenge_id_from_host(parts: SplitResult, params: dict) -> Optional[str]:
    """Take the authority's host, keeping its case."""
    host = parts.netloc.rpartition("@")[2]
    if host.startswith("["):
        return None
    host = host.split(":", 1)[0]
    return _decode_component(host, "host") if host else None


def challenge_id_from_path(parts: SplitResult, params: dict) -> Optional[str]:
    """Take the first path segment."""
    path = parts.path[1:] if parts.path.startswith("/") else parts.path
    segment = path.split("/", 1)[0]
    return _decode_component(segment, "path") if segment else None


CHALLENGE_ID_STRATEGIES: tuple[ChallengeIdStrategy, ...] = (
    challenge_id_from_query,
    challenge_id_from_host,
    challenge_id_from_path,
)


def resolve_challenge_id(parts: SplitResult, params: dict) -> Optional[str]:
    """Return the first non-empty challenge id produced by the strategies."""
    for strategy in CHALLENGE_ID_STRATEGIES:
        value = strategy(parts, params)
        if value:
            return value
    return None


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------

def is_accepted_scheme(scheme: str) -> bool:
    return scheme.lower() in ACCEPTED_SCHEMES


def parse_challenge_uri(uri: str) -> ChallengeDescriptor:
    """Parse a wallet-connect challenge URI.

    Accepts shapes such as
    ``nostr+walletconnect://<id>?relay=<url-encoded>&secret=<token>[&domain=...]``
    as well as producers that put the id in a ``challengeId`` parameter or in
    the path.

    Args:
        uri: The raw, untrusted string.

    Returns:
        A ChallengeDescriptor with every required field non-empty.

    Raises:
        MalformedChallengeUri: When the string is not a URI, uses a scheme
            outside ACCEPTED_SCHEMES, fails to decode, or lacks a required
            parameter.
    """
    if not isinstance(uri, str):
        raise MalformedChallengeUri(
            f"Challenge URI must be a string, got {type(uri).__name__}", "syntax"
        )
    candidate = uri.strip()
    if not candidate:
        raise MalformedChallengeUri("Challenge URI is empty", "syntax")

    parts = _split(candidate)
    if not is_accepted_scheme(parts.scheme):
        logger.warning("Rejected challenge URI with scheme %r", parts.scheme)
        raise MalformedChallengeUri(
            f"Unsupported scheme {parts.scheme!r}; expected one of "
            f"{', '.join(sorted(ACCEPTED_SCHEMES))}",
            "scheme",
        )

    params = _query_params(parts)
    challenge_id = resolve_challenge_id(parts, params)
    relay = params.get("relay")
    secret = params.get("secret")
    domain = params.get("domain")

    missing = [
        name
        for name, value in (("challengeId", challenge_id), ("relay", relay), ("secret", secret))
        if not value
    ]
    if missing:
        logger.warning("Challenge URI missing required parameters: %s", ", ".join(missing))
        raise MalformedChallengeUri(
            f"Missing required parameter(s): {', '.join(missing)}", "missing"
        )

    relay = _decode_component(relay, "relay")
    if not relay:
        raise MalformedChallengeUri("Missing required parameter(s): relay", "missing")

    descriptor = ChallengeDescriptor(
        challenge_id=challenge_id,
        relay=relay,
        secret=secret,
        domain=_decode_component(domain, "domain") if domain else None,
    )
    for name, value in (
        ("challengeId", descriptor.challenge_id),
        ("relay", descriptor.relay),
        ("secret", descriptor.secret),
        ("domain", descriptor.domain or ""),
    ):
        try:
            value.encode("utf-8")
        except UnicodeEncodeError as err:
            raise MalformedChallengeUri(
                f"{name} contains characters that cannot be encoded as UTF-8", "decode"
            ) from err
    logger.debug("Parsed challenge %s... for relay %s", challenge_id[:16], relay)
    return descriptor
