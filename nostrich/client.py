"""
Nostrich submission client.

Posts signed authentication events to an auth server (directly or through
a relay that forwards server-side) and classifies the outcome. Also
requests fresh challenges from a server that issues them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union
from urllib.parse import urlsplit

import httpx

from .event import SignedAssertion
from .uri import ChallengeDescriptor

logger = logging.getLogger(__name__)

PUBLISH_PATH = "/api/publish-event"
CHALLENGE_PATH = "/api/generate-challenge"

DEFAULT_TIMEOUT = 10.0

_JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Delivered:
    """The endpoint acknowledged the assertion."""
    status_code: int
    body: str

    ok = True

    def describe(self) -> str:
        return "Event signed and published successfully"


@dataclass(frozen=True)
class Rejected:
    """The endpoint answered but refused the assertion."""
    status_code: int
    server_message: str
    hint: Optional[str] = None

    ok = False

    def describe(self) -> str:
        message = f"Server responded with {self.status_code}: {self.server_message}"
        if self.hint:
            message = f"{message} ({self.hint})"
        return message


@dataclass(frozen=True)
class NetworkError:
    """No response was received."""
    cause: str

    ok = False

    def describe(self) -> str:
        return (
            f"Network error: unable to reach the server ({self.cause}). "
            "Check your connection and try again."
        )


SubmissionResult = Union[Delivered, Rejected, NetworkError]


class ChallengeRequestError(Exception):
    """Raised when a server fails to hand out a challenge."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def publish_url(server_url: str) -> str:
    """Return the publish endpoint for an auth server base URL."""
    return server_url.rstrip("/") + PUBLISH_PATH


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def _error_message(response: httpx.Response) -> str:
    """Pull the server's own error text out of a response, verbatim."""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    text = response.text.strip()
    return text or response.reason_phrase or "Unknown error"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class SubmissionClient:
    """Delivers signed assertions with exactly one HTTP attempt per call.

    Args:
        timeout: Per-request timeout in seconds.
        default_endpoint: The endpoint the caller normally submits to. When a
            rejection comes from a different origin, a hint about endpoint
            mismatch is attached to the result.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        default_endpoint: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self.default_endpoint = default_endpoint
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def _mismatch_hint(self, endpoint: str, target: Optional[str]) -> Optional[str]:
        if not self.default_endpoint:
            return None
        try:
            destination = _origin(target or endpoint)
            default = _origin(self.default_endpoint)
        except ValueError:
            return None
        if destination == default:
            return None
        return (
            f"submitted to {destination} instead of the default "
            f"{default}; the challenge may have been "
            "issued by a different server"
        )

    def submit(
        self,
        assertion: SignedAssertion,
        endpoint: str,
        target: Optional[str] = None,
    ) -> SubmissionResult:
        """Send one assertion to ``endpoint``.

        Args:
            assertion: The signed event.
            endpoint: URL that receives the POST.
            target: When ``endpoint`` is a relay, the server it should forward
                to. Sent as the out-of-band ``serverUrl`` field.

        Returns:
            Delivered, Rejected, or NetworkError. Never raises for HTTP or
            transport failures.
        """
        payload: dict[str, Any] = assertion.to_dict()
        if target:
            payload["serverUrl"] = target

        logger.info("Publishing event %s to %s", assertion.id[:16], endpoint)
        try:
            with self._client() as http:
                response = http.post(endpoint, json=payload, headers=_JSON_HEADERS)
        except httpx.RequestError as err:
            logger.error("Transport failure publishing to %s: %s", endpoint, err)
            return NetworkError(cause=str(err) or type(err).__name__)

        logger.debug("Publish response status %s", response.status_code)

        if response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("success") is False:
                message = body.get("error") if isinstance(body.get("error"), str) else response.text
                logger.warning("Server declined event %s: %s", assertion.id[:16], message)
                return Rejected(
                    status_code=response.status_code,
                    server_message=message,
                    hint=self._mismatch_hint(endpoint, target),
                )
            return Delivered(status_code=response.status_code, body=response.text)

        message = _error_message(response)
        logger.warning(
            "Server rejected event %s with %s: %s",
            assertion.id[:16], response.status_code, message,
        )
        return Rejected(
            status_code=response.status_code,
            server_message=message,
            hint=self._mismatch_hint(endpoint, target),
        )

    def request_challenge(self, server_url: str) -> ChallengeDescriptor:
        """Ask an auth server for a new challenge.

        Raises:
            ChallengeRequestError: On transport failure, a non-2xx status, or a
                body missing challengeId, relay or secret.
        """
        url = server_url.rstrip("/") + CHALLENGE_PATH
        try:
            with self._client() as http:
                response = http.post(url, headers=_JSON_HEADERS)
        except httpx.RequestError as err:
            raise ChallengeRequestError(f"Request to {url} failed: {err}") from err

        if not response.is_success:
            raise ChallengeRequestError(
                f"Server responded with {response.status_code}: {_error_message(response)}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as err:
            raise ChallengeRequestError(
                "Challenge response is not JSON", response.status_code
            ) from err
        if not isinstance(data, dict):
            raise ChallengeRequestError(
                "Challenge response must be a JSON object", response.status_code
            )

        fields = {name: data.get(name) for name in ("challengeId", "relay", "secret")}
        missing = [name for name, value in fields.items() if not isinstance(value, str) or not value]
        if missing:
            raise ChallengeRequestError(
                f"Challenge response missing: {', '.join(missing)}", response.status_code
            )

        descriptor = ChallengeDescriptor(
            challenge_id=fields["challengeId"],
            relay=fields["relay"],
            secret=fields["secret"],
            domain=data.get("domain") if isinstance(data.get("domain"), str) else None,
        )
        logger.info("Received challenge %s...", descriptor.challenge_id[:16])
        return descriptor
