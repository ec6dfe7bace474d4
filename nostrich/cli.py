"""Command line interface for signing wallet-connect challenges."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from nostrich import crypto
from nostrich.client import ChallengeRequestError, SubmissionClient, publish_url
from nostrich.config import SignerConfig, load_config
from nostrich.event import SignedAssertion, build_and_sign, serialize_assertion
from nostrich.uri import MalformedChallengeUri, parse_challenge_uri

app = typer.Typer(help="Sign and submit wallet-connect authentication challenges")

KEY_OPTION = typer.Option(
    ..., "--key", envvar="NOSTRICH_KEY", help="Private key as nsec1... or 64-char hex"
)
CONFIG_OPTION = typer.Option(None, "--config", help="Path to a YAML config file")


@app.callback()
def main() -> None:
    """Nostrich CLI entry point."""
    pass


def _setup(config_path: Optional[Path]) -> SignerConfig:
    config = load_config(str(config_path) if config_path else None)
    logging.basicConfig(
        level=logging.DEBUG if config.detailed_logs else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


def _load_key(key: str) -> crypto.KeyPair:
    try:
        return crypto.import_private_key(key)
    except crypto.InvalidKeyFormat as err:
        _fail(f"Invalid private key format: {err}")


def _submit(
    config: SignerConfig,
    assertion: SignedAssertion,
    server: Optional[str],
    via: Optional[str],
) -> None:
    server_url = server or config.server_url
    if not server_url:
        _fail("No server URL configured. Pass --server or set NOSTRICH_SERVER_URL.")
    relay_via = via or config.relay_via

    submitter = SubmissionClient(
        timeout=config.timeout,
        default_endpoint=config.server_url,
    )
    if relay_via:
        result = submitter.submit(assertion, publish_url(relay_via), target=server_url)
    else:
        result = submitter.submit(assertion, publish_url(server_url))

    if not result.ok:
        _fail(result.describe())
    typer.echo(result.describe())


@app.command("keygen")
def keygen(
    export: Optional[Path] = typer.Option(
        None, help="Write the key pair to this JSON file"
    ),
    show_secret: bool = typer.Option(False, help="Also print the nsec"),
) -> None:
    """Generate a new key pair."""
    key_pair = crypto.generate_key_pair()
    typer.echo(f"npub: {key_pair.npub}")
    typer.echo(f"hex:  {key_pair.public_key_hex}")
    if show_secret:
        typer.echo(f"nsec: {key_pair.nsec}")
    if export:
        export.write_text(json.dumps(crypto.export_key_pair(key_pair), indent=2))
        typer.echo(f"Keys exported to {export}")


@app.command("pubkey")
def pubkey(
    key: str = KEY_OPTION,
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Show the public key for a private key."""
    _setup(config_path)
    key_pair = _load_key(key)
    typer.echo(f"npub: {key_pair.npub}")
    typer.echo(f"hex:  {key_pair.public_key_hex}")


@app.command("parse")
def parse(
    uri: str,
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Parse a challenge URI and print its fields."""
    _setup(config_path)
    try:
        descriptor = parse_challenge_uri(uri)
    except MalformedChallengeUri as err:
        _fail(f"Invalid QR code format: {err}")
    typer.echo(json.dumps({
        "challengeId": descriptor.challenge_id,
        "relay": descriptor.relay,
        "secret": descriptor.secret,
        "domain": descriptor.domain,
    }, indent=2))


@app.command("sign")
def sign(
    uri: str,
    key: str = KEY_OPTION,
    created_at: Optional[int] = typer.Option(
        None, help="Unix timestamp to stamp instead of the current time"
    ),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Sign the authentication event for a challenge URI and print it."""
    _setup(config_path)
    key_pair = _load_key(key)
    try:
        descriptor = parse_challenge_uri(uri)
    except MalformedChallengeUri as err:
        _fail(f"Invalid QR code format: {err}")
    assertion = build_and_sign(key_pair, descriptor, created_at=created_at)
    typer.echo(serialize_assertion(assertion))


@app.command("auth")
def auth(
    uri: str,
    key: str = KEY_OPTION,
    server: Optional[str] = typer.Option(None, help="Auth server base URL"),
    via: Optional[str] = typer.Option(
        None, help="Relay base URL that forwards the event to the server"
    ),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Parse a scanned challenge URI, sign it and submit the result."""
    config = _setup(config_path)
    key_pair = _load_key(key)
    try:
        descriptor = parse_challenge_uri(uri)
    except MalformedChallengeUri as err:
        _fail(f"Invalid QR code format: {err}")
    typer.echo(f"Parsed challengeId: {descriptor.challenge_id}")
    assertion = build_and_sign(key_pair, descriptor)
    _submit(config, assertion, server, via)


@app.command("challenge")
def challenge(
    key: str = KEY_OPTION,
    server: Optional[str] = typer.Option(None, help="Auth server base URL"),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Request a challenge from the server, sign it and submit the result."""
    config = _setup(config_path)
    key_pair = _load_key(key)
    server_url = server or config.server_url
    if not server_url:
        _fail("No server URL configured. Pass --server or set NOSTRICH_SERVER_URL.")

    try:
        descriptor = SubmissionClient(timeout=config.timeout).request_challenge(server_url)
    except ChallengeRequestError as err:
        _fail(f"Generation failed: {err}")
    typer.echo(f"Challenge ID: {descriptor.challenge_id[:16]}...")
    typer.echo(descriptor.to_uri())

    assertion = build_and_sign(key_pair, descriptor)
    _submit(config, assertion, server_url, None)


if __name__ == "__main__":
    app()
