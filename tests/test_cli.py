"""Tests for the nostrich command line interface."""

from __future__ import annotations

import json

import httpx
import pytest
from typer.testing import CliRunner

from nostrich import cli, crypto, event
from nostrich.client import SubmissionClient

runner = CliRunner()

NSEC = "nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5"
URI = "nwc://abc123?relay=wss%3A%2F%2Fr.example&secret=s1"
SERVER = "https://auth.example"


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("NOSTRICH_CONFIG", raising=False)
    monkeypatch.delenv("NOSTRICH_SERVER_URL", raising=False)
    monkeypatch.delenv("NOSTRICH_KEY", raising=False)


@pytest.fixture
def requests_seen(monkeypatch):
    """Route the CLI's HTTP calls through a MockTransport and record them."""
    seen = []
    responses = {}

    def handler(request):
        seen.append(request)
        return responses.get(request.url.path, httpx.Response(200, json={"success": True}))

    def factory(**kwargs):
        return SubmissionClient(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(cli, "SubmissionClient", factory)
    return seen, responses


def test_keygen_prints_public_key():
    result = runner.invoke(cli.app, ["keygen"])
    assert result.exit_code == 0
    assert "npub1" in result.output
    assert "nsec1" not in result.output


def test_keygen_export(tmp_path):
    target = tmp_path / "keys.json"
    result = runner.invoke(cli.app, ["keygen", "--export", str(target)])
    assert result.exit_code == 0
    exported = json.loads(target.read_text())
    key_pair = crypto.import_private_key(exported["nsec"])
    assert exported["npub"] == key_pair.npub
    assert exported["privateKey"] == key_pair.private_key_hex


def test_pubkey_from_env_key(monkeypatch):
    monkeypatch.setenv("NOSTRICH_KEY", NSEC)
    result = runner.invoke(cli.app, ["pubkey"])
    assert result.exit_code == 0
    assert crypto.import_private_key(NSEC).npub in result.output


def test_pubkey_invalid_key():
    result = runner.invoke(cli.app, ["pubkey", "--key", "garbage"])
    assert result.exit_code == 1


def test_parse_prints_fields():
    result = runner.invoke(cli.app, ["parse", URI])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data == {
        "challengeId": "abc123",
        "relay": "wss://r.example",
        "secret": "s1",
        "domain": None,
    }


def test_parse_rejects_bad_uri():
    result = runner.invoke(cli.app, ["parse", "https://example.com"])
    assert result.exit_code == 1


def test_sign_prints_verifiable_event():
    result = runner.invoke(cli.app, ["sign", URI, "--key", NSEC, "--created-at", "1700000000"])
    assert result.exit_code == 0
    assertion = event.deserialize_assertion(result.output.strip())
    assert assertion.created_at == 1700000000
    assert event.verify_assertion(assertion)["valid"] is True


def test_auth_submits_to_server(requests_seen):
    seen, _ = requests_seen
    result = runner.invoke(cli.app, ["auth", URI, "--key", NSEC, "--server", SERVER])
    assert result.exit_code == 0
    assert len(seen) == 1
    assert str(seen[0].url) == SERVER + "/api/publish-event"
    body = json.loads(seen[0].content)
    assert body["tags"][0] == ["challenge", "abc123"]


def test_auth_via_relay(requests_seen):
    seen, _ = requests_seen
    result = runner.invoke(
        cli.app,
        ["auth", URI, "--key", NSEC, "--server", SERVER, "--via", "https://relay.local"],
    )
    assert result.exit_code == 0
    assert str(seen[0].url) == "https://relay.local/api/publish-event"
    assert json.loads(seen[0].content)["serverUrl"] == SERVER


def test_auth_reports_rejection(requests_seen):
    _, responses = requests_seen
    responses["/api/publish-event"] = httpx.Response(400, json={"error": "bad challenge"})
    result = runner.invoke(cli.app, ["auth", URI, "--key", NSEC, "--server", SERVER])
    assert result.exit_code == 1
    assert "bad challenge" in result.output


def test_auth_requires_server():
    result = runner.invoke(cli.app, ["auth", URI, "--key", NSEC])
    assert result.exit_code == 1
    assert "No server URL configured" in result.output


def test_auth_uses_config_file(tmp_path, requests_seen):
    seen, _ = requests_seen
    config_path = tmp_path / "custom.yaml"
    config_path.write_text(f"server_url: {SERVER}\n")
    result = runner.invoke(cli.app, ["auth", URI, "--key", NSEC, "--config", str(config_path)])
    assert result.exit_code == 0
    assert str(seen[0].url) == SERVER + "/api/publish-event"


def test_challenge_flow(requests_seen):
    seen, responses = requests_seen
    responses["/api/generate-challenge"] = httpx.Response(200, json={
        "id": "1",
        "challengeId": "server-issued-challenge",
        "relay": "wss://r.example",
        "secret": "s1",
    })
    result = runner.invoke(cli.app, ["challenge", "--key", NSEC, "--server", SERVER])
    assert result.exit_code == 0
    assert [request.url.path for request in seen] == [
        "/api/generate-challenge",
        "/api/publish-event",
    ]
    body = json.loads(seen[1].content)
    assert body["tags"][0] == ["challenge", "server-issued-challenge"]


@pytest.mark.parametrize("args", [
    ["parse", URI],
    ["sign", URI, "--key", NSEC, "--created-at", "1"],
    ["pubkey", "--key", NSEC],
])
def test_detailed_logs_apply_to_every_command(tmp_path, monkeypatch, args):
    levels = []
    monkeypatch.setattr(cli.logging, "basicConfig", lambda **kwargs: levels.append(kwargs["level"]))
    config_path = tmp_path / "custom.yaml"
    config_path.write_text("detailed_logs: true\n")
    result = runner.invoke(cli.app, args + ["--config", str(config_path)])
    assert result.exit_code == 0
    assert levels == [cli.logging.DEBUG]
