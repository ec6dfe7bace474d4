"""Tests for configuration loading."""

from nostrich.config import SignerConfig, load_config


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.delenv("NOSTRICH_SERVER_URL", raising=False)
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config == SignerConfig()
    assert config.server_url is None
    assert config.timeout == 10.0


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "nostrich.yaml"
    config_path.write_text(
        """
server_url: https://auth.example
relay_via: https://relay.local
timeout: 2.5
detailed_logs: true
"""
    )
    monkeypatch.setenv("NOSTRICH_CONFIG", str(config_path))
    monkeypatch.delenv("NOSTRICH_SERVER_URL", raising=False)

    config = load_config()
    assert config.server_url == "https://auth.example"
    assert config.relay_via == "https://relay.local"
    assert config.timeout == 2.5
    assert config.detailed_logs is True


def test_server_url_env_override(tmp_path, monkeypatch):
    config_path = tmp_path / "nostrich.yaml"
    config_path.write_text("server_url: https://auth.example\n")
    monkeypatch.setenv("NOSTRICH_SERVER_URL", "https://override.example")

    config = load_config(str(config_path))
    assert config.server_url == "https://override.example"


def test_empty_file_gives_defaults(tmp_path, monkeypatch):
    config_path = tmp_path / "nostrich.yaml"
    config_path.write_text("")
    monkeypatch.delenv("NOSTRICH_SERVER_URL", raising=False)

    assert load_config(str(config_path)) == SignerConfig()
