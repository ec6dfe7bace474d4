from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel

from .client import DEFAULT_TIMEOUT


class SignerConfig(BaseModel):
    """Settings for signing and submitting challenge responses."""

    server_url: Optional[str] = None
    relay_via: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    detailed_logs: bool = False


def load_config(path: Optional[str] = None) -> SignerConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to NOSTRICH_CONFIG env
            variable or 'nostrich.yaml' in the current directory.
    """

    config_path = path or os.getenv("NOSTRICH_CONFIG", "nostrich.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = SignerConfig(**data)
    else:
        config = SignerConfig()

    env_server_url = os.getenv("NOSTRICH_SERVER_URL")
    if env_server_url:
        config.server_url = env_server_url
    return config
