"""Client configuration helpers."""

from pathlib import Path
from typing import Optional
import logging
import os

import platformdirs
import yaml
from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_API_URL, DEFAULT_LOCK_TIMEOUT, DEFAULT_MAX_WORKERS
from .utils import atomic_write_text

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yaml"

# Environment variables overriding values from the config file
ENV_API_URL = "OBS_API_URL"
ENV_USERNAME = "OBS_USERNAME"
ENV_PASSWORD = "OBS_PASSWORD"


class ClientConfig(BaseModel):
    """Connection settings (stored in <user config dir>/obs-checkout/config.yaml)."""

    api_url: str = DEFAULT_API_URL
    username: Optional[str] = None
    password: Optional[str] = None
    verify_tls: bool = True
    timeout: float = 60.0


class CheckoutOptions(BaseModel):
    """Behaviour of checkout and commit operations.

    Passed explicitly to every operation that needs it; nothing in the
    package reads these defaults from module state.
    """

    model_config = ConfigDict(frozen=True)

    expand_links: bool = True
    revision: Optional[str] = None
    fetch_meta: bool = True
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    lock_timeout: float = Field(default=DEFAULT_LOCK_TIMEOUT, ge=0)


def default_config_path() -> Path:
    return Path(platformdirs.user_config_dir("obs-checkout")) / CONFIG_FILE


def load_client_config(path: Optional[Path] = None) -> ClientConfig:
    """Load client configuration, applying environment overrides.

    A missing config file is not an error, the defaults are used instead.
    """
    cfg_path = Path(path) if path is not None else default_config_path()

    data = {}
    if cfg_path.exists():
        with cfg_path.open() as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Invalid configuration in {cfg_path}: expected a mapping")
    else:
        logger.debug("No config file at %s, using defaults", cfg_path)

    overrides = {
        "api_url": os.environ.get(ENV_API_URL),
        "username": os.environ.get(ENV_USERNAME),
        "password": os.environ.get(ENV_PASSWORD),
    }
    data.update({k: v for k, v in overrides.items() if v})

    return ClientConfig(**data)


def save_client_config(config: ClientConfig, path: Optional[Path] = None) -> None:
    """Save client configuration atomically."""
    cfg_path = Path(path) if path is not None else default_config_path()
    atomic_write_text(cfg_path, yaml.safe_dump(config.model_dump(), default_flow_style=False))
