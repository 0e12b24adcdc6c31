import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("corsproxy")
CONFIG_PATH = Path(os.getenv("CORSPROXY_CONFIG_PATH", "/etc/corsproxy/config.yaml"))

DEFAULT_ALLOWED_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE")
DEFAULT_ALLOWED_HEADERS = ("accept", "content-type", "x-requested-with", "authorization")


class CorsSettings(BaseModel):
    """Options of the CORS gate wrapping the proxy."""
    model_config = ConfigDict(frozen=True)

    allowed_origins: Tuple[str, ...] = ()
    """Origins a cross-domain request can be executed from. Empty allows every origin."""
    allowed_methods: Tuple[str, ...] = DEFAULT_ALLOWED_METHODS
    allowed_headers: Tuple[str, ...] = DEFAULT_ALLOWED_HEADERS
    exposed_headers: Tuple[str, ...] = ()
    max_age: int = 0
    """Seconds a preflight result may be cached by the browser."""
    allow_credentials: bool = False
    allow_private_network: bool = False
    """Answer browser Private Network Access preflights. Unrelated to allow_private_network_target."""
    options_passthrough: bool = False
    """Let preflight requests continue to the proxy handler after CORS headers are computed."""
    options_success_status: int = 204
    debug: bool = False


class ProxySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    cors: CorsSettings = Field(default_factory=CorsSettings)
    allowed_targets: Tuple[str, ...] = ()
    """Targets a cross-domain request can reach. Empty or containing "*" allows every target."""
    allow_private_network_target: bool = False
    implicit_private_targets: bool = True
    """A private/loopback IP literal in allowed_targets enables private network targets."""
    upstream_connect_timeout_sec: Optional[float] = None
    upstream_read_timeout_sec: Optional[float] = None
    addr: str = ":8000"
    """Bind address, host:port (empty host binds all interfaces)."""


def load_settings(path: Path = CONFIG_PATH, overrides: Optional[Dict[str, Any]] = None) -> ProxySettings:
    """
    Load settings from the YAML file at path (missing file means defaults) and apply overrides.
    Override keys are flat; keys naming a CORS option go into the cors section.
    Raises pydantic.ValidationError for invalid values.
    """
    data: Dict[str, Any] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        logger.info("Loaded settings from %s", path)

    if overrides:
        cors = dict(data.get("cors") or {})
        for key, value in overrides.items():
            if value is None:
                continue
            if key in CorsSettings.model_fields:
                cors[key] = value
            else:
                data[key] = value
        data["cors"] = cors

    return ProxySettings.model_validate(data)
