#!/usr/bin/env python3
"""
Run the CORS proxy.

Usage:
  corsproxy --allowed-targets "https://api.example.com,https://*.example.org" --addr :8000
  curl -H "Origin: https://app.example.net" http://127.0.0.1:8000/https://api.example.com/data

Every flag can also be set with the CORSPROXY_<FLAG> environment variable (e.g.
CORSPROXY_ALLOWED_TARGETS). Lists are comma separated. A YAML settings file is read from
CORSPROXY_CONFIG_PATH when it exists; flags and environment variables override it.
"""
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import uvicorn

from corsproxy.config import CONFIG_PATH, load_settings
from corsproxy.logging_conf import configure_logging
from corsproxy.main import create_app

logger = logging.getLogger("corsproxy")

# (flag, settings key, kind, help)
FLAGS: List[Tuple[str, str, str, str]] = [
    ("allowed-origins", "allowed_origins", "list", "origins a cross-domain request can be executed from"),
    ("allowed-methods", "allowed_methods", "list", "methods the client is allowed to use with cross-domain requests"),
    ("allowed-headers", "allowed_headers", "list", "headers the client is allowed to use with cross-domain requests"),
    ("exposed-headers", "exposed_headers", "list", "response headers the browser may expose to the calling script"),
    ("max-age", "max_age", "int", "how long (in seconds) the results of a preflight request can be cached"),
    ("allow-credentials", "allow_credentials", "bool", "whether the request can include user credentials"),
    ("allow-private-network", "allow_private_network", "bool", "accept cross-origin requests over a private network"),
    ("passthrough", "options_passthrough", "bool", "let the proxy handler process preflight OPTIONS requests too"),
    ("success-status", "options_success_status", "int", "status code for successful OPTIONS requests"),
    ("debug", "debug", "bool", "log additional output to debug CORS issues"),
    ("allowed-targets", "allowed_targets", "list", "targets a cross-domain request can reach"),
    ("allow-private-network-target", "allow_private_network_target", "bool", "accept private network targets"),
    ("addr", "addr", "str", "bind address"),
]

_TRUE = ("1", "true", "yes", "on")


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _convert(kind: str, value: str) -> Any:
    if kind == "list":
        return _split_list(value)
    if kind == "int":
        return int(value)
    if kind == "bool":
        return value.strip().lower() in _TRUE
    return value


def _env_name(flag: str) -> str:
    return "CORSPROXY_" + flag.replace("-", "_").upper()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="corsproxy", description="CORS proxy with target allowlist")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="YAML settings file")
    for flag, _, kind, help_text in FLAGS:
        if kind == "bool":
            parser.add_argument(
                f"--{flag}", action=argparse.BooleanOptionalAction, default=None, help=f"{help_text} (env {_env_name(flag)})"
            )
        elif kind == "int":
            parser.add_argument(f"--{flag}", type=int, default=None, help=f"{help_text} (env {_env_name(flag)})")
        else:
            parser.add_argument(f"--{flag}", default=None, help=f"{help_text} (env {_env_name(flag)})")
    return parser


def collect_overrides(args: argparse.Namespace, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Merge flags over environment variables. Unset values are left out."""
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for flag, key, kind, _ in FLAGS:
        value = getattr(args, flag.replace("-", "_"))
        if value is None:
            value = environ.get(_env_name(flag))
        if value is None:
            continue
        if isinstance(value, str):
            try:
                value = _convert(kind, value)
            except ValueError as exc:
                raise ValueError(f"{_env_name(flag)}: {exc}") from None
        overrides[key] = value
    return overrides


def split_addr(addr: str) -> Tuple[str, int]:
    host, _, port = addr.rpartition(":")
    return host.strip("[]") or "0.0.0.0", int(port)


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        overrides = collect_overrides(args)
    except ValueError as exc:
        parser.error(str(exc))
    settings = load_settings(args.config, overrides)

    if settings.cors.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode")
        logger.debug("Options: %s", settings.model_dump())

    app = create_app(settings)
    host, port = split_addr(settings.addr)
    logger.info("Listen %s", settings.addr)
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
