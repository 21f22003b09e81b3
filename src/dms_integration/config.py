"""Config file loading and auto-discovery for DMS Integration.

Searches for ``dms-integration.yaml`` in the current directory and
parent directories, parses it, and resolves relative paths against the
config file's location. The ``FEDRAMP`` environment variable overrides
``restricted_mode``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from dms_integration.artifacts import DEFAULT_SNITCH_URL_KEY
from dms_integration.credentials import DEFAULT_API_KEY_SECRET_KEY
from dms_integration.snitch.client import DEFAULT_API_URL
from dms_integration.snitch.provisioner import DEFAULT_RUNBOOK_URL

CONFIG_FILENAME = "dms-integration.yaml"
RESTRICTED_MODE_ENV = "FEDRAMP"


@dataclass(frozen=True)
class OperatorConfig:
    """Parsed DMS Integration configuration."""

    config_path: Path | None = None
    restricted_mode: bool = False
    snitch_url_key: str = DEFAULT_SNITCH_URL_KEY
    api_key_secret_key: str = DEFAULT_API_KEY_SECRET_KEY
    api_base_url: str = DEFAULT_API_URL
    api_timeout: float = 15.0
    snitch_interval: str = "15_minute"
    snitch_alert_type: str = "basic"
    runbook_url: str = DEFAULT_RUNBOOK_URL
    resync_period: float = 600.0
    kubeconfig: str | None = None
    context: str | None = None
    in_cluster: bool = False
    log_level: str = "INFO"


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``dms-integration.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> OperatorConfig:
    """Load a DMS Integration config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Defaults.

    The ``FEDRAMP`` environment variable is applied last.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    cfg = OperatorConfig() if config_path is None else _parse_config(config_path)
    return _apply_env(cfg)


def _parse_config(config_path: Path) -> OperatorConfig:
    """Read and parse a YAML config file, resolving relative paths."""
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    defaults = OperatorConfig()
    kubeconfig = data.get("kubeconfig")
    if kubeconfig is not None:
        kubeconfig = str((config_path.parent / kubeconfig).resolve())

    def _get(key: str) -> Any:
        return data.get(key, getattr(defaults, key))

    return OperatorConfig(
        config_path=config_path,
        restricted_mode=bool(_get("restricted_mode")),
        snitch_url_key=_get("snitch_url_key"),
        api_key_secret_key=_get("api_key_secret_key"),
        api_base_url=_get("api_base_url"),
        api_timeout=float(_get("api_timeout")),
        snitch_interval=_get("snitch_interval"),
        snitch_alert_type=_get("snitch_alert_type"),
        runbook_url=_get("runbook_url"),
        resync_period=float(_get("resync_period")),
        kubeconfig=kubeconfig,
        context=data.get("context"),
        in_cluster=bool(_get("in_cluster")),
        log_level=str(_get("log_level")).upper(),
    )


def _apply_env(cfg: OperatorConfig) -> OperatorConfig:
    raw = os.environ.get(RESTRICTED_MODE_ENV)
    if raw is None or raw == "":
        return cfg
    return replace(cfg, restricted_mode=raw.strip().lower() in ("1", "true", "yes"))
