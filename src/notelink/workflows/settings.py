"""Runtime settings assembled from the environment and the rule file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import RuleConfigError
from .link_utils import env_float, env_int, env_str
from .notelink_config import (
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_FOLDER,
    DEFAULT_LOG_LEVEL,
    DEFAULT_RULES_PATH,
    ENV_ACTIVE_NOTE,
    ENV_DEFAULT_FOLDER,
    ENV_FETCH_TIMEOUT,
    ENV_LOG_LEVEL,
    ENV_OUTPUT_FOLDER,
    ENV_PROXY_TIMEOUT_MS,
    ENV_PROXY_TTL_MINUTES,
    ENV_RULES_PATH,
    ENV_VAULT_ROOT,
)
from .url_transform import TransformationConfig

logger = logging.getLogger(__name__)

load_dotenv(override=False)


@dataclass
class NotelinkSettings:
    vault_root: Path
    rules_path: Path
    active_note: Optional[str] = None
    default_folder: str = DEFAULT_FOLDER
    output_folder: Optional[str] = None
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL


def resolve_rules_path(path: Optional[Path] = None) -> Path:
    env_path = env_str(ENV_RULES_PATH)
    if path is not None:
        return Path(path)
    if env_path:
        return Path(env_path)
    return DEFAULT_RULES_PATH


def load_settings(*, vault_root: Optional[Path] = None, rules_path: Optional[Path] = None) -> NotelinkSettings:
    """Explicit arguments win over environment variables, which win over defaults."""

    root = vault_root or Path(env_str(ENV_VAULT_ROOT, ".") or ".")
    return NotelinkSettings(
        vault_root=Path(root),
        rules_path=resolve_rules_path(rules_path),
        active_note=env_str(ENV_ACTIVE_NOTE),
        default_folder=env_str(ENV_DEFAULT_FOLDER, DEFAULT_FOLDER) or DEFAULT_FOLDER,
        output_folder=env_str(ENV_OUTPUT_FOLDER),
        fetch_timeout=env_float(ENV_FETCH_TIMEOUT, DEFAULT_FETCH_TIMEOUT),
        log_level=(env_str(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL) or DEFAULT_LOG_LEVEL).upper(),
    )


def load_transformation_config(path: Optional[Path] = None) -> TransformationConfig:
    """Load rules from JSON; env vars override the proxy health settings.

    A missing file at the default location yields an empty rule set; a missing
    file that was asked for explicitly is an error.
    """

    rules_path = resolve_rules_path(path)
    explicit = path is not None or env_str(ENV_RULES_PATH) is not None
    if not rules_path.exists():
        if explicit:
            raise RuleConfigError(f"rule file not found: {rules_path}")
        logger.info("no rule file at %s; URL rewriting disabled", rules_path)
        config = TransformationConfig()
    else:
        try:
            data = json.loads(rules_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise RuleConfigError(f"cannot read rule file {rules_path}: {exc}") from exc
        config = TransformationConfig.from_dict(data)

    if os.getenv(ENV_PROXY_TTL_MINUTES):
        config.proxy_health_cache_ttl_minutes = env_float(ENV_PROXY_TTL_MINUTES, config.proxy_health_cache_ttl_minutes)
    if os.getenv(ENV_PROXY_TIMEOUT_MS):
        config.proxy_health_timeout_ms = env_int(ENV_PROXY_TIMEOUT_MS, config.proxy_health_timeout_ms)
    return config


__all__ = ["NotelinkSettings", "load_settings", "load_transformation_config", "resolve_rules_path"]
