import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from .settings import BackendSettings


SECTION = "stackdriver"

# env var -> option name
ENV_OVERRIDES = {
    "STACKDRIVER_API_KEY": "apiKey",
    "STACKDRIVER_SOURCE": "source",
    "STACKDRIVER_DEBUG": "debug",
}


class ConfigError(RuntimeError):
    """Raised when the config file cannot be read or its options are invalid."""


def _load_json_or_yaml(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    # Try JSON first (statsd configs are usually JSON), then YAML
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {path} as JSON or YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a mapping, got {type(data).__name__}")
    return data


def config_path(path: Optional[Union[str, Path]] = None) -> Optional[Path]:
    p = path or os.getenv("STATSD_CONFIG")
    return Path(p) if p else None


def load_section(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Return the raw `stackdriver` options from the config file, if any."""
    p = config_path(path)
    if p is None:
        return {}
    section = _load_json_or_yaml(p).get(SECTION) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{SECTION}' section in {p} must be a mapping")
    return dict(section)


def env_overrides() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for env_key, option in ENV_OVERRIDES.items():
        v = os.getenv(env_key)
        if v is not None:
            out[option] = v
    return out


def build_settings(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> BackendSettings:
    """Merge order: explicit overrides -> env -> config file -> defaults."""
    raw = load_section(path)
    raw.update(env_overrides())
    raw.update(overrides or {})
    try:
        return BackendSettings.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid {SECTION} options: {e}") from e
