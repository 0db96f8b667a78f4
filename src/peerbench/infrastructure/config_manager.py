"""Thread-safe configuration management and scorer defaults."""

import json
import logging
import os
import re
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, cast

import yaml

from ..exceptions import ConfigurationError

LOGGER = logging.getLogger(__name__)

DEFAULTS_DIR = Path("data") / "config"
DEFAULTS_FILE_NAMES = ("defaults.yaml", "defaults.yml", "defaults.json")
API_KEY_ENV_VAR_OPTION = "openrouter_api_key_env_var"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class ConfigurationManager:
    """Thread-safe configuration manager with file and environment support."""

    def __init__(self, config_file: Optional[Path | str] = None, env_prefix: str = "PB_"):
        """Initialize configuration manager.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            env_prefix: Prefix of the environment variables that override file values
        """
        self._config_file: Optional[Path] = Path(config_file) if config_file is not None else None
        self._env_prefix = env_prefix
        self._lock = threading.RLock()
        self._config: Dict[str, Any] = {}

        if self._config_file is not None:
            self.reload()

    def env_key(self, key: str) -> str:
        """``scorers.llm-judge.model`` -> ``PB_SCORERS_LLM_JUDGE_MODEL``."""
        return self._env_prefix + re.sub(r"[.\-]", "_", key).upper()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Supports dot notation for nested keys (e.g., 'scorers.llm-judge.model').
        Environment variables (``PB_SCORERS_LLM_JUDGE_MODEL``) override file values.
        """
        with self._lock:
            env_value = os.getenv(self.env_key(key))
            if env_value is not None:
                return self._parse_env_value(env_value)

            current: Any = self._config
            for part in key.split("."):
                if not isinstance(current, Mapping):
                    return default
                current_map = cast(Mapping[str, Any], current)
                if current_map.get(part) is None:
                    return default
                current = current_map[part]
            return current

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section; each of its keys can be overridden on its own."""
        value = self.get(section, {})
        if not isinstance(value, dict):
            return {}
        return {key: self.get(f"{section}.{key}", item) for key, item in cast(Dict[str, Any], value).items()}

    def reload(self) -> None:
        """Reload configuration from file."""
        with self._lock:
            if self._config_file is None:
                self._config = {}
                return
            self._config = load_mapping_file(self._config_file)

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        try:
            return json.loads(value)
        except (json.JSONDecodeError, ValueError):
            return value


def load_mapping_file(path: Path) -> Dict[str, Any]:
    """Load a YAML or JSON file that must contain a mapping."""
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    try:
        with open(path, "r", encoding="utf-8") as handle:
            if suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(handle)
            elif suffix == ".json":
                data = json.load(handle)
            else:
                raise ConfigurationError(f"Unsupported configuration file format: {suffix}")
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot parse configuration file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping/object: {path}")
    return dict(cast(Dict[str, Any], data))


def find_defaults_file(base_dir: Optional[Path] = None) -> Optional[Path]:
    """Locate ``data/config/defaults.{yaml,yml,json}`` under ``base_dir`` (cwd by default)."""
    directory = (base_dir or Path.cwd()) / DEFAULTS_DIR
    for name in DEFAULTS_FILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def snake_case_keys(options: Mapping[str, Any]) -> Dict[str, Any]:
    """``openRouterApiKey_ENV_VAR`` -> ``open_router_api_key_env_var``; nested values are left alone."""
    result: Dict[str, Any] = {}
    for key, value in options.items():
        name = _CAMEL_BOUNDARY.sub("_", str(key)).lower()
        result[name.replace("open_router", "openrouter")] = value
    return result


def load_scorer_defaults(identifier: str, base_dir: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    """Read the ``scorers.<identifier>`` section of the defaults file, if any.

    A broken defaults file is logged and ignored so scoring still runs with explicit options.
    """
    path = find_defaults_file(base_dir)
    if path is None:
        return None
    try:
        manager = ConfigurationManager(path)
    except ConfigurationError as exc:
        LOGGER.warning("Failed to load %s: %s", path, exc)
        return None

    defaults = manager.get_section(f"scorers.{identifier}")
    if not defaults:
        return None
    return snake_case_keys(defaults)


def merge_scorer_options(
    identifier: Optional[str],
    provided: Optional[Mapping[str, Any]] = None,
    *,
    base_dir: Optional[Path] = None,
    fallback_api_key: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Defaults for ``identifier`` overlaid with the provided options.

    ``openrouter_api_key_env_var`` names a variable whose value becomes
    ``openrouter_api_key``; ``fallback_api_key`` is used when that variable is unset.
    Returns None when there is nothing to pass to the scorer.
    """
    merged: Dict[str, Any] = {}
    if identifier:
        merged.update(load_scorer_defaults(identifier, base_dir) or {})
    if provided:
        merged.update(snake_case_keys(provided))

    env_var = merged.get(API_KEY_ENV_VAR_OPTION)
    if env_var:
        api_key = os.getenv(str(env_var)) or fallback_api_key
        if api_key:
            merged["openrouter_api_key"] = api_key
            del merged[API_KEY_ENV_VAR_OPTION]
        else:
            LOGGER.warning("Environment variable %s not found; the LLM judge may fail without an API key.", env_var)

    return merged or None


__all__ = [
    "ConfigurationManager",
    "load_mapping_file",
    "find_defaults_file",
    "snake_case_keys",
    "load_scorer_defaults",
    "merge_scorer_options",
]
