"""Environment variables used by the pipeline.

Values are read once (``.env`` files included) and cached; call
``load_environment.cache_clear()`` after changing the process environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError, EnvVariableNeededError

NODE_ENVS = ("dev", "development", "test", "prod", "production")
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
PRODUCTION_ENVS = ("prod", "production")


@dataclass(frozen=True)
class Environment:
    """Parsed environment configuration."""

    node_env: str = "dev"
    log_level: str = "debug"
    openrouter_api_key: Optional[str] = None
    private_key: Optional[str] = None

    @property
    def is_dev(self) -> bool:
        return self.node_env not in PRODUCTION_ENVS

    def require_openrouter_api_key(self) -> str:
        if not self.openrouter_api_key:
            raise EnvVariableNeededError("OpenRouter.ai API key (PB_OPENROUTER_AI_KEY) is not defined")
        return self.openrouter_api_key


def parse_environment(values: Mapping[str, str]) -> Environment:
    """Validate raw variables into an ``Environment``."""
    # NODE_ENV is accepted as an alias of PB_NODE_ENV and wins when both are set
    node_env = (values.get("NODE_ENV") or values.get("PB_NODE_ENV") or "dev").lower()
    if node_env not in NODE_ENVS:
        raise ConfigurationError(
            "Environment variables couldn't be parsed",
            {"PB_NODE_ENV": node_env, "expected": "|".join(NODE_ENVS)},
        )

    log_level = (values.get("PB_LOG_LEVEL") or "debug").lower()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(
            "Environment variables couldn't be parsed",
            {"PB_LOG_LEVEL": log_level, "expected": "|".join(LOG_LEVELS)},
        )

    private_key = values.get("PB_PRIVATE_KEY") or None
    if private_key is not None and not private_key.startswith("0x"):
        private_key = f"0x{private_key}"

    return Environment(
        node_env=node_env,
        log_level=log_level,
        openrouter_api_key=values.get("PB_OPENROUTER_AI_KEY") or None,
        private_key=private_key,
    )


@lru_cache(maxsize=1)
def load_environment() -> Environment:
    """Load ``.env`` (if any) and parse the process environment."""
    load_dotenv(override=False)
    return parse_environment(os.environ)


__all__ = ["Environment", "parse_environment", "load_environment"]
