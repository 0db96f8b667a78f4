# pyright: reportPrivateUsage=false
from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from peerbench.environment import load_environment, parse_environment
from peerbench.exceptions import ConfigurationError
from peerbench.infrastructure.config_manager import (
    ConfigurationManager,
    load_scorer_defaults,
    merge_scorer_options,
    snake_case_keys,
)


def test_configuration_manager_loads_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        """
scorers:
  llm-judge:
    model: openai/gpt-4o-mini
    temperature: 0
"""
    )

    manager = ConfigurationManager(config_file=config_file)
    assert manager.get("scorers.llm-judge.model") == "openai/gpt-4o-mini"
    assert manager.get("missing", default="fallback") == "fallback"

    assert manager.env_key("scorers.llm-judge.temperature") == "PB_SCORERS_LLM_JUDGE_TEMPERATURE"

    monkeypatch.setenv("PB_SCORERS_LLM_JUDGE_TEMPERATURE", "0.5")
    assert manager.get("scorers.llm-judge.temperature") == 0.5
    assert manager.get_section("scorers.llm-judge") == {"model": "openai/gpt-4o-mini", "temperature": 0.5}
    assert manager.get_section("scorers.llm-judge.model") == {}


def test_configuration_manager_json_and_reload(tmp_path: Path) -> None:
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"alpha": 1}))

    manager = ConfigurationManager(config_file=config_file)
    assert manager.get("alpha") == 1

    config_file.write_text(json.dumps({"alpha": 2, "beta": {"gamma": "x"}}))
    manager.reload()
    assert manager.get("beta.gamma") == "x"


@pytest.mark.parametrize(
    ("name", "content"),
    [("missing.yaml", None), ("config.toml", "a = 1"), ("list.yaml", "- a\n- b\n"), ("broken.json", "{")],
)
def test_invalid_configuration_files(tmp_path: Path, name: str, content: str) -> None:
    path = tmp_path / name
    if content is not None:
        path.write_text(content)
    with pytest.raises(ConfigurationError):
        ConfigurationManager(config_file=path)


def test_snake_case_keys() -> None:
    assert snake_case_keys({"openRouterApiKey_ENV_VAR": "X", "promptPrefix": "p", "mode": "pointwise"}) == {
        "openrouter_api_key_env_var": "X",
        "prompt_prefix": "p",
        "mode": "pointwise",
    }


def _write_defaults(base: Path, text: str) -> None:
    directory = base / "data" / "config"
    directory.mkdir(parents=True)
    (directory / "defaults.yaml").write_text(text)


def test_scorer_defaults_are_merged_with_provided_options(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_defaults(
        tmp_path,
        """
scorers:
  llm-judge:
    model: openai/gpt-4o-mini
    openRouterApiKey_ENV_VAR: JUDGE_KEY
    criteria:
      - id: accuracy
        description: Is it right?
""",
    )
    monkeypatch.setenv("JUDGE_KEY", "from-env")

    merged = merge_scorer_options("llm-judge", {"model": "openai/gpt-4o"}, base_dir=tmp_path)

    assert merged is not None
    assert merged["model"] == "openai/gpt-4o"
    assert merged["openrouter_api_key"] == "from-env"
    assert "openrouter_api_key_env_var" not in merged
    assert merged["criteria"][0]["id"] == "accuracy"


def test_environment_overrides_scorer_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_defaults(tmp_path, "scorers:\n  llm-judge:\n    model: openai/gpt-4o-mini\n    mode: pointwise\n")
    monkeypatch.setenv("PB_SCORERS_LLM_JUDGE_MODEL", "anthropic/claude-3-haiku")

    assert load_scorer_defaults("llm-judge", tmp_path) == {"model": "anthropic/claude-3-haiku", "mode": "pointwise"}
    assert load_scorer_defaults("exact-match", tmp_path) is None


def test_missing_key_variable_falls_back(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    options = {"openRouterApiKey_ENV_VAR": "NOT_SET_ANYWHERE"}

    with_fallback = merge_scorer_options(None, options, base_dir=tmp_path, fallback_api_key="pb-key")
    without_fallback = merge_scorer_options(None, options, base_dir=tmp_path)

    assert with_fallback == {"openrouter_api_key": "pb-key"}
    assert without_fallback == {"openrouter_api_key_env_var": "NOT_SET_ANYWHERE"}
    assert merge_scorer_options("multiple-choice", None, base_dir=tmp_path) is None


def test_broken_defaults_file_is_ignored(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="peerbench.infrastructure.config_manager")
    _write_defaults(tmp_path, "scorers: [unclosed\n")
    assert load_scorer_defaults("llm-judge", tmp_path) is None
    assert "Failed to load" in caplog.text


def test_parse_environment_defaults_and_validation() -> None:
    env = parse_environment({})
    assert env.node_env == "dev"
    assert env.log_level == "debug"
    assert env.is_dev
    assert env.openrouter_api_key is None

    env = parse_environment({"PB_NODE_ENV": "production", "PB_PRIVATE_KEY": "abcd", "PB_OPENROUTER_AI_KEY": "k"})
    assert not env.is_dev
    assert env.private_key == "0xabcd"
    assert env.require_openrouter_api_key() == "k"

    assert parse_environment({"NODE_ENV": "test", "PB_NODE_ENV": "prod"}).node_env == "test"
    with pytest.raises(ConfigurationError):
        parse_environment({"PB_LOG_LEVEL": "verbose"})
    with pytest.raises(ConfigurationError):
        parse_environment({"PB_NODE_ENV": "staging"})


def test_load_environment_reads_process_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PB_OPENROUTER_AI_KEY", "process-key")
    monkeypatch.setenv("PB_LOG_LEVEL", "info")

    env = load_environment()

    assert env.openrouter_api_key == "process-key"
    assert env.log_level == "info"
    assert load_environment() is env
