#!/usr/bin/env python3
"""Command-line interface for the peerbench prompt and scoring pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from colorama import Fore, Style

from peerbench import (
    ConfigurationError,
    Environment,
    PeerBenchException,
    TaskReader,
    ValidationError,
    aggregate_scores,
    configure_logging,
    create_provider_registry,
    create_scorer_registry,
    load_account,
    load_environment,
    load_score_records,
    merge_scorer_options,
    parse_model_option,
    render_json,
    render_table,
    run_prompts,
    score_files,
)
from peerbench.domain import Task
from peerbench.infrastructure.config_manager import load_mapping_file
from peerbench.services import ITaskReader

LOGGER = logging.getLogger("peerbench.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be zero or positive, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Forward benchmark Tasks to LLM Providers and score the Responses.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("--verbose", action="store_true", help="Enable informational logging.")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    prompt = subparsers.add_parser("prompt", help="Forwards the given Tasks to the given models")
    prompt.add_argument("--task", nargs="+", required=True, type=Path, help="Path to the task files")
    prompt.add_argument(
        "-m",
        "--model",
        nargs="+",
        required=True,
        help="Provider and Model identifiers to be used (e.g., openrouter.ai:openai/gpt-4o-mini)",
    )
    prompt.add_argument("-o", "--output", type=Path, required=True, help="Output directory for Response files")
    prompt.add_argument("--tag", nargs="+", default=[], help="Tags appended to the output file names")
    prompt.add_argument(
        "--max", type=_non_negative_int, default=None, help="Maximum number of Prompts to be used from each Task"
    )
    prompt.add_argument("--system", default=None, help="Defines a custom system Prompt")

    score = subparsers.add_parser("score", help="Scores the given Response files")
    score.add_argument("--response", nargs="+", required=True, type=Path, help="Path to the Response files")
    score.add_argument("-o", "--output", type=Path, required=True, help="Output directory for Score files")
    score.add_argument("--scorer", default=None, help="Scorer identifier; detected from the Responses when omitted")
    score.add_argument("--scorer-options", type=Path, default=None, help="YAML or JSON file with Scorer options")
    score.add_argument("--tag", nargs="+", default=[], help="Tags appended to the output file names")

    aggregate = subparsers.add_parser("aggregate", aliases=["agg"], help="Aggregates the given Score files")
    aggregate.add_argument("-s", "--score", nargs="+", required=True, type=Path, help="Path to the Score files")
    aggregate.add_argument("-f", "--format", choices=("table", "json"), default="table", help="Output format")

    models = subparsers.add_parser("models", help="Lists the models supported by a Provider")
    models.add_argument("--provider", default="openrouter.ai", help="Provider identifier")
    return parser


def _log_level(args: argparse.Namespace, env: Environment) -> str:
    if args.debug:
        return "DEBUG"
    if args.verbose:
        return "INFO"
    return env.log_level.upper()


def _require_files(paths: Sequence[Path], kind: str) -> None:
    for path in paths:
        if not path.is_file():
            raise ValidationError(f"{kind} file doesn't exist: {path}", field="path", value=str(path))


def _ok(message: str, use_color: bool) -> None:
    if use_color:
        message = f"{Fore.GREEN}{Style.BRIGHT}{message}{Style.RESET_ALL}"
    print(message)


def _read_tasks(paths: Sequence[Path], reader: ITaskReader) -> List[Task]:
    return [reader.read_from_file(path).task for path in paths]


def cmd_prompt(args: argparse.Namespace, env: Environment, use_color: bool) -> int:
    _require_files(args.task, "Task")
    tasks = _read_tasks(args.task, TaskReader())

    registry = create_provider_registry(env)
    targets = []
    for value in args.model:
        provider_id, model_id = parse_model_option(value)
        provider = registry.get(provider_id)
        if provider is None:
            raise ValidationError(f'Provider "{provider_id}" not found', field="model", value=value)
        model_info = provider.parse_model_info(model_id)
        if model_info is None:
            raise ValidationError(
                f'Model "{model_id}" is not supported by the Provider "{provider_id}"', field="model", value=value
            )
        targets.append((provider, model_info))

    try:
        result = run_prompts(
            tasks,
            targets,
            args.output,
            tags=args.tag,
            system_prompt=args.system,
            max_prompts=args.max,
            signer=load_account(env),
            is_dev=env.is_dev,
        )
    finally:
        registry.close()

    for unit in result.values:
        _ok(f"[OK] {unit.path} ({unit.responses.ok_count}/{unit.responses.total} responses)", use_color)
    if result.total and result.ok_count == 0:
        LOGGER.error("Every Task/Model unit failed")
        return EXIT_FAILED
    return EXIT_OK


def cmd_score(args: argparse.Namespace, env: Environment, use_color: bool) -> int:
    _require_files(args.response, "Response")
    registry = create_scorer_registry()
    scorer = None
    if args.scorer:
        scorer = registry.get(args.scorer)
        if scorer is None:
            raise ValidationError(f'Scorer "{args.scorer}" not found', field="scorer", value=args.scorer)

    provided: Optional[Dict[str, Any]] = None
    if args.scorer_options is not None:
        provided = load_mapping_file(args.scorer_options)
    options = merge_scorer_options(args.scorer, provided, fallback_api_key=env.openrouter_api_key)

    try:
        result = score_files(
            args.response,
            args.output,
            scorer=scorer,
            registry=registry,
            tags=args.tag,
            scorer_options=options,
            signer=load_account(env),
            is_dev=env.is_dev,
        )
    finally:
        registry.close()

    for run in result.values:
        _ok(f"[OK] {run.path} ({run.scores.ok_count}/{run.scores.total} scores)", use_color)
    if result.total and result.ok_count == 0:
        LOGGER.error("Every Response file failed to score")
        return EXIT_FAILED
    return EXIT_OK


def cmd_aggregate(args: argparse.Namespace, env: Environment, use_color: bool) -> int:
    _require_files(args.score, "Score")
    LOGGER.info("Aggregating %d score files", len(args.score))
    results = aggregate_scores(load_score_records(args.score))
    if args.format == "json":
        print(render_json(results))
    else:
        render_table(results)
    LOGGER.info("Aggregation complete")
    return EXIT_OK


def cmd_models(args: argparse.Namespace, env: Environment, use_color: bool) -> int:
    registry = create_provider_registry(env)
    provider = registry.get(args.provider)
    if provider is None:
        raise ValidationError(f'Provider "{args.provider}" not found', field="provider", value=args.provider)
    try:
        models: List[str] = [model.id for model in provider.get_supported_models()]
    finally:
        registry.close()
    for model_id in models:
        print(f"{args.provider}:{model_id}")
    return EXIT_OK


COMMANDS = {
    "prompt": cmd_prompt,
    "score": cmd_score,
    "aggregate": cmd_aggregate,
    "agg": cmd_aggregate,
    "models": cmd_models,
}


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        env = load_environment()
    except ConfigurationError as exc:
        print(f"{parser.prog}: error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    use_color = configure_logging(_log_level(args, env), log_file=args.log_file)

    try:
        return COMMANDS[args.command](args, env, use_color)
    except KeyboardInterrupt:
        print("\n[Interrupted] Exiting.")
        return EXIT_INTERRUPTED
    except (ValidationError, ConfigurationError) as exc:
        LOGGER.error("%s", exc)
        return EXIT_USAGE
    except PeerBenchException as exc:
        LOGGER.error("%s", exc)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
