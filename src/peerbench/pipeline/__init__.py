"""Prompt, score and aggregate stages."""

from .aggregate import AggregatedResult, aggregate_scores, load_score_records, render_json, render_table
from .forward import TaskRunResult, process_task, run_prompts
from .naming import date_string, normalize_path, response_file_name, score_file_name
from .results import BatchResult, ItemResult
from .score import (
    ResponseFileData,
    ScoreRunResult,
    process_response_file,
    process_responses,
    read_response_file,
    score_files,
)

__all__ = [
    "AggregatedResult",
    "aggregate_scores",
    "load_score_records",
    "render_json",
    "render_table",
    "TaskRunResult",
    "process_task",
    "run_prompts",
    "date_string",
    "normalize_path",
    "response_file_name",
    "score_file_name",
    "BatchResult",
    "ItemResult",
    "ResponseFileData",
    "ScoreRunResult",
    "process_response_file",
    "process_responses",
    "read_response_file",
    "score_files",
]
