"""Public API for the peerbench package."""

from __future__ import annotations

from .domain import (
    ContentRef,
    ForwardResponse,
    ModelInfo,
    Prompt,
    PromptResponse,
    PromptScore,
    PromptType,
    ScorerAI,
    ScoringMethod,
    Task,
)
from .environment import Environment, load_environment, parse_environment
from .exceptions import (
    ArtifactSaveError,
    ConfigurationError,
    EnvVariableNeededError,
    ErrorCodes,
    ForwardError,
    JudgeParsingError,
    PeerBenchException,
    ProviderError,
    ScorerNotEligibleError,
    ScorerNotFoundError,
    ScoringError,
    TaskSchemaError,
    ValidationError,
)
from .infrastructure import (
    BaseLLMProvider,
    JsonArrayStream,
    OpenRouterProvider,
    OperatorSigner,
    ProviderRegistry,
    SlidingWindowRateLimiter,
    TaskReader,
    calculate_cid,
    calculate_sha256,
    create_provider_registry,
    hash_file,
    load_account,
    merge_scorer_options,
    parse_model_option,
    recover_json_array,
    verify_file,
)
from .logging_config import configure_logging
from .pipeline import (
    BatchResult,
    ItemResult,
    aggregate_scores,
    load_score_records,
    process_response_file,
    process_responses,
    process_task,
    read_response_file,
    render_json,
    render_table,
    run_prompts,
    score_files,
)
from .prompts import build_prompt, prepare_prompt, resolve_system_prompt
from .scoring import (
    AbstractScorer,
    ExactMatchScorer,
    LLMJudgeScorer,
    MultipleChoiceScorer,
    ScorerRegistry,
    create_scorer_registry,
)

__all__ = [
    "ContentRef",
    "ForwardResponse",
    "ModelInfo",
    "Prompt",
    "PromptResponse",
    "PromptScore",
    "PromptType",
    "ScorerAI",
    "ScoringMethod",
    "Task",
    "Environment",
    "load_environment",
    "parse_environment",
    "ArtifactSaveError",
    "ConfigurationError",
    "EnvVariableNeededError",
    "ErrorCodes",
    "ForwardError",
    "JudgeParsingError",
    "PeerBenchException",
    "ProviderError",
    "ScorerNotEligibleError",
    "ScorerNotFoundError",
    "ScoringError",
    "TaskSchemaError",
    "ValidationError",
    "BaseLLMProvider",
    "JsonArrayStream",
    "OpenRouterProvider",
    "OperatorSigner",
    "ProviderRegistry",
    "SlidingWindowRateLimiter",
    "TaskReader",
    "calculate_cid",
    "calculate_sha256",
    "create_provider_registry",
    "hash_file",
    "load_account",
    "merge_scorer_options",
    "parse_model_option",
    "recover_json_array",
    "verify_file",
    "configure_logging",
    "BatchResult",
    "ItemResult",
    "aggregate_scores",
    "load_score_records",
    "process_response_file",
    "process_responses",
    "process_task",
    "read_response_file",
    "render_json",
    "render_table",
    "run_prompts",
    "score_files",
    "build_prompt",
    "prepare_prompt",
    "resolve_system_prompt",
    "AbstractScorer",
    "ExactMatchScorer",
    "LLMJudgeScorer",
    "MultipleChoiceScorer",
    "ScorerRegistry",
    "create_scorer_registry",
]
