"""Infrastructure implementations."""

from .config_manager import ConfigurationManager, load_scorer_defaults, merge_scorer_options
from .content_address import calculate_cid, calculate_sha256
from .file_hasher import FileHash, hash_file, read_sidecar, verify_file
from .json_array_stream import JsonArrayStream, finalize_json_array, recover_json_array
from .providers import (
    BaseLLMProvider,
    OpenRouterProvider,
    ProviderRegistry,
    create_provider_registry,
    parse_model_option,
)
from .rate_limiter import SlidingWindowRateLimiter
from .signing import OperatorSigner, load_account, require_account, verify_signature
from .task_reader import TaskInfo, TaskReader

__all__ = [
    "ConfigurationManager",
    "load_scorer_defaults",
    "merge_scorer_options",
    "calculate_cid",
    "calculate_sha256",
    "FileHash",
    "hash_file",
    "read_sidecar",
    "verify_file",
    "JsonArrayStream",
    "finalize_json_array",
    "recover_json_array",
    "BaseLLMProvider",
    "OpenRouterProvider",
    "ProviderRegistry",
    "create_provider_registry",
    "parse_model_option",
    "SlidingWindowRateLimiter",
    "OperatorSigner",
    "load_account",
    "require_account",
    "verify_signature",
    "TaskInfo",
    "TaskReader",
]
