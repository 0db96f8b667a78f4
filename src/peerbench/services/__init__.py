"""Service interfaces for dependency injection."""

import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from ..domain import ForwardResponse, ModelInfo, PromptResponse, PromptScore

ChatMessages = List[Dict[str, str]]


class IRateLimiter(Protocol):
    """Interface for admission rate limiting."""

    def acquire(self) -> float:
        """Block until a call may start; return the seconds spent waiting."""
        ...


class IProvider(Protocol):
    """Interface for an LLM backend adapter."""

    identifier: str

    def forward(
        self,
        input: Union[str, ChatMessages],
        *,
        model: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        abort_event: Optional[threading.Event] = None,
    ) -> ForwardResponse:
        """Send the input to the model and return its answer."""
        ...

    def parse_model_info(self, model: Union[str, Mapping[str, Any]]) -> Optional[ModelInfo]:
        """Normalize a model id or catalog entry; None when unsupported."""
        ...

    def close(self) -> None:
        """Close connections and cleanup resources."""
        ...


class IScorer(Protocol):
    """Interface for a grading strategy."""

    identifier: str

    def can_score(self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None) -> bool:
        """Cheap eligibility check."""
        ...

    def score_one(
        self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[PromptScore]:
        """Score a single Response; None when it is not eligible."""
        ...


class ISigner(Protocol):
    """Interface for the operator account."""

    @property
    def public_key(self) -> str:
        """Public half of the signing key."""
        ...

    def sign(self, message: str) -> str:
        """Return a detached signature of the message."""
        ...


class ITaskReader(Protocol):
    """Interface for reading Task files."""

    def read_from_file(self, path: Path) -> Any:
        """Read and validate a Task file."""
        ...


class IOutputStream(Protocol):
    """Interface for incremental record writers."""

    @property
    def count(self) -> int:
        """Number of records written so far."""
        ...

    def write(self, obj: Any) -> None:
        """Append one record."""
        ...

    def end(self) -> None:
        """Finalize the output."""
        ...


__all__ = [
    "ChatMessages",
    "IRateLimiter",
    "IProvider",
    "IScorer",
    "ISigner",
    "ITaskReader",
    "IOutputStream",
]
