"""Base class for Scorers."""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from ..domain import PromptResponse, PromptScore


class AbstractScorer(ABC):
    """A grading strategy for Responses.

    ``can_score`` is a cheap eligibility check; ``score_one`` returns None for
    Responses that are not eligible and raises when grading itself fails.
    """

    identifier: str = "abstract"
    # Only picked by automatic detection when scorer options are supplied
    requires_options: bool = False

    @abstractmethod
    def can_score(self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None) -> bool:
        ...

    @abstractmethod
    def score_one(
        self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[PromptScore]:
        ...

    @staticmethod
    def new_score_did() -> str:
        return str(uuid.uuid4())

    def __repr__(self) -> str:
        return f"{type(self).__name__}(identifier={self.identifier!r})"


__all__ = ["AbstractScorer"]
