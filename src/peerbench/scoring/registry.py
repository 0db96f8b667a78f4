"""Scorer lookup by identifier and automatic detection."""

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

from ..domain import PromptResponse
from .base import AbstractScorer
from .exact_match import ExactMatchScorer
from .llm_judge import LLMJudgeScorer
from .multiple_choice import MultipleChoiceScorer

LOGGER = logging.getLogger(__name__)


class ScorerRegistry:
    """Scorers keyed by identifier, tried in registration order."""

    def __init__(self, scorers: Optional[List[AbstractScorer]] = None):
        self._scorers: Dict[str, AbstractScorer] = {}
        self._lock = threading.RLock()
        for scorer in scorers or []:
            self.register(scorer)

    def register(self, scorer: AbstractScorer) -> None:
        with self._lock:
            if scorer.identifier in self._scorers:
                raise ValueError(f"Scorer '{scorer.identifier}' is already registered")
            self._scorers[scorer.identifier] = scorer

    def get(self, identifier: str) -> Optional[AbstractScorer]:
        with self._lock:
            return self._scorers.get(identifier)

    @property
    def identifiers(self) -> List[str]:
        with self._lock:
            return list(self._scorers)

    def find_scorer(
        self, sample: PromptResponse, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[AbstractScorer]:
        """First registered Scorer that can score ``sample``, or None."""
        with self._lock:
            candidates = list(self._scorers.values())
        for scorer in candidates:
            if scorer.requires_options and not options:
                continue
            if scorer.can_score(sample, options):
                LOGGER.debug("Selected scorer %s for response %s", scorer.identifier, sample.did)
                return scorer
        return None

    def close(self) -> None:
        with self._lock:
            for scorer in self._scorers.values():
                close = getattr(scorer, "close", None)
                if callable(close):
                    close()


def create_scorer_registry() -> ScorerRegistry:
    """Registry with the built-in Scorers in detection order."""
    return ScorerRegistry([MultipleChoiceScorer(), ExactMatchScorer(), LLMJudgeScorer()])


__all__ = ["ScorerRegistry", "create_scorer_registry"]
