"""Exact match scoring for multiple choice and free form answers."""

from typing import Any, Mapping, Optional

from ..domain import PromptResponse, PromptScore, ScoringMethod
from .base import AbstractScorer


class ExactMatchScorer(AbstractScorer):
    """Compares the whole Response with the expected answer.

    Prompts with options are compared against ``answer_key``, others against ``answer``.
    """

    identifier = "exact-match"

    @staticmethod
    def expected_answer(response: PromptResponse) -> Optional[str]:
        prompt = response.prompt
        return prompt.answer_key if prompt.options else prompt.answer

    def can_score(self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None) -> bool:
        return bool(response.data) and bool(self.expected_answer(response))

    def score_one(
        self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[PromptScore]:
        if not self.can_score(response, options):
            return None

        expected = self.expected_answer(response) or ""
        matched = response.data.strip() == expected.strip()
        return PromptScore.from_response(
            response,
            score=1.0 if matched else 0.0,
            score_did=self.new_score_did(),
            method=ScoringMethod.ALGO,
            score_metadata={"scorerIdentifier": self.identifier, "expected": expected},
        )


__all__ = ["ExactMatchScorer"]
