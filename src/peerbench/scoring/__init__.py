"""Scorer implementations."""

from .base import AbstractScorer
from .exact_match import ExactMatchScorer
from .llm_judge import Criterion, JudgeOptions, LLMJudgeScorer, extract_first_json
from .multiple_choice import MultipleChoiceScorer, extract_answer
from .registry import ScorerRegistry, create_scorer_registry

__all__ = [
    "AbstractScorer",
    "ExactMatchScorer",
    "Criterion",
    "JudgeOptions",
    "LLMJudgeScorer",
    "extract_first_json",
    "MultipleChoiceScorer",
    "extract_answer",
    "ScorerRegistry",
    "create_scorer_registry",
]
