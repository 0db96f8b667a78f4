"""Multiple choice answer extraction and scoring."""

import logging
import re
from typing import Any, List, Mapping, Optional, Pattern, Tuple

from ..domain import PromptResponse, PromptScore, ScoringMethod
from .base import AbstractScorer

LOGGER = logging.getLogger(__name__)

NO_ANSWER_MARKER = "<!NO ANSWER!>"

EXPLANATION_TEXT = """This scorer searches for multiple choice answers using the following patterns (in order):
1) "<!NO ANSWER!>" (special marker indicating model's inability to answer),
2) "Answer is $\\boxed{answer text}$" (full answer text in LaTeX boxed format),
3) "Answer is answer text" (full answer text),
4) "Answer is **answer text**" (full answer text in bold),
5) "Answer is $\\boxed{A}$" or "Answer is $\\boxed{A}$." (single letter in LaTeX boxed format, optional period),
6) "Answer is A" (single letter),
7) "Answer is **A**" (single letter in bold),
8) "A: ..." (letter followed by colon),
9) "A) ..." (letter followed by closing parenthesis and optional text),
10) "A)" (letter followed by closing parenthesis).
The scorer extracts the answer from the last matching pattern (if multiple matches exist) and compares it with the expected answer key (or the answer text itself)."""

# (regex, capture group); a group of None means the pattern matches without yielding an answer
AnswerPattern = Tuple[Pattern[str], Optional[int]]

_LETTER_PATTERNS: List[AnswerPattern] = [
    (re.compile(r"[Aa]nswer is \$\\boxed\{([A-Z])\}\$\.?"), 1),
    (re.compile(r"[Aa]nswer is\s+([A-Z])"), 1),
    (re.compile(r"[Aa]nswer is\s+\**([A-Z])\**"), 1),
    (re.compile(r"([A-Z]):.+"), 1),
    (re.compile(r"([A-Z])\)\s*.+"), 1),
    (re.compile(r"([A-Z])\)"), 1),
]


def answer_patterns(answer_text: str) -> List[AnswerPattern]:
    """Patterns from most specific to least specific for one expected answer text."""
    escaped = re.escape(answer_text)
    return [
        (re.compile(re.escape(NO_ANSWER_MARKER)), None),
        (re.compile(r"[Aa]nswer is \$\\boxed\{(" + escaped + r")\}\$"), 1),
        (re.compile(r"[Aa]nswer is\s+(" + escaped + ")"), 1),
        (re.compile(r"[Aa]nswer is\s+\**(" + escaped + r")\**"), 1),
        *_LETTER_PATTERNS,
    ]


def extract_answer(text: str, answer_text: str) -> Optional[str]:
    """Return the answer stated in ``text``.

    The first pattern that matches at all decides; among its matches the last one
    in reading order wins.
    """
    for regex, group in answer_patterns(answer_text):
        last_match = None
        for last_match in regex.finditer(text):
            pass
        if last_match is not None:
            return last_match.group(group) if group is not None else None
    return None


class MultipleChoiceScorer(AbstractScorer):
    """Scores multiple choice Responses by extracting the chosen letter from the text."""

    identifier = "multiple-choice"

    def can_score(self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None) -> bool:
        prompt = response.prompt
        return bool(response.data) and bool(prompt.options) and bool(prompt.answer_key) and bool(prompt.answer)

    def score_one(
        self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[PromptScore]:
        if not self.can_score(response, options):
            return None

        prompt = response.prompt
        answer_key = prompt.answer_key or ""
        score = 0.0

        if response.data.strip() == answer_key.strip():
            score = 1.0

        extracted = extract_answer(response.data, prompt.answer or "")
        if extracted == answer_key:
            score = 1.0
        elif extracted is not None:
            # The model may have replied with the option text instead of its letter
            for letter, value in prompt.options.items():
                if value.strip() == extracted.strip():
                    if letter == answer_key:
                        score = 1.0
                        extracted = letter
                    break

        LOGGER.debug("Prompt %s: extracted answer %r, expected %r", prompt.did, extracted, answer_key)
        return PromptScore.from_response(
            response,
            score=score,
            score_did=self.new_score_did(),
            method=ScoringMethod.ALGO,
            explanation=EXPLANATION_TEXT,
            score_metadata={"scorerIdentifier": self.identifier, "extractedAnswer": extracted},
        )


__all__ = ["EXPLANATION_TEXT", "NO_ANSWER_MARKER", "MultipleChoiceScorer", "answer_patterns", "extract_answer"]
