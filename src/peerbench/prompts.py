"""Prompt construction helpers and the default system prompts."""

from __future__ import annotations

import uuid
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List, Mapping, Optional, cast

import yaml

from .domain import ContentRef, Prompt, PromptType
from .infrastructure.content_address import calculate_cid, calculate_sha256


@lru_cache(maxsize=1)
def _load_system_prompts() -> Dict[str, Any]:
    """Load the system prompt definitions from the YAML resource."""
    resource = resources.files("peerbench") / "system_prompts.yaml"
    with resource.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, dict):
        raise TypeError("System prompts YAML must define a mapping at the top level.")
    return cast(Dict[str, Any], data)


def _expect_str(data: Dict[str, Any], key: str) -> str:
    """Fetch and validate a single string value from the loaded YAML data."""
    value = data.get(key)
    if not isinstance(value, str):
        raise TypeError(f"Expected a string for '{key}' in system_prompts.yaml.")
    return value


_SYSTEM_PROMPTS = _load_system_prompts()
MULTIPLE_CHOICE_SYSTEM_PROMPT = _expect_str(_SYSTEM_PROMPTS, PromptType.MULTIPLE_CHOICE)
SENTENCE_REORDER_SYSTEM_PROMPT = _expect_str(_SYSTEM_PROMPTS, PromptType.ORDER_SENTENCES)
TEXT_REPLACEMENT_SYSTEM_PROMPT = _expect_str(_SYSTEM_PROMPTS, PromptType.TEXT_REPLACEMENT)
TYPO_SYSTEM_PROMPT = _expect_str(_SYSTEM_PROMPTS, PromptType.TYPO)

DEFAULT_SYSTEM_PROMPTS: Mapping[str, str] = {
    PromptType.MULTIPLE_CHOICE: MULTIPLE_CHOICE_SYSTEM_PROMPT,
    PromptType.ORDER_SENTENCES: SENTENCE_REORDER_SYSTEM_PROMPT,
    PromptType.TEXT_REPLACEMENT: TEXT_REPLACEMENT_SYSTEM_PROMPT,
    PromptType.TYPO: TYPO_SYSTEM_PROMPT,
}


def resolve_system_prompt(prompt_type: str, override: Optional[str] = None) -> Optional[str]:
    """Return the explicit override, else the default for the prompt type (None for open-ended)."""
    if override:
        return override
    return DEFAULT_SYSTEM_PROMPTS.get(prompt_type)


def prepare_prompt(question: str, options: Optional[Mapping[str, str]] = None) -> str:
    """Build the full text sent to the model, listing the options after the question."""
    if not options:
        return question

    lines: List[str] = [f"{question}\n"]
    for letter, answer in options.items():
        lines.append(f"{letter}: {answer}")
    return "\n".join(lines) + "\n"


def content_ref(text: str) -> ContentRef:
    return ContentRef(data=text, cid=calculate_cid(text), sha256=calculate_sha256(text))


def build_prompt(
    question: str,
    *,
    prompt_type: str = PromptType.MULTIPLE_CHOICE,
    options: Optional[Mapping[str, str]] = None,
    answer_key: Optional[str] = None,
    answer: Optional[str] = None,
    scorers: Optional[List[str]] = None,
    did: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Prompt:
    """Create a validated, content-addressed Prompt.

    When ``answer`` is omitted for a multiple-choice prompt it is taken from the
    option that ``answer_key`` points to.
    """
    options_dict = dict(options or {})
    if answer is None and answer_key is not None:
        answer = options_dict.get(answer_key)

    prompt = Prompt(
        did=did or str(uuid.uuid4()),
        type=prompt_type,
        question=content_ref(question),
        full_prompt=content_ref(prepare_prompt(question, options_dict)),
        options=options_dict,
        answer=answer,
        answer_key=answer_key,
        scorers=list(scorers or []),
        metadata=metadata,
    )
    return prompt.validate()


__all__ = [
    "MULTIPLE_CHOICE_SYSTEM_PROMPT",
    "SENTENCE_REORDER_SYSTEM_PROMPT",
    "TEXT_REPLACEMENT_SYSTEM_PROMPT",
    "TYPO_SYSTEM_PROMPT",
    "DEFAULT_SYSTEM_PROMPTS",
    "resolve_system_prompt",
    "prepare_prompt",
    "content_ref",
    "build_prompt",
]
