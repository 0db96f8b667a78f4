"""LLM-as-a-judge scoring in pointwise and pairwise modes."""

from __future__ import annotations

import json
import logging
import math
import threading
from dataclasses import dataclass, field, replace
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List, Mapping, Optional, cast

import yaml

from ..domain import ForwardResponse, PromptResponse, PromptScore, ScorerAI, ScoringMethod
from ..exceptions import ConfigurationError, JudgeParsingError, ValidationError
from ..infrastructure.config_manager import snake_case_keys
from ..infrastructure.providers import OpenRouterProvider
from ..services import ChatMessages, IProvider
from .base import AbstractScorer

LOGGER = logging.getLogger(__name__)

DEFAULT_JUDGE_MODEL = "openai/gpt-4o-mini"
POINTWISE = "pointwise"
PAIRWISE = "pairwise"
WINNER_SCORES = {"A": 1.0, "B": 0.0, "tie": 0.5}


@lru_cache(maxsize=1)
def _load_judge_config() -> Dict[str, Any]:
    """Load judge texts from the YAML resource."""
    resource = resources.files("peerbench") / "judge_config.yaml"
    with resource.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, dict):
        raise TypeError("Judge configuration must be a mapping.")
    return cast(Dict[str, Any], data)


def _expect_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise TypeError(f"Expected a string for '{key}' in judge_config.yaml.")
    return value


def _expect_mapping(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise TypeError(f"Expected a mapping for '{key}' in judge_config.yaml.")
    return cast(Dict[str, Any], value)


_CONFIG = _load_judge_config()
JUDGE_SYSTEM = _expect_str(_CONFIG, "system")
PAIRWISE_SYSTEM = JUDGE_SYSTEM + " " + _expect_str(_CONFIG, "pairwise_system_suffix")
POINTWISE_INSTRUCTIONS = _expect_str(_CONFIG, "pointwise_instructions")
POINTWISE_FORMAT = _expect_mapping(_CONFIG, "pointwise_format")
PAIRWISE_FORMAT = _expect_mapping(_CONFIG, "pairwise_format")


def _to_number(value: Any) -> Optional[float]:
    """Numeric value of ints, floats and numeric strings; None for anything else or non-finite."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return None


def extract_first_json(text: str) -> Dict[str, Any]:
    """Parse the judge output, falling back to the slice between the first '{' and the last '}'."""
    candidates = [text]
    start, end = text.find("{"), text.rfind("}")
    if start >= 0 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return cast(Dict[str, Any], data)
    raise JudgeParsingError("Failed to parse model response as JSON.", raw_response=text)


@dataclass(frozen=True)
class Criterion:
    """One rubric line with its weight and integer scale."""

    id: str
    description: str
    weight: float = 1.0
    scale_min: float = 0
    scale_max: float = 5

    @classmethod
    def from_value(cls, value: Any) -> "Criterion":
        if isinstance(value, Criterion):
            return value
        if not isinstance(value, Mapping):
            raise ValidationError("Criterion must be an object", field="criteria", value=value)
        data = cast(Mapping[str, Any], value)
        criterion_id, description = data.get("id"), data.get("description")
        if not isinstance(criterion_id, str) or not isinstance(description, str):
            raise ValidationError("Criterion needs string 'id' and 'description'", field="criteria", value=value)

        weight = _to_number(data.get("weight", 1))
        if weight is None or not 0 <= weight <= 1:
            raise ValidationError("Criterion weight must be between 0 and 1", field="weight", value=data.get("weight"))

        scale = data.get("scale") or {}
        if not isinstance(scale, Mapping):
            raise ValidationError("Criterion scale must be an object", field="scale", value=scale)
        scale_map = cast(Mapping[str, Any], scale)
        scale_min = _to_number(scale_map.get("min", 0))
        scale_max = _to_number(scale_map.get("max", 5))
        if scale_min is None or scale_max is None:
            raise ValidationError("Criterion scale bounds must be numbers", field="scale", value=scale)
        return cls(criterion_id, description, weight, scale_min, scale_max)


def normalize_weights(criteria: List[Criterion]) -> List[Criterion]:
    """Rescale weights so that they sum to 1."""
    total = sum(c.weight for c in criteria) or 1
    return [replace(c, weight=c.weight / total) for c in criteria]


def render_criteria(criteria: List[Criterion]) -> str:
    return "\n".join(
        f'{index}. id="{c.id}" (weight={c.weight:g}, scale={c.scale_min:g}..{c.scale_max:g}) - {c.description}'
        for index, c in enumerate(criteria, start=1)
    )


def compute_overall_score(per_criterion: List[Any], criteria: List[Criterion]) -> int:
    """Weighted 0..100 score from per-criterion scores, each clamped to its scale.

    Entries for unknown criteria contribute nothing; non-numeric scores are skipped.
    """
    by_id = {c.id: c for c in criteria}
    total = 0.0
    for entry in per_criterion:
        if not isinstance(entry, Mapping):
            continue
        item = cast(Mapping[str, Any], entry)
        criterion = by_id.get(str(item.get("id")))
        low = criterion.scale_min if criterion else 0
        high = criterion.scale_max if criterion else 5
        weight = criterion.weight if criterion else 0

        score = _to_number(item.get("score"))
        if score is None:
            continue
        clamped = max(low, min(high, score))
        normalized = 0 if high == low else (clamped - low) / (high - low) * 100
        total += normalized * weight
    return math.floor(total + 0.5)


@dataclass(frozen=True)
class JudgeOptions:
    """Validated options of the llm-judge scorer."""

    criteria: List[Criterion]
    model: str = DEFAULT_JUDGE_MODEL
    mode: str = POINTWISE
    meta: Optional[Dict[str, Any]] = None
    temperature: float = 0.0
    prompt_prefix: str = ""
    prompt_suffix: str = ""
    response_b: Optional[PromptResponse] = None
    provider: Optional[IProvider] = None
    openrouter_api_key: Optional[str] = field(default=None, repr=False)

    @classmethod
    def parse(cls, options: Optional[Mapping[str, Any]]) -> "JudgeOptions":
        data = snake_case_keys(options or {})

        raw_criteria = data.get("criteria")
        if not isinstance(raw_criteria, list) or not raw_criteria:
            raise ValidationError("At least one criterion is required", field="criteria", value=raw_criteria)
        criteria = [Criterion.from_value(item) for item in cast(List[Any], raw_criteria)]

        mode = data.get("mode") or POINTWISE
        if mode not in (POINTWISE, PAIRWISE):
            raise ValidationError(f"Unknown judge mode '{mode}'", field="mode", value=mode)

        temperature = _to_number(data.get("temperature", 0.0))
        if temperature is None or not 0 <= temperature <= 2:
            raise ValidationError("Temperature must be between 0 and 2", field="temperature", value=temperature)

        meta = data.get("meta")
        if meta is not None and not isinstance(meta, dict):
            raise ValidationError("Judge meta must be an object", field="meta", value=meta)

        provider = data.get("provider")
        if provider is not None and not callable(getattr(provider, "forward", None)):
            raise ValidationError("Judge provider must implement forward()", field="provider", value=provider)
        api_key = data.get("openrouter_api_key")
        if provider is None and not api_key:
            raise ConfigurationError("No provider or openRouterApiKey provided for the llm-judge scorer")

        return cls(
            criteria=criteria,
            model=str(data.get("model") or DEFAULT_JUDGE_MODEL),
            mode=mode,
            meta=dict(cast(Dict[str, Any], meta)) if meta else None,
            temperature=temperature,
            prompt_prefix=str(data.get("prompt_prefix") or ""),
            prompt_suffix=str(data.get("prompt_suffix") or ""),
            response_b=_coerce_response(data.get("response_b")),
            provider=cast(Optional[IProvider], provider),
            openrouter_api_key=api_key,
        )


def _coerce_response(value: Any) -> Optional[PromptResponse]:
    if value is None or isinstance(value, PromptResponse):
        return value
    if isinstance(value, Mapping):
        return PromptResponse.from_dict(cast(Mapping[str, Any], value))
    raise ValidationError("response_b must be a Response", field="response_b", value=value)


class LLMJudgeScorer(AbstractScorer):
    """Asks a judge model to grade Responses against a weighted rubric."""

    identifier = "llm-judge"
    requires_options = True

    def __init__(self) -> None:
        self._providers: Dict[str, OpenRouterProvider] = {}
        self._lock = threading.RLock()

    def can_score(self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None) -> bool:
        if not response.data:
            return False
        data = snake_case_keys(options or {})
        if data.get("mode") == PAIRWISE:
            response_b = data.get("response_b")
            if isinstance(response_b, PromptResponse):
                return bool(response_b.data)
            if isinstance(response_b, Mapping):
                return bool(cast(Mapping[str, Any], response_b).get("data"))
            return False
        return True

    def score_one(
        self, response: PromptResponse, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[PromptScore]:
        if not self.can_score(response, options):
            return None

        parsed = JudgeOptions.parse(options)
        provider = parsed.provider or self._provider_for(cast(str, parsed.openrouter_api_key))
        parsed = replace(parsed, meta=self._meta_for(response, parsed.meta))

        if parsed.mode == PAIRWISE:
            return self._score_pairwise(response, parsed, provider)
        return self._score_pointwise(response, parsed, provider)

    def close(self) -> None:
        with self._lock:
            for provider in self._providers.values():
                provider.close()
            self._providers.clear()

    def _provider_for(self, api_key: str) -> OpenRouterProvider:
        with self._lock:
            provider = self._providers.get(api_key)
            if provider is None:
                provider = OpenRouterProvider(api_key=api_key)
                self._providers[api_key] = provider
            return provider

    @staticmethod
    def _meta_for(response: PromptResponse, meta: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        prompt = response.prompt
        merged: Dict[str, Any] = dict(meta or {})
        if prompt.answer:
            merged["expected/correct answer"] = prompt.answer
        if prompt.answer_key:
            merged["letter for the correct answer"] = prompt.answer_key
        if prompt.options:
            merged["available options"] = dict(prompt.options)
        return merged or None

    @staticmethod
    def _context_block(title: str, meta: Optional[Dict[str, Any]]) -> str:
        if not meta:
            return ""
        return f"\n{title}:\n{json.dumps(meta, indent=2, ensure_ascii=False)}"

    @staticmethod
    def _forward(provider: IProvider, messages: ChatMessages, options: JudgeOptions) -> ForwardResponse:
        result = provider.forward(messages, model=options.model, temperature=options.temperature)
        LOGGER.debug("Judge response: %s", result.data)
        return result

    def _scorer_ai(self, provider: IProvider, options: JudgeOptions, result: ForwardResponse) -> ScorerAI:
        model_info = provider.parse_model_info(options.model)
        return ScorerAI(
            provider=provider.identifier,
            model_id=options.model,
            model_host=(model_info.host if model_info else None) or "auto",
            model_name=model_info.name if model_info else "unknown",
            model_owner=model_info.owner if model_info else "unknown",
            input_tokens_used=result.input_tokens_used,
            output_tokens_used=result.output_tokens_used,
            input_cost=result.input_cost,
            output_cost=result.output_cost,
        )

    def _score_pointwise(self, response: PromptResponse, options: JudgeOptions, provider: IProvider) -> PromptScore:
        criteria = normalize_weights(options.criteria)
        user = "".join(
            [
                f"TASK:\n{response.prompt.full_prompt.data or ''}",
                self._context_block(
                    "ADDITIONAL CONTEXT (may include references, constraints, expected behavior)", options.meta
                ),
                f"\nRUBRIC:\n{render_criteria(criteria)}",
                f"\nCANDIDATE ANSWER:\n{response.data}",
                "\nRESPONSE FORMAT (strict JSON):",
                json.dumps(POINTWISE_FORMAT, indent=2, ensure_ascii=False),
            ]
        )
        messages: ChatMessages = [
            {"role": "system", "content": JUDGE_SYSTEM},
            {
                "role": "user",
                "content": f"{options.prompt_prefix}{user}\n\n{POINTWISE_INSTRUCTIONS}{options.prompt_suffix}",
            },
        ]

        result = self._forward(provider, messages, options)
        raw = result.data
        verdict = extract_first_json(raw)
        per_criterion = verdict.get("perCriterion")
        if not isinstance(per_criterion, list):
            raise JudgeParsingError("Model did not return perCriterion array.", raw_response=raw)
        per_criterion_list = cast(List[Any], per_criterion)

        stated = _to_number(verdict.get("overall"))
        overall = stated if stated is not None and stated > 0 else compute_overall_score(per_criterion_list, criteria)
        score = min(1.0, max(0.0, overall / 100))

        notes = verdict.get("notes")
        if isinstance(notes, list):
            explanation = "\n".join(str(note) for note in cast(List[Any], notes))
        else:
            explanation = str(notes) if notes else ""
        for entry in per_criterion_list:
            item = cast(Mapping[str, Any], entry) if isinstance(entry, Mapping) else {}
            explanation += (
                f"\nCriteria: {item.get('id')} - Score: {item.get('score')}"
                f" - Justification: {item.get('justification')}\n"
            )

        return PromptScore.from_response(
            response,
            score=score,
            score_did=self.new_score_did(),
            method=ScoringMethod.AI,
            explanation=explanation or None,
            scorer_ai=self._scorer_ai(provider, options, result),
            score_metadata={
                "scorerIdentifier": self.identifier,
                "mode": POINTWISE,
                "overall": overall,
                "perCriterion": per_criterion_list,
                "verdict": verdict.get("verdict"),
            },
        )

    def _score_pairwise(
        self, response: PromptResponse, options: JudgeOptions, provider: IProvider
    ) -> Optional[PromptScore]:
        response_b = options.response_b
        if response_b is None or not response_b.data:
            return None

        criteria = normalize_weights(options.criteria)
        user = "".join(
            [
                f"TASK:\n{response.prompt.full_prompt.data or ''}",
                self._context_block("ADDITIONAL CONTEXT", options.meta),
                f"\nRUBRIC:\n{render_criteria(criteria)}",
                f"\nCANDIDATE A:\n{response.data}",
                f"\nCANDIDATE B:\n{response_b.data}",
                "\nRESPONSE FORMAT (strict JSON):",
                json.dumps(PAIRWISE_FORMAT, indent=2, ensure_ascii=False),
            ]
        )
        messages: ChatMessages = [
            {"role": "system", "content": PAIRWISE_SYSTEM},
            {"role": "user", "content": f"{options.prompt_prefix}{user}{options.prompt_suffix}"},
        ]

        result = self._forward(provider, messages, options)
        raw = result.data
        verdict = extract_first_json(raw)
        winner = verdict.get("winner")
        if winner not in WINNER_SCORES:
            raise JudgeParsingError("Model returned invalid pairwise result.", raw_response=raw)

        confidence = _to_number(verdict.get("confidence")) or 3
        confidence = max(1, min(5, confidence))

        per_criterion = verdict.get("perCriterion")
        per_criterion_list = cast(List[Any], per_criterion) if isinstance(per_criterion, list) else []
        rationale = verdict.get("rationale")
        explanation = str(rationale) if rationale else ""
        for entry in per_criterion_list:
            item = cast(Mapping[str, Any], entry) if isinstance(entry, Mapping) else {}
            explanation += (
                f"\nCriteria: {item.get('id')} - Better: {item.get('better')}"
                f" - Justification: {item.get('justification')}\n"
            )

        return PromptScore.from_response(
            response,
            score=WINNER_SCORES[winner],
            score_did=self.new_score_did(),
            method=ScoringMethod.AI,
            explanation=explanation or None,
            scorer_ai=self._scorer_ai(provider, options, result),
            score_metadata={
                "scorerIdentifier": self.identifier,
                "mode": PAIRWISE,
                "winner": winner,
                "confidence": confidence,
                "rationale": rationale,
                "perCriterion": per_criterion_list,
                "responseB": response_b.data,
            },
        )


__all__ = [
    "DEFAULT_JUDGE_MODEL",
    "Criterion",
    "JudgeOptions",
    "LLMJudgeScorer",
    "compute_overall_score",
    "extract_first_json",
    "normalize_weights",
    "render_criteria",
]
