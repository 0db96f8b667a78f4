"""Domain models for peerbench.

Records are immutable and mirror the JSON files exchanged between the pipeline stages.
``to_dict``/``from_dict`` translate between the snake_case attributes and the camelCase
keys used on disk.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, cast

from ..exceptions import ValidationError


class PromptType:
    """Known Prompt types."""

    MULTIPLE_CHOICE = "multiple-choice"
    OPEN_ENDED = "open-ended"
    OPEN_ENDED_WITH_DOCS = "open-ended-with-docs"
    ORDER_SENTENCES = "order-sentences"
    TEXT_REPLACEMENT = "text-replacement"
    TYPO = "typo"

    ALL = (
        MULTIPLE_CHOICE,
        OPEN_ENDED,
        OPEN_ENDED_WITH_DOCS,
        ORDER_SENTENCES,
        TEXT_REPLACEMENT,
        TYPO,
    )


class ScoringMethod:
    """How a Score was produced."""

    HUMAN = "human"
    AI = "ai"
    ALGO = "algo"

    ALL = (HUMAN, AI, ALGO)


def _require(data: Mapping[str, Any], key: str, kind: type, owner: str) -> Any:
    value = data.get(key)
    if not isinstance(value, kind):
        raise ValidationError(f"{owner}.{key} is missing or has an invalid type", field=key, value=value)
    return value


def _optional(data: Mapping[str, Any], key: str, kind: type, owner: str) -> Any:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, kind) or isinstance(value, bool) and kind is not bool:
        raise ValidationError(f"{owner}.{key} has an invalid type", field=key, value=value)
    return value


def _number(data: Mapping[str, Any], key: str, owner: str, required: bool = True) -> Optional[float]:
    value = data.get(key)
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{owner}.{key} must be a number", field=key, value=value)
    return value


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class ContentRef:
    """A piece of text together with its content identifiers."""

    data: Optional[str]
    cid: str
    sha256: str

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({"data": self.data, "cid": self.cid, "sha256": self.sha256})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], owner: str = "content") -> "ContentRef":
        if not isinstance(data, Mapping):
            raise ValidationError(f"{owner} must be an object", field=owner, value=data)
        return cls(
            data=_optional(data, "data", str, owner),
            cid=_require(data, "cid", str, owner),
            sha256=_require(data, "sha256", str, owner),
        )


@dataclass(frozen=True)
class Prompt:
    """Domain model for a single question sent to the models."""

    did: str
    type: str
    question: ContentRef
    full_prompt: ContentRef
    options: Dict[str, str] = field(default_factory=lambda: {})
    answer: Optional[str] = None
    answer_key: Optional[str] = None
    scorers: List[str] = field(default_factory=lambda: [])
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_multiple_choice(self) -> bool:
        return self.type == PromptType.MULTIPLE_CHOICE

    def validate(self) -> "Prompt":
        """Check the type specific invariants and return self."""
        if self.type not in PromptType.ALL:
            raise ValidationError(f"Unknown prompt type '{self.type}'", field="type", value=self.type)
        if self.is_multiple_choice:
            if not self.options:
                raise ValidationError("No options provided for multiple choice question", field="options")
            if any(not value.strip() for value in self.options.values()):
                raise ValidationError("Multiple choice options cannot be empty", field="options")
            if not self.answer_key:
                raise ValidationError("Correct answer key cannot be empty", field="answerKey")
            if not self.answer:
                raise ValidationError("Correct answer value cannot be empty", field="answer")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "did": self.did,
                "type": self.type,
                "question": self.question.to_dict(),
                "fullPrompt": self.full_prompt.to_dict(),
                "options": dict(self.options) if self.options else None,
                "answer": self.answer,
                "answerKey": self.answer_key,
                "scorers": list(self.scorers) if self.scorers else None,
                "metadata": self.metadata,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], validate: bool = True) -> "Prompt":
        if not isinstance(data, Mapping):
            raise ValidationError("Prompt must be an object", field="prompt", value=data)
        options_raw = _optional(data, "options", dict, "prompt") or {}
        options: Dict[str, str] = {}
        for key, value in cast(Dict[Any, Any], options_raw).items():
            if not isinstance(value, str):
                raise ValidationError("Prompt options must map letters to text", field="options", value=value)
            options[str(key)] = value
        scorers_raw = _optional(data, "scorers", list, "prompt") or []
        prompt = cls(
            did=_require(data, "did", str, "prompt"),
            type=_require(data, "type", str, "prompt"),
            question=ContentRef.from_dict(data.get("question", {}), "prompt.question"),
            full_prompt=ContentRef.from_dict(data.get("fullPrompt", {}), "prompt.fullPrompt"),
            options=options,
            answer=_optional(data, "answer", str, "prompt"),
            answer_key=_optional(data, "answerKey", str, "prompt"),
            scorers=[str(item) for item in cast(List[Any], scorers_raw)],
            metadata=_optional(data, "metadata", dict, "prompt"),
        )
        return prompt.validate() if validate else prompt


@dataclass(frozen=True)
class Task:
    """Immutable bundle of Prompts read from a Task file."""

    did: str
    cid: str
    sha256: str
    file_name: str
    prompts: List[Prompt]
    path: Optional[str] = None

    def source_ref(self) -> Dict[str, str]:
        return {"cid": self.cid, "sha256": self.sha256, "fileName": self.file_name}


@dataclass(frozen=True)
class ModelInfo:
    """Normalized description of a model served by a Provider."""

    id: str
    name: str
    owner: str
    provider: str
    host: Optional[str] = None
    tier: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ForwardResponse:
    """Result of a single Provider call. Timestamps are epoch milliseconds."""

    data: str
    started_at: int
    completed_at: int
    input_tokens_used: Optional[int] = None
    output_tokens_used: Optional[int] = None
    input_cost: Optional[str] = None
    output_cost: Optional[str] = None


_RESPONSE_OPTIONAL_FIELDS = {
    "task_id": ("taskId", str),
    "input_tokens_used": ("inputTokensUsed", int),
    "output_tokens_used": ("outputTokensUsed", int),
    "input_cost": ("inputCost", str),
    "output_cost": ("outputCost", str),
    "source_task_file": ("sourceTaskFile", dict),
    "metadata": ("metadata", dict),
}


@dataclass(frozen=True)
class PromptResponse:
    """Recorded output of forwarding one Prompt to one Provider/Model."""

    did: str
    prompt: Prompt
    provider: str
    model_id: str
    model_name: str
    model_owner: str
    model_host: str
    run_id: str
    data: str
    cid: str
    sha256: str
    started_at: int
    finished_at: int
    task_id: Optional[str] = None
    source_task_file: Optional[Dict[str, str]] = None
    input_tokens_used: Optional[int] = None
    output_tokens_used: Optional[int] = None
    input_cost: Optional[str] = None
    output_cost: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def latency_ms(self) -> int:
        return self.finished_at - self.started_at

    def _base_dict(self) -> Dict[str, Any]:
        return {
            "did": self.did,
            "prompt": self.prompt.to_dict(),
            "provider": self.provider,
            "modelId": self.model_id,
            "modelName": self.model_name,
            "modelOwner": self.model_owner,
            "modelHost": self.model_host,
            "runId": self.run_id,
            "data": self.data,
            "cid": self.cid,
            "sha256": self.sha256,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "taskId": self.task_id,
            "sourceTaskFile": self.source_task_file,
            "inputTokensUsed": self.input_tokens_used,
            "outputTokensUsed": self.output_tokens_used,
            "inputCost": self.input_cost,
            "outputCost": self.output_cost,
            "metadata": self.metadata,
        }

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(self._base_dict())

    @staticmethod
    def _base_kwargs(data: Mapping[str, Any], owner: str, validate_prompt: bool) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "did": _require(data, "did", str, owner),
            "prompt": Prompt.from_dict(data.get("prompt", {}), validate=validate_prompt),
            "provider": _require(data, "provider", str, owner),
            "model_id": _require(data, "modelId", str, owner),
            "model_name": _require(data, "modelName", str, owner),
            "model_owner": _require(data, "modelOwner", str, owner),
            "model_host": _require(data, "modelHost", str, owner),
            "run_id": _require(data, "runId", str, owner),
            "data": _require(data, "data", str, owner),
            "cid": _require(data, "cid", str, owner),
            "sha256": _require(data, "sha256", str, owner),
            "started_at": int(cast(float, _number(data, "startedAt", owner))),
            "finished_at": int(cast(float, _number(data, "finishedAt", owner))),
        }
        for attr, (key, kind) in _RESPONSE_OPTIONAL_FIELDS.items():
            kwargs[attr] = _optional(data, key, kind, owner)
        return kwargs

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PromptResponse":
        if not isinstance(data, Mapping):
            raise ValidationError("Response must be an object", field="response", value=data)
        return cls(**cls._base_kwargs(data, "response", validate_prompt=True))


@dataclass(frozen=True)
class ScorerAI:
    """Accounting information about the judge model that produced an AI score."""

    provider: str
    model_id: str
    model_name: str
    model_owner: str
    model_host: str
    input_tokens_used: Optional[int] = None
    output_tokens_used: Optional[int] = None
    input_cost: Optional[str] = None
    output_cost: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "provider": self.provider,
                "modelId": self.model_id,
                "modelName": self.model_name,
                "modelOwner": self.model_owner,
                "modelHost": self.model_host,
                "inputTokensUsed": self.input_tokens_used,
                "outputTokensUsed": self.output_tokens_used,
                "inputCost": self.input_cost,
                "outputCost": self.output_cost,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScorerAI":
        return cls(
            provider=_require(data, "provider", str, "scorerAI"),
            model_id=_require(data, "modelId", str, "scorerAI"),
            model_name=_require(data, "modelName", str, "scorerAI"),
            model_owner=_require(data, "modelOwner", str, "scorerAI"),
            model_host=_require(data, "modelHost", str, "scorerAI"),
            input_tokens_used=_optional(data, "inputTokensUsed", int, "scorerAI"),
            output_tokens_used=_optional(data, "outputTokensUsed", int, "scorerAI"),
            input_cost=_optional(data, "inputCost", str, "scorerAI"),
            output_cost=_optional(data, "outputCost", str, "scorerAI"),
        )


@dataclass(frozen=True, kw_only=True)
class PromptScore(PromptResponse):
    """Graded outcome of one Response under one Scorer."""

    score: float
    score_did: str
    method: str
    explanation: Optional[str] = None
    score_metadata: Optional[Dict[str, Any]] = None
    scorer_ai: Optional[ScorerAI] = None

    def __post_init__(self) -> None:
        if not 0 <= self.score <= 1:
            raise ValidationError("Score must be between 0 and 1", field="score", value=self.score)
        if self.method not in ScoringMethod.ALL:
            raise ValidationError(f"Unknown scoring method '{self.method}'", field="method", value=self.method)

    @classmethod
    def from_response(
        cls,
        response: PromptResponse,
        *,
        score: float,
        score_did: str,
        method: str,
        explanation: Optional[str] = None,
        score_metadata: Optional[Dict[str, Any]] = None,
        scorer_ai: Optional[ScorerAI] = None,
    ) -> "PromptScore":
        """Build a Score that carries over every identity field of the Response."""
        base = {name: getattr(response, name) for name in PromptResponse.__dataclass_fields__}
        return cls(
            **base,
            score=score,
            score_did=score_did,
            method=method,
            explanation=explanation,
            score_metadata=score_metadata,
            scorer_ai=scorer_ai,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(
            {
                "score": self.score,
                "scoreDID": self.score_did,
                "method": self.method,
                "explanation": self.explanation,
                "scoreMetadata": self.score_metadata,
                "scorerAI": self.scorer_ai.to_dict() if self.scorer_ai else None,
            }
        )
        return _drop_none(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PromptScore":
        if not isinstance(data, Mapping):
            raise ValidationError("Score must be an object", field="score", value=data)
        kwargs = cls._base_kwargs(data, "score", validate_prompt=False)
        scorer_ai = data.get("scorerAI")
        return cls(
            **kwargs,
            score=float(cast(float, _number(data, "score", "score"))),
            score_did=_require(data, "scoreDID", str, "score"),
            method=_require(data, "method", str, "score"),
            explanation=_optional(data, "explanation", str, "score"),
            score_metadata=_optional(data, "scoreMetadata", dict, "score"),
            scorer_ai=ScorerAI.from_dict(scorer_ai) if isinstance(scorer_ai, Mapping) else None,
        )


__all__ = [
    "PromptType",
    "ScoringMethod",
    "ContentRef",
    "Prompt",
    "Task",
    "ModelInfo",
    "ForwardResponse",
    "PromptResponse",
    "ScorerAI",
    "PromptScore",
]
