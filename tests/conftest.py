from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import pytest

from peerbench.domain import ForwardResponse, ModelInfo, Prompt, PromptResponse, Task
from peerbench.environment import load_environment
from peerbench.infrastructure.content_address import calculate_cid, calculate_sha256
from peerbench.logging_config import StructuredFormatter
from peerbench.prompts import build_prompt


class DummyProvider:
    """Provider double that answers from a script instead of the network."""

    def __init__(
        self,
        answer: Union[str, Callable[[Any], str]] = "The answer is B",
        identifier: str = "dummy",
        fail_for: Optional[List[str]] = None,
    ) -> None:
        self.identifier = identifier
        self._answer = answer
        self._fail_for = fail_for or []
        self.calls: List[Dict[str, Any]] = []
        self.closed = False
        self._clock = 1_700_000_000_000

    def forward(
        self,
        input: Any,
        *,
        model: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        abort_event: Optional[threading.Event] = None,
    ) -> ForwardResponse:
        self.calls.append({"input": input, "model": model, "system": system, "temperature": temperature})
        if isinstance(input, str) and any(marker in input for marker in self._fail_for):
            raise RuntimeError("scripted failure")
        text = self._answer(input) if callable(self._answer) else self._answer
        self._clock += 100
        return ForwardResponse(
            data=text,
            started_at=self._clock - 40,
            completed_at=self._clock,
            input_tokens_used=12,
            output_tokens_used=3,
        )

    def parse_model_info(self, model: Union[str, Mapping[str, Any]]) -> Optional[ModelInfo]:
        if not isinstance(model, str) or "/" not in model:
            return None
        owner, name = model.split("/", 1)
        return ModelInfo(id=model, name=name, owner=owner, provider=self.identifier, host="auto")

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Any:
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler.formatter, StructuredFormatter):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture(autouse=True)
def _clear_environment_cache() -> Any:
    load_environment.cache_clear()
    yield
    load_environment.cache_clear()


@pytest.fixture
def dummy_provider_cls() -> type:
    return DummyProvider


@pytest.fixture
def make_prompt() -> Callable[..., Prompt]:
    def factory(
        question: str = "What is the capital of France?",
        options: Optional[Dict[str, str]] = None,
        answer_key: Optional[str] = "B",
        **kwargs: Any,
    ) -> Prompt:
        if options is None:
            options = {"A": "Berlin", "B": "Paris", "C": "Rome", "D": "Madrid"}
        return build_prompt(question, options=options, answer_key=answer_key, **kwargs)

    return factory


@pytest.fixture
def make_response(make_prompt: Callable[..., Prompt]) -> Callable[..., PromptResponse]:
    def factory(data: str, prompt: Optional[Prompt] = None, **overrides: Any) -> PromptResponse:
        fields: Dict[str, Any] = {
            "did": "resp-1",
            "prompt": prompt or make_prompt(),
            "provider": "dummy",
            "model_id": "acme/model-a",
            "model_name": "model-a",
            "model_owner": "acme",
            "model_host": "auto",
            "run_id": "run-1",
            "data": data,
            "cid": calculate_cid(data),
            "sha256": calculate_sha256(data),
            "started_at": 1_000,
            "finished_at": 1_250,
        }
        fields.update(overrides)
        return PromptResponse(**fields)

    return factory


@pytest.fixture
def make_task(make_prompt: Callable[..., Prompt]) -> Callable[..., Task]:
    def factory(prompts: Optional[List[Prompt]] = None, file_name: str = "capitals.json") -> Task:
        if prompts is None:
            prompts = [
                make_prompt("What is the capital of France?", did="p-1"),
                make_prompt(
                    "What is the capital of Italy?",
                    options={"A": "Rome", "B": "Milan", "C": "Turin"},
                    answer_key="A",
                    did="p-2",
                ),
                make_prompt(
                    "What is the capital of Spain?",
                    options={"A": "Lisbon", "B": "Seville", "C": "Madrid"},
                    answer_key="C",
                    did="p-3",
                ),
            ]
        return Task(did="did:task:capitals", cid="bafk-task", sha256="task-sha", file_name=file_name, prompts=prompts)

    return factory
