from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

from peerbench.domain import ModelInfo, PromptResponse, PromptType, Task
from peerbench.exceptions import ScorerNotEligibleError, ScorerNotFoundError, ValidationError
from peerbench.infrastructure.file_hasher import read_sidecar, verify_file
from peerbench.infrastructure.json_array_stream import JsonArrayStream
from peerbench.pipeline import (
    BatchResult,
    ItemResult,
    date_string,
    normalize_path,
    process_responses,
    process_task,
    read_response_file,
    response_file_name,
    run_prompts,
    score_file_name,
    score_files,
)
from peerbench.prompts import MULTIPLE_CHOICE_SYSTEM_PROMPT, build_prompt
from peerbench.scoring import ExactMatchScorer, MultipleChoiceScorer

TaskFactory = Callable[..., Task]

ANSWERS = {"France": "The answer is B", "Italy": "The answer is A", "Spain": "The answer is C"}


def _always_right(prompt: Any) -> str:
    return next(answer for country, answer in ANSWERS.items() if country in prompt)


def _model(name: str) -> ModelInfo:
    return ModelInfo(id=f"acme/{name}", name=name, owner="acme", provider="dummy", host="auto")


def _read(path: Path) -> List[Dict[str, Any]]:
    return json.loads(path.read_text(encoding="utf-8"))


def test_date_string_is_utc_with_one_based_month() -> None:
    moment = datetime(2024, 1, 5, 7, 8, 9, tzinfo=timezone.utc)
    assert date_string(moment) == "2024-1-5-7-8-9"


def test_file_names() -> None:
    model = ModelInfo(id="meta/llama", name="llama-3", owner="meta", provider="openrouter.ai")
    name = response_file_name("task.json", "openrouter.ai", model, ["nightly", "v2"], timestamp="2024-1-5-7-8-9")
    assert name == "task.json.openrouter.ai.meta.llama-3.2024-1-5-7-8-9.responses.nightly-v2.json"
    assert score_file_name(name, "multiple-choice", timestamp="2024-1-5-7-8-10") == (
        name + ".multiple-choice.2024-1-5-7-8-10.scores.json"
    )
    assert normalize_path("a/b\0c//d") == "abcd"


def test_batch_result_completeness() -> None:
    batch: BatchResult[int] = BatchResult()
    assert batch.completeness == 1.0
    batch.add(ItemResult.success("a", 1))
    batch.add(ItemResult.failure("b", RuntimeError("boom")))
    assert (batch.total, batch.ok_count, batch.error_count) == (2, 1, 1)
    assert batch.completeness == 0.5
    assert batch.values == [1]
    assert [result.item for result in batch.errors] == ["b"]


def test_process_task_writes_ordered_responses_and_sidecar(
    tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type
) -> None:
    provider = dummy_provider_cls(answer=_always_right)
    result = process_task(make_task(), provider, _model("model-a"), tmp_path, "run-1", tags=["t1"])

    records = _read(result.path)
    assert [record["prompt"]["did"] for record in records] == ["p-1", "p-2", "p-3"]
    assert all(record["runId"] == "run-1" for record in records)
    assert records[0]["data"] == "The answer is B"
    assert records[0]["taskId"] == "did:task:capitals"
    assert records[0]["sourceTaskFile"] == {"cid": "bafk-task", "sha256": "task-sha", "fileName": "capitals.json"}
    assert records[0]["inputTokensUsed"] == 12
    assert result.path.name.startswith("capitals.json.dummy.acme.model-a.")
    assert result.path.name.endswith(".responses.t1.json")

    assert provider.calls[0]["system"] == MULTIPLE_CHOICE_SYSTEM_PROMPT
    assert provider.calls[0]["model"] == "acme/model-a"
    assert verify_file(result.path)
    assert read_sidecar(result.path)["cid"] == result.file_hash.cid


def test_process_task_honours_system_override_and_max(
    tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type
) -> None:
    provider = dummy_provider_cls()
    result = process_task(
        make_task(), provider, _model("model-a"), tmp_path, "run-1", system_prompt="Custom", max_prompts=2
    )

    assert result.responses.total == 2
    assert [call["system"] for call in provider.calls] == ["Custom", "Custom"]


def test_failing_prompt_is_recorded_and_skipped(
    tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type
) -> None:
    provider = dummy_provider_cls(fail_for=["Italy"])
    result = process_task(make_task(), provider, _model("model-a"), tmp_path, "run-1", is_dev=False)

    assert [record["prompt"]["did"] for record in _read(result.path)] == ["p-1", "p-3"]
    assert result.responses.ok_count == 2
    assert [failure.item for failure in result.responses.errors] == ["p-2"]


def test_aborted_run_still_closes_the_file(tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type) -> None:
    abort = threading.Event()
    abort.set()

    class AbortAwareProvider(dummy_provider_cls):  # type: ignore[misc, valid-type]
        def forward(self, input: Any, **kwargs: Any) -> Any:
            if kwargs.get("abort_event") is not None and kwargs["abort_event"].is_set():
                raise RuntimeError("aborted")
            return super().forward(input, **kwargs)

    result = process_task(
        make_task(), AbortAwareProvider(), _model("model-a"), tmp_path, "run-1", abort_event=abort
    )
    assert _read(result.path) == []
    assert result.responses.completeness == 0.0


def test_run_prompts_fans_out_over_models(tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type) -> None:
    right = dummy_provider_cls(answer=_always_right)
    wrong = dummy_provider_cls(answer="The answer is D")
    batch = run_prompts(
        [make_task()],
        [(right, _model("model-a")), (wrong, _model("model-b"))],
        tmp_path,
        run_id="shared-run",
    )

    assert batch.total == 2 and batch.ok_count == 2
    paths = [result.path for result in batch.values]
    assert [path.name.split(".")[4] for path in paths] == ["model-a", "model-b"]
    for path in paths:
        records = _read(path)
        assert len(records) == 3
        assert {record["runId"] for record in records} == {"shared-run"}
        assert Path(str(path) + ".cid").is_file()


def test_run_prompts_reports_failed_unit(tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type) -> None:
    output_file = tmp_path / "blocked"
    output_file.write_text("not a directory", encoding="utf-8")

    batch = run_prompts([make_task()], [(dummy_provider_cls(), _model("model-a"))], output_file, is_dev=False)

    assert batch.total == 1
    assert batch.error_count == 1


def test_units_with_clashing_names_get_their_own_files(
    tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type
) -> None:
    provider = dummy_provider_cls(answer=_always_right)
    batch = run_prompts(
        [make_task(), make_task()],
        [(provider, _model("model-a")), (provider, _model("model-a"))],
        tmp_path,
    )

    assert batch.ok_count == 4
    paths = [result.path for result in batch.values]
    assert len(set(paths)) == 4
    assert len(list(tmp_path.glob("capitals.json.dummy.acme.model-a.*.json"))) == 4
    for path in paths:
        assert len(_read(path)) == 3
        assert verify_file(path)


def test_score_files_with_the_same_base_name(tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type) -> None:
    first = process_task(make_task(), dummy_provider_cls(), _model("model-a"), tmp_path / "a", "run-1").path
    second = tmp_path / "b" / first.name
    second.parent.mkdir()
    second.write_text(first.read_text(encoding="utf-8"), encoding="utf-8")

    scored = score_files([first, second], tmp_path / "scores")

    assert scored.ok_count == 2
    score_paths = {result.path for result in scored.values}
    assert len(score_paths) == 2
    for path in score_paths:
        assert len(_read(path)) == 3


def test_negative_max_prompts_is_rejected(tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type) -> None:
    provider = dummy_provider_cls()
    with pytest.raises(ValidationError):
        process_task(make_task(), provider, _model("model-a"), tmp_path, "run-1", max_prompts=-1)
    assert provider.calls == []
    assert list(tmp_path.iterdir()) == []


def test_score_files_auto_selects_multiple_choice(
    tmp_path: Path, make_task: TaskFactory, dummy_provider_cls: type
) -> None:
    responses_dir = tmp_path / "responses"
    batch = run_prompts(
        [make_task()],
        [
            (dummy_provider_cls(answer=_always_right), _model("model-a")),
            (dummy_provider_cls(answer="The answer is D"), _model("model-b")),
        ],
        responses_dir,
    )
    response_paths = [result.path for result in batch.values]

    scored = score_files(response_paths, tmp_path / "scores", tags=["nightly"])

    assert scored.ok_count == 2
    right, wrong = scored.values
    assert right.scorer == "multiple-choice"
    assert right.path.name.endswith(".scores.nightly.json")
    right_records = _read(right.path)
    assert [record["score"]["score"] for record in right_records] == [1.0, 1.0, 1.0]
    assert [record["score"]["scoreMetadata"]["extractedAnswer"] for record in right_records] == ["B", "A", "C"]
    assert right_records[0]["data"] == "The answer is B"
    assert [record["score"]["score"] for record in _read(wrong.path)] == [0.0, 0.0, 0.0]
    assert verify_file(wrong.path)


def test_score_files_reports_unscorable_file(tmp_path: Path, make_response: Callable[..., PromptResponse]) -> None:
    prompt = build_prompt("Write a poem", prompt_type=PromptType.OPEN_ENDED)
    path = tmp_path / "poems.json"
    path.write_text(json.dumps([make_response("Roses are red", prompt=prompt).to_dict()]), encoding="utf-8")

    scored = score_files([path], tmp_path / "scores", is_dev=False)

    assert scored.error_count == 1
    assert isinstance(scored.errors[0].error, ScorerNotFoundError)


def test_explicit_scorer_must_be_eligible(tmp_path: Path, make_response: Callable[..., PromptResponse]) -> None:
    prompt = build_prompt("What is 6 x 7?", prompt_type=PromptType.OPEN_ENDED, answer="42")
    path = tmp_path / "math.json"
    path.write_text(json.dumps([make_response("42", prompt=prompt).to_dict()]), encoding="utf-8")

    scored = score_files([path], tmp_path / "scores", scorer=MultipleChoiceScorer(), is_dev=False)
    assert isinstance(scored.errors[0].error, ScorerNotEligibleError)

    scored = score_files([path], tmp_path / "scores", scorer=ExactMatchScorer())
    assert scored.ok_count == 1


def test_process_responses_records_ineligible_items(
    tmp_path: Path, make_response: Callable[..., PromptResponse]
) -> None:
    responses = [make_response("The answer is B", did="r-1"), make_response("", did="r-2")]
    with JsonArrayStream(tmp_path / "scores.json") as stream:
        batch = process_responses(responses, MultipleChoiceScorer(), stream, is_dev=False)

    assert batch.ok_count == 1
    assert isinstance(batch.errors[0].error, ScorerNotEligibleError)
    assert len(_read(tmp_path / "scores.json")) == 1


@pytest.mark.parametrize("content", ["[]", '{"a": 1}', "not json"])
def test_read_response_file_rejects_bad_files(tmp_path: Path, content: str) -> None:
    path = tmp_path / "bad.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValidationError):
        read_response_file(path)
