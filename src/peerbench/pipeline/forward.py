"""Forward Task Prompts to Provider models and record the Responses."""

import concurrent.futures
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..domain import ModelInfo, Prompt, PromptResponse, Task
from ..exceptions import ValidationError
from ..infrastructure.content_address import calculate_cid, calculate_sha256
from ..infrastructure.file_hasher import FileHash, hash_file
from ..infrastructure.json_array_stream import JsonArrayStream
from ..logging_config import describe_error, get_logger
from ..prompts import resolve_system_prompt
from ..services import IProvider, ISigner
from .naming import response_file_name
from .results import BatchResult, ItemResult

LOGGER = logging.getLogger(__name__)

Target = Tuple[IProvider, ModelInfo]


@dataclass(frozen=True)
class TaskRunResult:
    """Output of one Task x Model unit."""

    task: Task
    provider: str
    model: ModelInfo
    path: Path
    file_hash: FileHash
    responses: BatchResult[PromptResponse]


def _forward_prompt(
    prompt: Prompt,
    task: Task,
    provider: IProvider,
    model_info: ModelInfo,
    run_id: str,
    system_prompt: Optional[str],
    abort_event: Optional[threading.Event],
) -> PromptResponse:
    if prompt.full_prompt.data is None:
        raise ValidationError(f"Prompt {prompt.did} has no full prompt text", field="fullPrompt")

    result = provider.forward(
        prompt.full_prompt.data,
        model=model_info.id,
        system=resolve_system_prompt(prompt.type, system_prompt),
        abort_event=abort_event,
    )
    return PromptResponse(
        did=str(uuid.uuid4()),
        prompt=prompt,
        provider=provider.identifier,
        model_id=model_info.id,
        model_name=model_info.name,
        model_owner=model_info.owner,
        model_host=model_info.host or "auto",
        run_id=run_id,
        data=result.data,
        cid=calculate_cid(result.data),
        sha256=calculate_sha256(result.data),
        started_at=result.started_at,
        finished_at=result.completed_at,
        task_id=task.did,
        source_task_file=task.source_ref(),
        input_tokens_used=result.input_tokens_used,
        output_tokens_used=result.output_tokens_used,
        input_cost=result.input_cost,
        output_cost=result.output_cost,
    )


def process_task(
    task: Task,
    provider: IProvider,
    model_info: ModelInfo,
    output_dir: Path,
    run_id: str,
    *,
    tags: Sequence[str] = (),
    system_prompt: Optional[str] = None,
    max_prompts: Optional[int] = None,
    signer: Optional[ISigner] = None,
    is_dev: bool = True,
    abort_event: Optional[threading.Event] = None,
) -> TaskRunResult:
    """Forward every Prompt of ``task`` to one model, in order, into one Response file.

    A failing Prompt is logged and recorded, then the loop moves on. The finished
    file is hashed and, when ``signer`` is given, its hash is signed.
    """
    context = f"Provider({provider.identifier}:{model_info.provider}/{model_info.name}, {task.file_name})"
    logger = get_logger(__name__, context)
    if max_prompts is not None and max_prompts < 0:
        raise ValidationError("max_prompts cannot be negative", field="max_prompts", value=max_prompts)
    prompts = task.prompts[:max_prompts] if max_prompts else task.prompts
    batch: BatchResult[PromptResponse] = BatchResult()

    name = response_file_name(task.file_name, provider.identifier, model_info, tags)
    with JsonArrayStream.create_unique(Path(output_dir), name) as stream:
        path = stream.path
        for prompt in prompts:
            try:
                logger.info("Sending prompt %s to %s", prompt.did, model_info.id)
                response = _forward_prompt(prompt, task, provider, model_info, run_id, system_prompt, abort_event)
                logger.debug("Prompt %s response: %s", prompt.did, response.data)
                stream.write(response)
                logger.info("Prompt %s response saved successfully", prompt.did)
                batch.add(ItemResult.success(prompt.did, response))
            except Exception as exc:
                logger.error("Error while sending prompt %s: %s", prompt.did, describe_error(exc, is_dev))
                batch.add(ItemResult.failure(prompt.did, exc))

    file_hash = hash_file(path, signer)
    logger.info("Done: %d/%d responses saved to %s", batch.ok_count, batch.total, path)
    return TaskRunResult(
        task=task,
        provider=provider.identifier,
        model=model_info,
        path=path,
        file_hash=file_hash,
        responses=batch,
    )


def run_prompts(
    tasks: Sequence[Task],
    targets: Sequence[Target],
    output_dir: Path,
    *,
    tags: Sequence[str] = (),
    system_prompt: Optional[str] = None,
    max_prompts: Optional[int] = None,
    signer: Optional[ISigner] = None,
    is_dev: bool = True,
    max_workers: Optional[int] = None,
    run_id: Optional[str] = None,
) -> BatchResult[TaskRunResult]:
    """Run one ``process_task`` unit per (Task, model) pair concurrently.

    Units share one run id. A unit that fails is logged and reported without
    affecting the others. Results are in (task, target) order.
    """
    run_id = run_id or str(uuid.uuid4())
    started = time.monotonic()
    total_prompts = sum(len(task.prompts) for task in tasks)
    LOGGER.info("Found %d Prompts from the given %d Task file(s)", total_prompts, len(tasks))
    LOGGER.info("Total %d Prompts will be sent to %d models", total_prompts * len(targets), len(targets))

    units: List[Tuple[str, Task, IProvider, ModelInfo]] = [
        (f"{task.file_name}:{provider.identifier}:{model.id}", task, provider, model)
        for task in tasks
        for provider, model in targets
    ]
    batch: BatchResult[TaskRunResult] = BatchResult()
    if not units:
        return batch

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers or len(units)) as pool:
        futures = [
            pool.submit(
                process_task,
                task,
                provider,
                model,
                output_dir,
                run_id,
                tags=tags,
                system_prompt=system_prompt,
                max_prompts=max_prompts,
                signer=signer,
                is_dev=is_dev,
            )
            for _, task, provider, model in units
        ]
        for (name, task, _, _), future in zip(units, futures):
            try:
                batch.add(ItemResult.success(name, future.result()))
            except Exception as exc:
                LOGGER.error("Error while processing task %s: %s", task.file_name, describe_error(exc, is_dev))
                batch.add(ItemResult.failure(name, exc))

    LOGGER.info("Completed in %.2fs", time.monotonic() - started)
    return batch


__all__ = ["Target", "TaskRunResult", "process_task", "run_prompts"]
