"""Score Response files with a Scorer and record the Scores."""

import concurrent.futures
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, cast

from ..domain import PromptResponse, PromptScore
from ..exceptions import ScorerNotEligibleError, ScorerNotFoundError, ValidationError
from ..infrastructure.file_hasher import FileHash, hash_file
from ..infrastructure.json_array_stream import JsonArrayStream
from ..logging_config import describe_error
from ..scoring.registry import ScorerRegistry, create_scorer_registry
from ..services import IOutputStream, IScorer, ISigner
from .naming import score_file_name
from .results import BatchResult, ItemResult

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResponseFileData:
    """Responses read from one Response file."""

    path: Path
    responses: List[PromptResponse]

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class ScoreRunResult:
    """Output of scoring one Response file."""

    source: Path
    scorer: str
    path: Path
    file_hash: FileHash
    scores: BatchResult[PromptScore]


def read_response_file(path: Path) -> ResponseFileData:
    """Load a Response file; it must be a non-empty JSON array of Responses."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Response file {path} cannot be read: {exc}", field="path", value=str(path)) from exc

    if not isinstance(data, list) or not data:
        raise ValidationError(f"Response file {path} must be a non-empty JSON array", field="path", value=str(path))
    responses = [PromptResponse.from_dict(item) for item in cast(List[Any], data)]
    return ResponseFileData(path=path, responses=responses)


def score_record(response: PromptResponse, score: PromptScore) -> Dict[str, Any]:
    """A Score record is the Response with the Score added under ``score``."""
    record = response.to_dict()
    record["score"] = score.to_dict()
    return record


def process_responses(
    responses: Sequence[PromptResponse],
    scorer: IScorer,
    stream: IOutputStream,
    options: Optional[Mapping[str, Any]] = None,
    *,
    is_dev: bool = True,
) -> BatchResult[PromptScore]:
    """Score the Responses one after another and stream every Score.

    A Response that cannot be scored is logged and recorded, then the loop moves on.
    """
    batch: BatchResult[PromptScore] = BatchResult()
    for response in responses:
        prompt_did = response.prompt.did
        try:
            score = scorer.score_one(response, options)
            if score is None:
                raise ScorerNotEligibleError(f"Scorer {scorer.identifier} is not eligible to score this Response")
            LOGGER.info("Score for the Response of Prompt %s: %s", prompt_did, score.score)
            stream.write(score_record(response, score))
            batch.add(ItemResult.success(response.did, score))
        except Exception as exc:
            LOGGER.error("Error while scoring the Response of Prompt %s: %s", prompt_did, describe_error(exc, is_dev))
            batch.add(ItemResult.failure(response.did, exc))
    return batch


def resolve_scorer(
    file_data: ResponseFileData,
    scorer: Optional[IScorer],
    registry: ScorerRegistry,
    options: Optional[Mapping[str, Any]] = None,
) -> IScorer:
    """Explicit Scorer or the first one able to score the file, checked against a sample Response."""
    sample = file_data.responses[0]
    if scorer is None:
        scorer = registry.find_scorer(sample, options)
        if scorer is None:
            raise ScorerNotFoundError(
                f'No Scorer found that can score the Response of file "{file_data.name}". Try to manually set one'
            )

    if not scorer.can_score(sample, options):
        raise ScorerNotEligibleError(
            f'Chosen Scorer "{scorer.identifier}" is not eligible to Score Response file "{file_data.name}"'
        )
    return scorer


def process_response_file(
    file_data: ResponseFileData,
    output_dir: Path,
    *,
    scorer: Optional[IScorer] = None,
    registry: Optional[ScorerRegistry] = None,
    tags: Sequence[str] = (),
    scorer_options: Optional[Mapping[str, Any]] = None,
    signer: Optional[ISigner] = None,
    is_dev: bool = True,
) -> ScoreRunResult:
    """Score one Response file into its own Score file and hash it."""
    # Responses of one file are assumed to share the prompt type of the first one
    chosen = resolve_scorer(file_data, scorer, registry or create_scorer_registry(), scorer_options)
    name = score_file_name(file_data.name, chosen.identifier, tags)

    LOGGER.info('Scoring Responses of "%s" with %s', file_data.name, chosen.identifier)
    with JsonArrayStream.create_unique(Path(output_dir), name) as stream:
        path = stream.path
        scores = process_responses(file_data.responses, chosen, stream, scorer_options, is_dev=is_dev)

    file_hash = hash_file(path, signer)
    LOGGER.info('Scores of "%s" saved to "%s" (%d/%d)', file_data.name, path, scores.ok_count, scores.total)
    return ScoreRunResult(
        source=file_data.path,
        scorer=chosen.identifier,
        path=path,
        file_hash=file_hash,
        scores=scores,
    )


def _score_path(
    path: Path,
    output_dir: Path,
    scorer: Optional[IScorer],
    registry: ScorerRegistry,
    tags: Sequence[str],
    scorer_options: Optional[Mapping[str, Any]],
    signer: Optional[ISigner],
    is_dev: bool,
) -> ScoreRunResult:
    return process_response_file(
        read_response_file(path),
        output_dir,
        scorer=scorer,
        registry=registry,
        tags=tags,
        scorer_options=scorer_options,
        signer=signer,
        is_dev=is_dev,
    )


def score_files(
    paths: Sequence[Path],
    output_dir: Path,
    *,
    scorer: Optional[IScorer] = None,
    registry: Optional[ScorerRegistry] = None,
    tags: Sequence[str] = (),
    scorer_options: Optional[Mapping[str, Any]] = None,
    signer: Optional[ISigner] = None,
    is_dev: bool = True,
    max_workers: Optional[int] = None,
) -> BatchResult[ScoreRunResult]:
    """Score several Response files concurrently; a failing file does not stop the others."""
    registry = registry or create_scorer_registry()
    started = time.monotonic()
    batch: BatchResult[ScoreRunResult] = BatchResult()
    if not paths:
        return batch

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers or len(paths)) as pool:
        futures = [
            pool.submit(_score_path, Path(path), output_dir, scorer, registry, tags, scorer_options, signer, is_dev)
            for path in paths
        ]
        for path, future in zip(paths, futures):
            try:
                batch.add(ItemResult.success(str(path), future.result()))
            except Exception as exc:
                LOGGER.error("Error while scoring file %s: %s", path, describe_error(exc, is_dev))
                batch.add(ItemResult.failure(str(path), exc))

    LOGGER.info("Completed in %.2fs", time.monotonic() - started)
    return batch


__all__ = [
    "ResponseFileData",
    "ScoreRunResult",
    "read_response_file",
    "score_record",
    "process_responses",
    "resolve_scorer",
    "process_response_file",
    "score_files",
]
