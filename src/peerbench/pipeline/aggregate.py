"""Leaderboard aggregation of Score files."""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, cast

from rich import box
from rich.console import Console
from rich.table import Table

from ..exceptions import ValidationError

LOGGER = logging.getLogger(__name__)

TABLE_HEADERS = ("Rank", "Model", "Provider", "Total", "Correct", "Wrong", "Accuracy (%)", "Avg Latency (ms)")


@dataclass(frozen=True)
class AggregatedResult:
    """Summary statistics of one (provider, owner, model) group."""

    model: str
    model_owner: str
    model_name: str
    provider: str
    total_responses: int
    correct_answers: int
    wrong_answers: int
    avg_score: float
    avg_latency: float

    @property
    def accuracy(self) -> float:
        return self.avg_score * 100

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "model": data["model"],
            "modelOwner": data["model_owner"],
            "modelName": data["model_name"],
            "provider": data["provider"],
            "totalResponses": data["total_responses"],
            "correctAnswers": data["correct_answers"],
            "wrongAnswers": data["wrong_answers"],
            "avgScore": data["avg_score"],
            "avgLatency": data["avg_latency"],
        }


def _score_fields(record: Mapping[str, Any]) -> Mapping[str, Any]:
    """The nested ``score`` object of a Score record, or the record itself for flat Scores."""
    nested = record.get("score")
    if isinstance(nested, Mapping):
        return cast(Mapping[str, Any], nested)
    return record


def _latency(record: Mapping[str, Any]) -> float:
    started, finished = record.get("startedAt"), record.get("finishedAt")
    if isinstance(started, (int, float)) and isinstance(finished, (int, float)):
        return float(finished - started)
    return 0.0


def load_score_records(paths: Sequence[Path]) -> List[Mapping[str, Any]]:
    records: List[Mapping[str, Any]] = []
    for path in paths:
        try:
            with Path(path).open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Score file {path} cannot be read: {exc}", field="path", value=str(path)) from exc
        if not isinstance(data, list):
            raise ValidationError(f"Score file {path} is not a valid array", field="path", value=str(path))
        items = [cast(Mapping[str, Any], item) for item in cast(List[Any], data) if isinstance(item, Mapping)]
        LOGGER.debug("Loaded %d scores from %s", len(items), Path(path).name)
        records.extend(items)
    return records


def aggregate_scores(records: Iterable[Mapping[str, Any]]) -> List[AggregatedResult]:
    """Group Score records by model and rank the groups by average score."""
    groups: Dict[Tuple[str, str, str], List[Mapping[str, Any]]] = {}
    for record in records:
        fields = _score_fields(record)
        key = (str(fields.get("provider")), str(fields.get("modelOwner")), str(fields.get("modelName")))
        groups.setdefault(key, []).append(record)

    results: List[AggregatedResult] = []
    for (provider, owner, name), items in groups.items():
        scores = [float(_score_fields(item).get("score") or 0) for item in items]
        total = len(items)
        results.append(
            AggregatedResult(
                model=f"{provider}:{owner}/{name}",
                model_owner=owner,
                model_name=name,
                provider=provider,
                total_responses=total,
                correct_answers=sum(1 for score in scores if score == 1),
                wrong_answers=sum(1 for score in scores if score == 0),
                avg_score=sum(scores) / total,
                avg_latency=sum(_latency(item) for item in items) / total,
            )
        )

    results.sort(key=lambda result: result.avg_score, reverse=True)
    return results


def table_rows(results: Sequence[AggregatedResult]) -> List[List[str]]:
    return [
        [
            str(rank),
            f"{result.model_owner}/{result.model_name}",
            result.provider,
            str(result.total_responses),
            str(result.correct_answers),
            str(result.wrong_answers),
            f"{result.accuracy:.2f}",
            f"{result.avg_latency:.0f}",
        ]
        for rank, result in enumerate(results, start=1)
    ]


def render_table(results: Sequence[AggregatedResult], console: Optional[Console] = None) -> None:
    table = Table(title="Leaderboard", box=box.ROUNDED)
    for header in TABLE_HEADERS:
        if header in ("Model", "Provider"):
            table.add_column(header, style="cyan" if header == "Model" else None)
        else:
            table.add_column(header, justify="right")
    for row in table_rows(results):
        table.add_row(*row)
    (console or Console()).print(table)


def render_json(results: Sequence[AggregatedResult]) -> str:
    return json.dumps([result.to_dict() for result in results], indent=2)


__all__ = [
    "TABLE_HEADERS",
    "AggregatedResult",
    "load_score_records",
    "aggregate_scores",
    "table_rows",
    "render_table",
    "render_json",
]
