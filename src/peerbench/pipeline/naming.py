"""Output file naming."""

import re
from datetime import datetime, timezone
from typing import Optional, Sequence

from ..domain import ModelInfo

_SLASHES = re.compile(r"/+")


def date_string(moment: Optional[datetime] = None) -> str:
    """``<year>-<month>-<day>-<hour>-<minute>-<second>`` in UTC, safe to use in file names."""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return f"{moment.year}-{moment.month}-{moment.day}-{moment.hour}-{moment.minute}-{moment.second}"


def normalize_path(name: str) -> str:
    """Make ``name`` a single path component: NUL bytes and slashes are removed."""
    if not name:
        return ""
    return _SLASHES.sub("", name.replace("\0", ""))


def tags_suffix(tags: Sequence[str]) -> str:
    return "." + "-".join(tags) if tags else ""


def response_file_name(
    task_file_name: str, provider: str, model: ModelInfo, tags: Sequence[str] = (), timestamp: Optional[str] = None
) -> str:
    return normalize_path(
        f"{task_file_name}.{provider}.{model.owner}.{model.name}.{timestamp or date_string()}"
        f".responses{tags_suffix(tags)}.json"
    )


def score_file_name(
    response_file_name: str, scorer: str, tags: Sequence[str] = (), timestamp: Optional[str] = None
) -> str:
    return normalize_path(
        f"{response_file_name}.{scorer}.{timestamp or date_string()}.scores{tags_suffix(tags)}.json"
    )


__all__ = ["date_string", "normalize_path", "tags_suffix", "response_file_name", "score_file_name"]
