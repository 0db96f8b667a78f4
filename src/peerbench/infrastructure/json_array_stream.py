"""Incremental JSON array writer that survives interruption."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, IO, List

from ..exceptions import ArtifactSaveError

LOGGER = logging.getLogger(__name__)

_OPEN = "[\n"
_SEPARATOR = ",\n"
_CLOSE = "\n]\n"


def _serialize(obj: Any) -> str:
    """Serialize a record; strings are taken as already encoded JSON."""
    if isinstance(obj, str):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        obj = to_dict()
    return json.dumps(obj, ensure_ascii=False)


def recover_json_array(path: Path) -> List[Any]:
    """Return the complete records of a JSON array file, closed or not.

    A record cut off by an interruption is dropped; everything before it is kept.
    """
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        pass
    else:
        if not isinstance(data, list):
            raise ArtifactSaveError("File does not contain a JSON array", file_path=str(path))
        return data

    stripped = text.lstrip()
    if not stripped:
        return []
    if not stripped.startswith("["):
        raise ArtifactSaveError("File does not contain a JSON array", file_path=str(path))

    decoder = json.JSONDecoder()
    records: List[Any] = []
    index = 1
    length = len(stripped)
    while index < length:
        char = stripped[index]
        if char in " \t\r\n,":
            index += 1
            continue
        if char == "]":
            break
        try:
            record, index = decoder.raw_decode(stripped, index)
        except json.JSONDecodeError:
            LOGGER.warning("Dropping truncated trailing record of %s", path)
            break
        records.append(record)
    return records


class JsonArrayStream:
    """Writes records to ``path`` one by one as elements of a JSON array.

    Every record is flushed to disk as soon as it is written; ``end()`` closes the
    array. A file left open by a crash is readable with ``recover_json_array`` and
    can be continued with ``JsonArrayStream.resume``.

    With ``exclusive=True`` the file must not exist yet, so two streams can never
    share one output file.
    """

    def __init__(self, path: Path, *, exclusive: bool = False):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._count = 0
        self._closed = False

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArtifactSaveError(f"Cannot create output directory: {exc}", file_path=str(self.path)) from exc
        try:
            self._handle = self.path.open("x" if exclusive else "w", encoding="utf-8")
        except FileExistsError:
            raise
        except OSError as exc:
            raise ArtifactSaveError(f"Cannot open output file: {exc}", file_path=str(self.path)) from exc

        try:
            self._write_chunk(_OPEN)
        except OSError as exc:
            self._handle.close()
            raise ArtifactSaveError(f"Cannot open output file: {exc}", file_path=str(self.path)) from exc

    @classmethod
    def _attach(cls, path: Path, handle: IO[str], count: int) -> "JsonArrayStream":
        stream = cls.__new__(cls)
        stream.path = path
        stream._lock = threading.RLock()
        stream._count = count
        stream._closed = False
        stream._handle = handle
        return stream

    @classmethod
    def create_unique(cls, directory: Path, name: str, max_attempts: int = 1000) -> "JsonArrayStream":
        """Open a new stream named ``name`` in ``directory``.

        When the name is taken, ``.1``, ``.2``, ... is inserted before the extension
        until a free one is claimed.
        """
        directory = Path(directory)
        stem, suffix = (name[: -len(".json")], ".json") if name.endswith(".json") else (name, "")
        for attempt in range(max_attempts):
            candidate = name if attempt == 0 else f"{stem}.{attempt}{suffix}"
            try:
                return cls(directory / candidate, exclusive=True)
            except FileExistsError:
                LOGGER.debug("Output file %s already exists", directory / candidate)
        raise ArtifactSaveError(
            f"No free output file name after {max_attempts} attempts", file_path=str(directory / name)
        )

    @classmethod
    def resume(cls, path: Path) -> "JsonArrayStream":
        """Continue an interrupted file, keeping its complete records."""
        path = Path(path)
        records = recover_json_array(path) if path.exists() else []

        # Rewrite through a temporary file so the recovered records are never at risk
        tmp_path = path.with_name(path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            handle.write(_OPEN + _SEPARATOR.join(_serialize(record) for record in records))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)

        LOGGER.debug("Resuming %s with %d recovered records", path, len(records))
        return cls._attach(path, path.open("a", encoding="utf-8"), len(records))

    @property
    def count(self) -> int:
        return self._count

    @property
    def closed(self) -> bool:
        return self._closed

    def _write_chunk(self, chunk: str) -> None:
        self._handle.write(chunk)
        self._handle.flush()
        os.fsync(self._handle.fileno())

    def write(self, obj: Any) -> None:
        """Append one record to the array."""
        with self._lock:
            if self._closed:
                raise ArtifactSaveError("Cannot write to a finalized stream", file_path=str(self.path))
            separator = _SEPARATOR if self._count else ""
            try:
                self._write_chunk(separator + _serialize(obj))
            except OSError as exc:
                raise ArtifactSaveError(f"Cannot write record: {exc}", file_path=str(self.path)) from exc
            self._count += 1

    def end(self) -> None:
        """Close the array and the file. Calling it again is a no-op."""
        with self._lock:
            if self._closed:
                return
            try:
                self._write_chunk(_CLOSE)
            finally:
                self._handle.close()
                self._closed = True

    def __enter__(self) -> "JsonArrayStream":
        return self

    def __exit__(self, *args: Any) -> None:
        self.end()


def finalize_json_array(path: Path) -> int:
    """Turn an interrupted file into a valid JSON array; return its record count."""
    stream = JsonArrayStream.resume(path)
    stream.end()
    return stream.count


__all__ = ["JsonArrayStream", "recover_json_array", "finalize_json_array"]
