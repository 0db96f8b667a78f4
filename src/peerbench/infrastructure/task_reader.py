"""Task file reader with schema detection."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, cast

from ..domain import Prompt, Task
from ..exceptions import TaskSchemaError, ValidationError
from .content_address import calculate_cid, calculate_sha256

LOGGER = logging.getLogger(__name__)

PEERBENCH_SCHEMA = "peerbench"
TASK_DID_PREFIX = "did:task:"


@dataclass(frozen=True)
class TaskInfo:
    """A parsed Task together with the schema it was recognised as."""

    schema: str
    task: Task


class TaskReader:
    """Reads Task files and checks that they follow a known schema."""

    schemas = (PEERBENCH_SCHEMA,)

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or LOGGER

    def read_from_file(self, path: Path) -> TaskInfo:
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise TaskSchemaError(f"Task file {path} cannot be read: {exc}", field="path", value=str(path)) from exc

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TaskSchemaError(f"Task file {path} is not valid JSON: {exc}", field="path", value=str(path)) from exc

        schema = self.detect_schema(data)
        if schema is None:
            raise TaskSchemaError(f"Task file {path} doesn't follow peerBench's schema.", field="path", value=str(path))

        task = self._parse_peerbench(cast(Mapping[str, Any], data), path, raw)
        self._logger.debug("Read task %s with %d prompts from %s", task.did, len(task.prompts), path)
        return TaskInfo(schema=schema, task=task)

    @staticmethod
    def detect_schema(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        mapping = cast(Dict[str, Any], data)
        did = mapping.get("did")
        if isinstance(did, str) and did.startswith(TASK_DID_PREFIX) and isinstance(mapping.get("prompts"), list):
            return PEERBENCH_SCHEMA
        return None

    @staticmethod
    def _parse_peerbench(data: Mapping[str, Any], path: Path, raw: bytes) -> Task:
        prompts: List[Prompt] = []
        for index, item in enumerate(cast(List[Any], data["prompts"])):
            try:
                prompts.append(Prompt.from_dict(item))
            except ValidationError as exc:
                raise TaskSchemaError(
                    f"Prompt #{index} of {path} is invalid: {exc.message}", field=exc.field, value=exc.value
                ) from exc

        file_name = data.get("fileName")
        cid = data.get("cid")
        sha256 = data.get("sha256")
        return Task(
            did=cast(str, data["did"]),
            cid=cid if isinstance(cid, str) and cid else calculate_cid(raw),
            sha256=sha256 if isinstance(sha256, str) and sha256 else calculate_sha256(raw),
            file_name=file_name if isinstance(file_name, str) and file_name else path.name,
            prompts=prompts,
            path=str(path),
        )


__all__ = ["PEERBENCH_SCHEMA", "TASK_DID_PREFIX", "TaskInfo", "TaskReader"]
