"""Hash sidecar (``<file>.cid``) writer and signing finalizer."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..exceptions import ArtifactSaveError
from ..services import ISigner
from .content_address import calculate_cid, calculate_sha256

LOGGER = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".cid"


@dataclass(frozen=True)
class FileHash:
    """Fingerprint of a finished output file."""

    path: Path
    cid: str
    sha256: str
    signature: Optional[str] = None
    public_key: Optional[str] = None

    @property
    def sidecar_path(self) -> Path:
        return sidecar_path_for(self.path)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"file": self.path.name, "cid": self.cid, "sha256": self.sha256}
        if self.signature is not None:
            data["signature"] = self.signature
            data["publicKey"] = self.public_key
        return data


def sidecar_path_for(path: Path) -> Path:
    return path.with_name(path.name + SIDECAR_SUFFIX)


def compute_file_hash(path: Path) -> FileHash:
    """Hash the bytes of ``path`` without writing anything."""
    try:
        content = Path(path).read_bytes()
    except OSError as exc:
        raise ArtifactSaveError(f"Cannot read file to hash: {exc}", file_path=str(path)) from exc
    return FileHash(path=Path(path), cid=calculate_cid(content), sha256=calculate_sha256(content))


def hash_file(path: Path, signer: Optional[ISigner] = None) -> FileHash:
    """Hash a fully written file and write its ``.cid`` sidecar.

    When ``signer`` is given the sidecar also carries a detached signature of the CID.
    """
    file_hash = compute_file_hash(path)
    if signer is not None:
        file_hash = FileHash(
            path=file_hash.path,
            cid=file_hash.cid,
            sha256=file_hash.sha256,
            signature=signer.sign(file_hash.cid),
            public_key=signer.public_key,
        )

    sidecar = file_hash.sidecar_path
    try:
        sidecar.write_text(json.dumps(file_hash.to_dict(), indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ArtifactSaveError(f"Cannot write hash file: {exc}", file_path=str(sidecar)) from exc

    LOGGER.debug("Hashed %s cid=%s signed=%s", path, file_hash.cid, signer is not None)
    return file_hash


def read_sidecar(path: Path) -> Dict[str, Any]:
    """Load the sidecar of ``path`` (the data file, not the sidecar itself)."""
    with sidecar_path_for(Path(path)).open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ArtifactSaveError("Hash file must contain an object", file_path=str(path))
    return data


def verify_file(path: Path) -> bool:
    """True when the file still matches the hash recorded in its sidecar."""
    recorded = read_sidecar(path)
    current = compute_file_hash(path)
    return recorded.get("cid") == current.cid and recorded.get("sha256") == current.sha256


__all__ = [
    "FileHash",
    "SIDECAR_SUFFIX",
    "sidecar_path_for",
    "compute_file_hash",
    "hash_file",
    "read_sidecar",
    "verify_file",
]
