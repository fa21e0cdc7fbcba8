"""
Artifact store — provenance registry for files a pipeline produces.

The registry is a YAML document (default ``<output>/artifact_registry.yaml``):

    registry_version: "1.0"
    created_utc: ...
    pipeline_version: "0.4.0"
    artifacts:
      ridgeline_plot:
        type: results
        file_hash_sha256: ...

Every registration re-hashes the file (SHA-256) and rewrites the whole
document atomically (temp file + rename).
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from fieldpipe import __version__
from fieldpipe.core.errors import InvalidArgument

logger = logging.getLogger(__name__)

REGISTRY_VERSION = "1.0"
DEFAULT_REGISTRY_FILE = "artifact_registry.yaml"

ARTIFACT_TYPES = (
    "raw_data",
    "checkpoint",
    "processed_data",
    "intermediate",
    "results",
    "plot",
    "report",
    "validation_report",
)


def _now_iso() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def hash_file(path: Path | str) -> str:
    """SHA-256 hex digest of a file's contents."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ArtifactEntry(BaseModel):
    name: str
    type: str
    workflow: str
    file_path: str
    file_hash_sha256: str
    file_size_bytes: int = 0
    created_utc: str = Field(default_factory=_now_iso)
    pipeline_version: str = __version__
    input_artifacts: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


@dataclass
class RegistryValidation:
    """Result of checking the registry against the files on disk."""

    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    missing_types: list[str] = field(default_factory=list)
    missing_files: list[str] = field(default_factory=list)
    hash_mismatches: list[str] = field(default_factory=list)


class ArtifactStore:
    """YAML-backed artifact registry bound to one file."""

    def __init__(self, path: Path | str, allowed_types: tuple[str, ...] = ARTIFACT_TYPES):
        self.path = Path(path)
        self.allowed_types = allowed_types
        self.created_utc: str = _now_iso()
        self.pipeline_version: str = __version__
        self._artifacts: dict[str, ArtifactEntry] = {}

    @classmethod
    def open(cls, path: Path | str) -> ArtifactStore:
        """Load an existing registry, or create and persist an empty one."""
        store = cls(path)
        if store.path.is_file():
            raw = yaml.safe_load(store.path.read_text(encoding="utf-8")) or {}
            store.created_utc = raw.get("created_utc", store.created_utc)
            store.pipeline_version = raw.get("pipeline_version", store.pipeline_version)
            for name, entry in (raw.get("artifacts") or {}).items():
                store._artifacts[name] = ArtifactEntry.model_validate(entry)
            logger.info("Loaded artifact registry: %d artifact(s)", len(store))
        else:
            store.save()
            logger.info("Created new artifact registry at %s", store.path)
        return store

    def __len__(self) -> int:
        return len(self._artifacts)

    def __contains__(self, name: str) -> bool:
        return name in self._artifacts

    # ── Mutation ─────────────────────────────────────────────────

    def register(
        self,
        name: str,
        artifact_type: str,
        workflow: str,
        file_path: Path | str,
        input_artifacts: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ArtifactEntry:
        """Hash ``file_path`` and record it under ``name`` (overwrites).

        Raises:
            InvalidArgument: Unknown artifact type.
            FileNotFoundError: The file does not exist.
        """
        if artifact_type not in self.allowed_types:
            raise InvalidArgument(
                f"Invalid artifact_type '{artifact_type}'. "
                f"Must be one of: {', '.join(self.allowed_types)}"
            )
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"Artifact file not found: {path}")

        entry = ArtifactEntry(
            name=name,
            type=artifact_type,
            workflow=workflow,
            file_path=str(path),
            file_hash_sha256=hash_file(path),
            file_size_bytes=path.stat().st_size,
            pipeline_version=self.pipeline_version,
            input_artifacts=list(input_artifacts or []),
            metadata=dict(metadata or {}),
        )
        self._artifacts[name] = entry
        self.save()
        logger.info("Registered artifact: %s (%s)", name, artifact_type)
        return entry

    def save(self) -> None:
        """Write the registry atomically."""
        doc = {
            "registry_version": REGISTRY_VERSION,
            "created_utc": self.created_utc,
            "last_modified_utc": _now_iso(),
            "pipeline_version": self.pipeline_version,
            "artifacts": {
                name: entry.model_dump(mode="json")
                for name, entry in self._artifacts.items()
            },
        }
        content = yaml.safe_dump(doc, sort_keys=False, allow_unicode=True)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=".artifacts_", suffix=".tmp"
        )
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(self.path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

    # ── Queries ──────────────────────────────────────────────────

    def get(self, name: str) -> ArtifactEntry | None:
        return self._artifacts.get(name)

    def list(
        self,
        artifact_type: str | None = None,
        workflow: str | None = None,
    ) -> list[ArtifactEntry]:
        entries = list(self._artifacts.values())
        if artifact_type is not None:
            entries = [e for e in entries if e.type == artifact_type]
        if workflow is not None:
            entries = [e for e in entries if e.workflow == workflow]
        return entries

    def latest(self, artifact_type: str) -> ArtifactEntry | None:
        """Most recently created artifact of a type."""
        matching = self.list(artifact_type=artifact_type)
        if not matching:
            return None
        return max(matching, key=lambda e: e.created_utc)

    def verify(self, name: str) -> bool:
        """Re-hash an artifact's file and compare with the recorded hash."""
        entry = self._artifacts.get(name)
        if entry is None:
            logger.warning("Artifact not found in registry: %s", name)
            return False
        path = Path(entry.file_path)
        if not path.is_file():
            logger.warning("Artifact file not found: %s", path)
            return False
        current = hash_file(path)
        if current != entry.file_hash_sha256:
            logger.warning(
                "Hash mismatch for %s: registered %s, current %s",
                name, entry.file_hash_sha256[:12], current[:12],
            )
            return False
        return True

    def validate(
        self,
        required_types: tuple[str, ...] = ("raw_data", "results"),
        check_hashes: bool = False,
    ) -> RegistryValidation:
        result = RegistryValidation()
        if not self._artifacts:
            result.valid = False
            result.errors.append("Registry is empty")
            return result

        present = {e.type for e in self._artifacts.values()}
        for req in required_types:
            if req not in present:
                result.valid = False
                result.missing_types.append(req)
                result.errors.append(f"No artifacts of required type: {req}")

        for name, entry in self._artifacts.items():
            path = Path(entry.file_path)
            if not path.is_file():
                result.valid = False
                result.missing_files.append(name)
                result.errors.append(
                    f"File not found for artifact '{name}': {entry.file_path}"
                )
            elif check_hashes and hash_file(path) != entry.file_hash_sha256:
                result.hash_mismatches.append(name)
                result.warnings.append(f"Hash mismatch for '{name}'")

        return result
