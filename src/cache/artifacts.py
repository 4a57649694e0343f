#!/usr/bin/env python3
"""
Carthage Artifact Cache

Stores Carthage/Build as one archive per project, next to a manifest that
records the fingerprint it was built for and the archive checksum.

Implements:
- is_restorable(project_key, fingerprint) → bool
- restore(project_key, dest)
- store(project_key, fingerprint, source) → ArtifactManifest | None

"Restorable" means more than a matching fingerprint: the manifest must be
valid and the archive must still be on disk with the recorded sha256. A
partially evicted entry is therefore never reported as a hit.
"""

import hashlib
import json
import logging
import os
import shutil
import tarfile
import tempfile
import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Dict, Any, Union

from jsonschema import Draft7Validator

from carthage.cli import CommandExecutor, SubprocessExecutor
from step.errors import CacheStoreError

logger = logging.getLogger(__name__)

MANIFEST_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["project_key", "fingerprint", "sha256", "size", "created_at"],
    "properties": {
        "project_key": {"type": "string", "minLength": 1},
        "fingerprint": {"type": "string", "pattern": "^[0-9a-f]{64}$"},
        "sha256": {"type": "string", "pattern": "^[0-9a-f]{64}$"},
        "size": {"type": "integer", "minimum": 0},
        "created_at": {"type": "number", "minimum": 0},
    },
}

_validator = Draft7Validator(MANIFEST_SCHEMA)


@dataclass
class ArtifactManifest:
    project_key: str
    fingerprint: str
    sha256: str
    size: int
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArtifactManifest":
        errors = sorted(_validator.iter_errors(data), key=lambda e: list(e.path))
        if errors:
            messages = ", ".join(error.message for error in errors)
            raise ValueError(f"artifact manifest validation failed: {messages}")
        return cls(
            project_key=data["project_key"],
            fingerprint=data["fingerprint"],
            sha256=data["sha256"],
            size=int(data["size"]),
            created_at=float(data["created_at"]),
        )


def _sha256_file(path: Path) -> str:
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


class ArtifactCache:
    """Build-output store consulted by the decision engine."""

    def is_restorable(self, project_key: str, fingerprint: str) -> bool:
        raise NotImplementedError

    def restore(self, project_key: str, dest: Path) -> None:
        raise NotImplementedError

    def store(self, project_key: str, fingerprint: str, source: Path) -> Optional[ArtifactManifest]:
        raise NotImplementedError


class HostCacheRegistry:
    """
    Registers paths with the Bitrise build cache.

    The host cache is driven by BITRISE_CACHE_INCLUDE_PATHS, exported through
    envman. "path -> indicator" entries are only re-uploaded when the
    indicator file changes.
    """

    ENVMAN = "envman"
    INCLUDE_PATHS_KEY = "BITRISE_CACHE_INCLUDE_PATHS"

    def __init__(self, executor: CommandExecutor = None, environ: Dict[str, str] = None):
        self.executor = executor or SubprocessExecutor()
        self.environ = os.environ if environ is None else environ

    def available(self) -> bool:
        return shutil.which(self.ENVMAN) is not None

    def include(self, path: Union[str, Path], indicator: Union[str, Path] = "") -> bool:
        if not self.available():
            logger.debug(f"{self.ENVMAN} not found, skipping host cache registration of {path}")
            return False

        entry = f"{path} -> {indicator}" if indicator else str(path)
        existing = self.environ.get(self.INCLUDE_PATHS_KEY, "")
        value = "\n".join(part for part in [existing, entry] if part)

        result = self.executor.execute(
            self.ENVMAN, ["add", "--key", self.INCLUDE_PATHS_KEY, "--value", value],
        )
        if not result.success:
            raise CacheStoreError(
                f"failed to register {path} with the host cache: {result.trimmed_output}"
            )
        self.environ[self.INCLUDE_PATHS_KEY] = value
        logger.info(f"Registered {entry} in the build cache")
        return True


class DirectoryArtifactCache(ArtifactCache):
    """Archive + manifest per project under a cache root directory."""

    ARCHIVE_NAME = "build.tar.gz"
    MANIFEST_NAME = "manifest.json"
    ARCHIVE_ROOT = "Build"

    def __init__(self, root: Union[str, Path] = None, registry: Optional[HostCacheRegistry] = None):
        if root is None:
            root = os.environ.get("CARTHAGE_CACHE_DIR", "~/.cache/carthage-step")
        self.root = Path(root).expanduser()
        self.registry = registry

    def _entry_dir(self, project_key: str) -> Path:
        return self.root / "artifacts" / project_key

    def load_manifest(self, project_key: str) -> Optional[ArtifactManifest]:
        path = self._entry_dir(project_key) / self.MANIFEST_NAME
        try:
            with open(path, "r", encoding="utf-8") as f:
                return ArtifactManifest.from_dict(json.load(f))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable artifact manifest {path}: {e}")
            return None

    def is_restorable(self, project_key: str, fingerprint: str) -> bool:
        manifest = self.load_manifest(project_key)
        if manifest is None:
            logger.debug(f"No artifact manifest for {project_key}")
            return False
        if manifest.fingerprint != fingerprint:
            logger.debug(f"Artifact fingerprint mismatch for {project_key}")
            return False

        archive = self._entry_dir(project_key) / self.ARCHIVE_NAME
        try:
            if archive.stat().st_size != manifest.size:
                logger.warning(f"Artifact archive size mismatch for {project_key}")
                return False
            if _sha256_file(archive) != manifest.sha256:
                logger.warning(f"Artifact archive checksum mismatch for {project_key}")
                return False
        except FileNotFoundError:
            logger.warning(f"Artifact archive missing for {project_key}")
            return False
        return True

    def restore(self, project_key: str, dest: Path) -> None:
        dest = Path(dest)
        archive = self._entry_dir(project_key) / self.ARCHIVE_NAME
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryDirectory(dir=dest.parent) as tmp:
                with tarfile.open(archive, "r:gz") as tar:
                    tar.extractall(tmp, filter="data")
                extracted = Path(tmp) / self.ARCHIVE_ROOT
                if not extracted.is_dir():
                    raise CacheStoreError(f"artifact archive for {project_key} has no {self.ARCHIVE_ROOT} directory")
                if dest.exists():
                    shutil.rmtree(dest)
                shutil.move(str(extracted), str(dest))
        except (OSError, tarfile.TarError) as e:
            raise CacheStoreError(f"failed to restore artifacts for {project_key}: {e}") from e

        logger.info(f"Restored cached build outputs into {dest}")

    def store(self, project_key: str, fingerprint: str, source: Path) -> Optional[ArtifactManifest]:
        source = Path(source)
        if not source.is_dir():
            logger.warning(f"Build outputs not found at {source}, nothing to cache")
            return None

        entry = self._entry_dir(project_key)
        archive = entry / self.ARCHIVE_NAME
        manifest_path = entry / self.MANIFEST_NAME
        try:
            entry.mkdir(parents=True, exist_ok=True)
            fd, tmp_archive = tempfile.mkstemp(dir=entry, suffix=".tar.gz")
            os.close(fd)
            with tarfile.open(tmp_archive, "w:gz") as tar:
                tar.add(str(source), arcname=self.ARCHIVE_ROOT)
            os.replace(tmp_archive, archive)

            manifest = ArtifactManifest(
                project_key=project_key,
                fingerprint=fingerprint,
                sha256=_sha256_file(archive),
                size=archive.stat().st_size,
            )
            tmp_manifest = manifest_path.with_suffix(".tmp")
            tmp_manifest.write_text(json.dumps(manifest.to_dict(), indent=2), encoding="utf-8")
            os.replace(tmp_manifest, manifest_path)
        except (OSError, tarfile.TarError) as e:
            raise CacheStoreError(f"failed to store artifacts for {project_key}: {e}") from e

        logger.info(f"Cached build outputs from {source} ({manifest.size} bytes)")

        if self.registry is not None:
            self.registry.include(self.root, manifest_path)
        return manifest
