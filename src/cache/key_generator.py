#!/usr/bin/env python3
"""
Cache Key Generation: Project Fingerprints

Implements:
- Project(root) → locations of Cartfile, Cartfile.resolved, Carthage/Build
- build_fingerprint(project_dir, toolchain, xcconfig) → CacheFingerprint
- Same inputs = same fingerprint (cache hit possible)
- Any byte changed in any input = different fingerprint (cache miss)

Inputs are hashed in a fixed order: manifest, lock, xcconfig override,
toolchain string. A missing manifest or lock file is folded in as an
"absent" marker, so a project without Cartfile.resolved still gets a
stable fingerprint.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Tuple, Union

from step.errors import ConfigResolutionError, FingerprintInputError

logger = logging.getLogger(__name__)

ABSENT = b"absent"


@dataclass(frozen=True)
class Project:
    """A Carthage project, identified by its absolute root directory."""
    root: Path

    MANIFEST = "Cartfile"
    LOCK = "Cartfile.resolved"
    CARTHAGE_DIR = "Carthage"
    BUILD_DIR = "Build"

    @classmethod
    def from_dir(cls, path: Union[str, Path]) -> "Project":
        return cls(Path(path).expanduser().resolve())

    @property
    def manifest_path(self) -> Path:
        return self.root / self.MANIFEST

    @property
    def lock_path(self) -> Path:
        return self.root / self.LOCK

    @property
    def build_dir(self) -> Path:
        return self.root / self.CARTHAGE_DIR / self.BUILD_DIR

    @property
    def key(self) -> str:
        """Stable identifier for the state and artifact stores."""
        return hashlib.sha256(str(self.root).encode()).hexdigest()[:12]


@dataclass(frozen=True)
class CacheFingerprint:
    """Digest over the project inputs; equality is on the digest alone."""
    digest: str
    components: Tuple[Tuple[str, str], ...] = field(default=(), compare=False)
    toolchain: str = field(default="", compare=False)

    def component_map(self) -> Dict[str, str]:
        return dict(self.components)

    def changed_components(self, previous: Dict[str, str]) -> list:
        """Names of inputs whose digest differs from a previous run."""
        current = self.component_map()
        return [name for name, digest in current.items() if previous.get(name) != digest]

    def __str__(self) -> str:
        return self.digest


def _read_optional(path: Path) -> Optional[bytes]:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        logger.debug(f"{path.name} not found, fingerprinting as absent")
        return None
    except OSError as exc:
        raise FingerprintInputError(str(path), exc.strerror or str(exc)) from exc


def _feed(hasher, label: str, data: Optional[bytes]) -> str:
    hasher.update(label.encode() + b"\0")
    if data is None:
        hasher.update(ABSENT + b"\0")
        return hashlib.sha256(ABSENT).hexdigest()
    hasher.update(b"present\0" + str(len(data)).encode() + b"\0")
    hasher.update(data)
    return hashlib.sha256(data).hexdigest()


def build_fingerprint(
    project_dir: Union[str, Path, Project],
    toolchain_version: str,
    config_override_path: str = "",
) -> CacheFingerprint:
    """
    Compute the cache fingerprint of a project.

    Args:
        project_dir: Project root (or a Project)
        toolchain_version: Swift toolchain version text
        config_override_path: xcconfig override file; empty means none

    Raises:
        ConfigResolutionError: the override path is set but unreadable
        FingerprintInputError: Cartfile or Cartfile.resolved exists but is unreadable
    """
    project = project_dir if isinstance(project_dir, Project) else Project.from_dir(project_dir)

    override: Optional[bytes] = None
    if config_override_path:
        try:
            override = Path(config_override_path).read_bytes()
        except OSError as exc:
            raise ConfigResolutionError(config_override_path, str(exc)) from exc

    hasher = hashlib.sha256()
    components = (
        ("manifest", _feed(hasher, "manifest", _read_optional(project.manifest_path))),
        ("lock", _feed(hasher, "lock", _read_optional(project.lock_path))),
        ("xcconfig", _feed(hasher, "xcconfig", override)),
        ("toolchain", _feed(hasher, "toolchain", str(toolchain_version).encode("utf-8"))),
    )
    fingerprint = CacheFingerprint(
        digest=hasher.hexdigest(),
        components=components,
        toolchain=str(toolchain_version),
    )

    logger.debug(f"Fingerprint for {project.root}: {fingerprint.digest[:12]}")
    return fingerprint
