"""Toolchain version probing."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from carthage.cli import CommandExecutor, format_command
from step.errors import CommandExecutionError, VersionParseError

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(
    r"^v?(?P<release>\d+(?:\.\d+)*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z\-~]+(?:\.[0-9A-Za-z\-~]+)*))?"
    r"(?:\+(?P<metadata>[0-9A-Za-z\-~]+(?:\.[0-9A-Za-z\-~]+)*))?$"
)


def _prerelease_key(prerelease: str) -> Tuple:
    # A release sorts after any of its prereleases.
    if not prerelease:
        return (1,)
    parts = []
    for part in prerelease.split("."):
        parts.append((0, int(part), "") if part.isdigit() else (1, 0, part))
    return (0, tuple(parts))


@dataclass(frozen=True, eq=False)
class ToolchainVersion:
    segments: Tuple[int, ...]
    prerelease: str = ""
    metadata: str = ""
    original: str = field(default="", compare=False)

    @classmethod
    def parse(cls, text: str) -> "ToolchainVersion":
        match = _VERSION_RE.match(text.strip())
        if not match:
            raise ValueError(f"malformed version: {text!r}")
        return cls(
            segments=tuple(int(s) for s in match.group("release").split(".")),
            prerelease=match.group("prerelease") or "",
            metadata=match.group("metadata") or "",
            original=text.strip(),
        )

    def _key(self) -> Tuple:
        padded = self.segments + (0,) * max(0, 3 - len(self.segments))
        while len(padded) > 3 and padded[-1] == 0:
            padded = padded[:-1]
        return (padded, _prerelease_key(self.prerelease))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "ToolchainVersion") -> bool:
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return self._key() < other._key()

    def __le__(self, other: "ToolchainVersion") -> bool:
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return self._key() <= other._key()

    def __gt__(self, other: "ToolchainVersion") -> bool:
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return other < self

    def __ge__(self, other: "ToolchainVersion") -> bool:
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return self._key() >= other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        if self.original:
            return self.original
        text = ".".join(str(s) for s in self.segments)
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.metadata:
            text += f"+{self.metadata}"
        return text


def parse_version_output(command: str, output: str) -> ToolchainVersion:
    """Return the first line of output that parses as a version."""
    for line in output.split("\n"):
        try:
            return ToolchainVersion.parse(line)
        except ValueError:
            continue
    raise VersionParseError(command, output)


def _run_probe(executor: CommandExecutor, command: str, args: Sequence[str]) -> str:
    result = executor.execute(command, list(args))
    if not result.success:
        raise CommandExecutionError(
            format_command(command, args), result.exit_code, result.output,
        )
    return result.trimmed_output


def probe_version(executor: CommandExecutor, command: str, args: Sequence[str]) -> ToolchainVersion:
    out = _run_probe(executor, command, args)
    return parse_version_output(format_command(command, args), out)


def probe_carthage_version(executor: CommandExecutor, executable: Optional[str] = None) -> ToolchainVersion:
    version = probe_version(executor, executable or "carthage", ["version"])
    logger.debug(f"carthage version: {version}")
    return version


def probe_swift_version(executor: CommandExecutor) -> str:
    """Raw `swift -version` text; its format is not a stable semver."""
    return _run_probe(executor, "swift", ["-version"])
