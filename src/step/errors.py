"""Error taxonomy for the Carthage step."""

from __future__ import annotations

from typing import Optional


class StepError(Exception):
    """Base class for every error that terminates the step."""

    stage = "step"


class ConfigError(StepError, ValueError):
    stage = "config"


class VersionParseError(StepError, ValueError):
    stage = "environment"

    def __init__(self, command: str, output: str):
        super().__init__(f"failed to parse `$ {command}` output: {output}")
        self.command = command
        self.output = output


class OptionSyntaxError(StepError, ValueError):
    stage = "options"

    def __init__(self, raw: str, reason: str):
        super().__init__(f"failed to shell split options ({raw}): {reason}")
        self.raw = raw
        self.reason = reason


class ConfigResolutionError(StepError, RuntimeError):
    stage = "xcconfig"

    def __init__(self, path: str, reason: str):
        super().__init__(f"failed to resolve xcconfig file ({path}): {reason}")
        self.path = path
        self.reason = reason


class CommandExecutionError(StepError, RuntimeError):
    stage = "command"

    def __init__(self, command: str, exit_code: int, output: str = "", reason: Optional[str] = None):
        message = f"`{command}` failed with exit code {exit_code}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.output = output


class CacheStoreError(StepError, RuntimeError):
    stage = "cache"


class FingerprintInputError(StepError, RuntimeError):
    stage = "fingerprint"

    def __init__(self, path: str, reason: str):
        super().__init__(f"failed to read {path}: {reason}")
        self.path = path
        self.reason = reason
