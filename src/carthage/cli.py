#!/usr/bin/env python3
"""
Carthage CLI: subprocess execution and command runner

Every process the step spawns goes through a CommandExecutor, so the cache
logic can be tested against a fake instead of a real carthage/swift install.

Usage:
    runner = CarthageRunner(SubprocessExecutor())
    output = runner.run("bootstrap", ["--platform", "iOS"], secret_token="...")
"""

import logging
import os
import shlex
import subprocess
import sys
import time
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List, Sequence

from step.errors import CommandExecutionError

logger = logging.getLogger(__name__)


@dataclass
class ExecResult:
    """Result of a local command execution."""
    command: str
    exit_code: int
    output: str
    success: bool
    duration_ms: float
    timestamp: float = field(default_factory=time.time)

    @property
    def trimmed_output(self) -> str:
        return self.output.strip()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def format_command(command: str, args: Sequence[str]) -> str:
    """Render a command line the way a shell user would type it."""
    return " ".join(shlex.quote(part) for part in [command, *args])


class CommandExecutor:
    """Narrow process boundary: command + args in, exit code + output out."""

    def execute(
        self,
        command: str,
        args: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
        stream: bool = False,
    ) -> ExecResult:
        raise NotImplementedError


class SubprocessExecutor(CommandExecutor):
    """
    Runs commands with subprocess, stdout and stderr merged.

    With stream=True every line is echoed to stdout as it arrives, and the
    whole output is still buffered into the result.
    """

    def __init__(self, out=None):
        self._out = out or sys.stdout

    def execute(
        self,
        command: str,
        args: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
        stream: bool = False,
    ) -> ExecResult:
        display = format_command(command, args)
        process_env = dict(os.environ)
        if env:
            process_env.update(env)

        start = time.time()
        chunks: List[str] = []
        try:
            with subprocess.Popen(
                [command, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                cwd=cwd,
                env=process_env,
            ) as process:
                for line in process.stdout:
                    chunks.append(line)
                    if stream:
                        self._out.write(line)
                        self._out.flush()
                exit_code = process.wait()
        except OSError as e:
            chunks.append(str(e))
            exit_code = -1

        duration = (time.time() - start) * 1000
        result = ExecResult(
            command=display,
            exit_code=exit_code,
            output="".join(chunks),
            success=exit_code == 0,
            duration_ms=round(duration, 1),
        )

        level = logging.DEBUG if result.success else logging.WARNING
        logger.log(level, f"[exec] {display[:80]} -> exit={result.exit_code} ({result.duration_ms:.0f}ms)")
        return result


@dataclass(frozen=True)
class Invocation:
    """Fully assembled carthage call."""
    executable: str
    args: List[str]
    env: Dict[str, str]

    @property
    def display(self) -> str:
        return format_command(self.executable, self.args)


class CarthageRunner:
    """
    Assembles and runs the carthage command.

    Argument order: verb, then caller options verbatim (a
    --project-directory override is kept so carthage sees it too). The
    xcconfig override and the GitHub token are handed over through the
    environment variables carthage reads them from.
    """

    EXECUTABLE = "carthage"
    TOKEN_ENV = "GITHUB_ACCESS_TOKEN"
    XCCONFIG_ENV = "XCODE_XCCONFIG_FILE"

    def __init__(self, executor: CommandExecutor = None, executable: str = None):
        self.executor = executor or SubprocessExecutor()
        self.executable = executable or self.EXECUTABLE

    def build_invocation(
        self,
        command: str,
        args: Sequence[str] = (),
        secret_token: str = "",
        config_override_path: str = "",
    ) -> Invocation:
        env: Dict[str, str] = {}
        if config_override_path:
            env[self.XCCONFIG_ENV] = config_override_path
        if secret_token:
            env[self.TOKEN_ENV] = secret_token
        return Invocation(
            executable=self.executable,
            args=[command, *args],
            env=env,
        )

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        secret_token: str = "",
        config_override_path: str = "",
        cwd: Optional[str] = None,
    ) -> str:
        """Run carthage and return its combined output; non-zero exit raises."""
        invocation = self.build_invocation(command, args, secret_token, config_override_path)

        print()
        logger.info("Running Carthage command")
        logger.info(f"$ {invocation.display}")
        if config_override_path:
            logger.info(f"with {self.XCCONFIG_ENV}={config_override_path}")

        result = self.executor.execute(
            invocation.executable,
            invocation.args,
            env=invocation.env,
            cwd=cwd,
            stream=True,
        )
        if not result.success:
            raise CommandExecutionError(invocation.display, result.exit_code, result.output)
        return result.output
