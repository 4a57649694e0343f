import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from carthage.cli import CommandExecutor, ExecResult, format_command


class FakeExecutor(CommandExecutor):
    """Scripted CommandExecutor: (command, first arg) -> (exit_code, output)."""

    def __init__(self, responses=None, hooks=None):
        self.responses = dict(responses or {})
        self.hooks = dict(hooks or {})
        self.calls = []

    def execute(self, command, args, env=None, cwd=None, stream=False):
        args = list(args)
        self.calls.append({"command": command, "args": args, "env": dict(env or {}), "cwd": cwd})
        key = (command, args[0] if args else "")
        hook = self.hooks.get(key)
        if hook is not None:
            hook(args, env, cwd)
        exit_code, output = self.responses.get(key, (0, ""))
        return ExecResult(
            command=format_command(command, args),
            exit_code=exit_code,
            output=output,
            success=exit_code == 0,
            duration_ms=0.0,
        )

    def calls_for(self, command, first_arg=None):
        return [
            c for c in self.calls
            if c["command"] == command and (first_arg is None or (c["args"][:1] == [first_arg]))
        ]
