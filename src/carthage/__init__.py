"""
Carthage CLI wrappers

- CarthageRunner - assembles and runs `carthage <command> ...`
- SubprocessExecutor - local process execution with streamed output
- probe_carthage_version / probe_swift_version - environment introspection
- parse_options / resolve_project_directory - user option handling
"""

from .cli import CarthageRunner, CommandExecutor, SubprocessExecutor, ExecResult
from .options import parse_options, resolve_project_directory, PROJECT_DIR_ARG
from .version import (
    ToolchainVersion, probe_version, probe_carthage_version, probe_swift_version,
)

__all__ = [
    'CarthageRunner', 'CommandExecutor', 'SubprocessExecutor', 'ExecResult',
    'parse_options', 'resolve_project_directory', 'PROJECT_DIR_ARG',
    'ToolchainVersion', 'probe_version', 'probe_carthage_version', 'probe_swift_version',
]
