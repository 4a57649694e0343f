"""Splitting of user-supplied carthage options."""

from __future__ import annotations

import logging
import shlex
from typing import List, Sequence

from step.errors import OptionSyntaxError

logger = logging.getLogger(__name__)

PROJECT_DIR_ARG = "--project-directory"


def parse_options(raw: str) -> List[str]:
    """Split a shell-quoted option string into argv tokens."""
    if not raw or not raw.strip():
        return []
    try:
        return shlex.split(raw, posix=True)
    except ValueError as exc:
        raise OptionSyntaxError(raw, str(exc)) from exc


def resolve_project_directory(default_dir: str, options: Sequence[str]) -> str:
    """
    Return the value following the first --project-directory flag.

    A trailing flag with nothing after it keeps default_dir.
    """
    for index, option in enumerate(options):
        if option != PROJECT_DIR_ARG:
            continue
        if index + 1 >= len(options):
            break
        project_dir = options[index + 1]
        print()
        logger.info(f"{PROJECT_DIR_ARG} flag found with value: {project_dir}")
        logger.info(f"using {project_dir} as working directory")
        return project_dir
    return default_dir
