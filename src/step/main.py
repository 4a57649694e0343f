#!/usr/bin/env python3
"""
Carthage Step: entry point

Pipeline (strictly sequential):
  environment  → carthage + swift versions
  options      → argv tokens, --project-directory, xcconfig override
  fingerprint  → Cartfile, Cartfile.resolved, xcconfig, swift version
  decision     → HIT restores Carthage/Build, MISS runs carthage and
                 records the new state once it succeeded

Only `bootstrap` goes through the cache; other commands always run.

Every failure is raised as a StepError and turned into one error line and
exit status 1 here, in main().

Usage:
  carthage_command=bootstrap carthage_options="--platform iOS" python -m step
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional, List

from cache.artifacts import ArtifactCache, DirectoryArtifactCache, HostCacheRegistry
from cache.cache import StateStore
from cache.decision import CacheDecisionEngine, CacheState
from cache.key_generator import Project, build_fingerprint
from carthage.cli import CarthageRunner, CommandExecutor, SubprocessExecutor
from carthage.options import parse_options, resolve_project_directory
from carthage.version import probe_carthage_version, probe_swift_version
from step.config import StepConfig, load_config
from step.errors import StepError
from step.xcconfig import FileProvider, resolve_xcconfig_path

logger = logging.getLogger(__name__)

CACHEABLE_COMMANDS = ("bootstrap",)
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


@dataclass
class StepResult:
    command: str
    project_dir: str
    cache_state: Optional[CacheState] = None
    output: str = ""
    persisted: bool = False


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(format=LOG_FORMAT, level=logging.INFO)
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.INFO)


def run_step(
    config: StepConfig,
    executor: CommandExecutor = None,
    file_provider: FileProvider = None,
    state_store: StateStore = None,
    artifact_cache: ArtifactCache = None,
) -> StepResult:
    executor = executor or SubprocessExecutor()
    file_provider = file_provider or FileProvider()
    try:
        return _run_pipeline(config, executor, file_provider, state_store, artifact_cache)
    finally:
        file_provider.cleanup()


def _run_pipeline(
    config: StepConfig,
    executor: CommandExecutor,
    file_provider: FileProvider,
    state_store: Optional[StateStore],
    artifact_cache: Optional[ArtifactCache],
) -> StepResult:
    logger.info("Config:")
    for line in config.describe():
        logger.info(line)

    print()
    logger.info("Environment:")
    carthage_version = probe_carthage_version(executor)
    logger.info(f"- CarthageVersion: {carthage_version}")
    swift_version = probe_swift_version(executor)
    logger.info(f"- SwiftVersion: {swift_version.replace(chr(10), '- ')}")

    args = parse_options(config.carthage_options)
    xcconfig_path = resolve_xcconfig_path(config.xcconfig, config.xcconfig_from_env, file_provider)

    project_dir = resolve_project_directory(config.source_dir, args)
    if not os.path.isabs(project_dir):
        project_dir = os.path.join(config.source_dir, project_dir)
    project = Project.from_dir(project_dir)

    runner = CarthageRunner(executor)

    def build() -> str:
        return runner.run(
            config.carthage_command,
            args,
            secret_token=config.github_access_token,
            config_override_path=xcconfig_path,
            cwd=config.source_dir,
        )

    if config.carthage_command not in CACHEABLE_COMMANDS:
        logger.info(f"`{config.carthage_command}` does not use the dependency cache")
        return StepResult(config.carthage_command, str(project.root), output=build())

    fingerprint = build_fingerprint(project, swift_version, xcconfig_path)

    owns_store = state_store is None
    if owns_store:
        state_store = StateStore(config.state_db)
    if artifact_cache is None:
        artifact_cache = DirectoryArtifactCache(config.cache_dir, registry=HostCacheRegistry(executor))

    try:
        outcome = CacheDecisionEngine(state_store, artifact_cache).execute(project, fingerprint, build)
    finally:
        if owns_store:
            state_store.close()

    if outcome.decision.is_hit:
        logger.info(
            "Using cached dependencies for bootstrap command. If you would like to force update "
            "your dependencies, select `update` as CarthageCommand and re-run your build."
        )

    return StepResult(
        command=config.carthage_command,
        project_dir=str(project.root),
        cache_state=outcome.state,
        output=outcome.build_output or "",
        persisted=outcome.persisted,
    )


def main(argv: List[str] = None) -> int:
    parser = argparse.ArgumentParser(description="Run Carthage with a fingerprint-checked build cache.")
    parser.add_argument("--config", help="YAML file with default step inputs; environment variables win")
    args = parser.parse_args(argv)

    configure_logging()
    try:
        config = load_config(args.config)
        configure_logging(config.verbose_log)
        run_step(config)
    except StepError as e:
        logger.error(f"Failed to execute step ({e.stage}): {e}")
        return 1

    print()
    logger.info("Carthage step finished")
    return 0


if __name__ == "__main__":
    sys.exit(main())
