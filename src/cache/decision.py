"""Hit/miss decision for cached Carthage builds."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from cache.artifacts import ArtifactCache
from cache.cache import PersistedState, StateStore
from cache.key_generator import CacheFingerprint, Project

logger = logging.getLogger(__name__)


class CacheState(Enum):
    UNKNOWN = "unknown"
    HIT = "hit"
    MISS = "miss"


@dataclass(frozen=True)
class CacheDecision:
    state: CacheState
    fingerprint: CacheFingerprint
    prior: Optional[PersistedState]
    reason: str
    changed: Tuple[str, ...] = ()

    @property
    def prior_state(self) -> CacheState:
        """UNKNOWN when no earlier run left a usable record."""
        if self.prior is None:
            return CacheState.UNKNOWN
        return CacheState.HIT if self.prior.fingerprint == self.fingerprint.digest else CacheState.MISS

    @property
    def is_hit(self) -> bool:
        return self.state is CacheState.HIT


@dataclass
class CacheOutcome:
    decision: CacheDecision
    build_output: Optional[str] = None
    persisted: bool = False

    @property
    def state(self) -> CacheState:
        return self.decision.state


class CacheDecisionEngine:
    """
    Decides once per run whether cached build outputs can be trusted.

    HIT needs three things: a stored state, an equal fingerprint, and an
    artifact payload the artifact cache confirms it can restore. Anything
    less is a MISS. On a MISS the stores are only written after the build
    callable returned; if it raises, they stay as they were.
    """

    def __init__(self, state_store: StateStore, artifact_cache: ArtifactCache):
        self.state_store = state_store
        self.artifact_cache = artifact_cache

    def decide(self, project: Project, fingerprint: CacheFingerprint) -> CacheDecision:
        prior = self.state_store.load(project.key)

        if prior is None:
            return CacheDecision(CacheState.MISS, fingerprint, None, "no previous cache state")

        if prior.fingerprint != fingerprint.digest:
            changed = tuple(fingerprint.changed_components(prior.components))
            reason = "fingerprint changed"
            if changed:
                reason += f" ({', '.join(changed)})"
            return CacheDecision(CacheState.MISS, fingerprint, prior, reason, changed)

        # A matching fingerprint alone is not enough, the payload may be gone.
        if not self.artifact_cache.is_restorable(project.key, fingerprint.digest):
            return CacheDecision(CacheState.MISS, fingerprint, prior, "cached build outputs are not restorable")

        return CacheDecision(CacheState.HIT, fingerprint, prior, "fingerprint unchanged")

    def execute(
        self,
        project: Project,
        fingerprint: CacheFingerprint,
        build: Callable[[], str],
    ) -> CacheOutcome:
        """Decide, then either restore the cached outputs or build and persist."""
        decision = self.decide(project, fingerprint)
        logger.info(f"Cache {decision.state.value}: {decision.reason}")

        if decision.is_hit:
            self.artifact_cache.restore(project.key, project.build_dir)
            return CacheOutcome(decision)

        output = build()
        persisted = self.commit(project, fingerprint)
        return CacheOutcome(decision, build_output=output, persisted=persisted)

    def commit(self, project: Project, fingerprint: CacheFingerprint) -> bool:
        """Register the build outputs, then record the fingerprint that made them."""
        manifest = self.artifact_cache.store(project.key, fingerprint.digest, project.build_dir)
        if manifest is None:
            logger.warning("Cache state not updated, no build outputs were cached")
            return False

        self.state_store.save(PersistedState(
            project_key=project.key,
            fingerprint=fingerprint.digest,
            toolchain=fingerprint.toolchain,
            components=fingerprint.component_map(),
            updated_at=time.time(),
        ))
        return True
