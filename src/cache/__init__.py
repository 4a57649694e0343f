"""
Carthage Cache Layer
Fingerprint-keyed reuse of Carthage/Build between CI runs
"""

from .key_generator import Project, CacheFingerprint, build_fingerprint
from .cache import StateStore, PersistedState
from .artifacts import ArtifactCache, DirectoryArtifactCache, HostCacheRegistry
from .decision import CacheDecisionEngine, CacheDecision, CacheOutcome, CacheState

__all__ = [
    'Project', 'CacheFingerprint', 'build_fingerprint',
    'StateStore', 'PersistedState',
    'ArtifactCache', 'DirectoryArtifactCache', 'HostCacheRegistry',
    'CacheDecisionEngine', 'CacheDecision', 'CacheOutcome', 'CacheState',
]
