#!/usr/bin/env python3
"""
Unit tests for the artifact cache and host cache registration
"""

import io
import json
import tarfile

import pytest

from conftest import FakeExecutor
from cache.artifacts import DirectoryArtifactCache, HostCacheRegistry, ArtifactManifest
from step.errors import CacheStoreError

FP_A = "a" * 64
FP_B = "b" * 64


@pytest.fixture
def build_dir(tmp_path):
    build = tmp_path / "project" / "Carthage" / "Build"
    (build / "iOS" / "Alamofire.framework").mkdir(parents=True)
    (build / "iOS" / "Alamofire.framework" / "Alamofire").write_bytes(b"\x00binary")
    (build / ".Alamofire.version").write_text('{"commitish": "5.6.4"}')
    return build


@pytest.fixture
def artifacts(tmp_path):
    return DirectoryArtifactCache(tmp_path / "cache")


class TestDirectoryArtifactCache:

    def test_empty_cache_not_restorable(self, artifacts):
        assert artifacts.is_restorable("proj", FP_A) is False

    def test_store_then_restorable(self, artifacts, build_dir):
        manifest = artifacts.store("proj", FP_A, build_dir)
        assert isinstance(manifest, ArtifactManifest)
        assert manifest.fingerprint == FP_A
        assert artifacts.is_restorable("proj", FP_A) is True

    def test_other_fingerprint_not_restorable(self, artifacts, build_dir):
        artifacts.store("proj", FP_A, build_dir)
        assert artifacts.is_restorable("proj", FP_B) is False

    def test_missing_source_stores_nothing(self, artifacts, tmp_path):
        assert artifacts.store("proj", FP_A, tmp_path / "nope") is None
        assert artifacts.load_manifest("proj") is None

    def test_evicted_archive_not_restorable(self, artifacts, build_dir):
        artifacts.store("proj", FP_A, build_dir)
        (artifacts.root / "artifacts" / "proj" / DirectoryArtifactCache.ARCHIVE_NAME).unlink()
        assert artifacts.is_restorable("proj", FP_A) is False

    def test_tampered_archive_not_restorable(self, artifacts, build_dir):
        artifacts.store("proj", FP_A, build_dir)
        archive = artifacts.root / "artifacts" / "proj" / DirectoryArtifactCache.ARCHIVE_NAME
        data = bytearray(archive.read_bytes())
        data[-1] ^= 0xFF
        archive.write_bytes(bytes(data))
        assert artifacts.is_restorable("proj", FP_A) is False

    def test_broken_manifest_not_restorable(self, artifacts, build_dir):
        artifacts.store("proj", FP_A, build_dir)
        manifest = artifacts.root / "artifacts" / "proj" / DirectoryArtifactCache.MANIFEST_NAME
        manifest.write_text(json.dumps({"fingerprint": FP_A}))
        assert artifacts.is_restorable("proj", FP_A) is False

    def test_restore_rebuilds_outputs(self, artifacts, build_dir, tmp_path):
        artifacts.store("proj", FP_A, build_dir)
        dest = tmp_path / "checkout" / "Carthage" / "Build"
        artifacts.restore("proj", dest)
        assert (dest / "iOS" / "Alamofire.framework" / "Alamofire").read_bytes() == b"\x00binary"
        assert (dest / ".Alamofire.version").exists()

    def test_restore_replaces_stale_outputs(self, artifacts, build_dir):
        artifacts.store("proj", FP_A, build_dir)
        (build_dir / "stale.txt").write_text("old")
        artifacts.restore("proj", build_dir)
        assert not (build_dir / "stale.txt").exists()
        assert (build_dir / "iOS").is_dir()

    def test_restore_without_archive_raises(self, artifacts, tmp_path):
        with pytest.raises(CacheStoreError):
            artifacts.restore("proj", tmp_path / "Build")

    def test_restore_rejects_paths_outside_destination(self, artifacts, build_dir, tmp_path):
        artifacts.store("proj", FP_A, build_dir)
        archive = tmp_path / "cache" / "artifacts" / "proj" / DirectoryArtifactCache.ARCHIVE_NAME
        payload = b"escaped"
        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo("../../escaped.txt")
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))

        with pytest.raises(CacheStoreError):
            artifacts.restore("proj", tmp_path / "restored" / "Carthage" / "Build")
        assert list(tmp_path.rglob("escaped.txt")) == []

    def test_store_registers_with_host_cache(self, tmp_path, build_dir, monkeypatch):
        executor = FakeExecutor()
        registry = HostCacheRegistry(executor, environ={})
        monkeypatch.setattr(registry, "available", lambda: True)
        artifacts = DirectoryArtifactCache(tmp_path / "cache", registry=registry)

        artifacts.store("proj", FP_A, build_dir)

        assert len(executor.calls_for("envman", "add")) == 1


class TestHostCacheRegistry:

    def test_skips_without_envman(self, monkeypatch):
        executor = FakeExecutor()
        registry = HostCacheRegistry(executor, environ={})
        monkeypatch.setattr(registry, "available", lambda: False)
        assert registry.include("/cache") is False
        assert executor.calls == []

    def test_appends_to_existing_paths(self, monkeypatch):
        executor = FakeExecutor()
        environ = {HostCacheRegistry.INCLUDE_PATHS_KEY: "/other"}
        registry = HostCacheRegistry(executor, environ=environ)
        monkeypatch.setattr(registry, "available", lambda: True)

        assert registry.include("/cache", "/cache/manifest.json") is True

        args = executor.calls[0]["args"]
        assert args[:3] == ["add", "--key", HostCacheRegistry.INCLUDE_PATHS_KEY]
        assert args[4] == "/other\n/cache -> /cache/manifest.json"
        assert environ[HostCacheRegistry.INCLUDE_PATHS_KEY] == args[4]

    def test_envman_failure_raises(self, monkeypatch):
        executor = FakeExecutor({("envman", "add"): (1, "boom")})
        registry = HostCacheRegistry(executor, environ={})
        monkeypatch.setattr(registry, "available", lambda: True)
        with pytest.raises(CacheStoreError):
            registry.include("/cache")
