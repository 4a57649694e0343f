#!/usr/bin/env python3
"""
Unit tests for xcconfig override resolution
"""

import logging
import os
from unittest.mock import MagicMock

import pytest
import requests

from step.errors import ConfigResolutionError
from step.xcconfig import FileProvider, resolve_xcconfig_path


def _session_returning(chunks=None, error=None):
    response = MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    if error is not None:
        response.raise_for_status.side_effect = error
    response.iter_content.return_value = chunks or []
    session = MagicMock()
    session.get.return_value = response
    return session


class TestFileProvider:

    def test_local_path_unchanged(self):
        assert FileProvider(session=MagicMock()).local_path("/ci/override.xcconfig") == "/ci/override.xcconfig"

    def test_file_url(self):
        assert FileProvider(session=MagicMock()).local_path("file:///ci/override.xcconfig") == "/ci/override.xcconfig"

    def test_download(self, tmp_path):
        session = _session_returning([b"EXCLUDED_ARCHS = ", b"arm64\n"])
        provider = FileProvider(session=session, download_dir=str(tmp_path))

        path = provider.local_path("https://example.com/configs/override.xcconfig")

        assert path == str(tmp_path / "override.xcconfig")
        assert (tmp_path / "override.xcconfig").read_text() == "EXCLUDED_ARCHS = arm64\n"
        assert session.get.call_args.kwargs["timeout"] == FileProvider.DEFAULT_TIMEOUT

    def test_download_failure(self, tmp_path):
        session = _session_returning(error=requests.HTTPError("404 Client Error"))
        provider = FileProvider(session=session, download_dir=str(tmp_path))
        with pytest.raises(ConfigResolutionError) as exc_info:
            provider.local_path("https://example.com/missing.xcconfig")
        assert exc_info.value.path == "https://example.com/missing.xcconfig"

    def test_connection_error(self, tmp_path):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("unreachable")
        provider = FileProvider(session=session, download_dir=str(tmp_path))
        with pytest.raises(ConfigResolutionError):
            provider.local_path("http://example.com/o.xcconfig")

    def test_cleanup_removes_temporary_downloads(self):
        provider = FileProvider(session=_session_returning([b"EXCLUDED_ARCHS = arm64\n"]))
        path = provider.local_path("https://example.com/configs/override.xcconfig")
        assert os.path.isfile(path)

        provider.cleanup()

        assert not os.path.exists(os.path.dirname(path))

    def test_cleanup_keeps_download_dir(self, tmp_path):
        provider = FileProvider(session=_session_returning([b"x"]), download_dir=str(tmp_path))
        path = provider.local_path("https://example.com/override.xcconfig")
        provider.cleanup()
        assert os.path.isfile(path)


class TestResolveXcconfigPath:

    def test_explicit_wins_with_one_warning(self, caplog):
        provider = FileProvider(session=MagicMock())
        with caplog.at_level(logging.WARNING, logger="step.xcconfig"):
            path = resolve_xcconfig_path("/input.xcconfig", "/env.xcconfig", provider)
        assert path == "/input.xcconfig"
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1

    def test_env_only(self, caplog):
        with caplog.at_level(logging.WARNING, logger="step.xcconfig"):
            path = resolve_xcconfig_path("", "/env.xcconfig", FileProvider(session=MagicMock()))
        assert path == "/env.xcconfig"
        assert caplog.records == []

    def test_input_only(self):
        assert resolve_xcconfig_path("/input.xcconfig", "", FileProvider(session=MagicMock())) == "/input.xcconfig"

    def test_neither(self):
        assert resolve_xcconfig_path("", "", FileProvider(session=MagicMock())) == ""
