"""xcconfig override resolution: local paths, file:// and http(s) URLs."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from typing import List, Optional
from urllib.parse import urlparse

import requests

from step.errors import ConfigResolutionError

logger = logging.getLogger(__name__)


class FileProvider:
    """
    Turns a step input into a path on the local disk.

    Downloads without a download_dir land in a temporary directory that
    lives until cleanup() is called.
    """

    DEFAULT_TIMEOUT = 30

    def __init__(self, session: Optional[requests.Session] = None, download_dir: str = None, timeout: int = None):
        self.session = session or requests.Session()
        self.download_dir = download_dir
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._temp_dirs: List[str] = []

    def local_path(self, path: str) -> str:
        if path.startswith("file://"):
            return path[len("file://"):]
        if path.startswith(("http://", "https://")):
            return self._download(path)
        return path

    def cleanup(self) -> None:
        while self._temp_dirs:
            path = self._temp_dirs.pop()
            shutil.rmtree(path, ignore_errors=True)
            logger.debug(f"Removed {path}")

    def _download(self, url: str) -> str:
        name = os.path.basename(urlparse(url).path) or "config.xcconfig"
        target_dir = self.download_dir
        if not target_dir:
            target_dir = tempfile.mkdtemp(prefix="xcconfig-")
            self._temp_dirs.append(target_dir)
        target = os.path.join(target_dir, name)

        logger.info(f"Downloading {url}")
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as resp:
                resp.raise_for_status()
                with open(target, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=65536):
                        f.write(chunk)
        except requests.RequestException as e:
            raise ConfigResolutionError(url, f"download failed: {e}") from e
        except OSError as e:
            raise ConfigResolutionError(url, f"cannot write {target}: {e}") from e

        logger.debug(f"Downloaded {url} to {target}")
        return target


def resolve_xcconfig_path(path_from_input: str, path_from_env: str, file_provider: FileProvider) -> str:
    """
    Pick the xcconfig to hand to carthage.

    The step input wins over XCODE_XCCONFIG_FILE; when both are set a
    warning is logged once.
    """
    path_to_use = ""
    if path_from_input:
        path_to_use = file_provider.local_path(path_from_input)

    if path_from_env:
        if path_to_use:
            logger.warning("Both `xcconfig` input and `XCODE_XCCONFIG_FILE` are set. Using `xcconfig` input.")
        else:
            path_to_use = path_from_env

    return path_to_use
