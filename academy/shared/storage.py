"""Artifact storage for rendered certificates and template assets."""

from __future__ import annotations

import logging
import os
import tempfile

from flask import current_app

logger = logging.getLogger(__name__)


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data: bytes) -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path)
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


class ArtifactStoreError(RuntimeError):
    """Raised when an artifact cannot be persisted."""


class LocalArtifactStore:
    """Filesystem-backed store keyed by relative paths.

    ``put`` returns the key to persist on the owning row; ``get`` turns a key
    into a public URL served by the front proxy; ``delete`` is best-effort.
    """

    def __init__(self, root: str, public_base_url: str):
        self.root = root
        self.public_base_url = public_base_url.rstrip("/")

    def _path_for(self, key: str) -> str | None:
        raw = (key or "").strip().lstrip("/")
        if not raw:
            return None
        root_real = os.path.realpath(self.root)
        resolved = os.path.realpath(os.path.join(root_real, raw))
        if resolved == root_real or not resolved.startswith(f"{root_real}{os.sep}"):
            return None
        return resolved

    def put(self, data: bytes, key: str, content_type: str) -> str:
        path = self._path_for(key)
        if not path:
            raise ArtifactStoreError(f"Invalid artifact key: {key!r}")
        try:
            write_atomic(path, data)
            os.chmod(path, 0o644)  # world-readable for the proxy
        except OSError as exc:
            raise ArtifactStoreError(f"Failed to store {key}: {exc}") from exc
        logger.info("[ARTIFACT] stored key=%s type=%s bytes=%s", key, content_type, len(data))
        return key.lstrip("/")

    def get(self, key: str | None) -> str | None:
        path = self._path_for(key or "")
        if not path or not os.path.isfile(path):
            return None
        return f"{self.public_base_url}/{key.lstrip('/')}"

    def read(self, key: str | None) -> bytes | None:
        path = self._path_for(key or "")
        if not path or not os.path.isfile(path):
            return None
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError:
            logger.warning("[ARTIFACT] read failed key=%s", key, exc_info=True)
            return None

    def delete(self, key: str | None) -> bool:
        path = self._path_for(key or "")
        if not path:
            return False
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError:
            logger.warning("[ARTIFACT] delete failed key=%s", key, exc_info=True)
            return False
        return True

    def iter_keys(self, prefix: str = ""):
        base = self._path_for(prefix) if prefix else os.path.realpath(self.root)
        if not base or not os.path.isdir(base):
            return
        root_real = os.path.realpath(self.root)
        for dirpath, _, filenames in os.walk(base):
            for name in filenames:
                full = os.path.join(dirpath, name)
                yield os.path.relpath(full, root_real).replace(os.sep, "/")


def get_artifact_store() -> LocalArtifactStore:
    return current_app.extensions["academy.artifacts"]
