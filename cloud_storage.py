"""
Cloud storage — durable archive for completed exam attempts.

Uses CLOUD_STORAGE_BACKEND config to choose the backend:
  - "log" (default): logs the record and reports success
  - "filesystem": writes one JSON document per attempt under CLOUD_STORAGE_DIR

write() raises on failure; the sync pipeline records the error.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class CloudStorageError(Exception):
    """A durable write did not complete."""


class LogCloudStorage:
    name = "log"

    def write(self, attempt: dict) -> None:
        logger.info("CLOUD ARCHIVE [attempt=%s user=%s score=%s]",
                    attempt.get("id"), attempt.get("userId"), attempt.get("score"))


class FileCloudStorage:
    """One JSON file per attempt, grouped by user. Writes are atomic renames."""

    name = "filesystem"

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def path_for(self, attempt: dict) -> Path:
        return self.root / str(attempt.get("userId") or "anonymous") / f"{attempt['id']}.json"

    def write(self, attempt: dict) -> None:
        target = self.path_for(attempt)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(attempt, fh, sort_keys=True, indent=2)
            os.replace(tmp_name, target)
        except OSError as exc:
            raise CloudStorageError(f"Could not archive attempt {attempt.get('id')}: {exc}") from exc

    def read(self, attempt: dict) -> dict:
        with open(self.path_for(attempt), encoding="utf-8") as fh:
            return json.load(fh)


def get_cloud_storage(config) -> LogCloudStorage | FileCloudStorage:
    """Build the backend named by CLOUD_STORAGE_BACKEND."""
    backend = config.get("CLOUD_STORAGE_BACKEND", "log")
    if backend == "log":
        return LogCloudStorage()
    if backend == "filesystem":
        return FileCloudStorage(config.get("CLOUD_STORAGE_DIR", "cloud_archive"))
    raise ValueError(f"Unknown CLOUD_STORAGE_BACKEND: {backend}")
