"""
Bundled-Seed Loader — first-launch import of the question bank shipped
with the app.

The bundle is loaded at most once (BUNDLED_VERSION marks it). Bundled rows
never overwrite questions already present, and the sync watermark is seeded
from the bundle only when no sync has happened yet, so incremental pulls
start after the bundled content.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from errors import DataCorruptionError
from local_store import LocalStore
from models import BUNDLED_VERSION, LAST_SYNC_VERSION, Question
from question_codec import question_from_dict

logger = logging.getLogger(__name__)


@dataclass
class BundleLoadResult:
    loaded: bool
    count: int
    version: Optional[int] = None


@dataclass
class QuestionBundle:
    version: int
    exam_type_id: str
    generated_at: str
    questions: list[Question]


def read_bundle(path: Path | str) -> QuestionBundle:
    """Parse and validate a bundle file. Raises DataCorruptionError."""
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except OSError as exc:
        raise DataCorruptionError(f"Cannot read question bundle {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise DataCorruptionError(f"Question bundle {path} is not valid JSON: {exc}") from exc
    return parse_bundle(data)


def parse_bundle(data: dict) -> QuestionBundle:
    if not isinstance(data, dict):
        raise DataCorruptionError("Question bundle must be a JSON object")
    try:
        version = int(data["version"])
        items = data["questions"]
    except (KeyError, TypeError, ValueError) as exc:
        raise DataCorruptionError(f"Question bundle header is malformed: {exc!r}") from exc
    if not isinstance(items, list):
        raise DataCorruptionError("Question bundle 'questions' must be a list")
    return QuestionBundle(
        version=version,
        exam_type_id=str(data.get("examTypeId", "")),
        generated_at=str(data.get("generatedAt", "")),
        questions=[question_from_dict(item) for item in items],
    )


class BundleLoader:
    def __init__(self, store: LocalStore, bundle_path: Path | str | None = None,
                 bundle: QuestionBundle | None = None):
        if bundle_path is None and bundle is None:
            raise ValueError("BundleLoader needs a bundle_path or a bundle")
        self.store = store
        self.bundle_path = bundle_path
        self._bundle = bundle

    def _get_bundle(self) -> QuestionBundle:
        if self._bundle is None:
            self._bundle = read_bundle(self.bundle_path)
        return self._bundle

    def is_bundle_loaded(self) -> bool:
        return self.store.get_meta(BUNDLED_VERSION) is not None

    def get_bundled_version(self) -> int | None:
        return self.store.get_meta_int(BUNDLED_VERSION)

    def load_bundled_questions(self) -> BundleLoadResult:
        """Import the bundle if it has not been imported before.

        Inserts only questions whose id is absent, records BUNDLED_VERSION,
        and sets LAST_SYNC_VERSION to the bundle version when unset.
        """
        if self.is_bundle_loaded():
            logger.debug("Bundle already loaded (v%s); skipping", self.get_bundled_version())
            return BundleLoadResult(loaded=False, count=0)

        bundle = self._get_bundle()
        inserted = self.store.insert_questions_if_absent(bundle.questions)
        self.store.set_meta(BUNDLED_VERSION, bundle.version)
        seeded = self.store.set_meta_if_absent(LAST_SYNC_VERSION, bundle.version)

        logger.info(
            "Loaded bundle v%d: %d of %d questions inserted%s",
            bundle.version, inserted, len(bundle.questions),
            ", sync watermark seeded" if seeded else "",
        )
        return BundleLoadResult(loaded=True, count=inserted, version=bundle.version)
