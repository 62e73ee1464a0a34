"""Key-value store for partially completed booking forms."""

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from clinic_os.scheduling.models import BookingDraft

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class DraftStore(ABC):
    """Externally owned persistence for booking drafts."""

    @abstractmethod
    def save(self, key: str, draft: BookingDraft) -> None:
        pass

    @abstractmethod
    def load(self, key: str) -> Optional[BookingDraft]:
        pass

    @abstractmethod
    def clear(self, key: str) -> None:
        pass


class InMemoryDraftStore(DraftStore):
    def __init__(self) -> None:
        self._drafts: dict[str, str] = {}

    def save(self, key: str, draft: BookingDraft) -> None:
        self._drafts[key] = draft.model_dump_json()

    def load(self, key: str) -> Optional[BookingDraft]:
        raw = self._drafts.get(key)
        return BookingDraft.model_validate_json(raw) if raw else None

    def clear(self, key: str) -> None:
        self._drafts.pop(key, None)


class JsonFileDraftStore(DraftStore):
    """One JSON file per draft key, written atomically."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    @classmethod
    def from_settings(cls, settings=None) -> "JsonFileDraftStore":
        from clinic_os.config import get_settings

        settings = settings or get_settings()
        return cls(settings.draft_dir)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_SAFE_KEY.sub('_', key)}.json"

    def save(self, key: str, draft: BookingDraft) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", delete=False, encoding="utf-8", dir=self.directory, suffix=".tmp"
        ) as tf:
            tf.write(draft.model_dump_json(indent=2))
            tmp_name = tf.name
        os.replace(tmp_name, self._path(key))

    def load(self, key: str) -> Optional[BookingDraft]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return BookingDraft.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValidationError) as e:
            # A corrupt draft shouldn't block the booking form; start fresh.
            logger.warning(f"Ignoring unreadable draft {path.name}: {e}")
            return None

    def clear(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
