"""
Device-local attempted-question tracking for guests.

Guests never reach the server. Their attempted ids live in a key-value store
on the device, one JSON array per subject under "<prefix><subject_id>".
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from question_engine.core.config import settings
from question_engine.selection.ledger import AttemptedLedger, unique_ids

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """String key-value store in the shape of browser localStorage."""

    @abstractmethod
    def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove_item(self, key: str) -> None: ...

    @abstractmethod
    def keys(self) -> list[str]: ...


class MemoryStorage(KeyValueStorage):
    """In-process storage. Lost when the process exits."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileStorage(KeyValueStorage):
    """
    Storage persisted as a single JSON object in a device directory.

    Writes replace the file atomically. A file that cannot be parsed is
    treated as empty and overwritten on the next write.
    """

    FILENAME = "storage.json"

    def __init__(self, directory: Path | str | None = None):
        self.directory = Path(directory) if directory is not None else settings.GUEST_STORAGE_DIR
        self.path = self.directory / self.FILENAME

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(
                f"Unreadable guest storage at {self.path}, treating as empty",
                extra={"event": "guest_storage_corrupt", "path": str(self.path), "error": str(e)},
            )
            return {}
        if not isinstance(data, dict):
            logger.warning(
                f"Guest storage at {self.path} is not an object, treating as empty",
                extra={"event": "guest_storage_corrupt", "path": str(self.path)},
            )
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, items: dict[str, str]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".storage-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._save(items)

    def keys(self) -> list[str]:
        return list(self._load())


@dataclass
class GuestTrackingStats:
    """Summary of what a device has tracked."""

    subjects_with_tracking: int = 0
    total_questions_tracked: int = 0
    subjects: list[tuple[str, int]] = field(default_factory=list)


class GuestLedger(AttemptedLedger):
    """Ledger for guests. user_id is accepted for parity and ignored."""

    def __init__(self, storage: KeyValueStorage | None = None, prefix: str | None = None):
        self.storage = storage if storage is not None else JsonFileStorage()
        self.prefix = prefix or settings.GUEST_STORAGE_PREFIX

    def storage_key(self, subject_id: str) -> str:
        return f"{self.prefix}{subject_id}"

    def _read(self, subject_id: str) -> list[str]:
        key = self.storage_key(subject_id)
        raw = self.storage.get_item(key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(
                f"Corrupt guest tracking for subject {subject_id}, treating as empty",
                extra={"event": "guest_tracking_corrupt", "subject_id": subject_id},
            )
            return []
        if not isinstance(data, list):
            logger.warning(
                f"Guest tracking for subject {subject_id} is not a list, treating as empty",
                extra={"event": "guest_tracking_corrupt", "subject_id": subject_id},
            )
            return []
        return unique_ids(item for item in data if isinstance(item, str) and item)

    def _write(self, subject_id: str, question_ids: list[str]) -> None:
        self.storage.set_item(self.storage_key(subject_id), json.dumps(question_ids))

    async def get_attempted(self, user_id: str | None, subject_id: str) -> set[str]:
        return set(self._read(subject_id))

    async def record(self, user_id: str | None, subject_id: str, question_ids: Iterable[str]) -> int:
        ids = [q for q in unique_ids(question_ids) if q]
        if not ids:
            return 0
        current = self._read(subject_id)
        merged = unique_ids([*current, *ids])
        if len(merged) != len(current):
            self._write(subject_id, merged)
        return len(ids)

    async def reset(self, user_id: str | None, subject_id: str) -> int:
        removed = len(self._read(subject_id))
        self.storage.remove_item(self.storage_key(subject_id))
        return removed

    async def count_attempted(self, user_id: str | None, subject_id: str) -> int:
        return len(self._read(subject_id))

    def tracked_subject_ids(self) -> list[str]:
        return [key[len(self.prefix):] for key in self.storage.keys() if key.startswith(self.prefix)]

    def clear_all(self) -> int:
        """Remove tracking for every subject. Returns the number of subjects cleared."""
        subject_ids = self.tracked_subject_ids()
        for subject_id in subject_ids:
            self.storage.remove_item(self.storage_key(subject_id))
        return len(subject_ids)

    def tracking_stats(self) -> GuestTrackingStats:
        stats = GuestTrackingStats()
        for subject_id in self.tracked_subject_ids():
            count = len(self._read(subject_id))
            stats.subjects.append((subject_id, count))
            stats.total_questions_tracked += count
        stats.subjects_with_tracking = len(stats.subjects)
        return stats
