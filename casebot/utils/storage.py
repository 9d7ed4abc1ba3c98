"""
File Storage Utilities

Best-effort JSON persistence for the session file, the summary cache and the
last-search results. Reads tolerate missing or corrupt files; write failures
are raised as PersistentIOError so callers can log and carry on.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import orjson
from pydantic import ValidationError

from casebot.utils.errors import PersistentIOError
from casebot.utils.schemas import CaseSummary, SearchHit, Session

logger = logging.getLogger(__name__)


def read_json(path: str | Path) -> Optional[Any]:
    """
    Read a JSON file.

    Args:
        path: File to read

    Returns:
        Decoded content, or None if the file is missing or unreadable
    """
    file_path = Path(path)
    if not file_path.is_file():
        return None
    try:
        return orjson.loads(file_path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable JSON file", extra={"file_path": str(file_path), "error": str(e)})
        return None


def write_json(path: str | Path, data: Any) -> None:
    """
    Write data as indented JSON, creating parent directories.

    Raises:
        PersistentIOError: If the file cannot be written
    """
    file_path = Path(path)
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
    except OSError as e:
        raise PersistentIOError(f"Failed to write {file_path}: {e}") from e


class SessionStore:
    """Session file holding the last-obtained token, device id and IP."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Session]:
        data = read_json(self.path)
        if not isinstance(data, dict):
            return None
        try:
            return Session(**data)
        except ValidationError as e:
            logger.warning("Discarding malformed session file", extra={"file_path": str(self.path), "error": str(e)})
            return None

    def save(self, session: Session) -> None:
        write_json(self.path, session.model_dump(mode="json"))

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove session file", extra={"file_path": str(self.path), "error": str(e)})


class SummaryCache:
    """
    Mapping of document id to generated summary, backed by a JSON file.

    Consulted before any summarization call so re-runs are idempotent.
    `writes` counts successful saves during this process.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.writes = 0
        self._entries: dict[str, CaseSummary] = {}
        self.reload()

    def reload(self) -> None:
        data = read_json(self.path)
        self._entries = {}
        if not isinstance(data, dict):
            return
        for case_id, entry in data.items():
            try:
                self._entries[str(case_id)] = CaseSummary(**entry)
            except (TypeError, ValidationError):
                logger.warning("Skipping malformed cached summary", extra={"case_id": case_id})

    def __contains__(self, case_id: str) -> bool:
        return case_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, case_id: str) -> Optional[CaseSummary]:
        return self._entries.get(case_id)

    def put(self, case_id: str, summary: CaseSummary) -> None:
        self._entries[case_id] = summary

    def all(self) -> dict[str, CaseSummary]:
        return dict(self._entries)

    def save(self) -> None:
        """Persist the cache. Raises PersistentIOError on failure."""
        write_json(self.path, {k: v.model_dump() for k, v in self._entries.items()})
        self.writes += 1


class LastSearchStore:
    """Results of the most recent CLI search, for `download-all`."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> list[SearchHit]:
        data = read_json(self.path)
        if not isinstance(data, list):
            return []
        return [SearchHit(**item) for item in data if isinstance(item, dict)]

    def save(self, hits: list[SearchHit]) -> None:
        write_json(self.path, [hit.model_dump() for hit in hits])
