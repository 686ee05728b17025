"""JSON document storage shared by the atelier stores."""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from .errors import InvalidSchemaVersionError, PersistenceError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Local data directory within the atelier project
# Can be overridden via ATELIER_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"
DATA_DIR = Path(os.environ.get("ATELIER_DATA_DIR", _default_data_dir))


class JsonDocumentStore:
    """
    A single JSON file holding one collection of records.

    Every mutation is a read-modify-write under an exclusive file lock,
    written to a temp file and renamed into place. Readers never see a
    half-written file and two writers never interleave.
    """

    filename: str = ""
    collection: str = ""

    def __init__(self, config_dir: Path | None = None):
        """
        Initialize the store.

        Args:
            config_dir: Override data directory (for testing).
        """
        self.config_dir = Path(config_dir) if config_dir is not None else DATA_DIR
        self.config_path = self.config_dir / self.filename

    def _ensure_dir(self) -> None:
        """Ensure data directory exists."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(str(self.config_dir), str(e)) from e

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the data file for read-modify-write operations."""
        self._ensure_dir()
        lock_path = self.config_dir / f".{self.collection}.lock"
        try:
            lock_file = open(lock_path, "w")
        except OSError as e:
            raise PersistenceError(str(lock_path), str(e)) from e
        with lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _empty(self) -> dict[str, Any]:
        return {"schema_version": SCHEMA_VERSION, self.collection: []}

    def _load_data(self) -> dict[str, Any]:
        """Load data from disk."""
        if not self.config_path.exists():
            return self._empty()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(str(self.config_path), str(e)) from e

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)
        data.setdefault(self.collection, [])
        return data

    def _save_data(self, data: dict[str, Any]) -> None:
        """Save data to disk atomically."""
        self._ensure_dir()

        try:
            fd, temp_path = tempfile.mkstemp(
                dir=self.config_dir, prefix=f".{self.collection}_", suffix=".tmp"
            )
        except OSError as e:
            raise PersistenceError(str(self.config_dir), str(e)) from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.config_path)
        except (OSError, TypeError, ValueError) as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise PersistenceError(str(self.config_path), str(e)) from e

    def _records(self) -> list[dict[str, Any]]:
        return self._load_data()[self.collection]

    @staticmethod
    def _find(records: list[dict[str, Any]], record_id: str) -> int | None:
        for i, record in enumerate(records):
            if record.get("id") == record_id:
                return i
        return None
