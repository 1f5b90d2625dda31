"""
Local JSON File Storage Implementation

DESIGN DECISION: A single JSON document holds the whole graph because:
1. The data volume of a personal journal is small
2. The file is human-readable and trivially backed up
3. An atomic replace gives all-or-nothing writes without a database

Writes go to a temporary file in the same directory, are fsynced and then
moved over the target with os.replace, so a crash mid-write leaves the
previous graph intact.
"""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from money_conversations.config import get_settings
from money_conversations.models.entities import GraphSnapshot
from money_conversations.services.storage.interface import (
    CorruptStoreError,
    GraphBackend,
    StorageError,
)

logger = structlog.get_logger(__name__)


class JsonFileBackend(GraphBackend):
    """Persists the entity graph as one JSON file."""

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else get_settings().store.graph_path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> GraphSnapshot:
        if not self._path.exists():
            logger.info("graph_file_missing", path=str(self._path))
            return GraphSnapshot()

        try:
            raw = self._path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise CorruptStoreError(
                f"Stored graph at {self._path} is not valid UTF-8: {e.reason}"
            ) from e
        except OSError as e:
            raise StorageError(f"Failed to read {self._path}: {e}") from e

        if not raw.strip():
            return GraphSnapshot()

        try:
            return GraphSnapshot.model_validate_json(raw)
        except PydanticValidationError as e:
            raise CorruptStoreError(
                f"Stored graph at {self._path} is invalid: "
                f"{e.error_count()} errors"
            ) from e

    def save(self, snapshot: GraphSnapshot) -> None:
        stamped = snapshot.model_copy(
            update={"saved_at": datetime.now(timezone.utc)}
        )
        payload = stamped.model_dump_json(indent=2)

        tmp_name = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as e:
            raise StorageError(f"Failed to write {self._path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug(
            "graph_saved",
            path=str(self._path),
            conversations=len(snapshot.conversations),
            contacts=len(snapshot.contacts),
            categories=len(snapshot.categories),
            template_phrases=len(snapshot.template_phrases),
        )
