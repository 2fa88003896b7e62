"""
Durable key-value store for the editor's three slots.

Reads never raise: an unavailable medium, a missing key or a corrupt value
all come back as ``Fallback`` carrying the caller's default. Writes are
best-effort and swallow failures.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

PROFILE_KEY = "profile"
DRAFT_KEY = "draft"
COLLECTION_KEY = "collection"

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Fallback(Generic[T]):
    value: T
    reason: str


ReadResult = Ok[T] | Fallback[T]


@dataclass(frozen=True)
class FileMedium:
    """One JSON document per key under ``directory``."""
    directory: Path

    def path_for(self, key: str) -> Path:
        return Path(self.directory) / f"{key}.json"


@dataclass(frozen=True)
class NoMedium:
    """No persistence backend in this execution context."""


Medium = FileMedium | NoMedium


def _to_jsonable(value: Any) -> Any:
    return TypeAdapter(Any).dump_python(value, mode="json")


class KeyValueStore:
    def __init__(self, medium: Medium):
        self.medium = medium

    def read_result(self, key: str, fallback: T, schema: Optional[TypeAdapter] = None) -> ReadResult:
        if isinstance(self.medium, NoMedium):
            return Fallback(fallback, "medium unavailable")

        path = self.medium.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No stored value for %r", key)
            return Fallback(fallback, "absent")
        except OSError as e:
            logger.warning("Could not read %r: %s", key, e)
            return Fallback(fallback, "unreadable")

        try:
            data = json.loads(raw)
            if schema is not None:
                data = schema.validate_python(data)
        except (ValueError, ValidationError) as e:
            logger.warning("Stored value for %r is malformed, using default: %s", key, e)
            return Fallback(fallback, "malformed")

        return Ok(data)

    def read(self, key: str, fallback: T, schema: Optional[TypeAdapter] = None) -> T:
        return self.read_result(key, fallback, schema).value

    def write(self, key: str, value: Any) -> bool:
        if isinstance(self.medium, NoMedium):
            return False

        path = self.medium.path_for(key)
        try:
            payload = json.dumps(_to_jsonable(value), ensure_ascii=False)
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not persist %r: %s", key, e)
            return False
        return True
