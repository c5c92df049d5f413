"""Device-local key/value storage."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Iterable, Mapping

import structlog

from ..exceptions import PersistenceError

logger = structlog.get_logger(__name__)


class JsonFileStorage:
    """String key/value storage kept in one JSON file.

    Every mutation rewrites the whole file through a temporary file and
    ``os.replace`` so a crash leaves either the old or the new content on disk,
    never a mix of both. Values are cached in memory after the first read;
    this process is the only writer.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._values: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, str]) -> None:
        updated = dict(self._load())
        updated.update({str(key): str(value) for key, value in values.items()})
        self._write(updated)

    def remove_many(self, keys: Iterable[str]) -> None:
        current = self._load()
        doomed = set(keys)
        updated = {key: value for key, value in current.items() if key not in doomed}
        if len(updated) == len(current):
            return
        self._write(updated)

    def _load(self) -> dict[str, str]:
        if self._values is not None:
            return self._values
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._values = {}
            return self._values
        except OSError as exc:
            raise PersistenceError(f"local storage unreadable: {self._path}") from exc
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            logger.warning("storage.local.corrupt", path=str(self._path))
            data = {}
        if not isinstance(data, dict):
            data = {}
        self._values = {str(key): str(value) for key, value in data.items()}
        return self._values

    def _write(self, values: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", dir=str(self._path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(values, handle, sort_keys=True, ensure_ascii=False)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"local storage write failed: {self._path}") from exc
        self._values = values


__all__ = ["JsonFileStorage"]
