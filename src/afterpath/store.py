"""JSON-backed key/value store standing in for browser local storage.

Each key is persisted as its own JSON document under a data directory
and rewritten in full on every save.  Reads never fail: a missing key or
a value that does not parse into the expected shape resolves to the
caller's default.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PREFIX = "after_"


@lru_cache(maxsize=None)
def _adapter(schema: Any) -> TypeAdapter[Any]:
    return TypeAdapter(schema)


class KeyValueStore:
    """Durable key/value layer with JSON (de)serialization.

    Values are validated against a schema (a pydantic model, or any type
    pydantic can adapt such as ``list[Story]``) on load and dumped by
    alias on save, so the on-disk layout keeps its camelCase field names.
    """

    def __init__(self, directory: Path, prefix: str = DEFAULT_PREFIX) -> None:
        self._dir = Path(directory)
        self._prefix = prefix

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, key: str) -> Path:
        return self._dir / f"{self._prefix}{key}.json"

    # ── Raw access ───────────────────────────────────────────────

    def get_raw(self, key: str) -> str | None:
        """Return the stored text for *key*, or None when absent."""
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return None

    def set_raw(self, key: str, text: str) -> None:
        """Atomically replace the stored text for *key*."""
        path = self.path_for(key)
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    # ── Typed access ─────────────────────────────────────────────

    def load(self, key: str, schema: Any, default: Callable[[], T]) -> T:
        """Load *key* validated against *schema*.

        Returns ``default()`` if the key is absent or its content is not
        valid JSON of the expected shape.
        """
        raw = self.get_raw(key)
        if raw is None:
            return default()
        try:
            return _adapter(schema).validate_json(raw)
        except (ValidationError, ValueError):
            logger.warning("Corrupt value under %r, falling back to defaults", key)
            return default()

    def save(self, key: str, value: Any, schema: Any | None = None) -> None:
        """Serialize *value* and write it under *key*, replacing any previous value."""
        adapter = _adapter(schema if schema is not None else type(value))
        payload = adapter.dump_json(value, by_alias=True, indent=2)
        self.set_raw(key, payload.decode("utf-8"))

    # ── Flags ────────────────────────────────────────────────────

    def load_flag(self, key: str) -> bool:
        """Read a boolean marker; anything unreadable counts as unset."""
        raw = self.get_raw(key)
        if raw is None:
            return False
        try:
            return json.loads(raw) is True
        except json.JSONDecodeError:
            return False

    def save_flag(self, key: str, value: bool = True) -> None:
        self.set_raw(key, json.dumps(value))
