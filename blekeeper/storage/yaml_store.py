"""Key-value stores backed by a YAML document or plain memory."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from blekeeper.core.errors import StoreLoadError, StoreWriteError

LOGGER = logging.getLogger(__name__)


class YamlFileStore:
    """Persist a flat mapping of keys to YAML-serializable values in one file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def get(self, key: str) -> Any | None:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        try:
            document = self._read()
        except StoreLoadError as exc:
            LOGGER.warning("Replacing unreadable store %s: %s", self.path, exc)
            document = {}
        document[key] = value
        self._write(document)

    def _read(self) -> dict[str, Any]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StoreLoadError(f"Could not read store file {self.path}: {exc}") from exc

        try:
            loaded = yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise StoreLoadError(f"Invalid YAML in {self.path}: {exc}") from exc

        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise StoreLoadError(f"Store file {self.path} must contain a mapping at root")
        return loaded

    def _write(self, document: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    yaml.safe_dump(document, handle, default_flow_style=False, sort_keys=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, yaml.YAMLError) as exc:
            raise StoreWriteError(f"Could not write store file {self.path}: {exc}") from exc


class MemoryStore:
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> Any | None:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.writes += 1
        self.data[key] = value
