"""Flat-file medium: one minified JSON snapshot per index.

The working set lives in memory (``MemoryIndexStore``); after every mutation
the affected index is rewritten atomically (temp file + rename), so a crash
leaves either the previous or the new snapshot on disk, never a mix.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, cast
from urllib.parse import quote

import orjson

from site_search.search.errors import StorageFailure
from site_search.search.storage import MemoryIndexStore


logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".index.json"


def _load_json_payload(path: Path) -> dict[str, Any]:
    return cast("dict[str, Any]", orjson.loads(path.read_bytes()))


class FileIndexStore(MemoryIndexStore):
    """Memory medium persisted as JSON snapshots under ``directory``."""

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._load_snapshots()
        except (OSError, orjson.JSONDecodeError) as exc:
            raise StorageFailure(
                f"Failed to load index snapshots from {self.directory}: {exc}", operation="open"
            ) from exc

    def _snapshot_path(self, index_handle: str) -> Path:
        return self.directory / f"{quote(index_handle, safe='')}{SNAPSHOT_SUFFIX}"

    def _load_snapshots(self) -> None:
        for path in sorted(self.directory.glob(f"*{SNAPSHOT_SUFFIX}")):
            payload = _load_json_payload(path)
            index_handle = payload.get("index_handle")
            if not index_handle:
                logger.warning("Skipping snapshot without index handle: %s", path)
                continue
            self._import_state(index_handle, payload)
            logger.debug("Loaded index snapshot %s", path)

    def _after_mutation(self, index_handle: str) -> None:
        payload = {"index_handle": index_handle, **self._export_state(index_handle)}
        path = self._snapshot_path(index_handle)
        try:
            self._atomic_write_json(path, payload)
        except OSError as exc:
            # Drop the in-memory state so it is reloaded from the last good snapshot
            self._reload(index_handle, path)
            raise StorageFailure(f"Failed to write index snapshot {path}: {exc}", operation="write") from exc

    def _reload(self, index_handle: str, path: Path) -> None:
        self._indices.pop(index_handle, None)
        if path.exists():
            self._import_state(index_handle, _load_json_payload(path))

    def _atomic_write_json(self, path: Path, payload: Any) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(orjson.dumps(payload))
        tmp_path.replace(path)
