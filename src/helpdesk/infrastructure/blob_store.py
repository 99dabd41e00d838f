"""
Named JSON blob persistence.

Knowledge stores keep their collections as whole JSON documents. Loading
a blob that does not exist yields an empty collection; saving replaces the
blob atomically (temp file + rename) so readers never see a partial write.
"""

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..domain.repositories import IBlobStore
from ..exceptions import BlobStoreError

logger = logging.getLogger(__name__)


def _empty(default: Any) -> Any:
    return [] if default is None else copy.deepcopy(default)


class JsonFileBlobStore(IBlobStore):
    """Blob store backed by one JSON file per blob in a directory."""

    def __init__(self, root_dir: Optional[str] = None):
        """
        Initialize the blob store.

        Args:
            root_dir: Directory holding the blobs (default: config data_dir).
        """
        if root_dir is None:
            from ..config import get_config

            root_dir = str(get_config().data_dir_resolved)
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise BlobStoreError(name, "invalid blob name")
        return self.root_dir / name

    def exists(self, name: str) -> bool:
        return self._path(name).exists()

    def load(self, name: str, default: Any = None) -> Any:
        """
        Load a blob.

        Args:
            name: Blob name (file name inside the root directory).
            default: Value returned when the blob is missing (default: []).

        Returns:
            Parsed JSON content.
        """
        path = self._path(name)
        if not path.exists():
            logger.debug(f"Blob '{name}' not found, starting empty")
            return _empty(default)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Blob '{name}' is not valid JSON, starting empty: {e}")
            return _empty(default)
        except OSError as e:
            raise BlobStoreError(name, f"read failed: {e}") from e

    def save(self, name: str, data: Any) -> None:
        """
        Overwrite a blob atomically.

        Args:
            name: Blob name.
            data: JSON-serializable content.
        """
        path = self._path(name)
        with self._lock:
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.root_dir), prefix=f".{name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, path)
            except (OSError, TypeError, ValueError) as e:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise BlobStoreError(name, f"write failed: {e}") from e


class InMemoryBlobStore(IBlobStore):
    """Blob store kept in a dict; used for tests and ephemeral deployments."""

    def __init__(self, blobs: Optional[Dict[str, Any]] = None):
        self._blobs: Dict[str, Any] = copy.deepcopy(blobs) if blobs else {}
        self.save_count = 0

    def exists(self, name: str) -> bool:
        return name in self._blobs

    def load(self, name: str, default: Any = None) -> Any:
        if name not in self._blobs:
            return _empty(default)
        return copy.deepcopy(self._blobs[name])

    def save(self, name: str, data: Any) -> None:
        # Round-trip through JSON so unserializable data fails like on disk
        try:
            self._blobs[name] = json.loads(json.dumps(data, ensure_ascii=False))
        except (TypeError, ValueError) as e:
            raise BlobStoreError(name, f"write failed: {e}") from e
        self.save_count += 1
