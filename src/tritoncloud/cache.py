"""Per-profile on-disk JSON cache.

The cache is advisory: reads that fail are misses, writes that fail are logged
and dropped. Corrupt entries are deleted when read.
"""

import json
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

from tritoncloud.logger import get_logger

logger = get_logger(__name__)


class ArtifactCache:
    """JSON blobs keyed by file name in one directory."""

    def __init__(self, directory: Path, clock: Callable[[], float] = time.time) -> None:
        self.directory = Path(directory)
        self._clock = clock

    def _key_path(self, key: str) -> Path:
        if not key or "/" in key or key.startswith("."):
            raise ValueError(f"invalid cache key: {key!r}")
        return self.directory / key

    def get_json(self, key: str, ttl: Optional[float] = None) -> Optional[Any]:
        """
        Read a cached value.

        Args:
            key: File name of the entry, e.g. ``images.json``
            ttl: Maximum age in seconds; None accepts any age

        Returns:
            The cached value, or None on a miss
        """
        path = self._key_path(key)
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            logger.debug("cache miss", key=key)
            return None
        except OSError as e:
            logger.warning("error reading cache file", path=str(path), error=str(e))
            return None

        age = self._clock() - mtime
        if ttl is not None and age > ttl:
            logger.debug("cache entry stale", key=key, age=round(age))
            return None

        try:
            data = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("error reading cache file", path=str(path), error=str(e))
            return None

        try:
            return json.loads(data)
        except ValueError as e:
            logger.warning("corrupt cache file, deleting", path=str(path), error=str(e))
            self.delete(key)
            return None

    def put_json(self, key: str, value: Any) -> None:
        """Write a value atomically. Failures are logged, never raised."""
        path = self._key_path(key)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.directory, prefix=f".{key}.", delete=False
            ) as f:
                tmp_name = f.name
                json.dump(value, f)
            os.replace(tmp_name, path)
            tmp_name = None
            logger.debug("cached", key=key)
        except (OSError, TypeError, ValueError) as e:
            logger.info("error caching", path=str(path), error=str(e))
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def delete(self, key: str) -> None:
        try:
            self._key_path(key).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("could not delete cache file", key=key, error=str(e))
