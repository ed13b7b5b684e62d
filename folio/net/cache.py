"""On-disk cache for rendered diagrams.

Entries live under ``{cache_dir}/{digest[:2]}/{digest}``: a ``.bin`` file
with the payload and a ``.json`` sidecar recording when it was stored and
the response headers it came with. Keys are hashed, so any string works.
"""

import hashlib
import json
import logging
import os
import shutil
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PAYLOAD = ".bin"
SIDECAR = ".json"


class DiskCache:
    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Read-only checkouts (CI images, sandboxes) still get a working cache.
            fallback = Path(os.getenv("FOLIO_CACHE_DIR_FALLBACK", "/tmp/folio-cache"))
            logger.warning("Cache dir %s unusable (%s), using %s", cache_dir, e, fallback)
            self.cache_dir = fallback
            self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _entry(self, key: str) -> Path:
        """Entry path without suffix."""
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.cache_dir / digest[:2] / digest

    def _stored_at(self, entry: Path) -> datetime | None:
        try:
            meta = json.loads(entry.with_suffix(SIDECAR).read_text(encoding="utf-8"))
            return datetime.fromisoformat(meta["stored_at"])
        except (OSError, KeyError, ValueError):
            return None

    def get(self, key: str, max_age_seconds: int | None = None) -> bytes | None:
        """Payload for `key`, or None when missing or older than `max_age_seconds`.

        Entries without a readable timestamp never expire.
        """
        entry = self._entry(key)
        payload = entry.with_suffix(PAYLOAD)
        if not payload.is_file():
            return None
        if max_age_seconds is not None:
            stored_at = self._stored_at(entry)
            if stored_at is not None and (datetime.now(UTC) - stored_at).total_seconds() > max_age_seconds:
                logger.debug("Cache entry for %s expired", key)
                return None
        return payload.read_bytes()

    def put(self, key: str, content: bytes, headers: dict[str, Any] | None = None) -> None:
        """Store `content`. Write failures are logged, never raised."""
        entry = self._entry(key)
        meta = {
            "key": key,
            "stored_at": datetime.now(UTC).isoformat(),
            "size": len(content),
            "headers": headers or {},
        }
        try:
            entry.parent.mkdir(parents=True, exist_ok=True)
            _write_atomic(entry.with_suffix(PAYLOAD), content)
            _write_atomic(entry.with_suffix(SIDECAR), json.dumps(meta, indent=2, sort_keys=True).encode("utf-8"))
        except OSError as e:
            logger.warning("Could not cache %s: %s", key, e)

    def exists(self, key: str) -> bool:
        return self._entry(key).with_suffix(PAYLOAD).is_file()

    def clear(self, key: str) -> bool:
        """Drop one entry; True if there was a payload to drop."""
        entry = self._entry(key)
        entry.with_suffix(SIDECAR).unlink(missing_ok=True)
        payload = entry.with_suffix(PAYLOAD)
        if not payload.is_file():
            return False
        payload.unlink()
        return True

    def clear_all(self) -> int:
        """Empty the cache directory and return how many entries it held."""
        count = len(self._payloads())
        shutil.rmtree(self.cache_dir, ignore_errors=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return count

    def stats(self) -> tuple[int, int]:
        """(entries, payload bytes)"""
        payloads = self._payloads()
        return len(payloads), sum(p.stat().st_size for p in payloads)

    def _payloads(self) -> list[Path]:
        return [p for p in self.cache_dir.rglob(f"*{PAYLOAD}") if p.is_file()]


def _write_atomic(path: Path, data: bytes) -> None:
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(data)
    os.replace(tmp, path)
