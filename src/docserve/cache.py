"""Write-through render cache on disk.

Rendered pages are written to ``<public_root>/<request path>.html`` so that a
static file layer running ahead of the application can serve them directly;
identical requests then never reach docserve at all. There is no expiry:
invalidation means an operator deleting the file.

All file operations catch ``OSError`` internally and degrade gracefully: read
failures return ``None`` (treated as cache miss by callers), write failures
are logged and ignored (the rendered page is still returned). Cache errors
never cross the RenderCache class boundary. They are logged with
``exc_info=True`` so they remain observable.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

import structlog

log = structlog.get_logger()


class RenderCache:
    def __init__(self, public_root: str | Path, enabled: bool) -> None:
        self.public_root = Path(public_root)
        self.enabled = enabled

    def path_for(self, request_path: str) -> Path | None:
        """Map a request path to its cache file. ``None`` for unsafe paths."""
        key = request_path.strip("/") or "index"
        if any(part in ("", ".", "..") for part in key.split("/")):
            return None
        return self.public_root / f"{key}.html"

    def get(self, request_path: str) -> bytes | None:
        """Read a cached page. Returns ``None`` on miss, read failure or when disabled."""
        if not self.enabled:
            return None
        path = self.path_for(request_path)
        if path is None:
            return None
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError:
            log.warning("cache_read_error", path=request_path, exc_info=True)
            return None

    def put(self, request_path: str, body: bytes) -> None:
        """Publish a rendered page. Non-fatal on failure; no-op when disabled."""
        if not self.enabled:
            return
        path = self.path_for(request_path)
        if path is None:
            log.warning("cache_key_rejected", path=request_path)
            return
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Readers (including the static layer) must never see a partial file.
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(body)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, path)
            tmp_name = None
            log.debug("cache_write", path=request_path, bytes=len(body))
        except OSError:
            log.warning("cache_write_error", path=request_path, exc_info=True)
        finally:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
