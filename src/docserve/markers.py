"""Failure markers: ``<tmp_root>/<owner>/<name>.error.txt``.

A marker's existence means the latest checkout of that identity failed. The
JSON body (code, message, timestamp) is for operators; status answers look
only at whether the file is there.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

import structlog
from pydantic import ValidationError

from docserve.errors import ErrorCode
from docserve.models.checkout import FailureMarker
from docserve.models.library import LibraryIdentity

log = structlog.get_logger()


class FailureMarkerStore:
    def __init__(self, tmp_root: str | Path) -> None:
        self.tmp_root = Path(tmp_root)

    def path_for(self, identity: LibraryIdentity) -> Path:
        return self.tmp_root / (identity.owner or "") / f"{identity.name}.error.txt"

    def exists(self, identity: LibraryIdentity) -> bool:
        return self.path_for(identity).is_file()

    def record(
        self, identity: LibraryIdentity, code: ErrorCode, message: str = ""
    ) -> FailureMarker:
        marker = FailureMarker(
            identity=identity, recorded_at=datetime.now(UTC), code=code, message=message
        )
        path = self.path_for(identity)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(marker.model_dump_json())
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise
        return marker

    def read(self, identity: LibraryIdentity) -> FailureMarker | None:
        """Parsed marker for diagnostics; ``None`` when absent or unreadable."""
        path = self.path_for(identity)
        try:
            return FailureMarker.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValidationError):
            log.warning("failure_marker_unreadable", path=str(path), exc_info=True)
            return None

    def clear(self, identity: LibraryIdentity) -> None:
        self.path_for(identity).unlink(missing_ok=True)
