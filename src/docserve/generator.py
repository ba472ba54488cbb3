"""Boundary to the external documentation generator.

docserve does not know how documentation is produced. A ``DocGenerator``
turns a source tree into a directory of pages (``build``) and serves one of
those pages back (``render``). ``publish`` wraps ``build`` so that a finished
documentation directory appears on disk in a single rename.
"""

from __future__ import annotations

import shutil
import subprocess
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from docserve.errors import DocServeError, ErrorCode

if TYPE_CHECKING:
    from docserve.config import GeneratorSettings

log = structlog.get_logger()


class DocGenerator(Protocol):
    def build(self, source: Path, output: Path) -> None:
        """Generate documentation for ``source`` into ``output``.

        Raises ``DocServeError(BUILD_FAILED)`` when generation fails.
        """
        ...

    def render(self, docs: Path, extra_path: str) -> bytes | None:
        """Return the page at ``extra_path`` inside built ``docs``, or None."""
        ...


class CommandGenerator:
    """Runs a configured command line, e.g. ``pdoc -o {output} {source}``."""

    def __init__(self, settings: GeneratorSettings) -> None:
        self._command = list(settings.command)
        self._timeout = settings.timeout_seconds

    def build(self, source: Path, output: Path) -> None:
        argv = [arg.format(source=source, output=output) for arg in self._command]
        output.mkdir(parents=True, exist_ok=True)
        try:
            result = subprocess.run(
                argv,
                cwd=source,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise DocServeError(
                ErrorCode.BUILD_FAILED,
                f"Generator timed out after {self._timeout}s",
                recoverable=True,
            ) from exc
        except OSError as exc:
            raise DocServeError(
                ErrorCode.BUILD_FAILED, f"Generator could not start: {exc}"
            ) from exc
        if result.returncode != 0:
            raise DocServeError(
                ErrorCode.BUILD_FAILED,
                f"Generator failed (exit {result.returncode}): {result.stderr.strip()[-2000:]}",
            )

    def render(self, docs: Path, extra_path: str) -> bytes | None:
        page = resolve_page(docs, extra_path)
        return page.read_bytes() if page is not None else None


def resolve_page(docs: Path, extra_path: str) -> Path | None:
    """Find the file serving ``extra_path`` under ``docs``; never escapes ``docs``."""
    root = docs.resolve()
    extra = extra_path.strip("/")
    if extra:
        candidates = [extra, f"{extra}.html", f"{extra}/index.html"]
    else:
        candidates = ["index.html"]
    for candidate in candidates:
        path = (root / candidate).resolve()
        if not path.is_relative_to(root):
            return None
        if path.is_file():
            return path
    return None


def publish(generator: DocGenerator, source: Path, destination: Path) -> bool:
    """Build docs for ``source`` and move them to ``destination`` atomically.

    Published versions are never replaced: if ``destination`` already exists,
    nothing is built and False is returned.
    """
    if destination.exists():
        return False
    destination.parent.mkdir(parents=True, exist_ok=True)
    staging = destination.parent / f".{destination.name}.{uuid.uuid4().hex}"
    try:
        generator.build(source, staging)
        try:
            staging.rename(destination)
        except OSError:
            # Another job published the same version first.
            if destination.exists():
                return False
            raise
    finally:
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)
    log.info("docs_published", destination=str(destination))
    return True
