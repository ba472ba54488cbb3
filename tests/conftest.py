"""Shared fixtures: settings rooted in tmp_path and fake external tools.

The documentation generator and the git/svn tools are external programs;
tests replace them with fakes that write predictable files.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from docserve.config import Settings
from docserve.errors import DocServeError, ErrorCode
from docserve.generator import resolve_page

if TYPE_CHECKING:
    from pathlib import Path

    from docserve.models.checkout import CheckoutRequest


class FakeGenerator:
    """Writes an index page naming the source tree, plus one class page."""

    def __init__(self) -> None:
        self.builds: list[Path] = []
        self.renders = 0
        self.fail = False

    def build(self, source: Path, output: Path) -> None:
        self.builds.append(source)
        if self.fail:
            raise DocServeError(ErrorCode.BUILD_FAILED, "generator exploded")
        output.mkdir(parents=True, exist_ok=True)
        (output / "index.html").write_text(f"<h1>{source.name}</h1>")
        (output / "Widget.html").write_text("<h1>class Widget</h1>")

    def render(self, docs: Path, extra_path: str) -> bytes | None:
        self.renders += 1
        page = resolve_page(docs, extra_path)
        return page.read_bytes() if page is not None else None


class FakeScmFetcher:
    """Creates the working tree and reports a fixed revision.

    ``gate`` lets a test hold a job inside the fetch step.
    """

    def __init__(self, revision: str = "f00dfeed") -> None:
        self.revision = revision
        self.calls: list[CheckoutRequest] = []
        self.fail = False
        self.gate: threading.Event | None = None

    def fetch(self, request: CheckoutRequest, workdir: Path) -> str:
        self.calls.append(request)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail:
            raise DocServeError(ErrorCode.FETCH_FAILED, "repository not found")
        workdir.mkdir(parents=True, exist_ok=True)
        (workdir / "README").write_text(request.source_url)
        return self.revision


@pytest.fixture()
def manifest(tmp_path: Path) -> Path:
    path = tmp_path / "remote_packages"
    path.write_text("# name versions...\nattrs 23.1.0 23.2.0\nblinker 1.7.0\n\nanyio 4.2.0\n")
    return path


@pytest.fixture()
def settings(tmp_path: Path, manifest: Path) -> Settings:
    return Settings(
        environment="test",
        paths={
            "repos_root": str(tmp_path / "repos"),
            "docs_root": str(tmp_path / "docs"),
            "tmp_root": str(tmp_path / "tmp"),
            "public_root": str(tmp_path / "public"),
            "packages_root": str(tmp_path / "packages"),
        },
        packages={"manifest_path": str(manifest), "index_url": "https://pypi.test/pypi"},
        checkout={"max_workers": 2, "timeout_seconds": 5},
    )


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def scm_fetcher() -> FakeScmFetcher:
    return FakeScmFetcher()
