"""Integration test fixtures.

Provides the full FastAPI application wired through ``create_state`` with the
fake generator and SCM tools from tests/conftest.py.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import httpx
import pytest
from fastapi.testclient import TestClient

from docserve.server import create_app
from docserve.state import AppState, create_state

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from conftest import FakeGenerator, FakeScmFetcher

    from docserve.config import Settings


@pytest.fixture()
def app_state(
    settings: Settings, generator: FakeGenerator, scm_fetcher: FakeScmFetcher
) -> AppState:
    return create_state(
        settings,
        generator=generator,
        scm_fetcher=scm_fetcher,  # type: ignore[arg-type]
        http_client=httpx.Client(),
    )


@pytest.fixture()
def client(settings: Settings, app_state: AppState) -> Iterator[TestClient]:
    app = create_app(settings, app_state)
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Environment for running the server as a subprocess, rooted in tmp_path."""
    env = os.environ.copy()
    for key in list(env):
        if key.startswith("DOCSERVE__"):
            del env[key]
    env["DOCSERVE__PATHS__DOCS_ROOT"] = str(tmp_path / "docs")
    env["DOCSERVE__PACKAGES__MANIFEST_PATH"] = str(tmp_path / "remote_packages")
    return env
