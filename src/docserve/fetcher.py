"""Remote package fetching.

A package version is located through the index's JSON API, its source
distribution (or, failing that, a wheel) is downloaded and unpacked under
the package's directory. Fetches are synchronous: they happen on the request
path the first time a package version is rendered.
"""

from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from docserve.errors import DocServeError, ErrorCode

if TYPE_CHECKING:
    from docserve.config import PackageSettings

log = structlog.get_logger()

_USER_AGENT = "docserve/0.1"
_PREFERRED_TYPES = ("sdist", "bdist_wheel")


def build_http_client(settings: PackageSettings) -> httpx.Client:
    """Shared HTTP client for index lookups and downloads."""
    return httpx.Client(
        timeout=httpx.Timeout(settings.timeout_seconds),
        follow_redirects=True,
        headers={"User-Agent": _USER_AGENT},
    )


class PackageFetcher:
    def __init__(self, client: httpx.Client, index_url: str) -> None:
        self._client = client
        self._index_url = index_url.rstrip("/")

    def fetch(self, name: str, version: str, destination: Path) -> Path:
        """Download and unpack ``name==version`` into ``destination``.

        Returns the directory holding the unpacked source tree.
        """
        release = self._get_json(f"{self._index_url}/{name}/{version}/json", name, version)
        artifact = _pick_artifact(release.get("urls") or [])
        if artifact is None:
            raise DocServeError(
                ErrorCode.PACKAGE_FETCH_FAILED,
                f"No downloadable distribution for {name} {version}",
            )

        log.info("package_download", package=name, version=version, file=artifact["filename"])
        try:
            response = self._client.get(artifact["url"])
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DocServeError(
                ErrorCode.PACKAGE_FETCH_FAILED,
                f"Download of {artifact['filename']} failed: {exc}",
                recoverable=True,
            ) from exc

        destination.mkdir(parents=True, exist_ok=True)
        unpack(artifact["filename"], response.content, destination)
        return _source_root(destination)

    def _get_json(self, url: str, name: str, version: str) -> dict[str, Any]:
        try:
            response = self._client.get(url)
        except httpx.HTTPError as exc:
            raise DocServeError(
                ErrorCode.PACKAGE_FETCH_FAILED,
                f"Package index unreachable: {exc}",
                recoverable=True,
            ) from exc
        if response.status_code == 404:
            raise DocServeError(
                ErrorCode.LIBRARY_NOT_FOUND, f"{name} {version} is not on the package index"
            )
        if response.status_code != 200:
            raise DocServeError(
                ErrorCode.PACKAGE_FETCH_FAILED,
                f"Package index returned HTTP {response.status_code}",
                recoverable=True,
            )
        return response.json()


def _pick_artifact(urls: list[dict[str, Any]]) -> dict[str, Any] | None:
    for packagetype in _PREFERRED_TYPES:
        for entry in urls:
            if entry.get("packagetype") == packagetype and entry.get("url"):
                return entry
    return None


def unpack(filename: str, content: bytes, destination: Path) -> None:
    """Extract an archive without letting members escape ``destination``."""
    try:
        if filename.endswith((".tar.gz", ".tgz", ".tar.bz2", ".tar")):
            with tarfile.open(fileobj=io.BytesIO(content)) as tar:
                tar.extractall(destination, filter="data")
        elif filename.endswith((".zip", ".whl")):
            root = destination.resolve()
            with zipfile.ZipFile(io.BytesIO(content)) as archive:
                for member in archive.namelist():
                    if not (root / member).resolve().is_relative_to(root):
                        raise DocServeError(
                            ErrorCode.PACKAGE_FETCH_FAILED,
                            f"Unsafe path in archive: {member!r}",
                        )
                archive.extractall(destination)
        else:
            raise DocServeError(
                ErrorCode.PACKAGE_FETCH_FAILED, f"Unsupported archive format: {filename}"
            )
    except (tarfile.TarError, zipfile.BadZipFile) as exc:
        raise DocServeError(
            ErrorCode.PACKAGE_FETCH_FAILED, f"Corrupt archive {filename}: {exc}"
        ) from exc


def _source_root(destination: Path) -> Path:
    """sdists unpack into a single ``name-version/`` directory; use it when present."""
    entries = [p for p in destination.iterdir() if not p.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return destination
