"""Library registries: which versions of which libraries can be documented.

Neither registry keeps mutable in-memory state about what has been built.
Checkout jobs and on-demand package fetches publish by writing directories,
so every read goes back to the filesystem.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol
from urllib.parse import unquote

import structlog

from docserve.models.library import LibraryIdentity, LibraryVersion, Origin

log = structlog.get_logger()


class LibraryRegistry(Protocol):
    def find(self, identity: LibraryIdentity) -> list[LibraryVersion]:
        """All known versions of ``identity``, oldest first. Empty if unknown."""
        ...

    def all(self) -> list[tuple[LibraryIdentity, list[LibraryVersion]]]: ...


def version_dirname(version: str) -> str:
    """Directory name for a version. Branch names such as ``release/1.0`` become one segment."""
    return version.replace("%", "%25").replace("/", "%2F")


def _visible_dirs(path: Path) -> list[Path]:
    try:
        return [p for p in path.iterdir() if p.is_dir() and not p.name.startswith(".")]
    except FileNotFoundError:
        return []


class RemotePackageRegistry:
    """Packages listed in a static manifest, seeded once at startup.

    Each version is documented under ``<packages_root>/<name>/<version>/docs``
    the first time somebody asks for it.
    """

    def __init__(self, packages: dict[str, list[str]], packages_root: str | Path) -> None:
        self._packages = {
            name: list(dict.fromkeys(versions)) for name, versions in packages.items()
        }
        self.packages_root = Path(packages_root)

    @classmethod
    def from_manifest(cls, path: str | Path, packages_root: str | Path) -> RemotePackageRegistry:
        """Load ``name v1 v2 ...`` lines. A missing manifest yields an empty registry."""
        packages: dict[str, list[str]] = {}
        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    name, *versions = line.split()
                    packages.setdefault(name, []).extend(versions)
        except FileNotFoundError:
            log.error("package_manifest_missing", path=str(path))
            return cls({}, packages_root)

        log.info("package_manifest_loaded", path=str(path), packages=len(packages))
        return cls(packages, packages_root)

    def package_dir(self, name: str, version: str) -> Path:
        return self.packages_root / name / version

    def docs_dir(self, name: str, version: str) -> Path:
        return self.package_dir(name, version) / "docs"

    def find(self, identity: LibraryIdentity) -> list[LibraryVersion]:
        if identity.owner is not None:
            return []
        return [self._version(identity, v) for v in self._packages.get(identity.name, [])]

    def all(self) -> list[tuple[LibraryIdentity, list[LibraryVersion]]]:
        result = []
        for name in sorted(self._packages, key=str.lower):
            identity = LibraryIdentity(name=name)
            result.append((identity, self.find(identity)))
        return result

    def _version(self, identity: LibraryIdentity, version: str) -> LibraryVersion:
        docs = self.docs_dir(identity.name, version)
        return LibraryVersion(
            identity=identity,
            version=version,
            source_path=docs if docs.is_dir() else None,
            origin=Origin.REMOTE_PACKAGE,
        )


class ScmRegistry:
    """Published checkouts, laid out as ``<docs_root>/<owner>/<name>/<version>``.

    A version exists once its directory does; checkout jobs publish by
    renaming a finished staging directory into place.
    """

    def __init__(self, docs_root: str | Path) -> None:
        self.docs_root = Path(docs_root)

    def version_dir(self, identity: LibraryIdentity, version: str) -> Path:
        return self.docs_root / (identity.owner or "") / identity.name / version_dirname(version)

    def find(self, identity: LibraryIdentity) -> list[LibraryVersion]:
        if identity.owner is None:
            return []
        project_dir = self.docs_root / identity.owner / identity.name
        dirs = sorted(_visible_dirs(project_dir), key=lambda p: (p.stat().st_mtime, p.name))
        return [
            LibraryVersion(
                identity=identity,
                version=unquote(d.name),
                source_path=d,
                origin=Origin.SCM_CHECKOUT,
            )
            for d in dirs
        ]

    def all(self) -> list[tuple[LibraryIdentity, list[LibraryVersion]]]:
        result = []
        for owner_dir in sorted(_visible_dirs(self.docs_root), key=lambda p: p.name.lower()):
            for project_dir in sorted(_visible_dirs(owner_dir), key=lambda p: p.name.lower()):
                identity = LibraryIdentity(owner=owner_dir.name, name=project_dir.name)
                versions = self.find(identity)
                if versions:
                    result.append((identity, versions))
        return result
