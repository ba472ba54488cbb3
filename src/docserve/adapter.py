"""Documentation adapters: one per provenance family.

An adapter binds a registry, the routing rules for its URL space and the
documentation generator into one unit that answers "does this identifier
resolve, and if so, what does the page look like". ``RemotePackageAdapter``
and ``SourceControlAdapter`` differ only in the registry they are built with,
how they split URLs and how a version gets its documentation on disk.
"""

from __future__ import annotations

import shutil
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from docserve.generator import publish
from docserve.models.library import DocRequest, LibraryIdentity, LibraryVersion

if TYPE_CHECKING:
    from docserve.fetcher import PackageFetcher
    from docserve.generator import DocGenerator
    from docserve.registry import LibraryRegistry, RemotePackageRegistry, ScmRegistry

log = structlog.get_logger()


class DocumentationAdapter(ABC):
    family: str

    def __init__(self, registry: LibraryRegistry, generator: DocGenerator) -> None:
        self.registry = registry
        self.generator = generator

    def resolve(
        self, identity: LibraryIdentity, version: str | None = None
    ) -> LibraryVersion | None:
        """The requested version, or the latest one when ``version`` is None."""
        versions = self.registry.find(identity)
        if not versions:
            return None
        if version is None:
            return versions[-1]
        return next((v for v in versions if v.version == version), None)

    def render(
        self,
        identity: LibraryIdentity,
        extra_path: str = "",
        version: str | None = None,
    ) -> bytes | None:
        """Rendered page, or None when the library, version or page is unknown."""
        library = self.resolve(identity, version)
        if library is None:
            return None
        library = self.ensure_docs(library)
        if library.source_path is None:
            return None
        return self.generator.render(library.source_path, extra_path)

    def list(
        self, letter: str | None = None
    ) -> list[tuple[LibraryIdentity, list[LibraryVersion]]]:
        """All libraries, optionally only those whose name starts with ``letter``."""
        entries = self.registry.all()
        if letter is None:
            return entries
        return [(i, v) for i, v in entries if i.name[:1].lower() == letter.lower()]

    def route(self, path: str) -> DocRequest | None:
        """Split the part of a URL after the family prefix. None if malformed."""
        segments = [s for s in path.split("/") if s]
        try:
            return self._route(segments)
        except ValidationError:
            return None

    def ensure_docs(self, library: LibraryVersion) -> LibraryVersion:
        """Make sure ``library`` has documentation on disk."""
        return library

    def _split_version(self, identity: LibraryIdentity, rest: list[str]) -> DocRequest:
        # Leading segments are a version only if the registry knows them. Branch
        # versions such as ``release/1.0`` span several segments; longest match wins.
        known = {v.version for v in self.registry.find(identity)}
        for end in range(len(rest), 0, -1):
            candidate = "/".join(rest[:end])
            if candidate in known:
                return DocRequest(
                    identity=identity, version=candidate, extra_path="/".join(rest[end:])
                )
        return DocRequest(identity=identity, extra_path="/".join(rest))

    @abstractmethod
    def _route(self, segments: list[str]) -> DocRequest | None: ...


class RemotePackageAdapter(DocumentationAdapter):
    """``/<name>[/<version>][/<page>]``; packages are fetched on first render."""

    family = "packages"
    registry: RemotePackageRegistry

    def __init__(
        self,
        registry: RemotePackageRegistry,
        generator: DocGenerator,
        fetcher: PackageFetcher,
    ) -> None:
        super().__init__(registry, generator)
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self._package_locks: defaultdict[tuple[str, str], threading.Lock] = defaultdict(
            threading.Lock
        )

    def _route(self, segments: list[str]) -> DocRequest | None:
        if not segments:
            return None
        return self._split_version(LibraryIdentity(name=segments[0]), segments[1:])

    def ensure_docs(self, library: LibraryVersion) -> LibraryVersion:
        if library.source_path is not None:
            return library

        name, version = library.identity.name, library.version
        with self._lock:
            package_lock = self._package_locks[(name, version)]
        with package_lock:
            current = self.resolve(library.identity, version)
            if current is not None and current.source_path is not None:
                return current

            log.info("package_fetch_started", package=name, version=version)
            package_dir = self.registry.package_dir(name, version)
            source_dir = package_dir / "src"
            # Leftovers from an interrupted fetch would be mixed into the new tree.
            shutil.rmtree(source_dir, ignore_errors=True)
            source = self._fetcher.fetch(name, version, source_dir)
            publish(self.generator, source, self.registry.docs_dir(name, version))
            log.info("package_fetch_complete", package=name, version=version)
            return self.resolve(library.identity, version) or library


class SourceControlAdapter(DocumentationAdapter):
    """``/<owner>/<name>[/<commit>][/<page>]``; checkouts publish asynchronously."""

    family = "scm"
    registry: ScmRegistry

    def _route(self, segments: list[str]) -> DocRequest | None:
        if len(segments) < 2:
            return None
        identity = LibraryIdentity(owner=segments[0], name=segments[1])
        return self._split_version(identity, segments[2:])
