"""Unit tests for docserve.registry."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from docserve.models.library import LibraryIdentity, Origin
from docserve.registry import RemotePackageRegistry, ScmRegistry, version_dirname

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# RemotePackageRegistry
# ---------------------------------------------------------------------------


class TestRemotePackageRegistry:
    def test_from_manifest(self, manifest: Path, tmp_path: Path) -> None:
        registry = RemotePackageRegistry.from_manifest(manifest, tmp_path / "packages")
        versions = registry.find(LibraryIdentity(name="attrs"))
        assert [v.version for v in versions] == ["23.1.0", "23.2.0"]
        assert all(v.origin is Origin.REMOTE_PACKAGE for v in versions)
        assert all(v.source_path is None for v in versions)

    def test_missing_manifest_yields_empty_registry(self, tmp_path: Path) -> None:
        registry = RemotePackageRegistry.from_manifest(tmp_path / "nope", tmp_path / "packages")
        assert registry.all() == []

    def test_unknown_package(self, manifest: Path, tmp_path: Path) -> None:
        registry = RemotePackageRegistry.from_manifest(manifest, tmp_path / "packages")
        assert registry.find(LibraryIdentity(name="missing")) == []

    def test_owned_identity_never_matches(self, manifest: Path, tmp_path: Path) -> None:
        registry = RemotePackageRegistry.from_manifest(manifest, tmp_path / "packages")
        assert registry.find(LibraryIdentity(owner="x", name="attrs")) == []

    def test_all_sorted_by_name(self, manifest: Path, tmp_path: Path) -> None:
        registry = RemotePackageRegistry.from_manifest(manifest, tmp_path / "packages")
        assert [i.name for i, _ in registry.all()] == ["anyio", "attrs", "blinker"]

    def test_duplicate_versions_collapse(self, tmp_path: Path) -> None:
        registry = RemotePackageRegistry({"attrs": ["1.0", "1.0", "2.0"]}, tmp_path)
        assert [v.version for v in registry.find(LibraryIdentity(name="attrs"))] == ["1.0", "2.0"]

    def test_source_path_reflects_disk(self, tmp_path: Path) -> None:
        registry = RemotePackageRegistry({"attrs": ["1.0"]}, tmp_path)
        identity = LibraryIdentity(name="attrs")
        assert registry.find(identity)[0].source_path is None

        registry.docs_dir("attrs", "1.0").mkdir(parents=True)
        assert registry.find(identity)[0].source_path == registry.docs_dir("attrs", "1.0")


# ---------------------------------------------------------------------------
# ScmRegistry
# ---------------------------------------------------------------------------


def _publish(registry: ScmRegistry, owner: str, name: str, version: str, mtime: int) -> None:
    path = registry.version_dir(LibraryIdentity(owner=owner, name=name), version)
    path.mkdir(parents=True)
    os.utime(path, (mtime, mtime))


class TestScmRegistry:
    def test_empty_when_root_missing(self, tmp_path: Path) -> None:
        registry = ScmRegistry(tmp_path / "docs")
        assert registry.all() == []
        assert registry.find(LibraryIdentity(owner="acme", name="widget")) == []

    def test_reflects_current_filesystem(self, tmp_path: Path) -> None:
        registry = ScmRegistry(tmp_path / "docs")
        identity = LibraryIdentity(owner="acme", name="widget")
        assert registry.find(identity) == []

        _publish(registry, "acme", "widget", "abc", 1_000)
        versions = registry.find(identity)
        assert [v.version for v in versions] == ["abc"]
        assert versions[0].origin is Origin.SCM_CHECKOUT
        assert versions[0].source_path == registry.version_dir(identity, "abc")

    def test_versions_ordered_by_publish_time(self, tmp_path: Path) -> None:
        registry = ScmRegistry(tmp_path / "docs")
        _publish(registry, "acme", "widget", "zzz", 1_000)
        _publish(registry, "acme", "widget", "aaa", 2_000)
        versions = registry.find(LibraryIdentity(owner="acme", name="widget"))
        assert [v.version for v in versions] == ["zzz", "aaa"]

    def test_staging_directories_ignored(self, tmp_path: Path) -> None:
        registry = ScmRegistry(tmp_path / "docs")
        (tmp_path / "docs" / "acme" / "widget" / ".abc.1234").mkdir(parents=True)
        assert registry.find(LibraryIdentity(owner="acme", name="widget")) == []
        assert registry.all() == []

    def test_all_lists_projects(self, tmp_path: Path) -> None:
        registry = ScmRegistry(tmp_path / "docs")
        _publish(registry, "acme", "widget", "abc", 1_000)
        _publish(registry, "beta", "gadget", "123", 1_000)
        assert [str(i) for i, _ in registry.all()] == ["acme/widget", "beta/gadget"]

    def test_unowned_identity_never_matches(self, tmp_path: Path) -> None:
        registry = ScmRegistry(tmp_path / "docs")
        assert registry.find(LibraryIdentity(name="widget")) == []

    def test_branch_version_is_one_directory(self, tmp_path: Path) -> None:
        registry = ScmRegistry(tmp_path / "docs")
        identity = LibraryIdentity(owner="acme", name="widget")
        path = registry.version_dir(identity, "release/1.0")
        path.mkdir(parents=True)

        assert path.parent == tmp_path / "docs" / "acme" / "widget"
        assert [v.version for v in registry.find(identity)] == ["release/1.0"]


class TestVersionDirname:
    def test_plain_versions_unchanged(self) -> None:
        assert version_dirname("f00dfeed") == "f00dfeed"
        assert version_dirname("v1.2+build@x") == "v1.2+build@x"

    def test_slashes_and_percent_escaped(self) -> None:
        assert version_dirname("feature/login") == "feature%2Flogin"
        assert version_dirname("100%/done") == "100%25%2Fdone"
