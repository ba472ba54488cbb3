"""Application state wired once at startup and shared by all request handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
import structlog

from docserve.adapter import RemotePackageAdapter, SourceControlAdapter
from docserve.cache import RenderCache
from docserve.checkout import CheckoutOrchestrator
from docserve.fetcher import PackageFetcher, build_http_client
from docserve.generator import CommandGenerator
from docserve.markers import FailureMarkerStore
from docserve.registry import RemotePackageRegistry, ScmRegistry
from docserve.scm import ScmFetcher
from docserve.status import StatusResolver

if TYPE_CHECKING:
    from docserve.config import Settings
    from docserve.generator import DocGenerator

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    http_client: httpx.Client
    cache: RenderCache
    markers: FailureMarkerStore
    packages: RemotePackageAdapter
    scm: SourceControlAdapter
    orchestrator: CheckoutOrchestrator
    status: StatusResolver

    def close(self) -> None:
        self.orchestrator.shutdown(wait=True)
        self.http_client.close()


def create_state(
    settings: Settings,
    *,
    generator: DocGenerator | None = None,
    scm_fetcher: ScmFetcher | None = None,
    http_client: httpx.Client | None = None,
) -> AppState:
    """Build every component from ``settings``. Collaborators can be swapped for tests."""
    paths = settings.paths
    generator = generator or CommandGenerator(settings.generator)
    http_client = http_client or build_http_client(settings.packages)

    package_registry = RemotePackageRegistry.from_manifest(
        settings.packages.manifest_path, paths.packages_root
    )
    scm_registry = ScmRegistry(paths.docs_root)
    markers = FailureMarkerStore(paths.tmp_root)

    state = AppState(
        settings=settings,
        http_client=http_client,
        cache=RenderCache(paths.public_root, enabled=settings.caching_enabled),
        markers=markers,
        packages=RemotePackageAdapter(
            package_registry,
            generator,
            PackageFetcher(http_client, settings.packages.index_url),
        ),
        scm=SourceControlAdapter(scm_registry, generator),
        orchestrator=CheckoutOrchestrator(
            paths.repos_root,
            scm_registry,
            scm_fetcher or ScmFetcher(settings.checkout),
            generator,
            markers,
            max_workers=settings.checkout.max_workers,
        ),
        status=StatusResolver(scm_registry, markers),
    )
    log.info(
        "state_ready",
        environment=settings.environment,
        caching=settings.caching_enabled,
        packages=len(package_registry.all()),
    )
    return state
