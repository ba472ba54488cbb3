"""Checkout status polling."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationError

from docserve.models.checkout import CheckoutStatus
from docserve.models.library import LibraryIdentity

if TYPE_CHECKING:
    from docserve.markers import FailureMarkerStore
    from docserve.registry import LibraryRegistry


class StatusResolver:
    def __init__(self, registry: LibraryRegistry, markers: FailureMarkerStore) -> None:
        self._registry = registry
        self._markers = markers

    def status(self, owner: str, project: str, commit: str) -> CheckoutStatus:
        """SUCCESS if ``commit`` is published, else FAILURE if the identity has a
        failure marker, else PENDING.

        The marker belongs to the identity, not the commit, so a published
        version always wins over an older failure.
        """
        try:
            identity = LibraryIdentity(owner=owner, name=project)
        except ValidationError:
            return CheckoutStatus.PENDING
        if any(v.version == commit for v in self._registry.find(identity)):
            return CheckoutStatus.SUCCESS
        if self._markers.exists(identity):
            return CheckoutStatus.FAILURE
        return CheckoutStatus.PENDING
