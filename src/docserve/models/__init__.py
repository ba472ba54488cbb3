from __future__ import annotations

from docserve.models.checkout import (
    CheckoutOutcome,
    CheckoutRequest,
    CheckoutResult,
    CheckoutStatus,
    FailureMarker,
    Scheme,
)
from docserve.models.library import DocRequest, LibraryIdentity, LibraryVersion, Origin

__all__ = [
    # library
    "LibraryIdentity",
    "LibraryVersion",
    "Origin",
    "DocRequest",
    # checkout
    "Scheme",
    "CheckoutRequest",
    "CheckoutResult",
    "CheckoutOutcome",
    "CheckoutStatus",
    "FailureMarker",
]
