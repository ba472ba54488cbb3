from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict

from docserve.errors import ErrorCode
from docserve.models.library import LibraryIdentity


class Scheme(StrEnum):
    GIT = "git"
    SVN = "svn"


class CheckoutStatus(StrEnum):
    PENDING = "NO"
    SUCCESS = "YES"
    FAILURE = "ERROR"


def derive_target_name(url: str) -> str:
    """Working-directory name for a repository URL.

    ``https://host/My Repo.git`` -> ``MyRepo``. Deterministic, so repeated
    requests for one URL land in the same working tree.
    """
    basename = url.rstrip("/").rsplit("/", 1)[-1]
    basename = re.sub(r"\.[^.]+\Z", "", basename)
    return re.sub(r"\s+", "", basename)


def derive_identity(url: str, target_name: str) -> LibraryIdentity:
    """``git://host/acme/widget.git`` -> ``acme/widget``; falls back to the host as owner."""
    parts = urlsplit(url)
    segments = [s for s in parts.path.split("/") if s]
    owner = re.sub(r"\s+", "", segments[-2]) if len(segments) >= 2 else parts.hostname
    return LibraryIdentity(owner=owner or "local", name=target_name)


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_url: str
    scheme: Scheme
    target_name: str
    commit_ref: str | None = None

    @classmethod
    def for_url(cls, url: str, scheme: Scheme, commit_ref: str | None = None) -> CheckoutRequest:
        return cls(
            source_url=url,
            scheme=scheme,
            target_name=derive_target_name(url),
            commit_ref=commit_ref or None,
        )

    @property
    def identity(self) -> LibraryIdentity:
        return derive_identity(self.source_url, self.target_name)


class CheckoutResult(BaseModel):
    """Synchronous answer to a checkout request."""

    accepted: bool
    reason: ErrorCode | None = None


class CheckoutOutcome(BaseModel):
    """What a finished checkout job did. Logged; never sent to a client."""

    identity: LibraryIdentity
    version: str | None = None
    succeeded: bool
    code: ErrorCode | None = None


class FailureMarker(BaseModel):
    identity: LibraryIdentity
    recorded_at: datetime
    code: ErrorCode
    message: str = ""
