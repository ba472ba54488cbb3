from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator


class Origin(StrEnum):
    LOCAL = "local"
    REMOTE_PACKAGE = "remote_package"
    SCM_CHECKOUT = "scm_checkout"


class LibraryIdentity(BaseModel):
    """Version-independent name of a documented project.

    Remote packages have no owner; SCM projects are ``owner/name``.
    """

    model_config = ConfigDict(frozen=True)

    owner: str | None = None
    name: str

    @field_validator("owner", "name")
    @classmethod
    def validate_segment(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not v or "/" in v or v in (".", ".."):
            raise ValueError(f"Invalid identity segment: {v!r}")
        return v

    @classmethod
    def parse(cls, value: str) -> LibraryIdentity:
        owner, sep, name = value.rpartition("/")
        return cls(owner=owner if sep else None, name=name)

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}" if self.owner else self.name


class LibraryVersion(BaseModel):
    """One documented version of a library.

    ``source_path`` points at the generated documentation once it exists on
    disk; remote packages that were never fetched have none.
    """

    model_config = ConfigDict(frozen=True)

    identity: LibraryIdentity
    version: str
    source_path: Path | None = None
    origin: Origin = Origin.LOCAL


class DocRequest(BaseModel):
    """A documentation URL split into its library, version and page parts."""

    identity: LibraryIdentity
    version: str | None = None
    extra_path: str = ""
