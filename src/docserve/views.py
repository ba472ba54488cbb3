"""HTML pages rendered by docserve itself (indexes and error pages)."""

from __future__ import annotations

import string
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, PackageLoader, select_autoescape

if TYPE_CHECKING:
    from docserve.models.library import LibraryIdentity, LibraryVersion

_env = Environment(
    loader=PackageLoader("docserve", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_template(name: str, **context: Any) -> str:
    return _env.get_template(name).render(**context)


def packages_index(
    letter: str, libraries: list[tuple[LibraryIdentity, list[LibraryVersion]]]
) -> str:
    return render_template(
        "packages_index.html",
        page_title=f"Packages: {letter.upper()}",
        letter=letter,
        letters=string.ascii_lowercase,
        libraries=libraries,
    )


def scm_index(libraries: list[tuple[LibraryIdentity, list[LibraryVersion]]]) -> str:
    return render_template(
        "scm_index.html", page_title="Source control projects", libraries=libraries
    )


def not_found(message: str = "No documentation exists at this address.") -> str:
    return render_template("not_found.html", page_title="Not Found", message=message)


def error_page(
    page_title: str = "Unknown Error!",
    message: str = "Something quite unexpected just happened. The error has been logged.",
) -> str:
    return render_template("error.html", page_title=page_title, message=message)
