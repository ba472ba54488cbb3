"""HTTP surface: checkout hooks, status polling, indexes and documentation pages.

Run with ``python -m docserve.server`` (or the ``docserve`` script).
"""

from __future__ import annotations

import mimetypes
import re
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Annotated

import structlog
import uvicorn
from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response

from docserve import views
from docserve.checkout import parse_checkout_form
from docserve.config import Settings
from docserve.errors import DocServeError, ErrorCode
from docserve.log_config import configure_logging
from docserve.state import AppState, create_state

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from docserve.adapter import DocumentationAdapter

log = structlog.get_logger()

_LETTER_RE = re.compile(r"[a-z]")
_OLD_SCM_RE = re.compile(r"([^/]+)-([^/]+)(/?.*)")
_OLD_PACKAGE_RE = re.compile(r"([^/]+)(/?.*)")


def translate_file_links(extra: str) -> str:
    """Old ``/file:README`` style links became ``/file/README``."""
    return re.sub(r"^/(frames/)?file:", r"/\1file/", extra)


def create_app(settings: Settings | None = None, state: AppState | None = None) -> FastAPI:
    settings = settings or Settings()
    state = state or create_state(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("server_starting", host=settings.server.host, port=settings.server.port)
        yield
        log.info("server_stopping")
        state.close()

    # /docs belongs to the old URL scheme, so the interactive API docs are off.
    app = FastAPI(title="docserve", lifespan=lifespan, docs_url=None, redoc_url=None)
    app.state.docserve = state

    # ------------------------------------------------------------------
    # Checkout and post-receive hooks
    # ------------------------------------------------------------------

    @app.post("/checkout", response_class=PlainTextResponse)
    def checkout(
        scheme: Annotated[str | None, Form()] = None,
        url: Annotated[str | None, Form()] = None,
        commit: Annotated[str | None, Form()] = None,
        payload: Annotated[str | None, Form()] = None,
    ) -> str:
        try:
            checkout_request = parse_checkout_form(scheme, url, commit, payload)
        except DocServeError as exc:
            log.info("checkout_rejected", code=exc.code.value, reason=exc.message)
            return "INVALIDSCHEME"
        result = state.orchestrator.request_checkout(checkout_request)
        return "OK" if result.accepted else "INVALIDSCHEME"

    @app.get("/checkout/{owner}/{project}/{commit:path}", response_class=PlainTextResponse)
    def checkout_status(owner: str, project: str, commit: str) -> str:
        return state.status.status(owner, project, commit).value

    # ------------------------------------------------------------------
    # Indexes and documentation pages
    # ------------------------------------------------------------------

    @app.get("/scm")
    def scm_index(request: Request) -> Response:
        return _cached_html(request, lambda: views.scm_index(state.scm.list()))

    @app.get("/packages")
    def packages_index(request: Request) -> Response:
        return _packages_index(request, "a")

    @app.get("/scm/{path:path}")
    def scm_page(request: Request, path: str) -> Response:
        if not path.strip("/"):
            return scm_index(request)
        return _serve_docs(request, state.scm, path)

    @app.get("/packages/{path:path}")
    def packages_page(request: Request, path: str) -> Response:
        letter = path.strip("/")
        if not letter or _LETTER_RE.fullmatch(letter):
            return _packages_index(request, letter or "a")
        return _serve_docs(request, state.packages, path)

    def _packages_index(request: Request, letter: str) -> Response:
        return _cached_html(
            request, lambda: views.packages_index(letter, state.packages.list(letter))
        )

    def _cached_html(request: Request, render: Callable[[], str]) -> Response:
        cached = state.cache.get(request.url.path)
        if cached is not None:
            return HTMLResponse(cached)
        body = render().encode("utf-8")
        state.cache.put(request.url.path, body)
        return HTMLResponse(body)

    def _serve_docs(request: Request, adapter: DocumentationAdapter, path: str) -> Response:
        cached = state.cache.get(request.url.path)
        if cached is not None:
            return HTMLResponse(cached)

        doc = adapter.route(path)
        body = None
        if doc is not None:
            body = adapter.render(doc.identity, doc.extra_path, doc.version)
        if body is None:
            return HTMLResponse(views.not_found(), status_code=404)

        media_type = mimetypes.guess_type(path)[0] or "text/html"
        if media_type == "text/html":
            state.cache.put(request.url.path, body)
        return Response(body, media_type=media_type)

    # ------------------------------------------------------------------
    # Old URL structure and root redirection
    # ------------------------------------------------------------------

    @app.get("/docs/{rest:path}")
    def old_docs(rest: str) -> Response:
        if not rest.strip("/"):
            return RedirectResponse("/scm")
        if m := _OLD_SCM_RE.fullmatch(rest):
            user, project, extra = m.groups()
            return RedirectResponse(f"/scm/{user}/{project}{translate_file_links(extra)}")
        m = _OLD_PACKAGE_RE.fullmatch(rest)
        lib, extra = m.groups() if m else (rest, "")
        return RedirectResponse(f"/packages/{lib}{translate_file_links(extra)}")

    @app.get("/docs")
    def old_docs_root() -> Response:
        return RedirectResponse("/scm")

    @app.get("/")
    def root() -> Response:
        return RedirectResponse("/packages")

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    @app.exception_handler(DocServeError)
    async def docserve_error(request: Request, exc: DocServeError) -> Response:
        if exc.code is ErrorCode.LIBRARY_NOT_FOUND:
            return HTMLResponse(views.not_found(exc.message), status_code=404)
        log.warning(
            "request_failed", path=request.url.path, code=exc.code.value, error=exc.message
        )
        return HTMLResponse(
            views.error_page("Documentation unavailable", exc.message), status_code=502
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> Response:
        log.error("request_crashed", path=request.url.path, exc_info=exc)
        return HTMLResponse(views.error_page(), status_code=500)

    return app


def main() -> None:
    settings = Settings()
    configure_logging(settings.logging)
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port, log_config=None)


if __name__ == "__main__":
    main()
