"""Asynchronous checkout-and-publish jobs.

``request_checkout`` validates a request and hands it to a worker pool; the
caller gets an answer straight away. A job fetches the repository, builds its
documentation and publishes it under ``docs_root``, or leaves a failure
marker. Nothing is reported back in memory: the request handler learns the
outcome later by looking at the filesystem (see ``docserve.status``).

Jobs for the same target name run one at a time. Jobs for different targets
run independently and may finish in any order.
"""

from __future__ import annotations

import json
import re
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from docserve.errors import DocServeError, ErrorCode
from docserve.generator import publish
from docserve.models.checkout import CheckoutOutcome, CheckoutRequest, CheckoutResult, Scheme

if TYPE_CHECKING:
    from docserve.generator import DocGenerator
    from docserve.markers import FailureMarkerStore
    from docserve.registry import ScmRegistry
    from docserve.scm import ScmFetcher

log = structlog.get_logger()

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


def parse_checkout_form(
    scheme: str | None = None,
    url: str | None = None,
    commit: str | None = None,
    payload: str | None = None,
) -> CheckoutRequest:
    """Build a CheckoutRequest from form fields or a post-receive hook payload.

    A hook payload always means "fetch the latest revision over git".
    Raises ``DocServeError`` (INVALID_PAYLOAD or INVALID_SCHEME).
    """
    if payload is not None:
        try:
            data: Any = json.loads(payload)
            url = data["repository"]["url"]
        except (ValueError, KeyError, TypeError) as exc:
            raise DocServeError(
                ErrorCode.INVALID_PAYLOAD, "payload must contain repository.url"
            ) from exc
        scheme, commit = Scheme.GIT.value, None

    if not isinstance(url, str) or not url.strip():
        raise DocServeError(ErrorCode.INVALID_PAYLOAD, "url is required")
    url = url.strip()
    if "://" not in url:
        raise DocServeError(ErrorCode.INVALID_SCHEME, f"url has no transport prefix: {url!r}")
    try:
        parsed_scheme = Scheme(scheme)
    except ValueError as exc:
        raise DocServeError(ErrorCode.INVALID_SCHEME, f"unsupported scheme: {scheme!r}") from exc

    commit = commit.strip() if commit else None
    if commit and not _is_safe_ref(commit):
        raise DocServeError(ErrorCode.INVALID_PAYLOAD, f"invalid commit: {commit!r}")

    request = CheckoutRequest.for_url(url, parsed_scheme, commit)
    if not request.target_name:
        raise DocServeError(ErrorCode.INVALID_PAYLOAD, f"cannot derive a project name from {url!r}")
    try:
        request.identity  # noqa: B018
    except ValidationError as exc:
        raise DocServeError(
            ErrorCode.INVALID_PAYLOAD, f"cannot derive a project identity from {url!r}"
        ) from exc
    return request


def _is_safe_ref(ref: str) -> bool:
    """Branch names, tags, hashes and svn revisions pass; option-like refs do not.

    Every slash-separated part must be non-empty and must not start with a
    dot, which rules out ``..`` traversal and hidden directory names.
    """
    if ref.startswith("-") or _CONTROL_RE.search(ref):
        return False
    return all(part and not part.startswith(".") for part in ref.split("/"))


class CheckoutOrchestrator:
    """Runs checkout jobs on a worker pool, one job per target at a time.

    Only the job at the head of a target's queue occupies a worker. Requests
    arriving while it runs wait in that target's queue and are submitted when
    it finishes, so a burst of hooks for one repository never ties up workers
    that other targets could use. An identical request that is already waiting
    is not queued twice.
    """

    def __init__(
        self,
        repos_root: str | Path,
        registry: ScmRegistry,
        fetcher: ScmFetcher,
        generator: DocGenerator,
        markers: FailureMarkerStore,
        max_workers: int = 4,
    ) -> None:
        self.repos_root = Path(repos_root)
        self._registry = registry
        self._fetcher = fetcher
        self._generator = generator
        self._markers = markers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="checkout")
        self._lock = threading.Lock()
        # target name -> the submitted job, and the requests queued behind it
        self._running: dict[str, Future[CheckoutOutcome]] = {}
        self._waiting: dict[str, deque[CheckoutRequest]] = {}

    def request_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        """Schedule ``request`` and return immediately."""
        if request.scheme not in (Scheme.GIT, Scheme.SVN) or "://" not in request.source_url:
            return CheckoutResult(accepted=False, reason=ErrorCode.INVALID_SCHEME)
        if not request.target_name:
            return CheckoutResult(accepted=False, reason=ErrorCode.INVALID_PAYLOAD)
        try:
            identity = request.identity
        except ValidationError:
            return CheckoutResult(accepted=False, reason=ErrorCode.INVALID_PAYLOAD)

        target = request.target_name
        with self._lock:
            if target in self._running:
                waiting = self._waiting.setdefault(target, deque())
                queued = request not in waiting
                if queued:
                    waiting.append(request)
            else:
                queued = False
                self._submit(request)
        log.info(
            "checkout_accepted",
            url=request.source_url,
            scheme=request.scheme.value,
            target=target,
            identity=str(identity),
            commit=request.commit_ref,
            queued=queued,
        )
        return CheckoutResult(accepted=True)

    def cancel(self, target_name: str) -> int:
        """Cancel jobs for ``target_name`` that have not started. Returns how many."""
        with self._lock:
            cancelled = len(self._waiting.pop(target_name, ()))
            future = self._running.get(target_name)
            if future is not None and future.cancel():
                del self._running[target_name]
                cancelled += 1
        if cancelled:
            log.info("checkout_cancelled", target=target_name, jobs=cancelled)
        return cancelled

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for every submitted and queued job. True if all finished within ``timeout``."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                futures = [f for f in self._running.values() if not f.done()]
            if not futures:
                return True
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            _, not_done = wait_futures(futures, timeout=remaining)
            if not_done:
                return False

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        log.info("checkout_pool_stopping", cancel_pending=cancel_pending)
        if cancel_pending:
            with self._lock:
                self._waiting.clear()
        self._executor.shutdown(wait=wait, cancel_futures=cancel_pending)

    def _submit(self, request: CheckoutRequest) -> None:
        # Caller holds self._lock.
        future = self._executor.submit(self._run_and_advance, request)
        future.add_done_callback(_log_job_error)
        self._running[request.target_name] = future

    def _run_and_advance(self, request: CheckoutRequest) -> CheckoutOutcome:
        try:
            return self._run(request)
        finally:
            self._advance(request.target_name)

    def _advance(self, target_name: str) -> None:
        """Hand the target to its next queued request, or forget the target."""
        with self._lock:
            waiting = self._waiting.get(target_name)
            if not waiting:
                self._waiting.pop(target_name, None)
                self._running.pop(target_name, None)
                return
            request = waiting.popleft()
            if not waiting:
                del self._waiting[target_name]
            try:
                self._submit(request)
            except RuntimeError:
                # The pool is shutting down.
                log.warning("checkout_dropped", target=target_name, commit=request.commit_ref)
                self._waiting.pop(target_name, None)
                self._running.pop(target_name, None)

    def _run(self, request: CheckoutRequest) -> CheckoutOutcome:
        identity = request.identity
        bound = log.bind(target=request.target_name, identity=str(identity))
        bound.info("checkout_started", commit=request.commit_ref)
        workdir = self.workdir(request)
        try:
            revision = self._fetcher.fetch(request, workdir)
        except DocServeError as exc:
            return self._fail(request, exc.code, exc.message)
        except Exception as exc:
            bound.exception("checkout_unexpected_error", step="fetch")
            return self._fail(request, ErrorCode.FETCH_FAILED, repr(exc))

        version = request.commit_ref or revision
        destination = self._registry.version_dir(identity, version)
        try:
            published = publish(self._generator, workdir, destination)
        except DocServeError as exc:
            return self._fail(request, exc.code, exc.message, version)
        except Exception as exc:
            bound.exception("checkout_unexpected_error", step="build")
            return self._fail(request, ErrorCode.BUILD_FAILED, repr(exc), version)

        self._markers.clear(identity)
        bound.info("checkout_succeeded", version=version, published=published)
        return CheckoutOutcome(identity=identity, version=version, succeeded=True)

    def workdir(self, request: CheckoutRequest) -> Path:
        """Working tree for ``request``: ``<repos_root>/<owner>/<target_name>``.

        Keyed by owner as well as name, so ``acme/widget`` and ``other/widget``
        never share a tree.
        """
        return self.repos_root / (request.identity.owner or "") / request.target_name

    def _fail(
        self,
        request: CheckoutRequest,
        code: ErrorCode,
        message: str,
        version: str | None = None,
    ) -> CheckoutOutcome:
        identity = request.identity
        if code is ErrorCode.FETCH_FAILED:
            event = "checkout_fetch_failed"
        else:
            event = "checkout_build_failed"
        log.warning(
            event,
            target=request.target_name,
            identity=str(identity),
            version=version,
            code=code.value,
            error=message,
        )
        self._markers.record(identity, code, message)
        return CheckoutOutcome(identity=identity, version=version, succeeded=False, code=code)


def _log_job_error(future: Future[CheckoutOutcome]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        log.error("checkout_job_crashed", error=repr(exc), exc_info=exc)
