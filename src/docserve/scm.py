"""Clone-or-update working trees with the git and svn command line tools."""

from __future__ import annotations

import shutil
import subprocess
from typing import TYPE_CHECKING

import structlog

from docserve.errors import DocServeError, ErrorCode
from docserve.models.checkout import Scheme

if TYPE_CHECKING:
    from pathlib import Path

    from docserve.config import CheckoutSettings
    from docserve.models.checkout import CheckoutRequest

log = structlog.get_logger()


class ScmFetcher:
    """Brings ``workdir`` to ``commit_ref`` (or the latest revision).

    Fetching is idempotent: an existing checkout of the same URL is updated in
    place rather than treated as an error. A tree checked out from a different
    URL is removed and fetched afresh.
    """

    def __init__(self, settings: CheckoutSettings) -> None:
        self._git = settings.git_command
        self._svn = settings.svn_command
        self._timeout = settings.timeout_seconds

    def fetch(self, request: CheckoutRequest, workdir: Path) -> str:
        """Fetch ``request`` into ``workdir`` and return the checked-out revision."""
        if request.scheme is Scheme.GIT:
            return self._fetch_git(request, workdir)
        return self._fetch_svn(request, workdir)

    def _fetch_git(self, request: CheckoutRequest, workdir: Path) -> str:
        git = [self._git, "-C", str(workdir)]
        if (workdir / ".git").is_dir() and self._same_remote(
            [*git, "remote", "get-url", "origin"], request, workdir
        ):
            self._run([*git, "fetch", "--tags", "--force", "origin"])
        else:
            # Also clears a clone left half-finished by a timeout.
            shutil.rmtree(workdir, ignore_errors=True)
            workdir.parent.mkdir(parents=True, exist_ok=True)
            self._run([self._git, "clone", "--quiet", "--", request.source_url, str(workdir)])
        ref = "origin/HEAD"
        if request.commit_ref:
            # A branch name exists only as a remote-tracking ref after clone or fetch.
            remote_ref = f"refs/remotes/origin/{request.commit_ref}"
            if self._succeeds([*git, "rev-parse", "--verify", "--quiet", remote_ref]):
                ref = remote_ref
            else:
                ref = request.commit_ref
        self._run([*git, "checkout", "--quiet", "--force", "--detach", ref])
        return self._run([*git, "rev-parse", "HEAD"]).strip()

    def _fetch_svn(self, request: CheckoutRequest, workdir: Path) -> str:
        revision = ["--revision", request.commit_ref] if request.commit_ref else []
        if (workdir / ".svn").is_dir() and self._same_remote(
            [self._svn, "info", "--show-item", "url", str(workdir)], request, workdir
        ):
            self._run([self._svn, "update", "--non-interactive", *revision, str(workdir)])
        else:
            shutil.rmtree(workdir, ignore_errors=True)
            workdir.parent.mkdir(parents=True, exist_ok=True)
            self._run(
                [
                    self._svn,
                    "checkout",
                    "--non-interactive",
                    *revision,
                    "--",
                    request.source_url,
                    str(workdir),
                ]
            )
        return self._run([self._svn, "info", "--show-item", "revision", str(workdir)]).strip()

    def _same_remote(self, argv: list[str], request: CheckoutRequest, workdir: Path) -> bool:
        """True if the working tree in ``workdir`` tracks ``request.source_url``."""
        try:
            current = self._run(argv).strip()
        except DocServeError:
            current = ""
        if current.rstrip("/") == request.source_url.rstrip("/"):
            return True
        log.info(
            "scm_workdir_replaced",
            workdir=str(workdir),
            previous=current or None,
            url=request.source_url,
        )
        return False

    def _succeeds(self, argv: list[str]) -> bool:
        try:
            self._run(argv)
        except DocServeError:
            return False
        return True

    def _run(self, argv: list[str]) -> str:
        log.debug("scm_exec", cmd=" ".join(argv))
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise DocServeError(
                ErrorCode.FETCH_FAILED,
                f"{argv[0]} timed out after {self._timeout}s",
                recoverable=True,
            ) from exc
        except OSError as exc:
            raise DocServeError(
                ErrorCode.FETCH_FAILED, f"{argv[0]} could not start: {exc}"
            ) from exc
        if result.returncode != 0:
            raise DocServeError(
                ErrorCode.FETCH_FAILED,
                f"{' '.join(argv[1:3])} failed (exit {result.returncode}): "
                f"{result.stderr.strip()[-2000:]}",
                recoverable=True,
            )
        return result.stdout
