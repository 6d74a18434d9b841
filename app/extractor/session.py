from __future__ import annotations

"""Session boundary and run exclusivity.

The browser process, login and CAPTCHA handling live outside this package.
Orchestrators receive an object satisfying :class:`BrowserSession` and only
ever borrow its page; they never launch or close the browser.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from playwright.sync_api import Page

from .error_codes import ErrorCode
from .logging_utils import _scraper_event


class BrowserSession(Protocol):
    def get_page(self) -> Optional[Page]:
        ...

    def is_alive(self) -> bool:
        ...


class PageSession:
    """Adapter for callers that already hold a logged-in page."""

    def __init__(self, page: Optional[Page]) -> None:
        self._page = page

    def get_page(self) -> Optional[Page]:
        return self._page

    def is_alive(self) -> bool:
        return self._page is not None and not self._page.is_closed()


class ExtractionError(Exception):
    """Base class for failures that abort an extraction run."""

    def __init__(self, error_code: str, message: str) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message


class SessionLost(ExtractionError):
    def __init__(self, message: str = "Browser session is no longer available") -> None:
        super().__init__(ErrorCode.SESSION_LOST, message)


class RunInProgress(ExtractionError):
    def __init__(self, message: str = "Another extraction run is already in progress") -> None:
        super().__init__(ErrorCode.RUN_IN_PROGRESS, message)


def is_target_closed_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* indicates the Playwright target is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
            "Execution context was destroyed",
        )
    )


def require_page(session: Optional[BrowserSession]) -> Page:
    """Return the live page of ``session`` or raise :class:`SessionLost`."""

    if session is None:
        raise SessionLost("No active session")
    if not session.is_alive():
        raise SessionLost("Browser session is not alive")
    page = session.get_page()
    if page is None or page.is_closed():
        raise SessionLost("No active page in session")
    return page


class RunGuard:
    """Non-blocking mutex enforcing one extraction run per page.

    A second caller is rejected immediately instead of queueing behind the
    active run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @contextmanager
    def exclusive(self, label: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            _scraper_event(
                "state",
                phase="run_guard",
                kind="rejected",
                requested=label,
                holder=self._holder,
            )
            raise RunInProgress(
                f"Extraction run {self._holder!r} is in progress; rejected {label!r}"
            )
        self._holder = label
        _scraper_event("state", phase="run_guard", kind="acquired", holder=label)
        try:
            yield
        finally:
            self._holder = None
            self._lock.release()
            _scraper_event("state", phase="run_guard", kind="released", holder=label)


# Shared by both orchestrators: they drive the same page.
RUN_GUARD = RunGuard()


__all__ = [
    "BrowserSession",
    "PageSession",
    "ExtractionError",
    "SessionLost",
    "RunInProgress",
    "is_target_closed_error",
    "require_page",
    "RunGuard",
    "RUN_GUARD",
]
