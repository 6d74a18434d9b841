from __future__ import annotations

"""Stage-by-stage navigation through a portal module.

A run walks ``Dashboard -> ModuleLanding -> Filtered -> DetailOpen ->
TabSelected* -> Returned``. Each stage wraps a UI action, retries it under
:mod:`retry_policy`, and records the outcome in a trace carried on the
result. A failed *primary* stage stops the run; a failed *secondary* stage is
recorded and the run carries on with whatever the page offers.

The page is reused between runs. A run that starts on the module landing
page (left there by the previous run's ``Returned`` stage) skips the
dashboard stages; a run that finds neither the landing page nor the dashboard
re-navigates explicitly.
"""

import math
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, TypeVar

from playwright.sync_api import Error as PWError, Page, TimeoutError as PWTimeout

from . import config
from .error_codes import ErrorCode
from .locator import (
    Scope,
    activate_tab,
    click,
    first_locator,
    locate,
    read_text,
    screenshot,
    wait_seconds,
)
from .logging_utils import _scraper_event
from .models import StageRecord
from .retry_policy import compute_backoff_seconds, decide_retry
from .selectors import HOME_LINKS, Descriptor, ModuleRoute
from .session import SessionLost, is_target_closed_error
from .utils import log_line

T = TypeVar("T")


class Stage(str, Enum):
    DASHBOARD = "dashboard"
    MODULE_LANDING = "module_landing"
    FILTERED = "filtered"
    DETAIL_OPEN = "detail_open"
    TAB_SELECTED = "tab_selected"
    RETURNED = "returned"


_TRANSITIONS: Dict[Optional[Stage], Set[Stage]] = {
    None: {Stage.DASHBOARD},
    Stage.DASHBOARD: {Stage.MODULE_LANDING, Stage.RETURNED},
    Stage.MODULE_LANDING: {Stage.FILTERED, Stage.RETURNED},
    Stage.FILTERED: {Stage.DETAIL_OPEN, Stage.RETURNED},
    Stage.DETAIL_OPEN: {Stage.TAB_SELECTED, Stage.RETURNED},
    Stage.TAB_SELECTED: {Stage.TAB_SELECTED, Stage.RETURNED},
    Stage.RETURNED: set(),
}


def poll_for_signal(
    page: Optional[Page],
    probe: Callable[[], Optional[T]],
    *,
    timeout_seconds: float,
    interval_seconds: float,
    label: str,
) -> Optional[T]:
    """Call ``probe`` until it returns a truthy value or the budget is spent.

    The budget is expressed as a number of probes (``timeout / interval``) so
    that the wait is bounded even when the page's timer is faster than wall
    clock time.
    """

    if interval_seconds > 0:
        polls = max(1, int(math.ceil(timeout_seconds / interval_seconds)))
    else:
        polls = 1

    for index in range(1, polls + 1):
        value = probe()
        if value:
            return value
        if index < polls:
            wait_seconds(page, interval_seconds)

    _scraper_event(
        "signal",
        step="timeout",
        target=label,
        timeout_seconds=timeout_seconds,
        polls=polls,
    )
    return None


def wait_for_network_idle(page: Page, *, label: str) -> None:
    try:
        page.wait_for_load_state(
            "networkidle", timeout=config.timeout_ms(config.NAV_TIMEOUT_SECONDS)
        )
    except PWTimeout:
        log_line(f"[EXTRACTOR] networkidle timeout after {label}; continuing.")
    except PWError as exc:
        if is_target_closed_error(exc):
            raise SessionLost(f"Page closed while waiting after {label}") from exc
        log_line(f"[EXTRACTOR][WARN] networkidle wait after {label} failed: {exc}")


def _safe_goto(page: Page, url: str, *, label: str) -> bool:
    """Navigate to ``url`` with bounded timeouts and structured logging."""

    try:
        _scraper_event("nav", step="goto", target=label, url=url)
        page.goto(
            url,
            wait_until="networkidle",
            timeout=config.timeout_ms(config.NAV_TIMEOUT_SECONDS),
        )
        wait_seconds(page, config.NAV_SETTLE_SECONDS)
        return True
    except PWTimeout as exc:
        log_line(f"[EXTRACTOR][ERROR][NAV] goto({url!r}) timed out: {exc}")
        _scraper_event(
            "error",
            phase="nav",
            step="goto_timeout",
            target=label,
            url=url,
            error=str(exc),
        )
        return False
    except PWError as exc:
        if is_target_closed_error(exc):
            log_line(f"[EXTRACTOR][ERROR][NAV] Target closed during navigation to {label}: {exc}")
            raise SessionLost(f"Page closed during navigation to {label}") from exc
        log_line(f"[EXTRACTOR][ERROR][NAV] goto({url!r}) failed: {exc}")
        _scraper_event(
            "error",
            phase="nav",
            step="goto_error",
            target=label,
            url=url,
            error=str(exc),
        )
        return False


def return_to_dashboard(page: Page) -> bool:
    """Go back to the post-login dashboard via the Home link, else by URL."""

    home = locate(page, HOME_LINKS, label="home link", quiet=True)
    if home is not None and click(page, home, label="home link"):
        wait_for_network_idle(page, label="home link")
        wait_seconds(page, config.NAV_SETTLE_SECONDS)
        _scraper_event("nav", step="home_click")
        return True
    return _safe_goto(page, config.DASHBOARD_URL, label="dashboard")


class NavigationSequencer:
    """Drives and records the stage machine for one run on one page."""

    def __init__(
        self,
        page: Page,
        route: ModuleRoute,
        *,
        max_attempts: Optional[int] = None,
    ) -> None:
        self.page = page
        self.route = route
        self.max_attempts = max(1, max_attempts or config.STAGE_MAX_ATTEMPTS)
        self.total_cases: Optional[str] = None
        self._stage: Optional[Stage] = None
        self._records: List[StageRecord] = []

    @property
    def stage(self) -> Optional[Stage]:
        return self._stage

    @property
    def trace(self) -> Tuple[StageRecord, ...]:
        return tuple(self._records)

    def _check_transition(self, stage: Stage) -> None:
        allowed = _TRANSITIONS[self._stage]
        if stage not in allowed:
            current = self._stage.value if self._stage else "start"
            raise ValueError(f"Invalid stage transition {current} -> {stage.value}")

    def _record(
        self,
        stage: Stage,
        *,
        ok: bool,
        attempts: int = 0,
        elapsed: float = 0.0,
        detail: str = "",
        skipped: bool = False,
    ) -> None:
        self._records.append(
            StageRecord(
                stage=stage.value,
                ok=ok,
                attempts=attempts,
                elapsed_seconds=elapsed,
                detail=detail,
                skipped=skipped,
            )
        )
        _scraper_event(
            "stage",
            module=self.route.name,
            stage=stage.value,
            ok=ok,
            attempts=attempts,
            elapsed_seconds=round(elapsed, 3),
            detail=detail,
            skipped=skipped,
        )

    def run_stage(
        self,
        stage: Stage,
        action: Callable[[], bool],
        *,
        primary: bool = True,
        error_code: str = ErrorCode.TIMEOUT,
        detail: str = "",
    ) -> bool:
        """Run ``action`` as the transition into ``stage``.

        Returns whether the action succeeded. A secondary stage is entered
        even when its action fails; a primary stage is not.
        """

        self._check_transition(stage)
        started = time.monotonic()
        attempt = 0
        ok = False
        while True:
            attempt += 1
            ok = bool(action())
            if ok:
                break
            if not decide_retry(
                attempt, self.max_attempts, error_code=error_code, stage=stage.value
            ):
                break
            wait_seconds(self.page, compute_backoff_seconds(attempt))

        self._record(
            stage,
            ok=ok,
            attempts=attempt,
            elapsed=time.monotonic() - started,
            detail=detail,
        )
        if ok or not primary:
            self._stage = stage
        return ok

    # -- Dashboard -> ModuleLanding -------------------------------------------------

    def _card_scope(self) -> Scope:
        if not self.route.card:
            return self.page
        card = locate(self.page, self.route.card, label=f"{self.route.name} card", quiet=True)
        return card if card is not None else self.page

    def _find_view_more(self):
        return poll_for_signal(
            self.page,
            lambda: locate(
                self._card_scope(), self.route.view_more, label="view more", quiet=True
            ),
            timeout_seconds=config.ELEMENT_TIMEOUT_SECONDS,
            interval_seconds=config.SIGNAL_POLL_INTERVAL_SECONDS,
            label=f"{self.route.name} view more",
        )

    def on_module_landing(self) -> bool:
        fragment = self.route.landing_url_fragment
        if fragment and fragment not in (self.page.url or ""):
            return False
        return (
            locate(self.page, self.route.landing_signal, label="landing signal", quiet=True)
            is not None
        )

    def read_total_cases(self) -> Optional[str]:
        """Poll the dashboard badge until it shows a non-zero count.

        The badge renders as ``0`` before its data arrives. It is a secondary
        signal: on timeout the last value seen (possibly ``None``) is returned.
        """

        last_seen: Optional[str] = None

        def _probe() -> Optional[str]:
            nonlocal last_seen
            badge = locate(
                self._card_scope(),
                self.route.total_cases_badge,
                label="total cases badge",
                quiet=True,
            )
            text = read_text(badge)
            if text:
                last_seen = text
            return text if text and text != "0" else None

        value = poll_for_signal(
            self.page,
            _probe,
            timeout_seconds=config.BADGE_POLL_SECONDS,
            interval_seconds=config.BADGE_POLL_INTERVAL_SECONDS,
            label=f"{self.route.name} total cases",
        )
        _scraper_event(
            "signal",
            step="total_cases",
            module=self.route.name,
            value=value or last_seen,
            stabilised=value is not None,
        )
        return value or last_seen

    def _reach_dashboard(self) -> bool:
        if self._find_view_more() is not None:
            return True
        log_line(f"[EXTRACTOR] {self.route.name}: dashboard not detected; re-navigating.")
        return_to_dashboard(self.page)
        return self._find_view_more() is not None

    def _open_module(self) -> bool:
        if self.on_module_landing():
            return True

        self.total_cases = self.read_total_cases()
        view_more = locate(self._card_scope(), self.route.view_more, label="view more")
        if view_more is None:
            return False
        if not click(self.page, view_more, label="view more"):
            return False
        wait_for_network_idle(self.page, label="view more")
        wait_seconds(self.page, config.NAV_SETTLE_SECONDS)

        landed = poll_for_signal(
            self.page,
            self.on_module_landing,
            timeout_seconds=config.ELEMENT_TIMEOUT_SECONDS,
            interval_seconds=config.SIGNAL_POLL_INTERVAL_SECONDS,
            label=f"{self.route.name} landing",
        )
        screenshot(self.page, f"{self.route.name}_landing")
        return bool(landed)

    def enter_module(self) -> bool:
        """Reach the module landing page, skipping ahead when already there."""

        if self.on_module_landing():
            detail = "already on module landing"
            self._check_transition(Stage.DASHBOARD)
            self._record(Stage.DASHBOARD, ok=True, detail=detail, skipped=True)
            self._stage = Stage.DASHBOARD
            self._record(Stage.MODULE_LANDING, ok=True, detail=detail, skipped=True)
            self._stage = Stage.MODULE_LANDING
            _scraper_event("nav", step="skip_ahead", module=self.route.name)
            return True

        if not self.run_stage(
            Stage.DASHBOARD,
            self._reach_dashboard,
            error_code=ErrorCode.NOT_FOUND,
            detail="view more link",
        ):
            return False
        return self.run_stage(
            Stage.MODULE_LANDING,
            self._open_module,
            error_code=ErrorCode.TIMEOUT,
            detail=f"total_cases={self.total_cases}",
        )

    # -- Filtered -> DetailOpen -> TabSelected ------------------------------------

    def wait_for_primary(
        self,
        probe: Callable[[], Optional[T]],
        *,
        label: str,
        timeout_seconds: Optional[float] = None,
    ) -> Optional[T]:
        return poll_for_signal(
            self.page,
            probe,
            timeout_seconds=(
                config.TABLE_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
            ),
            interval_seconds=config.SIGNAL_POLL_INTERVAL_SECONDS,
            label=label,
        )

    def open_row(
        self,
        container: Sequence[Descriptor],
        row_button: str,
        detail_signal: Sequence[Descriptor],
        *,
        row_index: int = 0,
        label: str = "row",
        timeout_seconds: Optional[float] = None,
    ) -> bool:
        """Click the action button of one result row and wait for the detail view.

        The table is looked up afresh on every attempt; filtering re-renders it.
        """

        def _open() -> bool:
            table = locate(self.page, container, label=f"{label} container")
            if table is None:
                return False
            rows = table.locator("tbody tr")
            if row_index >= rows.count():
                log_line(
                    f"[EXTRACTOR][WARN] Row {row_index} not found (only {rows.count()} rows)."
                )
                return False
            button = first_locator(rows.nth(row_index), row_button)
            if button is None:
                log_line(f"[EXTRACTOR][WARN] Action button not found in row {row_index}.")
                return False
            log_line(f"[EXTRACTOR] Clicking {read_text(button)!r} on row {row_index}.")
            if not click(self.page, button, label=f"{label} button"):
                return False
            wait_for_network_idle(self.page, label=f"{label} open")
            wait_seconds(self.page, config.NAV_SETTLE_SECONDS)
            opened = self.wait_for_primary(
                lambda: locate(self.page, detail_signal, label="detail signal", quiet=True),
                label=f"{label} detail",
                timeout_seconds=(
                    config.ELEMENT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
                ),
            )
            screenshot(self.page, f"{self.route.name}_detail")
            return opened is not None

        return self.run_stage(
            Stage.DETAIL_OPEN,
            _open,
            error_code=ErrorCode.OPEN_FAILED,
            detail=f"row {row_index}",
        )

    def select_tab(
        self,
        name: str,
        chain: Sequence[Descriptor],
        *,
        scope: Optional[Scope] = None,
    ) -> bool:
        return self.run_stage(
            Stage.TAB_SELECTED,
            lambda: activate_tab(self.page, chain, label=name, scope=scope),
            primary=False,
            error_code=ErrorCode.NOT_FOUND,
            detail=name,
        )

    # -- Returned -----------------------------------------------------------------

    def _navigate_back(self) -> bool:
        back = locate(self.page, self.route.back, label="back link")
        if back is not None:
            if not click(self.page, back, label="back link"):
                return False
        else:
            log_line("[EXTRACTOR] Back link not found; using browser back.")
            try:
                self.page.go_back(
                    wait_until="networkidle",
                    timeout=config.timeout_ms(config.NAV_TIMEOUT_SECONDS),
                )
            except PWTimeout as exc:
                log_line(f"[EXTRACTOR][WARN] Browser back timed out: {exc}")
            except PWError as exc:
                if is_target_closed_error(exc):
                    raise SessionLost("Page closed during browser back") from exc
                log_line(f"[EXTRACTOR][WARN] Browser back failed: {exc}")
        wait_for_network_idle(self.page, label="back")
        return True

    def return_to_landing(self, *, via: Optional[Callable[[], bool]] = None) -> bool:
        """Leave the page on the module landing so the next run can skip ahead.

        When the landing page cannot be verified afterwards the page is sent
        back to the dashboard instead, and the stage is recorded as failed.
        """

        def _return() -> bool:
            (via or self._navigate_back)()
            wait_seconds(self.page, config.NAV_SETTLE_SECONDS)
            return bool(
                poll_for_signal(
                    self.page,
                    self.on_module_landing,
                    timeout_seconds=config.ELEMENT_TIMEOUT_SECONDS,
                    interval_seconds=config.SIGNAL_POLL_INTERVAL_SECONDS,
                    label=f"{self.route.name} return",
                )
            )

        ok = self.run_stage(
            Stage.RETURNED,
            _return,
            primary=False,
            error_code=ErrorCode.NOT_FOUND,
            detail="module landing",
        )
        if not ok:
            log_line(
                f"[EXTRACTOR] {self.route.name}: landing not verified after return; "
                "re-navigating to dashboard."
            )
            return_to_dashboard(self.page)
        return ok


__all__ = [
    "Stage",
    "NavigationSequencer",
    "poll_for_signal",
    "wait_for_network_idle",
    "return_to_dashboard",
]
