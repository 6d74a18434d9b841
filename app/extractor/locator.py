from __future__ import annotations

"""Descriptor-driven element lookup and the two UI sub-protocols built on it.

Lookups never raise for an absent element: an exhausted fallback chain
returns ``None`` and logs every strategy that was tried. The only exception
that escapes is :class:`~app.extractor.session.SessionLost`, raised when
Playwright reports that the page itself is gone.
"""

import re
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from playwright.sync_api import Error as PWError, Locator, Page, TimeoutError as PWTimeout

from . import config
from .logging_utils import _scraper_event
from .selectors import Descriptor, DescriptorKind
from .session import SessionLost, is_target_closed_error
from .utils import clean_text, log_line, sanitize_filename

Scope = Union[Page, Locator]


def wait_seconds(page: Optional[Page], seconds: float) -> None:
    """Wait safely for ``seconds`` only if *page* remains open."""

    if page is None:
        return

    if seconds is None or seconds <= 0:
        return

    if not page.is_closed():
        page.wait_for_timeout(int(seconds * 1000))


def _raise_if_closed(exc: BaseException, context: str) -> None:
    if is_target_closed_error(exc):
        log_line(f"[EXTRACTOR][ERROR][SESSION] Target closed during {context}: {exc}")
        raise SessionLost(f"Page closed during {context}") from exc


def first_locator(parent: Scope, selector: str) -> Optional[Locator]:
    try:
        loc = parent.locator(selector)
        return loc.nth(0) if loc.count() else None
    except PWError as exc:
        _raise_if_closed(exc, f"locator {selector!r}")
        log_line(f"[EXTRACTOR][WARN] Locator error for {selector!r}: {exc}")
        return None


def read_text(locator: Optional[Locator]) -> str:
    """Return the collapsed ``innerText`` of *locator*, or ``""``."""

    if locator is None:
        return ""
    try:
        return clean_text(locator.inner_text())
    except PWTimeout:
        return ""
    except PWError as exc:
        _raise_if_closed(exc, "inner_text")
        return ""


def read_html(locator: Optional[Locator], *, outer: bool = False) -> str:
    """Return the markup of *locator*; ``outer`` includes the element itself."""

    if locator is None:
        return ""
    try:
        if outer:
            return locator.evaluate("el => el.outerHTML")
        return locator.inner_html()
    except PWTimeout:
        return ""
    except PWError as exc:
        _raise_if_closed(exc, "inner_html")
        return ""


def extract_attr(locator: Locator, names: Iterable[str]) -> Optional[str]:
    for name in names:
        try:
            raw_value = locator.get_attribute(name)
        except PWTimeout:
            raw_value = None
        except PWError as exc:
            _raise_if_closed(exc, f"get_attribute({name!r})")
            raw_value = None
        if raw_value and str(raw_value).strip():
            return str(raw_value).strip()
    return None


def has_class(locator: Locator, class_name: str) -> bool:
    classes = (extract_attr(locator, ("class",)) or "").split()
    return class_name in classes


def _xpath_literal(text: str) -> str:
    if '"' not in text:
        return f'"{text}"'
    if "'" not in text:
        return f"'{text}'"
    # XPath 1.0 has no escapes; splice the double quotes back in with concat().
    parts = ", '\"', ".join(f'"{part}"' for part in text.split('"'))
    return f"concat({parts})"


def _match_first(candidates: Locator, pattern: str, probe: Optional[str] = None) -> Optional[Locator]:
    """Return the first candidate whose text (or ``probe`` child text) matches."""

    regex = re.compile(pattern, re.IGNORECASE)
    for index in range(candidates.count()):
        candidate = candidates.nth(index)
        target = first_locator(candidate, probe) if probe else candidate
        if target is not None and regex.search(read_text(target)):
            return candidate
    return None


def _resolve(scope: Scope, descriptor: Descriptor) -> Optional[Locator]:
    kind = descriptor.kind
    if kind is DescriptorKind.EXACT_ID:
        return first_locator(scope, f"#{descriptor.value}")
    if kind is DescriptorKind.ATTRIBUTE_SELECTOR:
        return first_locator(scope, descriptor.value)
    if kind is DescriptorKind.ICON_CLASS:
        return first_locator(scope, f"{descriptor.tag}:has(i.{descriptor.value})")
    if kind is DescriptorKind.XPATH_TEXT_CONTAINS:
        return first_locator(
            scope,
            f"xpath=.//{descriptor.tag}[contains(., {_xpath_literal(descriptor.value)})]",
        )
    if kind is DescriptorKind.FIRST_OPTION_TEXT:
        return _match_first(scope.locator("select"), descriptor.value, probe="option")
    if kind is DescriptorKind.HEADER_TEXT:
        return _match_first(
            scope.locator(descriptor.tag), descriptor.value, probe=descriptor.header or None
        )
    return _match_first(scope.locator(descriptor.tag), descriptor.value)


def locate(
    scope: Scope,
    chain: Sequence[Descriptor],
    *,
    label: str,
    quiet: bool = False,
) -> Optional[Locator]:
    """Resolve the first descriptor in ``chain`` that matches inside ``scope``.

    ``quiet`` suppresses the miss log for probes that are expected to fail,
    such as state checks polled in a loop.
    """

    tried: List[str] = []
    for index, descriptor in enumerate(chain):
        try:
            found = _resolve(scope, descriptor)
        except PWTimeout:
            found = None
        except PWError as exc:
            _raise_if_closed(exc, f"locate {label}")
            log_line(f"[EXTRACTOR][WARN] {label}: {descriptor.describe()} raised {exc}")
            found = None
        tried.append(descriptor.describe())
        if found is not None:
            if index > 0:
                _scraper_event(
                    "locator",
                    step="fallback_hit",
                    target=label,
                    strategy=descriptor.describe(),
                    tried=tried[:-1],
                )
            return found

    if not quiet:
        _scraper_event("locator", step="not_found", target=label, tried=tried)
        log_line(f"[EXTRACTOR][WARN] {label} not found (tried: {', '.join(tried)})")
    return None


def wait_for_any(
    page: Page,
    selectors: Sequence[str],
    *,
    timeout_seconds: float,
    label: str,
) -> Optional[str]:
    """Return the first selector in ``selectors`` that becomes visible."""

    for selector in selectors:
        try:
            page.wait_for_selector(
                selector, state="visible", timeout=config.timeout_ms(timeout_seconds)
            )
            _scraper_event("locator", step="wait_hit", target=label, selector=selector)
            return selector
        except PWTimeout:
            log_line(f"[EXTRACTOR] {label}: selector {selector!r} did not match.")
        except PWError as exc:
            _raise_if_closed(exc, f"wait for {label}")
            log_line(f"[EXTRACTOR][WARN] {label}: selector {selector!r} raised {exc}")
    _scraper_event("locator", step="wait_miss", target=label, tried=list(selectors))
    return None


def click(page: Page, target: Locator, *, label: str) -> bool:
    """Click ``target``; fall back to a synthetic DOM click if Playwright times out.

    Angular overlays regularly intercept pointer events on these portals, so a
    timed-out click is retried as a dispatched ``click`` event.
    """

    try:
        target.click(timeout=config.CLICK_TIMEOUT_MS)
        return True
    except PWTimeout as exc:
        log_line(f"[EXTRACTOR][WARN] Click on {label} timed out; dispatching DOM click: {exc}")
    except PWError as exc:
        _raise_if_closed(exc, f"click {label}")
        log_line(f"[EXTRACTOR][WARN] Click on {label} failed; dispatching DOM click: {exc}")

    try:
        target.dispatch_event("click")
        _scraper_event("click", step="dispatched", target=label)
        return True
    except PWTimeout as exc:
        log_line(f"[EXTRACTOR][ERROR][CLICK] Dispatched click on {label} timed out: {exc}")
    except PWError as exc:
        _raise_if_closed(exc, f"click {label}")
        log_line(f"[EXTRACTOR][ERROR][CLICK] Dispatched click on {label} failed: {exc}")
    return False


def fill(target: Locator, value: str, *, label: str) -> bool:
    try:
        target.fill(value, timeout=config.CLICK_TIMEOUT_MS)
        _scraper_event("input", step="filled", target=label, length=len(value))
        return True
    except PWTimeout as exc:
        log_line(f"[EXTRACTOR][WARN] Typing into {label} timed out: {exc}")
    except PWError as exc:
        _raise_if_closed(exc, f"fill {label}")
        log_line(f"[EXTRACTOR][WARN] Typing into {label} failed: {exc}")
    return False


def _scroll_into_view(target: Locator) -> None:
    try:
        target.scroll_into_view_if_needed(timeout=config.CLICK_TIMEOUT_MS)
    except PWTimeout:
        return
    except PWError as exc:
        _raise_if_closed(exc, "scroll_into_view")


def read_options(select: Locator) -> List[Tuple[str, str]]:
    """Return ``(value, text)`` pairs for every ``<option>`` of *select*."""

    options = select.locator("option")
    pairs: List[Tuple[str, str]] = []
    for index in range(options.count()):
        option = options.nth(index)
        text = read_text(option)
        value = option.get_attribute("value")
        # An option without a value attribute submits its text.
        pairs.append((text if value is None else value, text))
    return pairs


def choose_option(options: Sequence[Tuple[str, str]], wanted: str) -> Optional[Tuple[str, str]]:
    """Pick the option for ``wanted``: exact value, exact text, then fuzzy text.

    Exact text is compared case-insensitively after trimming. The fuzzy pass
    is a case-insensitive substring match in both directions (option text
    contains the query, or the query contains the option text), first match in
    document order. Options with empty text never match.
    """

    for value, text in options:
        if value == wanted:
            return value, text

    needle = wanted.strip().lower()
    if not needle:
        return None
    for value, text in options:
        if text.strip().lower() == needle:
            return value, text
    for value, text in options:
        haystack = text.strip().lower()
        if not haystack:
            continue
        if needle in haystack or haystack in needle:
            return value, text
    return None


def select_option_by_text(
    page: Page,
    select: Locator,
    wanted: str,
    *,
    label: str,
) -> Optional[str]:
    """Select ``wanted`` in ``select`` and notify the page's bindings.

    Returns the option value that was selected, or ``None`` when nothing
    matched. Change and input events are dispatched explicitly because the
    portal's form bindings ignore a bare value assignment.
    """

    options = read_options(select)
    choice = choose_option(options, wanted)
    if choice is None:
        _scraper_event(
            "dropdown",
            step="no_match",
            target=label,
            wanted=wanted,
            options=[text for _, text in options],
        )
        log_line(f"[EXTRACTOR][WARN] No option matching {wanted!r} in {label}")
        return None

    value, text = choice
    _scroll_into_view(select)
    wait_seconds(page, config.SCROLL_SETTLE_SECONDS)
    try:
        select.select_option(value=value, timeout=config.CLICK_TIMEOUT_MS)
        select.dispatch_event("change")
        select.dispatch_event("input")
    except PWTimeout as exc:
        log_line(f"[EXTRACTOR][ERROR][DROPDOWN] Selecting {text!r} in {label} timed out: {exc}")
        return None
    except PWError as exc:
        _raise_if_closed(exc, f"select {label}")
        log_line(f"[EXTRACTOR][ERROR][DROPDOWN] Selecting {text!r} in {label} failed: {exc}")
        return None

    _scraper_event(
        "dropdown",
        step="selected",
        target=label,
        wanted=wanted,
        value=value,
        text=text,
        exact=value == wanted,
    )
    wait_seconds(page, config.DROPDOWN_SETTLE_SECONDS)
    return value


def activate_tab(
    page: Page,
    chain: Sequence[Descriptor],
    *,
    label: str,
    scope: Optional[Scope] = None,
) -> bool:
    """Make the tab described by ``chain`` active.

    Activation is idempotent: a tab already carrying the ``active`` class is
    left alone so its navigation side effects do not fire twice.
    """

    tab = locate(scope if scope is not None else page, chain, label=f"{label} tab")
    if tab is None:
        return False

    if has_class(tab, "active"):
        _scraper_event("tab", step="already_active", target=label)
        return True

    if not click(page, tab, label=f"{label} tab"):
        return False
    _scraper_event("tab", step="activated", target=label)
    wait_seconds(page, config.TAB_SETTLE_SECONDS)
    return True


def screenshot(page: Optional[Page], name: str) -> None:
    """Save a diagnostic screenshot; failures are logged and ignored."""

    if page is None or not config.SCREENSHOTS_ENABLED:
        return
    path = config.SCREENSHOT_DIR / f"{sanitize_filename(name)}.png"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        page.screenshot(path=str(path), full_page=False)
        log_line(f"Saved debug screenshot -> {path}")
    except Exception as exc:  # noqa: BLE001
        log_line(f"Failed to save debug screenshot: {exc}")


__all__ = [
    "wait_seconds",
    "first_locator",
    "read_text",
    "read_html",
    "extract_attr",
    "has_class",
    "locate",
    "wait_for_any",
    "click",
    "fill",
    "read_options",
    "choose_option",
    "select_option_by_text",
    "activate_tab",
    "screenshot",
]
