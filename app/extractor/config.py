"""Configuration constants for the permit and court-case portal extractor."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("EASEAPP_DATA_DIR", "/app/data"))
DOWNLOAD_DIR: Path = DATA_DIR / "downloads"
SCREENSHOT_DIR: Path = DATA_DIR / "screenshots"
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"

DASHBOARD_URL: str = os.getenv(
    "EASEAPP_DASHBOARD_URL", "https://uhudaeaseapp.uk.gov.in/easeapp/private"
)


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def _parse_delay_seconds(env_var: str, default: float) -> float:
    """Parse a settle delay in seconds; malformed values fall back to ``default``."""

    try:
        return float(os.getenv(env_var, str(default)))
    except ValueError:
        return default


# Playwright timeouts (seconds)
# The portals are slow government sites; navigation budgets are generous.
NAV_TIMEOUT_SECONDS: int = _parse_timeout_seconds("EASEAPP_NAV_TIMEOUT_SECONDS", 120)
ELEMENT_TIMEOUT_SECONDS: int = _parse_timeout_seconds("EASEAPP_ELEMENT_TIMEOUT_SECONDS", 15)
# Primary signal: results table rows after filtering.
TABLE_TIMEOUT_SECONDS: int = _parse_timeout_seconds("EASEAPP_TABLE_TIMEOUT_SECONDS", 15)
# Secondary signal: dashboard total-cases badge.
BADGE_POLL_SECONDS: int = _parse_timeout_seconds("EASEAPP_BADGE_POLL_SECONDS", 15)
WORKFLOW_ITEM_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "EASEAPP_WORKFLOW_ITEM_TIMEOUT_SECONDS", 8
)
ATTACHMENT_PANEL_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "EASEAPP_ATTACHMENT_PANEL_TIMEOUT_SECONDS", 10
)
MODAL_TIMEOUT_SECONDS: int = _parse_timeout_seconds("EASEAPP_MODAL_TIMEOUT_SECONDS", 15)
TAB_ACTIVE_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "EASEAPP_TAB_ACTIVE_TIMEOUT_SECONDS", 15
)
DOWNLOAD_TIMEOUT_SECONDS: int = _parse_timeout_seconds("EASEAPP_DOWNLOAD_TIMEOUT_SECONDS", 30)
# Click-level timeout remains in milliseconds to match Playwright API expectations.
CLICK_TIMEOUT_MS: int = int(os.getenv("EASEAPP_CLICK_TIMEOUT_MS", "5000"))

# Settle delays (seconds) for reactive re-renders after UI actions
DROPDOWN_SETTLE_SECONDS: float = _parse_delay_seconds("EASEAPP_DROPDOWN_SETTLE_SECONDS", 2.0)
TAB_SETTLE_SECONDS: float = _parse_delay_seconds("EASEAPP_TAB_SETTLE_SECONDS", 2.0)
NAV_SETTLE_SECONDS: float = _parse_delay_seconds("EASEAPP_NAV_SETTLE_SECONDS", 3.0)
FILTER_SETTLE_SECONDS: float = _parse_delay_seconds("EASEAPP_FILTER_SETTLE_SECONDS", 3.0)
PANEL_EXPAND_SECONDS: float = _parse_delay_seconds("EASEAPP_PANEL_EXPAND_SECONDS", 1.5)
PANEL_COLLAPSE_SECONDS: float = _parse_delay_seconds("EASEAPP_PANEL_COLLAPSE_SECONDS", 0.5)
CASE_INFO_SETTLE_SECONDS: float = _parse_delay_seconds("EASEAPP_CASE_INFO_SETTLE_SECONDS", 5.0)
SCROLL_SETTLE_SECONDS: float = _parse_delay_seconds("EASEAPP_SCROLL_SETTLE_SECONDS", 0.3)
DOWNLOAD_POLL_SECONDS: float = _parse_delay_seconds("EASEAPP_DOWNLOAD_POLL_SECONDS", 0.5)
BADGE_POLL_INTERVAL_SECONDS: float = _parse_delay_seconds(
    "EASEAPP_BADGE_POLL_INTERVAL_SECONDS", 1.0
)
# Interval between probes of a primary signal (table rows, landing markers).
SIGNAL_POLL_INTERVAL_SECONDS: float = _parse_delay_seconds(
    "EASEAPP_SIGNAL_POLL_INTERVAL_SECONDS", 0.5
)

# Attempts per navigation stage before the sequencer gives up on it.
STAGE_MAX_ATTEMPTS: int = int(os.getenv("EASEAPP_STAGE_MAX_ATTEMPTS", "2"))

# Filename suffixes Chromium/Firefox use while a download is still being written.
IN_PROGRESS_DOWNLOAD_SUFFIXES: tuple[str, ...] = (".crdownload", ".part", ".tmp")

SCREENSHOTS_ENABLED: bool = os.getenv("EASEAPP_SCREENSHOTS", "1").strip().lower() not in {
    "0",
    "false",
}

# One timestamped log file per run instead of appending to LOG_FILE.
LOG_PER_RUN: bool = os.getenv("EASEAPP_LOG_PER_RUN", "0").strip().lower() in {"1", "true"}

DEFAULT_PERMIT_FILTERS: dict[str, str] = {"action": "Sec Verification"}

# Fallback header rows used when a results table renders without a <thead>.
PERMIT_TASK_HEADERS: tuple[str, ...] = (
    "#",
    "Application No.",
    "File No.",
    "Applicant Name",
    "Date",
    "Service Name",
    "Status",
    "Due Date",
    "Days",
    "Action",
)
PERMIT_PROPOSAL_HEADERS: tuple[str, ...] = (
    "#",
    "Application No.",
    "File No.",
    "Applicant Name",
    "Date",
    "Service Name",
    "Status",
    "Pending With",
    "Action",
)
COURT_CASE_TASK_HEADERS: tuple[str, ...] = (
    "#",
    "File/Case No.",
    "Sector",
    "Defendent",
    "Assigned On",
    "Status",
    "Action",
)

# Table columns known to carry legacy-encoded Hindi names.
LEGACY_ENCODED_COLUMNS: tuple[str, ...] = ("Defendent", "Defendant")


def timeout_ms(seconds: float) -> int:
    """Convert a seconds budget into the millisecond value Playwright expects."""

    return int(max(0.0, seconds) * 1000)
