from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["http", "cli", "tests"]

_TIMEOUT_FIELDS = (
    "NAV_TIMEOUT_SECONDS",
    "ELEMENT_TIMEOUT_SECONDS",
    "TABLE_TIMEOUT_SECONDS",
    "BADGE_POLL_SECONDS",
    "WORKFLOW_ITEM_TIMEOUT_SECONDS",
    "ATTACHMENT_PANEL_TIMEOUT_SECONDS",
    "MODAL_TIMEOUT_SECONDS",
    "TAB_ACTIVE_TIMEOUT_SECONDS",
    "DOWNLOAD_TIMEOUT_SECONDS",
    "CLICK_TIMEOUT_MS",
)

_DELAY_FIELDS = (
    "DROPDOWN_SETTLE_SECONDS",
    "TAB_SETTLE_SECONDS",
    "NAV_SETTLE_SECONDS",
    "FILTER_SETTLE_SECONDS",
    "PANEL_EXPAND_SECONDS",
    "PANEL_COLLAPSE_SECONDS",
    "CASE_INFO_SETTLE_SECONDS",
    "SCROLL_SETTLE_SECONDS",
    "DOWNLOAD_POLL_SECONDS",
    "BADGE_POLL_INTERVAL_SECONDS",
    "SIGNAL_POLL_INTERVAL_SECONDS",
)


def _raise_config_error(
    message: str, *, entrypoint: Entrypoint, error: str, mode: str | None
) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
        mode=mode,
    )
    mode_fragment = f", mode={mode}" if mode else ""
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint}{mode_fragment})")
    raise ValueError(message)


def validate_runtime_config(entrypoint: Entrypoint, *, mode: str | None = None) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Non-fatal adjustments (negative settle delays) are logged and clamped but
    do not raise.
    """

    for field_name in _TIMEOUT_FIELDS:
        value = getattr(config, field_name)
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
                mode=mode,
            )

    if not str(config.DOWNLOAD_DIR).strip() or str(config.DOWNLOAD_DIR) == ".":
        _raise_config_error(
            "DOWNLOAD_DIR must name a directory.",
            entrypoint=entrypoint,
            error="download_dir_missing",
            mode=mode,
        )

    if config.STAGE_MAX_ATTEMPTS < 1:
        _raise_config_error(
            "STAGE_MAX_ATTEMPTS must be at least 1.",
            entrypoint=entrypoint,
            error="stage_attempts_invalid",
            mode=mode,
        )

    for field_name in _DELAY_FIELDS:
        value = getattr(config, field_name)
        if value < 0:
            _scraper_event(
                "state",
                phase="config",
                context="runtime_validation",
                kind="config_adjustment",
                field=field_name,
                value=value,
                adjusted=0.0,
                entrypoint=entrypoint,
                mode=mode,
            )
            log_line(f"[CONFIG] {field_name} < 0; clamping to 0.")
            setattr(config, field_name, 0.0)


__all__ = ["validate_runtime_config", "Entrypoint"]
