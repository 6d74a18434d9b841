"""Immutable result types produced by an extraction run.

Every object here is a point-in-time view of the rendered portal. Nothing is
updated after construction; a changed page needs a fresh extraction.
``to_dict`` produces the JSON shape handed to the export pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

# Alternate spellings accepted from HTTP/CLI payloads.
_FILTER_ALIASES = {
    "actionFilter": "action",
    "actionValue": "action",
    "sectorFilter": "sector",
    "sectorValue": "sector",
    "searchColumn": "search_column",
    "searchKeyword": "keyword",
    "search_keyword": "keyword",
    "fileNo": "file_no",
    "applicantName": "applicant_name",
}


@dataclass(frozen=True)
class FilterSpec:
    """Logical filter values; ``None`` means "leave this control alone"."""

    action: Optional[str] = None
    sector: Optional[str] = None
    search_column: Optional[str] = None
    keyword: Optional[str] = None
    file_no: Optional[str] = None
    applicant_name: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "FilterSpec":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        values: Dict[str, Optional[str]] = {}
        for key, raw in data.items():
            name = _FILTER_ALIASES.get(key, key)
            if name not in known or raw is None:
                continue
            text = str(raw).strip()
            if text:
                values[name] = text
        return cls(**values)

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> Dict[str, str]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class TableRecord:
    headers: Tuple[str, ...]
    rows: Tuple[Mapping[str, str], ...]
    default_headers_used: bool = False

    def __post_init__(self) -> None:
        # Rows are read-only snapshots of the rendered table.
        object.__setattr__(
            self, "rows", tuple(MappingProxyType(dict(row)) for row in self.rows)
        )

    @property
    def first_row(self) -> Optional[Dict[str, str]]:
        return dict(self.rows[0]) if self.rows else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headers": list(self.headers),
            "rows": [dict(row) for row in self.rows],
            "default_headers_used": self.default_headers_used,
        }


@dataclass(frozen=True)
class WorkflowEntry:
    status: Optional[str] = None
    process_name: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    assigned_to: Optional[str] = None
    remarks: Optional[str] = None
    raw_text: Optional[str] = None
    detail_content: Optional[str] = None
    remarks_original: Optional[str] = None
    raw_text_original: Optional[str] = None

    @property
    def has_signal(self) -> bool:
        return bool(self.process_name or self.remarks or self.raw_text)

    def to_dict(self) -> Dict[str, str]:
        # Absent sub-fields are omitted rather than serialised as null.
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class CaseInformation:
    property_information: Dict[str, str] = field(default_factory=dict)
    case_details: Dict[str, str] = field(default_factory=dict)
    gis_coordinates: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {
            "property_information": dict(self.property_information),
            "case_details": dict(self.case_details),
            "gis_coordinates": dict(self.gis_coordinates),
        }


@dataclass(frozen=True)
class AttachmentRecord:
    panel_title: str
    description: str = ""
    date: str = ""
    downloaded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "panel_title": self.panel_title,
            "description": self.description,
            "date": self.date,
            "downloaded": self.downloaded,
        }


@dataclass(frozen=True)
class AttachmentReport:
    """Per-row attachment metadata plus the confirmed files on disk.

    ``panels`` and ``files`` are reported independently and may diverge.
    """

    panels: Tuple[AttachmentRecord, ...] = ()
    files: Tuple[str, ...] = ()
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "panels": [record.to_dict() for record in self.panels],
            "files": list(self.files),
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class ActionResult:
    success: bool
    action: Optional[str] = None
    remarks: Optional[str] = None
    final: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "action": self.action,
            "remarks": self.remarks,
            "final": self.final,
            "error": self.error,
        }


@dataclass(frozen=True)
class StageRecord:
    stage: str
    ok: bool
    attempts: int = 0
    elapsed_seconds: float = 0.0
    detail: str = ""
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "ok": self.ok,
            "attempts": self.attempts,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "detail": self.detail,
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class ExtractionResult:
    mode: str
    success: bool
    filters_used: Dict[str, str] = field(default_factory=dict)
    heading: Optional[str] = None
    total_cases: Optional[str] = None
    table: Optional[TableRecord] = None
    workflow: Tuple[WorkflowEntry, ...] = ()
    case_information: Optional[CaseInformation] = None
    attachments: Optional[AttachmentReport] = None
    action_result: Optional[ActionResult] = None
    stages: Tuple[StageRecord, ...] = ()
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def all_rows(self) -> Tuple[Mapping[str, str], ...]:
        return self.table.rows if self.table is not None else ()

    @property
    def first_row(self) -> Optional[Dict[str, str]]:
        return self.table.first_row if self.table is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "success": self.success,
            "heading": self.heading,
            "total_cases": self.total_cases,
            "filters_used": dict(self.filters_used),
            "first_row": self.first_row,
            "headers": list(self.table.headers) if self.table is not None else [],
            "all_rows": [dict(row) for row in self.all_rows],
            "workflow": [entry.to_dict() for entry in self.workflow],
            "case_information": (
                self.case_information.to_dict() if self.case_information is not None else None
            ),
            "attachments": self.attachments.to_dict() if self.attachments is not None else None,
            "action_result": (
                self.action_result.to_dict() if self.action_result is not None else None
            ),
            "stages": [record.to_dict() for record in self.stages],
            "error": self.error,
            "error_code": self.error_code,
        }


__all__ = [
    "FilterSpec",
    "TableRecord",
    "WorkflowEntry",
    "CaseInformation",
    "AttachmentRecord",
    "AttachmentReport",
    "ActionResult",
    "StageRecord",
    "ExtractionResult",
]
