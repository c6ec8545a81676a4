"""Conflict detection between matched Notion pages and local records."""

import json
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from shared.models import (
    Conflict,
    ConflictDetectionResult,
    ConflictType,
    MatchResult,
    Severity,
)
from shared.timestamps import isoformat, looks_like_iso_date, parse_timestamp
from services.notion_sync.field_maps import HIGH_SEVERITY_FIELDS, important_fields
from services.notion_sync.notion_to_db import to_local

logger = logging.getLogger(__name__)


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, (datetime, date)) or looks_like_iso_date(value):
        return parse_timestamp(value)
    return None


def values_equivalent(remote_value: Any, local_value: Any) -> bool:
    """
    Compare a remote and a local field value, ignoring representation noise.

    Lists compare order-insensitively, timestamps compare as UTC instants,
    and strings compare trimmed and case-insensitively.
    """
    if remote_value is None and local_value is None:
        return True
    if remote_value is None or local_value is None:
        return False

    if isinstance(remote_value, (list, tuple)) and isinstance(local_value, (list, tuple)):
        if len(remote_value) != len(local_value):
            return False
        return (
            json.dumps(sorted(remote_value, key=str), default=str)
            == json.dumps(sorted(local_value, key=str), default=str)
        )

    if isinstance(remote_value, bool) or isinstance(local_value, bool):
        return remote_value is local_value

    remote_time = _as_datetime(remote_value)
    local_time = _as_datetime(local_value)
    if remote_time is not None and local_time is not None:
        return remote_time == local_time

    if isinstance(remote_value, str) and isinstance(local_value, str):
        return remote_value.strip().lower() == local_value.strip().lower()

    return remote_value == local_value


def field_severity(field: str) -> Severity:
    """High for identifying and workflow fields, medium for everything else."""
    return Severity.HIGH if field in HIGH_SEVERITY_FIELDS else Severity.MEDIUM


def records_equivalent(remote_data: Dict[str, Any], local_record: Dict[str, Any], entity_type) -> bool:
    """True when every important field of the entity type matches."""
    return all(
        values_equivalent(remote_data.get(field), local_record.get(field))
        for field in important_fields(entity_type)
    )


def _edited_after(edited: Optional[datetime], synced: datetime) -> bool:
    return edited is not None and edited > synced


def detect_conflicts(match: MatchResult, entity_type) -> List[Conflict]:
    """
    Detect conflicts for one matched page.

    A page with no local record yields a single missing conflict carrying
    the transformed page as the proposed new record. Otherwise a record
    conflict is raised when both sides changed since the last sync, or,
    for records that were never synced, when their important fields
    differ. Field conflicts are listed for every differing important field
    whenever a record conflict was found or the record was never synced.

    Args:
        match: Result of matching one Notion page
        entity_type: Entity type both sides hold

    Returns:
        List of conflicts, empty when the two sides agree
    """
    page = match.remote_page
    remote_data = to_local(page, entity_type)
    remote_timestamp = isoformat(page.last_edited_time) or page.last_edited_time

    if match.local_record is None:
        return [Conflict(
            id=f"missing-{page.id}",
            type=ConflictType.MISSING,
            remote_value=remote_data,
            local_value=None,
            remote_timestamp=remote_timestamp,
            local_timestamp="",
            severity=Severity.MEDIUM,
            description="Page exists in Notion but has no local record",
            page_id=page.id,
            duplicate=match.duplicate
        )]

    local = match.local_record
    record_id = str(local["id"]) if local.get("id") is not None else None
    local_edited = parse_timestamp(local.get("updated_at") or local.get("created_at"))
    synced_at = parse_timestamp(local.get("notion_synced_at"))
    local_timestamp = local_edited.isoformat() if local_edited else ""

    conflicts: List[Conflict] = []
    record_conflict = False

    if synced_at is not None:
        remote_edited = parse_timestamp(page.last_edited_time)
        if _edited_after(remote_edited, synced_at) and _edited_after(local_edited, synced_at):
            record_conflict = True
            conflicts.append(Conflict(
                id=f"record-{page.id}",
                type=ConflictType.RECORD,
                remote_value=remote_data,
                local_value=local,
                remote_timestamp=remote_timestamp,
                local_timestamp=local_timestamp,
                severity=Severity.HIGH,
                description="Both Notion and the local record changed since the last sync",
                page_id=page.id,
                record_id=record_id,
                duplicate=match.duplicate
            ))
    elif not records_equivalent(remote_data, local, entity_type):
        record_conflict = True
        conflicts.append(Conflict(
            id=f"record-{page.id}",
            type=ConflictType.RECORD,
            remote_value=remote_data,
            local_value=local,
            remote_timestamp=remote_timestamp,
            local_timestamp=local_timestamp,
            severity=Severity.MEDIUM,
            description="Notion page and local record differ and have never been synced",
            page_id=page.id,
            record_id=record_id,
            duplicate=match.duplicate
        ))

    if record_conflict or synced_at is None:
        for field in important_fields(entity_type):
            remote_value = remote_data.get(field)
            local_value = local.get(field)
            if values_equivalent(remote_value, local_value):
                continue
            conflicts.append(Conflict(
                id=f"field-{page.id}-{field}",
                type=ConflictType.FIELD,
                remote_value=remote_value,
                local_value=local_value,
                remote_timestamp=remote_timestamp,
                local_timestamp=local_timestamp,
                severity=field_severity(field),
                description=f"Field '{field}' differs",
                page_id=page.id,
                record_id=record_id,
                field=field,
                duplicate=match.duplicate
            ))

    return conflicts


def detect_all(matches: List[MatchResult], entity_type) -> ConflictDetectionResult:
    """
    Detect conflicts across every match of a sync cycle.

    Returns:
        ConflictDetectionResult with the conflicts and per-type counts
    """
    conflicts: List[Conflict] = []
    for match in matches:
        conflicts.extend(detect_conflicts(match, entity_type))

    record_level = sum(1 for c in conflicts if c.type == ConflictType.RECORD)
    field_level = sum(1 for c in conflicts if c.type == ConflictType.FIELD)
    missing = sum(1 for c in conflicts if c.type == ConflictType.MISSING)

    logger.info(
        f"Detected {len(conflicts)} conflicts for {entity_type}: "
        f"{record_level} record, {field_level} field, {missing} missing"
    )

    return ConflictDetectionResult(
        conflicts=conflicts,
        has_conflicts=bool(conflicts),
        record_level_conflicts=record_level,
        field_level_conflicts=field_level,
        missing_records=missing
    )
