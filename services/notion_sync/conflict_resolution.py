"""Apply the user's resolution choices to detected conflicts.

Conflicts are grouped per local record (per Notion page for pages with no
local record yet) and each group is resolved with the strategy chosen for
any of its conflicts. Nothing is ever deleted on either side.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from shared.db_operations import DatabaseOperations, RecordNotFoundError
from shared.models import (
    Conflict,
    ConflictType,
    FieldSide,
    ResolutionChoice,
    ResolutionError,
    ResolutionResult,
    ResolutionStrategy,
)
from services.notion_sync.db_to_notion import to_remote
from services.notion_sync.field_maps import fill_blank_title, important_fields
from services.notion_sync.sync_status import SyncStatusTracker
from services.notion_sync.writer import NotionPageWriter

logger = logging.getLogger(__name__)


class ResolutionFailed(Exception):
    """A resolution strategy cannot be applied to a conflict group."""


def group_conflicts(conflicts: List[Conflict]) -> "OrderedDict[str, List[Conflict]]":
    """Group conflicts by local record ID, falling back to the Notion page ID."""
    groups: "OrderedDict[str, List[Conflict]]" = OrderedDict()
    for conflict in conflicts:
        key = conflict.record_id or conflict.page_id
        groups.setdefault(key, []).append(conflict)
    return groups


def remote_snapshot(group: List[Conflict]) -> Dict[str, Any]:
    """The Notion side of a record as carried by its conflicts."""
    snapshot: Dict[str, Any] = {}
    for conflict in group:
        if conflict.type in (ConflictType.RECORD, ConflictType.MISSING) and isinstance(conflict.remote_value, dict):
            snapshot.update(conflict.remote_value)
    for conflict in group:
        if conflict.type == ConflictType.FIELD and conflict.field:
            snapshot[conflict.field] = conflict.remote_value
    return snapshot


class ConflictResolver:
    """Resolves conflict groups against the local store and Notion."""

    def __init__(
        self,
        db_ops: DatabaseOperations,
        writer: NotionPageWriter,
        status_tracker: Optional[SyncStatusTracker] = None
    ):
        """
        Initialize the resolver.

        Args:
            db_ops: Local store repository
            writer: Notion page writer authenticated for the user
            status_tracker: Sync status bookkeeping (defaults to one over db_ops)
        """
        self.db_ops = db_ops
        self.writer = writer
        self.status = status_tracker or SyncStatusTracker(db_ops)

    async def resolve(
        self,
        conflicts: List[Conflict],
        resolutions: List[ResolutionChoice],
        user_id: str,
        entity_type
    ) -> ResolutionResult:
        """
        Apply resolution choices to a batch of conflicts.

        A group with no matching choice, or a skip choice, is left untouched.
        Conflicts belonging to a demoted duplicate match are never acted on.
        A failing group is recorded in the errors and does not stop the rest.

        Args:
            conflicts: Conflicts from detection
            resolutions: The user's choices, keyed by conflict ID
            user_id: User performing the resolution (owner of inserted records)
            entity_type: Entity type of the conflicts

        Returns:
            ResolutionResult with counts and per-group errors
        """
        result = ResolutionResult()

        duplicate_pages = {c.page_id for c in conflicts if c.duplicate}
        if duplicate_pages:
            logger.info(f"Skipping conflicts of {len(duplicate_pages)} duplicate Notion page matches")
            result.records_skipped += len(duplicate_pages)

        groups = group_conflicts([c for c in conflicts if not c.duplicate])

        for key, group in groups.items():
            ids = {c.id for c in group}
            choice = next((r for r in resolutions if r.conflict_id in ids), None)
            strategy = ResolutionStrategy(choice.strategy) if choice else ResolutionStrategy.SKIP

            if strategy == ResolutionStrategy.SKIP:
                result.records_skipped += 1
                continue

            try:
                await self._apply(group, choice, strategy, user_id, entity_type)
                result.records_updated += 1
                logger.info(f"Resolved {entity_type} conflict group {key} with {strategy.value}")

            except Exception as e:
                logger.error(f"Failed to resolve {entity_type} conflict group {key}: {e}", exc_info=True)
                result.success = False
                result.errors.append(ResolutionError(conflict_id=group[0].id, error=str(e)))
                record_id = group[0].record_id
                if record_id:
                    self.status.mark_failed(entity_type, record_id, str(e))

        return result

    async def _apply(
        self,
        group: List[Conflict],
        choice: ResolutionChoice,
        strategy: ResolutionStrategy,
        user_id: str,
        entity_type
    ) -> None:
        if strategy == ResolutionStrategy.PREFER_LOCAL:
            await self._prefer_local(group, entity_type)
        elif strategy == ResolutionStrategy.PREFER_REMOTE:
            self._prefer_remote(group, user_id, entity_type)
        elif strategy == ResolutionStrategy.MERGE:
            await self._merge(group, choice, entity_type)

    def _existing_record(self, group: List[Conflict], entity_type) -> Dict[str, Any]:
        primary = group[0]
        if primary.type == ConflictType.MISSING or not primary.record_id:
            raise ResolutionFailed(f"Notion page {primary.page_id} has no local record")

        record = self.db_ops.get_record(entity_type, primary.record_id)
        if record is None:
            raise RecordNotFoundError(f"Local record {primary.record_id} not found")
        return record

    async def _prefer_local(self, group: List[Conflict], entity_type) -> None:
        """Push the full local record to the Notion page."""
        record = self._existing_record(group, entity_type)
        page_id = group[0].page_id or record.get("notion_page_id")

        self.status.mark_pending(entity_type, record["id"])
        await self.writer.update_page_properties(page_id, to_remote(record, entity_type))
        self.status.mark_synced(entity_type, record["id"], page_id)

    def _prefer_remote(self, group: List[Conflict], user_id: str, entity_type) -> None:
        """Take the Notion values, inserting a record for pages not yet stored locally."""
        primary = group[0]
        snapshot = remote_snapshot(group)

        if primary.type == ConflictType.MISSING:
            created = self.db_ops.insert_record(entity_type, user_id, fill_blank_title(snapshot))
            self.status.mark_synced(entity_type, created["id"], primary.page_id)
            return

        record = self._existing_record(group, entity_type)
        values = fill_blank_title(
            {field: snapshot[field] for field in important_fields(entity_type) if field in snapshot}
        )

        self.status.mark_pending(entity_type, record["id"])
        self.db_ops.update_record(entity_type, record["id"], values)
        self.status.mark_synced(entity_type, record["id"], primary.page_id)

    async def _merge(self, group: List[Conflict], choice: ResolutionChoice, entity_type) -> None:
        """Write a field-by-field merge to both sides. Unchosen fields keep the local value."""
        record = self._existing_record(group, entity_type)
        page_id = group[0].page_id or record.get("notion_page_id")
        field_choices = choice.field_choices or {}

        merged: Dict[str, Any] = {}
        for conflict in group:
            if conflict.type != ConflictType.FIELD or not conflict.field:
                continue
            # Unchosen fields keep the local value (product policy)
            side = FieldSide(field_choices.get(conflict.field, FieldSide.LOCAL))
            merged[conflict.field] = conflict.remote_value if side == FieldSide.REMOTE else conflict.local_value

        self.status.mark_pending(entity_type, record["id"])
        updated = self.db_ops.update_record(entity_type, record["id"], fill_blank_title(merged))
        await self.writer.update_page_properties(page_id, to_remote(updated, entity_type))
        self.status.mark_synced(entity_type, record["id"], page_id)
