"""Per-record Notion sync status bookkeeping."""

import logging
from typing import Any, Dict, Optional

from shared.db_operations import DatabaseOperations
from shared.models import SyncStatus

logger = logging.getLogger(__name__)


class SyncStatusTracker:
    """Records the outcome of writing a record to or from Notion.

    The status is a progress marker, not a lock: two sync runs touching the
    same record simply overwrite each other's status.
    """

    def __init__(self, db_ops: DatabaseOperations):
        self.db_ops = db_ops

    def mark_pending(self, entity_type, record_id: str) -> Dict[str, Any]:
        logger.debug(f"Marking {entity_type} record {record_id} pending")
        return self.db_ops.update_sync_status(entity_type, record_id, SyncStatus.PENDING)

    def mark_synced(
        self,
        entity_type,
        record_id: str,
        notion_page_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Mark a record synced now and link it to its Notion page.

        Args:
            entity_type: Entity type of the record
            record_id: Local record ID
            notion_page_id: Notion page the record is now linked to

        Returns:
            The updated record
        """
        logger.debug(f"Marking {entity_type} record {record_id} synced with page {notion_page_id}")
        return self.db_ops.update_sync_status(
            entity_type,
            record_id,
            SyncStatus.SYNCED,
            notion_page_id=notion_page_id
        )

    def mark_failed(self, entity_type, record_id: str, error: str) -> Optional[Dict[str, Any]]:
        """Mark a record failed with the error message; returns None if that write fails too."""
        try:
            return self.db_ops.update_sync_status(entity_type, record_id, SyncStatus.FAILED, error=error)
        except Exception as e:
            logger.error(f"Could not record sync failure for {entity_type} record {record_id}: {e}")
            return None
