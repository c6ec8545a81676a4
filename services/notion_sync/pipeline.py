"""Sync pipeline - retrieval, matching, detection, resolution and record push for one user."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from notion_client import AsyncClient

from shared.config import NotionConfig, get_notion_config
from shared.db_operations import DatabaseOperations, RecordNotFoundError
from shared.encryption import EncryptionService, TokenDecryptionError
from shared.models import (
    Conflict,
    EntityType,
    MatchResult,
    MatchType,
    ResolutionChoice,
    ResolutionResult,
)
from services.notion_sync.conflict_detection import detect_all
from services.notion_sync.conflict_resolution import ConflictResolver
from services.notion_sync.db_to_notion import to_remote
from services.notion_sync.matching import match_all
from services.notion_sync.retriever import NotionRetriever, ProgressCallback, extract_title
from services.notion_sync.sync_status import SyncStatusTracker
from services.notion_sync.writer import NotionPageWriter, build_client

logger = logging.getLogger(__name__)


class SyncConfigurationError(Exception):
    """The user's Notion link is not usable for syncing."""


class MissingCredentialsError(SyncConfigurationError):
    """No usable Notion token is stored for the user."""


class DatabaseNotLinkedError(SyncConfigurationError):
    """No Notion database is registered for the user's entity type."""


@dataclass
class SyncReport:
    """Summary of one retrieve-and-detect run."""
    entity_type: EntityType
    database_id: str
    retrieved: int
    matched: int
    new_records: int
    conflicts: List[Conflict]
    record_level_conflicts: int
    field_level_conflicts: int
    missing_records: int
    rate_limit_hits: int
    errors: List[str] = field(default_factory=list)
    matches: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


@dataclass
class PushResult:
    """Outcome of pushing one local record to Notion."""
    record_id: str
    page_id: str
    url: Optional[str] = None
    created: bool = False


def summarize_match(match: MatchResult) -> Dict[str, Any]:
    record = match.local_record or {}
    return {
        "page_id": match.remote_page.id,
        "title": extract_title(match.remote_page),
        "record_id": str(record["id"]) if record.get("id") is not None else None,
        "match_type": match.match_type.value,
        "confidence": match.confidence.value,
        "title_similarity": match.title_similarity,
        "duplicate": match.duplicate,
    }


class SyncPipeline:
    """Runs a sync cycle for one user and entity type."""

    def __init__(
        self,
        db_ops: DatabaseOperations,
        encryption_service: EncryptionService,
        config: Optional[NotionConfig] = None,
        client_factory: Callable[[str, NotionConfig], AsyncClient] = build_client
    ):
        """
        Initialize the sync pipeline.

        Args:
            db_ops: Local store repository (records, tokens, database registry)
            encryption_service: Decrypts stored Notion tokens
            config: Notion settings
            client_factory: Builds a Notion client from a token and settings
        """
        self.db_ops = db_ops
        self.encryption_service = encryption_service
        self.config = config or get_notion_config()
        self.client_factory = client_factory

    def _entity_type(self, entity_type) -> EntityType:
        try:
            return EntityType(entity_type)
        except ValueError:
            raise SyncConfigurationError(f"Unknown entity type: {entity_type}")

    def _database_id(self, user_id: str, entity_type: EntityType) -> str:
        database = self.db_ops.get_notion_database(user_id, entity_type)
        if database is None or not database.database_id:
            raise DatabaseNotLinkedError(
                f"No Notion database linked for {entity_type.value} (user {user_id})"
            )
        return database.database_id

    def _token(self, user_id: str) -> str:
        try:
            token = self.db_ops.get_notion_token(user_id, self.encryption_service)
        except TokenDecryptionError as e:
            raise MissingCredentialsError(f"Stored Notion token for user {user_id} cannot be decrypted") from e
        if not token:
            raise MissingCredentialsError(f"Notion API token not found for user {user_id}")
        return token

    async def retrieve_and_detect(
        self,
        user_id: str,
        entity_type,
        on_progress: Optional[ProgressCallback] = None
    ) -> SyncReport:
        """
        Retrieve the user's Notion database and detect conflicts with local records.

        Args:
            user_id: User to sync for
            entity_type: Entity type (table) to sync
            on_progress: Retrieval progress callback

        Returns:
            SyncReport with counts, conflicts and per-page match summaries

        Raises:
            SyncConfigurationError: If the token or the database link is missing
        """
        entity_type = self._entity_type(entity_type)

        # Step 1: Resolve the database and credentials
        database_id = self._database_id(user_id, entity_type)
        token = self._token(user_id)

        # Step 2: Retrieve every page
        client = self.client_factory(token, self.config)
        try:
            retriever = NotionRetriever(client, config=self.config)
            retrieved = await retriever.retrieve_all_pages(database_id, on_progress=on_progress)
        finally:
            await client.aclose()

        # Step 3: Match against local records and detect conflicts
        local_records = self.db_ops.get_records_for_user(entity_type, user_id)
        matches = match_all(retrieved.pages, local_records, entity_type)
        detection = detect_all(matches, entity_type)

        matched = sum(1 for m in matches if m.match_type != MatchType.NONE)
        report = SyncReport(
            entity_type=entity_type,
            database_id=database_id,
            retrieved=retrieved.total_retrieved,
            matched=matched,
            new_records=len(matches) - matched,
            conflicts=detection.conflicts,
            record_level_conflicts=detection.record_level_conflicts,
            field_level_conflicts=detection.field_level_conflicts,
            missing_records=detection.missing_records,
            rate_limit_hits=retrieved.rate_limit_hits,
            errors=[str(e) for e in retrieved.errors],
            matches=[summarize_match(m) for m in matches]
        )

        logger.info(
            f"Sync check for user {user_id} ({entity_type.value}): retrieved {report.retrieved}, "
            f"matched {report.matched}, new {report.new_records}, conflicts {len(report.conflicts)}"
        )
        return report

    async def resolve_conflicts(
        self,
        user_id: str,
        entity_type,
        conflicts: List[Conflict],
        resolutions: List[ResolutionChoice]
    ) -> ResolutionResult:
        """
        Apply the user's resolution choices.

        Raises:
            SyncConfigurationError: If the token or the database link is missing
        """
        entity_type = self._entity_type(entity_type)
        self._database_id(user_id, entity_type)
        token = self._token(user_id)

        client = self.client_factory(token, self.config)
        try:
            resolver = ConflictResolver(self.db_ops, NotionPageWriter(client))
            result = await resolver.resolve(conflicts, resolutions, user_id, entity_type)
        finally:
            await client.aclose()

        logger.info(
            f"Resolved conflicts for user {user_id} ({entity_type.value}): "
            f"{result.records_updated} updated, {result.records_skipped} skipped, {len(result.errors)} errors"
        )
        return result

    async def push_record(self, user_id: str, entity_type, record_id: str) -> PushResult:
        """
        Push one local record to the user's Notion database.

        A record with no notion_page_id gets a new page in the linked
        database; otherwise its page is updated. The record is marked
        pending before the write, then synced with the page ID, or failed
        with the error message.

        Args:
            user_id: Owner of the record
            entity_type: Entity type (table) of the record
            record_id: Local record ID

        Returns:
            PushResult with the page the record is linked to

        Raises:
            SyncConfigurationError: If the token or the database link is missing
            RecordNotFoundError: If the user has no such record
            APIResponseError: If Notion rejects the write
        """
        entity_type = self._entity_type(entity_type)
        database_id = self._database_id(user_id, entity_type)
        token = self._token(user_id)

        record = self.db_ops.get_record(entity_type, record_id)
        if record is None or record.get("created_by") != user_id:
            raise RecordNotFoundError(f"{entity_type.value} record {record_id} not found for user {user_id}")

        status = SyncStatusTracker(self.db_ops)
        status.mark_pending(entity_type, record["id"])

        client = self.client_factory(token, self.config)
        try:
            writer = NotionPageWriter(client)
            properties = to_remote(record, entity_type)
            page_id = record.get("notion_page_id")
            if page_id:
                await writer.update_page_properties(page_id, properties)
                result = PushResult(record_id=record["id"], page_id=page_id)
            else:
                created = await writer.create_page(database_id, properties)
                result = PushResult(
                    record_id=record["id"],
                    page_id=created["page_id"],
                    url=created.get("url"),
                    created=True
                )
        except Exception as e:
            logger.error(f"Failed to push {entity_type.value} record {record_id} to Notion: {e}")
            status.mark_failed(entity_type, record["id"], str(e))
            raise
        finally:
            await client.aclose()

        status.mark_synced(entity_type, record["id"], result.page_id)
        logger.info(
            f"{'Created' if result.created else 'Updated'} Notion page {result.page_id} "
            f"for {entity_type.value} record {record_id}"
        )
        return result
