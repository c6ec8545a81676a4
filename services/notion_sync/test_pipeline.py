"""Unit tests for the sync pipeline."""

import sys
import os
import pytest
from unittest.mock import AsyncMock, Mock, patch
from notion_client.errors import APIResponseError

# Add repository root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '../../'))

from shared.config import NotionConfig
from shared.db_operations import DatabaseOperations, RecordNotFoundError
from shared.encryption import EncryptionService
from shared.models import EntityType, ResolutionChoice, ResolutionStrategy, SyncStatus
from services.notion_sync.pipeline import (
    DatabaseNotLinkedError,
    MissingCredentialsError,
    SyncConfigurationError,
    SyncPipeline,
)


def notion_page(page_id, title, status):
    return {
        "object": "page",
        "id": page_id,
        "url": f"https://www.notion.so/{page_id}",
        "created_time": "2024-01-01T00:00:00.000Z",
        "last_edited_time": "2024-01-02T00:00:00.000Z",
        "archived": False,
        "properties": {
            "Title": {"type": "title", "title": [{"plain_text": title}]},
            "Status": {"type": "select", "select": {"name": status}},
        },
    }


@pytest.fixture
def db_ops():
    db = DatabaseOperations(database_url="sqlite:///:memory:")
    db.create_tables()
    return db


@pytest.fixture
def encryption_service():
    return EncryptionService(encryption_key=EncryptionService.generate_key())


@pytest.fixture
def config():
    return NotionConfig(api_version="2022-06-28", min_request_interval=0, max_retries=3, timeout_seconds=60)


@pytest.fixture
def mock_client():
    """Create a mock Notion client serving one database of two pages."""
    client = Mock()
    client.databases = Mock()
    client.databases.query = AsyncMock(return_value={
        "results": [
            notion_page("p1", "Do dishes", "Completed"),
            notion_page("p2", "Water plants", "Pending"),
        ],
        "has_more": False,
        "next_cursor": None,
    })
    client.pages = Mock()
    client.pages.update = AsyncMock(return_value={"id": "p1"})
    client.pages.create = AsyncMock(return_value={"id": "p-new", "url": "https://www.notion.so/p-new"})
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def pipeline(db_ops, encryption_service, config, mock_client):
    factory = Mock(return_value=mock_client)
    return SyncPipeline(db_ops, encryption_service, config=config, client_factory=factory)


@pytest.fixture
def linked_user(db_ops, encryption_service):
    db_ops.store_credentials("user_1", "secret_token", encryption_service)
    db_ops.register_notion_database("user_1", EntityType.TASKS, "db123", database_name="Tasks")
    return "user_1"


class TestRetrieveAndDetect:

    @pytest.mark.asyncio
    async def test_report(self, pipeline, db_ops, linked_user, mock_client):
        db_ops.insert_record(EntityType.TASKS, linked_user, {"title": "Do dishes", "status": "pending"})

        with patch("services.notion_sync.retriever.asyncio.sleep", new_callable=AsyncMock):
            report = await pipeline.retrieve_and_detect(linked_user, "tasks")

        assert report.entity_type == EntityType.TASKS
        assert report.database_id == "db123"
        assert report.retrieved == 2
        assert report.matched == 1
        assert report.new_records == 1
        assert report.missing_records == 1
        assert report.record_level_conflicts == 1
        assert report.field_level_conflicts == 1
        assert report.has_conflicts is True
        assert report.errors == []
        assert {m["page_id"]: m["match_type"] for m in report.matches} == {"p1": "title", "p2": "none"}
        pipeline.client_factory.assert_called_once_with("secret_token", pipeline.config)
        mock_client.databases.query.assert_awaited_once_with(database_id="db123", page_size=100)
        mock_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_only_users_records_are_matched(self, pipeline, db_ops, linked_user):
        db_ops.insert_record(EntityType.TASKS, "someone_else", {"title": "Do dishes", "status": "pending"})

        with patch("services.notion_sync.retriever.asyncio.sleep", new_callable=AsyncMock):
            report = await pipeline.retrieve_and_detect(linked_user, EntityType.TASKS)

        assert report.matched == 0
        assert report.missing_records == 2

    @pytest.mark.asyncio
    async def test_missing_database_link(self, pipeline, db_ops, encryption_service):
        db_ops.store_credentials("user_1", "secret_token", encryption_service)

        with pytest.raises(DatabaseNotLinkedError):
            await pipeline.retrieve_and_detect("user_1", EntityType.TASKS)

    @pytest.mark.asyncio
    async def test_missing_token(self, pipeline, db_ops):
        db_ops.register_notion_database("user_1", EntityType.TASKS, "db123")

        with pytest.raises(MissingCredentialsError):
            await pipeline.retrieve_and_detect("user_1", EntityType.TASKS)

    @pytest.mark.asyncio
    async def test_undecryptable_token(self, db_ops, config, linked_user):
        other_key = EncryptionService(encryption_key=EncryptionService.generate_key())
        pipeline = SyncPipeline(db_ops, other_key, config=config, client_factory=Mock())

        with pytest.raises(MissingCredentialsError):
            await pipeline.retrieve_and_detect(linked_user, EntityType.TASKS)

    @pytest.mark.asyncio
    async def test_unknown_entity_type(self, pipeline, linked_user):
        with pytest.raises(SyncConfigurationError):
            await pipeline.retrieve_and_detect(linked_user, "notes")

    @pytest.mark.asyncio
    async def test_client_is_closed_on_failure(self, pipeline, linked_user, mock_client):
        mock_client.databases.query.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await pipeline.retrieve_and_detect(linked_user, EntityType.TASKS)

        mock_client.aclose.assert_awaited_once()


class TestResolveConflicts:

    @pytest.mark.asyncio
    async def test_retrieve_then_resolve(self, pipeline, db_ops, linked_user, mock_client):
        local = db_ops.insert_record(EntityType.TASKS, linked_user, {"title": "Do dishes", "status": "pending"})

        with patch("services.notion_sync.retriever.asyncio.sleep", new_callable=AsyncMock):
            report = await pipeline.retrieve_and_detect(linked_user, EntityType.TASKS)

        result = await pipeline.resolve_conflicts(
            linked_user,
            EntityType.TASKS,
            report.conflicts,
            [
                ResolutionChoice(conflict_id="record-p1", strategy=ResolutionStrategy.PREFER_LOCAL),
                ResolutionChoice(conflict_id="missing-p2", strategy=ResolutionStrategy.PREFER_REMOTE),
            ]
        )

        assert result.success is True
        assert result.records_updated == 2
        mock_client.pages.update.assert_awaited_once()
        assert mock_client.pages.update.await_args.kwargs["page_id"] == "p1"
        assert db_ops.get_record(EntityType.TASKS, local["id"])["notion_page_id"] == "p1"
        titles = sorted(r["title"] for r in db_ops.get_records_for_user(EntityType.TASKS, linked_user))
        assert titles == ["Do dishes", "Water plants"]
        assert mock_client.aclose.await_count == 2

    @pytest.mark.asyncio
    async def test_resolve_requires_link(self, pipeline):
        with pytest.raises(SyncConfigurationError):
            await pipeline.resolve_conflicts("user_1", EntityType.TASKS, [], [])


def api_error(status_code, code, message="error"):
    return APIResponseError(
        response=Mock(status_code=status_code, headers={}, text="", json=lambda: {}),
        message=message,
        code=code
    )


class TestPushRecord:

    @pytest.mark.asyncio
    async def test_unlinked_record_creates_page(self, pipeline, db_ops, linked_user, mock_client):
        local = db_ops.insert_record(EntityType.TASKS, linked_user, {
            "title": "Do dishes",
            "status": "pending",
            "due_date": "2024-01-05",
        })

        result = await pipeline.push_record(linked_user, EntityType.TASKS, local["id"])

        assert result.created is True
        assert result.page_id == "p-new"
        assert result.url == "https://www.notion.so/p-new"
        kwargs = mock_client.pages.create.await_args.kwargs
        assert kwargs["parent"] == {"database_id": "db123"}
        assert kwargs["properties"]["Title"] == {"title": [{"text": {"content": "Do dishes"}}]}
        assert kwargs["properties"]["Due Date"] == {"date": {"start": "2024-01-05"}}
        mock_client.pages.update.assert_not_awaited()
        mock_client.aclose.assert_awaited_once()
        stored = db_ops.get_record(EntityType.TASKS, local["id"])
        assert stored["notion_page_id"] == "p-new"
        assert stored["notion_sync_status"] == "synced"
        assert stored["notion_synced_at"] is not None

    @pytest.mark.asyncio
    async def test_linked_record_updates_page(self, pipeline, db_ops, linked_user, mock_client):
        local = db_ops.insert_record(EntityType.TASKS, linked_user, {"title": "Do dishes", "status": "completed"})
        db_ops.update_sync_status(EntityType.TASKS, local["id"], SyncStatus.SYNCED, notion_page_id="p1")

        result = await pipeline.push_record(linked_user, "tasks", local["id"])

        assert result.created is False
        assert result.page_id == "p1"
        mock_client.pages.create.assert_not_awaited()
        kwargs = mock_client.pages.update.await_args.kwargs
        assert kwargs["page_id"] == "p1"
        assert kwargs["properties"]["Status"] == {"select": {"name": "Completed"}}
        assert db_ops.get_record(EntityType.TASKS, local["id"])["notion_sync_status"] == "synced"

    @pytest.mark.asyncio
    async def test_notion_failure_marks_record_failed(self, pipeline, db_ops, linked_user, mock_client):
        local = db_ops.insert_record(EntityType.TASKS, linked_user, {"title": "Do dishes"})
        mock_client.pages.create.side_effect = api_error(400, "validation_error", "Priority is not a property")

        with pytest.raises(APIResponseError):
            await pipeline.push_record(linked_user, EntityType.TASKS, local["id"])

        stored = db_ops.get_record(EntityType.TASKS, local["id"])
        assert stored["notion_sync_status"] == "failed"
        assert "Priority is not a property" in stored["notion_sync_error"]
        assert stored["notion_page_id"] is None
        mock_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_users_record_is_not_found(self, pipeline, db_ops, linked_user, mock_client):
        other = db_ops.insert_record(EntityType.TASKS, "someone_else", {"title": "Private"})

        with pytest.raises(RecordNotFoundError):
            await pipeline.push_record(linked_user, EntityType.TASKS, other["id"])

        mock_client.pages.create.assert_not_awaited()
        assert db_ops.get_record(EntityType.TASKS, other["id"])["notion_sync_status"] is None

    @pytest.mark.asyncio
    async def test_push_requires_link(self, pipeline, db_ops, encryption_service):
        db_ops.store_credentials("user_1", "secret_token", encryption_service)
        local = db_ops.insert_record(EntityType.TASKS, "user_1", {"title": "Do dishes"})

        with pytest.raises(DatabaseNotLinkedError):
            await pipeline.push_record("user_1", EntityType.TASKS, local["id"])
