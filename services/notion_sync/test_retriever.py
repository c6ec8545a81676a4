"""Unit tests for Notion database retrieval."""

import sys
import os
import pytest
from unittest.mock import AsyncMock, Mock, call, patch

import httpx
from notion_client.errors import APIResponseError

# Add repository root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '../../'))

from shared.config import NotionConfig
from services.notion_sync import retriever as retriever_module
from services.notion_sync.retriever import NotionRetriever, RetrievalError, extract_title
from shared.models import RemotePage


def api_error(status_code, code, message="error", headers=None):
    """Build a Notion API error the way the client raises it."""
    return APIResponseError(
        response=Mock(
            status_code=status_code,
            headers=headers or {},
            text="",
            json=lambda: {}
        ),
        message=message,
        code=code
    )


def notion_page(index, archived=False):
    return {
        "object": "page",
        "id": f"page-{index}",
        "url": f"https://www.notion.so/page-{index}",
        "created_time": "2024-01-01T00:00:00.000Z",
        "last_edited_time": "2024-01-02T00:00:00.000Z",
        "archived": archived,
        "properties": {"Title": {"type": "title", "title": [{"plain_text": f"Task {index}"}]}},
    }


def query_response(start, count, next_cursor=None):
    return {
        "object": "list",
        "results": [notion_page(i) for i in range(start, start + count)],
        "has_more": next_cursor is not None,
        "next_cursor": next_cursor,
    }


@pytest.fixture
def config():
    return NotionConfig(api_version="2022-06-28", min_request_interval=0.333, max_retries=3, timeout_seconds=60)


@pytest.fixture
def mock_client():
    """Create a mock Notion client."""
    client = Mock()
    client.databases = Mock()
    client.databases.query = AsyncMock()
    client.pages = Mock()
    client.pages.retrieve = AsyncMock()
    return client


@pytest.fixture
def mock_sleep():
    with patch("services.notion_sync.retriever.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


class TestRetrieveAllPages:
    """Tests for NotionRetriever.retrieve_all_pages."""

    @pytest.mark.asyncio
    async def test_pagination_returns_every_page(self, mock_client, mock_sleep, config):
        """250 pages come back in three queries."""
        mock_client.databases.query.side_effect = [
            query_response(0, 100, "cursor-1"),
            query_response(100, 100, "cursor-2"),
            query_response(200, 50),
        ]

        result = await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123")

        assert result.total_retrieved == 250
        assert len({page.id for page in result.pages}) == 250
        assert result.errors == []
        assert result.rate_limit_hits == 0
        assert mock_client.databases.query.await_args_list == [
            call(database_id="db123", page_size=100),
            call(database_id="db123", page_size=100, start_cursor="cursor-1"),
            call(database_id="db123", page_size=100, start_cursor="cursor-2"),
        ]

    @pytest.mark.asyncio
    async def test_requests_are_spaced(self, mock_client, mock_sleep, config):
        mock_client.databases.query.side_effect = [
            query_response(0, 100, "cursor-1"),
            query_response(100, 1),
        ]

        await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123")

        # No wait before the first request
        mock_sleep.assert_awaited_once_with(0.333)

    @pytest.mark.asyncio
    async def test_archived_pages_are_dropped(self, mock_client, mock_sleep, config):
        response = query_response(0, 3)
        response["results"][1]["archived"] = True
        mock_client.databases.query.return_value = response

        result = await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123")

        assert [page.id for page in result.pages] == ["page-0", "page-2"]
        assert result.total_retrieved == 2

    @pytest.mark.asyncio
    async def test_rate_limit_retries_same_cursor(self, mock_client, mock_sleep, config):
        """A 429 with Retry-After: 2 waits 2s and repeats the same query once."""
        mock_client.databases.query.side_effect = [
            query_response(0, 100, "cursor-1"),
            api_error(429, "rate_limited", "Rate limited", headers={"Retry-After": "2"}),
            query_response(100, 20),
        ]

        result = await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123")

        assert result.total_retrieved == 120
        assert len({page.id for page in result.pages}) == 120
        assert result.rate_limit_hits == 1
        assert result.errors == []
        calls = mock_client.databases.query.await_args_list
        assert len(calls) == 3
        assert calls[1] == calls[2] == call(database_id="db123", page_size=100, start_cursor="cursor-1")
        assert call(2.0) in mock_sleep.await_args_list
        assert mock_sleep.await_args_list.count(call(2.0)) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_without_header_backs_off(self, mock_client, mock_sleep, config):
        mock_client.databases.query.side_effect = [
            api_error(429, "rate_limited"),
            api_error(429, "rate_limited"),
            query_response(0, 5),
        ]

        result = await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123")

        assert result.total_retrieved == 5
        assert result.rate_limit_hits == 2
        assert mock_sleep.await_args_list == [call(1.0), call(2.0)]

    @pytest.mark.asyncio
    async def test_not_found_aborts(self, mock_client, mock_sleep, config):
        mock_client.databases.query.side_effect = [
            api_error(404, "object_not_found", "Could not find database with ID: db123"),
        ]

        result = await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123")

        assert result.pages == []
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], APIResponseError)
        assert mock_client.databases.query.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_errors_exhaust_retries(self, mock_client, mock_sleep, config):
        mock_client.databases.query.side_effect = api_error(502, "internal_server_error", "Bad gateway")

        result = await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123")

        assert result.pages == []
        assert len(result.errors) == 1
        assert mock_client.databases.query.await_count == 4
        assert mock_sleep.await_args_list == [call(1.0), call(2.0), call(4.0)]

    @pytest.mark.asyncio
    async def test_errors_after_first_page_keep_earlier_results(self, mock_client, mock_sleep, config):
        mock_client.databases.query.side_effect = [
            query_response(0, 100, "cursor-1"),
            httpx.ConnectError("connection reset"),
            httpx.ConnectError("connection reset"),
        ]

        result = await NotionRetriever(mock_client, config=config, max_retries=1).retrieve_all_pages("db123")

        assert result.total_retrieved == 100
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_has_more_without_cursor(self, mock_client, mock_sleep, config):
        response = query_response(0, 2)
        response["has_more"] = True
        mock_client.databases.query.return_value = response

        result = await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123")

        assert result.total_retrieved == 2
        assert isinstance(result.errors[0], RetrievalError)
        assert mock_client.databases.query.await_count == 1

    @pytest.mark.asyncio
    async def test_progress_callback(self, mock_client, mock_sleep, config):
        mock_client.databases.query.side_effect = [
            query_response(0, 100, "cursor-1"),
            query_response(100, 50),
        ]
        progress = Mock()

        await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123", on_progress=progress)

        assert progress.call_args_list == [call(100, None), call(150, 150)]

    @pytest.mark.asyncio
    async def test_async_progress_callback(self, mock_client, mock_sleep, config):
        mock_client.databases.query.return_value = query_response(0, 3)
        progress = AsyncMock()

        await NotionRetriever(mock_client, config=config).retrieve_all_pages("db123", on_progress=progress)

        progress.assert_awaited_once_with(3, 3)


class TestRetrievePage:

    @pytest.mark.asyncio
    async def test_retrieve_page(self, mock_client, config):
        mock_client.pages.retrieve.return_value = notion_page(7)

        page = await NotionRetriever(mock_client, config=config).retrieve_page("page-7")

        assert isinstance(page, RemotePage)
        assert page.id == "page-7"
        mock_client.pages.retrieve.assert_awaited_once_with(page_id="page-7")


def test_extract_title():
    page = RemotePage.from_api(notion_page(3))
    kinkster = RemotePage(id="k", url="", last_edited_time="", created_time="",
                          properties={"Name": {"type": "title", "title": [{"plain_text": "Alex"}]}})
    empty = RemotePage(id="e", url="", last_edited_time="", created_time="", properties={})

    assert extract_title(page) == "Task 3"
    assert extract_title(kinkster) == "Alex"
    assert extract_title(empty) == "Untitled"


@pytest.mark.asyncio
async def test_module_retrieve_all_pages_closes_client(mock_client, mock_sleep, config):
    mock_client.databases.query.return_value = query_response(0, 2)
    mock_client.aclose = AsyncMock()

    with patch.object(retriever_module, "build_client", return_value=mock_client) as build:
        result = await retriever_module.retrieve_all_pages("db123", "secret_token", config=config)

    build.assert_called_once_with("secret_token", config)
    mock_client.aclose.assert_awaited_once()
    assert result.total_retrieved == 2
