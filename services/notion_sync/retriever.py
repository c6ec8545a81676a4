"""Notion retrieval - pages through a whole Notion database.

Requests are issued one at a time with a minimum gap between them to stay
inside Notion's three-requests-per-second budget. Rate limits and transient
errors are retried on the same cursor; a missing database aborts retrieval.
Failures are collected in the result instead of being raised.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx
from notion_client import AsyncClient
from notion_client.errors import HTTPResponseError, RequestTimeoutError

from shared.config import NotionConfig, get_notion_config
from shared.models import RemotePage, RetrieveResult
from services.notion_sync.field_maps import UNTITLED
from services.notion_sync.properties import extract_text
from services.notion_sync.rate_limit import extract_retry_after, is_not_found, is_rate_limited
from services.notion_sync.writer import build_client

logger = logging.getLogger(__name__)

TITLE_PROPERTIES = ("Title", "Name", "Task Name", "Prompt")

ProgressCallback = Callable[[int, Optional[int]], Any]


class RetrievalError(Exception):
    """A page of results could not be fetched."""


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass
class FetchOutcome:
    """Result of one query attempt against the database."""
    kind: OutcomeKind
    data: Optional[Dict[str, Any]] = None
    error: Optional[Exception] = None
    retry_after: Optional[float] = None


class NotionRetriever:
    """Retrieves pages from a Notion database."""

    def __init__(
        self,
        client: AsyncClient,
        config: Optional[NotionConfig] = None,
        max_retries: Optional[int] = None
    ):
        """
        Initialize the retriever.

        Args:
            client: Notion API client authenticated for the user
            config: Notion settings (page size, request spacing, retries)
            max_retries: Overrides config.max_retries
        """
        self.client = client
        self.config = config or get_notion_config()
        self.max_retries = self.config.max_retries if max_retries is None else max_retries

    async def retrieve_all_pages(
        self,
        database_id: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> RetrieveResult:
        """
        Retrieve every non-archived page of a database via cursor pagination.

        Args:
            database_id: Notion database ID
            on_progress: Called after each page of results with the running
                page count and, once the last page arrived, the total

        Returns:
            RetrieveResult with pages, count, collected errors and rate limit hits
        """
        pages: List[RemotePage] = []
        errors: List[Exception] = []
        rate_limit_hits = 0
        cursor: Optional[str] = None
        has_more = True
        request_count = 0

        logger.info(f"Retrieving pages from Notion database {database_id}")

        while has_more:
            if request_count > 0:
                await asyncio.sleep(self.config.min_request_interval)

            attempt = 0
            outcome = await self._fetch_page(database_id, cursor)

            while outcome.kind != OutcomeKind.SUCCESS:
                if outcome.kind == OutcomeKind.FATAL:
                    break

                if outcome.kind == OutcomeKind.RATE_LIMITED:
                    rate_limit_hits += 1

                if attempt >= self.max_retries:
                    break

                if outcome.kind == OutcomeKind.RATE_LIMITED and outcome.retry_after is not None:
                    delay = outcome.retry_after
                else:
                    delay = float(2 ** attempt)
                attempt += 1

                logger.warning(
                    f"Notion query {outcome.kind.value} for database {database_id} "
                    f"(attempt {attempt}/{self.max_retries}), retrying in {delay}s: {outcome.error}"
                )
                await asyncio.sleep(delay)
                outcome = await self._fetch_page(database_id, cursor)

            if outcome.kind != OutcomeKind.SUCCESS:
                errors.append(outcome.error)
                if outcome.kind == OutcomeKind.FATAL:
                    logger.error(f"Notion database {database_id} not found, aborting retrieval: {outcome.error}")
                else:
                    # The failed query never returned a next_cursor, so pagination cannot advance past it
                    logger.error(f"Giving up on Notion database {database_id} after retries: {outcome.error}")
                break

            request_count += 1
            data = outcome.data or {}
            results = data.get("results") or []
            pages.extend(
                RemotePage.from_api(result) for result in results
                if isinstance(result, dict) and not result.get("archived")
            )

            has_more = data.get("has_more") is True
            cursor = data.get("next_cursor")
            if has_more and not cursor:
                errors.append(RetrievalError("Notion reported more results without a next_cursor"))
                has_more = False

            if on_progress:
                await _notify(on_progress, len(pages), None if has_more else len(pages))

        logger.info(
            f"Retrieved {len(pages)} pages from Notion database {database_id} "
            f"({request_count} requests, {rate_limit_hits} rate limit hits, {len(errors)} errors)"
        )

        return RetrieveResult(
            pages=pages,
            total_retrieved=len(pages),
            errors=errors,
            rate_limit_hits=rate_limit_hits
        )

    async def _fetch_page(self, database_id: str, cursor: Optional[str]) -> FetchOutcome:
        """Run a single query request and classify what came back."""
        query: Dict[str, Any] = {"database_id": database_id, "page_size": self.config.page_size}
        if cursor:
            query["start_cursor"] = cursor

        try:
            data = await self.client.databases.query(**query)
        except (HTTPResponseError, RequestTimeoutError, httpx.TransportError) as e:
            return _classify(e)

        return FetchOutcome(kind=OutcomeKind.SUCCESS, data=data)

    async def retrieve_page(self, page_id: str) -> RemotePage:
        """
        Retrieve a single page by ID.

        Raises:
            HTTPResponseError: If Notion API request fails
        """
        data = await self.client.pages.retrieve(page_id=page_id)
        return RemotePage.from_api(data)


def _classify(error: Exception) -> FetchOutcome:
    if is_rate_limited(error):
        return FetchOutcome(
            kind=OutcomeKind.RATE_LIMITED,
            error=error,
            retry_after=extract_retry_after(error)
        )
    if is_not_found(error):
        return FetchOutcome(kind=OutcomeKind.FATAL, error=error)
    return FetchOutcome(kind=OutcomeKind.RETRYABLE, error=error)


async def _notify(callback: ProgressCallback, current: int, total: Optional[int]) -> None:
    result = callback(current, total)
    if inspect.isawaitable(result):
        await result


def extract_title(page: RemotePage) -> str:
    """Title of a Notion page, looking at the Title, Name and Task Name properties."""
    properties = page.properties or {}
    for name in TITLE_PROPERTIES:
        title = extract_text(properties.get(name))
        if title:
            return title
    return UNTITLED


async def retrieve_all_pages(
    database_id: str,
    api_key: str,
    on_progress: Optional[ProgressCallback] = None,
    max_retries: Optional[int] = None,
    config: Optional[NotionConfig] = None
) -> RetrieveResult:
    """Retrieve a whole database with a short-lived client for ``api_key``."""
    config = config or get_notion_config()
    client = build_client(api_key, config)
    try:
        retriever = NotionRetriever(client, config=config, max_retries=max_retries)
        return await retriever.retrieve_all_pages(database_id, on_progress=on_progress)
    finally:
        await client.aclose()
