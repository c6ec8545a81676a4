"""Notion page writer - creates pages and pushes record values to Notion."""

import logging
from typing import Any, Dict, Optional

from notion_client import AsyncClient
from notion_client.errors import APIResponseError

from shared.config import NotionConfig, get_notion_config
from services.notion_sync.rate_limit import handle_rate_limit

logger = logging.getLogger(__name__)


def build_client(api_token: str, config: Optional[NotionConfig] = None) -> AsyncClient:
    """Create a Notion API client pinned to the configured API version."""
    config = config or get_notion_config()
    return AsyncClient(
        auth=api_token,
        notion_version=config.api_version,
        timeout_ms=int(config.timeout_seconds * 1000),
    )


class NotionPageWriter:
    """Handles creating and updating pages in Notion databases."""

    def __init__(self, client: AsyncClient):
        """
        Initialize Notion page writer.

        Args:
            client: Notion API client authenticated for the user
        """
        self.client = client

    @classmethod
    def from_token(cls, api_token: str, config: Optional[NotionConfig] = None) -> "NotionPageWriter":
        return cls(build_client(api_token, config))

    @handle_rate_limit(max_retries=3)
    async def update_page_properties(
        self,
        page_id: str,
        properties: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Overwrite properties of an existing Notion page.

        Args:
            page_id: Notion page ID to update
            properties: Notion properties payload (see db_to_notion.to_remote)

        Returns:
            Dictionary with page_id and updated status

        Raises:
            APIResponseError: If Notion API request fails
        """
        try:
            logger.info(f"Updating Notion page {page_id} ({len(properties)} properties)")
            await self.client.pages.update(page_id=page_id, properties=properties)
            logger.info(f"Successfully updated Notion page: {page_id}")
            return {
                "page_id": page_id,
                "updated": True
            }

        except APIResponseError as e:
            logger.error(f"Notion API error updating page {page_id}: {e}")
            raise

    @handle_rate_limit(max_retries=3)
    async def create_page(
        self,
        database_id: str,
        properties: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Create a new page in a Notion database.

        Args:
            database_id: Notion database ID the page is created in
            properties: Notion properties payload (see db_to_notion.to_remote)

        Returns:
            Dictionary with page_id and url

        Raises:
            APIResponseError: If Notion API request fails
        """
        try:
            logger.info(f"Creating Notion page in database {database_id} ({len(properties)} properties)")
            response = await self.client.pages.create(
                parent={"database_id": database_id},
                properties=properties
            )

            page_id = response["id"]
            logger.info(f"Successfully created Notion page: {page_id}")
            return {
                "page_id": page_id,
                "url": response.get("url")
            }

        except APIResponseError as e:
            logger.error(f"Notion API error creating page in database {database_id}: {e}")
            raise
