"""Rate limit handling and error classification for the Notion API."""

import asyncio
import logging
from typing import Any, Callable, Optional
from functools import wraps

from notion_client.errors import APIErrorCode, APIResponseError, HTTPResponseError

logger = logging.getLogger(__name__)


def error_status(error: Exception) -> Optional[int]:
    """HTTP status carried by a Notion client error, if any."""
    status = getattr(error, "status", None)
    return status if isinstance(status, int) else None


def is_rate_limited(error: Exception) -> bool:
    """True for HTTP 429 / rate_limited responses."""
    if isinstance(error, APIResponseError) and error.code == APIErrorCode.RateLimited:
        return True
    return isinstance(error, HTTPResponseError) and error_status(error) == 429


def is_not_found(error: Exception) -> bool:
    """True when the database or page no longer exists (HTTP 404)."""
    if error_status(error) == 404:
        return True
    if isinstance(error, APIResponseError) and error.code == APIErrorCode.ObjectNotFound:
        return True
    message = str(error).lower()
    return "404" in message or "not found" in message


def extract_retry_after(error: Exception) -> Optional[float]:
    """
    Extract the Retry-After hint from a Notion API error.

    Args:
        error: Error raised by the Notion client

    Returns:
        Seconds to wait, or None when the response gave no usable hint
    """
    headers = getattr(error, "headers", None)
    if headers is None:
        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
    if not headers:
        return None

    try:
        retry_after = headers.get("Retry-After") or headers.get("retry-after")
    except AttributeError:
        return None
    if retry_after is None:
        return None

    try:
        return max(float(retry_after), 0.0)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable Retry-After header: {retry_after!r}")
        return None


def handle_rate_limit(max_retries: int = 3):
    """
    Decorator to handle Notion API rate limits with automatic retry.

    Notion API returns 429 status code when rate limited, along with
    a Retry-After header indicating how long to wait. Without the header
    the wait doubles from one second.

    Args:
        max_retries: Maximum number of retry attempts

    Returns:
        Decorated coroutine function that handles rate limits
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            retries = 0

            while True:
                try:
                    return await func(*args, **kwargs)

                except (APIResponseError, HTTPResponseError) as e:
                    if not is_rate_limited(e):
                        raise

                    if retries >= max_retries:
                        logger.error(f"Max retries ({max_retries}) exceeded for rate limit in {func.__name__}")
                        raise

                    retry_after = extract_retry_after(e)
                    if retry_after is None:
                        retry_after = float(2 ** retries)
                    retries += 1

                    logger.warning(
                        f"Rate limit hit. Waiting {retry_after} seconds before retry "
                        f"(attempt {retries}/{max_retries})"
                    )
                    await asyncio.sleep(retry_after)

        return wrapper
    return decorator
