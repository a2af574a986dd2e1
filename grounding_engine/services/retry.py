"""Retry logic for storage writes."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    StaleDocumentVersionError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    delay: Optional[float] = None,
    backoff_multiplier: Optional[float] = None,
    exceptions: tuple = (DatabaseError,),
    no_retry: tuple = (StaleDocumentVersionError, DocumentNotFoundError),
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async function to retry.
        max_retries: Maximum number of retry attempts.
        delay: Initial delay in seconds.
        backoff_multiplier: Multiplier for exponential backoff.
        exceptions: Tuple of exceptions to catch and retry.
        no_retry: Exceptions raised immediately even if listed in ``exceptions``.

    Returns:
        Result of the function call.

    Raises:
        Last exception if all retries fail.
    """
    max_retries = settings.max_retries if max_retries is None else max_retries
    delay = settings.retry_delay_seconds if delay is None else delay
    backoff_multiplier = (
        settings.retry_backoff_multiplier if backoff_multiplier is None else backoff_multiplier
    )

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except no_retry:
            raise
        except exceptions as e:
            if attempt >= max_retries:
                logger.error(
                    f"All {max_retries + 1} attempts failed. Last error: {str(e)}")
                raise
            wait_time = delay * (backoff_multiplier ** attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed: {str(e)}. "
                f"Retrying in {wait_time:.2f}s..."
            )
            await asyncio.sleep(wait_time)

    raise DatabaseError("Retry loop exited without a result")
