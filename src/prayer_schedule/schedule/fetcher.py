from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

import aiohttp

from prayer_schedule.schedule.errors import FetchTimeoutError, HTTPStatusError, NetworkError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 8 * 1024 * 1024


class Fetcher(Protocol):
    async def fetch(self, endpoint: str, timeout: float) -> bytes:
        ...


class RemoteFetcher:
    """
    Single GET against the schedule endpoint.

    No retries and no caching happen here. Retry and fallback decisions belong to the
    resolver, so tests can swap this class for any object with a matching fetch().
    """

    def __init__(self, *, session: Optional[aiohttp.ClientSession] = None, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        self._session = session
        self._max_bytes = max_bytes

    async def fetch(self, endpoint: str, timeout: float) -> bytes:
        logger.debug("schedule.fetch_start endpoint=%s timeout=%s", endpoint, timeout)
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        try:
            if self._session is not None:
                return await self._get(self._session, endpoint, client_timeout)
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                return await self._get(session, endpoint, client_timeout)
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(f"Timed out after {timeout}s fetching {endpoint}") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request to {endpoint} failed: {e}") from e

    async def _get(self, session: aiohttp.ClientSession, endpoint: str, timeout: aiohttp.ClientTimeout) -> bytes:
        async with session.get(endpoint, timeout=timeout) as response:
            if not 200 <= response.status < 300:
                response.release()
                raise HTTPStatusError(response.status, endpoint)
            if response.content_length is not None and response.content_length > self._max_bytes:
                response.release()
                raise NetworkError(
                    f"Response from {endpoint} exceeds size limit. size={response.content_length} limit={self._max_bytes}"
                )
            body = bytearray()
            async for chunk in response.content.iter_chunked(64 * 1024):
                body.extend(chunk)
                if len(body) > self._max_bytes:
                    raise NetworkError(f"Response from {endpoint} exceeds size limit. limit={self._max_bytes}")
            logger.debug("schedule.fetch_success endpoint=%s size=%d", endpoint, len(body))
            return bytes(body)
