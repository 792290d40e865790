"""
Now-playing metadata for the live stream.

The stream itself carries no usable title, so the station publishes the
current track through a small JSON API:

    GET stream-meta_api.php?amount=1
    → [{"title": "Artist - Song", ...}, ...]

Only the first record is used.
"""

import asyncio
import json
import logging

import aiohttp

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class MetadataFetchError(Exception):
    """The metadata endpoint could not be reached or answered non-200."""


class MalformedMetadata(ValueError):
    """The endpoint answered, but not with a list of track records."""


class MetadataFetcher:
    """One-shot fetches of the metadata endpoint over a shared aiohttp session.

    The session is created lazily on first fetch and closed by close().
    """

    def __init__(self, session: aiohttp.ClientSession | None = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self._session = session
        self._own_session = session is None
        self.timeout = timeout

    async def fetch(self, url: str) -> bytes:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "CampusRadio/1.0"})
            self._own_session = True
        try:
            async with self._session.get(
                url, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status != 200:
                    raise MetadataFetchError(f"{url} returned HTTP {resp.status}")
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MetadataFetchError(f"{url}: {e or type(e).__name__}") from e

    async def close(self):
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None


def parse_title(raw: bytes | str) -> str:
    """Extract the title of the first track record.

    Raises json.JSONDecodeError on invalid JSON and MalformedMetadata when
    the document is valid but has the wrong shape.
    """
    data = json.loads(raw)
    if not isinstance(data, list) or not data:
        raise MalformedMetadata(f"expected a non-empty list, got {type(data).__name__}")
    first = data[0]
    if not isinstance(first, dict):
        raise MalformedMetadata("first track record is not an object")
    title = first.get("title")
    if not isinstance(title, str):
        raise MalformedMetadata("first track record has no title string")
    return title
