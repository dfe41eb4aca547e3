"""Download the street centreline corpus from the Toronto Open Data portal."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp
from tqdm import tqdm

logger = logging.getLogger(__name__)

CKAN_BASE_URL = "https://ckan0.cf.opendata.inter.prod-toronto.ca"
CENTRELINE_RESOURCE_ID = "ad296ebf-fca6-4e67-b3ce-48040a20e6cd"
DEFAULT_PAGE_SIZE = 5000


class CorpusFetchError(Exception):
    """Error fetching a page of the corpus feed."""

    def __init__(self, url: str, status_code: int, message: str = ""):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: HTTP {status_code}. {message}")


@dataclass
class FeedPage:
    """One page of datastore records."""

    offset: int
    total: int
    records: List[Dict[str, Any]] = field(default_factory=list)
    payload_bytes: int = 0


@dataclass
class FeedDownload:
    """Every record of the feed, in offset order."""

    records: List[Dict[str, Any]]
    total: int
    payload_bytes: int
    duration_ms: int


class CentrelineDownloader:
    """
    Downloads centreline records through the CKAN ``datastore_search`` API.

    The first page is requested alone to learn the record total; the
    remaining pages are fetched concurrently and reassembled by offset.

    All methods are async and use aiohttp.
    """

    def __init__(
        self,
        base_url: str = CKAN_BASE_URL,
        resource_id: str = CENTRELINE_RESOURCE_ID,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: int = 120,
        retries: int = 3,
        retry_delay: float = 1.0,
        max_concurrent: int = 4,
    ):
        """
        Initialize downloader.

        Args:
            base_url: CKAN portal root URL
            resource_id: Datastore resource holding the centreline
            page_size: Records requested per page
            timeout: Request timeout in seconds
            retries: Number of attempts per page
            retry_delay: Base delay between attempts in seconds
            max_concurrent: Maximum concurrent page requests
        """
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.base_url = base_url.rstrip("/")
        self.resource_id = resource_id
        self.page_size = page_size
        self.timeout = timeout
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.max_concurrent = max(1, max_concurrent)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": "centreline-match/0.1.0"},
            )
        return self._session

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    @property
    def datastore_url(self) -> str:
        """Get the datastore_search endpoint."""
        return f"{self.base_url}/api/3/action/datastore_search"

    async def fetch_page(self, offset: int) -> FeedPage:
        """
        Fetch one page of records, retrying transient failures.

        Args:
            offset: Index of the first record

        Returns:
            FeedPage with the records and the feed total

        Raises:
            CorpusFetchError: On 404, an unsuccessful API response,
                malformed JSON, or when retries are exhausted
        """
        for attempt in range(self.retries):
            try:
                return await self._fetch_page_once(offset)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                status = getattr(e, "status", 0)
                if attempt == self.retries - 1:
                    raise CorpusFetchError(self.datastore_url, status, f"offset={offset}: {e}")
                logger.warning(
                    "Page at offset %d failed (attempt %d/%d): %s",
                    offset,
                    attempt + 1,
                    self.retries,
                    e,
                )
                if self.retry_delay:
                    await asyncio.sleep(self.retry_delay * (attempt + 1))

        raise CorpusFetchError(self.datastore_url, 0, f"offset={offset}: no attempts made")

    async def _fetch_page_once(self, offset: int) -> FeedPage:
        session = await self._get_session()
        params = {"id": self.resource_id, "limit": self.page_size, "offset": offset}

        async with session.get(self.datastore_url, params=params) as response:
            if response.status == 404:
                raise CorpusFetchError(self.datastore_url, 404, "Resource not found")
            response.raise_for_status()
            body = await response.read()

        try:
            payload = json.loads(body)
        except ValueError as e:
            raise CorpusFetchError(self.datastore_url, response.status, f"Malformed JSON: {e}")

        if not isinstance(payload, dict) or not payload.get("success"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise CorpusFetchError(self.datastore_url, response.status, f"API error: {error}")

        result = payload.get("result") or {}
        return FeedPage(
            offset=offset,
            total=int(result.get("total", 0)),
            records=list(result.get("records", [])),
            payload_bytes=len(body),
        )

    async def fetch_all(self, progress: bool = False) -> FeedDownload:
        """
        Fetch every record of the feed.

        Nothing is returned unless every page succeeds, so callers never
        see a partial corpus.

        Args:
            progress: Show progress bar

        Returns:
            FeedDownload with all records in feed order
        """
        started = time.monotonic()
        first = await self.fetch_page(0)
        pages: Dict[int, FeedPage] = {0: first}
        offsets = list(range(self.page_size, first.total, self.page_size))

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def fetch(offset: int) -> FeedPage:
            async with semaphore:
                return await self.fetch_page(offset)

        tasks = [asyncio.ensure_future(fetch(offset)) for offset in offsets]
        try:
            desc = "Downloading centreline"
            with tqdm(total=len(offsets) + 1, desc=desc, disable=not progress) as pbar:
                pbar.update(1)
                for coro in asyncio.as_completed(tasks):
                    page = await coro
                    pages[page.offset] = page
                    pbar.update(1)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        records: List[Dict[str, Any]] = []
        for offset in sorted(pages):
            records.extend(pages[offset].records)

        duration_ms = int((time.monotonic() - started) * 1000)
        payload_bytes = sum(page.payload_bytes for page in pages.values())
        logger.info(
            "Fetched %d of %d centreline records in %d pages (%d ms)",
            len(records),
            first.total,
            len(pages),
            duration_ms,
        )
        return FeedDownload(
            records=records,
            total=first.total,
            payload_bytes=payload_bytes,
            duration_ms=duration_ms,
        )
