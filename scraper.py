# ==============================================================================
# DA PRICE INDEX SCRAPER - FETCH & LOOKUP
# ==============================================================================
#
#   listing page --> link catalog --> entry for the requested date
#                                 --> PDF bytes --> records + notes
#
# Fetch and parse problems never raise out of this module; they show up as
# empty catalogs / results with an outcome saying why.
#
# ==============================================================================

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

import httpx

from catalog import build_link_catalog, normalize_date
from commodity_parser import extract
from config import Settings, get_settings
from models import (
    CatalogOutcome,
    DataFound,
    DocumentNotFound,
    ExtractionOutcome,
    ExtractionResult,
    LinkCatalog,
    LinkEntry,
    MalformedInput,
)

logger = logging.getLogger(__name__)

SAMPLE_DATES_LIMIT = 5

DataLookup = Union[DataFound, DocumentNotFound, MalformedInput]


# ==============================================================================
# HTTP
# ==============================================================================

def build_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.http_timeout,
        headers=settings.headers,
        follow_redirects=True,
    )


@asynccontextmanager
async def _client_scope(client: Optional[httpx.AsyncClient], settings: Settings):
    if client is not None:
        yield client
        return
    async with build_client(settings) as owned:
        yield owned


async def _fetch(client: httpx.AsyncClient, url: str) -> Optional[httpx.Response]:
    """GET url; None on transport error or any non-200 status"""
    try:
        resp = await client.get(url)
    except Exception as e:
        logger.warning("Fetch failed for %s: %s", url, e)
        return None

    if resp.status_code != 200:
        logger.warning("Fetch for %s returned HTTP %s", url, resp.status_code)
        return None
    return resp


# ==============================================================================
# DOCUMENT CACHE
# ==============================================================================

class DocumentCache:
    """
    Parsed documents keyed by PDF URL. A URL is fetched and parsed by at
    most one task at a time; concurrent callers await that task.
    Failed extractions are not stored.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[float, ExtractionResult]] = {}
        self._inflight: Dict[str, asyncio.Future] = {}

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()

    async def get_or_load(
        self,
        url: str,
        loader: Callable[[], Awaitable[ExtractionResult]],
        ttl: float,
    ) -> ExtractionResult:
        if ttl <= 0:
            return await loader()

        cached = self._entries.get(url)
        if cached and self._clock() - cached[0] < ttl:
            return cached[1]

        task = self._inflight.get(url)
        if task is None:
            task = asyncio.ensure_future(self._load(url, loader))
            self._inflight[url] = task
        return await asyncio.shield(task)

    async def _load(self, url, loader) -> ExtractionResult:
        try:
            result = await loader()
        finally:
            self._inflight.pop(url, None)

        if result.outcome is not ExtractionOutcome.FAILED:
            self._entries[url] = (self._clock(), result)
        return result


document_cache = DocumentCache()


# ==============================================================================
# OPERATIONS
# ==============================================================================

async def load_catalog(
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> LinkCatalog:
    """Fetches the listing page and builds a fresh catalog"""
    settings = settings or get_settings()
    async with _client_scope(client, settings) as http:
        resp = await _fetch(http, settings.target_url)
    if resp is None:
        return LinkCatalog(outcome=CatalogOutcome.FETCH_FAILED, detail=settings.target_url)

    catalog = build_link_catalog(resp.text, settings.base_url)
    logger.info("Listing page: %s, %d PDF links", catalog.outcome.value, len(catalog.entries))
    return catalog


async def list_links(
    limit: Optional[int] = None,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> List[LinkEntry]:
    entries = (await load_catalog(client, settings)).entries
    if limit is not None:
        entries = entries[:max(limit, 0)]
    return entries


async def fetch_document(client: httpx.AsyncClient, url: str) -> ExtractionResult:
    filename = url.rsplit("/", 1)[-1]
    resp = await _fetch(client, url)
    if resp is None:
        return ExtractionResult.failed(f"Could not download {url}")

    result = extract(resp.content)
    logger.info(
        "Parsed %s: %s, %d records, %d notes",
        filename, result.outcome.value, len(result.records), len(result.notes),
    )
    return result


async def _extract_entry(
    entry: LinkEntry,
    http: httpx.AsyncClient,
    settings: Settings,
    cache: DocumentCache,
) -> ExtractionResult:
    return await cache.get_or_load(
        entry.url,
        lambda: fetch_document(http, entry.url),
        settings.document_cache_ttl,
    )


async def get_data(
    date: Optional[str],
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
    cache: DocumentCache = document_cache,
) -> DataLookup:
    """
    Records and notes for the document published on `date`.

    Process:
    1. Validates the date (MalformedInput, no fetch)
    2. Builds the link catalog from the listing page
    3. Picks the first entry whose date matches (DocumentNotFound otherwise)
    4. Downloads and parses that PDF
    """
    if not date or not date.strip():
        return MalformedInput(date=date, message="Query parameter 'date' is required")

    target = normalize_date(date)
    if target is None:
        return MalformedInput(date=date, message=f"Invalid date: {date}")

    settings = settings or get_settings()
    async with _client_scope(client, settings) as http:
        catalog = await load_catalog(http, settings)
        match = next((e for e in catalog.entries if e.date_key == target), None)
        if match is None:
            logger.info("No PDF for %s (%s entries listed)", target, len(catalog.entries))
            return DocumentNotFound(
                date=date,
                available_dates=[e.date_label for e in catalog.entries[:SAMPLE_DATES_LIMIT]],
            )

        result = await _extract_entry(match, http, settings, cache)

    return DataFound.from_extraction(target, match.url, result)


async def get_latest(
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
    cache: DocumentCache = document_cache,
) -> Union[DataFound, DocumentNotFound]:
    """Records and notes for the newest dated document on the listing page"""
    settings = settings or get_settings()
    async with _client_scope(client, settings) as http:
        catalog = await load_catalog(http, settings)
        dated = [e for e in catalog.entries if e.date_key]
        if not dated:
            return DocumentNotFound(
                date="latest",
                available_dates=[e.date_label for e in catalog.entries[:SAMPLE_DATES_LIMIT]],
            )

        # max() keeps the first of equal dates, i.e. the top-most row
        newest = max(dated, key=lambda e: e.date_key)
        result = await _extract_entry(newest, http, settings, cache)

    return DataFound.from_extraction(newest.date_key, newest.url, result)
