"""Concurrent multi-query web search."""

import asyncio
from typing import Awaitable, Callable

import httpx

from deep_research.events import QueryCompletion
from deep_research.exceptions import SearchStepError
from deep_research.logging import get_logger
from deep_research.models import (
    MultiSearchResult,
    QuerySearchResult,
    ResearchDepth,
    SearchImage,
    SearchResult,
)
from deep_research.search import (
    WebImage,
    WebSearchClient,
    dedupe_by_domain_and_url,
    is_valid_image_url,
    sanitize_url,
)

log = get_logger("deep_research.multi_search")

QueryCallback = Callable[[QueryCompletion], Awaitable[None]]

DEFAULT_MAX_RESULTS = 10
DEFAULT_TOPIC = "general"
NEWS_TOPIC = "news"


def _slot(values: list | None, index: int, default):
    """Per-query parameter: own slot, else the first value, else ``default``."""
    if not values:
        return default
    if index < len(values) and values[index]:
        return values[index]
    return values[0] or default


async def _validated_images(
    http_client: httpx.AsyncClient,
    images: list[WebImage],
    *,
    timeout: float,
) -> list[SearchImage]:
    candidates = [image for image in dedupe_by_domain_and_url(images) if image.description]
    urls = [sanitize_url(image.url) for image in candidates]
    checks = await asyncio.gather(*(is_valid_image_url(http_client, url, timeout=timeout) for url in urls))
    return [
        SearchImage(url=url, description=image.description)
        for image, url, valid in zip(candidates, urls, checks)
        if valid
    ]


async def run_web_search(
    client: WebSearchClient,
    queries: list[str],
    *,
    max_results: list[int] | None = None,
    topics: list[str] | None = None,
    search_depth: list[ResearchDepth] | None = None,
    exclude_domains: list[str] | None = None,
    on_query_complete: QueryCallback | None = None,
    http_client: httpx.AsyncClient | None = None,
    image_check_timeout: float = 5.0,
) -> MultiSearchResult:
    """Run every query concurrently and return their results in query order.

    Results and images of each query are deduplicated by domain and URL.
    Images are kept only when they carry a description and answer a HEAD
    request with an image content type.

    Raises:
        SearchStepError: For the first query that fails. Remaining queries are cancelled.
    """
    slots: list[QuerySearchResult | None] = [None] * len(queries)
    owns_client = http_client is None
    http = http_client or httpx.AsyncClient()

    async def _search_one(index: int, query: str) -> None:
        topic = _slot(topics, index, DEFAULT_TOPIC)
        try:
            response = await client.search(
                query,
                depth=_slot(search_depth, index, ResearchDepth.BASIC),
                max_results=_slot(max_results, index, DEFAULT_MAX_RESULTS),
                exclude_domains=exclude_domains or None,
                topic=topic,
                include_images=True,
            )
        except Exception as e:
            log.warning("multi_search.query.failed", query=query, index=index, error=str(e))
            raise SearchStepError(step_id=f"query-{index}", query=query, reason=str(e) or type(e).__name__) from e

        if on_query_complete is not None:
            await on_query_complete(
                QueryCompletion(
                    query=query,
                    index=index,
                    total=len(queries),
                    results_count=len(response.results),
                    images_count=len(response.images),
                )
            )

        results = [
            SearchResult(
                source="web",
                title=document.title,
                url=document.url,
                content=document.content,
                published_date=document.published_date if topic == NEWS_TOPIC else None,
            )
            for document in dedupe_by_domain_and_url(response.results)
        ]
        images = await _validated_images(http, response.images, timeout=image_check_timeout)
        slots[index] = QuerySearchResult(query=query, results=results, images=images)

    try:
        async with asyncio.TaskGroup() as tg:
            for index, query in enumerate(queries):
                tg.create_task(_search_one(index, query))
    except ExceptionGroup as group:
        raise group.exceptions[0]
    finally:
        if owns_client:
            await http.aclose()

    log.info("multi_search.completed", queries=len(queries))
    return MultiSearchResult(searches=[slot for slot in slots if slot is not None])
