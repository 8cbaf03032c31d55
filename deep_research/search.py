"""Web search collaborator: protocol, Tavily client and URL helpers."""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

import httpx
from tavily import AsyncTavilyClient

from deep_research.exceptions import CollaboratorTimeoutError
from deep_research.logging import get_logger
from deep_research.models import ResearchDepth

log = get_logger("deep_research.search")

_HOST_PATTERN = re.compile(r"^https?://([^/?#]+)(?:[/?#]|$)", re.IGNORECASE)

T = TypeVar("T")


@dataclass
class WebDocument:
    """A ranked document returned by the search collaborator."""

    title: str
    url: str
    content: str = ""
    published_date: str | None = None
    score: float = 0.0


@dataclass
class WebImage:
    url: str
    description: str = ""


@dataclass
class WebSearchResponse:
    results: list[WebDocument] = field(default_factory=list)
    images: list[WebImage] = field(default_factory=list)


class WebSearchClient(Protocol):
    """Anything that can run a ranked web search."""

    async def search(
        self,
        query: str,
        *,
        depth: ResearchDepth,
        max_results: int,
        include_domains: list[str] | None = None,
        exclude_domains: list[str] | None = None,
        topic: str = "general",
        include_images: bool = False,
    ) -> WebSearchResponse: ...


class TavilySearchClient:
    """WebSearchClient backed by the Tavily search API."""

    def __init__(self, api_key: str, *, timeout: float = 30.0) -> None:
        self._client = AsyncTavilyClient(api_key=api_key)
        self.timeout = timeout

    async def search(
        self,
        query: str,
        *,
        depth: ResearchDepth,
        max_results: int,
        include_domains: list[str] | None = None,
        exclude_domains: list[str] | None = None,
        topic: str = "general",
        include_images: bool = False,
    ) -> WebSearchResponse:
        kwargs: dict[str, Any] = {
            "query": query,
            "search_depth": depth.value,
            "max_results": max_results,
            "topic": topic,
            "include_answer": True,
        }
        if topic == "news":
            kwargs["days"] = 7
        if include_images:
            kwargs["include_images"] = True
            kwargs["include_image_descriptions"] = True
        if include_domains:
            kwargs["include_domains"] = include_domains
        if exclude_domains:
            kwargs["exclude_domains"] = exclude_domains

        response = await with_timeout(self._client.search(**kwargs), self.timeout, operation=f"search '{query}'")
        return _parse_tavily_response(response)


def _parse_tavily_response(response: dict[str, Any]) -> WebSearchResponse:
    documents = [
        WebDocument(
            title=item.get("title", ""),
            url=item.get("url", ""),
            content=item.get("content", ""),
            published_date=item.get("published_date"),
            score=item.get("score", 0.0),
        )
        for item in response.get("results", [])
    ]
    images = []
    for image in response.get("images", []):
        # Tavily returns bare URLs unless image descriptions were requested
        if isinstance(image, str):
            images.append(WebImage(url=image))
        else:
            images.append(WebImage(url=image.get("url", ""), description=image.get("description") or ""))
    return WebSearchResponse(results=documents, images=images)


async def with_timeout(awaitable: Any, timeout: float | None, *, operation: str) -> Any:
    """Await ``awaitable``, converting an expired deadline into CollaboratorTimeoutError."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise CollaboratorTimeoutError(operation=operation, timeout=timeout) from e


# --- URL helpers ---


def extract_domain(url: str) -> str:
    """Host of an http(s) URL, lowercased and without a leading ``www.``."""
    match = _HOST_PATTERN.match(url.strip())
    if not match:
        return url
    host = match.group(1).lower().rsplit("@", 1)[-1].split(":", 1)[0]
    return host.removeprefix("www.")


def dedupe_by_domain_and_url(items: list[T], *, url_of: Any = None) -> list[T]:
    """Keep the first item per URL and per domain, preserving order."""
    get_url = url_of or (lambda item: item.url)
    seen_urls: set[str] = set()
    seen_domains: set[str] = set()
    kept: list[T] = []
    for item in items:
        url = get_url(item)
        domain = extract_domain(url)
        if url in seen_urls or domain in seen_domains:
            continue
        seen_urls.add(url)
        seen_domains.add(domain)
        kept.append(item)
    return kept


def sanitize_url(url: str) -> str:
    return re.sub(r"\s+", "%20", url)


async def is_valid_image_url(client: httpx.AsyncClient, url: str, *, timeout: float = 5.0) -> bool:
    """HEAD the URL and accept it only when it answers OK with an image content type."""
    try:
        response = await client.head(url, timeout=timeout, follow_redirects=True)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        log.debug("search.image_check.failed", url=url, error=str(e))
        return False
    return response.is_success and response.headers.get("content-type", "").startswith("image/")
