"""Execution of a single search step against the web search collaborator."""

from collections.abc import Collection

from deep_research.events import ProgressKind
from deep_research.exceptions import SearchStepError
from deep_research.logging import get_logger
from deep_research.models import ResearchDepth, SearchResult, SearchStep, SearchStepOutput, StepKind
from deep_research.progress import ProgressEmitter
from deep_research.search import WebSearchClient

log = get_logger("deep_research.search_executor")

MIN_RESULTS = 1
MAX_RESULTS = 10

DEFAULT_SUPPORTED_KINDS = frozenset({StepKind.WEB, StepKind.ACADEMIC})

_KIND_TITLES = {
    StepKind.WEB: "Web Search",
    StepKind.ACADEMIC: "Academic Search",
}


def max_results_for_priority(priority: int) -> int:
    """Result cap for a query: higher priority (lower number) fetches more."""
    return min(max(6 - priority, MIN_RESULTS), MAX_RESULTS)


def _progress_kind(kind: StepKind) -> ProgressKind:
    return ProgressKind.ACADEMIC if kind == StepKind.ACADEMIC else ProgressKind.WEB


class SearchExecutor:
    """Runs one search step and reports it as a progress card."""

    def __init__(
        self,
        client: WebSearchClient,
        emitter: ProgressEmitter,
        *,
        supported_kinds: Collection[StepKind] = DEFAULT_SUPPORTED_KINDS,
    ) -> None:
        self.client = client
        self.emitter = emitter
        self.supported_kinds = frozenset(supported_kinds)

    async def execute(
        self,
        step: SearchStep,
        *,
        depth: ResearchDepth,
        include_domains: list[str] | None = None,
        exclude_domains: list[str] | None = None,
        max_results: int | None = None,
        counted: bool = True,
    ) -> SearchStepOutput:
        """Execute ``step`` and return its documents.

        Emits a running card and exactly one completed card for ``step.id``.
        When ``counted`` the completed card also advances the run's step counter.

        Raises:
            SearchStepError: When the search fails or times out. The completed
                card carries the error before this is raised.
        """
        query = step.query.query
        title = _KIND_TITLES.get(step.kind, "Search")

        if step.kind not in self.supported_kinds:
            log.info("search.step.skipped", step_id=step.id, kind=step.kind.value)
            await self.emitter.completed(
                step.id,
                _progress_kind(step.kind),
                title,
                f"Skipped {step.kind.value} search for: {query}",
                payload={"skipped": True, "results": 0},
                count_step=counted,
            )
            return SearchStepOutput(step_id=step.id, kind=step.kind, query=step.query)

        limit = max_results if max_results is not None else max_results_for_priority(step.query.priority)
        await self.emitter.running(
            step.id,
            _progress_kind(step.kind),
            title,
            f"Searching {step.kind.value} sources for: {query}",
        )

        try:
            response = await self.client.search(
                query,
                depth=depth,
                max_results=limit,
                include_domains=include_domains,
                exclude_domains=exclude_domains,
            )
        except Exception as e:
            reason = str(e) or type(e).__name__
            log.warning("search.step.failed", step_id=step.id, query=query, error=reason)
            await self.emitter.completed(
                step.id,
                _progress_kind(step.kind),
                title,
                f"Search failed for: {query}",
                payload={"error": reason, "results": 0},
                count_step=counted,
            )
            raise SearchStepError(step_id=step.id, query=query, reason=reason) from e

        results = [
            SearchResult(
                source=step.kind.value,
                title=document.title,
                url=document.url,
                content=document.content,
                published_date=document.published_date,
            )
            for document in response.results
        ]
        log.info("search.step.completed", step_id=step.id, results=len(results), max_results=limit)
        await self.emitter.completed(
            step.id,
            _progress_kind(step.kind),
            title,
            f"Found {len(results)} results for: {query}",
            payload={"results": [result.model_dump(mode="json") for result in results]},
            count_step=counted,
        )
        return SearchStepOutput(step_id=step.id, kind=step.kind, query=step.query, results=results)
