"""FastAPI application for the deep research service."""

import asyncio
from typing import AsyncIterator, Literal

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from deep_research import __version__
from deep_research.config import get_settings
from deep_research.events import CompleteEvent, ErrorEvent, ProgressEvent, ResearchUpdateEvent, SSEEvent
from deep_research.exceptions import ResearchPipelineError
from deep_research.logging import get_logger
from deep_research.models import MultiSearchResult, ResearchDepth, ResearchResult
from deep_research.multi_search import run_web_search
from deep_research.progress import PROGRESS_CARD_ID, PipelineState
from deep_research.search import TavilySearchClient, WebSearchClient
from deep_research.workflow import run_research_workflow

log = get_logger("deep_research.server")

# SSE Configuration
HEARTBEAT_INTERVAL = 30  # seconds
MAX_DURATION = 600  # 10 minutes
MAX_QUEUE_SIZE = 100


# --- Request/Response schemas ---


class ResearchRequest(BaseModel):
    """Incoming research request."""

    topic: str = Field(
        min_length=1,
        max_length=1000,
        description="Research topic to investigate (1-1000 characters)",
        examples=["Modern image formats for the web"],
    )
    depth: ResearchDepth = Field(
        default=ResearchDepth.BASIC,
        description="basic runs one research pass; advanced adds gap analysis and a second pass",
        examples=["advanced"],
    )
    preferred_domains: list[str] | None = Field(
        default=None,
        description="Restrict searches to these domains and use focused planning",
        examples=[["web.dev", "developer.mozilla.org"]],
    )


class SearchRequest(BaseModel):
    """Concurrent multi-query web search request. List parameters are per query."""

    queries: list[str] = Field(min_length=1, max_length=10, examples=[["avif browser support", "webp vs jpeg"]])
    max_results: list[int] | None = Field(default=None, examples=[[10, 5]])
    topics: list[Literal["general", "news"]] | None = Field(default=None, examples=[["general", "news"]])
    search_depth: list[ResearchDepth] | None = Field(default=None, examples=[["basic"]])
    exclude_domains: list[str] | None = Field(default=None, examples=[["pinterest.com"]])


class ErrorResponse(BaseModel):
    """Structured error response."""

    error: str = Field(
        description="Error type (PlanGenerationError, SearchStepError, ValidationError, InternalServerError, ...)",
        examples=["PlanGenerationError"],
    )
    detail: str = Field(
        description="User-friendly error message explaining what went wrong",
        examples=["Unable to create research plan. Please try a different topic."],
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status", examples=["ok"])
    version: str = Field(default="", description="Service version (only included in /health endpoint)")


# --- Dependencies ---


def get_search_client() -> WebSearchClient:
    settings = get_settings()
    return TavilySearchClient(settings.tavily_api_key, timeout=settings.search_timeout)


# --- Exception handlers ---

_SAFE_ERROR_MESSAGES: dict[str, str] = {
    "PlanGenerationError": "Unable to create research plan. Please try a different topic.",
    "SearchStepError": "Unable to complete the web search. Please try again.",
    "CollaboratorTimeoutError": "A research service took too long to respond. Please try again.",
    "ResearchCancelledError": "The research run was cancelled.",
}


def _get_safe_error_message(exc: Exception) -> str:
    return _SAFE_ERROR_MESSAGES.get(type(exc).__name__, "An error occurred processing your request.")


async def _handle_pipeline_error(request: Request, exc: ResearchPipelineError) -> JSONResponse:
    error_type = type(exc).__name__
    log.warning("request.pipeline_error", error_type=error_type, detail=str(exc))
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(error=error_type, detail=_get_safe_error_message(exc)).model_dump(),
    )


async def _handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    log.warning("request.validation_error", detail=str(exc))
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(error="ValidationError", detail=str(exc)).model_dump(),
    )


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unexpected_error", error=str(exc))
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="InternalServerError", detail="An unexpected error occurred.").model_dump(),
    )


_PIPELINE_ERROR_RESPONSES = {
    422: {"description": "Research pipeline error or invalid request", "model": ErrorResponse},
    500: {"description": "Internal server error", "model": ErrorResponse},
}


# --- App factory ---


def get_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="Deep Research Service",
        description="""
Research orchestration service: plans research for a topic, runs searches and
analyses against the plan, detects knowledge gaps and, at advanced depth, runs a
second research pass before synthesizing the findings.

Progress is reported as cards (`research-plan`, `search-*`, `analysis-*`,
`gap-analysis`, `gap-search-*`, `final-synthesis`, `research-report`,
`research-progress`) on the streaming endpoint.
        """,
        version=__version__,
    )

    application.add_exception_handler(ResearchPipelineError, _handle_pipeline_error)  # type: ignore[arg-type]
    application.add_exception_handler(ValidationError, _handle_validation_error)  # type: ignore[arg-type]
    application.add_exception_handler(Exception, _handle_unexpected_error)

    @application.post(
        "/research",
        response_model=ResearchResult,
        status_code=status.HTTP_200_OK,
        summary="Execute Research Workflow",
        description="Runs a full research pipeline and returns its result once done.",
        tags=["Research"],
        responses=_PIPELINE_ERROR_RESPONSES,
    )
    async def research(body: ResearchRequest) -> ResearchResult:
        return await run_research_workflow(body.topic, body.depth, preferred_domains=body.preferred_domains)

    @application.post(
        "/research/stream",
        response_class=StreamingResponse,
        responses={
            200: {
                "description": "Server-Sent Events stream of research progress",
                "content": {"text/event-stream": {"example": "event: research_update\ndata: {...}\n\n"}},
            },
            422: {"model": ErrorResponse},
        },
        summary="Execute research with streaming progress updates",
        description="""
Runs the research pipeline and streams progress via SSE.

**Event Types:**
- `research_update`: One progress card update (camelCase ProgressEvent)
- `: keepalive`: Comment every 30s
- `complete`: Final ResearchResult
- `error`: The run failed, with the state it failed in

**Connection:** Closes after completion or a 10-minute timeout. Disconnecting cancels the run.
        """,
        tags=["Research"],
    )
    async def research_stream(request: Request, research_request: ResearchRequest) -> StreamingResponse:
        async def event_generator() -> AsyncIterator[str]:
            event_queue: asyncio.Queue[SSEEvent] = asyncio.Queue(maxsize=MAX_QUEUE_SIZE)
            workflow_complete = asyncio.Event()
            current_state = PipelineState.PLANNING.value

            async def event_callback(progress: ProgressEvent) -> None:
                nonlocal current_state
                if progress.id == PROGRESS_CARD_ID and progress.payload:
                    current_state = progress.payload.get("failed_state") or progress.payload.get(
                        "state", current_state
                    )
                try:
                    await asyncio.wait_for(event_queue.put(ResearchUpdateEvent.from_progress(progress)), timeout=5.0)
                except asyncio.TimeoutError:
                    log.warning("stream.queue_full", card_id=progress.id)

            async def run_workflow_task() -> None:
                try:
                    result = await run_research_workflow(
                        research_request.topic,
                        research_request.depth,
                        event_callback=event_callback,
                        preferred_domains=research_request.preferred_domains,
                    )
                    await event_queue.put(CompleteEvent(data=result.model_dump(mode="json")))
                except Exception as e:
                    log.error("stream.workflow_error", error=str(e), exc_info=True)
                    await event_queue.put(
                        ErrorEvent(
                            data={
                                "error": _get_safe_error_message(e),
                                "error_type": type(e).__name__,
                                "state": current_state,
                            }
                        )
                    )
                finally:
                    workflow_complete.set()

            workflow_task = asyncio.create_task(run_workflow_task())

            loop = asyncio.get_running_loop()
            start_time = loop.time()
            next_heartbeat = start_time + HEARTBEAT_INTERVAL

            try:
                while not workflow_complete.is_set() or not event_queue.empty():
                    current_time = loop.time()
                    elapsed = current_time - start_time

                    if elapsed > MAX_DURATION:
                        log.warning("stream.timeout", elapsed=elapsed, max=MAX_DURATION)
                        workflow_task.cancel()
                        yield ErrorEvent(
                            data={
                                "error": "Research timeout - run exceeded 10 minutes",
                                "error_type": "TimeoutError",
                                "state": current_state,
                            }
                        ).format()
                        break

                    if await request.is_disconnected():
                        log.info("stream.client_disconnected", elapsed=elapsed)
                        workflow_task.cancel()
                        break

                    if current_time >= next_heartbeat:
                        yield ": keepalive\n\n"
                        next_heartbeat += HEARTBEAT_INTERVAL

                    try:
                        event = await asyncio.wait_for(event_queue.get(), timeout=0.1)
                        yield event.format()
                    except asyncio.TimeoutError:
                        continue
            finally:
                workflow_task.cancel()
                try:
                    await asyncio.wait_for(workflow_task, timeout=10.0)
                except asyncio.CancelledError:
                    log.info("stream.workflow_cancelled")
                except asyncio.TimeoutError:
                    log.error("stream.workflow_cancellation_timeout")

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
                "Connection": "keep-alive",
            },
        )

    @application.post(
        "/search",
        response_model=MultiSearchResult,
        status_code=status.HTTP_200_OK,
        summary="Multi-query web search",
        description="Runs every query concurrently. Results and images are deduplicated by domain and URL.",
        tags=["Search"],
        responses=_PIPELINE_ERROR_RESPONSES,
    )
    async def search(body: SearchRequest, client: WebSearchClient = Depends(get_search_client)) -> MultiSearchResult:
        return await run_web_search(
            client,
            body.queries,
            max_results=body.max_results,
            topics=body.topics,
            search_depth=body.search_depth,
            exclude_domains=body.exclude_domains,
            image_check_timeout=get_settings().image_check_timeout,
        )

    @application.get(
        "/health",
        response_model=HealthResponse,
        status_code=status.HTTP_200_OK,
        summary="Health Check",
        tags=["Health"],
    )
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @application.get(
        "/health/liveness",
        response_model=HealthResponse,
        status_code=status.HTTP_200_OK,
        summary="Liveness Probe",
        tags=["Health"],
    )
    async def liveness() -> HealthResponse:
        return HealthResponse(status="alive")

    @application.get(
        "/health/readiness",
        response_model=HealthResponse,
        status_code=status.HTTP_200_OK,
        summary="Readiness Probe",
        tags=["Health"],
    )
    async def readiness() -> HealthResponse:
        return HealthResponse(status="ready")

    return application


app = get_app()
