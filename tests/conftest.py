"""Shared fixtures: in-memory search client and TestModel-backed agents."""

import re
from typing import Any

import pytest
from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.models.test import TestModel

from deep_research.agents import clear_agent_cache
from deep_research.config import Settings
from deep_research.events import ProgressEvent
from deep_research.models import (
    AnalysisResult,
    AnalysisSpec,
    Finding,
    GapAnalysis,
    KeyFinding,
    KnowledgeGap,
    Limitation,
    RecommendedFollowup,
    ResearchDepth,
    ResearchPlan,
    SearchQuerySpec,
    SearchSource,
    Synthesis,
)
from deep_research.search import WebDocument, WebImage, WebSearchResponse


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class FakeSearchClient:
    """WebSearchClient returning canned documents and recording every call."""

    def __init__(
        self,
        responses: dict[str, WebSearchResponse] | None = None,
        *,
        fail_on: set[str] | None = None,
    ) -> None:
        self.responses = responses or {}
        self.fail_on = fail_on or set()
        self.calls: list[dict[str, Any]] = []

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
        self.calls.append(
            {
                "query": query,
                "depth": depth,
                "max_results": max_results,
                "include_domains": include_domains,
                "exclude_domains": exclude_domains,
                "topic": topic,
                "include_images": include_images,
            }
        )
        if query in self.fail_on:
            raise RuntimeError("search backend unavailable")
        if query in self.responses:
            return self.responses[query]
        slug = _slug(query)
        return WebSearchResponse(
            results=[
                WebDocument(
                    title=f"Result for {query}",
                    url=f"https://{slug}.example.com/article",
                    content=f"Content about {query}",
                )
            ],
            images=[WebImage(url=f"https://img.{slug}.example.com/a.png", description="diagram")],
        )


class EventRecorder:
    """Async event callback collecting ProgressEvents."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    async def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def ids(self) -> list[str]:
        return [event.id for event in self.events]

    def for_card(self, card_id: str) -> list[ProgressEvent]:
        return [event for event in self.events if event.id == card_id]


def make_agent(output_type: type[BaseModel], output: BaseModel, name: str = "test_agent") -> Agent:
    """Agent whose TestModel always returns ``output``."""
    return Agent(
        TestModel(custom_output_args=output.model_dump(mode="json")),
        output_type=output_type,
        retries={"output": 0},
        name=name,
    )


def make_report_agent(text: str = "# Report\n\nFindings with sources.") -> Agent[None, str]:
    return Agent(TestModel(custom_output_text=text), name="report_agent")


def sample_plan() -> ResearchPlan:
    return ResearchPlan(
        search_queries=[
            SearchQuerySpec(
                query="avif browser support",
                rationale="Know where avif can be served",
                source=SearchSource.WEB,
                priority=1,
            ),
            SearchQuerySpec(
                query="webp compression ratio",
                rationale="Compare byte savings",
                source=SearchSource.WEB,
                priority=5,
            ),
        ],
        required_analyses=[
            AnalysisSpec(type="trade-offs", description="Quality against size", importance=4),
        ],
    )


def sample_analysis() -> AnalysisResult:
    return AnalysisResult(
        findings=[
            Finding(
                insight="AVIF is smaller than WebP at equal quality",
                evidence=["https://avif-browser-support.example.com/article"],
                confidence=0.8,
            )
        ],
        implications=["Serve AVIF with a WebP fallback"],
        limitations=["Few benchmarks"],
    )


def sample_gap_analysis(queries: list[str] | None = None) -> GapAnalysis:
    return GapAnalysis(
        limitations=[
            Limitation(
                type="coverage",
                description="No data on decoding cost",
                severity=4,
                potential_solutions=["Search decoding benchmarks"],
            )
        ],
        knowledge_gaps=[
            KnowledgeGap(
                topic="decoding performance",
                reason="Decoding cost affects rendering",
                additional_queries=queries if queries is not None else ["avif decoding speed", "webp decode cpu"],
            )
        ],
        recommended_followup=[
            RecommendedFollowup(action="Benchmark decoders", rationale="Confirm real cost", priority=5),
        ],
    )


def sample_synthesis() -> Synthesis:
    return Synthesis(
        key_findings=[
            KeyFinding(
                finding="AVIF gives the best compression",
                confidence=0.85,
                supporting_evidence=["https://avif-browser-support.example.com/article"],
            )
        ],
        remaining_uncertainties=["Decoding cost on low-end devices"],
    )


@pytest.fixture(autouse=True)
def _clear_caches() -> None:
    """Clear agent caches before and after each test."""
    clear_agent_cache()
    yield
    clear_agent_cache()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        tavily_api_key="test-key",
        generation_timeout=5.0,
        search_timeout=5.0,
        include_domains=(),
        exclude_domains=(),
    )


@pytest.fixture
def search_client() -> FakeSearchClient:
    return FakeSearchClient()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def agents() -> dict[str, Agent]:
    """Agent overrides for run_research_workflow."""
    return {
        "plan_agent": make_agent(ResearchPlan, sample_plan(), "plan_agent"),
        "analysis_agent": make_agent(AnalysisResult, sample_analysis(), "analysis_agent"),
        "gap_agent": make_agent(GapAnalysis, sample_gap_analysis(), "gap_agent"),
        "synthesis_agent": make_agent(Synthesis, sample_synthesis(), "synthesis_agent"),
        "report_agent": make_report_agent(),
    }
