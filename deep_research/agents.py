"""PydanticAI agents for the deep research pipeline.

Structured agents run with no output retries: output repair is handled once,
explicitly, by ``deep_research.generation``.
"""

from functools import lru_cache
from typing import Any

from pydantic_ai import Agent

from deep_research.config import get_settings
from deep_research.models import AnalysisResult, GapAnalysis, ResearchPlan, Synthesis


def create_plan_agent(model: Any) -> Agent[None, ResearchPlan]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You are a research assistant creating research plans.
        Pay attention to the depth and the topic.
        Priorities and importances are whole numbers between 1 and 5.
        Only use the sources you are told are available.
        Respect the schema given.""",
        output_type=ResearchPlan,
        retries={"output": 0},
        instrument=True,
        name="plan_agent",
    )


@lru_cache(maxsize=1)
def get_plan_agent() -> Agent[None, ResearchPlan]:
    """Cached getter for production."""
    return create_plan_agent(get_settings().plan_model)


def create_analysis_agent(model: Any) -> Agent[None, AnalysisResult]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You are a research assistant analysing search results.
        Ground every finding in the provided sources and cite them as evidence.
        The confidence of a finding is a number between 0 and 1 representing a percentage.
        Respect the schema given.""",
        output_type=AnalysisResult,
        retries={"output": 0},
        instrument=True,
        name="analysis_agent",
    )


@lru_cache(maxsize=1)
def get_analysis_agent() -> Agent[None, AnalysisResult]:
    return create_analysis_agent(get_settings().analysis_model)


def create_gap_agent(model: Any) -> Agent[None, GapAnalysis]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You review completed research and identify its limitations,
        knowledge gaps and recommended follow-up actions.
        Severity and priority are whole numbers between 2 and 10; keep them reasonable.
        Additional queries for a knowledge gap must work as standalone web searches.""",
        output_type=GapAnalysis,
        retries={"output": 0},
        instrument=True,
        name="gap_agent",
    )


@lru_cache(maxsize=1)
def get_gap_agent() -> Agent[None, GapAnalysis]:
    return create_gap_agent(get_settings().gap_model)


def create_synthesis_agent(model: Any) -> Agent[None, Synthesis]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You synthesize research findings, including gap analysis and
        follow-up research, into key conclusions and remaining uncertainties.
        Confidence scores are numbers between 0 and 1.
        Stick to the types of the schema; do not add other fields.""",
        output_type=Synthesis,
        retries={"output": 0},
        instrument=True,
        name="synthesis_agent",
    )


@lru_cache(maxsize=1)
def get_synthesis_agent() -> Agent[None, Synthesis]:
    return create_synthesis_agent(get_settings().synthesis_model)


def create_report_agent(model: Any) -> Agent[None, str]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You write research reports in markdown from a research plan,
        search results and, when present, a synthesis of findings.
        Cite sources inline by URL. Do not invent information.""",
        instrument=True,
        name="report_agent",
    )


@lru_cache(maxsize=1)
def get_report_agent() -> Agent[None, str]:
    return create_report_agent(get_settings().report_model)


def clear_agent_cache() -> None:
    """Clear all agent caches."""
    get_plan_agent.cache_clear()
    get_analysis_agent.cache_clear()
    get_gap_agent.cache_clear()
    get_synthesis_agent.cache_clear()
    get_report_agent.cache_clear()
