"""Tests for research plan generation."""

from datetime import date
from unittest.mock import patch

import pytest
from conftest import make_agent, sample_plan
from pydantic_ai import Agent
from pydantic_ai.models.test import TestModel

from deep_research.exceptions import PlanGenerationError
from deep_research.models import (
    AnalysisSpec,
    ResearchDepth,
    ResearchPlan,
    SearchQuerySpec,
    SearchSource,
)
from deep_research.planner import (
    BROAD_POLICY,
    FOCUSED_POLICY,
    PlanGenerator,
    build_plan_prompt,
    clamp_priorities,
    restrict_sources,
)


def _plan_with(priorities: list[int], source: SearchSource = SearchSource.WEB, analyses: int = 1) -> ResearchPlan:
    return ResearchPlan(
        search_queries=[
            SearchQuerySpec(query=f"q{i}", rationale="r", source=source, priority=p) for i, p in enumerate(priorities)
        ],
        required_analyses=[AnalysisSpec(type=f"a{i}", description="d", importance=3) for i in range(analyses)],
    )


class TestPlanGenerator:
    @pytest.mark.asyncio
    async def test__valid_plan__is_returned(self) -> None:
        generator = PlanGenerator(make_agent(ResearchPlan, sample_plan(), "plan_agent"))
        plan = await generator.generate("image formats", ResearchDepth.BASIC)
        assert plan == sample_plan()

    @pytest.mark.asyncio
    async def test__priority_out_of_range__raises_plan_generation_error(self) -> None:
        raw = sample_plan().model_dump(mode="json")
        raw["search_queries"][0]["priority"] = 6
        agent = Agent(TestModel(custom_output_args=raw), output_type=ResearchPlan, retries={"output": 0}, name="plan_agent")

        with pytest.raises(PlanGenerationError) as exc_info:
            await PlanGenerator(agent).generate("image formats", ResearchDepth.BASIC)

        assert exc_info.value.topic == "image formats"
        assert "Failed to create research plan for 'image formats'" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test__source_outside_policy__is_searched_on_the_web(self) -> None:
        agent = make_agent(ResearchPlan, _plan_with([2, 3], source=SearchSource.BOTH), "plan_agent")

        with patch("deep_research.planner.log") as mock_log:
            plan = await PlanGenerator(agent).generate("t", ResearchDepth.BASIC, policy=FOCUSED_POLICY)

        assert [query.source for query in plan.search_queries] == [SearchSource.WEB, SearchSource.WEB]
        mock_log.info.assert_any_call("plan.sources_remapped", policy="focused", queries=2)

    @pytest.mark.asyncio
    async def test__focused_policy__clamps_priorities_into_band(self) -> None:
        agent = make_agent(ResearchPlan, _plan_with([1, 3, 5], source=SearchSource.ALL), "plan_agent")
        plan = await PlanGenerator(agent).generate("t", ResearchDepth.BASIC, policy=FOCUSED_POLICY)
        assert [query.priority for query in plan.search_queries] == [2, 3, 4]

    @pytest.mark.asyncio
    async def test__too_many_steps__is_accepted_and_logged(self) -> None:
        agent = make_agent(ResearchPlan, _plan_with([3] * 8, source=SearchSource.ALL, analyses=4), "plan_agent")

        with patch("deep_research.planner.log") as mock_log:
            plan = await PlanGenerator(agent).generate("t", ResearchDepth.BASIC, policy=FOCUSED_POLICY)

        assert len(plan.search_queries) == 8
        mock_log.warning.assert_called_once_with(
            "plan.step_ceiling_exceeded", policy="focused", total_steps=12, ceiling=10
        )


class TestClampPriorities:
    def test__broad_band__leaves_priorities_unchanged(self) -> None:
        plan = _plan_with([1, 5])
        assert clamp_priorities(plan, BROAD_POLICY.priority_band) == plan

    def test__clamp__returns_new_plan(self) -> None:
        plan = _plan_with([1])
        clamped = clamp_priorities(plan, (2, 4))
        assert plan.search_queries[0].priority == 1
        assert clamped.search_queries[0].priority == 2


class TestRestrictSources:
    def test__allowed_sources__are_kept(self) -> None:
        plan = _plan_with([2], source=SearchSource.BOTH)
        assert restrict_sources(plan, BROAD_POLICY.allowed_sources) == plan

    def test__without_web__falls_back_to_first_allowed(self) -> None:
        plan = _plan_with([2], source=SearchSource.WEB)
        restricted = restrict_sources(plan, (SearchSource.ACADEMIC,))
        assert restricted.search_queries[0].source == SearchSource.ACADEMIC


class TestBuildPlanPrompt:
    def test__prompt__states_policy_shape(self) -> None:
        prompt = build_plan_prompt("image formats", ResearchDepth.ADVANCED, BROAD_POLICY, today=date(2025, 3, 4))
        assert '"image formats"' in prompt
        assert "advanced" in prompt
        assert "4-12 targeted search queries" in prompt
        assert "does not exceed 20" in prompt
        assert "Tuesday, March 04, 2025" in prompt

    def test__domain_hints__are_included(self) -> None:
        prompt = build_plan_prompt("t", ResearchDepth.BASIC, FOCUSED_POLICY, ["web.dev"])
        assert "web.dev" in prompt
        assert "between 2 and 4" in prompt
