"""Tests for research pipeline Pydantic models."""

import pytest
from conftest import sample_plan
from pydantic import ValidationError

from deep_research.models import (
    AnalysisSpec,
    Finding,
    Limitation,
    PhaseTimings,
    PlannedSteps,
    RecommendedFollowup,
    ResearchDepth,
    ResearchPlan,
    ResearchResult,
    SearchQuerySpec,
    SearchSource,
)


def _query(**overrides) -> SearchQuerySpec:
    fields = {"query": "avif support", "rationale": "r", "source": "web", "priority": 3}
    fields.update(overrides)
    return SearchQuerySpec(**fields)


class TestSearchQuerySpec:
    def test__valid_creation__parses_source(self) -> None:
        assert _query().source == SearchSource.WEB

    @pytest.mark.parametrize("priority", [0, 6])
    def test__priority_outside_range__raises(self, priority: int) -> None:
        with pytest.raises(ValidationError):
            _query(priority=priority)

    def test__empty_query__raises(self) -> None:
        with pytest.raises(ValidationError):
            _query(query="")

    def test__unknown_source__raises(self) -> None:
        with pytest.raises(ValidationError):
            _query(source="library")

    def test__is_immutable(self) -> None:
        query = _query()
        with pytest.raises(ValidationError):
            query.priority = 1


class TestResearchPlan:
    def test__too_many_queries__raises(self) -> None:
        with pytest.raises(ValidationError):
            ResearchPlan(search_queries=[_query()] * 13, required_analyses=[])

    def test__too_many_analyses__raises(self) -> None:
        analysis = AnalysisSpec(type="t", description="d", importance=3)
        with pytest.raises(ValidationError):
            ResearchPlan(search_queries=[], required_analyses=[analysis] * 9)

    def test__json_roundtrip__preserves_plan(self) -> None:
        plan = sample_plan()
        assert ResearchPlan.model_validate_json(plan.model_dump_json()) == plan


class TestRanges:
    @pytest.mark.parametrize("confidence", [-0.1, 1.1])
    def test__finding_confidence_outside_unit_range__raises(self, confidence: float) -> None:
        with pytest.raises(ValidationError):
            Finding(insight="i", confidence=confidence)

    @pytest.mark.parametrize("severity", [1, 11])
    def test__limitation_severity_outside_range__raises(self, severity: int) -> None:
        with pytest.raises(ValidationError):
            Limitation(type="t", description="d", severity=severity)

    def test__followup_priority_lower_bound_is_two(self) -> None:
        with pytest.raises(ValidationError):
            RecommendedFollowup(action="a", rationale="r", priority=1)


def test__planned_steps__total_counts_searches_and_analyses() -> None:
    steps = PlannedSteps(plan_id="research-plan", search_steps=[], analysis_steps=[])
    assert steps.total == 0


def test__phase_timings__reject_negative_values() -> None:
    with pytest.raises(ValidationError):
        PhaseTimings(planning_ms=-1)


class TestResearchResult:
    def test__defaults__leave_optional_phases_empty(self) -> None:
        result = ResearchResult(
            topic="image formats",
            depth=ResearchDepth.BASIC,
            plan=sample_plan(),
            completed_steps=3,
            total_steps=3,
        )
        assert result.results == []
        assert result.gap_analysis is None
        assert result.synthesis is None
        assert result.report is None
        assert result.timings == PhaseTimings()

    def test__empty_topic__raises(self) -> None:
        with pytest.raises(ValidationError):
            ResearchResult(topic="", depth="basic", plan=sample_plan(), completed_steps=0, total_steps=0)

    def test__json_dump__uses_enum_values(self) -> None:
        result = ResearchResult(topic="t", depth="advanced", plan=sample_plan(), completed_steps=0, total_steps=0)
        dumped = result.model_dump(mode="json")
        assert dumped["depth"] == "advanced"
        assert dumped["plan"]["search_queries"][0]["source"] == "web"
