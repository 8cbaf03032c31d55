"""Tests for plan expansion into steps."""

from deep_research.models import (
    AnalysisSpec,
    ResearchPlan,
    SearchQuerySpec,
    SearchSource,
    StepKind,
)
from deep_research.steps import PLAN_ID, expand_gap_queries, expand_plan


def _query(text: str, source: SearchSource, priority: int = 3) -> SearchQuerySpec:
    return SearchQuerySpec(query=text, rationale="r", source=source, priority=priority)


def _plan() -> ResearchPlan:
    return ResearchPlan(
        search_queries=[
            _query("q0", SearchSource.WEB),
            _query("q1", SearchSource.BOTH),
            _query("q2", SearchSource.ACADEMIC),
            _query("q3", SearchSource.ALL),
        ],
        required_analyses=[
            AnalysisSpec(type="a0", description="d", importance=2),
            AnalysisSpec(type="a1", description="d", importance=5),
        ],
    )


class TestExpandPlan:
    def test__expand_plan__ids_follow_plan_positions(self) -> None:
        steps = expand_plan(_plan())
        assert [step.id for step in steps.search_steps] == [
            "search-web-0",
            "search-web-1",
            "search-academic-1",
            "search-academic-2",
            "search-web-3",
        ]
        assert [step.id for step in steps.analysis_steps] == ["analysis-0", "analysis-1"]
        assert steps.plan_id == PLAN_ID

    def test__both_source__yields_web_and_academic_steps_sharing_query(self) -> None:
        steps = expand_plan(_plan())
        web, academic = steps.search_steps[1], steps.search_steps[2]
        assert (web.kind, academic.kind) == (StepKind.WEB, StepKind.ACADEMIC)
        assert web.query == academic.query

    def test__all_source__yields_single_web_step(self) -> None:
        steps = expand_plan(_plan())
        assert steps.search_steps[-1].kind == StepKind.WEB
        assert steps.search_steps[-1].query.source == SearchSource.ALL

    def test__expand_plan__is_idempotent(self) -> None:
        plan = _plan()
        assert expand_plan(plan) == expand_plan(plan)

    def test__expand_plan__total_counts_searches_and_analyses(self) -> None:
        assert expand_plan(_plan()).total == 7

    def test__empty_plan__yields_no_steps(self) -> None:
        steps = expand_plan(ResearchPlan(search_queries=[], required_analyses=[]))
        assert steps.total == 0


class TestExpandGapQueries:
    def test__gap_queries__become_numbered_web_steps(self) -> None:
        queries = [_query("g0", SearchSource.ALL), _query("g1", SearchSource.WEB)]
        steps = expand_gap_queries(queries)
        assert [step.id for step in steps] == ["gap-search-0", "gap-search-1"]
        assert all(step.kind == StepKind.WEB for step in steps)
        assert [step.query.query for step in steps] == ["g0", "g1"]
