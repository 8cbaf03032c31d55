"""Deterministic expansion of a research plan into executable steps.

Step ids depend only on a query's or analysis's position in the plan, so
expanding the same plan twice yields identical steps.
"""

from deep_research.models import (
    AnalysisStep,
    PlannedSteps,
    ResearchPlan,
    SearchQuerySpec,
    SearchSource,
    SearchStep,
    StepKind,
)

PLAN_ID = "research-plan"

# Planned source -> step kinds, in execution order
_SOURCE_KINDS: dict[SearchSource, tuple[StepKind, ...]] = {
    SearchSource.WEB: (StepKind.WEB,),
    SearchSource.ACADEMIC: (StepKind.ACADEMIC,),
    SearchSource.BOTH: (StepKind.WEB, StepKind.ACADEMIC),
    SearchSource.ALL: (StepKind.WEB,),
}


def search_step_id(kind: StepKind, index: int) -> str:
    return f"search-{kind.value}-{index}"


def analysis_step_id(index: int) -> str:
    return f"analysis-{index}"


def gap_search_step_id(index: int) -> str:
    return f"gap-search-{index}"


def expand_plan(plan: ResearchPlan) -> PlannedSteps:
    """Expand ``plan`` into ordered search and analysis steps."""
    search_steps = [
        SearchStep(id=search_step_id(kind, index), kind=kind, query=query)
        for index, query in enumerate(plan.search_queries)
        for kind in _SOURCE_KINDS[query.source]
    ]
    analysis_steps = [
        AnalysisStep(id=analysis_step_id(index), analysis=analysis)
        for index, analysis in enumerate(plan.required_analyses)
    ]
    return PlannedSteps(plan_id=PLAN_ID, search_steps=search_steps, analysis_steps=analysis_steps)


def expand_gap_queries(queries: list[SearchQuerySpec]) -> list[SearchStep]:
    """Second-pass queries become one web step each, numbered by position."""
    return [
        SearchStep(id=gap_search_step_id(index), kind=StepKind.WEB, query=query)
        for index, query in enumerate(queries)
    ]
