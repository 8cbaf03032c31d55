"""Research plan generation."""

from dataclasses import dataclass
from datetime import date

from pydantic_ai import Agent

from deep_research.exceptions import CollaboratorTimeoutError, GenerationError, PlanGenerationError
from deep_research.generation import generate_structured
from deep_research.logging import get_logger
from deep_research.models import ResearchDepth, ResearchPlan, SearchSource
from deep_research.steps import expand_plan
from deep_research.validation import check_plan

log = get_logger("deep_research.planner")


@dataclass(frozen=True)
class PlanningPolicy:
    """Shape constraints a caller places on generated plans.

    ``max_total_steps`` is a soft ceiling: it is stated in the prompt and
    logged when exceeded, never enforced. Queries planned for a source outside
    ``allowed_sources`` are searched on the web.
    """

    name: str
    allowed_sources: tuple[SearchSource, ...]
    query_range: tuple[int, int]
    analysis_range: tuple[int, int]
    max_total_steps: int
    priority_band: tuple[int, int] = (1, 5)


BROAD_POLICY = PlanningPolicy(
    name="broad",
    allowed_sources=(SearchSource.WEB, SearchSource.ACADEMIC, SearchSource.BOTH),
    query_range=(4, 12),
    analysis_range=(2, 8),
    max_total_steps=20,
)

FOCUSED_POLICY = PlanningPolicy(
    name="focused",
    allowed_sources=(SearchSource.WEB, SearchSource.ALL),
    query_range=(4, 8),
    analysis_range=(2, 4),
    max_total_steps=10,
    priority_band=(2, 4),
)


def restrict_sources(plan: ResearchPlan, allowed: tuple[SearchSource, ...]) -> ResearchPlan:
    """Send queries planned for a source outside ``allowed`` to the web instead."""
    fallback = SearchSource.WEB if SearchSource.WEB in allowed else allowed[0]
    queries = [
        query if query.source in allowed else query.model_copy(update={"source": fallback})
        for query in plan.search_queries
    ]
    return plan.model_copy(update={"search_queries": queries})


def clamp_priorities(plan: ResearchPlan, band: tuple[int, int]) -> ResearchPlan:
    """Move in-range priorities into ``band``. Returns a new plan."""
    low, high = band
    queries = [query.model_copy(update={"priority": min(max(query.priority, low), high)}) for query in plan.search_queries]
    return plan.model_copy(update={"search_queries": queries})


def build_plan_prompt(
    topic: str,
    depth: ResearchDepth,
    policy: PlanningPolicy,
    preferred_domains: list[str] | None = None,
    today: date | None = None,
) -> str:
    sources = ", ".join(f'"{source.value}"' for source in policy.allowed_sources)
    low, high = policy.priority_band
    lines = [
        f'Create a focused research plan for the topic: "{topic}".',
        f"Research depth: {depth.value}.",
        f"Today's date: {(today or date.today()).strftime('%A, %B %d, %Y')}.",
        "Keep the plan concise but comprehensive, with:",
        f"- {policy.query_range[0]}-{policy.query_range[1]} targeted search queries",
        f"- {policy.analysis_range[0]}-{policy.analysis_range[1]} key analyses to perform",
        "- Prioritize the most important aspects to investigate",
        f"Available sources: {sources}.",
        f"Use whole numbers between {low} and {high} in the priority field.",
        "Consider different angles and potential controversies, but maintain focus on the core aspects.",
        f"Ensure the total number of steps (searches + analyses) does not exceed {policy.max_total_steps}.",
    ]
    if preferred_domains:
        lines.append(f"Prefer these sources whenever possible: {', '.join(preferred_domains)}.")
    return "\n".join(lines)


class PlanGenerator:
    """Produces a validated ResearchPlan for a topic."""

    def __init__(self, agent: Agent[None, ResearchPlan], *, timeout: float | None = None) -> None:
        self.agent = agent
        self.timeout = timeout

    async def generate(
        self,
        topic: str,
        depth: ResearchDepth,
        *,
        policy: PlanningPolicy = BROAD_POLICY,
        preferred_domains: list[str] | None = None,
    ) -> ResearchPlan:
        """Generate a plan for ``topic``.

        Raises:
            PlanGenerationError: When no valid plan is produced after one repair attempt.
        """
        prompt = build_plan_prompt(topic, depth, policy, preferred_domains)
        try:
            plan = await generate_structured(
                self.agent,
                prompt,
                check=check_plan,
                timeout=self.timeout,
            )
        except (GenerationError, CollaboratorTimeoutError) as e:
            raise PlanGenerationError(topic=topic, reason=str(e)) from e

        remapped = sum(query.source not in policy.allowed_sources for query in plan.search_queries)
        if remapped:
            log.info("plan.sources_remapped", policy=policy.name, queries=remapped)
            plan = restrict_sources(plan, policy.allowed_sources)
        plan = clamp_priorities(plan, policy.priority_band)
        total_steps = expand_plan(plan).total
        if total_steps > policy.max_total_steps:
            log.warning(
                "plan.step_ceiling_exceeded",
                policy=policy.name,
                total_steps=total_steps,
                ceiling=policy.max_total_steps,
            )
        log.info(
            "plan.generated",
            policy=policy.name,
            queries=len(plan.search_queries),
            analyses=len(plan.required_analyses),
            total_steps=total_steps,
        )
        return plan
