"""Research pipeline: plan, search, analyze, find gaps, research them, synthesize, report."""

import asyncio
from time import perf_counter
from uuid import uuid4

from pydantic_ai import Agent

from deep_research.agents import (
    get_analysis_agent,
    get_gap_agent,
    get_plan_agent,
    get_report_agent,
    get_synthesis_agent,
)
from deep_research.analysis import AnalysisEngine
from deep_research.config import Settings, get_settings
from deep_research.events import ProgressKind
from deep_research.exceptions import (
    AnalysisGenerationError,
    GapAnalysisError,
    ReportGenerationError,
    ResearchCancelledError,
    SearchStepError,
    SynthesisError,
)
from deep_research.gaps import GapAnalyzer
from deep_research.logging import bind_run_context, get_logger
from deep_research.models import (
    AnalysisResult,
    AnalysisStepOutput,
    GapAnalysis,
    PhaseTimings,
    ResearchDepth,
    ResearchPlan,
    ResearchResult,
    SearchQuerySpec,
    SearchSource,
    SearchStep,
    SearchStepOutput,
    Synthesis,
)
from deep_research.planner import BROAD_POLICY, FOCUSED_POLICY, PlanGenerator, PlanningPolicy
from deep_research.progress import EventCallback, PipelineState, ProgressEmitter
from deep_research.report import ReportWriter
from deep_research.search import TavilySearchClient, WebSearchClient
from deep_research.search_executor import SearchExecutor
from deep_research.steps import PLAN_ID, expand_gap_queries, expand_plan
from deep_research.synthesis import Synthesizer

log = get_logger("deep_research.workflow")

GAP_QUERY_PRIORITY = 3
SOURCE_ROTATION = (SearchSource.WEB, SearchSource.ALL)


def build_gap_queries(gap_analysis: GapAnalysis) -> list[SearchQuerySpec]:
    """Flatten knowledge gaps into second-pass queries.

    The first query of each gap searches ``all`` sources; later ones rotate
    through ``SOURCE_ROTATION``.
    """
    queries = []
    for gap in gap_analysis.knowledge_gaps:
        for index, query in enumerate(q for q in gap.additional_queries if q.strip()):
            if index == 0:
                source = SearchSource.ALL
            else:
                source = SOURCE_ROTATION[index % (len(SOURCE_ROTATION) - 1)]
            queries.append(
                SearchQuerySpec(query=query, rationale=gap.reason, source=source, priority=GAP_QUERY_PRIORITY)
            )
    return queries


def _elapsed_ms(start: float) -> int:
    return int((perf_counter() - start) * 1000)


class PipelineController:
    """Drives one research run through its states and owns its accumulated results."""

    def __init__(
        self,
        *,
        emitter: ProgressEmitter,
        planner: PlanGenerator,
        search_executor: SearchExecutor,
        analysis_engine: AnalysisEngine,
        gap_analyzer: GapAnalyzer,
        synthesizer: Synthesizer,
        report_writer: ReportWriter | None = None,
        exclude_domains: list[str] | None = None,
    ) -> None:
        self.emitter = emitter
        self.planner = planner
        self.search_executor = search_executor
        self.analysis_engine = analysis_engine
        self.gap_analyzer = gap_analyzer
        self.synthesizer = synthesizer
        self.report_writer = report_writer
        self.exclude_domains = exclude_domains
        self.results: list[SearchStepOutput] = []
        self.analyses: list[AnalysisStepOutput] = []

    def _check_cancelled(self) -> None:
        self.emitter.check_cancelled()

    async def run(
        self,
        topic: str,
        depth: ResearchDepth = ResearchDepth.BASIC,
        *,
        policy: PlanningPolicy | None = None,
        preferred_domains: list[str] | None = None,
    ) -> ResearchResult:
        """Execute the full pipeline for ``topic``.

        Local failures (a search, an analysis, gap analysis, synthesis, the
        report) are recorded and the run continues. Anything else ends the run
        with a failed terminal progress event.

        Raises:
            PlanGenerationError: When no plan can be produced.
            ResearchCancelledError: When the emitter's cancel event is set.
                No event is emitted after that point.
        """
        try:
            return await self._run(topic, depth, policy=policy, preferred_domains=preferred_domains)
        except ResearchCancelledError as e:
            log.info("workflow.cancelled", state=e.state)
            raise
        except Exception as e:
            log.error("workflow.failed", state=self.emitter.state.value, error=str(e), error_type=type(e).__name__)
            if not self.emitter.closed:
                await self.emitter.fail(e)
            raise

    async def _run(
        self,
        topic: str,
        depth: ResearchDepth,
        *,
        policy: PlanningPolicy | None,
        preferred_domains: list[str] | None,
    ) -> ResearchResult:
        policy = policy or (FOCUSED_POLICY if preferred_domains else BROAD_POLICY)
        include_domains = preferred_domains or None
        timings = PhaseTimings()
        workflow_start = perf_counter()
        log.info("workflow.started", policy=policy.name)

        # Planning
        phase_start = perf_counter()
        await self.emitter.transition(PipelineState.PLANNING)
        await self.emitter.running(PLAN_ID, ProgressKind.PLAN, "Research Plan", "Creating research plan...")
        self._check_cancelled()
        plan = await self.planner.generate(topic, depth, policy=policy, preferred_domains=preferred_domains)
        self._check_cancelled()
        steps = expand_plan(plan)
        self.emitter.add_steps(steps.total)
        await self.emitter.completed(
            PLAN_ID,
            ProgressKind.PLAN,
            "Research Plan",
            "Research plan created",
            with_counts=True,
            payload={"plan": plan.model_dump(mode="json"), "total_steps": steps.total},
        )
        timings.planning_ms = _elapsed_ms(phase_start)
        log.info("workflow.planning.completed", duration_ms=timings.planning_ms, total_steps=steps.total)

        # Searching
        phase_start = perf_counter()
        await self.emitter.transition(PipelineState.SEARCHING)
        for step in steps.search_steps:
            self._check_cancelled()
            self.results.append(await self._search(step, depth, include_domains))
        timings.searching_ms = _elapsed_ms(phase_start)

        # Analyzing
        phase_start = perf_counter()
        await self.emitter.transition(PipelineState.ANALYZING)
        for analysis_step in steps.analysis_steps:
            self._check_cancelled()
            try:
                output = await self.analysis_engine.analyze(analysis_step, self.results)
            except AnalysisGenerationError as e:
                log.warning("workflow.analysis.failed", step_id=analysis_step.id, error=e.reason)
                output = AnalysisStepOutput(
                    step_id=analysis_step.id, analysis=analysis_step.analysis, result=AnalysisResult(), error=e.reason
                )
            self.analyses.append(output)
        timings.analyzing_ms = _elapsed_ms(phase_start)

        gap_analysis: GapAnalysis | None = None
        synthesis: Synthesis | None = None
        if depth == ResearchDepth.ADVANCED:
            # Gap analysis
            phase_start = perf_counter()
            self.emitter.add_steps(1)
            await self.emitter.transition(PipelineState.GAP_ANALYSIS)
            self._check_cancelled()
            try:
                gap_analysis = await self.gap_analyzer.analyze(self.results, self.analyses)
            except GapAnalysisError as e:
                log.warning("workflow.gap_analysis.failed", error=e.reason)
            timings.gap_analysis_ms = _elapsed_ms(phase_start)

            if gap_analysis is not None and gap_analysis.knowledge_gaps:
                synthesis = await self._second_pass(gap_analysis, depth, include_domains, timings)

        # Report
        report: str | None = None
        if self.report_writer is not None:
            phase_start = perf_counter()
            await self.emitter.transition(PipelineState.REPORT_GENERATION)
            self._check_cancelled()
            try:
                report = await self.report_writer.write(topic, plan, self.results, synthesis)
            except ReportGenerationError as e:
                log.warning("workflow.report.failed", error=e.reason)
            timings.report_ms = _elapsed_ms(phase_start)

        await self.emitter.finish(
            f"Research complete: {self.emitter.completed_steps}/{self.emitter.total_steps} steps finished"
        )
        timings.total_ms = _elapsed_ms(workflow_start)
        log.info("workflow.completed", total_ms=timings.total_ms, **self.emitter.counts())

        return ResearchResult(
            topic=topic,
            depth=depth,
            plan=plan,
            results=self.results,
            analyses=self.analyses,
            gap_analysis=gap_analysis,
            synthesis=synthesis,
            report=report,
            completed_steps=self.emitter.completed_steps,
            total_steps=self.emitter.total_steps,
            timings=timings,
        )

    async def _search(
        self,
        step: SearchStep,
        depth: ResearchDepth,
        include_domains: list[str] | None,
        *,
        counted: bool = True,
    ) -> SearchStepOutput:
        try:
            return await self.search_executor.execute(
                step,
                depth=depth,
                include_domains=include_domains,
                exclude_domains=self.exclude_domains,
                counted=counted,
            )
        except SearchStepError as e:
            log.warning("workflow.search.failed", step_id=step.id, error=e.reason)
            return SearchStepOutput(step_id=step.id, kind=step.kind, query=step.query, error=e.reason)

    async def _second_pass(
        self,
        gap_analysis: GapAnalysis,
        depth: ResearchDepth,
        include_domains: list[str] | None,
        timings: PhaseTimings,
    ) -> Synthesis | None:
        phase_start = perf_counter()
        await self.emitter.transition(PipelineState.DEEP_SEARCHING)
        queries = build_gap_queries(gap_analysis)
        for step in expand_gap_queries(queries):
            self._check_cancelled()
            self.results.append(await self._search(step, depth, include_domains, counted=False))
        timings.deep_search_ms = _elapsed_ms(phase_start)
        log.info("workflow.deep_search.completed", queries=len(queries), duration_ms=timings.deep_search_ms)

        phase_start = perf_counter()
        self.emitter.add_steps(1)
        await self.emitter.transition(PipelineState.SYNTHESIZING)
        self._check_cancelled()
        synthesis = None
        try:
            synthesis = await self.synthesizer.synthesize(self.results, gap_analysis, queries)
        except SynthesisError as e:
            log.warning("workflow.synthesis.failed", error=e.reason)
        timings.synthesis_ms = _elapsed_ms(phase_start)
        return synthesis


async def run_research_workflow(
    topic: str,
    depth: ResearchDepth = ResearchDepth.BASIC,
    *,
    event_callback: EventCallback | None = None,
    plan_agent: Agent[None, ResearchPlan] | None = None,
    analysis_agent: Agent[None, AnalysisResult] | None = None,
    gap_agent: Agent[None, GapAnalysis] | None = None,
    synthesis_agent: Agent[None, Synthesis] | None = None,
    report_agent: Agent[None, str] | None = None,
    search_client: WebSearchClient | None = None,
    cancel_event: asyncio.Event | None = None,
    write_report: bool = True,
    policy: PlanningPolicy | None = None,
    preferred_domains: list[str] | None = None,
    settings: Settings | None = None,
) -> ResearchResult:
    """Execute a deep research run.

    Args:
        topic: Research topic to investigate.
        depth: ``advanced`` enables gap analysis and the second research pass.
        event_callback: Async callback receiving every ProgressEvent, in order.
        plan_agent: Override default planning agent (for testing).
        analysis_agent: Override default analysis agent (for testing).
        gap_agent: Override default gap analysis agent (for testing).
        synthesis_agent: Override default synthesis agent (for testing).
        report_agent: Override default report agent (for testing).
        search_client: Override the Tavily search client (for testing).
        cancel_event: Set to stop the run. No event follows the cancellation.
        write_report: Stream a free-form report at the end of the run.
        policy: Planning policy. Defaults to focused when domains are preferred.
        preferred_domains: Domains searches are restricted to.
        settings: Override environment settings.

    Returns:
        ResearchResult with every step output, step counts and timings.

    Raises:
        PlanGenerationError: When plan creation fails.
        ResearchCancelledError: When the run is cancelled through ``cancel_event``.
    """
    settings = settings or get_settings()
    run_id = str(uuid4())[:8]
    bind_run_context(run_id, topic=topic, depth=depth.value)

    domains = preferred_domains if preferred_domains is not None else list(settings.include_domains)
    emitter = ProgressEmitter(event_callback, cancel_event=cancel_event)
    timeout = settings.generation_timeout

    # Resolve collaborators (use defaults if not injected)
    _search_client = search_client or TavilySearchClient(settings.tavily_api_key, timeout=settings.search_timeout)
    report_writer = None
    if write_report:
        report_writer = ReportWriter(report_agent or get_report_agent(), emitter, timeout=timeout)

    controller = PipelineController(
        emitter=emitter,
        planner=PlanGenerator(plan_agent or get_plan_agent(), timeout=timeout),
        search_executor=SearchExecutor(_search_client, emitter),
        analysis_engine=AnalysisEngine(analysis_agent or get_analysis_agent(), emitter, timeout=timeout),
        gap_analyzer=GapAnalyzer(gap_agent or get_gap_agent(), emitter, timeout=timeout),
        synthesizer=Synthesizer(synthesis_agent or get_synthesis_agent(), emitter, timeout=timeout),
        report_writer=report_writer,
        exclude_domains=list(settings.exclude_domains) or None,
    )
    return await controller.run(topic, depth, policy=policy, preferred_domains=domains or None)
