"""Structured analysis of gathered search results."""

import json

from pydantic_ai import Agent

from deep_research.events import ProgressKind
from deep_research.exceptions import AnalysisGenerationError, CollaboratorTimeoutError, GenerationError
from deep_research.generation import generate_structured
from deep_research.logging import get_logger
from deep_research.models import AnalysisResult, AnalysisStep, AnalysisStepOutput, SearchResult, SearchStepOutput
from deep_research.progress import ProgressEmitter
from deep_research.search import dedupe_by_domain_and_url
from deep_research.validation import check_analysis

log = get_logger("deep_research.analysis")


def merge_results(outputs: list[SearchStepOutput]) -> list[SearchResult]:
    """Flatten step outputs into one result list, deduplicated by domain and URL."""
    return dedupe_by_domain_and_url([result for output in outputs for result in output.results])


def build_analysis_prompt(step: AnalysisStep, results: list[SearchResult]) -> str:
    sources = json.dumps([result.model_dump(mode="json") for result in results], indent=2)
    return (
        f"Perform this analysis of the search results: {step.analysis.type}\n"
        f"Description: {step.analysis.description}\n\n"
        f"Search results:\n{sources}\n\n"
        "Base every finding on the search results and cite their URLs as evidence."
    )


class AnalysisEngine:
    """Runs one planned analysis over the merged search results."""

    def __init__(
        self,
        agent: Agent[None, AnalysisResult],
        emitter: ProgressEmitter,
        *,
        timeout: float | None = None,
    ) -> None:
        self.agent = agent
        self.emitter = emitter
        self.timeout = timeout

    async def analyze(self, step: AnalysisStep, results: list[SearchStepOutput]) -> AnalysisStepOutput:
        """Analyze the deduplicated union of ``results`` for ``step``.

        Raises:
            AnalysisGenerationError: When the analysis fails after its repair
                attempt. The completed card carries the error before this is raised.
        """
        analysis = step.analysis
        merged = merge_results(results)
        title = f"Analysis: {analysis.type}"
        await self.emitter.running(step.id, ProgressKind.ANALYSIS, title, f"Analyzing {analysis.type}...")

        try:
            result = await generate_structured(
                self.agent,
                build_analysis_prompt(step, merged),
                check=check_analysis,
                timeout=self.timeout,
            )
        except (GenerationError, CollaboratorTimeoutError) as e:
            log.warning("analysis.step.failed", step_id=step.id, analysis=analysis.type, error=str(e))
            await self.emitter.completed(
                step.id,
                ProgressKind.ANALYSIS,
                title,
                f"Analysis failed: {analysis.type}",
                payload={"error": str(e)},
                count_step=True,
            )
            raise AnalysisGenerationError(step_id=step.id, reason=str(e)) from e

        log.info("analysis.step.completed", step_id=step.id, findings=len(result.findings), sources=len(merged))
        await self.emitter.completed(
            step.id,
            ProgressKind.ANALYSIS,
            title,
            f"Completed analysis: {analysis.type}",
            payload=result.model_dump(mode="json"),
            count_step=True,
        )
        return AnalysisStepOutput(step_id=step.id, analysis=analysis, result=result)
