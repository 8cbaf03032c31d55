"""Gap analysis over completed research."""

import json

from pydantic_ai import Agent

from deep_research.events import ProgressKind
from deep_research.exceptions import CollaboratorTimeoutError, GapAnalysisError, GenerationError
from deep_research.generation import generate_structured
from deep_research.logging import get_logger
from deep_research.models import AnalysisStepOutput, GapAnalysis, SearchStepOutput
from deep_research.progress import ProgressEmitter
from deep_research.validation import SEVERITY_RANGE, check_gap_analysis

log = get_logger("deep_research.gaps")

GAP_CARD_ID = "gap-analysis"
GAP_CARD_TITLE = "Research Gaps and Limitations"


def limitation_confidence(severity: int) -> float:
    """Confidence shown for a limitation: ``(6 - severity) / 5``.

    Severity 2 maps to 0.8, 6 to 0.0 and 10 to -0.8. The value is not clamped.

    Raises:
        ValueError: When ``severity`` is outside [2, 10].
    """
    low, high = SEVERITY_RANGE
    if not low <= severity <= high:
        raise ValueError(f"severity must be between {low} and {high}, got {severity}")
    return (6 - severity) / 5


def build_gap_prompt(
    results: list[SearchStepOutput],
    analyses: list[AnalysisStepOutput],
    previous: GapAnalysis | None = None,
) -> str:
    research = json.dumps([output.model_dump(mode="json") for output in results])
    findings = json.dumps(
        [
            {
                "type": output.analysis.type,
                "description": output.analysis.description,
                "importance": output.analysis.importance,
                "findings": [finding.model_dump(mode="json") for finding in output.result.findings],
            }
            for output in analyses
        ]
    )
    prompt = (
        "Analyze the research results and identify limitations, knowledge gaps, and recommended follow-up actions.\n"
        "Consider:\n"
        "- Quality and reliability of sources\n"
        "- Missing alignment to the main topic or data\n"
        "- Areas needing deeper investigation\n"
        "- Severity and priority between 2 and 10, kept reasonable in between\n\n"
        "additional_queries will be run as standalone web searches.\n\n"
        f"Research results: {research}\n"
        f"Analysis findings: {findings}"
    )
    if previous is not None:
        prompt += f"\nPrevious gap analysis: {previous.model_dump_json()}"
    return prompt


def gap_card_payload(gap_analysis: GapAnalysis) -> dict:
    return {
        "findings": [
            {
                "insight": limitation.description,
                "evidence": limitation.potential_solutions,
                "confidence": limitation_confidence(limitation.severity),
            }
            for limitation in gap_analysis.limitations
        ],
        "gaps": [gap.model_dump(mode="json") for gap in gap_analysis.knowledge_gaps],
        "recommendations": [followup.model_dump(mode="json") for followup in gap_analysis.recommended_followup],
    }


class GapAnalyzer:
    def __init__(
        self,
        agent: Agent[None, GapAnalysis],
        emitter: ProgressEmitter,
        *,
        timeout: float | None = None,
    ) -> None:
        self.agent = agent
        self.emitter = emitter
        self.timeout = timeout

    async def analyze(
        self,
        results: list[SearchStepOutput],
        analyses: list[AnalysisStepOutput],
        *,
        previous: GapAnalysis | None = None,
    ) -> GapAnalysis:
        """Identify limitations, knowledge gaps and follow-ups.

        Raises:
            GapAnalysisError: When no valid gap analysis is produced.
        """
        await self.emitter.running(
            GAP_CARD_ID, ProgressKind.ANALYSIS, GAP_CARD_TITLE, "Analyzing research gaps and limitations..."
        )
        try:
            gap_analysis = await generate_structured(
                self.agent,
                build_gap_prompt(results, analyses, previous),
                check=check_gap_analysis,
                timeout=self.timeout,
            )
        except (GenerationError, CollaboratorTimeoutError) as e:
            log.warning("gaps.failed", error=str(e))
            await self.emitter.completed(
                GAP_CARD_ID,
                ProgressKind.ANALYSIS,
                GAP_CARD_TITLE,
                "Gap analysis failed",
                payload={"error": str(e)},
                count_step=True,
            )
            raise GapAnalysisError(reason=str(e)) from e

        log.info(
            "gaps.completed",
            limitations=len(gap_analysis.limitations),
            knowledge_gaps=len(gap_analysis.knowledge_gaps),
            followups=len(gap_analysis.recommended_followup),
        )
        await self.emitter.completed(
            GAP_CARD_ID,
            ProgressKind.ANALYSIS,
            GAP_CARD_TITLE,
            f"Identified {len(gap_analysis.limitations)} limitations "
            f"and {len(gap_analysis.knowledge_gaps)} knowledge gaps",
            payload=gap_card_payload(gap_analysis),
            count_step=True,
        )
        return gap_analysis
