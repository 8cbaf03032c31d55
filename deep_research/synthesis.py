"""Final synthesis after a second research pass."""

import json

from pydantic_ai import Agent

from deep_research.events import ProgressKind
from deep_research.exceptions import CollaboratorTimeoutError, GenerationError, SynthesisError
from deep_research.generation import generate_structured
from deep_research.logging import get_logger
from deep_research.models import GapAnalysis, SearchQuerySpec, SearchStepOutput, Synthesis
from deep_research.progress import ProgressEmitter
from deep_research.validation import check_synthesis

log = get_logger("deep_research.synthesis")

SYNTHESIS_CARD_ID = "final-synthesis"
SYNTHESIS_CARD_TITLE = "Final Research Synthesis"


def build_synthesis_prompt(
    results: list[SearchStepOutput],
    gap_analysis: GapAnalysis,
    additional_queries: list[SearchQuerySpec],
) -> str:
    return (
        "Synthesize all research findings, including gap analysis and follow-up research.\n"
        "Highlight key conclusions and remaining uncertainties.\n"
        "Stick to the types of the schema, do not add any other fields or types.\n\n"
        f"Original results: {json.dumps([output.model_dump(mode='json') for output in results])}\n"
        f"Gap analysis: {gap_analysis.model_dump_json()}\n"
        f"Additional findings: {json.dumps([query.model_dump(mode='json') for query in additional_queries])}\n"
        "Confidence scores must be between 0 and 1."
    )


class Synthesizer:
    def __init__(
        self,
        agent: Agent[None, Synthesis],
        emitter: ProgressEmitter,
        *,
        timeout: float | None = None,
    ) -> None:
        self.agent = agent
        self.emitter = emitter
        self.timeout = timeout

    async def synthesize(
        self,
        results: list[SearchStepOutput],
        gap_analysis: GapAnalysis,
        additional_queries: list[SearchQuerySpec],
    ) -> Synthesis:
        """Combine every search result with the gap analysis into key findings.

        Raises:
            SynthesisError: When no valid synthesis is produced.
        """
        await self.emitter.running(
            SYNTHESIS_CARD_ID, ProgressKind.ANALYSIS, SYNTHESIS_CARD_TITLE, "Synthesizing all research findings..."
        )
        try:
            synthesis = await generate_structured(
                self.agent,
                build_synthesis_prompt(results, gap_analysis, additional_queries),
                check=check_synthesis,
                timeout=self.timeout,
            )
        except (GenerationError, CollaboratorTimeoutError) as e:
            log.warning("synthesis.failed", error=str(e))
            await self.emitter.completed(
                SYNTHESIS_CARD_ID,
                ProgressKind.ANALYSIS,
                SYNTHESIS_CARD_TITLE,
                "Synthesis failed",
                payload={"error": str(e)},
                count_step=True,
            )
            raise SynthesisError(reason=str(e)) from e

        log.info("synthesis.completed", key_findings=len(synthesis.key_findings))
        await self.emitter.completed(
            SYNTHESIS_CARD_ID,
            ProgressKind.ANALYSIS,
            SYNTHESIS_CARD_TITLE,
            f"Synthesized {len(synthesis.key_findings)} key findings",
            payload={
                "findings": [
                    {
                        "insight": finding.finding,
                        "evidence": finding.supporting_evidence,
                        "confidence": finding.confidence,
                    }
                    for finding in synthesis.key_findings
                ],
                "uncertainties": synthesis.remaining_uncertainties,
            },
            count_step=True,
        )
        return synthesis
