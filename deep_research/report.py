"""Streamed free-form research report."""

import json

from pydantic_ai import Agent

from deep_research.events import ProgressKind
from deep_research.exceptions import CollaboratorTimeoutError, ReportGenerationError, ResearchCancelledError
from deep_research.logging import get_logger
from deep_research.models import ResearchPlan, SearchStepOutput, Synthesis
from deep_research.progress import ProgressEmitter
from deep_research.search import with_timeout

log = get_logger("deep_research.report")

REPORT_CARD_ID = "research-report"
REPORT_CARD_TITLE = "Research Report"


def build_report_prompt(
    topic: str,
    plan: ResearchPlan,
    results: list[SearchStepOutput],
    synthesis: Synthesis | None,
) -> str:
    return (
        f"Write a research report on: {topic}\n\n"
        f"Research plan: {plan.model_dump_json()}\n"
        f"Search results: {json.dumps([output.model_dump(mode='json') for output in results])}\n"
        f"Synthesis: {synthesis.model_dump_json() if synthesis else 'null'}"
    )


class ReportWriter:
    """Streams the report agent's text as updates of a single report card.

    Running updates carry only the new chunk under ``delta`` with the running
    ``length``. The completed card carries the full ``text``.
    """

    def __init__(self, agent: Agent[None, str], emitter: ProgressEmitter, *, timeout: float | None = None) -> None:
        self.agent = agent
        self.emitter = emitter
        self.timeout = timeout

    async def _stream(self, prompt: str) -> str:
        text = ""
        async with self.agent.run_stream(prompt) as result:
            async for delta in result.stream_text(delta=True):
                text += delta
                await self.emitter.running(
                    REPORT_CARD_ID,
                    ProgressKind.REPORT,
                    REPORT_CARD_TITLE,
                    "Writing research report...",
                    overwrite=True,
                    payload={"delta": delta, "length": len(text)},
                )
        return text

    async def write(
        self,
        topic: str,
        plan: ResearchPlan,
        results: list[SearchStepOutput],
        synthesis: Synthesis | None = None,
    ) -> str:
        """Stream the report and return its full text.

        Raises:
            ReportGenerationError: When streaming fails or times out.
        """
        prompt = build_report_prompt(topic, plan, results, synthesis)
        try:
            text = await with_timeout(self._stream(prompt), self.timeout, operation="report generation")
        except ResearchCancelledError:
            raise
        except Exception as e:
            reason = str(e) if isinstance(e, CollaboratorTimeoutError) else f"{type(e).__name__}: {e}"
            log.warning("report.failed", error=reason)
            await self.emitter.completed(
                REPORT_CARD_ID,
                ProgressKind.REPORT,
                REPORT_CARD_TITLE,
                "Research report failed",
                payload={"error": reason},
            )
            raise ReportGenerationError(reason=reason) from e

        log.info("report.completed", characters=len(text))
        await self.emitter.completed(
            REPORT_CARD_ID,
            ProgressKind.REPORT,
            REPORT_CARD_TITLE,
            "Research report complete",
            payload={"text": text},
        )
        return text
