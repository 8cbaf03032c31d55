"""Command line runner: ``python -m deep_research "topic" --depth advanced``."""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from deep_research.events import ProgressEvent, ProgressStatus
from deep_research.exceptions import ResearchPipelineError
from deep_research.logging import configure_structlog, get_logger
from deep_research.models import ResearchDepth, ResearchResult
from deep_research.workflow import run_research_workflow

log = get_logger("deep_research.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deep_research", description="Run a deep research pipeline on a topic.")
    parser.add_argument("topic", help="Research topic")
    parser.add_argument(
        "--depth",
        choices=[depth.value for depth in ResearchDepth],
        default=ResearchDepth.BASIC.value,
        help="advanced adds gap analysis and a second research pass",
    )
    parser.add_argument(
        "--domain",
        action="append",
        dest="domains",
        metavar="DOMAIN",
        help="Preferred domain; repeat for several. Switches to focused planning.",
    )
    parser.add_argument("--no-report", action="store_true", help="Skip the streamed final report")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON instead of a summary")
    parser.add_argument("--output-dir", type=Path, help="Also save the result and report to this directory")
    return parser


class ProgressPrinter:
    """Prints one line whenever a card changes status."""

    def __init__(self) -> None:
        self._seen: dict[str, ProgressStatus] = {}

    async def __call__(self, event: ProgressEvent) -> None:
        if self._seen.get(event.id) == event.status:
            return
        self._seen[event.id] = event.status
        marker = "..." if event.status == ProgressStatus.RUNNING else "ok "
        if event.payload and "error" in event.payload:
            marker = "ERR"
        counts = ""
        if event.total_steps is not None:
            counts = f" ({event.completed_steps}/{event.total_steps})"
        print(f"  [{marker}] {event.title}: {event.message}{counts}", file=sys.stderr)


def format_summary(result: ResearchResult) -> str:
    lines = [
        f"# {result.topic}",
        "",
        f"Depth: {result.depth.value} | Steps: {result.completed_steps}/{result.total_steps} "
        f"| Duration: {result.timings.total_ms}ms",
        "",
        f"Searches: {len(result.results)} ({sum(1 for output in result.results if output.error)} failed)",
        f"Analyses: {len(result.analyses)} ({sum(1 for output in result.analyses if output.error)} failed)",
    ]
    if result.gap_analysis is not None:
        lines.append(f"Knowledge gaps: {len(result.gap_analysis.knowledge_gaps)}")
    if result.synthesis is not None:
        lines.extend(["", "## Key findings", ""])
        for finding in result.synthesis.key_findings:
            lines.append(f"- {finding.finding} (confidence {finding.confidence:.2f})")
    if result.report:
        lines.extend(["", "## Report", "", result.report])
    return "\n".join(lines)


def save_outputs(result: ResearchResult, output_dir: Path) -> list[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    result_file = output_dir / f"research_{timestamp}.json"
    result_file.write_text(result.model_dump_json(indent=2))
    saved = [result_file]
    if result.report:
        report_file = output_dir / f"report_{timestamp}.md"
        report_file.write_text(result.report)
        saved.append(report_file)
    for path in saved:
        log.info("cli.output.saved", path=str(path))
    return saved


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    configure_structlog(testing=True)
    args = build_parser().parse_args(argv)

    try:
        result = asyncio.run(
            run_research_workflow(
                args.topic,
                ResearchDepth(args.depth),
                event_callback=ProgressPrinter(),
                write_report=not args.no_report,
                preferred_domains=args.domains,
            )
        )
    except ResearchPipelineError as e:
        log.error("cli.research.failed", error=str(e), error_type=type(e).__name__)
        print(f"Research failed: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2))
    else:
        print(format_summary(result))
    if args.output_dir:
        for path in save_outputs(result, args.output_dir):
            print(f"Saved {path}", file=sys.stderr)
    return 0
