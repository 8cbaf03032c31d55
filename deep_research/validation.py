"""Range checks applied to every structured generation result.

Schemas already describe these ranges to the model; the checks here run on the
returned value regardless, so a violation is reported rather than propagated.
"""

import math

from deep_research.models import AnalysisResult, GapAnalysis, ResearchPlan, Synthesis

PRIORITY_RANGE = (1, 5)
IMPORTANCE_RANGE = (1, 5)
SEVERITY_RANGE = (2, 10)
FOLLOWUP_PRIORITY_RANGE = (2, 10)
CONFIDENCE_RANGE = (0.0, 1.0)


class OutputContractError(ValueError):
    """A generated value is well-formed but outside its contract."""


def _require_range(value: float, bounds: tuple[float, float], what: str) -> None:
    low, high = bounds
    if isinstance(value, float) and not math.isfinite(value):
        raise OutputContractError(f"{what} must be a finite number, got {value}")
    if not low <= value <= high:
        raise OutputContractError(f"{what} must be between {low} and {high}, got {value}")


def check_plan(plan: ResearchPlan) -> ResearchPlan:
    for index, query in enumerate(plan.search_queries):
        if not query.query.strip():
            raise OutputContractError(f"search_queries[{index}].query is empty")
        _require_range(query.priority, PRIORITY_RANGE, f"search_queries[{index}].priority")
    for index, analysis in enumerate(plan.required_analyses):
        _require_range(analysis.importance, IMPORTANCE_RANGE, f"required_analyses[{index}].importance")
    return plan


def check_analysis(result: AnalysisResult) -> AnalysisResult:
    for index, finding in enumerate(result.findings):
        _require_range(finding.confidence, CONFIDENCE_RANGE, f"findings[{index}].confidence")
    return result


def check_gap_analysis(gap_analysis: GapAnalysis) -> GapAnalysis:
    for index, limitation in enumerate(gap_analysis.limitations):
        _require_range(limitation.severity, SEVERITY_RANGE, f"limitations[{index}].severity")
    for index, followup in enumerate(gap_analysis.recommended_followup):
        _require_range(followup.priority, FOLLOWUP_PRIORITY_RANGE, f"recommended_followup[{index}].priority")
    return gap_analysis


def check_synthesis(synthesis: Synthesis) -> Synthesis:
    for index, finding in enumerate(synthesis.key_findings):
        _require_range(finding.confidence, CONFIDENCE_RANGE, f"key_findings[{index}].confidence")
    return synthesis
