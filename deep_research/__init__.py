"""Deep Research - research orchestration pipeline with streamed progress"""

__version__ = "0.1.0"

from deep_research.agents import (
    clear_agent_cache,
    create_analysis_agent,
    create_gap_agent,
    create_plan_agent,
    create_report_agent,
    create_synthesis_agent,
    get_analysis_agent,
    get_gap_agent,
    get_plan_agent,
    get_report_agent,
    get_synthesis_agent,
)
from deep_research.events import ProgressEvent, ProgressKind, ProgressStatus
from deep_research.exceptions import (
    AnalysisGenerationError,
    CollaboratorTimeoutError,
    GapAnalysisError,
    GenerationError,
    PlanGenerationError,
    ReportGenerationError,
    ResearchCancelledError,
    ResearchPipelineError,
    SearchStepError,
    SynthesisError,
)
from deep_research.models import (
    AnalysisResult,
    GapAnalysis,
    MultiSearchResult,
    PhaseTimings,
    ResearchDepth,
    ResearchPlan,
    ResearchResult,
    SearchQuerySpec,
    SearchSource,
    Synthesis,
)
from deep_research.multi_search import run_web_search
from deep_research.planner import BROAD_POLICY, FOCUSED_POLICY, PlanningPolicy
from deep_research.server import get_app
from deep_research.workflow import PipelineController, run_research_workflow

__all__ = [
    # Models
    "ResearchDepth",
    "SearchSource",
    "SearchQuerySpec",
    "ResearchPlan",
    "AnalysisResult",
    "GapAnalysis",
    "Synthesis",
    "PhaseTimings",
    "ResearchResult",
    "MultiSearchResult",
    # Progress
    "ProgressEvent",
    "ProgressKind",
    "ProgressStatus",
    # Agent factories
    "create_plan_agent",
    "create_analysis_agent",
    "create_gap_agent",
    "create_synthesis_agent",
    "create_report_agent",
    # Agent getters
    "get_plan_agent",
    "get_analysis_agent",
    "get_gap_agent",
    "get_synthesis_agent",
    "get_report_agent",
    # Cache management
    "clear_agent_cache",
    # Exceptions
    "ResearchPipelineError",
    "GenerationError",
    "CollaboratorTimeoutError",
    "PlanGenerationError",
    "SearchStepError",
    "AnalysisGenerationError",
    "GapAnalysisError",
    "SynthesisError",
    "ReportGenerationError",
    "ResearchCancelledError",
    # Planning
    "PlanningPolicy",
    "BROAD_POLICY",
    "FOCUSED_POLICY",
    # Workflow
    "PipelineController",
    "run_research_workflow",
    "run_web_search",
    # Server
    "get_app",
]
