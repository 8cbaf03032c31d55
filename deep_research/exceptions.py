"""Domain-specific exceptions for the research pipeline."""


class ResearchPipelineError(Exception):
    """Base exception for research pipeline errors."""


class GenerationError(ResearchPipelineError):
    """Raised when structured generation fails or violates its output contract."""

    def __init__(self, agent_name: str, reason: str) -> None:
        self.agent_name = agent_name
        self.reason = reason
        super().__init__(f"Generation by '{agent_name}' failed: {reason}")


class CollaboratorTimeoutError(ResearchPipelineError):
    """Raised when a search or generation call exceeds its timeout."""

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:g}s")


class PlanGenerationError(ResearchPipelineError):
    """Raised when a research plan cannot be produced. Fatal to the run."""

    def __init__(self, topic: str, reason: str) -> None:
        self.topic = topic
        self.reason = reason
        super().__init__(f"Failed to create research plan for '{topic}': {reason}")


class SearchStepError(ResearchPipelineError):
    """Raised when a single search step fails or times out."""

    def __init__(self, step_id: str, query: str, reason: str) -> None:
        self.step_id = step_id
        self.query = query
        self.reason = reason
        super().__init__(f"Search step '{step_id}' for '{query}' failed: {reason}")


class AnalysisGenerationError(ResearchPipelineError):
    """Raised when an analysis step still fails after its repair attempt."""

    def __init__(self, step_id: str, reason: str) -> None:
        self.step_id = step_id
        self.reason = reason
        super().__init__(f"Analysis step '{step_id}' failed: {reason}")


class GapAnalysisError(ResearchPipelineError):
    """Raised when gap analysis fails."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to analyze research gaps: {reason}")


class SynthesisError(ResearchPipelineError):
    """Raised when final synthesis fails."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to synthesize research findings: {reason}")


class ReportGenerationError(ResearchPipelineError):
    """Raised when the streamed research report cannot be produced."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to generate research report: {reason}")


class ResearchCancelledError(ResearchPipelineError):
    """Raised when a consumer cancels the run between steps."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"Research run cancelled during '{state}'")
