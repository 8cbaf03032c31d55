"""Pydantic models for the deep research pipeline."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ResearchDepth(str, Enum):
    """How far a run goes: advanced runs may take a second research pass."""

    BASIC = "basic"
    ADVANCED = "advanced"


class SearchSource(str, Enum):
    """Where a planned query should be searched."""

    WEB = "web"
    ACADEMIC = "academic"
    BOTH = "both"
    ALL = "all"


class StepKind(str, Enum):
    """Kind of an executable step derived from a plan."""

    WEB = "web"
    ACADEMIC = "academic"
    ANALYSIS = "analysis"


# --- Plan ---


class SearchQuerySpec(BaseModel):
    """A single search query in the research plan."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(
        min_length=1,
        description="Search query text to execute",
        examples=["responsive image formats avif webp comparison"],
    )
    rationale: str = Field(
        description="Why this query helps answer the research topic",
        examples=["Compare compression ratios of modern image formats"],
    )
    source: SearchSource = Field(
        description="Source to search: web, academic, both or all",
        examples=["web"],
    )
    priority: int = Field(
        ge=1,
        le=5,
        description="Priority from 1 (highest) to 5 (lowest), whole numbers only",
        examples=[3],
    )


class AnalysisSpec(BaseModel):
    """An analysis to perform over the gathered search results."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(
        min_length=1,
        description="Short name of the analysis",
        examples=["trade-offs"],
    )
    description: str = Field(
        description="What the analysis should examine",
        examples=["Weigh quality loss against byte savings for each format"],
    )
    importance: int = Field(
        ge=1,
        le=5,
        description="Importance from 1 to 5",
        examples=[4],
    )


class ResearchPlan(BaseModel):
    """Structured research plan. Immutable once generated."""

    model_config = ConfigDict(frozen=True)

    search_queries: list[SearchQuerySpec] = Field(
        max_length=12,
        description="Up to 12 targeted search queries",
    )
    required_analyses: list[AnalysisSpec] = Field(
        max_length=8,
        description="Up to 8 analyses to run over the search results",
    )


# --- Steps ---


class SearchStep(BaseModel):
    """One executable search derived from a planned query."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: StepKind
    query: SearchQuerySpec


class AnalysisStep(BaseModel):
    """One executable analysis derived from a planned analysis."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: StepKind = StepKind.ANALYSIS
    analysis: AnalysisSpec


class PlannedSteps(BaseModel):
    """Ordered steps expanded from a plan."""

    model_config = ConfigDict(frozen=True)

    plan_id: str
    search_steps: list[SearchStep]
    analysis_steps: list[AnalysisStep]

    @property
    def total(self) -> int:
        return len(self.search_steps) + len(self.analysis_steps)


# --- Search ---


class SearchResult(BaseModel):
    """A single document returned by a search step."""

    source: str = Field(description="Step kind that produced this document", examples=["web"])
    title: str = Field(description="Document title", examples=["Serve images in modern formats"])
    url: str = Field(description="Document URL", examples=["https://web.dev/articles/serve-images-webp"])
    content: str = Field(default="", description="Extracted text snippet")
    published_date: str | None = Field(default=None, description="Publication date when known")


class SearchStepOutput(BaseModel):
    """Documents produced by one executed search step."""

    step_id: str
    kind: StepKind
    query: SearchQuerySpec
    results: list[SearchResult] = Field(default_factory=list)
    error: str | None = Field(default=None, description="Failure reason when the step failed")


# --- Analysis ---


class Finding(BaseModel):
    """A single analysed insight with its evidence."""

    insight: str
    evidence: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence between 0 and 1")


class AnalysisResult(BaseModel):
    """Structured outcome of one analysis."""

    findings: list[Finding] = Field(default_factory=list)
    implications: list[str] = Field(default_factory=list)
    limitations: list[str] = Field(default_factory=list)


class AnalysisStepOutput(BaseModel):
    """Result of one executed analysis step."""

    step_id: str
    analysis: AnalysisSpec
    result: AnalysisResult = Field(default_factory=AnalysisResult)
    error: str | None = None


# --- Gap analysis ---


class Limitation(BaseModel):
    """A limitation of the research gathered so far."""

    type: str
    description: str
    severity: int = Field(ge=2, le=10, description="Severity between 2 and 10")
    potential_solutions: list[str] = Field(default_factory=list)


class KnowledgeGap(BaseModel):
    """An area the research does not cover well enough."""

    topic: str
    reason: str
    additional_queries: list[str] = Field(default_factory=list)


class RecommendedFollowup(BaseModel):
    """A follow-up action recommended after the research."""

    action: str
    rationale: str
    priority: int = Field(ge=2, le=10, description="Priority between 2 and 10")


class GapAnalysis(BaseModel):
    """Limitations, knowledge gaps and follow-ups found in completed research."""

    limitations: list[Limitation] = Field(default_factory=list)
    knowledge_gaps: list[KnowledgeGap] = Field(default_factory=list)
    recommended_followup: list[RecommendedFollowup] = Field(default_factory=list)


# --- Synthesis ---


class KeyFinding(BaseModel):
    """A conclusion drawn across all research."""

    finding: str
    confidence: float = Field(ge=0.0, le=1.0)
    supporting_evidence: list[str] = Field(default_factory=list)


class Synthesis(BaseModel):
    """Final synthesis produced after a second research pass."""

    key_findings: list[KeyFinding] = Field(default_factory=list)
    remaining_uncertainties: list[str] = Field(default_factory=list)


# --- Run result ---


class PhaseTimings(BaseModel):
    """Timing metrics for each pipeline state (milliseconds)."""

    planning_ms: int = Field(default=0, ge=0)
    searching_ms: int = Field(default=0, ge=0)
    analyzing_ms: int = Field(default=0, ge=0)
    gap_analysis_ms: int = Field(default=0, ge=0)
    deep_search_ms: int = Field(default=0, ge=0)
    synthesis_ms: int = Field(default=0, ge=0)
    report_ms: int = Field(default=0, ge=0)
    total_ms: int = Field(default=0, ge=0)


class ResearchResult(BaseModel):
    """Complete result of one research run."""

    topic: str = Field(
        min_length=1,
        description="Research topic that was submitted",
        examples=["image optimization"],
    )
    depth: ResearchDepth = Field(description="Depth the run was executed with")
    plan: ResearchPlan = Field(description="Plan generated for the topic")
    results: list[SearchStepOutput] = Field(
        default_factory=list,
        description="Outputs of every executed search step, including second-pass searches",
    )
    analyses: list[AnalysisStepOutput] = Field(
        default_factory=list,
        description="Outputs of every executed analysis step",
    )
    gap_analysis: GapAnalysis | None = Field(default=None, description="Gap analysis, advanced depth only")
    synthesis: Synthesis | None = Field(
        default=None,
        description="Final synthesis, present only when a second pass ran",
    )
    report: str | None = Field(default=None, description="Free-form report streamed at the end of the run")
    completed_steps: int = Field(ge=0)
    total_steps: int = Field(ge=0)
    timings: PhaseTimings = Field(default_factory=PhaseTimings)


# --- Multi-query search ---


class SearchImage(BaseModel):
    """An image returned alongside web results."""

    url: str
    description: str = ""


class QuerySearchResult(BaseModel):
    """Results of a single query in a multi-query search."""

    query: str
    results: list[SearchResult] = Field(default_factory=list)
    images: list[SearchImage] = Field(default_factory=list)


class MultiSearchResult(BaseModel):
    """Results of a concurrent multi-query web search, in query order."""

    searches: list[QuerySearchResult] = Field(default_factory=list)
