# domain/models/analysis.py
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from domain.models.agent_context import AnalysisDepth
from domain.models.agent_result import AgentResult, CamelModel, ErrorInfo

IdeaCategory = Literal[
    "ai-automation", "saas-tools", "ecommerce", "fintech",
    "healthtech", "edtech", "proptech", "climate-tech",
    "creator-economy", "web3-crypto",
]

IdeaTier = Literal["public", "exclusive", "ai-generated"]

# Request models
class BusinessIdea(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category: IdeaCategory
    tier: IdeaTier = "public"

class UserContext(CamelModel):
    skills: List[str] = Field(default_factory=list)
    experience: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    budget: Optional[float] = Field(default=None, ge=0)
    timeframe: Optional[str] = None

class EnabledTasks(CamelModel):
    """Explicit task switches; a flag left out of a supplied map is off"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    market_research: bool = False
    financial_modeling: bool = False
    founder_fit: bool = False
    risk_assessment: bool = False

    @classmethod
    def all_enabled(cls) -> "EnabledTasks":
        return cls(market_research=True, financial_modeling=True,
                   founder_fit=True, risk_assessment=True)

class FreshnessPolicy(CamelModel):
    max_age: int = Field(default=3600, gt=0, description="Seconds")
    force_refresh: bool = False

class CompositeAnalysisInput(CamelModel):
    idea: BusinessIdea
    user_context: Optional[UserContext] = None
    analysis_depth: AnalysisDepth = AnalysisDepth.STANDARD
    enabled_tasks: EnabledTasks = Field(default_factory=EnabledTasks.all_enabled)
    data_freshness: Optional[FreshnessPolicy] = None
    user_id: Optional[str] = None

# Response models
class QualityMetrics(CamelModel):
    completeness: float = 0.0
    consistency: float = 0.0
    actionability: float = 0.0
    reliability: float = 0.0

class TaskFailure(CamelModel):
    task_id: str
    code: str
    message: str

class DataFreshnessInfo(CamelModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sources: List[str] = Field(default_factory=list)

class OrchestrationMetadata(CamelModel):
    total_execution_time: int = 0
    agents_executed: List[str] = Field(default_factory=list)
    agents_failed: List[str] = Field(default_factory=list)
    failures: List[TaskFailure] = Field(default_factory=list)
    overall_confidence: float = 0.0
    data_freshness: DataFreshnessInfo = Field(default_factory=DataFreshnessInfo)

class CompositeAnalysisOutput(CamelModel):
    success: bool
    request_id: str
    market_research: Optional[AgentResult] = None
    financial_modeling: Optional[AgentResult] = None
    founder_fit: Optional[AgentResult] = None
    risk_assessment: Optional[AgentResult] = None
    metadata: OrchestrationMetadata = Field(default_factory=OrchestrationMetadata)
    quality_metrics: QualityMetrics = Field(default_factory=QualityMetrics)
    error: Optional[ErrorInfo] = None

    def task_results(self) -> Dict[str, AgentResult]:
        """Results keyed by task key, skipping tasks that did not run"""
        results = {
            "market_research": self.market_research,
            "financial_modeling": self.financial_modeling,
            "founder_fit": self.founder_fit,
            "risk_assessment": self.risk_assessment,
        }
        return {key: value for key, value in results.items() if value is not None}
