# domain/models/task_schemas.py
"""Input and output schemas of the four analysis tasks.

Outputs are parsed from language-model JSON, which uses camelCase keys;
field names are accepted too so that internal mappings can stay snake_case.
"""
from typing import Dict, List, Literal, Optional

from pydantic import Field

from domain.models.agent_result import CamelModel
from domain.models.analysis import IdeaCategory, IdeaTier

Score = float

class ConfidenceScore(CamelModel):
    overall: Score = Field(..., ge=0, le=100)
    breakdown: Dict[str, Score] = Field(default_factory=dict)

class FounderContext(CamelModel):
    budget: Optional[str] = None
    timeline: Optional[str] = None
    experience: Optional[str] = None

# Market research
class MarketResearchInput(CamelModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: IdeaCategory
    tier: IdeaTier = "public"

class ProblemStatement(CamelModel):
    summary: str = Field(..., min_length=1)
    quantified_impact: str
    current_solutions: List[str] = Field(default_factory=list)
    solution_limitations: List[str] = Field(default_factory=list)
    cost_of_inaction: str = ""

class MarketSignal(CamelModel):
    type: Literal["search_trend", "funding_activity", "regulatory_change",
                  "social_sentiment", "patent_activity"]
    description: str
    strength: Literal["low", "medium", "high"]
    trend: Literal["declining", "stable", "increasing"]
    source: str
    quantified_impact: Optional[str] = None
    timeframe: Optional[str] = None

class CustomerEvidence(CamelModel):
    segment: str
    pain_point: str
    quote: str
    willingness_to_pay: Optional[str] = None
    credibility_score: Score = Field(..., ge=0, le=100)

class Competitor(CamelModel):
    name: str
    description: str = ""
    market_position: Literal["startup", "challenger", "leader", "niche"]
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    differentiation_opportunity: str = ""

class MarketTiming(CamelModel):
    assessment: Literal["too-early", "perfect", "getting-late", "too-late"]
    reasoning: str
    catalysts: List[str] = Field(default_factory=list)
    confidence: Score = Field(..., ge=0, le=100)

class MarketResearchOutput(CamelModel):
    problem_statement: ProblemStatement
    market_signals: List[MarketSignal] = Field(default_factory=list)
    customer_evidence: List[CustomerEvidence] = Field(default_factory=list)
    competitor_analysis: List[Competitor] = Field(default_factory=list)
    market_timing: MarketTiming
    confidence: ConfidenceScore

# Financial modeling
class FinancialModelingInput(CamelModel):
    idea_text: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    category: IdeaCategory
    target_market: Optional[str] = None
    business_model: Optional[str] = None
    user_context: FounderContext = Field(default_factory=FounderContext)

class MarketSize(CamelModel):
    value: float = Field(..., ge=0)
    methodology: str = ""

class MarketSizing(CamelModel):
    tam: MarketSize
    sam: MarketSize
    som: MarketSize

class RevenueProjection(CamelModel):
    year: int = Field(..., ge=1)
    revenue: float = Field(..., ge=0)
    customers: int = Field(default=0, ge=0)

class FundingRequirements(CamelModel):
    total_required: float = Field(..., ge=0)
    runway_months: int = Field(default=18, ge=0)
    use_of_funds: Dict[str, float] = Field(default_factory=dict)

class KeyMetrics(CamelModel):
    break_even_month: Optional[int] = Field(default=None, ge=0)
    gross_margin: float = Field(default=0.0, ge=-100, le=100)
    customer_acquisition_cost: Optional[float] = None
    lifetime_value: Optional[float] = None

class Scenario(CamelModel):
    revenue_year_five: float = Field(..., ge=0)
    probability: float = Field(..., ge=0, le=100)

class Scenarios(CamelModel):
    conservative: Scenario
    realistic: Scenario
    optimistic: Scenario

class FinancialModelingOutput(CamelModel):
    market_sizing: MarketSizing
    revenue_projections: List[RevenueProjection] = Field(default_factory=list)
    funding_requirements: FundingRequirements
    key_metrics: KeyMetrics
    scenarios: Scenarios
    confidence: ConfidenceScore

# Founder fit
class FounderProfile(CamelModel):
    background: str = "Not specified"
    expertise: List[str] = Field(default_factory=list)
    previous_experience: str = "Not specified"
    motivation: str = "Not specified"

class FounderFitInput(CamelModel):
    idea_text: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    category: IdeaCategory
    founder_profile: FounderProfile = Field(default_factory=FounderProfile)
    user_context: FounderContext = Field(default_factory=FounderContext)

class SkillGap(CamelModel):
    skill: str
    importance: Literal["low", "medium", "high", "critical"]
    mitigation: str = ""

class SkillsAnalysis(CamelModel):
    matching_skills: List[str] = Field(default_factory=list)
    skill_gaps: List[SkillGap] = Field(default_factory=list)

class TeamRequirements(CamelModel):
    core_roles: List[str] = Field(default_factory=list)
    first_hires: List[str] = Field(default_factory=list)

class InvestmentPlan(CamelModel):
    immediate_priorities: List[str] = Field(default_factory=list)
    learning_budget: Optional[float] = Field(default=None, ge=0)

class FounderFitOutput(CamelModel):
    fit_score: Score = Field(..., ge=0, le=100)
    skills_analysis: SkillsAnalysis
    team_requirements: TeamRequirements
    investment_plan: InvestmentPlan
    confidence: ConfidenceScore

# Risk assessment
class FinancialProjections(CamelModel):
    revenue_year_five: Optional[float] = None
    total_funding: Optional[float] = None
    break_even_month: Optional[int] = None

class TeamProfile(CamelModel):
    founder_experience: str = "Not specified"
    core_roles: List[str] = Field(default_factory=list)
    skill_gaps: List[SkillGap] = Field(default_factory=list)

class RiskAssessmentInput(CamelModel):
    idea_text: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    category: IdeaCategory
    target_market: Optional[str] = None
    business_model: Optional[str] = None
    financial_projections: Optional[FinancialProjections] = None
    team_profile: Optional[TeamProfile] = None
    user_context: FounderContext = Field(default_factory=FounderContext)

class RiskCategory(CamelModel):
    category: str
    level: Literal["low", "medium", "high", "critical"]
    description: str = ""
    probability: Score = Field(..., ge=0, le=100)
    impact: Score = Field(..., ge=0, le=100)

class MitigationStrategy(CamelModel):
    risk: str
    strategy: str
    timeline: str = ""
    cost: Optional[str] = None

class RiskRecommendations(CamelModel):
    immediate: List[str] = Field(default_factory=list)
    short_term: List[str] = Field(default_factory=list)
    long_term: List[str] = Field(default_factory=list)

class RiskAssessmentOutput(CamelModel):
    overall_risk_score: Score = Field(..., ge=0, le=100)
    major_risk_categories: List[RiskCategory] = Field(default_factory=list)
    mitigation_strategies: List[MitigationStrategy] = Field(default_factory=list)
    recommendations: RiskRecommendations = Field(default_factory=RiskRecommendations)
    confidence: ConfidenceScore
