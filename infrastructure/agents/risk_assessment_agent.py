# infrastructure/agents/risk_assessment_agent.py
from domain.models.agent_context import AgentDependency, ExecutionContext
from domain.models.agent_result import ValidationIssue, ValidationResult
from domain.models.task_schemas import RiskAssessmentInput, RiskAssessmentOutput
from infrastructure.agents.base_agent import BaseAgent, ExecutionScope, WeightedSection

class RiskAssessmentAgent(BaseAgent):
    """Risk categories and mitigations, informed by the financial and founder analyses when available"""

    TASK_KEY = "riskAssessment"
    INPUT_SCHEMA = RiskAssessmentInput
    OUTPUT_SCHEMA = RiskAssessmentOutput

    DEPENDENCIES = (
        AgentDependency(
            task_id="financial-modeling",
            required=False,
            data_mapping={
                "scenarios.realistic.revenueYearFive": "financialProjections.revenueYearFive",
                "fundingRequirements.totalRequired": "financialProjections.totalFunding",
                "keyMetrics.breakEvenMonth": "financialProjections.breakEvenMonth",
            },
        ),
        AgentDependency(
            task_id="founder-fit",
            required=False,
            data_mapping={
                "teamRequirements.coreRoles": "teamProfile.coreRoles",
                "skillsAnalysis.skillGaps": "teamProfile.skillGaps",
            },
        ),
    )

    COMPLETENESS_SECTIONS = (
        WeightedSection("majorRiskCategories", 5, min_items=4),
        WeightedSection("mitigationStrategies", 5, min_items=3),
    )
    ACTIONABILITY_FIELDS = (
        WeightedSection("mitigationStrategies", 15, min_items=3),
        WeightedSection("recommendations.immediate", 10),
    )

    async def process_request(self, payload: RiskAssessmentInput, scope: ExecutionScope):
        prompt = self.build_prompt(payload, scope.context)
        response_text = await self.call_text_generator(scope, prompt, format="json")
        return self.parse_json(response_text)

    def build_prompt(self, payload: RiskAssessmentInput, context: ExecutionContext) -> str:
        sections = [
            "Task: risk assessment for a business idea.",
            f"Title: {payload.title}",
            f"Category: {payload.category}",
            f"Idea: {payload.idea_text}",
            f"Target market: {payload.target_market or 'Not specified'}",
            f"Business model: {payload.business_model or 'Not specified'}",
        ]

        projections = payload.financial_projections
        if projections is not None:
            sections.append(
                "Upstream projections: "
                f"year five revenue {projections.revenue_year_five or 'unknown'}, "
                f"total funding {projections.total_funding or 'unknown'}, "
                f"break-even month {projections.break_even_month or 'unknown'}"
            )

        team = payload.team_profile
        if team is not None:
            gaps = ", ".join(f"{gap.skill} ({gap.importance})" for gap in team.skill_gaps) or "none"
            sections.append(
                f"Team: founder experience {team.founder_experience}; "
                f"core roles {', '.join(team.core_roles) or 'none'}; skill gaps {gaps}"
            )

        sections.append(self.depth_guidance(context))
        sections.append(
            "Return a JSON object with keys overallRiskScore, majorRiskCategories[] {category, level, "
            "description, probability, impact}, mitigationStrategies[] {risk, strategy, timeline, cost}, "
            "recommendations {immediate[], shortTerm[], longTerm[]} and confidence {overall, breakdown}. "
            "Scores are 0-100; level is low, medium, high or critical."
        )
        return "\n\n".join(sections)

    async def assess_quality(self, output: RiskAssessmentOutput, context: ExecutionContext) -> ValidationResult:
        issues = []
        confidence = output.confidence.overall

        if len(output.major_risk_categories) < 3:
            issues.append(ValidationIssue("majorRiskCategories", "Insufficient risk categories identified", "warning"))
            confidence -= 10
        if not output.mitigation_strategies:
            issues.append(ValidationIssue("mitigationStrategies", "No mitigation strategies provided", "warning"))
            confidence -= 20

        return ValidationResult(is_valid=True, errors=issues, confidence=max(0.0, confidence))
