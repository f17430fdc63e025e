# infrastructure/agents/financial_modeling_agent.py
from domain.models.agent_context import ExecutionContext
from domain.models.agent_result import ValidationIssue, ValidationResult
from domain.models.task_schemas import FinancialModelingInput, FinancialModelingOutput
from infrastructure.agents.base_agent import BaseAgent, ExecutionScope, WeightedSection

class FinancialModelingAgent(BaseAgent):
    """Market sizing, revenue projections and funding needs"""

    TASK_KEY = "financialModeling"
    INPUT_SCHEMA = FinancialModelingInput
    OUTPUT_SCHEMA = FinancialModelingOutput

    COMPLETENESS_SECTIONS = (
        WeightedSection("marketSizing", 5),
        WeightedSection("revenueProjections", 5, min_items=3),
    )
    ACTIONABILITY_FIELDS = (
        WeightedSection("fundingRequirements.totalRequired", 15),
        WeightedSection("keyMetrics.breakEvenMonth", 10),
    )

    async def process_request(self, payload: FinancialModelingInput, scope: ExecutionScope):
        prompt = self.build_prompt(payload, scope.context)
        response_text = await self.call_text_generator(scope, prompt, format="json")
        return self.parse_json(response_text)

    def build_prompt(self, payload: FinancialModelingInput, context: ExecutionContext) -> str:
        founder = payload.user_context
        return "\n\n".join([
            "Task: financial model for a business idea.",
            f"Title: {payload.title}",
            f"Category: {payload.category}",
            f"Idea: {payload.idea_text}",
            f"Target market: {payload.target_market or 'Not specified'}",
            f"Business model: {payload.business_model or 'Not specified'}",
            f"Founder budget: {founder.budget or 'Not specified'}; "
            f"timeline: {founder.timeline or 'Not specified'}",
            self.depth_guidance(context),
            "Return a JSON object with keys marketSizing {tam, sam, som each {value, methodology}}, "
            "revenueProjections[] {year, revenue, customers}, fundingRequirements {totalRequired, "
            "runwayMonths, useOfFunds}, keyMetrics {breakEvenMonth, grossMargin, "
            "customerAcquisitionCost, lifetimeValue}, scenarios {conservative, realistic, optimistic "
            "each {revenueYearFive, probability}} and confidence {overall, breakdown}. "
            "Monetary values are USD numbers.",
        ])

    def check_output(self, output: FinancialModelingOutput) -> ValidationResult:
        errors = []
        sizing = output.market_sizing
        if not sizing.som.value <= sizing.sam.value <= sizing.tam.value:
            errors.append(ValidationIssue("marketSizing", "Expected SOM <= SAM <= TAM"))
        years = [p.year for p in output.revenue_projections]
        if years != sorted(set(years)):
            errors.append(ValidationIssue("revenueProjections", "Projection years must be unique and ascending"))
        return ValidationResult(is_valid=not errors, errors=errors)

    async def assess_quality(self, output: FinancialModelingOutput, context: ExecutionContext) -> ValidationResult:
        issues = []
        confidence = 70.0

        if output.confidence.overall > 80:
            confidence += 10
        sizing = output.market_sizing
        if sizing.tam.value and sizing.sam.value and sizing.som.value:
            confidence += 10
        if len(output.revenue_projections) < 3:
            confidence -= 10
            issues.append(ValidationIssue("revenueProjections", "Fewer than three years projected", "warning"))

        scenarios = output.scenarios
        total_probability = (scenarios.conservative.probability
                             + scenarios.realistic.probability
                             + scenarios.optimistic.probability)
        if abs(total_probability - 100) > 5:
            confidence -= 10
            issues.append(ValidationIssue(
                "scenarios", f"Scenario probabilities sum to {total_probability:.0f}, expected 100", "warning",
            ))

        return ValidationResult(is_valid=True, errors=issues, confidence=max(0.0, confidence))
