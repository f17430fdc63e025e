# infrastructure/agents/market_research_agent.py
import json
import re

from domain.models.agent_context import ExecutionContext
from domain.models.agent_result import ValidationIssue, ValidationResult
from domain.models.errors import ProviderError, TaskTimeoutError
from domain.models.task_schemas import MarketResearchInput, MarketResearchOutput
from infrastructure.agents.base_agent import BaseAgent, ExecutionScope, WeightedSection
from shared.logging import logger

MARKET_DATA_SOURCE = "market_data"

_QUANTIFIED = re.compile(r"[$%\d]")

class MarketResearchAgent(BaseAgent):
    """Problem, demand signals, competition and timing for a business idea"""

    TASK_KEY = "marketResearch"
    INPUT_SCHEMA = MarketResearchInput
    OUTPUT_SCHEMA = MarketResearchOutput

    COMPLETENESS_SECTIONS = (
        WeightedSection("customerEvidence", 5, min_items=2),
        WeightedSection("marketSignals", 5, min_items=3),
    )
    ACTIONABILITY_FIELDS = (
        WeightedSection("problemStatement.quantifiedImpact", 15),
        WeightedSection("customerEvidence[].willingnessToPay", 10),
    )

    async def process_request(self, payload: MarketResearchInput, scope: ExecutionScope):
        trend_data = None
        if self.has_data_source(MARKET_DATA_SOURCE):
            try:
                response = await self.fetch_external_data(scope, MARKET_DATA_SOURCE, {
                    "keyword": payload.title,
                    "category": payload.category,
                })
                trend_data = response.data
            except (ProviderError, TaskTimeoutError) as e:
                # Trend data only enriches the prompt
                logger.warning("Market data unavailable, continuing without it",
                               task_id=self.task_id, request_id=scope.request_id,
                               error_code=e.code, error_message=e.message)

        prompt = self.build_prompt(payload, scope.context, trend_data)
        response_text = await self.call_text_generator(scope, prompt, format="json")
        return self.parse_json(response_text)

    def build_prompt(self, payload: MarketResearchInput, context: ExecutionContext, trend_data=None) -> str:
        sections = [
            "Task: market analysis for a business idea.",
            f"Title: {payload.title}",
            f"Category: {payload.category}",
            f"Description: {payload.description}",
        ]
        if trend_data:
            sections.append(f"Observed market data: {json.dumps(trend_data, default=str)[:2000]}")
        sections.append(self.depth_guidance(context))
        sections.append(
            "Return a JSON object with keys problemStatement {summary, quantifiedImpact, "
            "currentSolutions[], solutionLimitations[], costOfInaction}, marketSignals[] "
            "{type, description, strength, trend, source, quantifiedImpact, timeframe}, "
            "customerEvidence[] {segment, painPoint, quote, willingnessToPay, credibilityScore}, "
            "competitorAnalysis[] {name, description, marketPosition, strengths[], weaknesses[], "
            "differentiationOpportunity}, marketTiming {assessment, reasoning, catalysts[], "
            "confidence} and confidence {overall, breakdown}. Scores are 0-100."
        )
        return "\n\n".join(sections)

    async def assess_quality(self, output: MarketResearchOutput, context: ExecutionContext) -> ValidationResult:
        issues = []
        suggestions = []

        completeness = sum(points for check, points in (
            (len(output.problem_statement.summary) > 50, 15),
            (bool(output.problem_statement.quantified_impact), 10),
            (len(output.problem_statement.current_solutions) >= 2, 10),
            (len(output.market_signals) >= 2, 15),
            (len(output.customer_evidence) >= 1, 15),
            (len(output.competitor_analysis) >= 1, 15),
            (len(output.market_timing.catalysts) >= 2, 10),
            (output.confidence.overall >= 70, 10),
        ) if check)
        if completeness < self.quality_thresholds.data_completeness_threshold:
            issues.append(ValidationIssue(
                "completeness",
                f"Data completeness score {completeness} below threshold "
                f"{self.quality_thresholds.data_completeness_threshold}",
                "warning",
            ))

        consistency = 100
        rising = sum(1 for s in output.market_signals if s.trend == "increasing")
        timing = output.market_timing.assessment
        if (timing == "too-early" and rising > 2) or (timing == "too-late" and rising > 1):
            consistency -= 25
            issues.append(ValidationIssue("consistency", "Market timing contradicts the market signals", "warning"))

        actionability = 0
        quantified = [output.problem_statement.quantified_impact] + [
            s.quantified_impact for s in output.market_signals if s.quantified_impact
        ]
        if any(_QUANTIFIED.search(value) for value in quantified):
            actionability += 40
        if any(s.timeframe for s in output.market_signals):
            actionability += 20
        if output.competitor_analysis and all(c.differentiation_opportunity for c in output.competitor_analysis):
            actionability += 20
        if any(e.willingness_to_pay for e in output.customer_evidence):
            actionability += 20
        if actionability < self.quality_thresholds.actionability_threshold:
            issues.append(ValidationIssue("actionability", "Analysis lacks specific, actionable insights", "warning"))
            suggestions.append("Add specific metrics, timelines and concrete recommendations")

        score = completeness * 0.3 + consistency * 0.3 + actionability * 0.4
        # Blend with the model's own confidence
        confidence = (score + output.confidence.overall) / 2

        return ValidationResult(
            is_valid=True,
            errors=issues,
            confidence=min(100.0, max(0.0, confidence)),
            suggestions=suggestions,
        )
