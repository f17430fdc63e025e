# infrastructure/agents/founder_fit_agent.py
from domain.models.agent_context import ExecutionContext
from domain.models.agent_result import ValidationIssue, ValidationResult
from domain.models.task_schemas import FounderFitInput, FounderFitOutput
from infrastructure.agents.base_agent import BaseAgent, ExecutionScope, WeightedSection

class FounderFitAgent(BaseAgent):
    """How well the founder's skills and resources match the idea"""

    TASK_KEY = "founderFit"
    INPUT_SCHEMA = FounderFitInput
    OUTPUT_SCHEMA = FounderFitOutput

    COMPLETENESS_SECTIONS = (
        WeightedSection("skillsAnalysis", 5),
        WeightedSection("teamRequirements", 5),
    )
    ACTIONABILITY_FIELDS = (
        WeightedSection("skillsAnalysis.skillGaps", 15),
        WeightedSection("investmentPlan.immediatePriorities", 10),
    )

    async def process_request(self, payload: FounderFitInput, scope: ExecutionScope):
        prompt = self.build_prompt(payload, scope.context)
        response_text = await self.call_text_generator(scope, prompt, format="json")
        return self.parse_json(response_text)

    def build_prompt(self, payload: FounderFitInput, context: ExecutionContext) -> str:
        profile = payload.founder_profile
        return "\n\n".join([
            "Task: founder fit evaluation for a business idea.",
            f"Title: {payload.title}",
            f"Category: {payload.category}",
            f"Idea: {payload.idea_text}",
            f"Founder background: {profile.background}",
            f"Expertise: {', '.join(profile.expertise) or 'Not specified'}",
            f"Previous experience: {profile.previous_experience}",
            f"Motivation: {profile.motivation}",
            f"Budget: {payload.user_context.budget or 'Not specified'}; "
            f"timeline: {payload.user_context.timeline or 'Not specified'}",
            self.depth_guidance(context),
            "Return a JSON object with keys fitScore, skillsAnalysis {matchingSkills[], skillGaps[] "
            "{skill, importance, mitigation}}, teamRequirements {coreRoles[], firstHires[]}, "
            "investmentPlan {immediatePriorities[], learningBudget} and confidence {overall, breakdown}. "
            "Scores are 0-100; importance is low, medium, high or critical.",
        ])

    async def assess_quality(self, output: FounderFitOutput, context: ExecutionContext) -> ValidationResult:
        issues = []
        confidence = output.confidence.overall

        critical_gaps = sum(1 for gap in output.skills_analysis.skill_gaps if gap.importance == "critical")
        if critical_gaps > 3:
            issues.append(ValidationIssue("skillsAnalysis", "Too many critical skill gaps identified", "warning"))
            confidence -= 10
        if output.fit_score < 50:
            issues.append(ValidationIssue("fitScore", "Low founder readiness score", "warning"))
            confidence -= 5

        return ValidationResult(is_valid=True, errors=issues, confidence=max(0.0, confidence))
