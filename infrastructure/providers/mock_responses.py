# infrastructure/providers/mock_responses.py
"""Canned JSON returned by MockTextGenerator, keyed by a prompt marker phrase"""

import json

RISK_ASSESSMENT_RESPONSE = {
    "overallRiskScore": 48,
    "majorRiskCategories": [
        {
            "category": "market",
            "level": "medium",
            "description": "Buyers may delay adoption until integrations mature",
            "probability": 45,
            "impact": 60,
        },
        {
            "category": "execution",
            "level": "high",
            "description": "Small founding team with a wide product surface",
            "probability": 55,
            "impact": 70,
        },
        {
            "category": "financial",
            "level": "medium",
            "description": "Runway depends on closing a seed round within a year",
            "probability": 40,
            "impact": 65,
        },
    ],
    "mitigationStrategies": [
        {
            "risk": "execution",
            "strategy": "Narrow the first release to a single workflow",
            "timeline": "0-3 months",
            "cost": "$15,000",
        },
    ],
    "recommendations": {
        "immediate": ["Run ten customer discovery interviews"],
        "shortTerm": ["Ship a paid pilot with two design partners"],
        "longTerm": ["Build a partner channel"],
    },
    "confidence": {"overall": 74, "breakdown": {"market": 72, "execution": 76}},
}

FINANCIAL_MODEL_RESPONSE = {
    "marketSizing": {
        "tam": {"value": 12000000000, "methodology": "Top-down from industry reports"},
        "sam": {"value": 1500000000, "methodology": "Serviceable segment in North America"},
        "som": {"value": 45000000, "methodology": "3% of SAM within five years"},
    },
    "revenueProjections": [
        {"year": 1, "revenue": 250000, "customers": 50},
        {"year": 2, "revenue": 900000, "customers": 160},
        {"year": 3, "revenue": 2400000, "customers": 380},
    ],
    "fundingRequirements": {
        "totalRequired": 1500000,
        "runwayMonths": 18,
        "useOfFunds": {"product": 0.5, "sales": 0.3, "operations": 0.2},
    },
    "keyMetrics": {
        "breakEvenMonth": 30,
        "grossMargin": 78,
        "customerAcquisitionCost": 1200,
        "lifetimeValue": 9600,
    },
    "scenarios": {
        "conservative": {"revenueYearFive": 4000000, "probability": 30},
        "realistic": {"revenueYearFive": 9000000, "probability": 50},
        "optimistic": {"revenueYearFive": 20000000, "probability": 20},
    },
    "confidence": {"overall": 71, "breakdown": {"marketSizing": 68, "projections": 74}},
}

FOUNDER_FIT_RESPONSE = {
    "fitScore": 76,
    "skillsAnalysis": {
        "matchingSkills": ["product management", "software engineering"],
        "skillGaps": [
            {"skill": "enterprise sales", "importance": "high", "mitigation": "Hire a founding AE"},
            {"skill": "compliance", "importance": "medium", "mitigation": "Retain an advisor"},
        ],
    },
    "teamRequirements": {
        "coreRoles": ["CTO", "Head of Sales"],
        "firstHires": ["Full-stack engineer", "Customer success lead"],
    },
    "investmentPlan": {
        "immediatePriorities": ["Sales training", "Industry network building"],
        "learningBudget": 5000,
    },
    "confidence": {"overall": 78, "breakdown": {"skills": 80, "team": 75}},
}

MARKET_ANALYSIS_RESPONSE = {
    "problemStatement": {
        "summary": "Small teams lose hours each week to manual, repetitive workflows",
        "quantifiedImpact": "Roughly 6 hours per employee per week",
        "currentSolutions": ["Spreadsheets", "Generic automation tools"],
        "solutionLimitations": ["Brittle integrations", "Steep learning curve"],
        "costOfInaction": "$18,000 per employee per year in lost productivity",
    },
    "marketSignals": [
        {
            "type": "search_trend",
            "description": "Search interest in workflow automation keeps rising",
            "strength": "high",
            "trend": "increasing",
            "source": "Search trend data",
            "quantifiedImpact": "+40% year over year",
            "timeframe": "12 months",
        },
        {
            "type": "funding_activity",
            "description": "Seed rounds in the category doubled",
            "strength": "medium",
            "trend": "increasing",
            "source": "Venture funding databases",
        },
    ],
    "customerEvidence": [
        {
            "segment": "Operations managers at 20-200 person companies",
            "painPoint": "Manual data entry between tools",
            "quote": "We copy the same data into four systems every day.",
            "willingnessToPay": "$50-100 per seat per month",
            "credibilityScore": 80,
        },
    ],
    "competitorAnalysis": [
        {
            "name": "Incumbent Suite",
            "description": "Horizontal automation platform",
            "marketPosition": "leader",
            "strengths": ["Brand", "Integration catalog"],
            "weaknesses": ["Complex pricing"],
            "differentiationOpportunity": "Vertical templates for small teams",
        },
    ],
    "marketTiming": {
        "assessment": "perfect",
        "reasoning": "Model costs fell while buyer awareness rose",
        "catalysts": ["Cheaper inference", "Labor cost pressure"],
        "confidence": 80,
    },
    "confidence": {"overall": 82, "breakdown": {"problem": 85, "signals": 80, "competition": 78}},
}

# Checked in order against the first line of the prompt; the first match wins
MOCK_RESPONSES = {
    "risk assessment": json.dumps(RISK_ASSESSMENT_RESPONSE),
    "financial model": json.dumps(FINANCIAL_MODEL_RESPONSE),
    "founder fit": json.dumps(FOUNDER_FIT_RESPONSE),
    "market analysis": json.dumps(MARKET_ANALYSIS_RESPONSE),
}
