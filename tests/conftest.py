# tests/conftest.py
import pytest

from domain.models.agent_context import AnalysisDepth, ExecutionContext, UserProfile


class FakeClock:
    """Manually advanced clock, callable like time.monotonic"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays"""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def execution_context():
    return ExecutionContext(
        request_id="req_test",
        user_id="user-1",
        analysis_depth=AnalysisDepth.STANDARD,
        user_profile=UserProfile(
            skills=("software engineering",),
            experience=("6 years in B2B SaaS",),
            budget=50000,
            timeframe="6 months",
        ),
    )


@pytest.fixture
def composite_request():
    return {
        "idea": {
            "title": "Workflow autopilot",
            "description": "Automates hand-offs between the tools small operations teams use.",
            "category": "ai-automation",
        },
        "userContext": {
            "skills": ["software engineering"],
            "experience": ["6 years in B2B SaaS"],
            "budget": 50000,
            "timeframe": "6 months",
        },
        "analysisDepth": "standard",
    }
