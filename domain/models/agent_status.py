# domain/models/agent_status.py
from enum import Enum
from typing import Callable, List, Optional

class AgentStatus(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    PROCESSING = "processing"
    VALIDATING = "validating"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

_RANK = {
    AgentStatus.IDLE: 0,
    AgentStatus.INITIALIZING: 1,
    AgentStatus.PROCESSING: 2,
    AgentStatus.VALIDATING: 3,
    AgentStatus.COMPLETED: 4,
    AgentStatus.FAILED: 4,
    AgentStatus.TIMEOUT: 4,
}

TERMINAL_STATUSES = frozenset({AgentStatus.COMPLETED, AgentStatus.FAILED, AgentStatus.TIMEOUT})

StatusListener = Callable[[AgentStatus], None]

class StatusTracker:
    """Per-execution status that only ever moves forward"""

    def __init__(self, listener: Optional[StatusListener] = None):
        self._status = AgentStatus.IDLE
        self._listener = listener
        self.history: List[AgentStatus] = [AgentStatus.IDLE]

    @property
    def status(self) -> AgentStatus:
        return self._status

    @property
    def is_terminal(self) -> bool:
        return self._status in TERMINAL_STATUSES

    def transition(self, new_status: AgentStatus) -> None:
        if _RANK[new_status] <= _RANK[self._status]:
            raise ValueError(
                f"Illegal status transition {self._status.value} -> {new_status.value}"
            )
        self._status = new_status
        self.history.append(new_status)
        if self._listener:
            self._listener(new_status)
