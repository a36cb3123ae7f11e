"""
NEAR Agent Pipeline - Agents
Autonomous trading agents: planning, token prediction, execution, task history

Modules:
- models: agent, task and swap records
- task_planner: LLM task plan (advisory)
- token_predictor: LLM token choice with keyword fallback
- task_history: per-run audit ledger
- agent_service: agent lifecycle (create, pause, delete)
- agent_executor: pipeline orchestrator
"""

from .models import (
    Agent,
    AgentStatus,
    TaskRecord,
    TaskStatus,
    TaskType,
    TokenInfo,
    TokenPrediction,
)

__all__ = [
    "Agent",
    "AgentStatus",
    "TaskRecord",
    "TaskStatus",
    "TaskType",
    "TokenInfo",
    "TokenPrediction",
]
