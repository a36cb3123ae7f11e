"""
Task Planner
Turns an agent's goal text into an ordered, advisory task plan via the LLM.

The plan is logged for audit; the executor's real step sequence is fixed
and does not depend on it. Any LLM or parse failure yields DEFAULT_PLAN.
"""

import logging
from typing import Any, List

from agents.models import PlannedTask, TaskType
from data_sources.llm_client import LLMClient, Malformed, extract_json

logger = logging.getLogger(__name__)

DEFAULT_PLAN = [
    PlannedTask(type=TaskType.FETCH_TOKENS.value,
                description="Fetch available tokens from Ref Finance testnet", order=1),
    PlannedTask(type=TaskType.ANALYZE_MARKET.value,
                description="Analyze token prices and market data using AI", order=2),
    PlannedTask(type=TaskType.PREDICT_TOKEN.value,
                description="Predict the best token for investment", order=3),
    PlannedTask(type=TaskType.PREPARE_SWAP.value,
                description="Prepare swap transactions (wrap NEAR, approve, swap)", order=4),
    PlannedTask(type=TaskType.EXECUTE_SWAP.value,
                description="Sign and execute swap transaction on NEAR testnet", order=5),
]


def default_plan() -> List[PlannedTask]:
    return [PlannedTask(t.type, t.description, t.order) for t in DEFAULT_PLAN]


def build_planning_prompt(description: str, balance: str) -> str:
    return f"""You are an AI assistant helping to plan tasks for an autonomous trading agent on NEAR Protocol.

Agent Description: {description}
Agent Balance: {balance} NEAR

Based on the agent's description, create a detailed task plan. The agent can:
1. Fetch available tokens from Ref Finance DEX
2. Analyze token prices and market data
3. Make predictions about which token to invest in
4. Execute token swaps on NEAR testnet

Please create a step-by-step task plan in JSON format. Each task should have:
- type: The type of task (fetch_tokens, analyze_market, predict_token, prepare_swap, execute_swap)
- description: A clear description of what the task does
- order: The execution order (1, 2, 3, etc.)

Return ONLY a valid JSON array of tasks, no other text.

Example format:
[
  {{
    "type": "fetch_tokens",
    "description": "Fetch available tokens from Ref Finance testnet",
    "order": 1
  }},
  {{
    "type": "analyze_market",
    "description": "Analyze token prices and market trends",
    "order": 2
  }}
]"""


def _order_of(value: Any):
    # bool is an int subclass; true/false are not orders
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value:
        return value
    return None


def parse_plan(value: Any) -> List[PlannedTask]:
    """Keep entries with type, description and a truthy numeric order, sorted by order"""
    if not isinstance(value, list):
        return []

    tasks = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        order = _order_of(entry.get("order"))
        task_type = entry.get("type")
        description = entry.get("description")
        if not (task_type and description and order):
            continue
        tasks.append(PlannedTask(type=str(task_type), description=str(description), order=order))

    tasks.sort(key=lambda t: t.order)
    return tasks


class TaskPlanner:
    """
    Usage:
        planner = TaskPlanner(llm)
        plan = await planner.plan_tasks("Swap max 1 NEAR into a stablecoin", "10")
    """

    def __init__(self, llm: LLMClient, temperature: float = 0.7):
        self.llm = llm
        self.temperature = temperature

    async def plan_tasks(self, description: str, balance: str) -> List[PlannedTask]:
        """Never raises; returns the default plan on any failure"""
        prompt = build_planning_prompt(description, balance)

        try:
            text = await self.llm.complete(prompt, temperature=self.temperature)
        except Exception as e:
            logger.error(f"[TaskPlanner] Error planning tasks: {e}")
            return default_plan()

        result = extract_json(text)
        if isinstance(result, Malformed):
            logger.warning(f"[TaskPlanner] Unparseable plan ({result.reason}), using default plan")
            return default_plan()

        tasks = parse_plan(result.value)
        if not tasks:
            logger.warning("[TaskPlanner] Plan had no valid tasks, using default plan")
            return default_plan()

        logger.info(f"[TaskPlanner] Planned {len(tasks)} task(s): {[t.type for t in tasks]}")
        return tasks
