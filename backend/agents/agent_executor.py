"""
Agent Executor
Runs one autonomous agent end to end:

    plan_tasks -> fetch_tokens -> predict_token -> execute_swap

Every stage is bracketed in the task history ledger (pending -> running ->
completed | failed). On any error, unfinished stages are force-failed
and the run reports success=False with the task ids created so far.

Runs of the same agent are serialized with a per-agent asyncio.Lock.
Swaps are not rolled back: a failed run may still have moved funds.
"""

import asyncio
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

from agents.agent_service import AgentService
from agents.models import AgentStatus, ExecutionResult, TaskType
from agents.task_history import TaskHistoryLedger
from agents.task_planner import TaskPlanner
from agents.token_predictor import TokenPredictor
from config.settings import PipelineConfig
from data_sources.token_catalog import TokenCatalog
from infrastructure.errors import AgentNotActiveError, AgentNotFoundError
from integrations.swap_executor import SwapExecutor
from services.balance_monitor import BalanceMonitor

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Analyze and swap tokens"
DEFAULT_GOAL = "Find best token"

# Most specific phrasing first
AMOUNT_PATTERNS = [
    re.compile(r"maximum\s+(\d+\.?\d*)\s*near", re.IGNORECASE),
    re.compile(r"max\s+(\d+\.?\d*)\s*near", re.IGNORECASE),
    re.compile(r"swap\s+(\d+\.?\d*)\s*near", re.IGNORECASE),
    re.compile(r"(\d+\.?\d*)\s*near\s+token", re.IGNORECASE),
    re.compile(r"(\d+\.?\d*)\s*near", re.IGNORECASE),
]


def _decimal(value: Any) -> Optional[Decimal]:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def extract_swap_amount(description: Optional[str], balance: str, default: str = "0.5") -> str:
    """
    NEAR amount to swap, taken from the goal text.

    The first pattern whose amount is positive and within the balance wins;
    otherwise the default.
    """
    text = description or ""
    available = _decimal(balance) or Decimal(0)

    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        amount = _decimal(match.group(1))
        if amount is not None and 0 < amount <= available:
            logger.info(f"[Pipeline] Extracted swap amount from description: {match.group(1)} NEAR")
            return match.group(1)

    return default


class AgentExecutor:
    """
    Pipeline orchestrator.

    Usage:
        executor = AgentExecutor(agent_service, ledger, planner, catalog, predictor, swap_executor, balances)
        result = await executor.execute_agent(agent_id, user_id, timeout=60)
        result.to_dict()   # {"success": ..., "taskIds": [...], "error": ...}
    """

    def __init__(
        self,
        agent_service: AgentService,
        ledger: TaskHistoryLedger,
        planner: TaskPlanner,
        catalog: TokenCatalog,
        predictor: TokenPredictor,
        swap_executor: SwapExecutor,
        balances: BalanceMonitor,
        config: Optional[PipelineConfig] = None,
        status_sink: Optional[Callable[[str], Any]] = None,
    ):
        self.agent_service = agent_service
        self.ledger = ledger
        self.planner = planner
        self.catalog = catalog
        self.predictor = predictor
        self.swap_executor = swap_executor
        self.balances = balances
        self.config = config or PipelineConfig()
        self.status_sink = status_sink
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, agent_id: str) -> asyncio.Lock:
        lock = self._locks.get(agent_id)
        if lock is None:
            lock = self._locks[agent_id] = asyncio.Lock()
        return lock

    def is_running(self, agent_id: str) -> bool:
        lock = self._locks.get(agent_id)
        return bool(lock and lock.locked())

    def _emit(self, sink: Optional[Callable[[str], Any]], message: str):
        if sink is None:
            return
        try:
            sink(message)
        except Exception as e:
            logger.warning(f"[Pipeline] Status sink failed: {e}")

    async def execute_agent(
        self,
        agent_id: str,
        user_id: str,
        timeout: Optional[float] = None,
        status_sink: Optional[Callable[[str], Any]] = None,
    ) -> ExecutionResult:
        """
        Run the pipeline once. Never raises; failures come back as
        ExecutionResult(success=False, task_ids=[...], error=...).
        """
        sink = status_sink or self.status_sink
        task_ids: List[str] = []

        async with self._lock_for(agent_id):
            try:
                run = self._run(agent_id, user_id, task_ids, sink)
                if timeout:
                    return await asyncio.wait_for(run, timeout)
                return await run
            except asyncio.TimeoutError:
                error = f"Agent execution timed out after {timeout:g}s"
            except Exception as e:
                error = str(e) or type(e).__name__

            logger.error(f"[Pipeline] Agent execution error for {agent_id}: {error}")
            await self._fail_unfinished_tasks(task_ids, error)

        self._emit(sink, f"Agent execution failed: {error}")
        return ExecutionResult(success=False, task_ids=task_ids, error=error)

    async def _fail_unfinished_tasks(self, task_ids: List[str], error: str):
        for task_id in task_ids:
            try:
                task = await self.ledger.get_task(task_id)
                # A stage cut off between create and start is still pending
                if task and not task.status.is_terminal:
                    await self.ledger.fail_task(task_id, error)
            except Exception as e:
                logger.error(f"[Pipeline] Could not close task {task_id}: {e}")

    async def _begin(
        self,
        agent_id: str,
        task_type: TaskType,
        description: str,
        task_ids: List[str],
        task_input: Any = None,
    ) -> str:
        task = await self.ledger.create_task(agent_id, task_type.value, description, task_input)
        task_ids.append(task.id)
        await self.ledger.start_task(task.id)
        return task.id

    async def _run(
        self,
        agent_id: str,
        user_id: str,
        task_ids: List[str],
        sink: Optional[Callable[[str], Any]],
    ) -> ExecutionResult:
        loaded = await self.agent_service.get_agent_with_private_key(agent_id, user_id)
        if loaded is None:
            raise AgentNotFoundError(agent_id)

        agent = loaded.agent
        if agent.status != AgentStatus.ACTIVE:
            raise AgentNotActiveError(agent_id, agent.status.value)

        balance = await self.balances.get_balance(agent.account_id)
        logger.info(f"[Pipeline] Agent {agent.account_id} balance: {balance} NEAR")

        # Planning (advisory)
        self._emit(sink, "Planning tasks...")
        plan_id = await self._begin(
            agent_id, TaskType.PLAN_TASKS, "Analyze agent description and create task plan", task_ids,
            task_input={"description": agent.description, "balance": balance},
        )
        plan = await self.planner.plan_tasks(agent.description or DEFAULT_DESCRIPTION, balance)
        await self.ledger.complete_task(plan_id, {"tasks": [t.to_dict() for t in plan]})

        # Token catalog
        self._emit(sink, "Fetching available tokens...")
        fetch_id = await self._begin(
            agent_id, TaskType.FETCH_TOKENS, "Fetch available tokens from Ref Finance", task_ids,
        )
        tokens = await self.catalog.fetch_available_tokens()
        await self.ledger.complete_task(fetch_id, {
            "tokenCount": len(tokens),
            "tokens": [t.to_dict() for t in tokens[:10]],
        })

        # Prediction
        self._emit(sink, f"Analyzing {len(tokens)} tokens...")
        predict_id = await self._begin(
            agent_id, TaskType.PREDICT_TOKEN, "Use AI to analyze tokens and predict best investment", task_ids,
            task_input={"tokenCount": len(tokens)},
        )
        prediction = await self.predictor.predict_token(tokens, agent.description or DEFAULT_GOAL)
        await self.ledger.complete_task(predict_id, prediction.to_dict())

        swap_amount = extract_swap_amount(agent.description, balance, self.config.default_swap_amount)

        # Swap
        self._emit(sink, f"Swapping {swap_amount} NEAR for {prediction.symbol}...")
        swap_id = await self._begin(
            agent_id, TaskType.EXECUTE_SWAP, f"Swap {swap_amount} NEAR for {prediction.symbol}", task_ids,
            task_input={"token": prediction.selected_token, "symbol": prediction.symbol, "amount": swap_amount},
        )
        result = await self.swap_executor.execute_swap(
            agent.account_id,
            loaded.decrypted_private_key,
            prediction.selected_token,
            swap_amount,
        )

        if not result.success:
            await self.ledger.fail_task(swap_id, result.error or "Swap failed", output=result.to_dict())
            self._emit(sink, f"Swap failed: {result.error}")
            return ExecutionResult(success=False, task_ids=task_ids, error=result.error or "Swap failed")

        await self.ledger.complete_task(swap_id, result.to_dict())
        self._emit(sink, f"Swap completed: {result.transaction_hash}")
        logger.info(f"[Pipeline] Agent {agent_id} run completed ({len(task_ids)} tasks)")
        return ExecutionResult(success=True, task_ids=task_ids)
