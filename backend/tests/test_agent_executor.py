"""
Agent Executor Tests
======================

End-to-end pipeline runs over in-process fakes:
- LLM down -> default plan + keyword fallback, run still succeeds
- swap failure -> exactly one failed ledger entry, run reports failure
- unexpected error -> running stages force-failed
- per-agent serialization and timeout, including a stage cut off before it starts
- no-pool and finality failures raised inside the real swap executor

Run: python -m pytest tests/test_agent_executor.py -v
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from agents.agent_executor import AgentExecutor, extract_swap_amount
from agents.agent_service import AgentService
from agents.models import AgentStatus, SwapResult, TaskStatus
from agents.task_history import TaskHistoryLedger
from agents.task_planner import TaskPlanner
from agents.token_predictor import TokenPredictor
from config.settings import PipelineConfig
from infrastructure.supabase_client import InMemoryAgentStore
from integrations.ref_swap import RefSwapClient
from integrations.swap_executor import SwapExecutor
from services.agent_keys import generate_agent_keypair
from services.balance_monitor import BalanceMonitor
from services.pool_discovery import PoolDiscovery

from conftest import (
    REF,
    WRAP,
    FakeBalances,
    FakeProvisioner,
    FakeRpc,
    FakeSigner,
    FakeSwapExecutor,
    no_sleep,
    pool,
    pool_registry,
    seed_agent,
)


class FakeCatalog:
    def __init__(self, tokens=None, error=None):
        self.tokens = tokens or []
        self.error = error

    async def fetch_available_tokens(self):
        if self.error:
            raise self.error
        return list(self.tokens)


class GatedSwapExecutor:
    """Swap executor that blocks until released, recording overlap"""

    def __init__(self):
        self.active = 0
        self.max_active = 0
        self.release = asyncio.Event()

    async def execute_swap(self, account_id, private_key, selected_token, near_amount):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await self.release.wait()
        self.active -= 1
        return SwapResult(success=True, transaction_hash="tx2", amount_swapped=near_amount,
                          tx_hashes=["tx0", "tx1", "tx2"])


class SlowStartStore(InMemoryAgentStore):
    """Store whose pending -> running write for one task type stalls"""

    def __init__(self, slow_type: str, delay: float = 1.0):
        super().__init__()
        self.slow_type = slow_type
        self.delay = delay

    async def update_task(self, task_id, fields):
        task = await self.get_task(task_id)
        if task and task.task_type == self.slow_type and fields.get("status") == TaskStatus.RUNNING:
            await asyncio.sleep(self.delay)
        return await super().update_task(task_id, fields)


def _wired_swap_executor(pools, tx_status):
    """Real swap stack over FakeRpc/FakeSigner"""
    views = pool_registry(pools)
    views[(REF, "get_return")] = "500000"
    views[(WRAP, "ft_balance_of")] = "499999999999999999999999"
    rpc = FakeRpc(views=views)
    rpc.tx_status_result = tx_status
    signer = FakeSigner()

    executor = SwapExecutor(
        rpc,
        RefSwapClient(rpc, PoolDiscovery(rpc, REF, WRAP), REF, WRAP),
        BalanceMonitor(rpc),
        WRAP,
        config=PipelineConfig(),
        signer_factory=lambda rpc_, account_id, keypair: signer,
        sleep=no_sleep,
    )
    return executor, signer


SWAP_OK = SwapResult(success=True, transaction_hash="tx2", amount_swapped="0.5", tx_hashes=["tx0", "tx1", "tx2"])


def _executor(store, secret_store, ledger, llm, tokens, swap_executor=None, balances=None, catalog=None):
    balances = balances or FakeBalances("10")
    service = AgentService(store, secret_store, FakeProvisioner(), ledger, balances)
    swap_executor = swap_executor or FakeSwapExecutor(SWAP_OK)
    executor = AgentExecutor(
        service,
        ledger,
        TaskPlanner(llm),
        catalog or FakeCatalog(tokens),
        TokenPredictor(llm),
        swap_executor,
        balances,
    )
    return executor, swap_executor


async def _history(ledger, task_ids):
    return [await ledger.get_task(task_id) for task_id in task_ids]


class TestSuccessfulRun:

    @pytest.mark.asyncio
    async def test_llm_down_stable_goal(self, store, secret_store, ledger, catalog_tokens, llm_unavailable):
        """LLM unavailable: default plan, stablecoin fallback, 0.5 NEAR swap"""
        agent = await seed_agent(store, secret_store=secret_store, private_key="ed25519:agent-key")
        executor, swaps = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens)

        result = await executor.execute_agent(agent.id, "user-1")

        assert result.success is True
        assert result.error is None
        tasks = await _history(ledger, result.task_ids)
        assert [t.task_type for t in tasks] == ["plan_tasks", "fetch_tokens", "predict_token", "execute_swap"]
        assert all(t.status == TaskStatus.COMPLETED for t in tasks)
        assert all(t.completed_at is not None for t in tasks)

        plan, fetch, predict, swap = tasks
        assert len(plan.task_output["tasks"]) == 5
        assert plan.task_input == {"description": agent.description, "balance": "10"}
        assert fetch.task_output["tokenCount"] == 5
        assert predict.task_output["selectedToken"] == "usdt.fakes.testnet"
        assert predict.task_output["confidence"] == 0.5
        assert swap.task_description == "Swap 0.5 NEAR for USDT.e"
        assert swap.task_input == {"token": "usdt.fakes.testnet", "symbol": "USDT.e", "amount": "0.5"}
        assert swap.task_output["transactionHash"] == "tx2"

        assert swaps.calls == [(agent.account_id, "ed25519:agent-key", "usdt.fakes.testnet", "0.5")]

    @pytest.mark.asyncio
    async def test_status_messages(self, store, secret_store, ledger, catalog_tokens, llm_unavailable):
        agent = await seed_agent(store)
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens)
        messages = []

        await executor.execute_agent(agent.id, "user-1", status_sink=messages.append)

        assert messages[0] == "Planning tasks..."
        assert messages[-1] == "Swap completed: tx2"

    @pytest.mark.asyncio
    async def test_result_dict(self, store, secret_store, ledger, catalog_tokens, llm_unavailable):
        agent = await seed_agent(store)
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens)

        data = (await executor.execute_agent(agent.id, "user-1")).to_dict()

        assert data["success"] is True
        assert len(data["taskIds"]) == 4
        assert "error" not in data


class TestFailedRuns:

    @pytest.mark.asyncio
    async def test_swap_failure_marks_only_swap_failed(self, store, secret_store, ledger, catalog_tokens,
                                                       llm_unavailable):
        failure = SwapResult(success=False, error="No liquidity pool found for wrap.testnet <-> usdt.fakes.testnet",
                             tx_hashes=["tx0"])
        agent = await seed_agent(store)
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens,
                                swap_executor=FakeSwapExecutor(failure))

        result = await executor.execute_agent(agent.id, "user-1")

        assert result.success is False
        assert "No liquidity pool" in result.error
        tasks = await _history(ledger, result.task_ids)
        failed = [t for t in tasks if t.status == TaskStatus.FAILED]
        assert [t.task_type for t in failed] == ["execute_swap"]
        assert failed[0].error_message == failure.error
        assert failed[0].task_output["txHashes"] == ["tx0"]
        assert [t.status for t in tasks[:3]] == [TaskStatus.COMPLETED] * 3

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_running_stage(self, store, secret_store, ledger, llm_unavailable):
        agent = await seed_agent(store)
        executor, swaps = _executor(store, secret_store, ledger, llm_unavailable, [],
                                    catalog=FakeCatalog(error=RuntimeError("catalog exploded")))

        result = await executor.execute_agent(agent.id, "user-1")

        assert result.success is False
        assert result.error == "catalog exploded"
        plan, fetch = await _history(ledger, result.task_ids)
        assert plan.status == TaskStatus.COMPLETED
        assert fetch.status == TaskStatus.FAILED
        assert fetch.error_message == "catalog exploded"
        assert swaps.calls == []
        assert not any(t.status == TaskStatus.RUNNING for t in await ledger.list_tasks(agent.id))

    @pytest.mark.asyncio
    async def test_unknown_agent(self, store, secret_store, ledger, llm_unavailable):
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, [])

        result = await executor.execute_agent("missing", "user-1")

        assert result.success is False
        assert result.error == "Agent not found"
        assert result.task_ids == []

    @pytest.mark.asyncio
    async def test_other_owner(self, store, secret_store, ledger, llm_unavailable):
        agent = await seed_agent(store, user_id="user-1")
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, [])

        result = await executor.execute_agent(agent.id, "user-2")

        assert result.error == "Agent not found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [AgentStatus.PAUSED, AgentStatus.DELETED])
    async def test_inactive_agent(self, store, secret_store, ledger, llm_unavailable, status):
        agent = await seed_agent(store, status=status)
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, [])

        result = await executor.execute_agent(agent.id, "user-1")

        assert result.success is False
        assert result.error == "Agent is not active"
        assert await ledger.list_tasks(agent.id) == []

    @pytest.mark.asyncio
    async def test_failure_reaches_status_sink(self, store, secret_store, ledger, llm_unavailable):
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, [])
        sink = MagicMock()

        await executor.execute_agent("missing", "user-1", status_sink=sink)

        sink.assert_called_once_with("Agent execution failed: Agent not found")

    @pytest.mark.asyncio
    async def test_broken_sink_does_not_break_run(self, store, secret_store, ledger, catalog_tokens,
                                                  llm_unavailable):
        agent = await seed_agent(store)
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens)

        result = await executor.execute_agent(agent.id, "user-1", status_sink=MagicMock(side_effect=OSError("closed")))

        assert result.success is True


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_runs_of_one_agent_are_serialized(self, store, secret_store, ledger, catalog_tokens,
                                                   llm_unavailable):
        agent = await seed_agent(store)
        gated = GatedSwapExecutor()
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens, swap_executor=gated)

        first = asyncio.ensure_future(executor.execute_agent(agent.id, "user-1"))
        second = asyncio.ensure_future(executor.execute_agent(agent.id, "user-1"))
        for _ in range(50):
            await asyncio.sleep(0)
        assert executor.is_running(agent.id)
        gated.release.set()
        results = await asyncio.gather(first, second)

        assert all(r.success for r in results)
        assert gated.max_active == 1
        assert not executor.is_running(agent.id)
        assert len(await ledger.list_tasks(agent.id)) == 8

    @pytest.mark.asyncio
    async def test_timeout(self, store, secret_store, ledger, catalog_tokens, llm_unavailable):
        agent = await seed_agent(store)
        gated = GatedSwapExecutor()
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens, swap_executor=gated)

        result = await executor.execute_agent(agent.id, "user-1", timeout=0.05)

        assert result.success is False
        assert result.error == "Agent execution timed out after 0.05s"
        swap = await ledger.get_task(result.task_ids[-1])
        assert swap.task_type == "execute_swap"
        assert swap.status == TaskStatus.FAILED
        assert swap.error_message == result.error
        assert not executor.is_running(agent.id)

    @pytest.mark.asyncio
    async def test_timeout_before_stage_starts(self, secret_store, catalog_tokens, llm_unavailable):
        """Deadline hits while fetch_tokens is still being marked running"""
        store = SlowStartStore("fetch_tokens")
        ledger = TaskHistoryLedger(store)
        agent = await seed_agent(store)
        executor, swaps = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens)

        result = await executor.execute_agent(agent.id, "user-1", timeout=0.05)

        assert result.success is False
        plan, fetch = await _history(ledger, result.task_ids)
        assert plan.status == TaskStatus.COMPLETED
        assert fetch.status == TaskStatus.FAILED
        assert fetch.error_message == "Agent execution timed out after 0.05s"
        assert fetch.completed_at is not None
        assert swaps.calls == []
        tasks = await ledger.list_tasks(agent.id)
        assert all(t.status.is_terminal and t.completed_at is not None for t in tasks)


class TestSwapFailuresThroughSwapExecutor:

    @pytest.mark.asyncio
    async def test_no_liquidity_pool(self, store, secret_store, ledger, catalog_tokens, llm_unavailable):
        pools = [pool(["ref.fakes.testnet", f"token{i}.fakes.testnet"]) for i in range(300)]
        swap_executor, signer = _wired_swap_executor(pools, {"status": {"SuccessValue": ""}})
        agent = await seed_agent(store, secret_store=secret_store,
                                 private_key=generate_agent_keypair().secret_key)
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens,
                                swap_executor=swap_executor)

        result = await executor.execute_agent(agent.id, "user-1")

        assert result.success is False
        assert result.error.startswith("No liquidity pool found")
        tasks = await _history(ledger, result.task_ids)
        assert [t.status for t in tasks[:3]] == [TaskStatus.COMPLETED] * 3
        [failed] = [t for t in tasks if t.status == TaskStatus.FAILED]
        assert failed.task_type == "execute_swap"
        assert failed.error_message == result.error
        # wrap went through before the pool lookup
        assert failed.task_output["txHashes"] == ["tx0"]
        assert [tx.actions[0].method_name for tx in signer.sent] == ["near_deposit"]

    @pytest.mark.asyncio
    async def test_finality_timeout(self, store, secret_store, ledger, catalog_tokens, llm_unavailable):
        pools = [pool([WRAP, "usdt.fakes.testnet"])]
        swap_executor, signer = _wired_swap_executor(pools, None)
        agent = await seed_agent(store, secret_store=secret_store,
                                 private_key=generate_agent_keypair().secret_key)
        executor, _ = _executor(store, secret_store, ledger, llm_unavailable, catalog_tokens,
                                swap_executor=swap_executor)

        result = await executor.execute_agent(agent.id, "user-1")

        assert result.success is False
        assert result.error == "Transaction tx1 did not finalize in time"
        tasks = await _history(ledger, result.task_ids)
        assert [t.status for t in tasks[:3]] == [TaskStatus.COMPLETED] * 3
        [failed] = [t for t in tasks if t.status == TaskStatus.FAILED]
        assert failed.task_type == "execute_swap"
        assert failed.task_output["txHashes"] == ["tx0", "tx1"]
        # swap itself never submitted
        assert len(signer.sent) == 2


class TestExtractSwapAmount:

    @pytest.mark.parametrize("description,expected", [
        ("swap 0.5 NEAR to a stable token", "0.5"),
        ("Use maximum 2 NEAR, swap 1 NEAR first", "2"),
        ("max 1.5 near into btc", "1.5"),
        ("buy with 3 NEAR tokens", "3"),
        ("invest 4near", "4"),
    ])
    def test_patterns(self, description, expected):
        assert extract_swap_amount(description, "10") == expected

    def test_above_balance_uses_default(self):
        assert extract_swap_amount("swap 50 NEAR", "10") == "0.5"

    def test_later_pattern_when_first_exceeds_balance(self):
        assert extract_swap_amount("maximum 50 NEAR, swap 2 NEAR", "10") == "2"

    def test_zero_uses_default(self):
        assert extract_swap_amount("swap 0 NEAR", "10") == "0.5"

    def test_no_amount(self):
        assert extract_swap_amount("find the best token", "10") == "0.5"
        assert extract_swap_amount(None, "10", default="0.25") == "0.25"

    def test_unparsable_balance(self):
        assert extract_swap_amount("swap 1 NEAR", "unknown") == "0.5"
