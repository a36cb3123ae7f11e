"""
Task Planner Tests
====================

Run: python -m pytest tests/test_task_planner.py -v
"""

import pytest

from agents.task_planner import DEFAULT_PLAN, TaskPlanner, parse_plan

from conftest import FakeLLM, json_reply


class TestParsePlan:

    def test_sorted_by_order(self):
        tasks = parse_plan([
            {"type": "execute_swap", "description": "swap", "order": 3},
            {"type": "fetch_tokens", "description": "fetch", "order": 1},
            {"type": "predict_token", "description": "pick", "order": 2},
        ])
        assert [t.order for t in tasks] == [1, 2, 3]
        assert tasks[0].type == "fetch_tokens"

    def test_invalid_entries_dropped(self):
        tasks = parse_plan([
            {"type": "fetch_tokens", "description": "fetch", "order": 1},
            {"type": "analyze_market", "order": 2},
            {"description": "no type", "order": 3},
            {"type": "x", "description": "zero order", "order": 0},
            {"type": "x", "description": "string order", "order": "4"},
            {"type": "x", "description": "bool order", "order": True},
            "not-a-dict",
        ])
        assert [t.type for t in tasks] == ["fetch_tokens"]

    def test_non_list(self):
        assert parse_plan({"type": "fetch_tokens"}) == []


class TestPlanTasks:

    @pytest.mark.asyncio
    async def test_fenced_reply(self):
        reply = "```json\n" + json_reply([
            {"type": "predict_token", "description": "pick", "order": 2},
            {"type": "fetch_tokens", "description": "fetch", "order": 1},
        ]) + "\n```"
        llm = FakeLLM(reply)

        tasks = await TaskPlanner(llm).plan_tasks("Swap to a stable token", "10")

        assert [t.type for t in tasks] == ["fetch_tokens", "predict_token"]
        assert llm.temperatures == [0.7]
        assert "Agent Description: Swap to a stable token" in llm.prompts[0]
        assert "Agent Balance: 10 NEAR" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_llm_failure_yields_default(self, llm_unavailable):
        tasks = await TaskPlanner(llm_unavailable).plan_tasks("anything", "1")

        assert [t.to_dict() for t in tasks] == [t.to_dict() for t in DEFAULT_PLAN]

    @pytest.mark.asyncio
    async def test_prose_yields_default(self):
        tasks = await TaskPlanner(FakeLLM("I would first fetch tokens.")).plan_tasks("x", "1")
        assert len(tasks) == 5

    @pytest.mark.asyncio
    async def test_all_invalid_yields_default(self):
        tasks = await TaskPlanner(FakeLLM(json_reply([{"type": "x"}]))).plan_tasks("x", "1")
        assert [t.order for t in tasks] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_default_plan_is_a_copy(self, llm_unavailable):
        tasks = await TaskPlanner(llm_unavailable).plan_tasks("x", "1")
        tasks[0].description = "changed"
        assert DEFAULT_PLAN[0].description == "Fetch available tokens from Ref Finance testnet"
