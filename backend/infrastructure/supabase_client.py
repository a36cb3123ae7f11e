"""
Agent Persistence
Stores agents and their task history.

Two interchangeable stores:
- SupabaseAgentStore: Supabase REST API via httpx (no native SDK dependencies)
- InMemoryAgentStore: process-local dicts for tests and keyless local runs

Tables:
- agents: one row per agent, unique account_id
- agent_task_history: ledger rows, FK agent_id with ON DELETE CASCADE
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from agents.models import Agent, AgentStatus, TaskRecord, TaskStatus
from infrastructure.api_metrics import APIMetricsTracker
from infrastructure.errors import StorageError

logger = logging.getLogger(__name__)

AGENTS_TABLE = "agents"
TASKS_TABLE = "agent_task_history"


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    # Supabase returns "...Z" or "+00:00" offsets; store naive UTC
    value = value.replace("Z", "+00:00")
    parsed = datetime.fromisoformat(value)
    return parsed.replace(tzinfo=None)


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def agent_to_row(agent: Agent) -> Dict[str, Any]:
    return {
        "id": agent.id,
        "user_id": agent.user_id,
        "name": agent.name,
        "description": agent.description,
        "account_id": agent.account_id,
        "public_key": agent.public_key,
        "encrypted_private_key": agent.encrypted_private_key,
        "balance": agent.balance,
        "status": agent.status.value,
        "created_at": _dt(agent.created_at),
        "updated_at": _dt(agent.updated_at),
    }


def row_to_agent(row: Dict[str, Any]) -> Agent:
    return Agent(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row.get("description"),
        account_id=row["account_id"],
        public_key=row["public_key"],
        encrypted_private_key=row["encrypted_private_key"],
        balance=row.get("balance") or "0",
        status=AgentStatus(row.get("status", "active")),
        created_at=_parse_dt(row.get("created_at")) or datetime.utcnow(),
        updated_at=_parse_dt(row.get("updated_at")) or datetime.utcnow(),
    )


def task_to_row(task: TaskRecord) -> Dict[str, Any]:
    return {
        "id": task.id,
        "agent_id": task.agent_id,
        "task_type": task.task_type,
        "task_description": task.task_description,
        "task_input": task.task_input,
        "task_output": task.task_output,
        "status": task.status.value,
        "error_message": task.error_message,
        "started_at": _dt(task.started_at),
        "completed_at": _dt(task.completed_at),
        "created_at": _dt(task.created_at),
    }


def row_to_task(row: Dict[str, Any]) -> TaskRecord:
    return TaskRecord(
        id=row["id"],
        agent_id=row["agent_id"],
        task_type=row["task_type"],
        task_description=row["task_description"],
        task_input=row.get("task_input"),
        task_output=row.get("task_output"),
        status=TaskStatus(row["status"]),
        error_message=row.get("error_message"),
        started_at=_parse_dt(row.get("started_at")) or datetime.utcnow(),
        completed_at=_parse_dt(row.get("completed_at")),
        created_at=_parse_dt(row.get("created_at")) or datetime.utcnow(),
    )


def _serialize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    data = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, (AgentStatus, TaskStatus)):
            value = value.value
        data[key] = value
    return data


class InMemoryAgentStore:
    """Dict-backed store with the same contract as the Supabase store"""

    def __init__(self):
        self._agents: Dict[str, Agent] = {}
        self._tasks: Dict[str, TaskRecord] = {}
        # Insertion sequence breaks created_at ties
        self._task_seq: Dict[str, int] = {}

    @property
    def is_available(self) -> bool:
        return True

    async def aclose(self):
        pass

    # ==========================================
    # AGENTS
    # ==========================================

    async def insert_agent(self, agent: Agent) -> Agent:
        if any(a.account_id == agent.account_id for a in self._agents.values()):
            raise StorageError(f"Duplicate account id: {agent.account_id}")
        self._agents[agent.id] = agent
        return agent

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    async def update_agent(self, agent_id: str, fields: Dict[str, Any]) -> Optional[Agent]:
        agent = self._agents.get(agent_id)
        if agent is None:
            return None
        for key, value in fields.items():
            if key == "status":
                value = AgentStatus(value)
            setattr(agent, key, value)
        return agent

    async def list_agents(self, user_id: str = None, status: AgentStatus = None) -> List[Agent]:
        agents = list(self._agents.values())
        if user_id:
            agents = [a for a in agents if a.user_id == user_id]
        if status:
            agents = [a for a in agents if a.status == status]
        return sorted(agents, key=lambda a: a.created_at)

    async def delete_agent(self, agent_id: str) -> bool:
        """Hard delete; cascades to the agent's task history"""
        if self._agents.pop(agent_id, None) is None:
            return False
        await self.delete_tasks(agent_id)
        return True

    # ==========================================
    # TASK HISTORY
    # ==========================================

    async def insert_task(self, task: TaskRecord) -> TaskRecord:
        if task.agent_id not in self._agents:
            raise StorageError(f"Unknown agent: {task.agent_id}")
        self._tasks[task.id] = task
        self._task_seq[task.id] = len(self._task_seq)
        return task

    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[TaskRecord]:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        for key, value in fields.items():
            if key == "status":
                value = TaskStatus(value)
            setattr(task, key, value)
        return task

    async def get_task(self, task_id: str) -> Optional[TaskRecord]:
        return self._tasks.get(task_id)

    async def list_tasks(self, agent_id: str, limit: int = 50, status: TaskStatus = None) -> List[TaskRecord]:
        tasks = [t for t in self._tasks.values() if t.agent_id == agent_id]
        if status:
            tasks = [t for t in tasks if t.status == status]
        tasks.sort(key=lambda t: (t.created_at, self._task_seq[t.id]), reverse=True)
        return tasks[:limit]

    async def delete_tasks(self, agent_id: str) -> int:
        doomed = [tid for tid, t in self._tasks.items() if t.agent_id == agent_id]
        for tid in doomed:
            del self._tasks[tid]
            self._task_seq.pop(tid, None)
        return len(doomed)


class SupabaseAgentStore:
    """
    Supabase REST API store.

    Unlike read-only caches, ledger writes must not be lost silently:
    any non-2xx response raises StorageError.
    """

    def __init__(
        self,
        url: str,
        key: str,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[APIMetricsTracker] = None,
    ):
        self.url = url.rstrip("/")
        self.key = key
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self.metrics = metrics
        logger.info(f"[Supabase] Configured for {self.url[:40]}...")

    @property
    def is_available(self) -> bool:
        return bool(self.url and self.key)

    async def aclose(self):
        await self.client.aclose()

    def _headers(self) -> dict:
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation"
        }

    async def _request(
        self,
        method: str,
        table: str,
        data: dict = None,
        params: dict = None
    ) -> List[dict]:
        """Make async request to Supabase REST API"""
        url = f"{self.url}/rest/v1/{table}"
        start_time = time.time()

        try:
            resp = await self.client.request(method, url, headers=self._headers(), json=data, params=params)
        except httpx.HTTPError as e:
            if self.metrics:
                self.metrics.record_call('supabase', f'{method} /{table}', 'error', time.time() - start_time,
                                         error_message=str(e)[:200])
            logger.error(f"[Supabase] Request failed: {e}")
            raise StorageError(f"Supabase {method} {table} failed: {e}") from e

        response_time = time.time() - start_time

        if resp.status_code in [200, 201, 204]:
            if self.metrics:
                self.metrics.record_call('supabase', f'{method} /{table}', 'success', response_time)
            return resp.json() if resp.text else []

        if self.metrics:
            self.metrics.record_call('supabase', f'{method} /{table}', 'error', response_time,
                                     error_message=f"HTTP {resp.status_code}", status_code=resp.status_code)
        logger.error(f"[Supabase] {method} {table}: {resp.status_code}")
        raise StorageError(f"Supabase {method} {table}: HTTP {resp.status_code}",
                           status_code=resp.status_code, details=resp.text[:500])

    # ==========================================
    # AGENTS
    # ==========================================

    async def insert_agent(self, agent: Agent) -> Agent:
        rows = await self._request("POST", AGENTS_TABLE, data=agent_to_row(agent))
        return row_to_agent(rows[0]) if rows else agent

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        rows = await self._request(
            "GET", AGENTS_TABLE,
            params={"id": f"eq.{agent_id}", "select": "*", "limit": "1"}
        )
        return row_to_agent(rows[0]) if rows else None

    async def update_agent(self, agent_id: str, fields: Dict[str, Any]) -> Optional[Agent]:
        rows = await self._request(
            "PATCH", AGENTS_TABLE,
            data=_serialize_fields(fields),
            params={"id": f"eq.{agent_id}"}
        )
        return row_to_agent(rows[0]) if rows else None

    async def list_agents(self, user_id: str = None, status: AgentStatus = None) -> List[Agent]:
        params = {"select": "*", "order": "created_at.asc"}
        if user_id:
            params["user_id"] = f"eq.{user_id}"
        if status:
            params["status"] = f"eq.{status.value}"
        rows = await self._request("GET", AGENTS_TABLE, params=params)
        return [row_to_agent(r) for r in rows]

    async def delete_agent(self, agent_id: str) -> bool:
        rows = await self._request("DELETE", AGENTS_TABLE, params={"id": f"eq.{agent_id}"})
        return bool(rows)

    # ==========================================
    # TASK HISTORY
    # ==========================================

    async def insert_task(self, task: TaskRecord) -> TaskRecord:
        rows = await self._request("POST", TASKS_TABLE, data=task_to_row(task))
        return row_to_task(rows[0]) if rows else task

    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[TaskRecord]:
        rows = await self._request(
            "PATCH", TASKS_TABLE,
            data=_serialize_fields(fields),
            params={"id": f"eq.{task_id}"}
        )
        return row_to_task(rows[0]) if rows else None

    async def get_task(self, task_id: str) -> Optional[TaskRecord]:
        rows = await self._request(
            "GET", TASKS_TABLE,
            params={"id": f"eq.{task_id}", "select": "*", "limit": "1"}
        )
        return row_to_task(rows[0]) if rows else None

    async def list_tasks(self, agent_id: str, limit: int = 50, status: TaskStatus = None) -> List[TaskRecord]:
        params = {
            "agent_id": f"eq.{agent_id}",
            "select": "*",
            "order": "created_at.desc",
            "limit": str(limit),
        }
        if status:
            params["status"] = f"eq.{status.value}"
        rows = await self._request("GET", TASKS_TABLE, params=params)
        return [row_to_task(r) for r in rows]

    async def delete_tasks(self, agent_id: str) -> int:
        rows = await self._request("DELETE", TASKS_TABLE, params={"agent_id": f"eq.{agent_id}"})
        return len(rows)


def create_store(url: str = "", key: str = "", metrics: APIMetricsTracker = None):
    """Supabase when configured, otherwise in-memory"""
    if url and key:
        return SupabaseAgentStore(url, key, metrics=metrics)
    logger.warning("[Supabase] Missing SUPABASE_URL or SUPABASE_KEY - using in-memory store")
    return InMemoryAgentStore()
