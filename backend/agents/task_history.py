"""
Task History Ledger
Audit trail of every pipeline step, one record per step per run.

Lifecycle: pending -> running -> completed | failed
completed_at is stamped whenever a record reaches a terminal status.
Records are never retried in place; a new run writes new records.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from agents.models import TaskRecord, TaskStatus

logger = logging.getLogger(__name__)

_UNSET = object()


class TaskHistoryLedger:
    """
    Usage:
        ledger = TaskHistoryLedger(store)
        task = await ledger.create_task(agent_id, "fetch_tokens", "Fetch available tokens from Ref Finance")
        await ledger.start_task(task.id)
        await ledger.update_task(task.id, TaskStatus.COMPLETED, output={"tokenCount": 12})
    """

    def __init__(self, store):
        self.store = store

    async def create_task(
        self,
        agent_id: str,
        task_type: str,
        description: str,
        task_input: Any = None,
    ) -> TaskRecord:
        now = datetime.utcnow()
        task = TaskRecord(
            id=str(uuid.uuid4()),
            agent_id=agent_id,
            task_type=task_type,
            task_description=description,
            task_input=task_input,
            status=TaskStatus.PENDING,
            started_at=now,
            created_at=now,
        )
        created = await self.store.insert_task(task)
        logger.debug(f"[TaskHistory] Created {task_type} task {created.id} for agent {agent_id}")
        return created

    async def update_task(
        self,
        task_id: str,
        status: TaskStatus,
        output: Any = _UNSET,
        error_message: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> Optional[TaskRecord]:
        """
        Transition a task. Terminal statuses get completed_at = now unless
        one is supplied; non-terminal statuses clear it and ignore any
        supplied value.
        """
        status = TaskStatus(status)
        if status.is_terminal:
            completed_at = completed_at or datetime.utcnow()
        else:
            completed_at = None
        fields: Dict[str, Any] = {
            "status": status,
            "error_message": error_message,
            "completed_at": completed_at,
        }
        if output is not _UNSET:
            fields["task_output"] = output

        updated = await self.store.update_task(task_id, fields)
        if updated is None:
            logger.warning(f"[TaskHistory] Task not found: {task_id}")
        return updated

    async def start_task(self, task_id: str) -> Optional[TaskRecord]:
        return await self.update_task(task_id, TaskStatus.RUNNING)

    async def complete_task(self, task_id: str, output: Any = None) -> Optional[TaskRecord]:
        return await self.update_task(task_id, TaskStatus.COMPLETED, output=output)

    async def fail_task(self, task_id: str, error_message: str, output: Any = _UNSET) -> Optional[TaskRecord]:
        return await self.update_task(task_id, TaskStatus.FAILED, output=output, error_message=error_message)

    async def get_task(self, task_id: str) -> Optional[TaskRecord]:
        return await self.store.get_task(task_id)

    async def list_tasks(self, agent_id: str, limit: int = 50, status: TaskStatus = None) -> List[TaskRecord]:
        """Newest first"""
        return await self.store.list_tasks(agent_id, limit=limit, status=status)

    async def clear_tasks(self, agent_id: str) -> int:
        deleted = await self.store.delete_tasks(agent_id)
        logger.info(f"[TaskHistory] Cleared {deleted} task(s) for agent {agent_id}")
        return deleted
