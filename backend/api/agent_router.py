"""
Agents API Router
Create, manage and run autonomous NEAR trading agents

Endpoints:
- POST   /api/agents                 - create agent (account + funding)
- GET    /api/agents                 - list owner's active agents
- GET    /api/agents/{id}            - agent details
- PATCH  /api/agents/{id}            - update name/description/status
- DELETE /api/agents/{id}            - soft delete
- POST   /api/agents/{id}/execute    - run the pipeline once
- GET    /api/agents/{id}/tasks      - task history, newest first
- DELETE /api/agents/{id}/tasks      - clear task history
- GET    /api/agents/{id}/balance    - on-chain balance

Owner identity comes from the X-User-Id header. Key material is never returned.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel

from agents.models import AgentStatus
from infrastructure.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["Agents"])

# ============================================
# MODELS
# ============================================

class CreateAgentRequest(BaseModel):
    name: str
    description: Optional[str] = None


class UpdateAgentRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[AgentStatus] = None


# ============================================
# DEPENDENCIES
# ============================================

def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


async def _require_agent(container: ServiceContainer, agent_id: str, user_id: str):
    agent = await container.agent_service.get_agent(agent_id, user_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent


# ============================================
# AGENTS
# ============================================

@router.post("")
async def create_agent(
    body: CreateAgentRequest,
    user_id: str = Depends(get_user_id),
    container: ServiceContainer = Depends(get_container),
):
    """Create an agent with a fresh NEAR account, funded from the faucet when possible"""
    try:
        agent = await container.agent_service.create_agent(user_id, body.name, body.description)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"[AgentsAPI] Error creating agent: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create agent: {e}")

    return {"agent": agent.to_public_dict()}


@router.get("")
async def list_agents(
    user_id: str = Depends(get_user_id),
    container: ServiceContainer = Depends(get_container),
):
    agents = await container.agent_service.list_agents(user_id)
    return {"agents": [a.to_public_dict() for a in agents]}


@router.get("/{agent_id}")
async def get_agent(
    agent_id: str,
    user_id: str = Depends(get_user_id),
    container: ServiceContainer = Depends(get_container),
):
    agent = await _require_agent(container, agent_id, user_id)
    return {"agent": agent.to_public_dict()}


@router.patch("/{agent_id}")
async def update_agent(
    agent_id: str,
    body: UpdateAgentRequest,
    user_id: str = Depends(get_user_id),
    container: ServiceContainer = Depends(get_container),
):
    try:
        agent = await container.agent_service.update_agent(
            agent_id,
            user_id,
            name=body.name,
            description=body.description,
            status=body.status,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return {"agent": agent.to_public_dict()}


@router.delete("/{agent_id}")
async def delete_agent(
    agent_id: str,
    user_id: str = Depends(get_user_id),
    container: ServiceContainer = Depends(get_container),
):
    if not await container.agent_service.delete_agent(agent_id, user_id):
        raise HTTPException(status_code=404, detail="Agent not found")
    return {"success": True, "message": "Agent deleted successfully"}


# ============================================
# EXECUTION
# ============================================

@router.post("/{agent_id}/execute")
async def execute_agent(
    agent_id: str,
    user_id: str = Depends(get_user_id),
    container: ServiceContainer = Depends(get_container),
):
    """
    Run plan -> fetch tokens -> predict -> swap once.

    Always answers 200 with {success, taskIds, error?}; the task ids
    reference the audit trail up to the point of failure.
    """
    await _require_agent(container, agent_id, user_id)

    logger.info(f"[AgentsAPI] Starting agent execution for agent {agent_id}")
    result = await container.executor.execute_agent(
        agent_id,
        user_id,
        timeout=container.settings.pipeline.execution_timeout,
    )
    return result.to_dict()


# ============================================
# TASK HISTORY
# ============================================

@router.get("/{agent_id}/tasks")
async def list_tasks(
    agent_id: str,
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(get_user_id),
    container: ServiceContainer = Depends(get_container),
):
    await _require_agent(container, agent_id, user_id)
    tasks = await container.ledger.list_tasks(agent_id, limit=limit)
    return {"tasks": [t.to_dict() for t in tasks]}


@router.delete("/{agent_id}/tasks")
async def clear_tasks(
    agent_id: str,
    user_id: str = Depends(get_user_id),
    container: ServiceContainer = Depends(get_container),
):
    await _require_agent(container, agent_id, user_id)
    deleted = await container.ledger.clear_tasks(agent_id)
    return {"success": True, "message": "Task history cleared successfully", "deleted": deleted}


# ============================================
# BALANCE
# ============================================

@router.get("/{agent_id}/balance")
async def get_balance(
    agent_id: str,
    user_id: str = Depends(get_user_id),
    container: ServiceContainer = Depends(get_container),
):
    """Current balance from the chain; also refreshes the cached value"""
    agent = await _require_agent(container, agent_id, user_id)
    balance = await container.agent_service.refresh_balance(agent)
    return {"accountId": agent.account_id, "balance": balance}
