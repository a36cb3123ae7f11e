"""
Agent Service
Lifecycle of autonomous agents: creation (account + encrypted key),
lookup, updates, pause/resume and soft delete.

Agents are always scoped by owner; a lookup with the wrong user id
behaves exactly like a missing agent.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from agents.models import (
    Agent,
    AgentStatus,
    AgentWithDecryptedKey,
    TaskStatus,
    TaskType,
)
from agents.task_history import TaskHistoryLedger
from infrastructure.errors import AgentNotFoundError
from services.account_provisioner import AccountProvisioner
from services.agent_keys import SecretStore
from services.balance_monitor import BalanceMonitor

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255


def validate_agent_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Agent name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError("Agent name must be less than 255 characters")
    return name.strip()


class AgentService:
    """
    Usage:
        service = AgentService(store, secret_store, provisioner, ledger, balances)
        agent = await service.create_agent(user_id, "Stable saver", "swap 0.5 NEAR to a stable token")
        agents = await service.list_agents(user_id)
    """

    def __init__(
        self,
        store,
        secret_store: SecretStore,
        provisioner: AccountProvisioner,
        ledger: TaskHistoryLedger,
        balances: BalanceMonitor,
    ):
        self.store = store
        self.secret_store = secret_store
        self.provisioner = provisioner
        self.ledger = ledger
        self.balances = balances

    # ==========================================
    # CREATE
    # ==========================================

    async def create_agent(self, user_id: str, name: str, description: Optional[str] = None) -> Agent:
        """
        Create the NEAR account, store the agent with its encrypted key and
        log a setup task. A faucet failure still yields an (unfunded) agent.
        """
        name = validate_agent_name(name)
        description = description.strip() if description else description

        logger.info("[AgentService] Creating NEAR account for agent...")
        account = await self.provisioner.create_account()
        logger.info(f"[AgentService] NEAR account created: {account.account_id}")

        now = datetime.utcnow()
        agent = Agent(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            description=description,
            account_id=account.account_id,
            public_key=account.public_key,
            encrypted_private_key=self.secret_store.encrypt(account.private_key),
            balance="0",
            status=AgentStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        agent = await self.store.insert_agent(agent)

        try:
            await self._log_setup_task(agent, account.funded_amount, account.is_funded)
        except Exception as e:
            # Creation stands even if the audit entry cannot be written
            logger.error(f"[AgentService] Failed to log account creation task: {e}")

        return agent

    async def _log_setup_task(self, agent: Agent, funded_amount: str, is_funded: bool):
        if is_funded:
            description = "Initial funding from NEAR testnet faucet"
            message = f"Agent account created and funded with {funded_amount} NEAR from testnet faucet"
            funding_source = "NEAR Testnet Faucet"
        else:
            description = "Account created (awaiting manual funding)"
            message = ("Account keys generated. Please send NEAR to this account to create it "
                       "on-chain and enable agent execution.")
            funding_source = "Manual funding required"

        task = await self.ledger.create_task(
            agent.id,
            TaskType.SETUP.value,
            description,
            task_input={
                "success": True,
                "accountId": agent.account_id,
                "message": message,
                "fundingSource": funding_source,
                "funded": is_funded,
                "fundedAmount": funded_amount,
            },
        )

        # Unfunded accounts stay pending until someone funds them
        if is_funded:
            await self.ledger.update_task(
                task.id,
                TaskStatus.COMPLETED,
                output={"success": True, "accountId": agent.account_id, "fundedAmount": funded_amount},
            )
        logger.info(f"[AgentService] Account creation task logged for agent: {agent.id}")

    # ==========================================
    # READ
    # ==========================================

    async def list_agents(self, user_id: str) -> List[Agent]:
        """Active agents of one owner, oldest first"""
        return await self.store.list_agents(user_id=user_id, status=AgentStatus.ACTIVE)

    async def get_agent(self, agent_id: str, user_id: str) -> Optional[Agent]:
        agent = await self.store.get_agent(agent_id)
        if agent is None or agent.user_id != user_id:
            return None
        return agent

    async def require_agent(self, agent_id: str, user_id: str) -> Agent:
        agent = await self.get_agent(agent_id, user_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    async def get_agent_with_private_key(self, agent_id: str, user_id: str) -> Optional[AgentWithDecryptedKey]:
        agent = await self.get_agent(agent_id, user_id)
        if agent is None:
            return None
        return AgentWithDecryptedKey(
            agent=agent,
            decrypted_private_key=self.secret_store.decrypt(agent.encrypted_private_key),
        )

    async def get_all_active_agents(self) -> List[Agent]:
        return await self.store.list_agents(status=AgentStatus.ACTIVE)

    # ==========================================
    # UPDATE
    # ==========================================

    async def update_agent(
        self,
        agent_id: str,
        user_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[AgentStatus] = None,
    ) -> Optional[Agent]:
        if await self.get_agent(agent_id, user_id) is None:
            return None

        fields: Dict[str, Any] = {"updated_at": datetime.utcnow()}
        if name is not None:
            fields["name"] = validate_agent_name(name)
        if description is not None:
            fields["description"] = description.strip()
        if status is not None:
            fields["status"] = AgentStatus(status)

        return await self.store.update_agent(agent_id, fields)

    async def pause_agent(self, agent_id: str, user_id: str) -> Optional[Agent]:
        return await self.update_agent(agent_id, user_id, status=AgentStatus.PAUSED)

    async def resume_agent(self, agent_id: str, user_id: str) -> Optional[Agent]:
        return await self.update_agent(agent_id, user_id, status=AgentStatus.ACTIVE)

    async def delete_agent(self, agent_id: str, user_id: str) -> bool:
        """Soft delete; the record and its history stay in storage"""
        return await self.update_agent(agent_id, user_id, status=AgentStatus.DELETED) is not None

    async def update_balance(self, agent_id: str, balance: str):
        await self.store.update_agent(agent_id, {"balance": balance, "updated_at": datetime.utcnow()})

    async def refresh_balance(self, agent: Agent) -> str:
        """Read the chain balance and cache it; "0" when the account cannot be read"""
        try:
            balance = await self.balances.get_balance(agent.account_id)
        except Exception as e:
            logger.warning(f"[AgentService] Could not refresh balance for {agent.account_id}: {e}")
            return "0"

        await self.update_balance(agent.id, balance)
        return balance
