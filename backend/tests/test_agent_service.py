"""
Agent Service Tests
=====================

- creation: account + encrypted key + setup ledger entry
- owner scoping on every read and write
- pause / resume / soft delete, balance refresh

Run: python -m pytest tests/test_agent_service.py -v
"""

from unittest.mock import AsyncMock

import pytest

from agents.agent_service import AgentService, validate_agent_name
from agents.models import AgentStatus, TaskStatus
from infrastructure.errors import AgentNotFoundError, NearRpcError

from conftest import FakeBalances, FakeProvisioner


def _service(store, secret_store, ledger, funded_amount="200", balances=None):
    provisioner = FakeProvisioner(funded_amount=funded_amount)
    service = AgentService(store, secret_store, provisioner, ledger, balances or FakeBalances("12.5"))
    return service, provisioner


class TestValidateName:

    def test_trims(self):
        assert validate_agent_name("  Saver ") == "Saver"

    @pytest.mark.parametrize("name", ["", "   ", None, 42])
    def test_required(self, name):
        with pytest.raises(ValueError, match="required"):
            validate_agent_name(name)

    def test_too_long(self):
        with pytest.raises(ValueError):
            validate_agent_name("x" * 256)


class TestCreateAgent:

    @pytest.mark.asyncio
    async def test_funded_agent(self, store, secret_store, ledger):
        service, provisioner = _service(store, secret_store, ledger)

        agent = await service.create_agent("user-1", "Saver", "swap 0.5 NEAR to a stable token")

        assert agent.status == AgentStatus.ACTIVE
        assert agent.balance == "0"
        assert agent.account_id.endswith(".testnet")
        # key is stored encrypted and decrypts back
        assert agent.encrypted_private_key != provisioner.keypair.secret_key
        assert secret_store.decrypt(agent.encrypted_private_key) == provisioner.keypair.secret_key

        [setup] = await ledger.list_tasks(agent.id)
        assert setup.task_type == "setup"
        assert setup.status == TaskStatus.COMPLETED
        assert setup.task_output == {"success": True, "accountId": agent.account_id, "fundedAmount": "200"}
        assert setup.task_input["fundingSource"] == "NEAR Testnet Faucet"

    @pytest.mark.asyncio
    async def test_unfunded_agent_setup_stays_pending(self, store, secret_store, ledger):
        service, _ = _service(store, secret_store, ledger, funded_amount="0")

        agent = await service.create_agent("user-1", "Saver")

        [setup] = await ledger.list_tasks(agent.id)
        assert setup.status == TaskStatus.PENDING
        assert setup.task_input["funded"] is False
        assert setup.task_input["fundedAmount"] == "0"
        assert setup.task_input["fundingSource"] == "Manual funding required"

    @pytest.mark.asyncio
    async def test_invalid_name_creates_nothing(self, store, secret_store, ledger):
        service, provisioner = _service(store, secret_store, ledger)

        with pytest.raises(ValueError):
            await service.create_agent("user-1", " ")

        assert provisioner.calls == 0
        assert await store.list_agents() == []

    @pytest.mark.asyncio
    async def test_ledger_failure_does_not_fail_creation(self, store, secret_store, ledger):
        service, _ = _service(store, secret_store, ledger)
        ledger.create_task = AsyncMock(side_effect=RuntimeError("ledger down"))

        agent = await service.create_agent("user-1", "Saver")

        assert await store.get_agent(agent.id) is not None
        ledger.create_task.assert_awaited_once()


class TestOwnership:

    @pytest.mark.asyncio
    async def test_other_owner_sees_nothing(self, store, secret_store, ledger):
        service, _ = _service(store, secret_store, ledger)
        agent = await service.create_agent("user-1", "Saver")

        assert await service.get_agent(agent.id, "user-2") is None
        assert await service.get_agent_with_private_key(agent.id, "user-2") is None
        assert await service.update_agent(agent.id, "user-2", name="Stolen") is None
        assert await service.delete_agent(agent.id, "user-2") is False
        assert await service.list_agents("user-2") == []
        with pytest.raises(AgentNotFoundError):
            await service.require_agent(agent.id, "user-2")

    @pytest.mark.asyncio
    async def test_decrypted_key(self, store, secret_store, ledger):
        service, provisioner = _service(store, secret_store, ledger)
        agent = await service.create_agent("user-1", "Saver")

        loaded = await service.get_agent_with_private_key(agent.id, "user-1")

        assert loaded.agent.id == agent.id
        assert loaded.decrypted_private_key == provisioner.keypair.secret_key


class TestStatusChanges:

    @pytest.mark.asyncio
    async def test_pause_resume_delete(self, store, secret_store, ledger):
        service, _ = _service(store, secret_store, ledger)
        agent = await service.create_agent("user-1", "Saver")

        assert (await service.pause_agent(agent.id, "user-1")).status == AgentStatus.PAUSED
        assert await service.list_agents("user-1") == []
        assert await service.get_all_active_agents() == []

        assert (await service.resume_agent(agent.id, "user-1")).status == AgentStatus.ACTIVE
        assert len(await service.list_agents("user-1")) == 1

        assert await service.delete_agent(agent.id, "user-1") is True
        # soft delete keeps the record
        assert (await store.get_agent(agent.id)).status == AgentStatus.DELETED
        assert await service.list_agents("user-1") == []

    @pytest.mark.asyncio
    async def test_update_fields(self, store, secret_store, ledger):
        service, _ = _service(store, secret_store, ledger)
        agent = await service.create_agent("user-1", "Saver")
        created_at = agent.updated_at

        updated = await service.update_agent(agent.id, "user-1", name=" Growth ", description=" btc ")

        assert updated.name == "Growth"
        assert updated.description == "btc"
        assert updated.updated_at >= created_at

    @pytest.mark.asyncio
    async def test_update_rejects_empty_name(self, store, secret_store, ledger):
        service, _ = _service(store, secret_store, ledger)
        agent = await service.create_agent("user-1", "Saver")

        with pytest.raises(ValueError):
            await service.update_agent(agent.id, "user-1", name="")


class TestBalance:

    @pytest.mark.asyncio
    async def test_refresh_caches_balance(self, store, secret_store, ledger):
        service, _ = _service(store, secret_store, ledger)
        agent = await service.create_agent("user-1", "Saver")

        assert await service.refresh_balance(agent) == "12.5"
        assert (await store.get_agent(agent.id)).balance == "12.5"

    @pytest.mark.asyncio
    async def test_unreadable_account_reports_zero(self, store, secret_store, ledger):
        balances = FakeBalances(error=NearRpcError("RPC error: UNKNOWN_ACCOUNT"))
        service, _ = _service(store, secret_store, ledger, balances=balances)
        agent = await service.create_agent("user-1", "Saver")

        assert await service.refresh_balance(agent) == "0"
        assert (await store.get_agent(agent.id)).balance == "0"
