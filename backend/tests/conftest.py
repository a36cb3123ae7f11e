"""
Shared fixtures and fakes for the agent pipeline tests.

Fakes are injected through constructors; nothing here patches module state.
"""

import json
import uuid
from typing import Any, Callable, Dict, List, Optional

import pytest

from agents.models import Agent, AgentStatus, SwapResult, TokenInfo
from agents.task_history import TaskHistoryLedger
from infrastructure.errors import LLMError, NearRpcError
from infrastructure.supabase_client import InMemoryAgentStore
from services.agent_keys import SecretStore

TEST_SECRET = "0123456789abcdef" * 4
REF = "ref-finance-101.testnet"
WRAP = "wrap.testnet"
ONE_NEAR = "1000000000000000000000000"


# =============================================================================
# FAKES
# =============================================================================

class FakeRpc:
    """
    In-process stand-in for NearRpcClient.

    views: {(contract_id, method): value or callable(args)}
    """

    def __init__(self, views: Dict = None, accounts: Dict[str, str] = None):
        self.views = views or {}
        self.accounts = accounts or {}
        self.view_calls: List[tuple] = []
        self.tx_status_calls: List[tuple] = []
        self.tx_status_result: Any = None
        self.sent: List[str] = []

    async def view_function(self, contract_id: str, method_name: str, args: Dict = None):
        self.view_calls.append((contract_id, method_name, args))
        key = (contract_id, method_name)
        if key not in self.views:
            raise NearRpcError(f"RPC error: no view {contract_id}.{method_name}")
        value = self.views[key]
        if isinstance(value, Exception):
            raise value
        return value(args or {}) if callable(value) else value

    async def view_account(self, account_id: str):
        if account_id not in self.accounts:
            raise NearRpcError("RPC error: UNKNOWN_ACCOUNT")
        return {"amount": self.accounts[account_id], "storage_usage": 182, "code_hash": "1" * 32,
                "block_height": 100, "block_hash": "hash"}

    async def tx_status(self, tx_hash: str, sender_id: str):
        self.tx_status_calls.append((tx_hash, sender_id))
        result = self.tx_status_result
        if isinstance(result, Exception):
            raise result
        return result(tx_hash) if callable(result) else result


def pool(pool_id_tokens: List[str], kind: str = "SIMPLE_POOL") -> Dict[str, Any]:
    return {"token_account_ids": pool_id_tokens, "pool_kind": kind, "amounts": ["1", "1"], "total_fee": 30}


def pool_registry(pools: List[Dict[str, Any]]) -> Dict:
    """Views for get_number_of_pools/get_pools over a fixed pool list"""
    return {
        (REF, "get_number_of_pools"): len(pools),
        (REF, "get_pools"): lambda args: pools[args["from_index"]:args["from_index"] + args["limit"]],
    }


class FakeLLM:
    """LLMClient stand-in returning canned text or raising"""

    def __init__(self, reply: Optional[str] = None, error: Exception = None):
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []
        self.temperatures: List[float] = []

    async def complete(self, prompt: str, temperature: float = 0.7, max_tokens: int = None) -> str:
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        if self.error:
            raise self.error
        return self.reply


class FakeSigner:
    """Records transactions and hands out sequential hashes"""

    def __init__(self, fail_on: Optional[int] = None):
        self.sent = []
        self.fail_on = fail_on

    async def sign_and_send(self, transaction):
        index = len(self.sent)
        if self.fail_on is not None and index == self.fail_on:
            raise NearRpcError(f"Transaction tx{index} failed")
        self.sent.append(transaction)
        tx_hash = f"tx{index}"
        return tx_hash, {"status": {"SuccessValue": ""}, "transaction": {"hash": tx_hash}}


class FakeSwapExecutor:
    def __init__(self, result: SwapResult):
        self.result = result
        self.calls = []

    async def execute_swap(self, account_id, private_key, selected_token, near_amount):
        self.calls.append((account_id, private_key, selected_token, near_amount))
        return self.result


class FakeProvisioner:
    def __init__(self, funded_amount: str = "200"):
        from services.agent_keys import generate_agent_keypair
        self.keypair = generate_agent_keypair()
        self.funded_amount = funded_amount
        self.calls = 0

    async def create_account(self):
        from agents.models import AccountCreationResult
        self.calls += 1
        return AccountCreationResult(
            account_id=f"agent-test{self.calls}-1700000000000.testnet",
            public_key=self.keypair.public_key,
            private_key=self.keypair.secret_key,
            funded_amount=self.funded_amount,
        )


class FakeBalances:
    def __init__(self, balance: str = "10", error: Exception = None):
        self.balance = balance
        self.error = error

    async def get_balance(self, account_id: str) -> str:
        if self.error:
            raise self.error
        return self.balance


async def seed_agent(store, user_id: str = "user-1", status: AgentStatus = AgentStatus.ACTIVE,
                     secret_store: SecretStore = None, private_key: str = "ed25519:seed") -> Agent:
    """Insert an agent row directly, bypassing account provisioning"""
    agent_id = str(uuid.uuid4())
    encrypted = (secret_store or SecretStore(TEST_SECRET)).encrypt(private_key)
    agent = Agent(
        id=agent_id,
        user_id=user_id,
        name="Stable saver",
        description="swap 0.5 NEAR to a stable token",
        account_id=f"agent-{agent_id[:8]}-1700000000000.testnet",
        public_key="ed25519:pub",
        encrypted_private_key=encrypted,
        balance="10",
        status=status,
    )
    return await store.insert_agent(agent)


async def no_sleep(seconds: float):
    return None


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def secret_store():
    return SecretStore(TEST_SECRET)


@pytest.fixture
def store():
    return InMemoryAgentStore()


@pytest.fixture
def ledger(store):
    return TaskHistoryLedger(store)


@pytest.fixture
def catalog_tokens():
    """Liquid catalog, descending price"""
    return [
        TokenInfo(token_account_id="wbtc.fakes.testnet", symbol="WBTC", price="101700", decimal=8),
        TokenInfo(token_account_id="eth.fakes.testnet", symbol="ETH", price="3850.12", decimal=18),
        TokenInfo(token_account_id="ref.fakes.testnet", symbol="REF", price="0.21", decimal=18),
        TokenInfo(token_account_id="usdt.fakes.testnet", symbol="USDT.e", price="0.999892", decimal=6),
        TokenInfo(token_account_id="dai.fakes.testnet", symbol="DAI", price="0.999892", decimal=18),
    ]


@pytest.fixture
def llm_unavailable():
    return FakeLLM(error=LLMError("LLM error: 503 Service Unavailable", status_code=503))


def json_reply(value: Any) -> str:
    return json.dumps(value)


def make_handler(routes: Dict[str, Callable]):
    """httpx.MockTransport handler dispatching on URL path"""
    import httpx

    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request)

    return handler
