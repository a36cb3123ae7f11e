"""
Service Container
Builds every pipeline service once at process start and wires them together.
Tests construct the same services directly with fakes instead.
"""

import logging
from dataclasses import dataclass

import httpx

from agents.agent_executor import AgentExecutor
from agents.agent_service import AgentService
from agents.task_history import TaskHistoryLedger
from agents.task_planner import TaskPlanner
from agents.token_predictor import TokenPredictor
from config.settings import Settings
from data_sources.llm_client import LLMClient
from data_sources.token_catalog import TokenCatalog
from infrastructure.api_metrics import APIMetricsTracker
from infrastructure.near_rpc import NearRpcClient
from infrastructure.supabase_client import create_store
from integrations.ref_swap import RefSwapClient
from integrations.swap_executor import SwapExecutor
from services.account_provisioner import AccountProvisioner
from services.agent_keys import SecretStore
from services.balance_monitor import BalanceMonitor
from services.pool_discovery import PoolDiscovery

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    metrics: APIMetricsTracker
    http: httpx.AsyncClient
    store: object
    rpc: NearRpcClient
    llm: LLMClient
    ledger: TaskHistoryLedger
    balances: BalanceMonitor
    agent_service: AgentService
    executor: AgentExecutor

    async def aclose(self):
        await self.store.aclose()
        await self.rpc.aclose()
        await self.llm.aclose()
        await self.http.aclose()


def build_container(settings: Settings) -> ServiceContainer:
    """
    Raises ConfigurationError when the keystore secret is missing or malformed.
    """
    network = settings.network
    pipeline = settings.pipeline

    metrics = APIMetricsTracker()
    http = httpx.AsyncClient(timeout=30.0)

    # Validated here so a bad secret stops startup
    secret_store = SecretStore(settings.keystore_secret)

    store = create_store(settings.supabase_url, settings.supabase_key, metrics=metrics)
    rpc = NearRpcClient(network.node_url, metrics=metrics)
    llm = LLMClient(settings.llm, metrics=metrics)

    discovery = PoolDiscovery(
        rpc,
        network.ref_contract_id,
        network.wrap_contract_id,
        page_size=pipeline.pool_page_size,
        swap_scan_limit=pipeline.swap_pool_scan_limit,
        liquidity_scan_limit=pipeline.liquidity_scan_limit,
    )
    balances = BalanceMonitor(rpc)
    ledger = TaskHistoryLedger(store)

    provisioner = AccountProvisioner(
        network.faucet_url,
        account_suffix=network.account_suffix,
        max_retries=pipeline.faucet_max_retries,
        retry_delay=pipeline.faucet_retry_delay,
        funded_amount=pipeline.faucet_funded_amount,
        client=http,
        metrics=metrics,
    )
    agent_service = AgentService(store, secret_store, provisioner, ledger, balances)

    catalog = TokenCatalog(
        discovery,
        network.token_price_api,
        network.wrap_contract_id,
        candidate_limit=pipeline.catalog_candidate_limit,
        max_tokens=pipeline.catalog_size,
        client=http,
        metrics=metrics,
    )
    ref_swap = RefSwapClient(
        rpc,
        discovery,
        network.ref_contract_id,
        network.wrap_contract_id,
        slippage_bps=pipeline.slippage_bps,
    )
    swap_executor = SwapExecutor(rpc, ref_swap, balances, network.wrap_contract_id, config=pipeline)

    executor = AgentExecutor(
        agent_service,
        ledger,
        TaskPlanner(llm, temperature=settings.llm.planner_temperature),
        catalog,
        TokenPredictor(llm, temperature=settings.llm.predictor_temperature),
        swap_executor,
        balances,
        config=pipeline,
    )

    logger.info(f"[Container] Services ready for {network.network_id} "
                f"(ref={network.ref_contract_id}, rpc={network.node_url})")

    return ServiceContainer(
        settings=settings,
        metrics=metrics,
        http=http,
        store=store,
        rpc=rpc,
        llm=llm,
        ledger=ledger,
        balances=balances,
        agent_service=agent_service,
        executor=executor,
    )
