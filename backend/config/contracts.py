"""
NEAR Contract Configuration
Centralized config for network endpoints and contract ids
Update here when switching between testnet and mainnet
"""

import os
from dataclasses import dataclass

# ============================================
# NETWORKS
# ============================================

TESTNET = "testnet"
MAINNET = "mainnet"

# 1 NEAR = 10^24 yoctoNEAR
NEAR_NOMINATION = 24

# ============================================
# CONTRACT IDS
# ============================================

REF_CONTRACTS = {
    TESTNET: "ref-finance-101.testnet",
    MAINNET: "v2.ref-finance.near",
}

WRAP_NEAR_CONTRACTS = {
    TESTNET: "wrap.testnet",
    MAINNET: "wrap.near",
}

# Ref indexer price lists
TOKEN_PRICE_APIS = {
    TESTNET: "https://testnet-indexer.ref-finance.com/list-token-price",
    MAINNET: "https://indexer.ref.finance/list-token-price",
}

# ============================================
# GAS / DEPOSITS (yoctoNEAR, gas units)
# ============================================

DEFAULT_FUNCTION_CALL_GAS = "30000000000000"   # 30 TGas
SWAP_FUNCTION_CALL_GAS = "180000000000000"     # 180 TGas
STORAGE_DEPOSIT_AMOUNT = "1250000000000000000000"  # 0.00125 NEAR
ONE_YOCTO = "1"

# 0.1 NEAR kept back for gas when checking balances
DEFAULT_GAS_RESERVE = "100000000000000000000000"


@dataclass(frozen=True)
class NetworkConfig:
    """Endpoints and contract ids for one NEAR network"""
    network_id: str
    node_url: str
    helper_url: str
    explorer_url: str
    faucet_url: str
    ref_contract_id: str
    wrap_contract_id: str
    token_price_api: str
    account_suffix: str


def get_network_config(network: str = None) -> NetworkConfig:
    """
    Build network config from environment.
    Defaults to testnet for safety.
    """
    network = (network or os.environ.get("NEAR_NETWORK", TESTNET)).lower()

    if network == MAINNET:
        helper_url = "https://helper.mainnet.near.org"
        return NetworkConfig(
            network_id=MAINNET,
            node_url=os.environ.get("NEAR_RPC_URL", "https://rpc.mainnet.near.org"),
            helper_url=helper_url,
            explorer_url="https://nearblocks.io",
            faucet_url=os.environ.get("NEAR_FAUCET_URL", f"{helper_url}/account"),
            ref_contract_id=os.environ.get("REF_CONTRACT_ID", REF_CONTRACTS[MAINNET]),
            wrap_contract_id=WRAP_NEAR_CONTRACTS[MAINNET],
            token_price_api=os.environ.get("REF_TOKEN_PRICE_API", TOKEN_PRICE_APIS[MAINNET]),
            account_suffix=".near",
        )

    helper_url = "https://helper.testnet.near.org"
    return NetworkConfig(
        network_id=TESTNET,
        node_url=os.environ.get("NEAR_RPC_URL", "https://test.rpc.fastnear.com"),
        helper_url=helper_url,
        explorer_url="https://testnet.nearblocks.io",
        faucet_url=os.environ.get("NEAR_FAUCET_URL", f"{helper_url}/account"),
        ref_contract_id=os.environ.get("REF_CONTRACT_ID", REF_CONTRACTS[TESTNET]),
        wrap_contract_id=WRAP_NEAR_CONTRACTS[TESTNET],
        token_price_api=os.environ.get("REF_TOKEN_PRICE_API", TOKEN_PRICE_APIS[TESTNET]),
        account_suffix=".testnet",
    )


def get_wrap_contract(network: str) -> str:
    """Get wNEAR contract id for a network"""
    return WRAP_NEAR_CONTRACTS.get(network.lower(), WRAP_NEAR_CONTRACTS[TESTNET])


def get_ref_contract(network: str) -> str:
    """Get Ref Finance exchange contract id for a network"""
    return REF_CONTRACTS.get(network.lower(), REF_CONTRACTS[TESTNET])
