"""
Agent Services
Keys, balances, amounts, faucet provisioning and Ref pool discovery
"""

from .amounts import normalize_amount, parse_near_amount, format_near_amount, has_sufficient_balance
from .agent_keys import NearKeyPair, SecretStore, generate_agent_keypair
from .balance_monitor import BalanceMonitor
from .pool_discovery import PoolDiscovery
from .account_provisioner import AccountProvisioner

__all__ = [
    # Amounts
    "normalize_amount",
    "parse_near_amount",
    "format_near_amount",
    "has_sufficient_balance",

    # Keys
    "NearKeyPair",
    "SecretStore",
    "generate_agent_keypair",

    "BalanceMonitor",
    "PoolDiscovery",
    "AccountProvisioner",
]
