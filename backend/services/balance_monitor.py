"""
Balance Monitor
Reads spendable balances for agent accounts straight from the chain
"""

import logging
from typing import Any, Dict

from infrastructure.near_rpc import NearRpcClient
from services.amounts import format_near_amount

logger = logging.getLogger(__name__)


class BalanceMonitor:
    """
    Usage:
        monitor = BalanceMonitor(rpc)
        near = await monitor.get_balance("agent-1a2b.testnet")   # "12.5"
    """

    def __init__(self, rpc: NearRpcClient):
        self.rpc = rpc

    async def get_balance_yocto(self, account_id: str) -> str:
        state = await self.rpc.view_account(account_id)
        return str(state.get("amount", "0"))

    async def get_balance(self, account_id: str) -> str:
        """
        Balance in NEAR as a decimal string.

        Unknown accounts and RPC failures both raise NearRpcError.
        """
        try:
            return format_near_amount(await self.get_balance_yocto(account_id))
        except Exception as e:
            logger.error(f"[BalanceMonitor] Error fetching balance for {account_id}: {e}")
            raise

    async def fetch_account_info(self, account_id: str) -> Dict[str, Any]:
        """Detailed account state including balance"""
        state = await self.rpc.view_account(account_id)
        amount = str(state.get("amount", "0"))
        return {
            "accountId": account_id,
            "balance": format_near_amount(amount),
            "balanceYocto": amount,
            "storageUsage": state.get("storage_usage"),
            "codeHash": state.get("code_hash"),
            "blockHeight": state.get("block_height"),
            "blockHash": state.get("block_hash"),
        }

    async def get_token_balance(self, account_id: str, token_id: str, strict: bool = False) -> str:
        """
        Fungible token balance in smallest units.
        Returns "0" on any error unless strict, in which case the error propagates.
        """
        try:
            balance = await self.rpc.view_function(token_id, "ft_balance_of", {"account_id": account_id})
            return str(balance) if balance else "0"
        except Exception as e:
            logger.error(f"[BalanceMonitor] Failed to get {token_id} balance for {account_id}: {e}")
            if strict:
                raise
            return "0"

    async def is_registered(self, token_id: str, account_id: str) -> bool:
        """Whether account_id holds a storage registration on token_id"""
        try:
            balance = await self.rpc.view_function(token_id, "storage_balance_of", {"account_id": account_id})
            return balance is not None
        except Exception as e:
            logger.info(f"[BalanceMonitor] Could not check registration for {account_id} on {token_id}: {e}")
            return False
