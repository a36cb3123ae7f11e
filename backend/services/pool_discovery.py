"""
Pool Discovery Service
Finds Ref Finance liquidity pools for a token pair by paging the exchange's pool registry

Features:
- Fixed-size pages from index 0
- Configurable scan depth (best-effort bound on RPC cost)
- Fails closed: RPC errors are reported as "no pool found"
"""

import logging
from typing import Any, Dict, List, Optional

from infrastructure.near_rpc import NearRpcClient

logger = logging.getLogger(__name__)


class PoolDiscovery:
    """
    Scans the Ref exchange pool list.

    Usage:
        discovery = PoolDiscovery(rpc, "ref-finance-101.testnet", "wrap.testnet")
        pool_id = await discovery.find_pool("wrap.testnet", "usdt.fakes.testnet")
        ok = await discovery.has_liquidity("usdt.fakes.testnet")
    """

    def __init__(
        self,
        rpc: NearRpcClient,
        ref_contract_id: str,
        base_token_id: str,
        page_size: int = 100,
        swap_scan_limit: int = 500,
        liquidity_scan_limit: int = 200,
    ):
        self.rpc = rpc
        self.ref_contract_id = ref_contract_id
        self.base_token_id = base_token_id
        self.page_size = page_size
        self.swap_scan_limit = swap_scan_limit
        self.liquidity_scan_limit = liquidity_scan_limit

    async def get_number_of_pools(self) -> int:
        return int(await self.rpc.view_function(self.ref_contract_id, "get_number_of_pools"))

    async def get_pools(self, from_index: int, limit: int) -> List[Dict[str, Any]]:
        pools = await self.rpc.view_function(
            self.ref_contract_id,
            "get_pools",
            {"from_index": from_index, "limit": limit},
        )
        return pools or []

    @staticmethod
    def pool_matches(pool: Dict[str, Any], token_a: str, token_b: str) -> bool:
        """A pool matches when its token set holds both ids, in either role"""
        tokens = pool.get("token_account_ids") or []
        return token_a in tokens and token_b in tokens

    async def scan(self, token_a: str, token_b: str, max_pools: int) -> Optional[int]:
        """
        Return the lowest pool index holding both tokens within the first
        `max_pools` pools, or None. Errors propagate to the caller.
        """
        num_pools = await self.get_number_of_pools()
        upper = min(num_pools, max_pools)
        logger.debug(f"[PoolDiscovery] {num_pools} pools, scanning first {upper}")

        for start in range(0, upper, self.page_size):
            pools = await self.get_pools(start, self.page_size)
            for offset, pool in enumerate(pools):
                pool_id = start + offset
                if pool_id >= upper:
                    break
                if self.pool_matches(pool, token_a, token_b):
                    logger.info(f"[PoolDiscovery] Found pool {pool_id} for {token_a} <-> {token_b} "
                                f"({pool.get('pool_kind', 'unknown')})")
                    return pool_id

        return None

    async def find_pool(self, token_a: str, token_b: str, max_pools: int = None) -> Optional[int]:
        """Pool id for a swap pair, or None if none found within the scan bound or on error"""
        try:
            pool_id = await self.scan(token_a, token_b, max_pools or self.swap_scan_limit)
        except Exception as e:
            logger.error(f"[PoolDiscovery] Error finding pool {token_a} <-> {token_b}: {e}")
            return None

        if pool_id is None:
            logger.info(f"[PoolDiscovery] No pool found for {token_a} <-> {token_b}")
        return pool_id

    async def has_liquidity(self, token_id: str, base_token_id: str = None) -> bool:
        """True when a pool between the base asset and token_id exists in the pre-filter range"""
        base = base_token_id or self.base_token_id
        try:
            pool_id = await self.scan(base, token_id, self.liquidity_scan_limit)
        except Exception as e:
            logger.error(f"[PoolDiscovery] Error checking liquidity for {token_id}: {e}")
            return False
        return pool_id is not None
