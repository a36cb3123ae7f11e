"""
Token Catalog
Priced, liquidity-filtered token list for the agent pipeline

Tiers:
1. Ref indexer prices, filtered to tokens with a pool against wNEAR
2. Bundled fallback dataset (indexer down or nothing liquid)
3. Built-in minimal list (fallback dataset unreadable)

The catalog never fails a run: a degraded list beats no list.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from agents.models import TokenInfo
from infrastructure.api_metrics import APICallTimer, APIMetricsTracker
from infrastructure.errors import IndexerError
from services.pool_discovery import PoolDiscovery

logger = logging.getLogger(__name__)

FALLBACK_TOKENS_PATH = Path(__file__).with_name("fallback_tokens.json")

BUILTIN_TOKENS = [
    TokenInfo(token_account_id="wbtc.fakes.testnet", symbol="WBTC", price="101700", decimal=8),
    TokenInfo(token_account_id="usdt.fakes.testnet", symbol="USDT.e", price="0.999892", decimal=6),
    TokenInfo(token_account_id="dai.fakes.testnet", symbol="DAI", price="0.999892", decimal=18),
]


def _price_of(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    # NaN and inf fail this check too
    return price if 0 < price < float("inf") else 0.0


def _decimals_of(value: Any) -> int:
    try:
        return int(value) if value else 18
    except (TypeError, ValueError):
        return 18


def parse_price_map(data: Dict[str, Any]) -> List[TokenInfo]:
    """
    Indexer/fallback map {token_id: {symbol, price, decimal}} -> tokens
    with a positive price, sorted by descending price.
    """
    tokens = []
    for token_account_id, info in (data or {}).items():
        info = info if isinstance(info, dict) else {}
        token = TokenInfo(
            token_account_id=token_account_id,
            symbol=info.get("symbol") or token_account_id.split(".")[0].upper(),
            price=str(info.get("price") or "0"),
            decimal=_decimals_of(info.get("decimal")),
        )
        if _price_of(token.price) > 0:
            tokens.append(token)

    tokens.sort(key=lambda t: _price_of(t.price), reverse=True)
    return tokens


class TokenCatalog:
    """
    Usage:
        catalog = TokenCatalog(discovery, "https://testnet-indexer.ref-finance.com/list-token-price",
                               base_token_id="wrap.testnet")
        tokens = await catalog.fetch_available_tokens()
    """

    def __init__(
        self,
        discovery: PoolDiscovery,
        price_api_url: str,
        base_token_id: str,
        candidate_limit: int = 30,
        max_tokens: int = 15,
        fallback_path: Optional[Path] = None,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[APIMetricsTracker] = None,
    ):
        self.discovery = discovery
        self.price_api_url = price_api_url
        self.base_token_id = base_token_id
        self.candidate_limit = candidate_limit
        self.max_tokens = max_tokens
        self.fallback_path = fallback_path or FALLBACK_TOKENS_PATH
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self.metrics = metrics

    async def aclose(self):
        await self.client.aclose()

    async def fetch_price_list(self) -> List[TokenInfo]:
        """Priced tokens from the indexer; raises IndexerError if unreachable"""
        with APICallTimer(self.metrics, "ref_indexer", "list-token-price") as timer:
            try:
                resp = await self.client.get(self.price_api_url)
            except httpx.HTTPError as e:
                raise IndexerError(f"Failed to fetch tokens: {e}") from e

            timer.status_code = resp.status_code
            if resp.status_code != 200:
                raise IndexerError(f"Failed to fetch tokens: HTTP {resp.status_code}",
                                   status_code=resp.status_code)
            try:
                data = resp.json()
            except ValueError as e:
                raise IndexerError("Indexer returned invalid JSON") from e

        if not isinstance(data, dict):
            raise IndexerError("Indexer returned an unexpected payload")
        return parse_price_map(data)

    async def fetch_available_tokens(self) -> List[TokenInfo]:
        """Up to max_tokens liquid tokens, highest price first"""
        try:
            priced = await self.fetch_price_list()
        except IndexerError as e:
            logger.error(f"[TokenCatalog] Error fetching tokens from indexer: {e}")
            return self.load_fallback_tokens()

        logger.info(f"[TokenCatalog] Found {len(priced)} tokens with prices")

        liquid: List[TokenInfo] = []
        for token in priced[:self.candidate_limit]:
            if token.token_account_id == self.base_token_id:
                continue

            if await self.discovery.has_liquidity(token.token_account_id, self.base_token_id):
                liquid.append(token)
                logger.info(f"[TokenCatalog] {token.symbol} has liquidity pool")
            else:
                logger.debug(f"[TokenCatalog] {token.symbol} has no liquidity pool")

            if len(liquid) >= self.max_tokens:
                break

        logger.info(f"[TokenCatalog] Found {len(liquid)} tokens with liquidity pools")

        if not liquid:
            logger.warning("[TokenCatalog] No tokens with liquidity found, using fallback token list")
            return self.load_fallback_tokens()

        return liquid

    def load_fallback_tokens(self) -> List[TokenInfo]:
        """Bundled dataset; built-in list if it cannot be read"""
        try:
            with open(self.fallback_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("fallback token file must be a JSON object")
            tokens = parse_price_map(data)[:self.max_tokens]
            if not tokens:
                raise ValueError("fallback token file has no priced tokens")
        except (OSError, ValueError) as e:
            logger.error(f"[TokenCatalog] Failed to load fallback tokens: {e}")
            return [TokenInfo(**vars(t)) for t in BUILTIN_TOKENS]

        logger.info(f"[TokenCatalog] Loaded {len(tokens)} tokens from fallback list")
        return tokens
