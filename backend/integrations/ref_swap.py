"""
Ref Finance Swap Integration
Single-hop swap estimates and transaction lists for the Ref exchange on NEAR
https://guide.ref.finance/

Swaps are ft_transfer_call on the input token, with the swap instructions in `msg`.
"""

import json
import logging
from typing import List, Optional

from agents.models import FunctionCallAction, NearTransaction, SwapEstimate, SwapPlan
from config.contracts import (
    DEFAULT_FUNCTION_CALL_GAS,
    ONE_YOCTO,
    STORAGE_DEPOSIT_AMOUNT,
    SWAP_FUNCTION_CALL_GAS,
)
from infrastructure.errors import NoLiquidityPoolError, SwapValidationError
from infrastructure.near_rpc import NearRpcClient
from services.amounts import normalize_amount
from services.pool_discovery import PoolDiscovery

logger = logging.getLogger(__name__)


class RefSwapPayloadAdapter:
    """
    Wire format of the Ref exchange swap message.
    Must match what the deployed exchange contract parses.
    """

    def build_swap_payload(
        self,
        pool_id: int,
        token_in: str,
        token_out: str,
        amount_in: str,
        min_amount_out: str,
    ) -> str:
        return json.dumps({
            "force": 0,
            "referral_id": None,
            "actions": [
                {
                    "pool_id": pool_id,
                    "token_in": token_in,
                    "token_out": token_out,
                    "amount_in": normalize_amount(amount_in),
                    "min_amount_out": normalize_amount(min_amount_out),
                }
            ],
        })


def apply_slippage(expected_output: str, slippage_bps: int = 100) -> str:
    """Minimum acceptable output, integer floor: expected * (10000 - bps) // 10000"""
    expected = int(normalize_amount(expected_output))
    return str(expected * (10_000 - slippage_bps) // 10_000)


def _validate_pair(token_in: str, token_out: str, amount_in: str) -> str:
    if not token_in or not token_out:
        raise SwapValidationError("Both input and output tokens are required")
    if token_in == token_out:
        raise SwapValidationError(f"Cannot swap {token_in} for itself")

    try:
        amount = normalize_amount(amount_in)
        value = int(amount)
    except ValueError as e:
        raise SwapValidationError(f"Invalid amount: {amount_in}") from e
    if value <= 0:
        raise SwapValidationError(f"Swap amount must be positive: {amount_in}")
    return amount


class RefSwapClient:
    """
    Estimator and transaction builder for Ref swaps

    Usage:
        ref = RefSwapClient(rpc, discovery, "ref-finance-101.testnet", "wrap.testnet")
        estimate = await ref.estimate_swap("wrap.testnet", "1000000000000000000000000", "usdt.fakes.testnet")
        txs = await ref.build_swap_transactions("wrap.testnet", estimate.input_amount,
                                                "usdt.fakes.testnet", estimate.minimum_output,
                                                "agent.testnet", needs_wrapping=False)
    """

    def __init__(
        self,
        rpc: NearRpcClient,
        discovery: PoolDiscovery,
        ref_contract_id: str,
        wrap_contract_id: str,
        slippage_bps: int = 100,
        payload_adapter: Optional[RefSwapPayloadAdapter] = None,
    ):
        self.rpc = rpc
        self.discovery = discovery
        self.ref_contract_id = ref_contract_id
        self.wrap_contract_id = wrap_contract_id
        self.slippage_bps = slippage_bps
        self.payload_adapter = payload_adapter or RefSwapPayloadAdapter()

    async def _require_pool(self, token_in: str, token_out: str) -> int:
        pool_id = await self.discovery.find_pool(token_in, token_out)
        if pool_id is None:
            raise NoLiquidityPoolError(token_in, token_out)
        return pool_id

    async def estimate_swap(self, token_in: str, amount_in: str, token_out: str) -> SwapEstimate:
        """Expected and minimum output for an exact-input swap"""
        amount = _validate_pair(token_in, token_out, amount_in)
        pool_id = await self._require_pool(token_in, token_out)

        logger.info(f"[RefSwap] Estimating {amount} {token_in} -> {token_out} via pool {pool_id}")
        expected = await self.rpc.view_function(
            self.ref_contract_id,
            "get_return",
            {
                "pool_id": pool_id,
                "token_in": token_in,
                "amount_in": amount,
                "token_out": token_out,
            },
        )
        expected_output = normalize_amount(str(expected))
        minimum_output = apply_slippage(expected_output, self.slippage_bps)

        return SwapEstimate(
            input_token=token_in,
            output_token=token_out,
            input_amount=amount,
            expected_output=expected_output,
            minimum_output=minimum_output,
            pool_id=pool_id,
        )

    def wrap_transaction(self, amount: str) -> NearTransaction:
        """near_deposit on the wNEAR contract with the amount attached"""
        return NearTransaction(
            receiver_id=self.wrap_contract_id,
            actions=[FunctionCallAction(
                method_name="near_deposit",
                args={},
                gas=DEFAULT_FUNCTION_CALL_GAS,
                deposit=normalize_amount(amount),
            )],
        )

    def storage_deposit_transaction(self, token_id: str, account_id: Optional[str]) -> NearTransaction:
        """Registration on the output token; refunded if already registered"""
        return NearTransaction(
            receiver_id=token_id,
            actions=[FunctionCallAction(
                method_name="storage_deposit",
                args={"account_id": account_id, "registration_only": True},
                gas=DEFAULT_FUNCTION_CALL_GAS,
                deposit=STORAGE_DEPOSIT_AMOUNT,
            )],
        )

    def swap_transaction(
        self,
        pool_id: int,
        token_in: str,
        amount_in: str,
        token_out: str,
        minimum_output: str,
    ) -> NearTransaction:
        msg = self.payload_adapter.build_swap_payload(pool_id, token_in, token_out, amount_in, minimum_output)
        return NearTransaction(
            receiver_id=token_in,
            actions=[FunctionCallAction(
                method_name="ft_transfer_call",
                args={
                    "receiver_id": self.ref_contract_id,
                    "amount": normalize_amount(amount_in),
                    "msg": msg,
                },
                gas=SWAP_FUNCTION_CALL_GAS,
                deposit=ONE_YOCTO,
            )],
        )

    async def build_swap_transactions(
        self,
        token_in: str,
        amount_in: str,
        token_out: str,
        minimum_output: str,
        account_id: Optional[str],
        needs_wrapping: bool = False,
        wrap_amount: Optional[str] = None,
        pool_id: Optional[int] = None,
    ) -> List[NearTransaction]:
        """
        Ordered call list: [wrap] -> storage_deposit(token_out) -> ft_transfer_call(token_in).
        The order is significant and must be submitted as returned.
        """
        amount = _validate_pair(token_in, token_out, amount_in)
        if pool_id is None:
            pool_id = await self._require_pool(token_in, token_out)

        min_out = normalize_amount(minimum_output)
        transactions: List[NearTransaction] = []

        if needs_wrapping:
            transactions.append(self.wrap_transaction(wrap_amount or amount))

        transactions.append(self.storage_deposit_transaction(token_out, account_id))
        transactions.append(self.swap_transaction(pool_id, token_in, amount, token_out, min_out))

        logger.info(f"[RefSwap] Generated {len(transactions)} transaction(s): "
                    f"{[t.receiver_id for t in transactions]}")
        return transactions

    async def plan_swap(
        self,
        token_in: str,
        amount_in: str,
        token_out: str,
        account_id: str,
        needs_wrapping: bool = False,
    ) -> SwapPlan:
        """Estimate and build in one step"""
        estimate = await self.estimate_swap(token_in, amount_in, token_out)
        transactions = await self.build_swap_transactions(
            token_in,
            estimate.input_amount,
            token_out,
            estimate.minimum_output,
            account_id,
            needs_wrapping=needs_wrapping,
            pool_id=estimate.pool_id,
        )
        return SwapPlan(
            token_in=token_in,
            amount_in=estimate.input_amount,
            token_out=token_out,
            min_amount_out=estimate.minimum_output,
            pool_id=estimate.pool_id,
            transactions=transactions,
        )
