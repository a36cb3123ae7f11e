"""
Swap Executor
Runs one NEAR -> token swap for an agent account, signing with the agent's own key.

Sequence (strictly forward, no rollback):
1. Wrap NEAR into wNEAR
2. Read back the actual wNEAR balance and swap that
3. Estimate output, build storage_deposit + ft_transfer_call
4. Submit sequentially, waiting for finality between dependent calls

Already-submitted transactions stay final if a later step fails;
a failed swap can leave the agent holding wNEAR.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from agents.models import SwapResult
from config.settings import PipelineConfig
from infrastructure.errors import NearRpcError, TransactionNotFinalizedError
from infrastructure.near_rpc import NearRpcClient
from integrations.near_tx import TransactionSigner
from integrations.ref_swap import RefSwapClient
from services.agent_keys import NearKeyPair
from services.amounts import format_near_amount, parse_near_amount
from services.balance_monitor import BalanceMonitor

logger = logging.getLogger(__name__)


class SwapExecutor:
    """
    Usage:
        executor = SwapExecutor(rpc, ref_swap, balances, "wrap.testnet")
        result = await executor.execute_swap("agent-1a2b.testnet", "ed25519:...",
                                             "usdt.fakes.testnet", "0.5")
    """

    def __init__(
        self,
        rpc: NearRpcClient,
        ref_swap: RefSwapClient,
        balances: BalanceMonitor,
        wrap_contract_id: str,
        config: Optional[PipelineConfig] = None,
        signer_factory: Callable[..., TransactionSigner] = TransactionSigner,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.rpc = rpc
        self.ref_swap = ref_swap
        self.balances = balances
        self.wrap_contract_id = wrap_contract_id
        self.config = config or PipelineConfig()
        self.signer_factory = signer_factory
        self._sleep = sleep

    async def wait_for_finality(self, tx_hash: str, account_id: str):
        """
        Poll tx status until it reports SuccessValue.

        Raises:
            TransactionNotFinalizedError: no success within the poll budget
            NearRpcError: the transaction reports a Failure
        """
        for _ in range(self.config.finality_poll_attempts):
            try:
                outcome = await self.rpc.tx_status(tx_hash, account_id)
            except NearRpcError as e:
                # Not yet visible to the node
                logger.debug(f"[SwapExecutor] {tx_hash} not available yet: {e}")
                outcome = None

            if NearRpcClient.is_success(outcome):
                logger.info(f"[SwapExecutor] Transaction {tx_hash} finalized")
                return

            failure = NearRpcClient.failure_of(outcome)
            if failure is not None:
                raise NearRpcError(f"Transaction {tx_hash} failed", details=failure)

            await self._sleep(self.config.finality_poll_interval)

        raise TransactionNotFinalizedError(tx_hash)

    async def execute_swap(
        self,
        account_id: str,
        private_key: str,
        selected_token: str,
        near_amount: str,
    ) -> SwapResult:
        """Never raises; failures come back as SwapResult(success=False, error=...)"""
        tx_hashes: List[str] = []

        try:
            logger.info(f"[SwapExecutor] Executing swap for {account_id}: {near_amount} NEAR -> {selected_token}")

            try:
                wrap_amount = parse_near_amount(near_amount)
            except ValueError as e:
                raise ValueError("Invalid NEAR amount") from e

            signer = self.signer_factory(self.rpc, account_id, NearKeyPair.from_string(private_key))

            # Step 1: wrap
            wrap_hash, _ = await signer.sign_and_send(self.ref_swap.wrap_transaction(wrap_amount))
            tx_hashes.append(wrap_hash)
            logger.info(f"[SwapExecutor] Wrapped {near_amount} NEAR: {wrap_hash}")

            await self._sleep(self.config.post_wrap_delay)

            # Step 2: actual wNEAR balance is the swap input
            swap_amount = await self.balances.get_token_balance(account_id, self.wrap_contract_id, strict=True)
            logger.info(f"[SwapExecutor] wNEAR balance: {swap_amount} ({format_near_amount(swap_amount)} wNEAR)")

            # Step 3: estimate
            estimate = await self.ref_swap.estimate_swap(self.wrap_contract_id, swap_amount, selected_token)
            logger.info(f"[SwapExecutor] Estimated output: {estimate.expected_output} "
                        f"(min: {estimate.minimum_output})")

            # Step 4: storage_deposit + swap, already wrapped
            transactions = await self.ref_swap.build_swap_transactions(
                self.wrap_contract_id,
                swap_amount,
                selected_token,
                estimate.minimum_output,
                account_id,
                needs_wrapping=False,
                pool_id=estimate.pool_id,
            )

            # Step 5: submit in order
            for i, tx in enumerate(transactions):
                tx_hash, _ = await signer.sign_and_send(tx)
                tx_hashes.append(tx_hash)
                logger.info(f"[SwapExecutor] Transaction {i + 1}/{len(transactions)} sent: {tx_hash}")

                if i < len(transactions) - 1:
                    await self.wait_for_finality(tx_hash, account_id)
                    await self._sleep(self.config.post_finality_delay)

        except Exception as e:
            logger.error(f"[SwapExecutor] Swap execution error: {e}")
            return SwapResult(success=False, error=str(e) or type(e).__name__, tx_hashes=tx_hashes)

        logger.info(f"[SwapExecutor] Swap completed: {tx_hashes}")
        return SwapResult(
            success=True,
            transaction_hash=tx_hashes[-1],
            amount_swapped=near_amount,
            tx_hashes=tx_hashes,
        )
