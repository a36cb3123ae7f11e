"""
Account Provisioner
Creates agent NEAR accounts: local keypair + faucet registration/funding

Faucet policy:
- Up to `max_retries` attempts with exponential backoff
- Rate limit (HTTP 429 / "Rate limit") stops retrying immediately
- Exhausted or rate-limited attempts degrade to an unfunded account (fundedAmount "0")
"""

import asyncio
import logging
import secrets
import time
from typing import Awaitable, Callable, Optional, Tuple

import httpx

from agents.models import AccountCreationResult
from infrastructure.api_metrics import APICallTimer, APIMetricsTracker
from services.agent_keys import generate_agent_keypair

logger = logging.getLogger(__name__)


def generate_account_id(suffix: str = ".testnet") -> str:
    """agent-{random}-{timestamp}{suffix}; collision-resistant, not checked on-chain"""
    random_str = secrets.token_hex(4)
    timestamp = int(time.time() * 1000)
    return f"agent-{random_str}-{timestamp}{suffix}"


class AccountProvisioner:
    """
    Usage:
        provisioner = AccountProvisioner(faucet_url)
        account = await provisioner.create_account()
        if not account.is_funded:
            ...  # needs manual funding before it exists on-chain
    """

    def __init__(
        self,
        faucet_url: str,
        account_suffix: str = ".testnet",
        max_retries: int = 5,
        retry_delay: float = 1.0,
        funded_amount: str = "200",
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[APIMetricsTracker] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.faucet_url = faucet_url
        self.account_suffix = account_suffix
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.funded_amount = funded_amount
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self.metrics = metrics
        self._sleep = sleep

    async def fund_from_faucet(self, account_id: str, public_key: str) -> Tuple[bool, bool]:
        """
        Ask the faucet to create and fund the account.

        Returns:
            (success, rate_limited)
        """
        try:
            with APICallTimer(self.metrics, "near_faucet", "create_account") as timer:
                resp = await self.client.post(
                    self.faucet_url,
                    headers={"Content-Type": "application/json", "Accept": "*/*"},
                    json={"newAccountId": account_id, "newAccountPublicKey": public_key},
                )
                timer.status_code = resp.status_code
                if resp.status_code == 429:
                    timer.status = "rate_limited"
                elif resp.status_code >= 400:
                    timer.status = "error"
        except httpx.HTTPError as e:
            logger.error(f"[Faucet] Request error: {e}")
            return False, False

        if resp.status_code >= 400:
            error_text = resp.text
            logger.error(f"[Faucet] Request failed: {resp.status_code} {error_text[:200]}")
            rate_limited = resp.status_code == 429 or "Rate limit" in error_text
            return False, rate_limited

        return True, False

    async def create_account(self) -> AccountCreationResult:
        """Generate keys and register/fund the account, degrading to unfunded"""
        keypair = generate_agent_keypair()
        account_id = generate_account_id(self.account_suffix)

        for attempt in range(self.max_retries):
            logger.info(f"[Faucet] Creating account {account_id} (attempt {attempt + 1}/{self.max_retries})")

            success, rate_limited = await self.fund_from_faucet(account_id, keypair.public_key)

            if success:
                logger.info(f"[Faucet] Created and funded account: {account_id}")
                return AccountCreationResult(
                    account_id=account_id,
                    public_key=keypair.public_key,
                    private_key=keypair.secret_key,
                    funded_amount=self.funded_amount,
                )

            if rate_limited:
                logger.warning(f"[Faucet] Rate limit hit. Creating unfunded account: {account_id}")
                break

            if attempt < self.max_retries - 1:
                delay = self.retry_delay * (2 ** attempt)
                logger.info(f"[Faucet] Retrying in {delay:.1f}s...")
                await self._sleep(delay)
        else:
            logger.warning(f"[Faucet] Failed to fund account after {self.max_retries} attempts: {account_id}")

        logger.warning("[Faucet] Account will need to be manually funded before use")
        return AccountCreationResult(
            account_id=account_id,
            public_key=keypair.public_key,
            private_key=keypair.secret_key,
            funded_amount="0",
        )
