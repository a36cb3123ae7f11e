"""
NEAR JSON-RPC Client
Async access to NEAR nodes for account state, contract views and transactions.

Uses httpx directly (no native SDK dependencies).
"""

import base64
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from infrastructure.api_metrics import APICallTimer, APIMetricsTracker
from infrastructure.errors import NearRpcError

logger = logging.getLogger(__name__)


def encode_args(args: Optional[Dict[str, Any]]) -> str:
    """JSON-encode view/call args and base64 them for the RPC"""
    if not args:
        return ""
    return base64.b64encode(json.dumps(args).encode()).decode()


def decode_result(raw: List[int]) -> Any:
    """Decode a call_function result (list of byte values) into JSON"""
    text = bytes(raw).decode()
    if not text:
        return None
    return json.loads(text)


class NearRpcClient:
    """
    Thin JSON-RPC client for a NEAR node.

    Usage:
        rpc = NearRpcClient("https://test.rpc.fastnear.com")
        state = await rpc.view_account("alice.testnet")
        pools = await rpc.view_function("ref-finance-101.testnet", "get_pools",
                                        {"from_index": 0, "limit": 100})
    """

    def __init__(
        self,
        node_url: str,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[APIMetricsTracker] = None,
        timeout: float = 30.0,
    ):
        self.node_url = node_url
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.metrics = metrics
        self._request_id = 0

    async def aclose(self):
        await self.client.aclose()

    async def call(self, method: str, params: Any) -> Any:
        """Make a JSON-RPC call and return its `result` member"""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": f"agent-{self._request_id}",
            "method": method,
            "params": params,
        }

        with APICallTimer(self.metrics, "near_rpc", method) as timer:
            try:
                resp = await self.client.post(self.node_url, json=payload)
            except httpx.HTTPError as e:
                raise NearRpcError(f"RPC request failed: {e}") from e

            timer.status_code = resp.status_code
            if resp.status_code != 200 and not resp.text:
                raise NearRpcError(f"RPC HTTP {resp.status_code}", status_code=resp.status_code)

            try:
                data = resp.json()
            except ValueError as e:
                raise NearRpcError(f"RPC returned invalid JSON (HTTP {resp.status_code})",
                                   status_code=resp.status_code) from e

            if data.get("error"):
                error = data["error"]
                cause = error.get("cause", {}) if isinstance(error, dict) else {}
                message = (
                    cause.get("name")
                    or (error.get("data") if isinstance(error, dict) else None)
                    or (error.get("message") if isinstance(error, dict) else None)
                    or str(error)
                )
                raise NearRpcError(f"RPC error: {message}", status_code=resp.status_code, details=error)

            result = data.get("result")
            # Older nodes report view failures inside the result
            if isinstance(result, dict) and result.get("error"):
                raise NearRpcError(f"RPC error: {result['error']}", details=result)

            return result

    async def query(self, request: Dict[str, Any]) -> Dict[str, Any]:
        params = {"finality": "final", **request}
        return await self.call("query", params)

    async def view_account(self, account_id: str) -> Dict[str, Any]:
        """Account state: amount (yocto), locked, storage_usage, code_hash, block info"""
        return await self.query({"request_type": "view_account", "account_id": account_id})

    async def view_function(self, contract_id: str, method_name: str, args: Dict[str, Any] = None) -> Any:
        """Call a read-only contract method and JSON-decode its return value"""
        result = await self.query({
            "request_type": "call_function",
            "account_id": contract_id,
            "method_name": method_name,
            "args_base64": encode_args(args),
        })
        return decode_result(result.get("result", []))

    async def view_access_key(self, account_id: str, public_key: str) -> Dict[str, Any]:
        """Access key info: nonce, permission, block_hash"""
        # Final state can lag the nonce of a just-committed transaction
        return await self.query({
            "request_type": "view_access_key",
            "account_id": account_id,
            "public_key": public_key,
            "finality": "optimistic",
        })

    async def send_transaction(self, signed_tx_b64: str) -> Dict[str, Any]:
        """Submit a signed transaction and wait for its execution outcome"""
        return await self.call("broadcast_tx_commit", [signed_tx_b64])

    async def tx_status(self, tx_hash: str, sender_id: str) -> Dict[str, Any]:
        """Fetch final execution outcome for a transaction"""
        return await self.call("tx", [tx_hash, sender_id])

    @staticmethod
    def is_success(outcome: Optional[Dict[str, Any]]) -> bool:
        """True when the outcome status carries a SuccessValue"""
        if not outcome:
            return False
        status = outcome.get("status")
        return isinstance(status, dict) and "SuccessValue" in status

    @staticmethod
    def failure_of(outcome: Optional[Dict[str, Any]]) -> Optional[Any]:
        if not outcome:
            return None
        status = outcome.get("status")
        if isinstance(status, dict) and "Failure" in status:
            return status["Failure"]
        return None
