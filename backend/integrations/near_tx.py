"""
NEAR Transaction Signing
Borsh encoding of FunctionCall transactions and ed25519 signing for agent accounts
"""

import asyncio
import base64
import hashlib
import json
import logging
import struct
from typing import Any, Dict, List, Tuple

import base58

from agents.models import FunctionCallAction, NearTransaction
from infrastructure.errors import NearRpcError
from infrastructure.near_rpc import NearRpcClient
from services.agent_keys import NearKeyPair

logger = logging.getLogger(__name__)

ED25519_KEY_TYPE = 0
FUNCTION_CALL_ACTION = 2


def _u8(value: int) -> bytes:
    return struct.pack("<B", value)


def _u32(value: int) -> bytes:
    return struct.pack("<I", value)


def _u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def _u128(value: int) -> bytes:
    return value.to_bytes(16, "little")


def _string(value: str) -> bytes:
    encoded = value.encode()
    return _u32(len(encoded)) + encoded


def _bytes(value: bytes) -> bytes:
    return _u32(len(value)) + value


def serialize_action(action: FunctionCallAction) -> bytes:
    args = json.dumps(action.args, separators=(",", ":")).encode()
    return (
        _u8(FUNCTION_CALL_ACTION)
        + _string(action.method_name)
        + _bytes(args)
        + _u64(int(action.gas))
        + _u128(int(action.deposit))
    )


def serialize_transaction(
    signer_id: str,
    public_key: bytes,
    nonce: int,
    receiver_id: str,
    block_hash: bytes,
    actions: List[FunctionCallAction],
) -> bytes:
    """Borsh layout of a NEAR Transaction"""
    if len(block_hash) != 32:
        raise ValueError("block hash must be 32 bytes")

    out = _string(signer_id)
    out += _u8(ED25519_KEY_TYPE) + public_key
    out += _u64(nonce)
    out += _string(receiver_id)
    out += block_hash
    out += _u32(len(actions))
    for action in actions:
        out += serialize_action(action)
    return out


def sign_transaction(
    keypair: NearKeyPair,
    signer_id: str,
    nonce: int,
    receiver_id: str,
    block_hash: bytes,
    actions: List[FunctionCallAction],
) -> Tuple[str, str]:
    """
    Sign a transaction.

    Returns:
        (base64 SignedTransaction, base58 transaction hash)
    """
    tx_bytes = serialize_transaction(
        signer_id, keypair.public_key_bytes, nonce, receiver_id, block_hash, actions
    )
    digest = hashlib.sha256(tx_bytes).digest()
    signature = keypair.sign(digest)

    signed = tx_bytes + _u8(ED25519_KEY_TYPE) + signature
    return base64.b64encode(signed).decode(), base58.b58encode(digest).decode()


class TransactionSigner:
    """
    Signs and submits transactions for one agent account.

    Nonces come from the access key, never below the last nonce this
    signer used; submissions through one signer are serialized so nonces
    never collide within the process.
    """

    def __init__(self, rpc: NearRpcClient, account_id: str, keypair: NearKeyPair):
        self.rpc = rpc
        self.account_id = account_id
        self.keypair = keypair
        self._lock = asyncio.Lock()
        self._last_nonce = 0

    async def sign_and_send(self, transaction: NearTransaction) -> Tuple[str, Dict[str, Any]]:
        """
        Submit one transaction and wait for its outcome.

        Returns:
            (transaction hash, execution outcome)
        """
        async with self._lock:
            access_key = await self.rpc.view_access_key(self.account_id, self.keypair.public_key)
            nonce = max(int(access_key["nonce"]), self._last_nonce) + 1
            block_hash = base58.b58decode(access_key["block_hash"])

            signed_b64, tx_hash = sign_transaction(
                self.keypair,
                self.account_id,
                nonce,
                transaction.receiver_id,
                block_hash,
                transaction.actions,
            )

            logger.info(f"[NearTx] Sending {tx_hash} -> {transaction.receiver_id} "
                        f"({', '.join(a.method_name for a in transaction.actions)})")
            outcome = await self.rpc.send_transaction(signed_b64)
            self._last_nonce = nonce

        failure = NearRpcClient.failure_of(outcome)
        if failure is not None:
            raise NearRpcError(f"Transaction {tx_hash} failed: {json.dumps(failure)[:300]}", details=failure)

        tx_hash = (outcome or {}).get("transaction", {}).get("hash", tx_hash)
        return tx_hash, outcome
