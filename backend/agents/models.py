"""
Agent Pipeline Data Model
Records persisted per agent plus the transient working data of one run
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class AgentStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DELETED = "deleted"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class TaskType(str, Enum):
    SETUP = "setup"
    PLAN_TASKS = "plan_tasks"
    FETCH_TOKENS = "fetch_tokens"
    ANALYZE_MARKET = "analyze_market"
    PREDICT_TOKEN = "predict_token"
    PREPARE_SWAP = "prepare_swap"
    EXECUTE_SWAP = "execute_swap"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================
# PERSISTED RECORDS
# ============================================

@dataclass
class Agent:
    """One autonomous agent and its NEAR account"""
    id: str
    user_id: str
    name: str
    account_id: str
    public_key: str
    encrypted_private_key: str = field(repr=False)
    description: Optional[str] = None
    balance: str = "0"
    status: AgentStatus = AgentStatus.ACTIVE
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_public_dict(self) -> Dict[str, Any]:
        """Serializable view without key material"""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "accountId": self.account_id,
            "publicKey": self.public_key,
            "balance": self.balance,
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class AgentWithDecryptedKey:
    """Agent plus its raw key; lives only for the duration of one run"""
    agent: Agent
    decrypted_private_key: str = field(repr=False)


@dataclass
class TaskRecord:
    """One step of one pipeline run in the task history ledger"""
    id: str
    agent_id: str
    task_type: str
    task_description: str
    status: TaskStatus = TaskStatus.PENDING
    task_input: Optional[Any] = None
    task_output: Optional[Any] = None
    error_message: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agentId": self.agent_id,
            "taskType": self.task_type,
            "taskDescription": self.task_description,
            "taskInput": self.task_input,
            "taskOutput": self.task_output,
            "status": self.status.value,
            "errorMessage": self.error_message,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "createdAt": _iso(self.created_at),
        }


# ============================================
# TRANSIENT PIPELINE DATA
# ============================================

@dataclass
class TokenInfo:
    token_account_id: str
    symbol: str
    price: str
    decimal: int = 18

    @property
    def price_value(self) -> float:
        try:
            return float(self.price)
        except (TypeError, ValueError):
            return 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PlannedTask:
    type: str
    description: str
    order: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TokenPrediction:
    selected_token: str
    symbol: str
    reasoning: str
    confidence: float
    price: str
    source: str = "llm"  # "llm" | "fallback"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selectedToken": self.selected_token,
            "symbol": self.symbol,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "price": self.price,
            "source": self.source,
        }


@dataclass
class FunctionCallAction:
    method_name: str
    args: Dict[str, Any]
    gas: str
    deposit: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "FunctionCall",
            "params": {
                "methodName": self.method_name,
                "args": self.args,
                "gas": self.gas,
                "deposit": self.deposit,
            },
        }


@dataclass
class NearTransaction:
    """One on-chain call descriptor: receiver plus its actions"""
    receiver_id: str
    actions: List[FunctionCallAction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receiverId": self.receiver_id,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass
class SwapEstimate:
    input_token: str
    output_token: str
    input_amount: str
    expected_output: str
    minimum_output: str
    pool_id: int
    price_impact: str = "0.5"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SwapPlan:
    token_in: str
    amount_in: str
    token_out: str
    min_amount_out: str
    pool_id: int
    transactions: List[NearTransaction] = field(default_factory=list)


@dataclass
class SwapResult:
    success: bool
    transaction_hash: Optional[str] = None
    error: Optional[str] = None
    amount_swapped: Optional[str] = None
    tx_hashes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "transactionHash": self.transaction_hash,
            "amountSwapped": self.amount_swapped,
            "txHashes": list(self.tx_hashes),
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ExecutionResult:
    success: bool
    task_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"success": self.success, "taskIds": list(self.task_ids)}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class AccountCreationResult:
    account_id: str
    public_key: str
    private_key: str = field(repr=False)
    funded_amount: str = "0"

    @property
    def is_funded(self) -> bool:
        try:
            return float(self.funded_amount) > 0
        except ValueError:
            return False
