"""
Error types for the agent pipeline
"""

from typing import Any, Optional


class AgentPipelineError(Exception):
    """Base class for all pipeline errors"""
    pass


class ConfigurationError(AgentPipelineError):
    """Missing or malformed configuration (secrets, API keys)"""
    pass


class ExternalServiceError(AgentPipelineError):
    """An external collaborator (RPC, faucet, LLM, indexer, storage) failed"""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NearRpcError(ExternalServiceError):
    """NEAR JSON-RPC returned an error or failed outright"""
    pass


class FaucetError(ExternalServiceError):
    pass


class LLMError(ExternalServiceError):
    pass


class IndexerError(ExternalServiceError):
    pass


class StorageError(ExternalServiceError):
    pass


class SwapValidationError(AgentPipelineError):
    """Swap request rejected locally (bad token, self-swap, bad amount)"""
    pass


class NoLiquidityPoolError(SwapValidationError):
    def __init__(self, token_in: str, token_out: str):
        self.token_in = token_in
        self.token_out = token_out
        super().__init__(f"No liquidity pool found for {token_in} <-> {token_out}")


class TransactionNotFinalizedError(AgentPipelineError):
    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Transaction {tx_hash} did not finalize in time")


class AgentNotFoundError(AgentPipelineError):
    def __init__(self, agent_id: str = ""):
        self.agent_id = agent_id
        super().__init__("Agent not found")


class AgentNotActiveError(AgentPipelineError):
    def __init__(self, agent_id: str = "", status: str = ""):
        self.agent_id = agent_id
        self.status = status
        super().__init__("Agent is not active")
