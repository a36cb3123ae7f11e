"""
Integrations Module
On-chain integrations for NEAR agents: transaction signing, Ref Finance swaps
"""

from .ref_swap import RefSwapClient, RefSwapPayloadAdapter
from .swap_executor import SwapExecutor

__all__ = ["RefSwapClient", "RefSwapPayloadAdapter", "SwapExecutor"]
