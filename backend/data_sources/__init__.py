"""
Data Sources Package
Token prices from the Ref indexer and LLM completions
"""

from .llm_client import LLMClient, Parsed, Malformed, extract_json
from .token_catalog import TokenCatalog

__all__ = [
    "LLMClient",
    "Parsed",
    "Malformed",
    "extract_json",
    "TokenCatalog",
]
