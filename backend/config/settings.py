"""
Pipeline Settings
Tunables for the agent execution pipeline, LLM access and storage.
All values can be overridden from the environment (.env supported).
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from config.contracts import NetworkConfig, get_network_config


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


@dataclass(frozen=True)
class PipelineConfig:
    """Bounds and delays used by the agent pipeline"""
    # Pool scan bounds are best-effort caps on RPC cost
    swap_pool_scan_limit: int = 500
    liquidity_scan_limit: int = 200
    pool_page_size: int = 100

    # Token catalog
    catalog_candidate_limit: int = 30
    catalog_size: int = 15

    # 100 bps = 1% slippage
    slippage_bps: int = 100

    # Finality polling
    finality_poll_attempts: int = 30
    finality_poll_interval: float = 1.0
    post_finality_delay: float = 2.0
    post_wrap_delay: float = 3.0

    default_swap_amount: str = "0.5"
    execution_timeout: float = 60.0

    # Faucet
    faucet_max_retries: int = 5
    faucet_retry_delay: float = 1.0
    faucet_funded_amount: str = "200"


@dataclass(frozen=True)
class LLMConfig:
    """OpenAI-compatible completion endpoint (NEAR AI cloud by default)"""
    endpoint: str = "https://cloud-api.near.ai/v1"
    api_key: str = ""
    model: str = "Qwen/Qwen3-30B-A3B-Instruct-2507"
    timeout: float = 30.0
    planner_temperature: float = 0.7
    predictor_temperature: float = 0.3
    max_tokens: int = 1000


@dataclass(frozen=True)
class Settings:
    network: NetworkConfig
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    keystore_secret: str = ""
    supabase_url: str = ""
    supabase_key: str = ""
    log_level: str = "INFO"


def load_pipeline_config() -> PipelineConfig:
    defaults = PipelineConfig()
    return PipelineConfig(
        swap_pool_scan_limit=_env_int("REF_SWAP_POOL_SCAN_LIMIT", defaults.swap_pool_scan_limit),
        liquidity_scan_limit=_env_int("REF_LIQUIDITY_SCAN_LIMIT", defaults.liquidity_scan_limit),
        pool_page_size=_env_int("REF_POOL_PAGE_SIZE", defaults.pool_page_size),
        catalog_candidate_limit=_env_int("CATALOG_CANDIDATE_LIMIT", defaults.catalog_candidate_limit),
        catalog_size=_env_int("CATALOG_SIZE", defaults.catalog_size),
        slippage_bps=_env_int("SWAP_SLIPPAGE_BPS", defaults.slippage_bps),
        finality_poll_attempts=_env_int("FINALITY_POLL_ATTEMPTS", defaults.finality_poll_attempts),
        finality_poll_interval=_env_float("FINALITY_POLL_INTERVAL", defaults.finality_poll_interval),
        post_finality_delay=_env_float("POST_FINALITY_DELAY", defaults.post_finality_delay),
        post_wrap_delay=_env_float("POST_WRAP_DELAY", defaults.post_wrap_delay),
        default_swap_amount=os.environ.get("DEFAULT_SWAP_AMOUNT", defaults.default_swap_amount),
        execution_timeout=_env_float("AGENT_EXECUTION_TIMEOUT", defaults.execution_timeout),
        faucet_max_retries=_env_int("FAUCET_MAX_RETRIES", defaults.faucet_max_retries),
        faucet_retry_delay=_env_float("FAUCET_RETRY_DELAY", defaults.faucet_retry_delay),
        faucet_funded_amount=os.environ.get("FAUCET_FUNDED_AMOUNT", defaults.faucet_funded_amount),
    )


def load_llm_config() -> LLMConfig:
    defaults = LLMConfig()
    return LLMConfig(
        endpoint=os.environ.get("NEAR_AI_ENDPOINT", defaults.endpoint).rstrip("/"),
        api_key=os.environ.get("NEAR_AI_API_KEY", ""),
        model=os.environ.get("NEAR_AI_MODEL", defaults.model),
        timeout=_env_float("NEAR_AI_TIMEOUT", defaults.timeout),
    )


def load_settings() -> Settings:
    """Load settings once at process start"""
    load_dotenv()
    return Settings(
        network=get_network_config(),
        pipeline=load_pipeline_config(),
        llm=load_llm_config(),
        keystore_secret=os.environ.get("AGENT_KEYSTORE_SECRET", ""),
        supabase_url=os.environ.get("SUPABASE_URL", "").rstrip("/"),
        supabase_key=os.environ.get("SUPABASE_KEY", ""),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
