# Config package
from config.contracts import (
    NetworkConfig,
    NEAR_NOMINATION,
    DEFAULT_GAS_RESERVE,
    get_network_config,
    get_wrap_contract,
    get_ref_contract,
)
from config.settings import (
    Settings,
    PipelineConfig,
    LLMConfig,
    load_settings,
)
