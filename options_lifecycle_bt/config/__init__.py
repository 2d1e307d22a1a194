"""
Configuration system: schemas and loaders
"""

from .schemas import (
    VixTier,
    RealismConfig,
    RiskConfig,
    RiskLimitsConfig,
    SlippageConfig,
    ExitRulesConfig,
    PnLConfig,
    StrategyConfig,
    EngineConfig,
    CheckpointConfig,
    LoggingConfig,
    RunConfig,
    OPERATIONAL_SECTIONS,
)
from .loader import (
    read_config_file,
    load_config,
    parse_override_value,
    merge_overrides,
    apply_env_overrides,
    apply_cli_overrides,
    load_run_config,
)

__all__ = [
    "VixTier",
    "RealismConfig",
    "RiskConfig",
    "RiskLimitsConfig",
    "SlippageConfig",
    "ExitRulesConfig",
    "PnLConfig",
    "StrategyConfig",
    "EngineConfig",
    "CheckpointConfig",
    "LoggingConfig",
    "RunConfig",
    "OPERATIONAL_SECTIONS",
    "read_config_file",
    "load_config",
    "parse_override_value",
    "merge_overrides",
    "apply_env_overrides",
    "apply_cli_overrides",
    "load_run_config",
]
