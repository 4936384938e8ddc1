"""
Configuration loading and the multi-sale registry
"""

from .config import SaleConfig, apply_env_overrides, config_from_mapping, load_sale_config
from .registry import ProtocolStats, SaleRegistry

__all__ = [
    "SaleConfig",
    "apply_env_overrides",
    "config_from_mapping",
    "load_sale_config",
    "ProtocolStats",
    "SaleRegistry",
]
