"""
Sale configuration: defaults, YAML files and ``IDO_*`` environment overrides.

Precedence (lowest to highest): dataclass defaults, YAML mapping, environment.

Example YAML::

    target_raise: 50000000000      # quote base units (50,000 at 6 decimals)
    ownership_ratio_bps: 2000      # 20% reserved for the project
    duration_seconds: 2592000
    buy_fee_bps: 30
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from ..core.errors import InvalidInputError
from ..core.fixed_point import BPS_DENOM, MAX_DECIMALS
from ..core.sale_types import SaleParams
from ..core.virtual_amm import MAX_OWNERSHIP_RATIO_BPS, DecimalConfig, calculate_total_supply


DEFAULT_DURATION_SECONDS = 30 * 24 * 60 * 60
MAX_DURATION_SECONDS = 365 * 24 * 60 * 60

ENV_PREFIX = "IDO_"


@dataclass(frozen=True)
class SaleConfig:
    target_raise: int
    ownership_ratio_bps: int = 2_000
    duration_seconds: int = DEFAULT_DURATION_SECONDS
    buy_fee_bps: int = 30
    sell_fee_bps: int = 100
    lp_ratio_bps: int = 7_000
    min_raise_ratio_bps: int = 7_500
    quote_decimals: int = 6
    token_decimals: int = 18

    def __post_init__(self) -> None:
        for f in fields(self):
            v = getattr(self, f.name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise InvalidInputError(f"{f.name} must be an int, got {v!r}")
        if self.target_raise <= 0:
            raise InvalidInputError(f"target_raise must be positive: {self.target_raise}")
        if not (0 < self.duration_seconds <= MAX_DURATION_SECONDS):
            raise InvalidInputError(f"duration_seconds must be in (0, {MAX_DURATION_SECONDS}]")

    def decimals(self) -> DecimalConfig:
        return DecimalConfig(quote_decimals=self.quote_decimals, token_decimals=self.token_decimals)

    def to_params(self) -> SaleParams:
        """Size the allocation and build immutable sale parameters."""
        decimals = self.decimals()
        return SaleParams(
            allocation=calculate_total_supply(self.target_raise, self.ownership_ratio_bps, decimals),
            decimals=decimals,
            buy_fee_bps=self.buy_fee_bps,
            sell_fee_bps=self.sell_fee_bps,
            lp_ratio_bps=self.lp_ratio_bps,
            min_raise_ratio_bps=self.min_raise_ratio_bps,
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


# (field, lo, hi) bounds for environment overrides.
_ENV_BOUNDS = {
    "target_raise": (1, 10**30),
    "ownership_ratio_bps": (1, MAX_OWNERSHIP_RATIO_BPS),
    "duration_seconds": (1, MAX_DURATION_SECONDS),
    "buy_fee_bps": (0, BPS_DENOM),
    "sell_fee_bps": (0, BPS_DENOM),
    "lp_ratio_bps": (0, BPS_DENOM),
    "min_raise_ratio_bps": (1, BPS_DENOM),
    "quote_decimals": (0, MAX_DECIMALS),
    "token_decimals": (0, MAX_DECIMALS),
}


def _env_int(env: Mapping[str, str], name: str, default: int, *, lo: int, hi: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        v = int(raw.strip())
    except ValueError:
        return int(default)
    if v < lo:
        return int(lo)
    if v > hi:
        return int(hi)
    return int(v)


def config_from_mapping(obj: Mapping[str, Any]) -> SaleConfig:
    if not isinstance(obj, Mapping):
        raise InvalidInputError("sale config must be a mapping")
    known = {f.name for f in fields(SaleConfig)}
    unknown = sorted(set(obj) - known)
    if unknown:
        raise InvalidInputError(f"unknown sale config keys: {', '.join(map(str, unknown))}")
    if "target_raise" not in obj:
        raise InvalidInputError("sale config requires target_raise")
    return SaleConfig(**dict(obj))


def apply_env_overrides(config: SaleConfig, env: Optional[Mapping[str, str]] = None) -> SaleConfig:
    """Apply clamped ``IDO_<FIELD>`` integer overrides; unparsable values are ignored."""
    env = os.environ if env is None else env
    changes = {}
    for name, (lo, hi) in _ENV_BOUNDS.items():
        key = ENV_PREFIX + name.upper()
        if key in env:
            changes[name] = _env_int(env, key, getattr(config, name), lo=lo, hi=hi)
    return replace(config, **changes) if changes else config


def load_sale_config(
    path: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    **defaults: Any,
) -> SaleConfig:
    """
    Load a ``SaleConfig`` from an optional YAML file plus environment overrides.

    ``defaults`` seed values that the YAML file and environment may override.
    """
    data: dict[str, Any] = dict(defaults)
    if path is not None:
        obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        if obj is None:
            obj = {}
        if not isinstance(obj, Mapping):
            raise InvalidInputError("sale config YAML must be a mapping")
        data.update(obj)

    env = os.environ if env is None else env
    if "target_raise" not in data:
        key = ENV_PREFIX + "TARGET_RAISE"
        lo, hi = _ENV_BOUNDS["target_raise"]
        raised = _env_int(env, key, 0, lo=0, hi=hi)
        if raised < lo:
            raise InvalidInputError(f"target_raise missing (set it in the file or {key})")
        data["target_raise"] = raised

    return apply_env_overrides(config_from_mapping(data), env)
