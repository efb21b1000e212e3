"""Configuration loader with sane defaults.

YAML is preferred but JSON is accepted.  Missing keys are filled from
``DEFAULTS`` so the engine boots in offline simulation mode with no config
file at all.  Human-readable amounts (``"1000"``) are converted to scaled
integers by the consumers through :func:`core.fixed_point.to_wad`.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

log = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "assets": [
        {"symbol": "ETH", "decimals": 18},
        {"symbol": "yvETH", "decimals": 18},
    ],
    "pool": {
        "amplification": 100,
        "swap_fee_bps": 4,
        "imbalance_fee_bps": 2,
        "liquid_buffer_bps": 2_000,
        "cooldown_seconds": 0,
    },
    "locked_profit": {"degradation_horizon_seconds": 6 * 60 * 60},
    "strategy": {
        "performance_fee_bps": 1_000,
        "max_loss_bps": 100,
        "fee_recipient": "treasury",
        "harvest_interval_seconds": 60 * 60,
    },
    "vault": {
        "kind": "simulated",
        "initial_price_per_share": "1.0",
        "rpc_url": None,
        "address": None,
    },
    "optimizer": {
        "max_iterations": 20,
        "marginal_step": 10**15,
        "convergence_threshold": 10**12,
        "slippage_tolerance_bps": 50,
        "dry_run": False,
    },
    "simulation": {
        "seed_amounts": ["1000", "1000"],
        "conversion_amount": "100",
        "vault_gain_bps_per_tick": 5,
        "tick_seconds": 60 * 60,
    },
    "logging": {"level": "INFO", "terse": False},
}


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.warning("[config] config file not found: %s; using defaults", path)
        return {}
    if path.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(path.read_text()) or {}
    return json.loads(path.read_text())


def _merge_dict(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dict(out[k], v)
        else:
            out[k] = v
    return out


def load_engine_config(path: str | Path | None) -> Dict[str, Any]:
    """Load configuration file and merge with defaults."""

    raw = _load_file(Path(path)) if path else {}
    if not isinstance(raw, dict):
        raise ValueError(f"config root must be a mapping, got {type(raw).__name__}")
    return _merge_dict(DEFAULTS, raw)


__all__ = ["load_engine_config", "DEFAULTS"]
