"""
Helper utilities
"""

import copy
from typing import Any, Dict

import numpy as np
import yaml

REQUIRED_SECTIONS = ('dataset', 'learning_curve', 'feature_extraction', 'xgboost', 'logging', 'output')
FAILURE_POLICIES = ('abort', 'skip')


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from YAML file"""
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)
    validate_config(config)
    return config


def validate_config(config: Dict[str, Any]):
    """
    Check the configuration for missing sections and out-of-range values.

    Raises:
        ValueError: naming the first offending key
    """
    if not isinstance(config, dict):
        raise ValueError("Configuration must be a mapping")

    for section in REQUIRED_SECTIONS:
        if section not in config:
            raise ValueError(f"Configuration is missing section '{section}'")

    lc_config = config['learning_curve']
    for key in ('num_folds', 'portions', 'fold_seed'):
        if key not in lc_config:
            raise ValueError(f"Configuration is missing 'learning_curve.{key}'")

    if int(lc_config['num_folds']) < 2:
        raise ValueError(f"learning_curve.num_folds must be >= 2, got {lc_config['num_folds']}")

    portions = lc_config['portions']
    if not portions:
        raise ValueError("learning_curve.portions must not be empty")
    for portion in portions:
        if not 0.0 < float(portion) <= 1.0:
            raise ValueError(f"learning_curve.portions values must be in (0, 1], got {portion}")

    policy = lc_config.get('failure_policy', 'abort')
    if policy not in FAILURE_POLICIES:
        raise ValueError(
            f"learning_curve.failure_policy must be one of {FAILURE_POLICIES}, got {policy!r}"
        )


def merge_options(base: Dict[str, Any], overrides: Dict[str, Any] = None) -> Dict[str, Any]:
    """Shallow-merge trainer options over a config section without mutating either"""
    merged = copy.deepcopy(base)
    if overrides:
        merged.update(overrides)
    return merged


def derive_seed(seed: int, *indices: int) -> int:
    """
    Derive an independent sub-seed from a base seed and disambiguating indices.

    Pure function of its arguments, so parallel jobs sampling with
    ``derive_seed(seed, fold)`` are reproducible regardless of execution order.
    """
    # Index count is mixed in so (seed,) and (seed, 0) stay distinct
    entropy = [int(seed) % 2**64, len(indices)] + [int(i) for i in indices]
    state = np.random.SeedSequence(entropy).generate_state(1, dtype=np.uint32)
    return int(state[0])


def format_time(seconds: float) -> str:
    """Format seconds into human-readable time"""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"
