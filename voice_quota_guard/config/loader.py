"""
Configuration management and loading.

Handles the plan policy table and voice pricing, from YAML or built-in defaults.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Optional

import yaml

from voice_quota_guard.core.plans import PLAN_TABLE, PlanPolicy, PlanTable
from voice_quota_guard.core.pricing import DEFAULT_PRICING, VoicePricing

CONFIG_ENV_VAR = "VOICE_QUOTA_GUARD_CONFIG"
DB_ENV_VAR = "VOICE_QUOTA_GUARD_DB"


@dataclass(frozen=True)
class QuotaConfig:
    """Complete voice quota configuration."""
    plans: PlanTable = field(default_factory=lambda: PLAN_TABLE)
    pricing: VoicePricing = DEFAULT_PRICING


def default_quota_config() -> QuotaConfig:
    """Built-in plan table and pricing."""
    return QuotaConfig()


def load_quota_config(path: Optional[str] = None) -> QuotaConfig:
    """Load and validate quota configuration from a YAML file.

    Strict validation ensures no silent misconfigurations that could
    hand out more voice minutes than a plan pays for. Both top-level
    sections are optional and fall back to the built-in defaults.

    Args:
        path: Path to YAML configuration file, or None for defaults

    Returns:
        Validated QuotaConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return default_quota_config()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Quota config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'plans', 'pricing'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    plans = PLAN_TABLE
    if 'plans' in raw_config:
        plans_data = raw_config['plans']
        if not isinstance(plans_data, dict) or not plans_data:
            raise ValueError("'plans' must be a non-empty dictionary")

        policies = {}
        for tier_name, plan_data in plans_data.items():
            if not isinstance(plan_data, dict):
                raise ValueError(f"Plan '{tier_name}' must be a dictionary")
            policies[str(tier_name).strip().lower()] = _parse_plan_policy(plan_data, f"plans.{tier_name}")
        plans = PlanTable(policies)

    pricing = DEFAULT_PRICING
    if 'pricing' in raw_config:
        pricing_data = raw_config['pricing']
        if not isinstance(pricing_data, dict):
            raise ValueError("'pricing' must be a dictionary")
        pricing = _parse_pricing(pricing_data)

    return QuotaConfig(plans=plans, pricing=pricing)


def _parse_plan_policy(data: Dict, path: str) -> PlanPolicy:
    """Parse and validate one plan policy.

    Args:
        data: Plan configuration data
        path: Path for error messages

    Returns:
        Validated PlanPolicy

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'daily_minutes', 'max_request_seconds', 'requests_per_hour', 'input_share', 'output_share'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    for required in ('daily_minutes', 'max_request_seconds', 'requests_per_hour'):
        if required not in data:
            raise ValueError(f"Missing required '{required}' in {path}")

    values = {}
    for key, value in data.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValueError(f"'{key}' in {path} must be a number >= 0")
        values[key] = value

    if not isinstance(values['requests_per_hour'], int):
        raise ValueError(f"'requests_per_hour' in {path} must be an integer")

    try:
        return PlanPolicy(**values)
    except ValueError as e:
        raise ValueError(f"Invalid plan policy in {path}: {e}")


def _parse_pricing(data: Dict) -> VoicePricing:
    """Parse and validate the pricing section.

    Money values go through str() so YAML floats become exact Decimals.
    """
    money_keys = {'input_cost_per_second', 'output_cost_per_second', 'budgeted_cost_per_minute', 'bonus_threshold'}
    allowed_keys = money_keys | {'currency'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in pricing: {unknown_keys}")

    values = {}
    for key in money_keys & set(data.keys()):
        raw = data[key]
        if isinstance(raw, bool):
            raise ValueError(f"'{key}' in pricing must be a number")
        try:
            values[key] = Decimal(str(raw))
        except InvalidOperation:
            raise ValueError(f"'{key}' in pricing must be a number")

    if 'currency' in data:
        currency = data['currency']
        if not isinstance(currency, str) or not currency.strip():
            raise ValueError("'currency' in pricing must be a non-empty string")
        values['currency'] = currency.strip().upper()

    try:
        return VoicePricing(**values)
    except ValueError as e:
        raise ValueError(f"Invalid pricing: {e}")
