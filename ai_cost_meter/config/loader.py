"""
Configuration management and loading.

Loads tier overrides, scaling thresholds, reporting cadence and storage
settings from a YAML file with strict validation.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ai_cost_meter.core.cache import DEFAULT_KEY_PREFIX
from ai_cost_meter.core.capacity import ScalingPolicy, ServiceRef
from ai_cost_meter.core.tiers import TIER_TABLE, TierTable
from ai_cost_meter.storage.db import DEFAULT_DB_PATH


class StoreBackend(Enum):
    """Supported key-value store backends."""
    MEMORY = "memory"
    SQLITE = "sqlite"
    REDIS = "redis"


@dataclass(frozen=True)
class StoreConfig:
    """Key-value store selection."""
    backend: StoreBackend = StoreBackend.SQLITE
    path: str = DEFAULT_DB_PATH
    url: Optional[str] = None
    timeout_seconds: float = 2.0

    def __post_init__(self):
        """Validate store settings."""
        if self.backend == StoreBackend.REDIS and not self.url:
            raise ValueError("store.url is required for the redis backend")
        if self.timeout_seconds <= 0:
            raise ValueError("store.timeout_seconds must be > 0")


@dataclass(frozen=True)
class ReportingConfig:
    """Metrics reporter cadence and destination namespace."""
    interval_seconds: float = 60.0
    namespace: str = "NLP-Tool-App/CostOptimization"

    def __post_init__(self):
        if self.interval_seconds <= 0:
            raise ValueError("reporting.interval_seconds must be > 0")


@dataclass(frozen=True)
class CapacityConfig:
    """Capacity optimizer cadence and thresholds."""
    policy: ScalingPolicy = ScalingPolicy()
    interval_seconds: float = 300.0

    def __post_init__(self):
        if self.interval_seconds <= 0:
            raise ValueError("capacity.interval_seconds must be > 0")


@dataclass(frozen=True)
class MeterConfig:
    """Complete metering configuration."""
    tiers: TierTable = TIER_TABLE
    capacity: CapacityConfig = CapacityConfig()
    reporting: ReportingConfig = ReportingConfig()
    store: StoreConfig = StoreConfig()
    cache_prefix: str = DEFAULT_KEY_PREFIX
    service: Optional[ServiceRef] = None
    dimensions: Dict[str, str] = field(default_factory=dict)


_TIER_KEYS = {
    "daily_request_limit": int,
    "monthly_request_limit": int,
    "rate_window_ms": int,
    "rate_window_max_requests": int,
    "cache_enabled": bool,
    "cache_ttl_seconds": int,
    "cost_per_unit": Decimal,
}

_CAPACITY_KEYS = {
    "high_cpu": float,
    "low_cpu": float,
    "idle_requests_per_minute": float,
    "busy_requests_per_minute": float,
    "cpu_step": float,
    "requests_step": float,
    "high_cache_hit_rate": float,
    "max_instances": int,
    "window_minutes": int,
}


def load_meter_config(path: str) -> MeterConfig:
    """Load and validate metering configuration from a YAML file.

    Every section is optional; omitted values keep the production
    defaults. Unknown keys are rejected so a typo never silently falls
    back to a default quota.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated MeterConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Meter config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    return parse_meter_config(raw_config)


def parse_meter_config(raw_config: Dict[str, Any]) -> MeterConfig:
    """Validate an already-parsed configuration mapping."""
    allowed_top_keys = {'tiers', 'capacity', 'reporting', 'store', 'cache', 'service'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    tiers = TIER_TABLE
    tiers_data = _section(raw_config, 'tiers')
    if tiers_data:
        overrides = {}
        for tier_name, tier_data in tiers_data.items():
            name = str(tier_name).lower()
            if name not in TIER_TABLE.policies:
                raise ValueError(f"Unknown tier in tiers: {tier_name}")
            if not isinstance(tier_data, dict):
                raise ValueError(f"Tier '{tier_name}' must be a dictionary")
            overrides[name] = _parse_fields(tier_data, _TIER_KEYS, f"tiers.{tier_name}")
        tiers = TIER_TABLE.with_overrides(overrides)

    capacity_data = dict(_section(raw_config, 'capacity'))
    capacity_interval = capacity_data.pop('interval_seconds', 300.0)
    capacity = CapacityConfig(
        policy=ScalingPolicy(**_parse_fields(capacity_data, _CAPACITY_KEYS, "capacity")),
        interval_seconds=_number(capacity_interval, "capacity.interval_seconds"),
    )

    reporting_data = _section(raw_config, 'reporting')
    _reject_unknown(reporting_data, {'interval_seconds', 'namespace'}, "reporting")
    reporting = ReportingConfig(
        interval_seconds=_number(reporting_data.get('interval_seconds', 60.0), "reporting.interval_seconds"),
        namespace=str(reporting_data.get('namespace', ReportingConfig.namespace)),
    )

    store = _parse_store(_section(raw_config, 'store'))

    cache_data = _section(raw_config, 'cache')
    _reject_unknown(cache_data, {'prefix'}, "cache")
    cache_prefix = str(cache_data.get('prefix', DEFAULT_KEY_PREFIX))
    if not cache_prefix:
        raise ValueError("cache.prefix cannot be empty")

    service = None
    dimensions = {}
    service_data = _section(raw_config, 'service')
    if service_data:
        _reject_unknown(service_data, {'cluster', 'service'}, "service")
        if not service_data.get('cluster') or not service_data.get('service'):
            raise ValueError("service requires both 'cluster' and 'service'")
        service = ServiceRef(cluster=str(service_data['cluster']), service=str(service_data['service']))
        dimensions = {"ServiceName": service.service, "ClusterName": service.cluster}

    return MeterConfig(
        tiers=tiers,
        capacity=capacity,
        reporting=reporting,
        store=store,
        cache_prefix=cache_prefix,
        service=service,
        dimensions=dimensions,
    )


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _reject_unknown(data: Dict[str, Any], allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)


def _parse_fields(data: Dict[str, Any], schema: Dict[str, type], path: str) -> Dict[str, Any]:
    """Type-check a flat mapping against a schema of allowed keys.

    Args:
        data: Raw values
        schema: Allowed key -> expected type
        path: Path for error messages

    Returns:
        Dictionary of converted values

    Raises:
        ValueError: If a key is unknown or a value has the wrong type
    """
    _reject_unknown(data, set(schema), path)

    parsed = {}
    for key, value in data.items():
        expected = schema[key]
        if expected is bool:
            if not isinstance(value, bool):
                raise ValueError(f"'{key}' in {path} must be true or false")
            parsed[key] = value
        elif expected is int:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{key}' in {path} must be an integer")
            parsed[key] = value
        elif expected is Decimal:
            if isinstance(value, bool):
                raise ValueError(f"'{key}' in {path} must be a number")
            try:
                parsed[key] = Decimal(str(value))
            except InvalidOperation:
                raise ValueError(f"'{key}' in {path} must be a number")
        else:
            parsed[key] = _number(value, f"{path}.{key}")
    return parsed


def _parse_store(data: Dict[str, Any]) -> StoreConfig:
    _reject_unknown(data, {'backend', 'path', 'url', 'timeout_seconds'}, "store")

    backend_str = data.get('backend', StoreBackend.SQLITE.value)
    if not isinstance(backend_str, str):
        raise ValueError("'backend' in store must be a string")
    try:
        backend = StoreBackend(backend_str.lower())
    except ValueError:
        valid_backends = [b.value for b in StoreBackend]
        raise ValueError(f"'backend' in store must be one of: {valid_backends}")

    return StoreConfig(
        backend=backend,
        path=str(data.get('path', DEFAULT_DB_PATH)),
        url=data.get('url'),
        timeout_seconds=_number(data.get('timeout_seconds', 2.0), "store.timeout_seconds"),
    )
