"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for meter configs.
"""

import os
import tempfile
from decimal import Decimal

import pytest
import yaml

from ai_cost_meter.config.loader import (
    load_meter_config,
    parse_meter_config,
    MeterConfig,
    StoreBackend,
    StoreConfig,
)
from ai_cost_meter.core.capacity import ServiceRef


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_data = {
            "tiers": {
                "free": {"daily_request_limit": 5, "cache_enabled": False},
                "Pro": {"cost_per_unit": 0.002},
            },
            "capacity": {"max_instances": 4, "interval_seconds": 120},
            "reporting": {"interval_seconds": 30, "namespace": "Docs/Cost"},
            "store": {"backend": "memory"},
            "cache": {"prefix": "docs"},
            "service": {"cluster": "nlp-cluster", "service": "nlp-api"},
        }

        config = load_meter_config(self._write_config(config_data))

        free = config.tiers.resolve("free")
        assert free.daily_request_limit == 5
        assert free.monthly_request_limit == 100
        assert free.cache_enabled is False
        assert config.tiers.resolve("pro").cost_per_unit == Decimal("0.002")
        assert config.capacity.policy.max_instances == 4
        assert config.capacity.policy.high_cpu == 70.0
        assert config.capacity.interval_seconds == 120.0
        assert config.reporting.interval_seconds == 30.0
        assert config.reporting.namespace == "Docs/Cost"
        assert config.store.backend == StoreBackend.MEMORY
        assert config.cache_prefix == "docs"
        assert config.service == ServiceRef("nlp-cluster", "nlp-api")
        assert config.dimensions == {"ServiceName": "nlp-api", "ClusterName": "nlp-cluster"}

    def test_minimal_config_keeps_defaults(self):
        """Test that omitted sections keep production defaults."""
        config = load_meter_config(self._write_config({"store": {"backend": "sqlite", "path": "x.db"}}))
        defaults = MeterConfig()

        assert config.tiers == defaults.tiers
        assert config.capacity == defaults.capacity
        assert config.store.path == "x.db"
        assert config.service is None
        assert config.dimensions == {}

    def test_missing_file_raises(self):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_meter_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_empty_file_raises(self):
        """Test that an empty file is rejected."""
        path = os.path.join(self.temp_dir, "empty.yaml")
        open(path, 'w').close()
        with pytest.raises(ValueError, match="empty"):
            load_meter_config(path)

    def test_non_mapping_raises(self):
        """Test that a top-level list is rejected."""
        with pytest.raises(ValueError, match="dictionary"):
            load_meter_config(self._write_config(["tiers"]))

    def test_invalid_yaml_raises(self):
        """Test that malformed YAML raises YAMLError."""
        path = os.path.join(self.temp_dir, "bad.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            f.write("tiers: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_meter_config(path)


class TestConfigValidation:
    """Test strict validation of parsed mappings."""

    @pytest.mark.parametrize("raw, message", [
        ({"budget": {}}, "Unknown configuration keys"),
        ({"tiers": {"platinum": {}}}, "Unknown tier"),
        ({"tiers": {"free": {"daily_limit": 5}}}, "Unknown keys in tiers.free"),
        ({"tiers": {"free": {"daily_request_limit": "5"}}}, "must be an integer"),
        ({"tiers": {"free": {"daily_request_limit": True}}}, "must be an integer"),
        ({"tiers": {"free": {"cache_enabled": "yes"}}}, "true or false"),
        ({"tiers": {"free": {"cost_per_unit": "cheap"}}}, "must be a number"),
        ({"tiers": {"free": 5}}, "must be a dictionary"),
        ({"capacity": {"max_cpu": 90}}, "Unknown keys in capacity"),
        ({"capacity": {"high_cpu": "high"}}, "must be a number"),
        ({"reporting": {"every": 10}}, "Unknown keys in reporting"),
        ({"reporting": {"interval_seconds": 0}}, "must be > 0"),
        ({"store": {"backend": "postgres"}}, "must be one of"),
        ({"store": {"backend": "redis"}}, "store.url is required"),
        ({"cache": {"prefix": ""}}, "cannot be empty"),
        ({"service": {"cluster": "c"}}, "requires both"),
    ])
    def test_invalid_config_rejected(self, raw, message):
        with pytest.raises(ValueError, match=message):
            parse_meter_config(raw)

    def test_invalid_tier_values_rejected(self):
        with pytest.raises(ValueError):
            parse_meter_config({"tiers": {"free": {"rate_window_ms": 0}}})

    def test_redis_with_url(self):
        config = parse_meter_config({"store": {"backend": "REDIS", "url": "redis://localhost:6379/0"}})
        assert config.store == StoreConfig(
            backend=StoreBackend.REDIS, url="redis://localhost:6379/0", timeout_seconds=2.0,
        )

    def test_null_section_is_empty(self):
        config = parse_meter_config({"tiers": None, "capacity": None})
        assert config.tiers == MeterConfig().tiers
