"""
Tests for the CLI interface.
"""
import os
import tempfile
from unittest.mock import patch, MagicMock

import pytest
from typer.testing import CliRunner

from ai_cost_meter.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_DENIED, EXIT_CODE_FAIL
from ai_cost_meter.core.recommendations import Priority, Recommendation, RecommendationType
from ai_cost_meter.optimizer import CostOptimizer

runner = CliRunner()


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as temp_dir:
        yield os.path.join(temp_dir, "meter.db")


@pytest.fixture
def mock_optimizer():
    """Patch the optimizer factory used by the commands."""
    with patch('ai_cost_meter.cli.main.get_optimizer') as factory:
        optimizer = MagicMock()
        factory.return_value = optimizer
        yield optimizer


class TestCLI:
    """Test CLI commands."""

    def test_no_command_prints_hint(self):
        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_CODE_PASS
        assert "--help" in result.output

    def test_init_creates_database(self, db_path):
        result = runner.invoke(app, ["--db", db_path, "init"])
        assert result.exit_code == EXIT_CODE_PASS
        assert os.path.exists(db_path)
        assert "Database initialized" in result.output

    def test_tiers(self):
        result = runner.invoke(app, ["tiers"])
        assert result.exit_code == EXIT_CODE_PASS
        for name in ("free", "basic", "pro", "enterprise"):
            assert name in result.output

    def test_tiers_with_config(self, tmp_path):
        config = tmp_path / "meter.yaml"
        config.write_text("tiers:\n  free:\n    daily_request_limit: 7\nstore:\n  backend: memory\n")
        result = runner.invoke(app, ["--config", str(config), "tiers"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "7" in result.output

    def test_bad_config_fails(self, tmp_path):
        config = tmp_path / "meter.yaml"
        config.write_text("budget: 5\n")
        result = runner.invoke(app, ["--config", str(config), "tiers"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unknown configuration keys" in result.output

    def test_usage_empty_user(self, db_path):
        result = runner.invoke(app, ["--db", db_path, "usage", "user_1"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Usage for user_1" in result.output
        assert "$0.0000" in result.output

    def test_usage_store_error(self, mock_optimizer):
        mock_optimizer.ledger.get_usage.side_effect = RuntimeError("store down")
        result = runner.invoke(app, ["usage", "user_1"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "store down" in result.output

    def test_check_allowed(self, db_path):
        result = runner.invoke(app, ["--db", db_path, "check", "user_1", "--tier", "pro"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "ALLOWED" in result.output
        assert "Remaining in window: 49" in result.output
        assert "Remaining today: 500" in result.output

    def test_check_denied_on_quota(self, store):
        optimizer = CostOptimizer(store=store)
        for _ in range(10):
            optimizer.track_usage("user_1", "free", "x", 1, 1)

        with patch('ai_cost_meter.cli.main.get_optimizer', return_value=optimizer):
            result = runner.invoke(app, ["check", "user_1"])

        assert result.exit_code == EXIT_CODE_DENIED
        assert "DENIED" in result.output
        assert "LIMIT_EXCEEDED" in result.output

    def test_check_denied_on_rate_limit(self, store):
        optimizer = CostOptimizer(store=store)
        optimizer.should_process_request("user_1", "free", "textGeneration")

        with patch('ai_cost_meter.cli.main.get_optimizer', return_value=optimizer):
            result = runner.invoke(app, ["check", "user_1", "--tier", "free"])

        assert result.exit_code == EXIT_CODE_DENIED
        assert "RATE_LIMITED" in result.output
        assert "Retry after" in result.output

    def test_plan(self):
        result = runner.invoke(app, ["plan", "--cpu", "85", "--rpm", "0"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Target instances: 2 (max 10)" in result.output

    def test_plan_idle_with_max_override(self):
        result = runner.invoke(app, ["plan", "--cpu", "5", "--rpm", "0.2", "--max", "3"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Target instances: 0 (max 3)" in result.output

    def test_recommend_none(self, mock_optimizer):
        mock_optimizer.recommendations.return_value = []
        result = runner.invoke(app, ["recommend", "user_1"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "No recommendations for user_1" in result.output

    def test_recommend_table(self, mock_optimizer):
        mock_optimizer.recommendations.return_value = [
            Recommendation(RecommendationType.CACHE_OPTIMIZATION, Priority.MEDIUM, "Enable caching", 6.0),
        ]
        result = runner.invoke(app, ["recommend", "user_1"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "CACHE_OPTIMIZATION" in result.output
        assert "$6.0000" in result.output
