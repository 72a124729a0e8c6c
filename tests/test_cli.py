"""
Tests for the CLI interface.
"""
import json
import os
import shutil
import tempfile
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from voice_quota_guard.cli.main import app, EXIT_CODE_DENIED, EXIT_CODE_FAIL, EXIT_CODE_PASS
from voice_quota_guard.core.errors import LedgerUnavailableError

runner = CliRunner()


class TestCLI:
    """Test CLI commands against a temporary database."""

    def setup_method(self):
        """Set up a temporary database path."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _invoke(self, *args):
        return runner.invoke(app, ["--db", self.db_path, *args])

    def _provision(self, user_id="user-1", plan="pro"):
        assert self._invoke("init").exit_code == EXIT_CODE_PASS
        result = self._invoke("provision", user_id, "--plan", plan)
        assert result.exit_code == EXIT_CODE_PASS, result.output

    def test_no_command_shows_hint(self):
        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Use --help" in result.output

    def test_init(self):
        result = self._invoke("init")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized successfully" in result.output
        assert os.path.exists(self.db_path)

    def test_init_failure(self):
        result = runner.invoke(app, ["--db", os.path.join(self.temp_dir, "missing", "x.db"), "init"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error initializing database" in result.output

    def test_provision(self):
        self._invoke("init")
        result = self._invoke("provision", "user-1", "--plan", "Apex")
        assert result.exit_code == EXIT_CODE_PASS
        assert "provisioned on plan" in result.output
        assert "apex" in result.output

    def test_provision_unknown_plan(self):
        self._invoke("init")
        result = self._invoke("provision", "user-1", "--plan", "gold")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unknown plan tier" in result.output

    def test_check_allowed(self):
        self._provision(plan="pro")
        result = self._invoke("check", "user-1", "--kind", "output", "--seconds", "30")
        assert result.exit_code == EXIT_CODE_PASS
        assert "ALLOWED" in result.output
        assert "Daily minutes left: 15.00" in result.output

    def test_check_denied_too_long(self):
        self._provision(plan="plus")
        result = self._invoke("check", "user-1", "--seconds", "90")
        assert result.exit_code == EXIT_CODE_DENIED
        assert "DENIED" in result.output
        assert "request_too_long" in result.output

    def test_check_denied_plan(self):
        self._provision(plan="starter")
        result = self._invoke("check", "user-1", "--seconds", "5")
        assert result.exit_code == EXIT_CODE_DENIED
        assert "plan_not_allowed" in result.output
        assert "Upgrade" in result.output

    def test_check_invalid_kind(self):
        self._provision()
        result = self._invoke("check", "user-1", "--kind", "video", "--seconds", "5")
        assert result.exit_code != EXIT_CODE_PASS

    def test_record_shows_cost(self):
        self._provision()
        result = self._invoke("record", "user-1", "--input-seconds", "30", "--output-seconds", "30")
        assert result.exit_code == EXIT_CODE_PASS
        assert "ratio 50:50" in result.output
        assert "Actual cost: INR 0.95" in result.output
        assert "Savings: INR 0.47" in result.output

    def test_record_awards_bonus(self):
        self._provision()
        for _ in range(2):
            self._invoke("record", "user-1", "--input-seconds", "30", "--output-seconds", "30")
        result = self._invoke("record", "user-1", "--input-seconds", "30", "--output-seconds", "30")
        assert result.exit_code == EXIT_CODE_PASS
        assert "bonus minute(s) earned" in result.output

    def test_record_negative_seconds(self):
        self._provision()
        result = self._invoke("record", "user-1", "--input-seconds", "-5")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "cannot be negative" in result.output

    def test_record_non_finite_seconds(self):
        self._provision()
        result = self._invoke("record", "user-1", "--output-seconds", "nan")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "must be finite" in result.output

    def test_record_unprovisioned_user(self):
        self._invoke("init")
        result = self._invoke("record", "ghost", "--output-seconds", "5")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "No voice usage ledger for user: ghost" in result.output

    def test_stats_table(self):
        self._provision()
        self._invoke("record", "user-1", "--output-seconds", "60")
        result = self._invoke("stats", "user-1")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Voice usage for user-1" in result.output
        assert "Daily minutes" in result.output
        assert "Bonus minutes" in result.output

    def test_stats_json(self):
        self._provision()
        self._invoke("record", "user-1", "--output-seconds", "60")
        result = self._invoke("stats", "user-1", "--json")
        assert result.exit_code == EXIT_CODE_PASS

        data = json.loads(result.output)
        assert data["plan_tier"] == "pro"
        assert data["daily_minutes"]["used"] == 1.0
        assert data["request_count"] == 1
        assert data["currency"] == "INR"

    def test_stats_missing_user(self):
        self._invoke("init")
        result = self._invoke("stats", "ghost")
        assert result.exit_code == EXIT_CODE_FAIL

    def test_reset(self):
        self._provision()
        self._invoke("record", "user-1", "--output-seconds", "60")
        result = self._invoke("reset", "user-1")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Voice usage reset for user-1" in result.output

        data = json.loads(self._invoke("stats", "user-1", "--json").output)
        assert data["daily_minutes"]["used"] == 0.0

    def test_pricing(self):
        result = runner.invoke(app, ["pricing"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Budgeted cost/minute: INR 1.42" in result.output
        assert "50:50" in result.output
        assert "10:90" in result.output

    def test_config_option(self):
        config_path = os.path.join(self.temp_dir, "quota.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump({"plans": {"team": {
                "daily_minutes": 2, "max_request_seconds": 20, "requests_per_hour": 5
            }}}, f)

        self._invoke("init")
        result = self._invoke("provision", "user-1", "--plan", "team")
        assert result.exit_code == EXIT_CODE_FAIL

        result = runner.invoke(app, ["--db", self.db_path, "--config", config_path, "provision", "user-1", "--plan", "team"])
        assert result.exit_code == EXIT_CODE_PASS
        result = runner.invoke(app, ["--db", self.db_path, "--config", config_path, "check", "user-1", "--seconds", "25"])
        assert result.exit_code == EXIT_CODE_DENIED

    def test_missing_config_file(self):
        self._invoke("init")
        result = runner.invoke(app, ["--db", self.db_path, "--config", "nope.yaml", "stats", "user-1"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Quota config file not found" in result.output

    def test_db_env_var(self):
        result = runner.invoke(app, ["init"], env={"VOICE_QUOTA_GUARD_DB": self.db_path})
        assert result.exit_code == EXIT_CODE_PASS
        assert os.path.exists(self.db_path)

    def test_store_unavailable(self):
        self._provision()
        with patch('voice_quota_guard.cli.main.VoiceQuotaService.check',
                   side_effect=LedgerUnavailableError("database is locked")):
            result = self._invoke("check", "user-1", "--seconds", "5")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "database is locked" in result.output


@pytest.mark.parametrize("plan,seconds,expected", [
    ("plus", 60, EXIT_CODE_PASS),
    ("plus", 61, EXIT_CODE_DENIED),
    ("sovereign", 600, EXIT_CODE_PASS),
    ("sovereign", 601, EXIT_CODE_DENIED),
])
def test_request_cap_exit_codes(tmp_path, plan, seconds, expected):
    db_path = str(tmp_path / "cap.db")
    runner.invoke(app, ["--db", db_path, "init"])
    runner.invoke(app, ["--db", db_path, "provision", "user-1", "--plan", plan])
    result = runner.invoke(app, ["--db", db_path, "check", "user-1", "--kind", "output", "--seconds", str(seconds)])
    assert result.exit_code == expected
