"""
Test suite for configuration

Settings come from defaults, BANK_* environment variables and a .env file.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

import retail_banking.config as config_module
from retail_banking.config import BankConfig, get_config, reload_config
from retail_banking.system import BankingSystem


class TestDefaults:
    """Test built-in defaults"""

    def test_product_defaults(self):
        config = BankConfig(_env_file=None)
        assert config.savings_interest_rate == Decimal("0.03")
        assert config.savings_daily_withdrawal_limit == Decimal("1000")
        assert config.student_interest_rate == Decimal("0.05")
        assert config.student_daily_withdrawal_limit == Decimal("500")
        assert config.student_single_withdrawal_limit == Decimal("200")
        assert config.credit_limit == Decimal("1000")
        assert config.credit_interest_rate == Decimal("0.2")
        assert config.credit_grace_period_days == 30
        assert config.interest_period_days == 30

    def test_security_defaults(self):
        config = BankConfig(_env_file=None)
        assert config.username_min_length == 3
        assert config.password_min_length == 6
        assert config.default_admin_username == "admin"
        assert config.api_port == 8090
        assert config.simulation_start is None


class TestEnvironment:
    """Test environment overrides"""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("BANK_SAVINGS_INTEREST_RATE", "0.04")
        monkeypatch.setenv("BANK_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("BANK_API_PORT", "9000")

        config = BankConfig(_env_file=None)
        assert config.savings_interest_rate == Decimal("0.04")
        assert config.storage_backend == "memory"
        assert config.api_port == 9000

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("BANK_CREDIT_LIMIT=2500\nBANK_LOG_FORMAT=text\n")

        config = BankConfig(_env_file=str(env_file))
        assert config.credit_limit == Decimal("2500")
        assert config.log_format == "text"

    def test_reload_config(self, monkeypatch):
        monkeypatch.setattr(config_module, "config", config_module.config)
        monkeypatch.setenv("BANK_JWT_EXPIRY_HOURS", "1")

        reloaded = reload_config()
        assert reloaded.jwt_expiry_hours == 1
        assert get_config() is reloaded

    def test_simulation_start_drives_clock(self, monkeypatch):
        monkeypatch.setenv("BANK_SIMULATION_START", "2024-05-01T00:00:00+00:00")
        config = BankConfig(_env_file=None, storage_backend="memory")

        system = BankingSystem(config=config)
        assert system.clock.is_simulated
        assert system.clock.now() == datetime(2024, 5, 1, tzinfo=timezone.utc)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            BankingSystem(config=BankConfig(_env_file=None, storage_backend="postgres"))
