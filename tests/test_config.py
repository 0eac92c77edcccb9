"""
Tests for configuration and structured logging
"""

import json
import logging

import pytest
from decimal import Decimal
from pydantic import ValidationError as SettingsValidationError

from aegis_banking import config as config_module
from aegis_banking.config import AegisConfig, get_config, reload_config
from aegis_banking.logging_config import JSONFormatter, get_logger, log_action, setup_logging


class TestAegisConfig:

    def test_defaults(self):
        config = AegisConfig(_env_file=None)

        assert config.external_transfer_fee == Decimal("0.50")
        assert config.max_loan_principal == Decimal("1000000.00")
        assert config.max_loan_interest_rate == Decimal("1.0")
        assert config.max_loan_term_months == 360
        assert config.iban_country_code == "GR"
        assert config.iban_bank_code == "1234"
        assert config.iban_max_attempts == 10
        assert config.currency == "EUR"
        assert config.enable_audit_logging

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("AEGIS_EXTERNAL_TRANSFER_FEE", "1.75")
        monkeypatch.setenv("AEGIS_IBAN_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("AEGIS_LOG_LEVEL", "debug")

        config = AegisConfig(_env_file=None)

        assert config.external_transfer_fee == Decimal("1.75")
        assert config.iban_max_attempts == 3
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize("field, value", [
        ("external_transfer_fee", Decimal("-0.01")),
        ("iban_max_attempts", 0),
        ("max_loan_term_months", 0),
        ("log_level", "LOUD"),
        ("currency", "XYZ"),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(SettingsValidationError):
            AegisConfig(_env_file=None, **{field: value})

    def test_reload(self, monkeypatch):
        original = get_config()
        try:
            monkeypatch.setenv("AEGIS_IBAN_BANK_CODE", "9999")
            reloaded = reload_config()
            assert reloaded.iban_bank_code == "9999"
            assert get_config() is reloaded
        finally:
            config_module.config = original


class TestStructuredLogging:

    def test_json_formatter_includes_structured_fields(self):
        record = logging.LogRecord("aegis.transfers", logging.INFO, __file__, 1,
                                   "Transfer settled", None, None)
        record.action = "settle_transfer"
        record.resource = "transfer:T1"
        record.user_id = "CUST001"

        payload = json.loads(JSONFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "aegis.transfers"
        assert payload["message"] == "Transfer settled"
        assert payload["action"] == "settle_transfer"
        assert payload["resource"] == "transfer:T1"
        assert "correlation_id" not in payload

    def test_log_action_attaches_fields(self, caplog):
        logger = get_logger("aegis.test")
        with caplog.at_level(logging.INFO, logger="aegis.test"):
            log_action(logger, "warning", "Credit skipped", action="settle_transfer",
                       resource="transfer:T1", extra={"iban": "GR00"})

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.action == "settle_transfer"
        assert record.extra == {"iban": "GR00"}

    def test_setup_logging_installs_single_handler(self, tmp_path):
        log_file = tmp_path / "aegis.log"
        logger = setup_logging("INFO", logger_name="aegis-setup-test", log_file=str(log_file))
        setup_logging("INFO", logger_name="aegis-setup-test", log_file=str(log_file))

        assert len(logger.handlers) == 1
        logger.info("hello")
        logger.handlers[0].flush()

        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["message"] == "hello"
        logger.handlers[0].close()
