"""
Tests for configuration, structured logging and system wiring
"""

import json
import logging
from decimal import Decimal

import pytest

from bankcore.accounts import AccountType
from bankcore.async_storage import AsyncInMemoryStorage
from bankcore.config import BankCoreConfig, reload_config
from bankcore.currency import Money, to_decimal
from bankcore.encryption import ScryptAESGCMEncryptionProvider
from bankcore.logging_config import JSONFormatter, log_action, setup_logging
from bankcore.system import BankingSystem

from .conftest import TODAY, signup_payload


class TestBankCoreConfig:
    """Test environment-driven settings"""
    
    def test_defaults(self):
        config = BankCoreConfig()
        assert config.database_url == "memory://"
        assert config.jwt_algorithm == "HS256"
        assert config.jwt_expiry_hours == 168
        assert config.transactions_page_max == 100
    
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BANKCORE_JWT_EXPIRY_HOURS", "2")
        monkeypatch.setenv("BANKCORE_DATABASE_URL", "sqlite:///:memory:")
        config = reload_config()
        assert config.jwt_expiry_hours == 2
        assert config.database_url == "sqlite:///:memory:"
        
        monkeypatch.delenv("BANKCORE_JWT_EXPIRY_HOURS")
        monkeypatch.delenv("BANKCORE_DATABASE_URL")
        reload_config()


class TestStructuredLogging:
    """Test JSON log output"""
    
    def test_json_formatter_fields(self):
        logger = logging.getLogger("bankcore.test")
        record = logger.makeRecord(
            "bankcore.test", logging.INFO, __file__, 1, "Account funded", None, None,
            extra={"user_id": "user-1", "action": "fund_account", "details": {"amount": "1.00"}},
        )
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Account funded"
        assert entry["level"] == "INFO"
        assert entry["user_id"] == "user-1"
        assert entry["action"] == "fund_account"
        assert entry["details"] == {"amount": "1.00"}
        assert "resource" not in entry
    
    def test_log_action_writes_json_file(self, tmp_path):
        log_file = tmp_path / "bankcore.log"
        logger = setup_logging("DEBUG", "json", str(log_file), logger_name="bankcore.filetest")
        
        log_action(logger, "warning", "Login failed", user_id="user-1", action="login_failed")
        for handler in logger.handlers:
            handler.flush()
        
        entry = json.loads(log_file.read_text().strip())
        assert entry["level"] == "WARNING"
        assert entry["action"] == "login_failed"
        
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
    
    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging("INFO", "text", logger_name="bankcore.handlertest")
        logger = setup_logging("INFO", "text", logger_name="bankcore.handlertest")
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)


class TestMoney:
    """Test decimal money handling"""
    
    def test_rounding_and_arithmetic(self):
        assert Money("10.005").amount == Decimal("10.01")
        assert (Money("0.10") + Money("0.20")).amount == Decimal("0.30")
        assert Money(0.1).amount == Decimal("0.10")
        with pytest.raises(ValueError, match="Amount is out of range"):
            Money("1e30")
        assert Money("1.00").to_string() == "USD 1.00"
    
    def test_to_decimal_rejects_non_numbers(self):
        for value in (True, "abc", "Infinity", None, [1]):
            with pytest.raises(ValueError):
                to_decimal(value)


class TestBankingSystem:
    """Test end-to-end wiring"""
    
    @pytest.mark.asyncio
    async def test_signup_fund_and_history(self):
        config = BankCoreConfig(password_scrypt_n=1024, jwt_secret="system-secret")
        system = BankingSystem(
            config,
            storage=AsyncInMemoryStorage(),
            encryption=ScryptAESGCMEncryptionProvider("system-key", n=1024),
        )
        
        signup = await system.auth_service.signup(signup_payload(), today=TODAY)
        user = await system.auth_service.authenticate(signup.token)
        
        account = await system.account_service.create_account(user.id, AccountType.CHECKING)
        await system.account_service.fund_account(
            user.id, account.id, "42.00", {"type": "card", "account_number": "4242424242424242"}
        )
        
        page = await system.account_service.list_transactions(user.id, account.id)
        assert len(page.items) == 1
        assert page.items[0].amount == Money("42.00")
        
        assert (await system.auth_service.logout(signup.token)).success
        assert await system.auth_service.authenticate(signup.token) is None
        await system.close()
    
    def test_builds_from_config(self):
        system = BankingSystem(BankCoreConfig(database_url="memory://", encryption_scrypt_n=1024))
        assert isinstance(system.storage, AsyncInMemoryStorage)
        assert system.sessions.expiry.total_seconds() == 168 * 3600
        assert system.password_hasher.n == 16384
