"""
Banking core wiring

Builds every service from one configuration object so the transport layer
only has to hold a BankingSystem.
"""

from typing import Optional

from .accounts import AccountService
from .async_storage import AsyncStorageInterface, create_async_storage
from .auth import AuthService
from .config import BankCoreConfig, get_config
from .encryption import EncryptionProvider, create_encryption_provider
from .logging_config import setup_logging
from .passwords import PasswordHasher
from .sessions import SessionManager


class BankingSystem:
    """Banking core with all components initialized"""
    
    def __init__(self, config: Optional[BankCoreConfig] = None,
                 storage: Optional[AsyncStorageInterface] = None,
                 encryption: Optional[EncryptionProvider] = None,
                 configure_logging: bool = False):
        self.config = config or get_config()
        
        if configure_logging:
            setup_logging(self.config.log_level, self.config.log_format, self.config.log_file)
        
        self.storage = storage or create_async_storage(self.config)
        self.encryption = encryption or create_encryption_provider(self.config)
        self.password_hasher = PasswordHasher(
            n=self.config.password_scrypt_n,
            r=self.config.password_scrypt_r,
            p=self.config.password_scrypt_p,
        )
        self.sessions = SessionManager(
            self.storage,
            secret=self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            expiry_hours=self.config.jwt_expiry_hours,
        )
        self.auth_service = AuthService(
            self.storage, self.encryption, self.password_hasher, self.sessions,
            default_phone_region=self.config.default_phone_region,
        )
        self.account_service = AccountService(
            self.storage,
            account_number_digits=self.config.account_number_digits,
            max_page_size=self.config.transactions_page_max,
        )
    
    async def close(self) -> None:
        await self.storage.close()
