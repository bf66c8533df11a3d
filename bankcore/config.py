"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class BankCoreConfig(BaseSettings):
    """Banking core configuration"""
    
    # Database configuration
    database_url: str = "memory://"  # memory:// or sqlite:///path/to/file.db
    
    # Session token configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 168  # 7 days
    
    # Field encryption configuration (scrypt-derived AES-256-GCM keys)
    encryption_master_key: str = "change-me-in-production"
    encryption_scrypt_n: int = 16384
    encryption_scrypt_r: int = 8
    encryption_scrypt_p: int = 1
    
    # Password hashing cost
    password_scrypt_n: int = 16384
    password_scrypt_r: int = 8
    password_scrypt_p: int = 1
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Business rules configuration
    default_phone_region: str = "US"
    account_number_digits: int = 10
    transactions_page_max: int = 100
    
    class Config:
        env_prefix = "BANKCORE_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankCoreConfig()


def get_config() -> BankCoreConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankCoreConfig:
    """Reload configuration from environment"""
    global config
    config = BankCoreConfig()
    return config
