"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class BankProConfig(BaseSettings):
    """BankPro backend configuration"""
    
    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "bankpro.db"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    environment: str = "development"
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:5174",
        "http://localhost:3000",
        "http://localhost:4173",
    ]
    
    # Security configuration
    jwt_secret: str = "dev_jwt_secret_change_me"
    jwt_refresh_secret: str = "dev_jwt_refresh_secret_change_me"
    jwt_algorithm: str = "HS256"
    jwt_expiry_days: int = 7
    jwt_refresh_expiry_days: int = 30
    password_reset_expiry_minutes: int = 10
    max_login_attempts: int = 5
    account_lock_minutes: int = 15
    card_encryption_key: str = "dev_card_key_change_me"
    
    # Business rules configuration
    max_accounts_per_phone: int = 3
    external_fee_rate: str = "0.005"
    external_fee_minimum: str = "10.00"
    default_bank_name: str = "BankPro"
    default_ifsc_code: str = "BANK0001234"
    default_branch_name: str = "Main Branch"
    
    # Rate limiting (requests per window per client)
    enable_rate_limiting: bool = True
    rate_limit_window_seconds: int = 60
    auth_rate_limit: int = 20
    transaction_rate_limit: int = 30
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    class Config:
        env_prefix = "BANKPRO_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankProConfig()


def get_config() -> BankProConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankProConfig:
    """Reload configuration from environment"""
    global config
    config = BankProConfig()
    return config
