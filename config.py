import json
from typing import List, Dict, Any
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Telegram Configuration
    telegram_bot_token: str = ""
    telegram_channel_id: str = ""
    telegram_timeout: int = 10

    # RetailCRM single-account configuration
    retailcrm_url: str = ""
    retailcrm_api_key: str = ""
    currency: str = "GHS"

    # RetailCRM multi-account configuration (JSON list of account objects)
    retailcrm_accounts: str = ""
    default_account_url: str = ""
    retailcrm_default_sites: str = ""  # Comma-separated list of site codes

    # API Configuration
    api_timeout: int = 10

    # Relay Configuration
    relay_mode: str = "webhook"  # webhook, polling, both
    polling_interval: int = 30
    polling_limit: int = 100
    resolve_retry_attempts: int = 3
    resolve_retry_delay: float = 3.0

    # Logging Configuration
    log_level: str = "INFO"
    log_file: str = ""

    # Webhook Configuration
    webhook_port: int = 3000
    webhook_host: str = "0.0.0.0"

    # Production Configuration
    environment: str = "development"  # development, staging, production

    # Graceful shutdown timeout
    shutdown_timeout: int = 30

    class Config:
        env_file = ".env"

    @property
    def accounts_list(self) -> List[Dict[str, Any]]:
        """Parse the JSON account list, ignoring malformed values"""
        if not self.retailcrm_accounts:
            return []
        try:
            accounts = json.loads(self.retailcrm_accounts)
        except ValueError:
            return []
        if isinstance(accounts, dict):
            accounts = [accounts]
        return [account for account in accounts if isinstance(account, dict)]

    @property
    def default_sites_list(self) -> List[str]:
        """Convert comma-separated site codes to list"""
        return [site.strip() for site in self.retailcrm_default_sites.split(",") if site.strip()]

    @property
    def polling_enabled(self) -> bool:
        return self.relay_mode.lower() in ("polling", "both")

    @property
    def webhook_enabled(self) -> bool:
        return self.relay_mode.lower() in ("webhook", "both")

settings = Settings()
