"""
Static registry of RetailCRM accounts (tenants) sharing one relay.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Iterator
from urllib.parse import urlparse

from error_handler import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    """One CRM installation with its own credentials and Telegram channel"""
    base_url: str
    api_key: str
    telegram_channel_id: str
    currency: str = "GHS"
    url_fragment: str = ""
    name: str = ""

    def __post_init__(self):
        # frozen dataclass, so normalized values go through object.__setattr__
        object.__setattr__(self, 'base_url', self.base_url.rstrip('/'))
        if not self.url_fragment:
            host = urlparse(self.base_url).netloc or self.base_url
            object.__setattr__(self, 'url_fragment', host.lower())
        if not self.name:
            object.__setattr__(self, 'name', self.url_fragment)

    def matches(self, candidate_url: Optional[str]) -> bool:
        if not candidate_url or not self.url_fragment:
            return False
        return self.url_fragment.lower() in candidate_url.lower()


class AccountRegistry:
    """Lookup of accounts by base-URL fragment, first match wins"""

    def __init__(self, accounts: List[Account], default: Optional[Account] = None):
        if not accounts:
            raise ConfigurationError("At least one RetailCRM account must be configured")
        self._accounts = list(accounts)
        self._default = default or self._accounts[0]
        if self._default not in self._accounts:
            self._accounts.append(self._default)
        logger.info(
            f"AccountRegistry initialized with {len(self._accounts)} accounts, "
            f"default: {self._default.name}"
        )

    @property
    def default(self) -> Account:
        return self._default

    @property
    def accounts(self) -> List[Account]:
        return list(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[Account]:
        return iter(self._accounts)

    def match(self, candidate_url: Optional[str]) -> Optional[Account]:
        """Return the first account whose fragment occurs in the candidate URL"""
        for account in self._accounts:
            if account.matches(candidate_url):
                return account
        return None

    def find(self, candidate_url: Optional[str]) -> Account:
        """Return the matching account, falling back to the default account"""
        account = self.match(candidate_url)
        if account is None:
            logger.debug(f"No account matches {candidate_url!r}, using default {self._default.name}")
            return self._default
        return account

    def others(self, account: Account) -> List[Account]:
        """All accounts except the given one, in configuration order"""
        return [other for other in self._accounts if other != account]

    @classmethod
    def from_settings(cls, settings) -> "AccountRegistry":
        """
        Build the registry from application settings

        The JSON account list comes first; the legacy single-account
        variables add one more account when set.
        """
        accounts = []
        for entry in settings.accounts_list:
            base_url = entry.get('url') or entry.get('base_url')
            if not base_url:
                logger.warning(f"Skipping account entry without url: {entry.get('name', '?')}")
                continue
            accounts.append(Account(
                base_url=base_url,
                api_key=entry.get('api_key') or entry.get('apiKey') or "",
                telegram_channel_id=str(entry.get('channel_id') or entry.get('telegram_channel_id') or ""),
                currency=entry.get('currency') or settings.currency,
                url_fragment=entry.get('url_fragment') or "",
                name=entry.get('name') or "",
            ))

        if settings.retailcrm_url:
            legacy = Account(
                base_url=settings.retailcrm_url,
                api_key=settings.retailcrm_api_key,
                telegram_channel_id=settings.telegram_channel_id,
                currency=settings.currency,
            )
            if not any(account.base_url == legacy.base_url for account in accounts):
                accounts.append(legacy)

        if not accounts:
            raise ConfigurationError("No RetailCRM accounts configured (RETAILCRM_URL or RETAILCRM_ACCOUNTS)")

        default = None
        if settings.default_account_url:
            default = next((a for a in accounts if a.matches(settings.default_account_url)), None)
            if default is None:
                logger.warning(f"DEFAULT_ACCOUNT_URL {settings.default_account_url} matches no account")

        return cls(accounts, default)
