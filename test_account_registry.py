"""
Unit tests for the account registry.
"""
import json
import pytest

from account_registry import Account, AccountRegistry
from config import Settings
from error_handler import ConfigurationError


class TestAccount:
    """Test cases for Account dataclass"""

    def test_fragment_derived_from_host(self):
        account = Account(base_url="https://Shop-One.retailcrm.ru/", api_key="k", telegram_channel_id="1")

        assert account.base_url == "https://Shop-One.retailcrm.ru"
        assert account.url_fragment == "shop-one.retailcrm.ru"
        assert account.name == "shop-one.retailcrm.ru"

    def test_explicit_fragment(self):
        account = Account(base_url="https://a.retailcrm.ru", api_key="k",
                          telegram_channel_id="1", url_fragment="a.retailcrm")

        assert account.matches("https://A.RETAILCRM.ru/orders/5")
        assert not account.matches("https://b.retailcrm.ru")
        assert not account.matches(None)


class TestAccountRegistry:
    """Test cases for AccountRegistry"""

    @pytest.fixture
    def accounts(self):
        return [
            Account(base_url="https://ghana.retailcrm.ru", api_key="k1", telegram_channel_id="-1", currency="GHS"),
            Account(base_url="https://nigeria.retailcrm.ru", api_key="k2", telegram_channel_id="-2", currency="NGN"),
            Account(base_url="https://kenya.retailcrm.ru", api_key="k3", telegram_channel_id="-3", currency="KES"),
        ]

    @pytest.fixture
    def registry(self, accounts):
        return AccountRegistry(accounts, default=accounts[1])

    def test_find_by_substring(self, registry, accounts):
        assert registry.find("https://kenya.retailcrm.ru/admin/orders/12") == accounts[2]

    def test_find_falls_back_to_default(self, registry, accounts):
        assert registry.find("https://unknown.example.com") == accounts[1]
        assert registry.find(None) == accounts[1]
        assert registry.match("https://unknown.example.com") is None

    def test_first_match_wins(self):
        broad = Account(base_url="https://x.retailcrm.ru", api_key="k", telegram_channel_id="1",
                        url_fragment="retailcrm.ru")
        narrow = Account(base_url="https://y.retailcrm.ru", api_key="k", telegram_channel_id="2")
        registry = AccountRegistry([broad, narrow])

        assert registry.find("https://y.retailcrm.ru") == broad

    def test_others_keeps_order(self, registry, accounts):
        assert registry.others(accounts[1]) == [accounts[0], accounts[2]]

    def test_default_is_first_account(self, accounts):
        registry = AccountRegistry(accounts)

        assert registry.default == accounts[0]
        assert len(registry) == 3

    def test_empty_registry_rejected(self):
        with pytest.raises(ConfigurationError):
            AccountRegistry([])


class TestAccountRegistryFromSettings:
    """Tests for building the registry from settings"""

    def test_json_accounts_and_legacy_account(self):
        settings = Settings(
            retailcrm_accounts=json.dumps([
                {"url": "https://ghana.retailcrm.ru", "api_key": "k1", "channel_id": -100, "currency": "GHS"},
                {"url": "https://kenya.retailcrm.ru", "api_key": "k2", "channel_id": "-200", "currency": "KES"},
            ]),
            retailcrm_url="https://legacy.retailcrm.ru",
            retailcrm_api_key="legacy",
            telegram_channel_id="-300",
            default_account_url="https://kenya.retailcrm.ru",
            _env_file=None,
        )

        registry = AccountRegistry.from_settings(settings)

        assert len(registry) == 3
        assert registry.default.api_key == "k2"
        assert registry.accounts[0].telegram_channel_id == "-100"
        assert registry.find("https://legacy.retailcrm.ru").api_key == "legacy"

    def test_entry_without_url_skipped(self):
        settings = Settings(
            retailcrm_accounts=json.dumps([{"api_key": "k"}, {"url": "https://a.retailcrm.ru", "api_key": "a"}]),
            _env_file=None,
        )

        registry = AccountRegistry.from_settings(settings)

        assert len(registry) == 1
        assert registry.default.currency == "GHS"

    def test_no_accounts_configured(self):
        with pytest.raises(ConfigurationError):
            AccountRegistry.from_settings(Settings(_env_file=None))
