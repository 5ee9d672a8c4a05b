"""
Unit tests for the RetailCRM client with mocked HTTP requests.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
import aiohttp

from account_registry import Account
from retailcrm_client import RetailCRMClient, RetailCRMError, normalize_limit


def make_response(status=200, payload=None, content_type="application/json"):
    """Create mock response wrapped in an async context manager"""
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.headers = {"content-type": content_type}
    mock_response.json.return_value = payload
    mock_response.text.return_value = str(payload)

    mock_context_manager = MagicMock()
    mock_context_manager.__aenter__.return_value = mock_response
    mock_context_manager.__aexit__.return_value = False
    return mock_context_manager


class TestRetailCRMClient:
    """Test cases for RetailCRMClient"""

    @pytest.fixture
    def account(self):
        return Account(
            base_url="https://shop.retailcrm.ru/",
            api_key="secret",
            telegram_channel_id="-100123",
        )

    @pytest.fixture
    def client(self):
        """Create client instance for testing"""
        return RetailCRMClient(timeout=5)

    @pytest.fixture
    def mock_session(self):
        """Create mock aiohttp session"""
        return MagicMock()

    @pytest.mark.asyncio
    async def test_get_order_success(self, client, account, mock_session):
        """Test successful order retrieval by id"""
        order = {"id": 501, "number": "A-501", "status": "approved"}
        mock_session.request.return_value = make_response(payload={"success": True, "order": order})

        with patch.object(client, '_get_session', return_value=mock_session):
            result = await client.get_order(account, 501)

        assert result == order
        mock_session.request.assert_called_once_with(
            "GET",
            "https://shop.retailcrm.ru/api/v5/orders/501",
            params=[("apiKey", "secret"), ("by", "id")]
        )

    @pytest.mark.asyncio
    async def test_get_order_with_site(self, client, account, mock_session):
        """Test site code is passed through"""
        mock_session.request.return_value = make_response(payload={"success": True, "order": {"id": 1}})

        with patch.object(client, '_get_session', return_value=mock_session):
            await client.get_order(account, 1, site="main")

        params = mock_session.request.call_args[1]["params"]
        assert ("site", "main") in params

    @pytest.mark.asyncio
    async def test_get_order_not_found(self, client, account, mock_session):
        """Test 404 is reported as a transient not-found error"""
        mock_session.request.return_value = make_response(
            status=404, payload={"success": False, "errorMsg": "Not found"}
        )

        with patch.object(client, '_get_session', return_value=mock_session):
            with pytest.raises(RetailCRMError) as exc_info:
                await client.get_order(account, 900)

        assert exc_info.value.status_code == 404
        assert exc_info.value.is_not_found
        assert exc_info.value.is_transient
        assert not exc_info.value.is_site_error

    @pytest.mark.asyncio
    async def test_site_qualifier_error(self, client, account, mock_session):
        """Test missing site parameter is recognized"""
        mock_session.request.return_value = make_response(
            status=400, payload={"success": False, "errorMsg": "Parameter 'site' is missing"}
        )

        with patch.object(client, '_get_session', return_value=mock_session):
            with pytest.raises(RetailCRMError) as exc_info:
                await client.search_orders(account, number="A-1")

        assert exc_info.value.is_site_error
        assert not exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_site_error_in_errors_field(self, client, account, mock_session):
        """Test site error reported through the errors mapping"""
        mock_session.request.return_value = make_response(
            status=400, payload={"success": False, "errorMsg": "Errors in the input parameters",
                                 "errors": {"site": "This value should not be blank."}}
        )

        with patch.object(client, '_get_session', return_value=mock_session):
            with pytest.raises(RetailCRMError) as exc_info:
                await client.get_order(account, 5)

        assert exc_info.value.is_site_error

    @pytest.mark.asyncio
    async def test_success_false_raises(self, client, account, mock_session):
        """Test success=false body with HTTP 200 is an error"""
        mock_session.request.return_value = make_response(
            payload={"success": False, "errorMsg": "Wrong apiKey value"}
        )

        with patch.object(client, '_get_session', return_value=mock_session):
            with pytest.raises(RetailCRMError) as exc_info:
                await client.list_orders(account)

        assert "Wrong apiKey value" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_search_orders_filters(self, client, account, mock_session):
        """Test number/status/site filters and limit normalization"""
        orders = [{"id": 7, "number": "A-7"}]
        mock_session.request.return_value = make_response(payload={"success": True, "orders": orders})

        with patch.object(client, '_get_session', return_value=mock_session):
            result = await client.search_orders(account, number="A-7", status="approved",
                                                site="main", limit=30)

        assert result == orders
        args, kwargs = mock_session.request.call_args
        assert args == ("GET", "https://shop.retailcrm.ru/api/v5/orders")
        assert kwargs["params"] == [
            ("apiKey", "secret"),
            ("limit", 50),
            ("filter[numbers][]", "A-7"),
            ("filter[extendedStatus][]", "approved"),
            ("site", "main"),
        ]

    @pytest.mark.asyncio
    async def test_search_orders_empty(self, client, account, mock_session):
        """Test empty search result"""
        mock_session.request.return_value = make_response(payload={"success": True, "orders": []})

        with patch.object(client, '_get_session', return_value=mock_session):
            result = await client.search_orders(account, number="X")

        assert result == []

    @pytest.mark.asyncio
    async def test_get_sites_dict_format(self, client, account, mock_session):
        """Test site codes from the reference endpoint"""
        mock_session.request.return_value = make_response(payload={
            "success": True,
            "sites": {"main-store": {"code": "main-store", "name": "Main"},
                      "second": {"code": "second", "name": "Second"}}
        })

        with patch.object(client, '_get_session', return_value=mock_session):
            result = await client.get_sites(account)

        assert result == ["main-store", "second"]

    @pytest.mark.asyncio
    async def test_get_user(self, client, account, mock_session):
        """Test manager lookup"""
        mock_session.request.return_value = make_response(payload={
            "success": True, "user": {"id": 12, "firstName": "Kofi", "lastName": "Mensah"}
        })

        with patch.object(client, '_get_session', return_value=mock_session):
            result = await client.get_user(account, 12)

        assert result["firstName"] == "Kofi"
        assert mock_session.request.call_args[0][1] == "https://shop.retailcrm.ru/api/v5/users/12"

    @pytest.mark.asyncio
    async def test_network_error_handling(self, client, account, mock_session):
        """Test network error handling"""
        mock_session.request.side_effect = aiohttp.ClientError("Connection failed")

        with patch.object(client, '_get_session', return_value=mock_session):
            with pytest.raises(RetailCRMError) as exc_info:
                await client.get_order(account, 1)

        assert "Network error" in str(exc_info.value)
        assert exc_info.value.status_code is None
        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_timeout_handling(self, client, account, mock_session):
        """Test timeouts are transient errors"""
        mock_session.request.side_effect = asyncio.TimeoutError()

        with patch.object(client, '_get_session', return_value=mock_session):
            with pytest.raises(RetailCRMError) as exc_info:
                await client.get_order(account, 1)

        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_context_manager(self):
        """Test client as async context manager"""
        async with RetailCRMClient() as client:
            assert client.session is not None

        assert client.session is None

    @pytest.mark.asyncio
    async def test_close_method(self, client):
        """Test explicit close method"""
        client._get_session()
        assert client.session is not None

        await client.close()
        assert client.session is None

    def test_normalize_limit(self):
        """Test page size normalization"""
        assert normalize_limit(1) == 20
        assert normalize_limit(20) == 20
        assert normalize_limit(21) == 50
        assert normalize_limit(100) == 100
        assert normalize_limit(500) == 100


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__])
