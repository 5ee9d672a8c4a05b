"""
API Client for the RetailCRM v5 REST API, shared by all configured accounts.
"""
import asyncio
import logging
import time
from typing import List, Dict, Any, Optional
import aiohttp

from account_registry import Account
from logging_config import log_api_call

logger = logging.getLogger(__name__)

ALLOWED_LIMITS = (20, 50, 100)


class RetailCRMError(Exception):
    """Base exception for RetailCRM API errors"""
    def __init__(self, message: str, status_code: Optional[int] = None,
                 error_msg: Optional[str] = None, errors: Optional[Any] = None):
        self.message = message
        self.status_code = status_code
        self.error_msg = error_msg or ""
        self.errors = errors or {}
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_site_error(self) -> bool:
        """CRM rejected the call because the site (store) qualifier is missing"""
        if self.status_code not in (400, 403):
            return False
        text = self.error_msg.lower()
        if 'site' in text:
            return True
        if isinstance(self.errors, dict):
            return any('site' in str(key).lower() for key in self.errors)
        return any('site' in str(item).lower() for item in self.errors)

    @property
    def is_transient(self) -> bool:
        """Network failures, timeouts, 5xx and lag-induced 404s"""
        return self.status_code is None or self.status_code >= 500 or self.is_not_found


def normalize_limit(limit: int) -> int:
    """RetailCRM only accepts page sizes of 20, 50 or 100"""
    for allowed in ALLOWED_LIMITS:
        if limit <= allowed:
            return allowed
    return ALLOWED_LIMITS[-1]


class RetailCRMClient:
    """Client for the RetailCRM API with one shared HTTP session"""

    def __init__(self, timeout: int = 10):
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry"""
        self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        """Get or create session"""
        if not self.session:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self.session

    async def _make_request(self, account: Account, method: str, endpoint: str,
                            params: Optional[Any] = None) -> Dict[str, Any]:
        """Make HTTP request with error handling"""
        url = f"{account.base_url}{endpoint}"
        session = self._get_session()
        query = [('apiKey', account.api_key)]
        if isinstance(params, dict):
            query.extend(params.items())
        elif params:
            query.extend(params)

        started = time.monotonic()
        try:
            logger.debug(f"Making {method} request to {url}")
            async with session.request(method, url, params=query) as response:
                content_type = response.headers.get('content-type', '')
                if 'application/json' in content_type:
                    data = await response.json()
                    if not isinstance(data, dict):
                        data = {"data": data}
                else:
                    data = {"errorMsg": await response.text()}

                log_api_call(logger, endpoint, method, response.status,
                             time.monotonic() - started, account=account.name)

                if response.status >= 400 or data.get('success') is False:
                    error_msg = str(data.get('errorMsg') or '')
                    raise RetailCRMError(
                        f"RetailCRM request failed: {response.status} {error_msg}".strip(),
                        status_code=response.status,
                        error_msg=error_msg,
                        errors=data.get('errors')
                    )
                return data

        except RetailCRMError:
            raise
        except asyncio.TimeoutError:
            logger.error(f"Timeout during RetailCRM request to {url}")
            raise RetailCRMError("Request timed out")
        except aiohttp.ClientError as e:
            logger.error(f"Network error during RetailCRM request: {e}")
            raise RetailCRMError(f"Network error: {str(e)}")
        except Exception as e:
            logger.error(f"Unexpected error during RetailCRM request: {e}")
            raise RetailCRMError(f"Unexpected error: {str(e)}")

    async def get_order(self, account: Account, order_id: int,
                        site: Optional[str] = None) -> Dict[str, Any]:
        """
        Get a single order by its internal id

        Args:
            account: Account owning the order
            order_id: RetailCRM internal order id
            site: Optional site (store) code

        Returns:
            Order dictionary
        """
        params = {"by": "id"}
        if site:
            params["site"] = site
        response = await self._make_request(account, "GET", f"/api/v5/orders/{order_id}", params=params)
        order = response.get("order")
        if not order:
            raise RetailCRMError(f"Order {order_id} missing in response", status_code=404)
        return order

    async def search_orders(self, account: Account, number: Optional[str] = None,
                            status: Optional[str] = None, site: Optional[str] = None,
                            limit: int = 20) -> List[Dict[str, Any]]:
        """
        Search orders with the list endpoint filters

        Args:
            account: Account to search
            number: Order number filter
            status: Order status code filter
            site: Site (store) code
            limit: Page size, normalized to 20/50/100

        Returns:
            List of order dictionaries (possibly empty)
        """
        params = [("limit", normalize_limit(limit))]
        if number:
            params.append(("filter[numbers][]", number))
        if status:
            params.append(("filter[extendedStatus][]", status))
        if site:
            params.append(("site", site))

        response = await self._make_request(account, "GET", "/api/v5/orders", params=params)
        orders = response.get("orders", [])
        if isinstance(orders, list):
            return orders
        logger.warning(f"Unexpected orders response format: {type(orders)}")
        return []

    async def list_orders(self, account: Account, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent orders of an account, used by the polling sweep"""
        return await self.search_orders(account, limit=limit)

    async def get_sites(self, account: Account) -> List[str]:
        """Site (store) codes configured in the account"""
        response = await self._make_request(account, "GET", "/api/v5/reference/sites")
        sites = response.get("sites", {})
        if isinstance(sites, dict):
            return [site.get("code", code) if isinstance(site, dict) else code
                    for code, site in sites.items()]
        if isinstance(sites, list):
            return [site["code"] for site in sites if isinstance(site, dict) and site.get("code")]
        return []

    async def get_user(self, account: Account, user_id: int) -> Dict[str, Any]:
        """CRM user (manager) by id"""
        response = await self._make_request(account, "GET", f"/api/v5/users/{user_id}")
        return response.get("user") or {}

    async def close(self):
        """Close the HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None
