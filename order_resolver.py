"""
Resolution of order references to authoritative RetailCRM order records.
"""
import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from account_registry import Account, AccountRegistry
from fallback import Attempt, first_success, retry
from order_extractor import OrderReference
from resolved_order import ResolvedOrder, is_empty
from retailcrm_client import RetailCRMClient, RetailCRMError

logger = logging.getLogger(__name__)

Lookup = Callable[..., Awaitable[Optional[Dict[str, Any]]]]


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, RetailCRMError) and error.is_transient


def _is_site_error(error: Optional[BaseException]) -> bool:
    return isinstance(error, RetailCRMError) and error.is_site_error


class OrderResolver:
    """Fetches the order behind a reference, with retries and account fallback"""

    def __init__(self, client: RetailCRMClient, registry: AccountRegistry,
                 retry_attempts: int = 3, retry_delay: float = 3.0,
                 default_sites: Optional[List[str]] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.client = client
        self.registry = registry
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.default_sites = list(default_sites or [])
        self.sleep = sleep
        self._site_codes: Dict[str, List[str]] = {}
        self._manager_names: Dict[Tuple[str, Any], str] = {}

    async def resolve(self, ref: OrderReference) -> Optional[ResolvedOrder]:
        """
        Resolve a reference to an order record

        A present number is the only key used: when the number lookup fails
        the resolution fails, it never falls back to the id.

        Args:
            ref: Extracted order reference

        Returns:
            ResolvedOrder, or None when every attempt failed
        """
        if not ref.is_resolvable:
            return None

        account = self.registry.find(ref.account_url)

        if ref.order is not None and not is_empty(ref.order.get('status')):
            logger.info(f"Order {ref.label} carried in full by the event, no lookup needed",
                        extra={'order_id': ref.id, 'order_number': ref.number, 'account': account.name})
            return ResolvedOrder(ref.order, account, source="payload")

        for candidate in [account] + self.registry.others(account):
            if candidate is not account:
                logger.info(f"Trying order {ref.label} in account {candidate.name}")
            try:
                order = await self._resolve_in(candidate, ref)
            except Exception as e:
                logger.error(f"Unexpected error resolving order {ref.label} in {candidate.name}: {e}",
                             exc_info=True)
                order = None
            if order is not None:
                logger.info(f"Resolved order {ref.label} in account {candidate.name}",
                            extra={'order_id': order.get('id'), 'order_number': order.get('number'),
                                   'account': candidate.name})
                return ResolvedOrder(order, candidate)

        logger.warning(f"Order {ref.label} not found in any of {len(self.registry)} accounts",
                       extra={'order_id': ref.id, 'order_number': ref.number})
        return None

    async def _resolve_in(self, account: Account, ref: OrderReference) -> Optional[Dict[str, Any]]:
        if ref.number:
            kind = f"number {ref.number}"
            lookup: Lookup = partial(self._search_by_number, account, ref.number)
        else:
            kind = f"id {ref.id}"
            lookup = partial(self._fetch_by_id, account, ref.id)

        return await first_success([
            Attempt(
                f"lookup by {kind} in {account.name}",
                partial(retry, lookup, self.retry_attempts, self.retry_delay,
                        retry_if=_is_transient, name=f"lookup by {kind}", sleep=self.sleep),
                continue_if=_is_site_error,
            ),
            Attempt(f"site fallback for {kind}", partial(self._with_site_fallback, account, lookup)),
        ])

    async def _search_by_number(self, account: Account, number: str,
                                site: Optional[str] = None) -> Optional[Dict[str, Any]]:
        orders = await self.client.search_orders(account, number=number, site=site)
        if not orders:
            return None
        for order in orders:
            if str(order.get('number')) == number:
                return order
        return orders[0]

    async def _fetch_by_id(self, account: Account, order_id: int,
                           site: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return await self.client.get_order(account, order_id, site=site)

    async def _with_site_fallback(self, account: Account, lookup: Lookup) -> Optional[Dict[str, Any]]:
        """Retry the lookup with each discovered, then each default, site code"""
        codes = await self._discover_sites(account)
        codes += [code for code in self.default_sites if code not in codes]
        if not codes:
            logger.warning(f"No site codes available for {account.name}")
            return None

        return await first_success(
            Attempt(f"site {code}", partial(lookup, code)) for code in codes
        )

    async def _discover_sites(self, account: Account) -> List[str]:
        if account.base_url in self._site_codes:
            return list(self._site_codes[account.base_url])
        try:
            codes = await self.client.get_sites(account)
        except RetailCRMError as e:
            logger.warning(f"Site discovery failed for {account.name}: {e}")
            return []
        self._site_codes[account.base_url] = codes
        logger.info(f"Discovered {len(codes)} site codes for {account.name}")
        return list(codes)

    async def enrich_manager(self, resolved: ResolvedOrder) -> ResolvedOrder:
        """Add managerName from the users endpoint when only managerId is known"""
        manager_id = resolved.get('managerId')
        if is_empty(manager_id) or resolved.account is None:
            return resolved
        if not is_empty(resolved.first('managerName', ('manager', 'firstName'))):
            return resolved
        if isinstance(resolved.get('manager'), str) and resolved.get('manager').strip():
            return resolved

        key = (resolved.account.base_url, manager_id)
        if key not in self._manager_names:
            try:
                user = await self.client.get_user(resolved.account, manager_id)
            except RetailCRMError as e:
                logger.warning(f"Could not load manager {manager_id}: {e}")
                return resolved
            name = " ".join(part for part in (user.get('firstName'), user.get('lastName')) if part)
            if not name:
                return resolved
            self._manager_names[key] = name

        resolved.data['managerName'] = self._manager_names[key]
        return resolved
