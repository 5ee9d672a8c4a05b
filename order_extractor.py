"""
Order extraction from raw RetailCRM triggers.

RetailCRM triggers are known to send empty, partial or malformed payloads,
so the order reference is pulled out with an ordered list of strategies,
from the most to the least reliable.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl

logger = logging.getLogger(__name__)

ID_KEYS = ('id', 'order_id', 'orderId', 'orderID', 'order[id]')
NUMBER_KEYS = ('number', 'order_number', 'orderNumber', 'order[number]')
STATUS_KEYS = ('status', 'order_status', 'orderStatus', 'order[status]')
ACCOUNT_URL_KEYS = ('account_url', 'accountUrl', 'crm_url', 'crmUrl', 'retailcrm_url')
ACCOUNT_HEADERS = ('X-RetailCRM-Url', 'X-CRM-Url', 'X-Account-Url')
REFERER_HEADERS = ('Referer', 'Origin')

STRAY_CHARS = "'\"` \t\r\n"
RAW_ORDER_PATTERN = re.compile(r'(?:order|id)\D{0,20}?(\d{4,})', re.IGNORECASE)
URL_PATTERN = re.compile(r'(https?://[^/\s?#]+)', re.IGNORECASE)


def _clean(value: Any) -> Any:
    """Strip stray quoting/backtick characters left by CRM trigger templates"""
    if isinstance(value, str):
        return value.strip(STRAY_CHARS)
    return value


def _first_key(data: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


@dataclass
class InboundEvent:
    """Raw inbound signal: webhook body, query string or polling snapshot"""
    body: Optional[Dict[str, Any]] = None
    query: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    raw_text: str = ""

    @classmethod
    def from_payload(cls, raw_text: str, content_type: str = "",
                     query: Optional[Mapping[str, str]] = None,
                     headers: Optional[Mapping[str, str]] = None) -> "InboundEvent":
        """
        Build an event from an HTTP request payload

        Args:
            raw_text: Request body as text, possibly invalid
            content_type: Request content type
            query: Query string parameters
            headers: Request headers

        Returns:
            InboundEvent with body parsed when possible
        """
        body = cls._parse_body(raw_text or "", content_type or "")
        return cls(
            body=body,
            query={str(k): str(v) for k, v in (query or {}).items()},
            headers={str(k): str(v) for k, v in (headers or {}).items()},
            raw_text=raw_text or "",
        )

    @classmethod
    def from_snapshot(cls, order: Mapping[str, Any], account_url: Optional[str] = None) -> "InboundEvent":
        body: Dict[str, Any] = {'order': dict(order)}
        if account_url:
            body['account_url'] = account_url
        return cls(body=body)

    @staticmethod
    def _parse_body(raw_text: str, content_type: str) -> Optional[Dict[str, Any]]:
        text = raw_text.strip()
        if not text:
            return None

        if 'json' in content_type or text[0] in '{[':
            try:
                parsed = json.loads(text)
                return parsed if isinstance(parsed, dict) else None
            except ValueError:
                logger.debug("Webhook body is not valid JSON")
                if 'json' in content_type:
                    return None

        if '=' in text:
            pairs = parse_qsl(text, keep_blank_values=True)
            if pairs:
                body: Dict[str, Any] = {}
                for key, value in pairs:
                    body[_clean(key)] = _clean(value)
                order = body.get('order')
                if isinstance(order, str) and order.startswith('{'):
                    try:
                        body['order'] = json.loads(order)
                    except ValueError:
                        logger.debug("Form field 'order' is not valid JSON")
                return body
        return None

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass
class OrderReference:
    """Candidate order identity extracted from an inbound event"""
    id: Optional[int] = None
    number: Optional[str] = None
    account_url: Optional[str] = None
    status_hint: Optional[str] = None
    order: Optional[Dict[str, Any]] = None
    strategy: str = ""
    account_source: str = "default"

    @property
    def is_resolvable(self) -> bool:
        return self.id is not None or self.number is not None

    @property
    def label(self) -> str:
        return self.number or (str(self.id) if self.id is not None else "?")


Strategy = Callable[[InboundEvent], Optional[OrderReference]]


def from_embedded_order(event: InboundEvent) -> Optional[OrderReference]:
    """Structured order object under the 'order' key"""
    order = (event.body or {}).get('order')
    if not isinstance(order, dict):
        return None
    ref = OrderReference(
        id=_as_id(order.get('id')),
        number=_as_text(order.get('number')),
        status_hint=_as_text(order.get('status')),
        order=order,
    )
    return ref if ref.is_resolvable else None


def from_flat_fields(event: InboundEvent) -> Optional[OrderReference]:
    """Flat id/number/status fields in the body, snake_case or camelCase"""
    body = event.body or {}
    ref = OrderReference(
        id=_as_id(_clean(_first_key(body, ID_KEYS))),
        number=_as_text(_clean(_first_key(body, NUMBER_KEYS))),
        status_hint=_as_text(_clean(_first_key(body, STATUS_KEYS))),
    )
    return ref if ref.is_resolvable else None


def from_query_params(event: InboundEvent) -> Optional[OrderReference]:
    """Query string parameters, after stripping stray quoting characters"""
    query = {_clean(key): _clean(value) for key, value in event.query.items()}
    ref = OrderReference(
        id=_as_id(_first_key(query, ID_KEYS)),
        number=_as_text(_first_key(query, NUMBER_KEYS)),
        status_hint=_as_text(_first_key(query, STATUS_KEYS)),
    )
    return ref if ref.is_resolvable else None


def from_raw_scan(event: InboundEvent) -> Optional[OrderReference]:
    """Last resort: 4+ digit number next to 'order'/'id' in the raw payload"""
    match = RAW_ORDER_PATTERN.search(event.raw_text or "")
    if not match:
        return None
    return OrderReference(id=int(match.group(1)))


STRATEGIES: List[Tuple[str, Strategy]] = [
    ('embedded_order', from_embedded_order),
    ('flat_fields', from_flat_fields),
    ('query_params', from_query_params),
    ('raw_scan', from_raw_scan),
]


class OrderExtractor:
    """Turns raw inbound events into order references"""

    def __init__(self, default_account_url: Optional[str] = None,
                 strategies: Optional[List[Tuple[str, Strategy]]] = None):
        self.default_account_url = default_account_url
        self.strategies = strategies or STRATEGIES

    def extract(self, event: InboundEvent) -> Optional[OrderReference]:
        """
        Extract an order reference using the first strategy that succeeds

        Args:
            event: Raw inbound event

        Returns:
            OrderReference, or None when no id or number could be found
        """
        for name, strategy in self.strategies:
            ref = strategy(event)
            if ref is None:
                continue
            ref.strategy = name
            ref.account_url, ref.account_source = self.extract_account_url(event)
            if name == 'raw_scan':
                logger.warning(f"Order {ref.id} guessed from raw payload text",
                               extra={'order_id': ref.id, 'strategy': name})
            else:
                logger.info(f"Extracted order reference {ref.label} via {name}",
                            extra={'order_id': ref.id, 'order_number': ref.number, 'strategy': name})
            return ref

        logger.info("No order reference found in inbound event")
        return None

    def extract_account_url(self, event: InboundEvent) -> Tuple[Optional[str], str]:
        """Find the tenant base URL; returns (url, source)"""
        body = event.body or {}
        url = _as_text(_clean(_first_key(body, ACCOUNT_URL_KEYS)))
        if url:
            return url, 'body'

        query = {_clean(key): _clean(value) for key, value in event.query.items()}
        url = _as_text(_first_key(query, ACCOUNT_URL_KEYS))
        if url:
            return url, 'query'

        for name in ACCOUNT_HEADERS:
            url = _as_text(_clean(event.header(name)))
            if url:
                return url, 'header'

        for name in REFERER_HEADERS:
            value = event.header(name)
            match = URL_PATTERN.match(value.strip()) if value else None
            if match:
                return match.group(1), 'referer'

        logger.warning(f"No account URL in event, assuming default account {self.default_account_url}")
        return self.default_account_url, 'default'
