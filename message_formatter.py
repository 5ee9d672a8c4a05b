"""
Telegram message template for approved orders.

Formatting is total: any missing attribute renders as "Not specified".
"""
import html
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Union

from resolved_order import ResolvedOrder, first_of, is_empty

NOT_SPECIFIED = "Not specified"

CUSTOMER_FIRST_NAME = ('firstName', ('customer', 'firstName'), ('contact', 'firstName'))
CUSTOMER_LAST_NAME = ('lastName', ('customer', 'lastName'), ('contact', 'lastName'))
CUSTOMER_FULL_NAME = (('customer', 'name'), ('contact', 'name'), ('customer', 'nickName'))
PHONE = (
    'phone',
    ('customer', 'phones', 0, 'number'),
    ('contact', 'phones', 0, 'number'),
    ('customer', 'phone'),
)
ADDITIONAL_PHONE = (
    'additionalPhone',
    ('customer', 'phones', 1, 'number'),
    ('contact', 'phones', 1, 'number'),
    ('customer', 'additionalPhone'),
)
DELIVERY_ADDRESS = (
    'deliveryAddress',
    ('delivery', 'address', 'text'),
    ('customer', 'address', 'text'),
)
CITY = ('city', ('delivery', 'address', 'city'), ('customer', 'address', 'city'))
DELIVERY_DATE = ('deliveryDate', ('delivery', 'date'))
MANAGER = (
    'managerName',
    ('manager', 'name'),
    ('customFields', 'operator'),
)
TOTAL = ('totalSumm', 'summ', 'total')
ITEM_NAME = ('productName', ('offer', 'displayName'), ('offer', 'name'), 'name')

OrderLike = Union[ResolvedOrder, Mapping[str, Any]]


def _text(value: Any) -> str:
    return html.escape(str(value).strip())


def _value(order: Mapping[str, Any], paths, default: str = NOT_SPECIFIED) -> str:
    value = first_of(order, paths)
    if value is None or isinstance(value, (dict, list)):
        return default
    return _text(value)


def _customer_name(order: Mapping[str, Any]) -> str:
    first = first_of(order, CUSTOMER_FIRST_NAME)
    last = first_of(order, CUSTOMER_LAST_NAME)
    parts = [str(part).strip() for part in (first, last) if isinstance(part, (str, int))]
    name = " ".join(part for part in parts if part)
    if name:
        return html.escape(name)
    return _value(order, CUSTOMER_FULL_NAME)


def _manager(order: Mapping[str, Any]) -> str:
    manager = order.get('manager')
    if isinstance(manager, str) and manager.strip():
        return _text(manager)
    if isinstance(manager, Mapping):
        name = " ".join(str(manager[k]).strip() for k in ('firstName', 'lastName') if manager.get(k))
        if name:
            return html.escape(name)
    return _value(order, MANAGER)


def _address(order: Mapping[str, Any]) -> str:
    value = first_of(order, DELIVERY_ADDRESS)
    if isinstance(value, str):
        return _text(value)
    address = first_of(order, (('delivery', 'address'),))
    if isinstance(address, Mapping):
        parts = [address.get(k) for k in ('street', 'building', 'flat')]
        composed = ", ".join(str(part).strip() for part in parts if not is_empty(part))
        if composed:
            return html.escape(composed)
    return NOT_SPECIFIED


def _item_lines(order: Mapping[str, Any]) -> List[str]:
    items = order.get('items')
    if isinstance(items, Mapping):
        items = list(items.values())
    if not isinstance(items, list) or not items:
        return ["• No items"]

    lines = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        name = first_of(item, ITEM_NAME, default="Item")
        quantity = item.get('quantity')
        if is_empty(quantity):
            quantity = 1
        lines.append(f"• {_text(name)} - {_text(quantity)} pcs")
    return lines or ["• No items"]


def _total(order: Mapping[str, Any]) -> str:
    total = first_of(order, TOTAL, default=0)
    if isinstance(total, (dict, list)):
        total = 0
    return _text(total)


def format_order_message(order: OrderLike, currency: str,
                         approved_at: Optional[datetime] = None) -> str:
    """
    Render the approval notification for an order

    Args:
        order: ResolvedOrder or raw order mapping of any shape
        currency: Currency label of the owning account
        approved_at: Approval time shown in the message, defaults to now in UTC;
            aware times are labelled with their zone name

    Returns:
        HTML message text for Telegram
    """
    data = order.data if isinstance(order, ResolvedOrder) else (order or {})
    approved_at = approved_at or datetime.now(timezone.utc)
    number = first_of(data, ('number', 'id'), default=NOT_SPECIFIED)

    lines = [
        "🛒 <b>NEW ORDER APPROVED!</b>",
        "",
        f"📋 Order Number: {_text(number)}",
        f"👤 Operator: {_manager(data)}",
        f"📅 Delivery Date: {_value(data, DELIVERY_DATE)}",
        f"👨‍💼 Customer Name: {_customer_name(data)}",
        f"📱 Phone: {_value(data, PHONE)}",
        f"📱 Additional Phone: {_value(data, ADDITIONAL_PHONE)}",
        f"📍 Delivery Address: {_address(data)}",
        f"🏙️ City: {_value(data, CITY)}",
        "",
        "🛍️ <b>Items:</b>",
        *_item_lines(data),
        "",
        f"💰 Order Total: {_total(data)} {_text(currency or '')}".rstrip(),
        "",
        f"⏰ Approval Time: {approved_at.strftime('%d.%m.%Y, %H:%M:%S %Z').rstrip()}",
    ]
    return "\n".join(lines)
