"""
Approval gate: decides whether an order status is a new approval event.

Dedup state lives only in process memory and is reset on restart.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Set, Tuple, Union

logger = logging.getLogger(__name__)

APPROVED_STATUSES = ("approved", "approve")


def is_approved(status: Optional[str]) -> bool:
    """True for 'approved', 'approve' or any status label containing 'approv'"""
    if not status:
        return False
    value = str(status).strip().lower()
    return value in APPROVED_STATUSES or "approv" in value


@dataclass
class OrderStatusEntry:
    """Last known status of an order seen by the polling sweep"""
    last_known_status: Optional[str]
    last_update: datetime = field(default_factory=datetime.now)


class ApprovalGate:
    """Owns the processed-event set (webhook) and the status map (polling)"""

    def __init__(self):
        self._processed: Set[Tuple[str, str]] = set()
        self._statuses: Dict[str, OrderStatusEntry] = {}
        logger.info("ApprovalGate initialized")

    @property
    def processed_count(self) -> int:
        return len(self._processed)

    @property
    def tracked_count(self) -> int:
        return len(self._statuses)

    def check_and_record(self, order_keys: Union[Any, Sequence[Any]], status: Optional[str]) -> bool:
        """
        Record (order, status) and report whether it is new

        Both the webhook and the polling path go through here before sending,
        so one approval is sent at most once whichever path sees it first.

        Args:
            order_keys: One order identity, or every known identity of the
                order (id and number); a match on any of them is a duplicate
            status: Order status at the time of the event

        Returns:
            False when this (order, status) pair was already processed
        """
        if isinstance(order_keys, (list, tuple, set)):
            identities = [str(key) for key in order_keys]
        else:
            identities = [str(order_keys)]
        status_key = (status or "").lower()
        entries = [(identity, status_key) for identity in identities]

        if any(entry in self._processed for entry in entries):
            logger.info(f"Duplicate event for order {identities[0]} with status {status}",
                        extra={'order_id': identities[0], 'status': status, 'event': 'duplicate'})
            # Remember aliases learned from this event
            self._processed.update(entries)
            return False
        self._processed.update(entries)
        return True

    def observe(self, order_key: Any, status: Optional[str], now: Optional[datetime] = None):
        """Store a status seen outside the polling sweep so the sweep does not re-announce it"""
        self._statuses[str(order_key)] = OrderStatusEntry(status, now or datetime.now())

    def check_transition(self, order_key: Any, status: Optional[str],
                         now: Optional[datetime] = None) -> bool:
        """
        Polling mode: update the status map and report a transition to approved

        The first observation of an order is only recorded, so orders that
        were already approved before startup do not trigger a notification.

        Returns:
            True when the status changed and the new status is an approval
        """
        key = str(order_key)
        now = now or datetime.now()
        entry = self._statuses.get(key)

        if entry is None:
            self._statuses[key] = OrderStatusEntry(status, now)
            logger.debug(f"Tracking order {key} with initial status {status}")
            return False

        if entry.last_known_status == status:
            entry.last_update = now
            return False

        previous = entry.last_known_status
        self._statuses[key] = OrderStatusEntry(status, now)
        logger.info(f"Order {key} status changed: {previous} -> {status}",
                    extra={'order_id': key, 'status': status})
        return is_approved(status)

    def clear(self) -> int:
        """Operational reset of all dedup state; returns cleared entry count"""
        cleared = len(self._processed) + len(self._statuses)
        self._processed.clear()
        self._statuses.clear()
        logger.warning(f"Approval gate memory cleared ({cleared} entries)")
        return cleared

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready dump of tracked state"""
        return {
            "processed_events": [
                {"order": order, "status": status} for order, status in sorted(self._processed)
            ],
            "orders": {
                key: {
                    "status": entry.last_known_status,
                    "last_update": entry.last_update.isoformat()
                }
                for key, entry in self._statuses.items()
            },
            "processed_count": self.processed_count,
            "tracked_count": self.tracked_count,
        }
