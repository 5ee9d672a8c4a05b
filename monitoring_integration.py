"""
Monitoring counters for the approval relay.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Any
from dataclasses import dataclass, asdict

logger = logging.getLogger(__name__)


@dataclass
class RelayMetrics:
    """Relay pipeline metrics."""
    events_received: int = 0
    events_ignored: int = 0
    orders_unresolved: int = 0
    orders_skipped: int = 0
    duplicates_blocked: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    polls_run: int = 0
    poll_errors: int = 0
    errors_count: int = 0
    uptime_seconds: int = 0


class RelayMonitoring:
    """In-process metrics collector shared by the webhook and polling paths."""

    # Pipeline outcome -> metrics counter
    OUTCOME_COUNTERS = {
        'ignored': 'events_ignored',
        'unresolved': 'orders_unresolved',
        'skipped': 'orders_skipped',
        'duplicate': 'duplicates_blocked',
        'notified': 'notifications_sent',
        'notification_failed': 'notifications_failed',
        'configuration_error': 'notifications_failed',
        'error': 'errors_count',
    }

    def __init__(self):
        self.metrics = RelayMetrics()
        self.start_time = time.time()
        self.last_poll_at = None

    def record_event_received(self, source: str):
        """Record an inbound webhook or snapshot event."""
        self.metrics.events_received += 1
        logger.debug(f"Event received from {source}")

    def record_outcome(self, status: str):
        """Record the final pipeline outcome of one event."""
        counter = self.OUTCOME_COUNTERS.get(status)
        if counter:
            setattr(self.metrics, counter, getattr(self.metrics, counter) + 1)

    def record_poll(self, errors: int = 0):
        """Record a completed polling sweep."""
        self.metrics.polls_run += 1
        self.metrics.poll_errors += errors
        self.last_poll_at = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics."""
        self.metrics.uptime_seconds = int(time.time() - self.start_time)

        return {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'metrics': asdict(self.metrics),
            'last_poll_at': self.last_poll_at.isoformat() if self.last_poll_at else None,
            'health': {
                'status': 'healthy' if self.metrics.errors_count < 10 else 'degraded',
                'notification_failures': self.metrics.notifications_failed,
            }
        }
