"""
Approval relay pipeline: extractor -> resolver -> gate -> formatter -> notifier.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from account_registry import Account
from approval_gate import ApprovalGate, is_approved
from error_handler import (
    ExtractionFailure,
    NotificationFailure,
    RelayErrorHandler,
    ResolutionFailure,
)
from logging_config import log_order_event
from message_formatter import format_order_message
from monitoring_integration import RelayMonitoring
from notifier import TelegramNotifier
from order_extractor import InboundEvent, OrderExtractor
from order_resolver import OrderResolver
from resolved_order import ResolvedOrder
from retailcrm_client import RetailCRMError

logger = logging.getLogger(__name__)


class ApprovalRelay:
    """Turns inbound CRM signals into at most one Telegram message per approval"""

    def __init__(self, extractor: OrderExtractor, resolver: OrderResolver,
                 gate: ApprovalGate, notifier: TelegramNotifier,
                 monitoring: Optional[RelayMonitoring] = None,
                 polling_limit: int = 100):
        self.extractor = extractor
        self.resolver = resolver
        self.gate = gate
        self.notifier = notifier
        self.monitoring = monitoring or RelayMonitoring()
        self.polling_limit = polling_limit

    @staticmethod
    def _context(resolved: ResolvedOrder) -> Dict[str, Any]:
        return {
            "order_id": resolved.id,
            "order_number": resolved.number,
            "account": resolved.account.name if resolved.account else None,
        }

    def _finish(self, status: str, message: str, success: bool = True, **context) -> Dict[str, Any]:
        response = {
            "success": success,
            "status": status,
            "message": message,
            "processed_at": datetime.now().isoformat()
        }
        response.update({k: v for k, v in context.items() if v is not None})
        return response

    async def handle_webhook(self, event: InboundEvent) -> Dict[str, Any]:
        """
        Process one webhook call

        Never raises: every outcome, including failures, is returned as
        a JSON-ready acknowledgement for a 200 response.

        Args:
            event: Parsed inbound webhook event

        Returns:
            Response dictionary with success, status and message
        """
        self.monitoring.record_event_received("webhook")
        context: Dict[str, Any] = {}
        try:
            ref = self.extractor.extract(event)
            if ref is None:
                raise ExtractionFailure("No order id or number found in event, ignored")
            context = {"order_id": ref.id, "order_number": ref.number}

            resolved = await self.resolver.resolve(ref)
            if resolved is None:
                raise ResolutionFailure(f"Order {ref.label} could not be resolved in RetailCRM")
            context = self._context(resolved)

            status = resolved.status or ref.status_hint
            if not is_approved(status):
                response = self._finish(
                    "skipped", f"Order {resolved.display_number} status '{status}' is not an approval",
                    **context
                )
            elif not self.gate.check_and_record(resolved.dedup_keys, status):
                response = self._finish(
                    "duplicate", f"Order {resolved.display_number} approval already notified",
                    **context
                )
            else:
                self.gate.observe(resolved.key, resolved.status or status)
                await self._notify(resolved)
                response = self._finish(
                    "notified", f"Order {resolved.display_number} approval sent to Telegram",
                    **context
                )
        except Exception as e:
            response = RelayErrorHandler.acknowledge(e, **context)

        self.monitoring.record_outcome(response["status"])
        return response

    async def _notify(self, resolved: ResolvedOrder):
        account: Account = resolved.account
        await self.resolver.enrich_manager(resolved)
        message = format_order_message(resolved, account.currency)

        if not await self.notifier.send(message, account.telegram_channel_id):
            raise NotificationFailure(
                f"Telegram delivery failed for order {resolved.display_number}",
                channel_id=account.telegram_channel_id
            )
        log_order_event(logger, "notified", order_id=resolved.id,
                        order_number=resolved.number, account=account.name)

    async def poll_once(self) -> Dict[str, Any]:
        """
        Run one polling sweep over every configured account

        Returns:
            Sweep summary counters
        """
        summary = {"accounts": 0, "orders": 0, "notified": 0, "failed": 0, "errors": 0}

        for account in self.resolver.registry:
            try:
                orders = await self.resolver.client.list_orders(account, limit=self.polling_limit)
            except RetailCRMError as e:
                logger.error(f"Polling {account.name} failed: {e}", extra={'account': account.name})
                summary["errors"] += 1
                continue

            summary["accounts"] += 1
            for order in orders:
                summary["orders"] += 1
                outcome = await self._process_snapshot(order, account)
                if outcome == "notified":
                    summary["notified"] += 1
                elif outcome is not None:
                    summary["failed"] += 1

        self.monitoring.record_poll(errors=summary["errors"])
        logger.info(
            f"Polling sweep done: {summary['orders']} orders in {summary['accounts']} accounts, "
            f"{summary['notified']} notified"
        )
        return summary

    async def _process_snapshot(self, order: Mapping[str, Any], account: Account) -> Optional[str]:
        """Apply the status-transition gate to one polled order; returns the outcome when notifying"""
        if not order.get('status'):
            logger.debug(f"Skipping polled order {order.get('id')} without status")
            return None

        ref = self.extractor.extract(InboundEvent.from_snapshot(order, account.base_url))
        if ref is None:
            return None
        resolved = await self.resolver.resolve(ref)
        if resolved is None:
            return None

        if not self.gate.check_transition(resolved.key, resolved.status):
            return None
        if not self.gate.check_and_record(resolved.dedup_keys, resolved.status):
            self.monitoring.record_outcome("duplicate")
            return None

        logger.info(f"Order {resolved.display_number} became approved",
                    extra={'order_id': resolved.id, 'account': account.name, 'status': resolved.status})
        try:
            await self._notify(resolved)
            outcome = "notified"
        except Exception as e:
            outcome = RelayErrorHandler.acknowledge(e, **self._context(resolved))["status"]
        self.monitoring.record_outcome(outcome)
        return outcome

    def status(self) -> Dict[str, Any]:
        """Tracked dedup state for the orders-status endpoint"""
        return self.gate.snapshot()

    def reset(self) -> int:
        return self.gate.clear()
