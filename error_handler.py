"""
Error taxonomy and acknowledgement helpers for the approval relay.

Every failure inside the pipeline ends as a 200 acknowledgement to the CRM,
so errors are turned into response dicts here instead of HTTP error codes.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Base exception for relay pipeline failures"""
    status = "error"
    log_level = logging.ERROR

    def __init__(self, message: str, **context):
        self.message = message
        self.context = context
        super().__init__(message)


class ExtractionFailure(RelayError):
    """No identifiable order in the inbound event"""
    status = "ignored"
    log_level = logging.INFO


class ResolutionFailure(RelayError):
    """CRM lookup exhausted all retries and fallbacks"""
    status = "unresolved"
    log_level = logging.WARNING


class TransientAPIError(RelayError):
    """Timeout, replication-lag 404 or missing site qualifier"""
    status = "transient"
    log_level = logging.WARNING


class NotificationFailure(RelayError):
    """Telegram delivery failed"""
    status = "notification_failed"


class ConfigurationError(RelayError):
    """Missing API key, bot token or channel for a resolved account"""
    status = "configuration_error"


class RelayErrorHandler:
    """Centralized error handling for the relay pipeline"""

    @staticmethod
    def acknowledge(error: Exception, **context) -> Dict[str, Any]:
        """
        Log a pipeline failure and build the acknowledgement body

        Args:
            error: The failure that stopped the pipeline
            context: Order/account identity to include in the response

        Returns:
            JSON-ready response dictionary with success=False
        """
        if isinstance(error, RelayError):
            status = error.status
            message = error.message
            level = error.log_level
            context = {**error.context, **context}
        else:
            status = "error"
            message = f"Unexpected error: {error}"
            level = logging.ERROR

        extra = {'error_type': type(error).__name__, 'event': status}
        extra.update({k: v for k, v in context.items() if k in ('order_id', 'order_number', 'account')})
        logger.log(level, f"Relay failure ({status}): {message}", extra=extra,
                   exc_info=not isinstance(error, RelayError))

        response = {
            "success": False,
            "status": status,
            "message": message,
            "processed_at": datetime.now().isoformat()
        }
        response.update({k: v for k, v in context.items() if v is not None})
        return response

    @staticmethod
    def log_system_event(event: str, details: Optional[str] = None):
        """
        Log system events

        Args:
            event: System event name
            details: Additional details about the event
        """
        detail_info = f" - {details}" if details else ""
        logger.info(f"System event: {event}{detail_info}")
