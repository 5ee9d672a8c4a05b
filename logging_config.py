"""
Structured logging configuration for the approval relay.
"""
import logging
import logging.config
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

EXTRA_FIELDS = (
    'order_id', 'order_number', 'account', 'strategy', 'status', 'event',
    'error_type', 'endpoint', 'method', 'status_code', 'duration_ms', 'channel_id',
)


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def __init__(self, service_name: str = "retailcrm_relay"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "service": self.service_name
        }

        # Add extra fields if present
        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        # Add exception info if present
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_structured_logging(service_name: str = "retailcrm_relay",
                             log_level: str = "INFO",
                             log_file: Optional[str] = None) -> logging.Logger:
    """Setup structured logging configuration for the relay."""

    # Create logs directory if log file is specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
                "service_name": service_name,
            },
            "simple": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "structured",
                "stream": sys.stdout
            }
        },
        "loggers": {
            "telegram": {
                "level": "WARNING",  # Reduce telegram library noise
                "handlers": ["console"],
                "propagate": False
            },
            "httpx": {
                "level": "WARNING",  # Reduce HTTP client noise
                "handlers": ["console"],
                "propagate": False
            },
            "aiohttp": {
                "level": "WARNING",  # Reduce HTTP client noise
                "handlers": ["console"],
                "propagate": False
            }
        },
        "root": {
            "level": log_level,
            "handlers": ["console"]
        }
    }

    # Add file handler if log file is specified
    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "structured",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5
        }

        # Add file handler to all loggers
        for logger_config in config["loggers"].values():
            logger_config["handlers"].append("file")
        config["root"]["handlers"].append("file")

    logging.config.dictConfig(config)

    return logging.getLogger(service_name)


def log_order_event(logger: logging.Logger, event: str, order_id=None,
                    order_number: Optional[str] = None, account: Optional[str] = None,
                    details: Optional[dict] = None):
    """Log order-related events."""
    extra = {
        'event': event,
        'order_id': order_id,
        'order_number': order_number,
        'account': account
    }

    if details:
        extra.update(details)

    logger.info(f"Order event: {event} for order {order_number or order_id}", extra=extra)


def log_api_call(logger: logging.Logger, endpoint: str, method: str,
                 status_code: int, duration: float, account: Optional[str] = None):
    """Log API call with structured data."""
    extra = {
        'endpoint': endpoint,
        'method': method,
        'status_code': status_code,
        'duration_ms': round(duration * 1000, 1)
    }

    if account:
        extra['account'] = account

    level = logging.INFO
    if status_code >= 500:
        level = logging.ERROR
    elif status_code >= 400:
        level = logging.WARNING

    logger.log(level, f"API call: {method} {endpoint} - {status_code}", extra=extra)
