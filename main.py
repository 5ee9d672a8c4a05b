"""
RetailCRM -> Telegram approval relay application.
Webhook server, optional polling sweep, graceful shutdown.
"""
import asyncio
import logging
import signal
import sys
from typing import Optional

from config import settings
from account_registry import AccountRegistry
from approval_gate import ApprovalGate
from error_handler import RelayErrorHandler
from logging_config import setup_structured_logging
from monitoring_integration import RelayMonitoring
from notifier import TelegramNotifier
from order_extractor import OrderExtractor
from order_poller import OrderPoller
from order_resolver import OrderResolver
from relay_service import ApprovalRelay
from retailcrm_client import RetailCRMClient
from webhook_handler import WebhookHandler

# Setup structured logging
setup_structured_logging(log_level=settings.log_level, log_file=settings.log_file or None)
logger = logging.getLogger(__name__)


class RelayApplication:
    """Wires the relay components together and owns their lifecycle"""

    def __init__(self):
        self.registry: Optional[AccountRegistry] = None
        self.crm_client: Optional[RetailCRMClient] = None
        self.notifier: Optional[TelegramNotifier] = None
        self.relay: Optional[ApprovalRelay] = None
        self.poller: Optional[OrderPoller] = None
        self.webhook_handler: Optional[WebhookHandler] = None
        self.webhook_runner = None
        self._shutdown_event = asyncio.Event()

    def initialize(self):
        """Initialize relay components"""
        self.registry = AccountRegistry.from_settings(settings)
        self.crm_client = RetailCRMClient(timeout=settings.api_timeout)
        self.notifier = TelegramNotifier(
            bot_token=settings.telegram_bot_token,
            timeout=settings.telegram_timeout
        )
        monitoring = RelayMonitoring()

        resolver = OrderResolver(
            self.crm_client,
            self.registry,
            retry_attempts=settings.resolve_retry_attempts,
            retry_delay=settings.resolve_retry_delay,
            default_sites=settings.default_sites_list
        )
        self.relay = ApprovalRelay(
            extractor=OrderExtractor(default_account_url=self.registry.default.base_url),
            resolver=resolver,
            gate=ApprovalGate(),
            notifier=self.notifier,
            monitoring=monitoring,
            polling_limit=settings.polling_limit
        )

        if settings.polling_enabled:
            self.poller = OrderPoller(self.relay, interval=settings.polling_interval)

        self.webhook_handler = WebhookHandler(
            self.relay,
            poller=self.poller,
            webhook_enabled=settings.webhook_enabled
        )
        logger.info(f"Relay components initialized (mode: {settings.relay_mode}, accounts: {len(self.registry)})")

    async def run(self):
        """Start the relay with proper initialization and cleanup"""
        try:
            self.initialize()

            self.webhook_runner = await self.webhook_handler.start_server(
                host=settings.webhook_host,
                port=settings.webhook_port
            )

            if self.poller:
                self.poller.start()

            RelayErrorHandler.log_system_event("relay_started", f"mode: {settings.relay_mode}")

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Error starting relay: {e}")
            raise
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Graceful shutdown"""
        logger.info("Shutting down relay...")
        RelayErrorHandler.log_system_event("relay_shutdown")

        try:
            await asyncio.wait_for(self._close_components(), timeout=settings.shutdown_timeout)
            logger.info("Relay shutdown complete")
        except asyncio.TimeoutError:
            logger.error(f"Shutdown did not finish within {settings.shutdown_timeout}s")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")

    async def _close_components(self):
        if self.poller:
            await self.poller.stop()

        if self.webhook_runner and self.webhook_handler:
            await self.webhook_handler.stop_server(self.webhook_runner)

        if self.crm_client:
            await self.crm_client.close()

        if self.notifier:
            await self.notifier.close()

    def signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, initiating shutdown...")
        self._shutdown_event.set()


async def main():
    """Main entry point"""
    app = RelayApplication()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, app.signal_handler, signum, None)

    try:
        await app.run()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        # Fail fast so the platform restarts a clean process
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)


def run_main():
    """Console script entry point"""
    asyncio.run(main())


if __name__ == "__main__":
    run_main()
