"""
Webhook handler for receiving order triggers from RetailCRM.
"""
import logging
from typing import Optional
from aiohttp import web
from datetime import datetime

from health_check import HealthCheck
from order_extractor import InboundEvent
from order_poller import OrderPoller
from relay_service import ApprovalRelay

logger = logging.getLogger(__name__)


class WebhookHandler:
    """HTTP surface of the relay: CRM webhook plus operational endpoints"""

    def __init__(self, relay: ApprovalRelay, poller: Optional[OrderPoller] = None,
                 health_check: Optional[HealthCheck] = None, webhook_enabled: bool = True):
        self.relay = relay
        self.poller = poller
        self.webhook_enabled = webhook_enabled
        self.health_check = health_check or HealthCheck(relay.monitoring)
        self.app = web.Application()
        self._setup_routes()
        logger.info("Webhook handler initialized")

    def _setup_routes(self):
        """Setup webhook routes"""
        if self.webhook_enabled:
            self.app.router.add_post('/webhook/retailcrm', self.handle_retailcrm)
        else:
            logger.info("Webhook mode disabled, /webhook/retailcrm not mounted")
        self.app.router.add_get('/test', self.handle_test)
        self.app.router.add_get('/check-orders', self.handle_check_orders)
        self.app.router.add_get('/orders-status', self.handle_orders_status)
        self.app.router.add_get('/reset-memory', self.handle_reset_memory)
        self.health_check.register(self.app)

    async def handle_retailcrm(self, request: web.Request) -> web.Response:
        """Handle incoming RetailCRM trigger; always answers 200"""
        try:
            raw_text = await request.text()
        except Exception as e:
            logger.warning(f"Could not read webhook body: {e}")
            raw_text = ""

        event = InboundEvent.from_payload(
            raw_text,
            content_type=request.content_type,
            query=dict(request.query),
            headers=dict(request.headers)
        )
        logger.info(f"Received RetailCRM webhook ({len(raw_text)} bytes, {len(event.query)} query params)")

        result = await self.relay.handle_webhook(event)
        return web.json_response(result, status=200)

    async def handle_test(self, request: web.Request) -> web.Response:
        """Liveness message with dedup counters; ?notify=1 also pings the default channel"""
        response = {
            "message": "RetailCRM relay is running",
            "timestamp": datetime.now().isoformat(),
            "processedOrders": self.relay.gate.processed_count,
            "trackedOrders": self.relay.gate.tracked_count
        }
        if request.query.get('notify') in ('1', 'true', 'yes'):
            channel_id = self.relay.resolver.registry.default.telegram_channel_id
            response["notificationSent"] = await self.relay.notifier.send_test_notification(channel_id)
        return web.json_response(response)

    async def handle_check_orders(self, request: web.Request) -> web.Response:
        """Trigger an immediate polling sweep"""
        if self.poller is None:
            return web.json_response({"success": False, "message": "Polling mode is disabled"})

        summary = await self.poller.run_once()
        if summary is None:
            return web.json_response({
                "success": False,
                "message": "A polling sweep is already running",
                "timestamp": datetime.now().isoformat()
            })
        return web.json_response({
            "success": True,
            "message": "Order check completed",
            "summary": summary,
            "timestamp": datetime.now().isoformat()
        })

    async def handle_orders_status(self, request: web.Request) -> web.Response:
        """Dump tracked dedup state"""
        return web.json_response({
            "success": True,
            "timestamp": datetime.now().isoformat(),
            **self.relay.status()
        })

    async def handle_reset_memory(self, request: web.Request) -> web.Response:
        """Clear dedup state"""
        cleared = self.relay.reset()
        return web.json_response({
            "success": True,
            "message": f"Memory cleared ({cleared} entries)",
            "timestamp": datetime.now().isoformat()
        })

    async def start_server(self, host: str = '0.0.0.0', port: int = 3000):
        """Start the webhook server"""
        try:
            runner = web.AppRunner(self.app)
            await runner.setup()

            site = web.TCPSite(runner, host, port)
            await site.start()

            logger.info(f"Webhook server started on {host}:{port}")
            logger.info(f"Webhook endpoint: http://{host}:{port}/webhook/retailcrm")
            return runner

        except Exception as e:
            logger.error(f"Failed to start webhook server: {e}")
            raise

    async def stop_server(self, runner: web.AppRunner):
        """Stop the webhook server"""
        try:
            await runner.cleanup()
            logger.info("Webhook server stopped")
        except Exception as e:
            logger.error(f"Error stopping webhook server: {e}")
