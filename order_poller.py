"""
Periodic polling sweep for accounts without a working webhook trigger.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from relay_service import ApprovalRelay

logger = logging.getLogger(__name__)


class OrderPoller:
    """Runs the relay's polling sweep every `interval` seconds, one sweep at a time"""

    def __init__(self, relay: ApprovalRelay, interval: int = 30):
        self.relay = relay
        self.interval = interval
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def sweep_in_progress(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> Optional[Dict[str, Any]]:
        """
        Run one sweep unless another one is still in progress

        Returns:
            Sweep summary, or None when the sweep was skipped
        """
        if self._lock.locked():
            logger.warning("Previous polling sweep still running, skipping this tick")
            return None
        async with self._lock:
            return await self.relay.poll_once()

    async def _loop(self):
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error during polling sweep: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def start(self):
        """Start the periodic sweep; the first sweep runs immediately"""
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Order poller started, interval {self.interval}s")

    async def stop(self):
        """Stop the periodic sweep and wait for the current one to finish"""
        self._stop_event.set()
        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=self.interval)
            except asyncio.TimeoutError:
                self._task.cancel()
            self._task = None
        logger.info("Order poller stopped")
