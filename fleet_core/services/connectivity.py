"""
Connectivity monitor.
Tracks whether the store is reachable and notifies listeners (the offline
queue flush) when connectivity is restored.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import aiohttp

from ..core.clock import Clock
from ..core.event_loop import ManagedEventLoop, PeriodicTask, SleepFunc
from ..core.resource_manager import ResourceManager
from ..data.repositories.base import FleetStore

logger = logging.getLogger(__name__)

RestoredListener = Callable[[], Awaitable[object]]


class ConnectivityMonitor:
    """Periodic reachability check with offline -> online transition callbacks"""

    def __init__(self, store: FleetStore, clock: Clock,
                 check_interval_seconds: float = 15.0,
                 check_url: Optional[str] = None,
                 resource_manager: Optional[ResourceManager] = None,
                 sleep: Optional[SleepFunc] = None,
                 event_loop: Optional[ManagedEventLoop] = None):
        self.store = store
        self.clock = clock
        self.check_url = check_url
        self.resource_manager = resource_manager
        self.is_online = True
        self.last_change_at = clock.now()
        self._listeners: List[RestoredListener] = []
        self._task = PeriodicTask("connectivity_check", check_interval_seconds,
                                  self.check, sleep=sleep, event_loop=event_loop)
        if check_url and resource_manager is None:
            raise ValueError("check_url requires a resource manager for the HTTP session")

    def on_restored(self, listener: RestoredListener):
        self._listeners.append(listener)

    async def start(self):
        self._task.start()

    async def stop(self):
        await self._task.stop()

    def mark_offline(self, reason: str = ""):
        if self.is_online:
            logger.warning(f"Store connectivity lost{': ' + reason if reason else ''}")
            self.is_online = False
            self.last_change_at = self.clock.now()

    async def mark_online(self):
        if self.is_online:
            return
        self.is_online = True
        self.last_change_at = self.clock.now()
        logger.info("Store connectivity restored")
        for listener in list(self._listeners):
            try:
                await listener()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Connectivity restore listener failed: {e}")

    async def is_reachable(self) -> bool:
        if not self.check_url:
            return await self.store.ping()
        try:
            session = await self.resource_manager.get_http_session()
            async with session.get(self.check_url) as response:
                return response.status < 500
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Connectivity check against {self.check_url} failed: {e}")
            return False

    async def check(self) -> bool:
        """Check once and apply the resulting state transition"""
        reachable = await self.is_reachable()
        if reachable:
            await self.mark_online()
        else:
            self.mark_offline("reachability check failed")
        return reachable
