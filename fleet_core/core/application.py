import logging
from typing import Any, Dict, List

from fleet_core.core.event_loop import ManagedEventLoop

logger = logging.getLogger(__name__)


async def _call_lifecycle(service: Any, method_name: str):
    method = getattr(service, method_name, None)
    if method is None:
        return
    result = method()
    if hasattr(result, '__await__'):
        await result


class Application:
    """
    Owns the event loop and the registered services.

    Services start in registration order. If one fails to start, the ones
    already running are stopped again before the error propagates.
    """

    def __init__(self):
        self.event_loop = ManagedEventLoop()
        self.services: Dict[str, Any] = {}

    async def start(self):
        await self.event_loop.start()
        started: List[str] = []
        for name, service in self.services.items():
            logger.debug(f"Starting service {name}")
            try:
                await _call_lifecycle(service, 'start')
            except Exception as e:
                logger.error(f"Service {name} failed to start: {e}")
                await self._stop_services(started)
                raise
            started.append(name)
        logger.info(f"Started {len(started)} services")

    async def _stop_services(self, names: List[str]):
        for name in reversed(names):
            try:
                await _call_lifecycle(self.services[name], 'stop')
            except Exception as e:
                logger.error(f"Error stopping service {name}: {e}")

    async def stop(self):
        """Stop every registered service in reverse order, then the event loop"""
        await self._stop_services(list(self.services))
        await self.event_loop.stop()

    def register_service(self, name: str, service):
        if name in self.services:
            raise ValueError(f"Service {name} is already registered")
        self.services[name] = service

    def get_service(self, name: str):
        return self.services.get(name)
