# fleet_core/core/resource_manager.py
import asyncio
import os
from typing import Dict, Optional

import aiohttp
import psutil


class ResourceManager:
    """Shared HTTP session and process resource monitoring"""

    def __init__(self, request_timeout_seconds: int = 10):
        self.request_timeout_seconds = request_timeout_seconds
        self.cpu_cores = self._detect_cpu_cores()
        self.connection_pool: Optional[aiohttp.ClientSession] = None
        self._http_lock = asyncio.Lock()

    async def get_http_session(self) -> aiohttp.ClientSession:
        """Get managed HTTP session with connection pooling"""
        async with self._http_lock:
            if self.connection_pool is None or self.connection_pool.closed:
                timeout = aiohttp.ClientTimeout(total=self.request_timeout_seconds)
                connector = aiohttp.TCPConnector(limit=max(10, self.cpu_cores * 10))
                self.connection_pool = aiohttp.ClientSession(timeout=timeout, connector=connector)
            return self.connection_pool

    async def stop(self):
        async with self._http_lock:
            if self.connection_pool is not None and not self.connection_pool.closed:
                await self.connection_pool.close()
            self.connection_pool = None

    def usage_snapshot(self) -> Dict[str, float]:
        """Lightweight process snapshot for the health endpoint"""
        process = psutil.Process(os.getpid())
        memory = psutil.virtual_memory()
        return {
            "process_memory_mb": round(process.memory_info().rss / (1024 * 1024), 1),
            "process_cpu_percent": process.cpu_percent(interval=None),
            "system_memory_percent": memory.percent,
            "cpu_cores": self.cpu_cores,
        }

    def _detect_cpu_cores(self) -> int:
        try:
            cores = os.cpu_count() or 1
            return max(1, int(cores))
        except Exception:
            return 1
