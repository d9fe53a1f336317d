# krishi/core/connectivity.py - Network reachability check with a short-lived cached result
import asyncio
import logging
import time
from typing import Optional

import aiohttp

from krishi.core.errors import OfflineMode

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Answers "are we online?" with at most one ping per check interval."""

    def __init__(
        self,
        check_url: str = "https://www.google.com/generate_204",
        check_interval: float = 30.0,
        timeout_seconds: float = 3.0,
        force_offline: bool = False,
    ):
        self.check_url = check_url
        self.check_interval = check_interval
        self.timeout_seconds = timeout_seconds
        self.force_offline = force_offline
        self._last_result: Optional[bool] = None
        self._last_checked = 0.0
        self._lock = asyncio.Lock()

    @classmethod
    def create(cls, settings) -> "ConnectivityMonitor":
        return cls(
            check_url=settings.CONNECTIVITY_CHECK_URL,
            check_interval=settings.CONNECTIVITY_CHECK_INTERVAL_SECONDS,
            force_offline=settings.FORCE_OFFLINE,
        )

    async def is_online(self) -> bool:
        if self.force_offline:
            return False

        async with self._lock:
            if self._last_result is not None and time.time() - self._last_checked < self.check_interval:
                return self._last_result

            online = await self._ping()
            if online != self._last_result:
                logger.info(f"🌐 Connectivity {'restored' if online else 'lost'}")
            self._last_result = online
            self._last_checked = time.time()
            return online

    async def require_online(self):
        if not await self.is_online():
            reason = "forced offline mode" if self.force_offline else f"{self.check_url} unreachable"
            raise OfflineMode(f"No network connectivity ({reason})")

    async def _ping(self) -> bool:
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.head(self.check_url, allow_redirects=True) as response:
                    return response.status < 500
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Connectivity check failed: {e}")
            return False

    def status(self) -> dict:
        return {
            "online": self._last_result,
            "forced_offline": self.force_offline,
            "last_checked": self._last_checked or None,
        }
