import asyncio
import logging
from typing import Optional

import aiohttp

from . import __version__

log = logging.getLogger(__name__)

USER_AGENT = f"mclauncher/{__version__}"

# Shared aiohttp session, bound to the event loop that created it
AIOHTTP_SESSION: Optional[aiohttp.ClientSession] = None
_session_loop: Optional[asyncio.AbstractEventLoop] = None
_session_lock: Optional[asyncio.Lock] = None


def _lock_for_running_loop() -> asyncio.Lock:
    global AIOHTTP_SESSION, _session_loop, _session_lock
    loop = asyncio.get_running_loop()
    if _session_loop is not loop:
        if AIOHTTP_SESSION is not None and not AIOHTTP_SESSION.closed:
            log.warning("Dropping shared HTTP session left open by a previous event loop")
        AIOHTTP_SESSION = None
        _session_loop = loop
        _session_lock = asyncio.Lock()
    return _session_lock


def create_session(timeout: Optional[float] = None, concurrency: int = 8) -> aiohttp.ClientSession:
    connector = aiohttp.TCPConnector(limit=concurrency * 2, limit_per_host=concurrency)
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout, sock_connect=15),
        headers={'User-Agent': USER_AGENT},
    )


async def get_session(timeout: Optional[float] = None, concurrency: int = 8) -> aiohttp.ClientSession:
    """
    Gets or creates the shared session used when no session is injected.

    A session is only reused inside the event loop that created it; call
    `close_session()` (or `Launcher.close()`) before that loop ends.
    """
    global AIOHTTP_SESSION
    async with _lock_for_running_loop():
        if AIOHTTP_SESSION is None or AIOHTTP_SESSION.closed:
            AIOHTTP_SESSION = create_session(timeout, concurrency)
            log.debug(f"Created shared HTTP session (limit_per_host={concurrency})")
        return AIOHTTP_SESSION


async def close_session() -> None:
    global AIOHTTP_SESSION
    async with _lock_for_running_loop():
        if AIOHTTP_SESSION and not AIOHTTP_SESSION.closed:
            await AIOHTTP_SESSION.close()
            log.debug("Shared HTTP session closed.")
        AIOHTTP_SESSION = None
