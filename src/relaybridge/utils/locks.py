"""Keyed asyncio locks.

Provides one lock per (namespace, key) so that unrelated keys never contend:
job rows are updated under ("job", job_id) and relay nonces are allocated
under ("nonce", "<chain_id>:<address>").
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: (namespace, key) -> asyncio.Lock
# An entry lives only while some coroutine holds or awaits its lock
_locks: "weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


def get_lock(namespace: str, key: str) -> asyncio.Lock:
    """Get or create the lock for a key.

    Args:
        namespace: Lock family, e.g. "job" or "nonce"
        key: Key within the namespace

    Returns:
        asyncio.Lock for the key
    """
    lock = _locks.get((namespace, key))
    if lock is None:
        lock = asyncio.Lock()
        _locks[(namespace, key)] = lock
    return lock


@asynccontextmanager
async def keyed_lock(
    namespace: str,
    key: str,
    timeout: Optional[float] = 30.0,
    operation: str = "operation",
):
    """Hold the lock for a key for the duration of the block.

    Args:
        namespace: Lock family
        key: Key within the namespace
        timeout: Maximum time to wait for the lock (None = wait forever)
        operation: Description for logging

    Example:
        async with keyed_lock("job", job_id, operation="update"):
            ...
    """
    lock = get_lock(namespace, key)

    try:
        if timeout:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        else:
            await lock.acquire()
    except asyncio.TimeoutError:
        logger.warning(f"Lock timeout for {namespace}:{key} after {timeout}s: {operation}")
        raise LockTimeoutError(
            f"Could not acquire lock for {namespace}:{key} within {timeout}s"
        )

    logger.debug(f"Lock acquired for {namespace}:{key}: {operation}")
    try:
        yield
    finally:
        lock.release()
        logger.debug(f"Lock released for {namespace}:{key}: {operation}")


def clear_locks() -> None:
    """Clear all locks (useful for testing)."""
    _locks.clear()
