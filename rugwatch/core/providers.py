"""
Timeout and error normalization for external provider calls.

Every chain / ML call goes through call_with_timeout so a hung RPC never
stalls the event loop's other work, and callers only ever see the
ProviderError family (plus UnsupportedNetworkError / ValidationError, which
pass through unchanged).
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, TypeVar

from rugwatch.core.exceptions import (
    ProviderTimeoutError,
    ProviderUnavailableError,
    RugwatchError,
)

T = TypeVar("T")


async def call_with_timeout(
    awaitable: Awaitable[T],
    *,
    provider: str,
    operation: str,
    timeout_sec: float,
) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_sec)
    except asyncio.TimeoutError as e:
        raise ProviderTimeoutError(provider, operation, timeout_sec) from e
    except RugwatchError:
        raise
    except Exception as e:
        raise ProviderUnavailableError(provider, operation, str(e) or type(e).__name__) from e


async def run_blocking(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Run a synchronous call (DB session, sklearn inference) off the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)
