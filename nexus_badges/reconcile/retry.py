"""Bounded retry combinator for the fetch-merge-write cycle."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

DEFAULT_ATTEMPTS = 3


async def retry_bounded[T](
    operation: cabc.Callable[[int], cabc.Awaitable[T]],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    should_retry: cabc.Callable[[Exception], bool],
    on_retry: cabc.Callable[[int, Exception], None] | None = None,
) -> T:
    """Run ``operation`` up to ``attempts`` times without delay.

    Parameters
    ----------
    operation
        Coroutine factory receiving the 1-based attempt number.
    attempts
        Maximum number of invocations; must be at least 1.
    should_retry
        Predicate deciding whether a raised exception earns another attempt.
    on_retry
        Optional hook called with ``(attempt, exc)`` before retrying.

    Returns
    -------
    T
        The first successful result.

    Raises
    ------
    Exception
        The last exception, when it is not retryable or attempts ran out.

    """
    if attempts < 1:
        msg = f"attempts must be >= 1, got {attempts}"
        raise ValueError(msg)

    for attempt in range(1, attempts + 1):
        try:
            return await operation(attempt)
        except Exception as exc:
            if attempt == attempts or not should_retry(exc):
                raise
            if on_retry is not None:
                on_retry(attempt, exc)

    msg = f"retry loop exited without a result (attempts={attempts})"
    raise RuntimeError(msg)
