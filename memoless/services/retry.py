"""Polling with bounded retries, shared by reference lookup and deposit tracking."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import backoff

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and delay schedule for :func:`poll_until`.

    ``exponential`` delays start at ``initial_delay`` and double up to
    ``max_delay``; otherwise every wait is ``initial_delay``. ``max_time``
    caps the total elapsed time across attempts.
    """

    max_tries: int
    initial_delay: float = 1.0
    max_delay: float | None = None
    max_time: float | None = None
    exponential: bool = True
    jitter: bool = True

    @classmethod
    def exponential_backoff(
        cls,
        initial_delay: float,
        max_delay: float,
        max_tries: int,
        max_time: float | None = None,
    ) -> "RetryPolicy":
        return cls(
            max_tries=max_tries,
            initial_delay=initial_delay,
            max_delay=max_delay,
            max_time=max_time,
        )

    @classmethod
    def fixed_interval(cls, interval: float, max_tries: int) -> "RetryPolicy":
        return cls(
            max_tries=max_tries,
            initial_delay=interval,
            exponential=False,
            jitter=False,
        )

    def _wait(self) -> tuple[Callable[..., Any], dict[str, Any]]:
        if self.exponential:
            return backoff.expo, {"factor": self.initial_delay, "max_value": self.max_delay}
        return backoff.constant, {"interval": self.initial_delay}


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    done: Callable[[T], bool],
    policy: RetryPolicy,
    cancel: asyncio.Event | None = None,
    label: str = "poll",
) -> T:
    """Call ``fetch`` until ``done(value)``, ``cancel`` is set, or the budget runs out.

    Calls are strictly sequential. Returns the last value fetched; callers
    check ``done`` on it to tell success from exhaustion.
    """

    def _retry(value: T) -> bool:
        if cancel is not None and cancel.is_set():
            return False
        return not done(value)

    def _on_backoff(details: Any) -> None:
        logger.debug(
            "%s not ready (attempt %d of %d), retrying in %.1fs",
            label,
            details["tries"],
            policy.max_tries,
            details["wait"],
        )

    def _on_giveup(details: Any) -> None:
        logger.warning(
            "%s gave up after %d attempts (%.1fs)",
            label,
            details["tries"],
            details["elapsed"],
        )

    wait_gen, wait_kwargs = policy._wait()

    @backoff.on_predicate(
        wait_gen,
        _retry,
        max_tries=policy.max_tries,
        max_time=policy.max_time,
        jitter=backoff.full_jitter if policy.jitter else None,
        on_backoff=_on_backoff,
        on_giveup=_on_giveup,
        **wait_kwargs,
    )
    async def _attempt() -> T:
        return await fetch()

    return await _attempt()
