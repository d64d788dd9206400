"""
Fan-out / fan-in helper for scoring engines.

Runs independent lookups on a shared thread pool and returns one
SignalOutcome per task. Exceptions and timeouts become failed outcomes; the
caller decides what a failure contributes. Timed-out work is not cancelled
mid-flight, its result is simply ignored.
"""

from __future__ import annotations

from concurrent.futures import Executor, wait
from dataclasses import dataclass
from typing import Any, Callable

from backend_listguard.core.exceptions import TransientSignalFailure
from backend_listguard.listguard_logging import get_logger

logger = get_logger(__name__)


@dataclass
class SignalOutcome:
    """Result of one sub-signal or analysis: a value, or the reason it is missing."""

    name: str
    ok: bool
    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, name: str, value: Any) -> SignalOutcome:
        return cls(name=name, ok=True, value=value)

    @classmethod
    def failure(cls, name: str, error: str) -> SignalOutcome:
        return cls(name=name, ok=False, error=error)


def _run_signal(name: str, fn: Callable[[], Any]) -> Any:
    try:
        return fn()
    except Exception as e:
        raise TransientSignalFailure(name, str(e) or type(e).__name__) from e


def fan_out(
    executor: Executor,
    tasks: dict[str, Callable[[], Any]],
    *,
    timeout_sec: float,
    component: str,
) -> dict[str, SignalOutcome]:
    """
    Submit every task, wait at most timeout_sec for all of them, collect outcomes.

    Args:
        executor: Shared pool (not shut down here).
        tasks: name -> zero-arg callable.
        timeout_sec: Bound on the whole batch; tasks run in parallel.
        component: Used in log events only.

    Returns:
        name -> SignalOutcome, in the order of tasks.
    """
    futures = {name: executor.submit(_run_signal, name, fn) for name, fn in tasks.items()}
    _, not_done = wait(list(futures.values()), timeout=timeout_sec)

    outcomes: dict[str, SignalOutcome] = {}
    for name, fut in futures.items():
        if fut in not_done:
            fut.cancel()
            timed_out = TransientSignalFailure(name, "timeout")
            logger.warning(
                "signal_timeout", component=component, signal=name, code=timed_out.code, timeout_sec=timeout_sec
            )
            outcomes[name] = SignalOutcome.failure(name, timed_out.message)
            continue
        exc = fut.exception()
        if isinstance(exc, TransientSignalFailure):
            logger.warning(
                "signal_failed",
                component=component,
                signal=name,
                code=exc.code,
                error=exc.message,
                exc_info=exc,
            )
            outcomes[name] = SignalOutcome.failure(name, exc.message)
        elif exc is not None:
            raise exc
        else:
            outcomes[name] = SignalOutcome.success(name, fut.result())
    return outcomes
