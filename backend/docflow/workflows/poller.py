"""
Completion Poller — bounded wait on a collaborator with no push channel.

    outcome = await CompletionPoller().wait(
        probe=lambda: executor.probe_storage_status(document_id),
        max_wait=60, interval=2,
    )

Loop, while elapsed < max_wait:
  1. should_stop() → CANCELLED (cooperative cancellation, checked per poll)
  2. probe()       → a plain or async callable. Errors and per-probe
                     timeouts count as "pending", the collaborator may be
                     transiently unreachable. A result that is not a number,
                     ProbeSignal, mapping or object with .progress raises
                     TypeError
  3. signal >= 1.0 → SUCCESS
     signal <  0   → FAILURE (with the probe's message)
     otherwise     → sleep min(interval, remaining) and poll again
Deadline reached → TIMEOUT.

An async probe runs under asyncio.wait_for(probe_timeout), probe_timeout
defaulting to interval, so total blocking time is bounded by
max_wait + probe_timeout. A plain callable must return promptly; it is not
bounded. Nothing is locked while sleeping.

A pending signal does not distinguish "downstream has not picked the job
up yet" from "downstream is working on it"; both just keep the loop going.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from docflow.core.errors import ConvergenceExplicitFailure, ConvergenceTimeout

logger = logging.getLogger(__name__)


class PollStatus(str, Enum):
    SUCCESS   = "success"
    FAILURE   = "failure"     # probe reported progress < 0
    TIMEOUT   = "timeout"     # max_wait elapsed without a terminal signal
    CANCELLED = "cancelled"   # should_stop() returned True


@dataclass(frozen=True)
class ProbeSignal:
    """Progress signal reported by a downstream collaborator, in [-1.0, 1.0]."""
    progress: float
    stage:    str | None = None
    message:  str | None = None


@dataclass(frozen=True)
class PollOutcome:
    status:   PollStatus
    message:  str | None = None
    attempts: int        = 0
    elapsed:  float      = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == PollStatus.SUCCESS

    def raise_for_status(self) -> None:
        """Raise the matching convergence error for FAILURE / TIMEOUT outcomes."""
        if self.status == PollStatus.FAILURE:
            raise ConvergenceExplicitFailure(self.message or "downstream reported failure")
        if self.status == PollStatus.TIMEOUT:
            raise ConvergenceTimeout(self.message or f"no terminal signal after {self.elapsed:.1f}s")


Probe = Callable[[], Union[Awaitable[Any], Any]]


def _coerce_signal(raw: Any) -> ProbeSignal:
    if isinstance(raw, ProbeSignal):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return ProbeSignal(progress=float(raw))
    if isinstance(raw, Mapping) and "progress" in raw:
        return ProbeSignal(
            progress=float(raw["progress"]),
            stage=raw.get("stage"),
            message=raw.get("message"),
        )
    if hasattr(raw, "progress"):
        return ProbeSignal(
            progress=float(raw.progress),
            stage=getattr(raw, "stage", None),
            message=getattr(raw, "message", None),
        )
    raise TypeError(f"Unsupported probe signal: {raw!r}")


class CompletionPoller:
    """
    Reusable bounded-wait primitive.

    clock and sleep are injectable so tests can run multi-second schedules
    instantly.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep

    async def wait(
        self,
        probe:         Probe,
        max_wait:      float,
        interval:      float,
        should_stop:   Callable[[], bool] | None = None,
        probe_timeout: float | None = None,
    ) -> PollOutcome:
        if max_wait <= 0 or interval <= 0:
            raise ValueError("max_wait and interval must be positive")

        timeout  = probe_timeout if probe_timeout is not None else interval
        started  = self._clock()
        attempts = 0

        while self._clock() - started < max_wait:
            if should_stop is not None and should_stop():
                return PollOutcome(
                    PollStatus.CANCELLED, "stopped by caller", attempts, self._clock() - started,
                )

            attempts += 1
            try:
                raw = probe()
                if inspect.isawaitable(raw):
                    raw = await asyncio.wait_for(raw, timeout=timeout)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.debug(
                    "CompletionPoller | probe error treated as pending attempt=%d error=%s: %s",
                    attempts, type(exc).__name__, exc,
                )
                raw = None

            if raw is not None:
                signal = _coerce_signal(raw)
                logger.debug(
                    "CompletionPoller | attempt=%d stage=%s progress=%.2f",
                    attempts, signal.stage, signal.progress,
                )
                if signal.progress >= 1.0:
                    return PollOutcome(
                        PollStatus.SUCCESS, signal.message, attempts, self._clock() - started,
                    )
                if signal.progress < 0:
                    return PollOutcome(
                        PollStatus.FAILURE,
                        signal.message or signal.stage or "downstream reported failure",
                        attempts,
                        self._clock() - started,
                    )

            remaining = max_wait - (self._clock() - started)
            if remaining <= 0:
                break
            await self._sleep(min(interval, remaining))

        elapsed = self._clock() - started
        logger.warning(
            "CompletionPoller | timed out after %.1fs attempts=%d", elapsed, attempts,
        )
        return PollOutcome(
            PollStatus.TIMEOUT,
            f"no terminal signal within {max_wait:g}s",
            attempts,
            elapsed,
        )
