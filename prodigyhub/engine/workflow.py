"""
prodigyhub.engine.workflow — Critical vs. Best-Effort Step Runner
==================================================================

Multi-step workflows (project completion, joins with side effects) mix an
authoritative transition with follow-up work that is allowed to fail.
Instead of sprinkling ``try/except`` around individual calls, each step is
declared with a :class:`StepPolicy` and the runner enforces it uniformly:

* ``CRITICAL`` — exceptions propagate to the caller unchanged.
* ``BEST_EFFORT`` — exceptions (and timeouts) are logged with the workflow
  context, recorded on the :class:`WorkflowReport`, and swallowed.

Best-effort steps may be fanned out over a thread pool, one task per
subject (e.g. per participant), each bounded by a timeout so a single
slow collaborator cannot stall the request.

Usage::

    runner = WorkflowRunner("complete_project", context={"project_id": 7})
    project = runner.run("transition", StepPolicy.CRITICAL, transition, engine, 7)
    awards = runner.fan_out("award_xp", user_ids, award_one)
    runner.run("announce", StepPolicy.BEST_EFFORT, adapter.announce, ref, timeout=10.0)
    report = runner.report
"""

from __future__ import annotations

import enum
import logging
import math
import time
from collections.abc import Callable, Hashable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

# Marker returned by ``_collect`` for a failed or timed-out future.
_FAILED: Any = object()


class StepPolicy(enum.StrEnum):
    """How a workflow step's failure is treated."""
    CRITICAL = "critical"
    BEST_EFFORT = "best_effort"


@dataclass(frozen=True, slots=True)
class StepFailure:
    """One best-effort step that did not complete."""

    step: str
    subject: Any
    error: str
    timed_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "subject": self.subject,
            "error": self.error,
            "timed_out": self.timed_out,
        }


@dataclass
class WorkflowReport:
    """Outcome of a workflow run."""

    workflow: str
    completed_steps: list[str] = field(default_factory=list)
    failures: list[StepFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class WorkflowRunner:
    """Executes steps according to their :class:`StepPolicy`.

    Parameters
    ----------
    name:
        Workflow name, used in log lines and the report.
    context:
        Identifiers (project id, caller id …) attached to every failure log
        so the operation can be retried by hand.
    max_workers:
        Upper bound on threads used by :meth:`fan_out` and timed steps.
    """

    def __init__(
        self,
        name: str,
        *,
        context: dict[str, Any] | None = None,
        max_workers: int = 8,
    ) -> None:
        self.name = name
        self.context = dict(context or {})
        self.max_workers = max(1, max_workers)
        self.report = WorkflowReport(workflow=name)

    # -----------------------------------------------------------------------
    # Generic dispatch
    # -----------------------------------------------------------------------
    def run(
        self,
        step: str,
        policy: StepPolicy,
        func: Callable[..., T],
        *args: Any,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> T | None:
        if policy is StepPolicy.CRITICAL:
            return self.critical(step, func, *args, **kwargs)
        return self.best_effort(step, func, *args, timeout=timeout, **kwargs)

    # -----------------------------------------------------------------------
    # CRITICAL
    # -----------------------------------------------------------------------
    def critical(self, step: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run *func*; any exception propagates to the caller."""
        result = func(*args, **kwargs)
        self.report.completed_steps.append(step)
        return result

    # -----------------------------------------------------------------------
    # BEST_EFFORT
    # -----------------------------------------------------------------------
    def best_effort(
        self,
        step: str,
        func: Callable[..., T],
        *args: Any,
        timeout: float | None = None,
        subject: Any = None,
        **kwargs: Any,
    ) -> T | None:
        """Run *func*; failures and timeouts are logged and recorded.

        Returns ``None`` when the step failed.
        """
        if timeout is None:
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                self._record_failure(step, subject, exc)
                return None
            self.report.completed_steps.append(step)
            return result

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.name}-{step}")
        try:
            future = executor.submit(func, *args, **kwargs)
            outcome = self._collect(step, subject, future, timeout)
            return None if outcome is _FAILED else outcome
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def fan_out(
        self,
        step: str,
        subjects: Iterable[K],
        func: Callable[[K], T],
        *,
        timeout: float | None = None,
    ) -> dict[K, T]:
        """Run ``func(subject)`` for every subject concurrently.

        Each subject is an independent best-effort unit.  Returns a mapping of
        subject → result for the subjects that succeeded in time.

        With ``timeout=None`` every subject is waited for.  Use that for work
        that must not keep running after being reported as failed, such as a
        local write that commits.
        """
        items = list(dict.fromkeys(subjects))
        if not items:
            return {}

        workers = min(len(items), self.max_workers)
        deadline: float | None = None
        if timeout is not None:
            # Queued subjects wait for a free worker, so the budget scales
            # with the number of rounds needed to drain the queue.
            rounds = math.ceil(len(items) / workers)
            deadline = time.monotonic() + timeout * rounds

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"{self.name}-{step}")
        results: dict[K, T] = {}
        try:
            futures: list[tuple[K, Future[T]]] = [
                (item, executor.submit(func, item)) for item in items
            ]
            for item, future in futures:
                remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
                outcome = self._collect(step, item, future, remaining, mark_done=False)
                if outcome is not _FAILED:
                    results[item] = outcome
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if len(results) == len(items):
            self.report.completed_steps.append(step)
        return results

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------
    def _collect(
        self,
        step: str,
        subject: Any,
        future: Future[T],
        timeout: float | None,
        *,
        mark_done: bool = True,
    ) -> Any:
        """Wait for *future*; returns ``_FAILED`` when it raised or timed out."""
        try:
            result = future.result(timeout=timeout)
        except TimeoutError:
            future.cancel()
            self._record_timeout(step, subject, timeout)
            return _FAILED
        except Exception as exc:
            self._record_failure(step, subject, exc)
            return _FAILED
        if mark_done:
            self.report.completed_steps.append(step)
        return result

    def _record_failure(self, step: str, subject: Any, exc: BaseException) -> None:
        logger.exception(
            "Best-effort step %s/%s failed (subject=%s, context=%s)",
            self.name, step, subject, self.context,
            extra={"workflow": self.name, "step": step, "subject": subject, **self.context},
        )
        self.report.failures.append(
            StepFailure(step=step, subject=subject, error=f"{type(exc).__name__}: {exc}")
        )

    def _record_timeout(self, step: str, subject: Any, timeout: float) -> None:
        logger.warning(
            "Best-effort step %s/%s timed out after %.1fs (subject=%s, context=%s)",
            self.name, step, timeout, subject, self.context,
            extra={"workflow": self.name, "step": step, "subject": subject, **self.context},
        )
        self.report.failures.append(
            StepFailure(step=step, subject=subject, error="timed out", timed_out=True)
        )
