"""
tests/test_workflow.py — Critical vs. Best-Effort Step Runner
==============================================================
"""

from __future__ import annotations

import logging
import threading
import time

import pytest

from prodigyhub.engine.workflow import StepPolicy, WorkflowRunner


class Boom(RuntimeError):
    pass


def _explode(*_args, **_kwargs):
    raise Boom("kaboom")


# ===========================================================================
# CRITICAL
# ===========================================================================
class TestCritical:
    def test_returns_result_and_marks_step(self):
        runner = WorkflowRunner("wf")
        assert runner.critical("add", lambda a, b: a + b, 2, 3) == 5
        assert runner.report.completed_steps == ["add"]

    def test_exception_propagates(self):
        runner = WorkflowRunner("wf")
        with pytest.raises(Boom):
            runner.critical("fail", _explode)
        assert runner.report.completed_steps == []
        assert runner.report.failures == []

    def test_run_dispatches_on_policy(self):
        runner = WorkflowRunner("wf")
        with pytest.raises(Boom):
            runner.run("fail", StepPolicy.CRITICAL, _explode)
        assert runner.run("soft", StepPolicy.BEST_EFFORT, _explode) is None
        assert len(runner.report.failures) == 1


# ===========================================================================
# BEST_EFFORT
# ===========================================================================
class TestBestEffort:
    def test_failure_is_recorded_and_logged(self, caplog):
        runner = WorkflowRunner("wf", context={"project_id": 7})
        with caplog.at_level(logging.ERROR, logger="prodigyhub.engine.workflow"):
            assert runner.best_effort("notify", _explode, subject=42) is None

        [failure] = runner.report.failures
        assert failure.step == "notify"
        assert failure.subject == 42
        assert "Boom" in failure.error
        assert not failure.timed_out
        assert not runner.report.ok
        assert "project_id" in caplog.text

    def test_success_passes_through(self):
        runner = WorkflowRunner("wf")
        assert runner.best_effort("ok", lambda: "done") == "done"
        assert runner.report.ok
        assert runner.report.completed_steps == ["ok"]

    def test_timeout_returns_promptly(self):
        runner = WorkflowRunner("wf")
        release = threading.Event()
        start = time.monotonic()
        result = runner.best_effort("slow", release.wait, 5, timeout=0.1)
        elapsed = time.monotonic() - start
        release.set()

        assert result is None
        assert elapsed < 2
        [failure] = runner.report.failures
        assert failure.timed_out

    def test_timed_success(self):
        runner = WorkflowRunner("wf")
        assert runner.best_effort("quick", lambda: 1, timeout=1.0) == 1
        assert runner.report.completed_steps == ["quick"]


# ===========================================================================
# fan_out
# ===========================================================================
class TestFanOut:
    def test_all_succeed(self):
        runner = WorkflowRunner("wf", max_workers=3)
        results = runner.fan_out("square", [1, 2, 3, 4], lambda n: n * n, timeout=1.0)
        assert results == {1: 1, 2: 4, 3: 9, 4: 16}
        assert runner.report.completed_steps == ["square"]

    def test_duplicates_run_once(self):
        seen = []
        lock = threading.Lock()

        def record(n):
            with lock:
                seen.append(n)
            return n

        runner = WorkflowRunner("wf")
        runner.fan_out("dedupe", [5, 5, 6], record, timeout=1.0)
        assert sorted(seen) == [5, 6]

    def test_one_failure_does_not_affect_others(self):
        def maybe_fail(n):
            if n == 2:
                raise Boom("two")
            return n

        runner = WorkflowRunner("wf")
        results = runner.fan_out("partial", [1, 2, 3], maybe_fail, timeout=1.0)
        assert results == {1: 1, 3: 3}
        assert [f.subject for f in runner.report.failures] == [2]
        assert "partial" not in runner.report.completed_steps

    def test_slow_subject_times_out(self):
        release = threading.Event()

        def work(n):
            if n == "slow":
                release.wait(5)
            return n

        runner = WorkflowRunner("wf")
        start = time.monotonic()
        results = runner.fan_out("mixed", ["fast", "slow"], work, timeout=0.2)
        elapsed = time.monotonic() - start
        release.set()

        assert results == {"fast": "fast"}
        assert elapsed < 2
        [failure] = runner.report.failures
        assert failure.subject == "slow"
        assert failure.timed_out

    def test_without_timeout_waits_for_every_subject(self):
        def work(n):
            if n == "slow":
                time.sleep(0.3)
            return n

        runner = WorkflowRunner("wf")
        results = runner.fan_out("untimed", ["fast", "slow"], work)

        assert results == {"fast": "fast", "slow": "slow"}
        assert runner.report.ok
        assert runner.report.completed_steps == ["untimed"]

    def test_empty_subjects(self):
        runner = WorkflowRunner("wf")
        assert runner.fan_out("none", [], lambda n: n, timeout=1.0) == {}
        assert runner.report.ok
