"""Tests for the stack usage guard."""

import sys
import threading

import pytest

from dm_monitor.resource_guard import (
    ResourceGuard,
    StackBaseline,
    StackSample,
    current_frame_depth,
)


def _recurse_to(depth, action):
    if current_frame_depth() >= depth:
        return action()
    return _recurse_to(depth, action)


class TestStackBaseline:
    """Tests for StackBaseline sampling."""

    def test_deeper_calls_use_more_stack(self):
        baseline = StackBaseline.capture()
        budget = 8 * 1024 * 1024

        shallow = baseline.sample(budget)
        deep = _recurse_to(current_frame_depth() + 50, lambda: baseline.sample(budget))

        assert shallow.bytes_budget == budget
        assert deep.bytes_used > shallow.bytes_used

    def test_usage_is_never_negative(self):
        baseline = StackBaseline(depth=10_000, thread_id=threading.get_ident())
        assert baseline.sample(1024).bytes_used >= 0

    def test_sampling_from_another_thread_fails(self):
        baseline = StackBaseline.capture()
        errors = []

        def worker():
            try:
                baseline.sample(1024)
            except RuntimeError as e:
                errors.append(e)

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert len(errors) == 1


class TestResourceGuard:
    """Tests for ResourceGuard.should_preempt."""

    def _guard(self, used, budget=1000):
        return ResourceGuard(StackBaseline.capture(), budget_bytes=budget, preempt_ratio=0.75,
                             sampler=lambda: StackSample(bytes_used=used, bytes_budget=budget))

    def test_preempts_at_threshold(self):
        assert self._guard(750).should_preempt() is True

    def test_preempts_above_threshold(self):
        assert self._guard(999).should_preempt() is True

    def test_no_preempt_below_threshold(self):
        assert self._guard(749).should_preempt() is False

    def test_shallow_stack_is_safe(self):
        guard = ResourceGuard(StackBaseline.capture(), budget_bytes=8 * 1024 * 1024)
        assert guard.should_preempt() is False

    def test_nearing_recursion_limit_preempts(self):
        guard = ResourceGuard(StackBaseline.capture(), budget_bytes=8 * 1024 * 1024,
                              preempt_ratio=0.75)
        target = int(sys.getrecursionlimit() * 0.8)
        assert _recurse_to(target, guard.should_preempt) is True

    def test_invalid_ratio_rejected(self):
        with pytest.raises(ValueError):
            ResourceGuard(StackBaseline.capture(), preempt_ratio=0)
        with pytest.raises(ValueError):
            ResourceGuard(StackBaseline.capture(), preempt_ratio=1.5)

    def test_sample_ratio(self):
        assert StackSample(bytes_used=512, bytes_budget=1024).ratio == 0.5
        assert StackSample(bytes_used=1, bytes_budget=0).ratio == 1.0
