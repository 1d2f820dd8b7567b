"""Stack usage watchdog.

Some protocol payloads nest arbitrarily deep, and decoding them recurses once
per level. Running out of stack inside native decoding code aborts the whole
interpreter instead of raising, so the guard measures how much of the worker's
stack budget is in use and tells the connection state machine to drop its
session (and come back with a shallow stack) well before the limit.

The measurement is an estimate. The baseline remembers the frame depth at a
known shallow point of the worker thread; a sample turns the extra depth into
bytes with a pessimistic per-frame cost.
"""
import logging
import sys
import threading
from dataclasses import dataclass

from . import config

logger = logging.getLogger(__name__)

# Pessimistic cost of one interpreter frame including the C frames beneath it
FRAME_COST_BYTES = 2048

KIB = 1024
MIB = 1024 * 1024


def current_frame_depth():
    """Return the number of Python frames on the calling thread's stack."""
    depth = 0
    frame = sys._getframe(1)
    while frame is not None:
        depth += 1
        frame = frame.f_back
    return depth


@dataclass(frozen=True)
class StackSample:
    """Estimated stack consumption of the current worker thread."""

    bytes_used: int
    bytes_budget: int

    @property
    def ratio(self):
        """Share of the budget in use."""
        if self.bytes_budget <= 0:
            return 1.0
        return self.bytes_used / self.bytes_budget


class StackBaseline:
    """Frame depth recorded once per worker thread at a shallow call depth."""

    def __init__(self, depth, thread_id, frame_cost=FRAME_COST_BYTES):
        """Initialize the baseline from a depth recorded on ``thread_id``."""
        self.depth = depth
        self.thread_id = thread_id
        self.frame_cost = frame_cost

    @classmethod
    def capture(cls, frame_cost=FRAME_COST_BYTES):
        """Record the caller's depth as the baseline for the current thread."""
        return cls(current_frame_depth() - 1, threading.get_ident(), frame_cost)

    def sample(self, budget_bytes):
        """Estimate stack usage relative to this baseline."""
        if threading.get_ident() != self.thread_id:
            raise RuntimeError("Stack baseline sampled from a different thread")

        depth = current_frame_depth() - 1
        used = max(0, depth - self.depth) * self.frame_cost

        # The interpreter's own recursion limit is a hard ceiling too
        limit = sys.getrecursionlimit()
        if limit > 0:
            used = max(used, int(budget_bytes * depth / limit))

        return StackSample(bytes_used=used, bytes_budget=budget_bytes)


class ResourceGuard:
    """Decides when a monitor should abandon its session to protect the stack."""

    def __init__(self, baseline, budget_bytes=config.STACK_BUDGET_BYTES,
                 preempt_ratio=config.STACK_PREEMPT_RATIO, sampler=None):
        """Initialize the guard; ``sampler`` replaces real stack sampling."""
        if not 0 < preempt_ratio <= 1:
            raise ValueError(f"preempt_ratio must be in (0, 1], got {preempt_ratio}")
        self.baseline = baseline
        self.budget_bytes = budget_bytes
        self.preempt_ratio = preempt_ratio
        self._sampler = sampler

    def sample(self):
        """Take a fresh stack sample."""
        if self._sampler is not None:
            return self._sampler()
        return self.baseline.sample(self.budget_bytes)

    def should_preempt(self):
        """Return True once usage reaches the configured share of the budget."""
        sample = self.sample()
        if sample.ratio >= self.preempt_ratio:
            logger.critical(
                "[STACK] usage %.2fMB (%.0f%% of %.2fMB budget) crossed %.0f%%, forcing reconnect",
                sample.bytes_used / MIB, sample.ratio * 100, sample.bytes_budget / MIB,
                self.preempt_ratio * 100)
            return True
        return False

    def log_usage(self, context):
        """Log current stack usage, louder the deeper it is."""
        used = self.sample().bytes_used
        if used > 2 * MIB:
            logger.error("[STACK] %s: used %.2fMB", context, used / MIB)
        elif used > MIB:
            logger.warning("[STACK] %s: used %.2fMB", context, used / MIB)
        elif used > 256 * KIB:
            logger.info("[STACK] %s: used %.0fKB", context, used / KIB)
        elif used > 64 * KIB:
            logger.debug("[STACK] %s: used %.0fKB", context, used / KIB)
