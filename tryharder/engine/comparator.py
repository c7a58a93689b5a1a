"""
Baseline & Differential Comparator

Reduces a probe response and its reference baseline to a small set of
signals the classifier scores: status change, body length delta,
elapsed-time delta, and token reflection. Also holds the threshold
predicates shared by the injection rules.
"""

from dataclasses import dataclass
from typing import Optional, Union

from tryharder.engine.models import Baseline, ResponseRecord

# Boolean-pair thresholds
BOOLEAN_BASELINE_TOLERANCE = 100
BOOLEAN_MIN_DELTA = 50

# Time-based injection
INDUCED_DELAY_MS = 5000
TIMING_THRESHOLD_PERCENT = 90


@dataclass(frozen=True)
class DiffSignals:
    """Signals derived from a response against a baseline."""
    status_changed: bool
    length_delta: int
    elapsed_delta_ms: int
    body: str = ''
    baseline_status: int = 0

    @property
    def abs_length_delta(self) -> int:
        return abs(self.length_delta)

    def reflects(self, token: str) -> bool:
        """Whether the response body contains the token verbatim."""
        return bool(token) and token in self.body


def compare(response: ResponseRecord,
            baseline: Optional[Union[Baseline, ResponseRecord]] = None) -> DiffSignals:
    """
    Compare a response with a baseline.

    Without a baseline every delta is measured against an empty, status 0
    reference.
    """
    if isinstance(baseline, Baseline):
        reference = baseline.primary
    else:
        reference = baseline

    if reference is None:
        return DiffSignals(
            status_changed=response.status != 0,
            length_delta=response.length,
            elapsed_delta_ms=response.elapsed_ms,
            body=response.body
        )

    return DiffSignals(
        status_changed=response.status != reference.status,
        length_delta=response.length - reference.length,
        elapsed_delta_ms=response.elapsed_ms - reference.elapsed_ms,
        body=response.body,
        baseline_status=reference.status
    )


def boolean_pair_signal(true_length: int, false_length: int, baseline_length: int,
                        tolerance: int = BOOLEAN_BASELINE_TOLERANCE,
                        min_delta: int = BOOLEAN_MIN_DELTA) -> bool:
    """
    Boolean-inference test.

    The true-condition response must stay within ``tolerance`` bytes of the
    baseline while differing from the false-condition response by more
    than ``min_delta`` bytes.
    """
    return (abs(true_length - false_length) > min_delta
            and abs(true_length - baseline_length) < tolerance)


def timing_signal(elapsed_ms: int, induced_ms: int = INDUCED_DELAY_MS,
                  threshold_percent: int = TIMING_THRESHOLD_PERCENT) -> bool:
    """Whether an observed delay reaches the threshold share of the induced delay."""
    return elapsed_ms * 100 >= induced_ms * threshold_percent
