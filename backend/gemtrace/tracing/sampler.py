"""
Head sampling for traces.

Each call draws independently. Spans started under a root inherit whatever
the root decided; only roots and standalone spans consult the sampler.
"""

import random
from typing import Any, Callable, Optional


def clamp_sample_rate(value: Any) -> float:
    """Clamp a configured rate into [0.0, 1.0].

    Non-numeric input falls back to 1.0 (sample everything) rather than
    failing configuration.
    """
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return 1.0
    if rate != rate:  # NaN
        return 1.0
    return max(0.0, min(1.0, rate))


class Sampler:
    """Decides whether a new trace is recorded.

    Args:
        random_source: Callable returning a float in [0, 1). Defaults to
            ``random.random``; tests inject a deterministic source.
    """

    def __init__(self, random_source: Optional[Callable[[], float]] = None) -> None:
        self._random = random_source or random.random

    def should_sample(self, force_sample: bool, configured_rate: float) -> bool:
        if force_sample:
            return True
        rate = clamp_sample_rate(configured_rate)
        if rate <= 0.0:
            return False
        if rate >= 1.0:
            return True
        return self._random() < rate
