import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

"""
Property-based tests for the head sampler and sample-rate clamping.
"""

from hypothesis import given, strategies as st, settings

from gemtrace.tracing.sampler import Sampler, clamp_sample_rate


# =============================================================================
# Custom Strategies
# =============================================================================

unit_interval = st.floats(min_value=0.0, max_value=1.0, exclude_max=True)
any_rate = st.floats(allow_nan=True, allow_infinity=True)


# =============================================================================
# Forced sampling
# =============================================================================

@settings(max_examples=100)
@given(rate=any_rate, draw=unit_interval)
def test_force_sample_always_records(rate: float, draw: float):
    """
    For any configured rate, including 0, forcing the sample returns True.
    """
    sampler = Sampler(random_source=lambda: draw)
    assert sampler.should_sample(True, rate) is True


# =============================================================================
# Rate boundaries
# =============================================================================

@settings(max_examples=100)
@given(draw=unit_interval)
def test_zero_rate_records_nothing(draw: float):
    sampler = Sampler(random_source=lambda: draw)
    assert sampler.should_sample(False, 0.0) is False


@settings(max_examples=100)
@given(draw=unit_interval)
def test_full_rate_records_everything(draw: float):
    sampler = Sampler(random_source=lambda: draw)
    assert sampler.should_sample(False, 1.0) is True


@settings(max_examples=100)
@given(rate=st.floats(min_value=0.0, max_value=1.0), draw=unit_interval)
def test_decision_is_draw_below_rate(rate: float, draw: float):
    """
    For rates strictly between 0 and 1 the trace is kept iff draw < rate.
    """
    sampler = Sampler(random_source=lambda: draw)
    expected = rate >= 1.0 or (rate > 0.0 and draw < rate)
    assert sampler.should_sample(False, rate) is expected


def test_half_rate_is_roughly_half():
    sampler = Sampler()
    kept = sum(sampler.should_sample(False, 0.5) for _ in range(4000))
    assert 1600 < kept < 2400


# =============================================================================
# Clamping
# =============================================================================

@settings(max_examples=100)
@given(value=any_rate)
def test_clamped_rate_is_within_unit_interval(value: float):
    assert 0.0 <= clamp_sample_rate(value) <= 1.0


def test_clamp_examples():
    assert clamp_sample_rate(1.5) == 1.0
    assert clamp_sample_rate(-0.2) == 0.0
    assert clamp_sample_rate("0.25") == 0.25
    assert clamp_sample_rate("not-a-number") == 1.0
    assert clamp_sample_rate(None) == 1.0
