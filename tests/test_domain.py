"""Tests for numeric domain inference."""

from __future__ import annotations

import pytest

from francemap.domain import (
    FIXED_UNIT_THRESHOLDS,
    compute_domain,
    nice_ticks,
    round_half_up_to,
    rounded_thresholds,
    symmetric_diverging_domain,
    threshold_decimals,
)
from francemap.models import DivergingScale, QuantizeScale, SequentialScale, ThresholdScale


class TestNiceTicks:
    def test_round_numbers(self):
        assert nice_ticks(0, 100, 5) == [0, 20, 40, 60, 80, 100]

    def test_small_steps(self):
        assert nice_ticks(0, 1, 5) == pytest.approx([0.0, 0.2, 0.4, 0.6, 0.8, 1.0])

    def test_ticks_stay_inside_range(self):
        assert nice_ticks(1, 9, 5) == [2, 4, 6, 8]

    def test_degenerate(self):
        assert nice_ticks(3, 3, 5) == [3.0]
        assert nice_ticks(0, 10, 0) == []


class TestThresholdInference:
    def test_unit_span_uses_fixed_thresholds(self):
        assert rounded_thresholds(0, 0.84) == FIXED_UNIT_THRESHOLDS

    def test_large_span_integer_ticks(self):
        assert rounded_thresholds(0, 100) == (20.0, 40.0, 60.0, 80.0)

    def test_fallback_to_even_spacing(self):
        # d3-style ticks give only two interior points over [1, 9]
        assert rounded_thresholds(1, 9) == pytest.approx((2.6, 4.2, 5.8, 7.4))

    def test_half_ticks_round_up(self):
        assert rounded_thresholds(0, 6.25) == (1.3, 2.5, 3.8, 5.0)

    def test_always_four_thresholds(self):
        for lo, hi in [(0, 3.3), (12, 97), (-40, 250), (0.5, 7)]:
            assert len(rounded_thresholds(lo, hi)) == 4

    def test_percent_scale_without_domain_uses_unit_interval(self):
        spec = QuantizeScale(scheme="blues", percent=True)
        assert compute_domain(spec, [0.1, 55.0]) == FIXED_UNIT_THRESHOLDS

    def test_sequential_and_threshold_families(self):
        assert compute_domain(SequentialScale(scheme="blues"), [0, 100]) == (20.0, 40.0, 60.0, 80.0)
        assert compute_domain(ThresholdScale(scheme="blues"), [0, 0.5]) == FIXED_UNIT_THRESHOLDS


class TestDivergingDomain:
    def test_symmetric_around_zero(self):
        domain = compute_domain(DivergingScale(scheme="rdbu"), [-8.7, 1.7])
        assert domain == (-5.8, -2.9, 0.0, 2.9, 5.8)
        assert domain.count(0.0) == 1

    def test_exact_mirror(self):
        domain = symmetric_diverging_domain([-3.14159, 12.7, 0.4], num_colors=8)
        assert len(domain) == 7
        for left, right in zip(domain, reversed(domain)):
            assert left == -right

    def test_all_zero_values(self):
        assert symmetric_diverging_domain([0.0, 0.0]) == (-0.7, -0.3, 0.0, 0.3, 0.7)

    def test_custom_pivot(self):
        domain = symmetric_diverging_domain([90.0, 130.0], pivot=100.0)
        assert domain == (80.0, 90.0, 100.0, 110.0, 120.0)
        assert domain.count(100.0) == 1

    def test_asymmetric_sides(self):
        spec = DivergingScale(scheme="rdbu", asymmetric=True)
        assert compute_domain(spec, [-8.7, 1.7]) == (-5.8, -2.9, 0.0, 0.6, 1.1)

    def test_asymmetric_falls_back_when_one_side_is_empty(self):
        spec = DivergingScale(scheme="rdbu", asymmetric=True)
        assert compute_domain(spec, [1.0, 3.0]) == (-2.0, -1.0, 0.0, 1.0, 2.0)

    def test_half_offsets_round_up(self):
        assert symmetric_diverging_domain([3.75]) == (-2.5, -1.3, 0.0, 1.3, 2.5)

    def test_round_half_up_to(self):
        assert round_half_up_to(1.25, 1) == 1.3
        assert round_half_up_to(-1.25, 1) == -1.3
        assert round_half_up_to(0.0125, 3) == 0.013
        assert round_half_up_to(2.94, 1) == 2.9

    def test_decimals_follow_magnitude(self):
        assert threshold_decimals(8.7) == 1
        assert threshold_decimals(0.087) == 3
        assert threshold_decimals(870) == 1


class TestExplicitAndEmpty:
    def test_explicit_domain_unchanged(self):
        spec = DivergingScale(scheme="rdbu", domain=(-0.02, -0.01, 0.0, 0.01, 0.02))
        assert compute_domain(spec, [5.0, -9.0]) == (-0.02, -0.01, 0.0, 0.01, 0.02)

    def test_no_valid_values(self):
        assert compute_domain(QuantizeScale(scheme="blues"), [None, float("nan")]) == ()
        assert compute_domain(DivergingScale(scheme="rdbu"), []) == ()
