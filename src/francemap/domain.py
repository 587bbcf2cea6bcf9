"""Numeric domain inference for color scales."""

from __future__ import annotations

import logging
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from .models import DivergingScale, QuantizeScale, ScaleSpec, SequentialScale, ThresholdScale
from .palettes import round_half_up

_LOGGER = logging.getLogger("francemap.domain")

FIXED_UNIT_THRESHOLDS = (0.2, 0.4, 0.6, 0.8)
THRESHOLD_COUNT = 4

_E10 = math.sqrt(50.0)
_E5 = math.sqrt(10.0)
_E2 = math.sqrt(2.0)


def compute_domain(spec: ScaleSpec, values: Iterable[float | None]) -> tuple[float, ...]:
    """Return the explicit domain, or derive one from the joined values.

    An empty tuple means no usable value: every feature renders as no data.
    """
    if spec.domain is not None:
        return tuple(spec.domain)

    valid = finite_values(values)
    if not valid:
        _LOGGER.debug("No finite values to derive a domain from")
        return ()

    match spec:
        case DivergingScale():
            if spec.asymmetric:
                return asymmetric_diverging_domain(valid, spec)
            return symmetric_diverging_domain(valid, num_colors=spec.num_colors, pivot=spec.pivot)
        case SequentialScale() | QuantizeScale() | ThresholdScale():
            if spec.percent:
                return rounded_thresholds(0.0, 1.0)
            return rounded_thresholds(min(valid), max(valid))
    raise TypeError(f"Unsupported scale spec: {type(spec).__name__}")


def finite_values(values: Iterable[float | None]) -> list[float]:
    return [float(v) for v in values if v is not None and math.isfinite(v)]


def threshold_decimals(extent: float) -> int:
    """Decimals keeping two significant digits of `extent`, at least one."""
    if extent <= 0 or not math.isfinite(extent):
        return 1
    return max(1, 1 - math.floor(math.log10(extent)))


def symmetric_diverging_domain(
    values: Sequence[float],
    *,
    num_colors: int = 6,
    pivot: float = 0.0,
) -> tuple[float, ...]:
    """`2k - 1` thresholds mirrored around the pivot, `k = num_colors // 2`."""
    max_abs = max(abs(v - pivot) for v in values)
    if max_abs == 0:
        max_abs = 1.0
    side = max(1, num_colors // 2)
    offsets = _side_offsets(max_abs, side)
    # The negative side negates the positive offsets so both sides match exactly.
    negative = [pivot - offset for offset in reversed(offsets)]
    positive = [pivot + offset for offset in offsets]
    return (*negative, pivot, *positive)


def asymmetric_diverging_domain(values: Sequence[float], spec: DivergingScale) -> tuple[float, ...]:
    """Each side of the pivot is binned over its own extent."""
    pivot = spec.pivot
    negative_extent = pivot - min(values)
    positive_extent = max(values) - pivot
    if negative_extent <= 0 or positive_extent <= 0:
        _LOGGER.debug(
            "Asymmetric domain needs values on both sides of %s; using symmetric bins",
            pivot,
        )
        return symmetric_diverging_domain(values, num_colors=spec.num_colors, pivot=pivot)
    num_negative, num_positive = spec.side_counts()
    negative = [pivot - offset for offset in reversed(_side_offsets(negative_extent, num_negative))]
    positive = [pivot + offset for offset in _side_offsets(positive_extent, num_positive)]
    return (*negative, pivot, *positive)


def round_half_up_to(value: float, decimals: int) -> float:
    """Round halves away from zero on the shortest decimal repr, e.g. 1.25 -> 1.3."""
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _side_offsets(extent: float, bins: int) -> list[float]:
    decimals = threshold_decimals(extent)
    return [round_half_up_to(extent * idx / bins, decimals) for idx in range(1, max(bins, 1))]


def rounded_thresholds(lo: float, hi: float) -> tuple[float, ...]:
    """Exactly four readable cut points (five bins) over [lo, hi]."""
    span = hi - lo
    if span <= 1:
        return FIXED_UNIT_THRESHOLDS

    interior = nice_ticks(lo, hi, 5)[1:-1]
    if span < 10:
        candidates = [round_half_up_to(t, 1) for t in interior]
        fallback = [round_half_up_to(lo + span * idx / 5, 1) for idx in range(1, 5)]
    else:
        candidates = [float(round_half_up(t)) for t in interior]
        fallback = [float(round_half_up(lo + span * idx / 5)) for idx in range(1, 5)]

    if len(candidates) != THRESHOLD_COUNT:
        _LOGGER.debug(
            "Tick generator gave %d interior ticks over [%s, %s]; using even spacing",
            len(candidates),
            lo,
            hi,
        )
        candidates = fallback
    return tuple(candidates)


def _tick_spec(start: float, stop: float, count: float) -> tuple[int, int, float]:
    step = (stop - start) / max(0.0, count)
    power = math.floor(math.log10(step))
    error = step / (10.0**power)
    if error >= _E10:
        factor = 10
    elif error >= _E5:
        factor = 5
    elif error >= _E2:
        factor = 2
    else:
        factor = 1

    if power < 0:
        inc = (10.0 ** -power) / factor
        i1 = round_half_up(start * inc)
        i2 = round_half_up(stop * inc)
        if i1 / inc < start:
            i1 += 1
        if i2 / inc > stop:
            i2 -= 1
        inc = -inc
    else:
        inc = (10.0**power) * factor
        i1 = round_half_up(start / inc)
        i2 = round_half_up(stop / inc)
        if i1 * inc < start:
            i1 += 1
        if i2 * inc > stop:
            i2 -= 1
    if i2 < i1 and 0.5 <= count < 2:
        return _tick_spec(start, stop, count * 2)
    return (i1, i2, inc)


def nice_ticks(start: float, stop: float, count: int) -> list[float]:
    """Round-number ticks within [start, stop], about `count` of them.

    Follows the d3-array `ticks` algorithm so thresholds match what the web
    front end shows for the same data.
    """
    if count <= 0:
        return []
    if start == stop:
        return [float(start)]
    reverse = stop < start
    if reverse:
        start, stop = stop, start
    i1, i2, inc = _tick_spec(start, stop, count)
    if i2 < i1:
        return []
    n = i2 - i1 + 1
    if inc < 0:
        ticks = [(i1 + idx) / -inc for idx in range(n)]
    else:
        ticks = [(i1 + idx) * inc for idx in range(n)]
    if reverse:
        ticks.reverse()
    return ticks
