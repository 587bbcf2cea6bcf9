"""Resolved color and size scale descriptors handed to plotting backends."""

from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from .models import ScaleSpec
from .palettes import round_half_up

TickFormat = Callable[[float], str]


def make_tick_format(spec: ScaleSpec, scale_type: str) -> TickFormat:
    if spec.percent:
        decimals = spec.tick_decimals if spec.tick_decimals is not None else 0
        return lambda d: f"{d * 100:.{decimals}f}%"
    if spec.tick_decimals is not None:
        decimals = spec.tick_decimals
        return lambda d: f"{d:.{decimals}f}"
    if scale_type == "threshold":
        return _threshold_tick
    return lambda d: f"{d:g}"


def _threshold_tick(d: float) -> str:
    if d < 10:
        return f"{d:.1f}"
    return str(round_half_up(d))


@dataclass(frozen=True, slots=True)
class ColorScaleDescriptor:
    """Concrete color scale: palette, cut points, unknown color, ticks.

    `threshold` scales bin by the sorted cut points in `domain` (a value equal
    to a cut point falls in the upper bin). `quantize` scales split
    `[domain[0], domain[-1]]` into `len(palette)` equal bins.
    """

    type: str
    palette: tuple[str, ...]
    domain: tuple[float, ...]
    label: str
    unknown: str
    clamp: bool = False
    legend: bool = True
    scheme: str | None = None
    tick_format: TickFormat = _threshold_tick

    @property
    def is_empty(self) -> bool:
        return not self.palette or not self.domain

    def color_for(self, value: float | None) -> str:
        if value is None or not math.isfinite(value) or self.is_empty:
            return self.unknown
        if self.type == "threshold":
            idx = bisect_right(self.domain, value)
            return self.palette[min(idx, len(self.palette) - 1)]

        lo, hi = self.domain[0], self.domain[-1]
        if value < lo or value > hi:
            if not self.clamp:
                return self.unknown
            value = min(max(value, lo), hi)
        if hi == lo:
            return self.palette[0]
        n = len(self.palette)
        idx = int((value - lo) / (hi - lo) * n)
        return self.palette[min(idx, n - 1)]

    def ticks(self) -> tuple[str, ...]:
        if self.type == "threshold":
            return tuple(self.tick_format(d) for d in self.domain)
        lo, hi = self.domain[0], self.domain[-1]
        n = len(self.palette)
        return tuple(self.tick_format(lo + (hi - lo) * idx / n) for idx in range(1, n))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "scheme": self.scheme,
            "label": self.label,
            "palette": list(self.palette),
            "domain": list(self.domain),
            "ticks": list(self.ticks()) if not self.is_empty else [],
            "unknown": self.unknown,
            "clamp": self.clamp,
            "legend": self.legend,
        }


@dataclass(frozen=True, slots=True)
class SizeScaleDescriptor:
    """Square-root radius scale from `[0, max]` onto a pixel range."""

    domain: tuple[float, float]
    range: tuple[float, float]
    label: str
    legend: bool = True

    @classmethod
    def from_values(
        cls,
        values: Iterable[float | None],
        *,
        radius_range: tuple[float, float],
        label: str,
        legend: bool = True,
    ) -> SizeScaleDescriptor:
        valid = [v for v in values if v is not None and math.isfinite(v) and v > 0]
        return cls(
            domain=(0.0, max(valid) if valid else 0.0),
            range=radius_range,
            label=label,
            legend=legend,
        )

    def radius(self, value: float | None) -> float | None:
        if value is None or not math.isfinite(value):
            return None
        r0, r1 = self.range
        top = self.domain[1]
        if top <= 0 or value <= 0:
            return r0
        t = min(math.sqrt(value / top), 1.0)
        return r0 + (r1 - r0) * t

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "sqrt",
            "label": self.label,
            "domain": list(self.domain),
            "range": list(self.range),
            "legend": self.legend,
        }
