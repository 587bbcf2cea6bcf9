"""Domain models shared across rendering modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

DataRow = Mapping[str, Any]

FEATURE_NAME_PROPERTIES = ("NOM", "nom", "name", "NAME")


class ConfigurationError(ValueError):
    """Caller wiring bug: missing scale, missing title template, bad config."""


@dataclass(frozen=True, slots=True)
class GeoFeature:
    """One geographic region: GeoJSON geometry plus its property bag."""

    geometry: Mapping[str, Any] | None
    properties: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_geojson(cls, data: Mapping[str, Any]) -> GeoFeature:
        geometry = data.get("geometry")
        if geometry is not None and not isinstance(geometry, Mapping):
            raise ValueError("Expected mapping for feature 'geometry'")
        properties = data.get("properties") or {}
        if not isinstance(properties, Mapping):
            raise ValueError("Expected mapping for feature 'properties'")
        return cls(geometry=geometry, properties=dict(properties))

    def name(self, fallback: str = "") -> str:
        for prop in FEATURE_NAME_PROPERTIES:
            value = self.properties.get(prop)
            if value is not None and str(value).strip():
                return str(value)
        return fallback


@dataclass(frozen=True, slots=True)
class OverlayMesh:
    """Border geometry drawn between the primary layer and the outline."""

    geometry: Any
    stroke: str | None = None
    stroke_width: float = 1.0


@dataclass(frozen=True, slots=True)
class GeoLayers:
    """Everything the geometry provider hands over for one geography type."""

    features: tuple[GeoFeature, ...]
    background: Any | None = None
    overlays: tuple[OverlayMesh, ...] = ()
    outline: Any | None = None


@dataclass(frozen=True, slots=True)
class JoinEntry:
    row: DataRow
    value: float | None
    size: float | None = None


@dataclass(frozen=True, slots=True)
class CentroidPoint:
    """Representative point of one feature, with its joined data."""

    lon: float
    lat: float
    value: float | None
    feature: GeoFeature
    row: DataRow | None
    key: str | None
    name: str
    size: float | None = None

    @property
    def code_label(self) -> str:
        """Territory code without leading zeros, used to label symbols."""
        code = str(self.key or "").lstrip("0")
        return code or str(self.key or "")


def _float_tuple(value: Any, field_name: str) -> tuple[float, ...] | None:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)) or not value:
        raise ConfigurationError(f"Expected non-empty list for '{field_name}'")
    out: list[float] = []
    for idx, item in enumerate(value):
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise ConfigurationError(f"Expected number for '{field_name}[{idx}]'")
        out.append(float(item))
    if any(b < a for a, b in zip(out, out[1:])):
        raise ConfigurationError(f"'{field_name}' must be sorted ascending")
    return tuple(out)


def _int_tuple(value: Any, field_name: str) -> tuple[int, ...] | None:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)) or not value:
        raise ConfigurationError(f"Expected non-empty list for '{field_name}'")
    out: list[int] = []
    for idx, item in enumerate(value):
        if isinstance(item, bool) or not isinstance(item, int):
            raise ConfigurationError(f"Expected integer for '{field_name}[{idx}]'")
        out.append(item)
    return tuple(out)


def _opt_int(value: Any, field_name: str, default: int | None) -> int | None:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Expected integer for '{field_name}'")
    return value


def _opt_bool(value: Any, field_name: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"Expected bool for '{field_name}'")
    return value


@dataclass(frozen=True, slots=True)
class SequentialScale:
    scheme: str
    label: str = ""
    domain: tuple[float, ...] | None = None
    percent: bool = False
    clamp: bool = False
    legend: bool = True
    tick_decimals: int | None = None


@dataclass(frozen=True, slots=True)
class QuantizeScale:
    scheme: str
    label: str = ""
    domain: tuple[float, ...] | None = None
    percent: bool = False
    clamp: bool = False
    legend: bool = True
    tick_decimals: int | None = None


@dataclass(frozen=True, slots=True)
class ThresholdScale:
    scheme: str
    label: str = ""
    domain: tuple[float, ...] | None = None
    percent: bool = False
    clamp: bool = False
    legend: bool = True
    tick_decimals: int | None = None


@dataclass(frozen=True, slots=True)
class DivergingScale:
    scheme: str
    label: str = ""
    domain: tuple[float, ...] | None = None
    percent: bool = False
    clamp: bool = False
    legend: bool = True
    tick_decimals: int | None = None
    num_colors: int = 6
    min_index: int = 1
    max_index: int = 13
    asymmetric: bool = False
    num_negative: int | None = None
    num_positive: int | None = None
    color_indices: tuple[int, ...] | None = None
    pivot: float = 0.0

    def side_counts(self) -> tuple[int, int]:
        """Bins on each side of the pivot, explicit counts taking precedence."""
        if self.num_negative is not None and self.num_positive is not None:
            return (self.num_negative, self.num_positive)
        if self.domain is not None:
            below = sum(1 for item in self.domain if item < self.pivot)
            bins = len(self.domain) + 1
            return (below + 1, bins - below - 1)
        half = self.num_colors // 2
        return (half, self.num_colors - half)


ScaleSpec = Union[SequentialScale, QuantizeScale, ThresholdScale, DivergingScale]

_FAMILIES: dict[str, type] = {
    "sequential": SequentialScale,
    "quantize": QuantizeScale,
    "threshold": ThresholdScale,
    "diverging": DivergingScale,
}


def scale_family(spec: ScaleSpec) -> str:
    match spec:
        case DivergingScale():
            return "diverging"
        case ThresholdScale():
            return "threshold"
        case QuantizeScale():
            return "quantize"
        case SequentialScale():
            return "sequential"
    raise TypeError(f"Unsupported scale spec: {type(spec).__name__}")


def scale_spec_from_mapping(raw: Mapping[str, Any], field_name: str = "scale") -> ScaleSpec:
    """Build the variant matching `type` (default `quantize`) from config."""
    family = str(raw.get("type") or "quantize").strip().casefold()
    cls = _FAMILIES.get(family)
    if cls is None:
        raise ConfigurationError(
            f"{field_name}.type must be one of: " + ", ".join(sorted(_FAMILIES))
        )
    scheme = raw.get("scheme")
    if not isinstance(scheme, str) or not scheme.strip():
        raise ConfigurationError(f"Expected non-empty string for '{field_name}.scheme'")
    label = raw.get("label", "")
    if not isinstance(label, str):
        raise ConfigurationError(f"Expected string for '{field_name}.label'")

    common: dict[str, Any] = {
        "scheme": scheme.strip(),
        "label": label,
        "domain": _float_tuple(raw.get("domain"), f"{field_name}.domain"),
        "percent": _opt_bool(raw.get("percent"), f"{field_name}.percent", False),
        "clamp": _opt_bool(raw.get("clamp"), f"{field_name}.clamp", False),
        "legend": _opt_bool(raw.get("legend"), f"{field_name}.legend", True),
        "tick_decimals": _opt_int(raw.get("tick_decimals"), f"{field_name}.tick_decimals", None),
    }
    if cls is not DivergingScale:
        return cls(**common)

    num_colors = _opt_int(raw.get("diverging_colors"), f"{field_name}.diverging_colors", 6)
    min_index = _opt_int(raw.get("min_index"), f"{field_name}.min_index", 1)
    max_index = _opt_int(raw.get("max_index"), f"{field_name}.max_index", 13)
    if num_colors is None or num_colors < 2:
        raise ConfigurationError(f"{field_name}.diverging_colors must be >= 2")
    if min_index is None or max_index is None or not 0 <= min_index <= max_index <= 18:
        raise ConfigurationError(f"{field_name}: expected 0 <= min_index <= max_index <= 18")
    num_negative = _opt_int(raw.get("num_negative"), f"{field_name}.num_negative", None)
    num_positive = _opt_int(raw.get("num_positive"), f"{field_name}.num_positive", None)
    if (num_negative is None) != (num_positive is None):
        raise ConfigurationError(
            f"{field_name}: set both num_negative and num_positive, or neither"
        )
    pivot_raw = raw.get("pivot", 0.0)
    if isinstance(pivot_raw, bool) or not isinstance(pivot_raw, (int, float)):
        raise ConfigurationError(f"Expected number for '{field_name}.pivot'")
    color_indices = _int_tuple(raw.get("color_indices"), f"{field_name}.color_indices")
    domain = common["domain"]
    if color_indices is not None and domain is not None and len(color_indices) != len(domain) + 1:
        raise ConfigurationError(
            f"{field_name}: {len(color_indices)} color_indices for "
            f"{len(domain) + 1} bins implied by the domain"
        )
    return DivergingScale(
        **common,
        num_colors=num_colors,
        min_index=min_index,
        max_index=max_index,
        asymmetric=_opt_bool(raw.get("asymmetric"), f"{field_name}.asymmetric", False),
        num_negative=num_negative,
        num_positive=num_positive,
        color_indices=color_indices,
        pivot=float(pivot_raw),
    )
