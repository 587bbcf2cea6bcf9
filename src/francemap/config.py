"""Typed configuration loader for indicator definitions (`indicators.yaml`)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping, cast

import yaml

from .models import ConfigurationError, GeoFeature, ScaleSpec, scale_spec_from_mapping
from .strategies import (
    NumberNormalizer,
    PropertyKey,
    RowKey,
    ValueExtractor,
    normalizer_from_mapping,
    row_key_from_mapping,
    value_extractor_from_mapping,
)
from .tooltips import TOOLTIP_TEMPLATES, TitleTemplates

GEO_TYPES = ("departments", "academies", "epci")
DEFAULT_CONFIG_PATH = Path(__file__).with_name("data") / "indicators.yaml"


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _opt_mapping(value: Any, field_name: str) -> Mapping[str, Any] | None:
    if value is None:
        return None
    return _mapping(value, field_name)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _opt_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    return _str(value, field_name)


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ConfigurationError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"Expected bool for '{field_name}'")
    return value


def _float_pair(value: Any, field_name: str) -> tuple[float, float]:
    if not isinstance(value, list) or len(value) != 2:
        raise ConfigurationError(f"Expected [min, max] for '{field_name}'")
    lo = _float(value[0], f"{field_name}[0]")
    hi = _float(value[1], f"{field_name}[1]")
    if lo < 0 or hi < lo:
        raise ConfigurationError(f"'{field_name}' must satisfy 0 <= min <= max")
    return (lo, hi)


def _title_templates(value: Any, field_name: str) -> TitleTemplates:
    raw = _mapping(value, field_name)
    out: dict[str, str | Mapping[str, str]] = {}
    for key, entry in raw.items():
        if isinstance(entry, Mapping):
            out[str(key)] = MappingProxyType(
                {str(k): _str(v, f"{field_name}.{key}.{k}") for k, v in entry.items()}
            )
        else:
            out[str(key)] = _str(entry, f"{field_name}.{key}")
    return MappingProxyType(out)


@dataclass(frozen=True, slots=True)
class RenderStyle:
    fill_unknown: str = "#eee"
    background_fill: str = "#d8d8d8"
    outline_stroke_width: float = 1.25
    region_stroke_ratio: float = 0.3
    region_stroke_opacity: float = 0.5
    hit_radius: float = 15.0
    label_font_size: float = 9.0
    width: int = 750
    height: int = 500
    dpi: int = 100
    projection_crs: str | None = "EPSG:2154"

    @property
    def region_stroke_width(self) -> float:
        return self.outline_stroke_width * self.region_stroke_ratio

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> RenderStyle:
        if raw is None:
            return cls()
        defaults = cls()
        width = _int(raw.get("width", defaults.width), "style.width")
        height = _int(raw.get("height", defaults.height), "style.height")
        dpi = _int(raw.get("dpi", defaults.dpi), "style.dpi")
        if width <= 0 or height <= 0 or dpi <= 0:
            raise ConfigurationError("style.width, style.height and style.dpi must be > 0")
        opacity = _float(
            raw.get("region_stroke_opacity", defaults.region_stroke_opacity),
            "style.region_stroke_opacity",
        )
        if not 0 <= opacity <= 1:
            raise ConfigurationError("style.region_stroke_opacity must be within [0, 1]")
        projection_crs = raw.get("projection_crs", defaults.projection_crs)
        return cls(
            fill_unknown=_str(raw.get("fill_unknown", defaults.fill_unknown), "style.fill_unknown"),
            background_fill=_str(
                raw.get("background_fill", defaults.background_fill), "style.background_fill"
            ),
            outline_stroke_width=_float(
                raw.get("outline_stroke_width", defaults.outline_stroke_width),
                "style.outline_stroke_width",
            ),
            region_stroke_ratio=_float(
                raw.get("region_stroke_ratio", defaults.region_stroke_ratio),
                "style.region_stroke_ratio",
            ),
            region_stroke_opacity=opacity,
            hit_radius=_float(raw.get("hit_radius", defaults.hit_radius), "style.hit_radius"),
            label_font_size=_float(
                raw.get("label_font_size", defaults.label_font_size), "style.label_font_size"
            ),
            width=width,
            height=height,
            dpi=dpi,
            projection_crs=_opt_str(projection_crs, "style.projection_crs"),
        )


@dataclass(frozen=True, slots=True)
class DataKeys:
    row_key: str
    feature_key: str = "default"
    value_column: str | None = None
    size_column: str | None = None
    facility_column: str | None = None

    @property
    def feature_key_strategy(self) -> Callable[[GeoFeature], str | None]:
        return PropertyKey.named(self.feature_key)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], prefix: str) -> DataKeys:
        return cls(
            row_key=_str(raw.get("row_key"), f"{prefix}.row_key"),
            feature_key=_str(raw.get("feature_key", "default"), f"{prefix}.feature_key"),
            value_column=_opt_str(raw.get("value_column"), f"{prefix}.value_column"),
            size_column=_opt_str(raw.get("size_column"), f"{prefix}.size_column"),
            facility_column=_opt_str(raw.get("facility_column"), f"{prefix}.facility_column"),
        )


@dataclass(frozen=True, slots=True)
class TooltipConfig:
    template: str = "single-metric"
    include_secondary_metric: bool = False

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None, prefix: str) -> TooltipConfig:
        if raw is None:
            return cls()
        template = _str(raw.get("template", "single-metric"), f"{prefix}.template")
        if template not in TOOLTIP_TEMPLATES:
            raise ConfigurationError(
                f"{prefix}.template must be one of: " + ", ".join(TOOLTIP_TEMPLATES)
            )
        return cls(
            template=template,
            include_secondary_metric=_bool(
                raw.get("include_secondary_metric", False), f"{prefix}.include_secondary_metric"
            ),
        )


@dataclass(frozen=True, slots=True)
class SymbolsConfig:
    """Proportional-circle settings: circle area follows `size_column`."""

    size_label: str
    size_range: tuple[float, float] = (1.0, 20.0)
    legend: bool = True
    show_codes: bool = True

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], prefix: str) -> SymbolsConfig:
        return cls(
            size_label=_str(raw.get("size_label"), f"{prefix}.size_label"),
            size_range=_float_pair(raw.get("size_range", [1.0, 20.0]), f"{prefix}.size_range"),
            legend=_bool(raw.get("legend", True), f"{prefix}.legend"),
            show_codes=_bool(raw.get("show_codes", True), f"{prefix}.show_codes"),
        )


@dataclass(frozen=True, slots=True)
class IndicatorConfig:
    id: str
    title: str
    geo_type: str
    color_schemes: Mapping[str, ScaleSpec]
    title_templates: TitleTemplates
    data_keys: DataKeys
    tooltip: TooltipConfig = field(default_factory=TooltipConfig)
    value_strategy: ValueExtractor | None = None
    normalizer: NumberNormalizer | None = None
    row_key_strategy: RowKey | None = None
    symbols: SymbolsConfig | None = None

    @property
    def metrics(self) -> tuple[str, ...]:
        return tuple(self.color_schemes)

    def scale_for(self, metric: str) -> ScaleSpec:
        spec = self.color_schemes.get(metric)
        if spec is None:
            raise ConfigurationError(
                f"No color scheme configured for metric '{metric}' in indicator '{self.id}'"
            )
        return spec

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], prefix: str = "indicator") -> IndicatorConfig:
        indicator_id = _str(raw.get("id"), f"{prefix}.id")
        prefix = f"indicators.{indicator_id}"
        geo_type = _str(raw.get("geo_type", "departments"), f"{prefix}.geo_type")
        if geo_type not in GEO_TYPES:
            raise ConfigurationError(f"{prefix}.geo_type must be one of: " + ", ".join(GEO_TYPES))

        schemes_raw = _mapping(raw.get("color_schemes"), f"{prefix}.color_schemes")
        if not schemes_raw:
            raise ConfigurationError(f"{prefix}.color_schemes must not be empty")
        color_schemes = {
            str(metric): scale_spec_from_mapping(
                _mapping(entry, f"{prefix}.color_schemes.{metric}"),
                f"{prefix}.color_schemes.{metric}",
            )
            for metric, entry in schemes_raw.items()
        }

        data_keys = DataKeys.from_mapping(
            _mapping(raw.get("data_keys"), f"{prefix}.data_keys"), f"{prefix}.data_keys"
        )
        strategies = _opt_mapping(raw.get("strategies"), f"{prefix}.strategies") or {}
        symbols_raw = _opt_mapping(raw.get("symbols"), f"{prefix}.symbols")
        if symbols_raw is not None and data_keys.size_column is None:
            raise ConfigurationError(f"{prefix}.symbols requires data_keys.size_column")

        return cls(
            id=indicator_id,
            title=_str(raw.get("title"), f"{prefix}.title"),
            geo_type=geo_type,
            color_schemes=MappingProxyType(color_schemes),
            title_templates=_title_templates(raw.get("title_templates"), f"{prefix}.title_templates"),
            data_keys=data_keys,
            tooltip=TooltipConfig.from_mapping(
                _opt_mapping(raw.get("tooltip"), f"{prefix}.tooltip"), f"{prefix}.tooltip"
            ),
            value_strategy=value_extractor_from_mapping(
                _opt_mapping(strategies.get("value"), f"{prefix}.strategies.value"),
                value_column=data_keys.value_column,
            ),
            normalizer=normalizer_from_mapping(strategies.get("normalizer")),
            row_key_strategy=row_key_from_mapping(
                _opt_mapping(strategies.get("row_key"), f"{prefix}.strategies.row_key"),
                column=data_keys.row_key,
            ),
            symbols=SymbolsConfig.from_mapping(symbols_raw, f"{prefix}.symbols")
            if symbols_raw is not None
            else None,
        )


@dataclass(frozen=True, slots=True)
class MapsConfig:
    source_path: Path
    style: RenderStyle
    indicators: Mapping[str, IndicatorConfig]

    def indicator(self, indicator_id: str) -> IndicatorConfig:
        try:
            return self.indicators[indicator_id]
        except KeyError:
            raise ConfigurationError(f"Unknown indicator '{indicator_id}'") from None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> MapsConfig:
        items = raw.get("indicators")
        if not isinstance(items, list) or not items:
            raise ConfigurationError("Expected non-empty list for 'indicators'")
        indicators: dict[str, IndicatorConfig] = {}
        for idx, item in enumerate(items):
            indicator = IndicatorConfig.from_mapping(
                _mapping(item, f"indicators[{idx}]"), f"indicators[{idx}]"
            )
            if indicator.id in indicators:
                raise ConfigurationError(f"Duplicate indicator id '{indicator.id}'")
            indicators[indicator.id] = indicator
        return cls(
            source_path=source_path.resolve(),
            style=RenderStyle.from_mapping(_opt_mapping(raw.get("style"), "style")),
            indicators=MappingProxyType(indicators),
        )


def load_config(path: str | Path | None = None) -> MapsConfig:
    """Load and validate the YAML indicator file into typed settings."""
    cfg_path = Path(path if path is not None else DEFAULT_CONFIG_PATH).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Top-level config must be a YAML mapping")
    return MapsConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)


def load_indicator_configs(path: str | Path | None = None) -> Mapping[str, IndicatorConfig]:
    return load_config(path).indicators
