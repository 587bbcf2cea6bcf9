"""Map titles and per-feature tooltip text."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Union

from .models import ConfigurationError, DataRow, GeoFeature, ScaleSpec
from .strategies import ColumnValue, LocaleDecimal, NumberNormalizer, ValueExtractor

NO_DATA = "Pas de données"
PLACEHOLDER = "—"
TOOLTIP_TEMPLATES = ("single-metric", "dual-metric")

TitleTemplates = Mapping[str, Union[str, Mapping[str, str]]]


def get_title_template(
    templates: TitleTemplates,
    metric: str,
    facility: str | None = None,
) -> str:
    """Pick the title template for a metric, per facility when configured.

    Lookup order: metric string, metric[facility], metric["default"], then
    the top-level "default" entry.
    """
    entry = templates.get(metric)
    if isinstance(entry, str) and entry.strip():
        return entry
    if isinstance(entry, Mapping):
        if facility and isinstance(entry.get(facility), str):
            return entry[facility]
        if isinstance(entry.get("default"), str):
            return entry["default"]
    fallback = templates.get("default")
    if isinstance(fallback, str) and fallback.strip():
        return fallback
    raise ConfigurationError(f"No title template configured for metric '{metric}'")


def interpolate_title(
    template: str,
    facility_label: str,
    metric: str,
    metric_label: str | None = None,
) -> str:
    title = template.replace("{facility}", facility_label)
    return title.replace("{metric}", metric_label or metric)


def format_value(value: float, spec: ScaleSpec) -> str:
    if spec.percent:
        return f"{value * 100:.1f} %"
    label = spec.label.casefold()
    if "min" in label or "durée" in label:
        return f"{value:.1f} min"
    return f"{value:.1f}"


def format_count(value: float) -> str:
    """French thousands grouping, e.g. `1 234 567`."""
    return f"{value:,.0f}".replace(",", "\u202f")


def feature_display_name(feature: GeoFeature, row: DataRow | None) -> str:
    name = feature.name()
    if name:
        return name
    if row is not None and row.get("DEP") is not None:
        return str(row["DEP"])
    return PLACEHOLDER


@dataclass(frozen=True, slots=True)
class TooltipBuilder:
    """Callable producing the hover text for one feature.

    `single-metric` gives `name` and `label: value`; `dual-metric` adds the
    facility label and, when `secondary` is set, the other metric extracted
    from the same row with `value`.
    """

    spec: ScaleSpec
    template: str = "single-metric"
    facility_label: str = ""
    secondary: tuple[str, ScaleSpec] | None = None
    size_label: str | None = None
    normalizer: NumberNormalizer = LocaleDecimal()
    value: ValueExtractor = ColumnValue()

    def __post_init__(self) -> None:
        if self.template not in TOOLTIP_TEMPLATES:
            raise ConfigurationError(
                f"Unknown tooltip template '{self.template}'; expected one of: "
                + ", ".join(TOOLTIP_TEMPLATES)
            )

    def _main_value(self, value: float | None) -> str:
        if value is None or not math.isfinite(value):
            return NO_DATA
        return format_value(value, self.spec)

    def __call__(
        self,
        feature: GeoFeature,
        value: float | None,
        row: DataRow | None,
        size: float | None = None,
    ) -> str:
        name = feature_display_name(feature, row)
        main = f"{self.spec.label}: {self._main_value(value)}"
        if self.template == "single-metric":
            if self.size_label and size is not None:
                return f"{name}\n{main}\n{self.size_label}: {format_count(size)}"
            return f"{name}\n{main}"

        lines = [name, self.facility_label or PLACEHOLDER, main]
        if self.secondary is not None and row is not None:
            metric, other_spec = self.secondary
            other = self.normalizer(self.value(row, metric))
            other_text = PLACEHOLDER if other is None else format_value(other, other_spec)
            lines.append(f"{other_spec.label}: {other_text}")
        return "\n".join(lines)


def secondary_metric(
    color_schemes: Mapping[str, ScaleSpec],
    current: str,
) -> tuple[str, ScaleSpec] | None:
    """First configured metric other than the current one."""
    for metric, spec in color_schemes.items():
        if metric != current:
            return (metric, spec)
    return None

