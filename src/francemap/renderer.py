"""Single-call map rendering: join, domain, palette, layers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from .centroids import CentroidProjector
from .config import IndicatorConfig, RenderStyle
from .domain import compute_domain
from .join import JoinIndex
from .layers import CHOROPLETH, MODES, SYMBOLS, Layer, LayerComposer
from .models import (
    ConfigurationError,
    DataRow,
    DivergingScale,
    GeoLayers,
    QuantizeScale,
    ScaleSpec,
    SequentialScale,
    scale_family,
)
from .palettes import (
    QUANTIZE_POSITIONS,
    PaletteResolver,
    PaletteSampling,
    fit_palette,
)
from .scales import ColorScaleDescriptor, SizeScaleDescriptor, make_tick_format
from .strategies import ColumnKey, ColumnValue, LocaleDecimal
from .tooltips import TooltipBuilder, get_title_template, interpolate_title, secondary_metric
from .util import format_code_list

_LOGGER = logging.getLogger("francemap.renderer")

DIVERGING_OUTLINE = "#333333"
DEFAULT_OUTLINE = "#222"
SEQUENTIAL_FALLBACK = "blues"
DIVERGING_FALLBACK = "rdbu"
DARKEST_RAMP_INDEX = 18


@dataclass(frozen=True, slots=True)
class RenderRequest:
    rows: Sequence[DataRow]
    geo: GeoLayers
    indicator: IndicatorConfig
    metric: str | None = None
    facility: str | None = None
    facility_label: str = ""
    scheme_choice: str = "auto"
    mode: str | None = None
    row_filter: Callable[[DataRow], bool] | None = None


@dataclass(frozen=True, slots=True)
class RenderResult:
    layers: tuple[Layer, ...]
    color_scale: ColorScaleDescriptor
    size_scale: SizeScaleDescriptor | None
    title: str
    outline_stroke: str
    summary: dict[str, Any] = field(default_factory=dict)

    def layer(self, kind: str) -> Layer | None:
        for layer in self.layers:
            if layer.kind == kind:
                return layer
        return None


@dataclass(frozen=True, slots=True)
class _ResolvedPalette:
    colors: tuple[str, ...]
    scheme: str
    warnings: tuple[str, ...] = ()


class ScaleRenderer:
    """Turn one indicator/metric selection into a composed map.

    Configuration mistakes (unknown metric, no title template, bad color
    indices) raise `ConfigurationError`; data gaps only degrade features
    to the unknown color.
    """

    def __init__(
        self,
        style: RenderStyle | None = None,
        resolver: PaletteResolver | None = None,
        projector: CentroidProjector | None = None,
    ) -> None:
        self.style = style or RenderStyle()
        self.resolver = resolver or PaletteResolver()
        self.projector = projector or CentroidProjector()
        self.composer = LayerComposer(self.style)

    def render(self, request: RenderRequest) -> RenderResult:
        indicator = request.indicator
        metric = request.metric or indicator.metrics[0]
        spec = indicator.scale_for(metric)
        template = get_title_template(indicator.title_templates, metric, request.facility)
        title = interpolate_title(template, request.facility_label or "-", metric, spec.label)

        mode = request.mode or (SYMBOLS if indicator.symbols is not None else CHOROPLETH)
        if mode not in MODES:
            raise ConfigurationError(f"Unknown map mode '{mode}'")
        if mode == SYMBOLS and indicator.symbols is None:
            raise ConfigurationError(f"Indicator '{indicator.id}' has no symbol settings")

        scheme = spec.scheme if request.scheme_choice in ("", "auto") else request.scheme_choice
        registry = self.resolver.registry
        if registry.is_diverging(scheme) and not isinstance(spec, DivergingScale):
            spec = _as_diverging(spec)
            _LOGGER.debug("Diverging scheme '%s' selected; using a pivoted domain", scheme)

        normalizer = indicator.normalizer or LocaleDecimal()
        extractor = indicator.value_strategy or ColumnValue(indicator.data_keys.value_column)
        row_key = indicator.row_key_strategy or ColumnKey(indicator.data_keys.row_key)
        size_column = indicator.data_keys.size_column if mode == SYMBOLS else None
        index = JoinIndex.build(
            request.rows,
            row_key,
            lambda row: extractor(row, metric),
            normalizer,
            size=(lambda row: row.get(size_column)) if size_column else None,
            row_filter=self._row_filter(request),
        )

        domain = compute_domain(spec, index.values())
        uniform = _uses_uniform_bins(spec, domain)
        scale_type = "quantize" if uniform else "threshold"
        palette = self._resolve_palette(spec, scheme, domain, uniform)
        color_scale = ColorScaleDescriptor(
            type=scale_type,
            palette=palette.colors,
            domain=domain,
            label=spec.label,
            unknown=self.style.fill_unknown,
            clamp=spec.clamp,
            legend=spec.legend,
            scheme=palette.scheme,
            tick_format=make_tick_format(spec, scale_type),
        )
        outline_stroke = self._outline_color(spec, scheme, palette.colors)

        feature_key = indicator.data_keys.feature_key_strategy
        centroids = self.projector.project(request.geo.features, index, feature_key)

        size_scale: SizeScaleDescriptor | None = None
        if mode == SYMBOLS:
            assert indicator.symbols is not None
            size_scale = SizeScaleDescriptor.from_values(
                index.sizes(),
                radius_range=indicator.symbols.size_range,
                label=indicator.symbols.size_label,
                legend=indicator.symbols.legend,
            )

        tooltip = TooltipBuilder(
            spec=spec,
            template=indicator.tooltip.template,
            facility_label=request.facility_label,
            secondary=secondary_metric(indicator.color_schemes, metric)
            if indicator.tooltip.include_secondary_metric
            else None,
            size_label=size_scale.label if size_scale is not None else None,
            normalizer=normalizer,
            value=indicator.value_strategy or ColumnValue(),
        )
        layers = self.composer.compose(
            geo=request.geo,
            index=index,
            feature_key=feature_key,
            color_scale=color_scale,
            centroids=centroids,
            tooltip=tooltip,
            outline_stroke=outline_stroke,
            mode=mode,
            size_scale=size_scale,
            show_codes=indicator.symbols.show_codes if indicator.symbols else True,
        )

        feature_keys = [feature_key(f) for f in request.geo.features]
        unmatched = sorted(str(k) for k in feature_keys if k is None or k not in index)
        summary = {
            "indicator": indicator.id,
            "metric": metric,
            "mode": mode,
            "scheme": palette.scheme,
            "family": scale_family(spec),
            "rows_total": index.stats.rows_total,
            "rows_filtered": index.stats.rows_filtered,
            "rows_without_key": index.stats.rows_without_key,
            "keys_joined": len(index),
            "features_total": len(feature_keys),
            "features_unmatched": len(unmatched),
            "unmatched_keys": unmatched,
            "domain": list(domain),
            "palette": list(palette.colors),
            "warnings": list(palette.warnings),
        }
        if unmatched:
            _LOGGER.debug("Features without data: %s", format_code_list(unmatched))
        _LOGGER.info(
            "Rendered %s/%s (%s): %d/%d features joined, %d bins",
            indicator.id,
            metric,
            mode,
            len(feature_keys) - len(unmatched),
            len(feature_keys),
            len(palette.colors),
        )
        return RenderResult(
            layers=layers,
            color_scale=color_scale,
            size_scale=size_scale,
            title=title,
            outline_stroke=outline_stroke,
            summary=summary,
        )

    @staticmethod
    def _row_filter(request: RenderRequest) -> Callable[[DataRow], bool] | None:
        column = request.indicator.data_keys.facility_column
        extra = request.row_filter
        if column is None or not request.facility:
            return extra
        facility = request.facility

        def keep(row: DataRow) -> bool:
            if str(row.get(column, "")).strip() != facility:
                return False
            return extra is None or extra(row)

        return keep

    def _resolve_palette(
        self,
        spec: ScaleSpec,
        scheme: str,
        domain: tuple[float, ...],
        uniform: bool,
    ) -> _ResolvedPalette:
        family = scale_family(spec)
        registry = self.resolver.registry
        if uniform or not domain:
            bins = len(QUANTIZE_POSITIONS)
        else:
            bins = len(domain) + 1

        colors: tuple[str, ...] | None = None
        if isinstance(spec, DivergingScale) and spec.color_indices is not None:
            if registry.is_diverging(scheme):
                colors = self.resolver.by_indices(scheme, spec.color_indices)
            else:
                _LOGGER.debug("color_indices ignored: '%s' is not a diverging pair", scheme)

        if colors is None:
            if registry.is_diverging(scheme):
                assert isinstance(spec, DivergingScale)
                num_negative, num_positive = _split_counts(spec, domain)
                sampling = PaletteSampling(
                    num_negative=num_negative,
                    num_positive=num_positive,
                    min_index=spec.min_index,
                    max_index=spec.max_index,
                )
            elif uniform:
                sampling = PaletteSampling(positions=QUANTIZE_POSITIONS)
            else:
                sampling = PaletteSampling(count=bins)
            colors = self.resolver.resolve(scheme, family, sampling)

        warnings: list[str] = []
        if colors is None:
            fallback = DIVERGING_FALLBACK if family == "diverging" else SEQUENTIAL_FALLBACK
            _LOGGER.warning("Unknown color scheme '%s'; using '%s'", scheme, fallback)
            warnings.append(f"Unknown color scheme '{scheme}'; using '{fallback}'")
            scheme = fallback
            colors = self.resolver.resolve(fallback, family, PaletteSampling(count=bins)) or ()

        if domain and len(colors) != bins:
            if isinstance(spec, DivergingScale) and spec.color_indices is not None:
                raise ConfigurationError(
                    f"{len(colors)} color_indices for {bins} bins implied by the domain"
                )
            _LOGGER.debug("Refitting %d-color palette to %d bins", len(colors), bins)
            colors = fit_palette(colors, bins)
        return _ResolvedPalette(
            colors=colors,
            scheme=scheme.strip().casefold(),
            warnings=tuple(warnings),
        )

    def _outline_color(self, spec: ScaleSpec, scheme: str, palette: Sequence[str]) -> str:
        registry = self.resolver.registry
        if isinstance(spec, DivergingScale) or registry.is_diverging(scheme):
            return DIVERGING_OUTLINE
        if registry.is_named_ramp(scheme):
            return registry.ramp(scheme)[DARKEST_RAMP_INDEX]
        return palette[-1] if palette else DEFAULT_OUTLINE


def _as_diverging(spec: ScaleSpec) -> DivergingScale:
    return DivergingScale(
        scheme=spec.scheme,
        label=spec.label,
        domain=spec.domain,
        percent=spec.percent,
        clamp=spec.clamp,
        legend=spec.legend,
        tick_decimals=spec.tick_decimals,
    )


def _uses_uniform_bins(spec: ScaleSpec, domain: tuple[float, ...]) -> bool:
    """An explicit `[lo, hi]` on a quantize or sequential scale means equal-width bins."""
    return (
        isinstance(spec, (QuantizeScale, SequentialScale))
        and spec.domain is not None
        and len(domain) == 2
    )


def _split_counts(spec: DivergingScale, domain: tuple[float, ...]) -> tuple[int, int]:
    """Colors below and above the pivot for the bins of `domain`."""
    if not domain:
        return spec.side_counts()
    below = sum(1 for item in domain if item < spec.pivot)
    bins = len(domain) + 1
    return (below + 1, bins - below - 1)

