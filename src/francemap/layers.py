"""Ordered, backend-agnostic draw layers for one map."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from .config import RenderStyle
from .join import JoinIndex
from .models import CentroidPoint, GeoFeature, GeoLayers
from .scales import ColorScaleDescriptor, SizeScaleDescriptor
from .tooltips import TooltipBuilder

_LOGGER = logging.getLogger("francemap.layers")

CHOROPLETH = "choropleth"
SYMBOLS = "symbols"
MODES = (CHOROPLETH, SYMBOLS)

# Bottom to top. Hit targets stay last so they receive pointer events.
LAYER_ORDER = (
    "background",
    "regions",
    "boundaries",
    "symbols",
    "labels",
    "overlay",
    "outline",
    "hit-targets",
)

SYMBOL_STROKE_WIDTH = 0.5


@dataclass(frozen=True, slots=True)
class RegionMark:
    feature: GeoFeature
    key: str | None
    value: float | None
    fill: str | None
    title: str


@dataclass(frozen=True, slots=True)
class SymbolMark:
    lon: float
    lat: float
    radius: float
    fill: str
    value: float | None
    size: float
    key: str | None


@dataclass(frozen=True, slots=True)
class LabelMark:
    lon: float
    lat: float
    text: str


@dataclass(frozen=True, slots=True)
class HitTarget:
    lon: float
    lat: float
    radius: float
    title: str


@dataclass(frozen=True, slots=True)
class Layer:
    kind: str
    data: Any
    style: Mapping[str, Any] = field(default_factory=dict)
    pointer_events: bool = False


class LayerComposer:
    """Assemble the fixed layer stack for choropleth or symbol maps.

    Every feature of the geometry provider appears in the regions (or
    boundaries) layer, joined or not; unmatched features take the scale's
    unknown color.
    """

    def __init__(self, style: RenderStyle | None = None) -> None:
        self.style = style or RenderStyle()

    def compose(
        self,
        *,
        geo: GeoLayers,
        index: JoinIndex,
        feature_key: Callable[[GeoFeature], str | None],
        color_scale: ColorScaleDescriptor,
        centroids: Sequence[CentroidPoint],
        tooltip: TooltipBuilder,
        outline_stroke: str,
        mode: str = CHOROPLETH,
        size_scale: SizeScaleDescriptor | None = None,
        show_codes: bool = True,
    ) -> tuple[Layer, ...]:
        if mode not in MODES:
            raise ValueError(f"Unknown map mode '{mode}'; expected one of: {', '.join(MODES)}")
        if mode == SYMBOLS and size_scale is None:
            raise ValueError("Symbol maps need a size scale")

        layers: list[Layer] = []
        if geo.background is not None:
            layers.append(
                Layer(
                    "background",
                    geo.background,
                    {"fill": self.style.background_fill, "stroke": None},
                )
            )

        regions = self._region_marks(geo.features, index, feature_key, color_scale, tooltip)
        if mode == CHOROPLETH:
            layers.append(
                Layer(
                    "regions",
                    regions,
                    {
                        "stroke": outline_stroke,
                        "stroke_width": self.style.region_stroke_width,
                        "stroke_opacity": self.style.region_stroke_opacity,
                    },
                )
            )
        else:
            assert size_scale is not None
            layers.append(
                Layer(
                    "boundaries",
                    tuple(RegionMark(r.feature, r.key, r.value, None, r.title) for r in regions),
                    {
                        "fill": None,
                        "stroke": outline_stroke,
                        "stroke_width": self.style.outline_stroke_width,
                    },
                )
            )
            symbols = self._symbol_marks(centroids, color_scale, size_scale)
            layers.append(
                Layer(
                    "symbols",
                    symbols,
                    {"stroke": outline_stroke, "stroke_width": SYMBOL_STROKE_WIDTH},
                )
            )
            if show_codes:
                labels = tuple(
                    LabelMark(c.lon, c.lat, c.code_label) for c in centroids if c.size is not None
                )
                layers.append(
                    Layer(
                        "labels",
                        labels,
                        {
                            "fill": outline_stroke,
                            "font_size": self.style.label_font_size,
                            "font_weight": "bold",
                        },
                    )
                )

        for mesh in geo.overlays:
            layers.append(
                Layer(
                    "overlay",
                    mesh.geometry,
                    {
                        "fill": None,
                        "stroke": mesh.stroke or outline_stroke,
                        "stroke_width": mesh.stroke_width,
                    },
                )
            )

        if geo.outline is not None:
            width = self.style.outline_stroke_width
            if mode == SYMBOLS:
                width *= 2
            layers.append(
                Layer(
                    "outline",
                    geo.outline,
                    {"fill": None, "stroke": outline_stroke, "stroke_width": width},
                )
            )

        targets = tuple(
            HitTarget(
                lon=c.lon,
                lat=c.lat,
                radius=self.style.hit_radius,
                title=tooltip(c.feature, c.value, c.row, c.size),
            )
            for c in centroids
        )
        layers.append(
            Layer("hit-targets", targets, {"fill": "transparent", "stroke": None}, pointer_events=True)
        )

        _LOGGER.debug(
            "Composed %s map: %d regions, %d hit targets, layers=%s",
            mode,
            len(regions),
            len(targets),
            [layer.kind for layer in layers],
        )
        return tuple(layers)

    @staticmethod
    def _region_marks(
        features: Sequence[GeoFeature],
        index: JoinIndex,
        feature_key: Callable[[GeoFeature], str | None],
        color_scale: ColorScaleDescriptor,
        tooltip: TooltipBuilder,
    ) -> tuple[RegionMark, ...]:
        marks: list[RegionMark] = []
        for feature in features:
            key = feature_key(feature)
            entry = index.lookup(key) if key is not None else None
            value = entry.value if entry is not None else None
            row = entry.row if entry is not None else None
            marks.append(
                RegionMark(
                    feature=feature,
                    key=key,
                    value=value,
                    fill=color_scale.color_for(value),
                    title=tooltip(feature, value, row),
                )
            )
        return tuple(marks)

    @staticmethod
    def _symbol_marks(
        centroids: Sequence[CentroidPoint],
        color_scale: ColorScaleDescriptor,
        size_scale: SizeScaleDescriptor,
    ) -> tuple[SymbolMark, ...]:
        marks: list[SymbolMark] = []
        for point in centroids:
            if point.size is None:
                continue
            radius = size_scale.radius(point.size)
            if radius is None:
                continue
            marks.append(
                SymbolMark(
                    lon=point.lon,
                    lat=point.lat,
                    radius=radius,
                    fill=color_scale.color_for(point.value),
                    value=point.value,
                    size=point.size,
                    key=point.key,
                )
            )
        # Largest first so small circles stay visible on top.
        marks.sort(key=lambda m: m.radius, reverse=True)
        return tuple(marks)
