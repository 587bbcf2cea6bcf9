"""Static PNG backend drawing composed layers with matplotlib."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Sequence

from .config import RenderStyle
from .layers import LabelMark, Layer, RegionMark, SymbolMark
from .renderer import RenderResult
from .util import write_json

_LOGGER = logging.getLogger("francemap.backend")

POINTS_PER_INCH = 72.0


class MatplotlibBackend:
    """Draw a `RenderResult` to an image file.

    Hit-targets are skipped: a static image has no pointer events.
    """

    def __init__(self, style: RenderStyle | None = None) -> None:
        self.style = style or RenderStyle()

    def draw(self, result: RenderResult, output_path: Path) -> Path:
        plt = _require_matplotlib()
        dpi = self.style.dpi
        fig, ax = plt.subplots(figsize=(self.style.width / dpi, self.style.height / dpi), dpi=dpi)
        fig.subplots_adjust(left=0.0, right=1.0, bottom=0.0, top=0.92)
        try:
            ax.set_axis_off()
            ax.set_aspect("equal")
            ax.set_title(result.title, fontsize=11)
            for zorder, layer in enumerate(result.layers, start=1):
                self._draw_layer(ax, layer, zorder)
            ax.autoscale_view()

            output_path.parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(output_path, dpi=dpi)
            _LOGGER.info("Wrote %s (%d layers)", output_path, len(result.layers))
            return output_path
        finally:
            plt.close(fig)

    def write_legend(self, result: RenderResult, output_path: Path) -> Path:
        payload = {
            "title": result.title,
            "outline_stroke": result.outline_stroke,
            "color": result.color_scale.to_dict(),
            "size": result.size_scale.to_dict() if result.size_scale is not None else None,
            "summary": result.summary,
        }
        write_json(output_path, payload)
        return output_path

    def _draw_layer(self, ax: Any, layer: Layer, zorder: int) -> None:
        style = layer.style
        if layer.kind == "hit-targets":
            return
        if layer.kind == "background":
            self._fill_geometry(ax, layer.data, style.get("fill"), None, 0.0, zorder=zorder)
            return
        if layer.kind in ("regions", "boundaries"):
            for mark in layer.data:
                self._draw_region(ax, mark, style, zorder)
            return
        if layer.kind == "symbols":
            self._draw_symbols(ax, layer.data, style, zorder)
            return
        if layer.kind == "labels":
            for label in layer.data:
                self._draw_label(ax, label, style, zorder)
            return
        if layer.kind in ("overlay", "outline"):
            _draw_geometry_lines(
                ax=ax,
                geometry=self._project(layer.data),
                color=style.get("stroke") or "#222",
                line_width=float(style.get("stroke_width", 1.0)),
                zorder=zorder,
            )
            return
        _LOGGER.debug("Skipping unknown layer kind '%s'", layer.kind)

    def _draw_region(self, ax: Any, mark: RegionMark, style: Any, zorder: int) -> None:
        if mark.feature.geometry is None:
            return
        shape = _require_shapely_shape()
        geometry = shape(mark.feature.geometry)
        if geometry.is_empty:
            return
        edge = style.get("stroke")
        if edge is not None and style.get("stroke_opacity") is not None:
            edge = _with_alpha(edge, float(style["stroke_opacity"]))
        self._fill_geometry(
            ax,
            geometry,
            mark.fill,
            edge,
            float(style.get("stroke_width", 0.0)),
            zorder=zorder,
        )

    def _fill_geometry(
        self,
        ax: Any,
        geometry: Any,
        fill: str | None,
        edge: Any,
        line_width: float,
        *,
        zorder: int,
    ) -> None:
        if geometry is None or getattr(geometry, "is_empty", True):
            return
        MplPath, PathPatch, orient = _require_patch_tools()
        projected = self._project(geometry)
        for polygon in _iter_polygons(projected):
            polygon = orient(polygon, sign=1.0)
            rings = [polygon.exterior, *polygon.interiors]
            path = MplPath.make_compound_path(
                *[MplPath([(x, y) for x, y, *_ in ring.coords], closed=True) for ring in rings]
            )
            ax.add_patch(
                PathPatch(
                    path,
                    facecolor=fill or "none",
                    edgecolor=edge or "none",
                    linewidth=line_width,
                    zorder=zorder,
                )
            )

    def _draw_symbols(self, ax: Any, marks: Sequence[SymbolMark], style: Any, zorder: int) -> None:
        if not marks:
            return
        points = [self._project_point(m.lon, m.lat) for m in marks]
        # scatter sizes are marker areas in points^2; radii are in pixels.
        scale = POINTS_PER_INCH / self.style.dpi
        ax.scatter(
            [p[0] for p in points],
            [p[1] for p in points],
            s=[(2.0 * m.radius * scale) ** 2 for m in marks],
            c=[m.fill for m in marks],
            edgecolors=style.get("stroke") or "none",
            linewidths=float(style.get("stroke_width", 0.5)),
            zorder=zorder,
        )

    def _draw_label(self, ax: Any, label: LabelMark, style: Any, zorder: int) -> None:
        x, y = self._project_point(label.lon, label.lat)
        ax.text(
            x,
            y,
            label.text,
            ha="center",
            va="center",
            color=style.get("fill") or "#222",
            fontsize=float(style.get("font_size", 9.0)),
            fontweight=style.get("font_weight", "normal"),
            zorder=zorder,
        )

    def _project(self, geometry: Any) -> Any:
        crs = self.style.projection_crs
        if crs is None or geometry is None or getattr(geometry, "is_empty", True):
            return geometry
        transform = _require_shapely_transform()
        return transform(_transformer(crs).transform, geometry)

    def _project_point(self, lon: float, lat: float) -> tuple[float, float]:
        crs = self.style.projection_crs
        if crs is None:
            return (float(lon), float(lat))
        x, y = _transformer(crs).transform(float(lon), float(lat))
        return (float(x), float(y))


def _draw_geometry_lines(
    *,
    ax: Any,
    geometry: Any,
    color: str,
    line_width: float,
    alpha: float = 1.0,
    zorder: int = 1,
) -> None:
    for line in _iter_line_coords(geometry):
        if len(line) < 2:
            continue
        ax.plot(
            [float(point[0]) for point in line],
            [float(point[1]) for point in line],
            color=color,
            linewidth=line_width,
            alpha=alpha,
            zorder=zorder,
            solid_joinstyle="round",
            solid_capstyle="round",
        )


def _iter_line_coords(geometry: Any) -> list[list[tuple[float, float]]]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type in ("LineString", "LinearRing"):
        return [[(float(x), float(y)) for x, y, *_ in geometry.coords]]
    if geom_type == "Polygon":
        lines = _iter_line_coords(geometry.exterior)
        for interior in geometry.interiors:
            lines.extend(_iter_line_coords(interior))
        return lines
    if geom_type in ("MultiLineString", "MultiPolygon", "GeometryCollection"):
        lines: list[list[tuple[float, float]]] = []
        for part in geometry.geoms:
            lines.extend(_iter_line_coords(part))
        return lines
    return []


def _iter_polygons(geometry: Any) -> list[Any]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Polygon":
        return [geometry]
    if geom_type in ("MultiPolygon", "GeometryCollection"):
        polygons: list[Any] = []
        for part in geometry.geoms:
            polygons.extend(_iter_polygons(part))
        return polygons
    return []


def _with_alpha(color: str, alpha: float) -> tuple[float, float, float, float]:
    try:
        from matplotlib.colors import to_rgba
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map rendering") from exc
    return to_rgba(color, alpha)


@lru_cache(maxsize=4)
def _transformer(crs: str) -> Any:
    try:
        from pyproj import Transformer
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for map projection") from exc
    return Transformer.from_crs("EPSG:4326", crs, always_xy=True)


def _require_matplotlib() -> Any:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map rendering") from exc
    return plt


def _require_patch_tools() -> tuple[Any, Any, Any]:
    try:
        from matplotlib.patches import PathPatch
        from matplotlib.path import Path as MplPath
        from shapely.geometry.polygon import orient
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib and shapely are required for filled regions") from exc
    return (MplPath, PathPatch, orient)


def _require_shapely_shape() -> Any:
    try:
        from shapely.geometry import shape
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for region geometry") from exc
    return shape


def _require_shapely_transform() -> Any:
    try:
        from shapely.ops import transform
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for geometry projection") from exc
    return transform
