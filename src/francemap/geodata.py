"""Geometry provider: GeoJSON feature collections to map layers."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from .models import GeoFeature, GeoLayers, OverlayMesh

_LOGGER = logging.getLogger("francemap.geodata")

INNER_MESH_WIDTH = 0.5
REGION_MESH_WIDTH = 1.0


def load_feature_collection(path: str | Path) -> Mapping[str, Any]:
    src = Path(path)
    if not src.exists():
        raise FileNotFoundError(f"GeoJSON file not found: {src}")
    with src.open("r", encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, Mapping) or raw.get("type") != "FeatureCollection":
        raise ValueError(f"Expected a GeoJSON FeatureCollection in {src}")
    return raw


def build_geo_layers(
    feature_collection: Mapping[str, Any],
    *,
    region_property: str | None = None,
    inner_stroke: str | None = None,
    region_stroke: str | None = None,
) -> GeoLayers:
    """Features plus land background, outline and border meshes.

    The inner mesh holds every border shared by two features; the region
    mesh (when `region_property` is given) only borders between features
    whose region code differs.
    """
    raw_features = feature_collection.get("features")
    if not isinstance(raw_features, list):
        raise ValueError("Expected list for 'features'")
    features = tuple(GeoFeature.from_geojson(item) for item in raw_features)

    shape, make_valid, unary_union = _require_shapely()
    shapes: list[tuple[GeoFeature, Any]] = []
    for feature in features:
        if feature.geometry is None:
            continue
        geometry = shape(feature.geometry)
        if geometry.is_empty:
            continue
        if not geometry.is_valid:
            geometry = make_valid(geometry)
        shapes.append((feature, geometry))

    if not shapes:
        _LOGGER.warning("Feature collection has no usable geometry (%d features)", len(features))
        return GeoLayers(features=features)

    land = unary_union([geometry for _, geometry in shapes])
    outline = land.boundary
    overlays = [
        OverlayMesh(
            geometry=_shared_borders([geometry for _, geometry in shapes], outline, unary_union),
            stroke=inner_stroke,
            stroke_width=INNER_MESH_WIDTH,
        )
    ]
    if region_property is not None:
        groups: dict[str, list[Any]] = {}
        missing = 0
        for feature, geometry in shapes:
            code = feature.properties.get(region_property)
            if code is None:
                missing += 1
                continue
            groups.setdefault(str(code), []).append(geometry)
        if missing:
            _LOGGER.warning("%d features lack region property '%s'", missing, region_property)
        regions = [unary_union(parts) for parts in groups.values()]
        overlays.append(
            OverlayMesh(
                geometry=_shared_borders(regions, outline, unary_union),
                stroke=region_stroke,
                stroke_width=REGION_MESH_WIDTH,
            )
        )

    _LOGGER.debug(
        "Geo layers: %d features, %d with geometry, %d overlay meshes",
        len(features),
        len(shapes),
        len(overlays),
    )
    return GeoLayers(features=features, background=land, overlays=tuple(overlays), outline=outline)


def _shared_borders(geometries: Sequence[Any], outline: Any, unary_union: Any) -> Any:
    borders = unary_union([geometry.boundary for geometry in geometries])
    return borders.difference(outline)


def _require_shapely() -> tuple[Any, Any, Any]:
    try:
        from shapely.geometry import shape
        from shapely.ops import unary_union
        from shapely.validation import make_valid
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for geometry layers") from exc
    return (shape, make_valid, unary_union)
