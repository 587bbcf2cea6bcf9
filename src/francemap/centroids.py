"""Representative points for symbol placement and tooltip hit-testing."""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from .join import JoinIndex
from .models import CentroidPoint, GeoFeature

_LOGGER = logging.getLogger("francemap.centroids")


class CentroidProjector:
    """Centroids in the features' own coordinate space.

    Points are computed before any screen projection so symbols and
    hit-targets stay aligned under composite projections applied later.
    """

    def project(
        self,
        features: Sequence[GeoFeature],
        index: JoinIndex,
        feature_key: Callable[[GeoFeature], Any],
    ) -> tuple[CentroidPoint, ...]:
        out: list[CentroidPoint] = []
        skipped: list[str] = []
        for feature in features:
            key = feature_key(feature)
            point = feature_point(feature)
            if point is None:
                skipped.append(str(key))
                continue
            entry = index.lookup(key) if key is not None else None
            out.append(
                CentroidPoint(
                    lon=point[0],
                    lat=point[1],
                    value=entry.value if entry is not None else None,
                    feature=feature,
                    row=entry.row if entry is not None else None,
                    key=key,
                    name=feature.name(fallback=key or ""),
                    size=entry.size if entry is not None else None,
                )
            )
        if skipped:
            _LOGGER.debug(
                "No centroid for %d features with empty geometry: %s", len(skipped), skipped
            )
        return tuple(out)


def feature_point(feature: GeoFeature) -> tuple[float, float] | None:
    if feature.geometry is None:
        return None
    shape, make_valid = _require_shapely()
    geometry = shape(feature.geometry)
    if geometry.is_empty:
        return None
    if not geometry.is_valid:
        geometry = make_valid(geometry)
    centroid = geometry.centroid
    if centroid.is_empty:
        return None
    return (float(centroid.x), float(centroid.y))


def _require_shapely() -> tuple[Any, Any]:
    try:
        from shapely.geometry import shape
        from shapely.validation import make_valid
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for centroid computation") from exc
    return (shape, make_valid)
