"""Shared fixtures: a small synthetic map of four adjacent départements."""

from __future__ import annotations

from typing import Any

import pytest

from francemap.config import IndicatorConfig
from francemap.geodata import build_geo_layers
from francemap.models import GeoLayers
from francemap.palettes import PaletteRegistry


def square(x0: float, y0: float, size: float = 1.0) -> dict[str, Any]:
    return {
        "type": "Polygon",
        "coordinates": [
            [[x0, y0], [x0 + size, y0], [x0 + size, y0 + size], [x0, y0 + size], [x0, y0]]
        ],
    }


def feature(code: str, name: str, geometry: dict[str, Any] | None, region: str) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": geometry,
        "properties": {"INSEE_DEP": code, "NOM": name, "INSEE_REG": region},
    }


# ── Fixtures ──────────────────────────────────────────────────────────────

@pytest.fixture
def feature_collection() -> dict[str, Any]:
    """2x2 grid around (3°E, 47°N); 2A has no data row in the default rows."""
    return {
        "type": "FeatureCollection",
        "features": [
            feature("01", "Ain", square(2.0, 46.0), "84"),
            feature("02", "Aisne", square(3.0, 46.0), "32"),
            feature("03", "Allier", square(2.0, 47.0), "84"),
            feature("2A", "Corse-du-Sud", square(3.0, 47.0), "94"),
        ],
    }


@pytest.fixture
def geo(feature_collection: dict[str, Any]) -> GeoLayers:
    return build_geo_layers(feature_collection)


@pytest.fixture
def rows() -> list[dict[str, Any]]:
    return [
        {"dep": "1", "taux": "0", "evol": "-8,7", "population": "650000"},
        {"dep": "02", "taux": "50", "evol": "1,7", "population": "530000"},
        {"dep": "3", "taux": "100", "evol": "0", "population": "335000"},
    ]


@pytest.fixture
def indicator_raw() -> dict[str, Any]:
    return {
        "id": "test-indicator",
        "title": "Indicateur de test",
        "title_templates": {
            "default": "Carte {metric} pour {facility}",
            "evol": {"default": "Évolution de {facility}", "poste": "Évolution des bureaux de poste"},
        },
        "color_schemes": {
            "taux": {"type": "quantize", "scheme": "blues", "label": "Taux"},
            "evol": {"type": "diverging", "scheme": "fuschia-canard", "label": "Évolution"},
        },
        "data_keys": {"row_key": "dep"},
    }


@pytest.fixture
def indicator(indicator_raw: dict[str, Any]) -> IndicatorConfig:
    return IndicatorConfig.from_mapping(indicator_raw)


@pytest.fixture
def synthetic_registry() -> PaletteRegistry:
    """Two grey-ish ramps whose shades encode their own index."""
    return PaletteRegistry.create(
        ramps={
            "low": [f"#00{idx:02x}00" for idx in range(19)],
            "high": [f"#0000{idx:02x}" for idx in range(19)],
        },
        diverging_pairs={"low-high": ("low", "high")},
    )
