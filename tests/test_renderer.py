"""End-to-end tests for ScaleRenderer on the synthetic four-département map."""

from __future__ import annotations

import copy
import logging

import pytest

from francemap.config import IndicatorConfig, load_config
from francemap.geodata import build_geo_layers
from francemap.layers import LAYER_ORDER, SYMBOLS
from francemap.models import ConfigurationError
from francemap.palettes import FULL_COLOR_SCALES, PaletteResolver
from francemap.renderer import RenderRequest, ScaleRenderer


def kinds(result):
    return [layer.kind for layer in result.layers]


def assert_stacking_order(result):
    positions = [LAYER_ORDER.index(kind) for kind in kinds(result)]
    assert positions == sorted(positions)


def fills_by_key(result, kind="regions"):
    return {mark.key: mark.fill for mark in result.layer(kind).data}


@pytest.fixture
def renderer() -> ScaleRenderer:
    return ScaleRenderer()


@pytest.fixture
def symbol_indicator(indicator_raw) -> IndicatorConfig:
    raw = copy.deepcopy(indicator_raw)
    raw["data_keys"]["size_column"] = "population"
    raw["symbols"] = {"size_label": "Population", "size_range": [2, 20]}
    return IndicatorConfig.from_mapping(raw)


# ── Choropleth ────────────────────────────────────────────────────────────

class TestChoropleth:
    def test_layer_order(self, renderer, rows, geo, indicator):
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator))
        assert kinds(result) == ["background", "regions", "overlay", "outline", "hit-targets"]
        assert result.layers[-1].pointer_events
        assert not any(layer.pointer_events for layer in result.layers[:-1])
        assert_stacking_order(result)

    def test_every_feature_drawn_unmatched_in_unknown_color(self, renderer, rows, geo, indicator):
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator))
        fills = fills_by_key(result)
        assert set(fills) == {"01", "02", "03", "2A"}
        assert fills["2A"] == "#eee"
        assert result.summary["unmatched_keys"] == ["2A"]
        assert result.summary["keys_joined"] == 3

    def test_quantize_metric_uses_rounded_thresholds(self, renderer, rows, geo, indicator):
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator, metric="taux"))
        scale = result.color_scale
        assert scale.type == "threshold"
        assert scale.domain == (20.0, 40.0, 60.0, 80.0)
        assert len(scale.palette) == 5
        fills = fills_by_key(result)
        assert fills["01"] == scale.palette[0]
        assert fills["03"] == scale.palette[4]
        # library scheme: darkest palette color
        assert result.outline_stroke == scale.palette[-1]

    def test_title_falls_back_to_default_template(self, renderer, rows, geo, indicator):
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator))
        assert result.title == "Carte Taux pour -"

    def test_title_per_facility(self, renderer, rows, geo, indicator):
        result = renderer.render(
            RenderRequest(rows=rows, geo=geo, indicator=indicator, metric="evol", facility="poste")
        )
        assert result.title == "Évolution des bureaux de poste"
        result = renderer.render(
            RenderRequest(
                rows=rows,
                geo=geo,
                indicator=indicator,
                metric="evol",
                facility="gare",
                facility_label="la gare",
            )
        )
        assert result.title == "Évolution de la gare"

    def test_null_geometry_drawn_without_hit_target(self, renderer, rows, feature_collection, indicator):
        feature_collection["features"].append(
            {"type": "Feature", "geometry": None, "properties": {"INSEE_DEP": "04", "NOM": "Alpes"}}
        )
        geo = build_geo_layers(feature_collection)
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator))
        assert "04" in fills_by_key(result)
        assert len(result.layer("regions").data) == 5
        assert len(result.layer("hit-targets").data) == 4

    def test_hit_target_titles(self, renderer, rows, geo, indicator):
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator))
        titles = [target.title for target in result.layer("hit-targets").data]
        assert "Ain\nTaux: 0.0" in titles
        assert "Corse-du-Sud\nTaux: Pas de données" in titles


# ── Diverging ─────────────────────────────────────────────────────────────

class TestDiverging:
    def test_symmetric_domain_and_pair_palette(self, renderer, rows, geo, indicator):
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator, metric="evol"))
        fuschia = FULL_COLOR_SCALES["fuschia"]
        canard = FULL_COLOR_SCALES["canard"]
        assert result.color_scale.domain == (-5.8, -2.9, 0.0, 2.9, 5.8)
        assert result.color_scale.palette == (
            fuschia[13],
            fuschia[7],
            fuschia[1],
            canard[1],
            canard[7],
            canard[13],
        )
        fills = fills_by_key(result)
        assert fills["01"] == fuschia[13]
        assert fills["02"] == canard[1]
        assert fills["03"] == canard[1]
        assert result.outline_stroke == "#333333"

    def test_color_indices(self, renderer, rows, geo, indicator_raw):
        indicator_raw["color_schemes"]["evol"].update(
            {"domain": [-1.0, 0.0, 1.0], "color_indices": [9, 1, 20, 28], "clamp": True}
        )
        indicator = IndicatorConfig.from_mapping(indicator_raw)
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator, metric="evol"))
        fuschia = FULL_COLOR_SCALES["fuschia"]
        canard = FULL_COLOR_SCALES["canard"]
        assert result.color_scale.palette == (fuschia[9], fuschia[1], canard[1], canard[9])
        assert fills_by_key(result)["01"] == fuschia[9]

    def test_color_indices_win_over_asymmetric_sampling(self, renderer, rows, geo, indicator_raw):
        indicator_raw["color_schemes"]["evol"].update(
            {"asymmetric": True, "color_indices": [12, 6, 2, 21, 25, 29]}
        )
        indicator = IndicatorConfig.from_mapping(indicator_raw)
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator, metric="evol"))
        fuschia = FULL_COLOR_SCALES["fuschia"]
        canard = FULL_COLOR_SCALES["canard"]
        assert result.color_scale.domain == (-5.8, -2.9, 0.0, 0.6, 1.1)
        assert result.color_scale.palette == (
            fuschia[12],
            fuschia[6],
            fuschia[2],
            canard[2],
            canard[6],
            canard[10],
        )
        fills = fills_by_key(result)
        assert fills["01"] == fuschia[12]
        assert fills["02"] == canard[10]
        assert fills["03"] == canard[2]

    def test_diverging_choice_on_sequential_metric(self, rows, geo, indicator, synthetic_registry):
        renderer = ScaleRenderer(resolver=PaletteResolver(synthetic_registry))
        result = renderer.render(
            RenderRequest(rows=rows, geo=geo, indicator=indicator, metric="taux", scheme_choice="low-high")
        )
        assert result.summary["family"] == "diverging"
        assert result.color_scale.domain == (-66.7, -33.3, 0.0, 33.3, 66.7)
        fills = fills_by_key(result)
        assert fills["01"] == "#000001"
        assert fills["03"] == "#00000d"


# ── Fallbacks and errors ──────────────────────────────────────────────────

class TestFallbacks:
    def test_unknown_scheme_falls_back_with_warning(self, renderer, rows, geo, indicator, caplog):
        with caplog.at_level(logging.WARNING, logger="francemap.renderer"):
            result = renderer.render(
                RenderRequest(rows=rows, geo=geo, indicator=indicator, scheme_choice="turbo")
            )
        assert result.summary["scheme"] == "blues"
        assert result.summary["warnings"]
        assert len(result.color_scale.palette) == 5
        assert "turbo" in caplog.text

    def test_no_data_paints_everything_unknown(self, renderer, geo, indicator):
        result = renderer.render(RenderRequest(rows=[], geo=geo, indicator=indicator))
        assert result.color_scale.domain == ()
        assert set(fills_by_key(result).values()) == {"#eee"}

    def test_missing_metric(self, renderer, rows, geo, indicator):
        with pytest.raises(ConfigurationError):
            renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator, metric="absent"))

    def test_missing_title_template(self, renderer, rows, geo, indicator_raw):
        indicator_raw["title_templates"] = {"evol": {"poste": "Bureaux de poste"}}
        indicator = IndicatorConfig.from_mapping(indicator_raw)
        with pytest.raises(ConfigurationError):
            renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator, metric="taux"))

    def test_symbols_need_settings(self, renderer, rows, geo, indicator):
        with pytest.raises(ConfigurationError):
            renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator, mode=SYMBOLS))

    def test_facility_filter(self, renderer, geo, indicator_raw):
        indicator_raw["data_keys"]["facility_column"] = "equipement"
        indicator = IndicatorConfig.from_mapping(indicator_raw)
        rows = [
            {"dep": "01", "taux": "10", "equipement": "poste"},
            {"dep": "01", "taux": "90", "equipement": "gare"},
            {"dep": "02", "taux": "30", "equipement": "poste"},
        ]
        result = renderer.render(
            RenderRequest(rows=rows, geo=geo, indicator=indicator, facility="poste")
        )
        assert result.summary["rows_filtered"] == 1
        assert [mark.value for mark in result.layer("regions").data][:2] == [10.0, 30.0]


# ── Proportional symbols ──────────────────────────────────────────────────

class TestSymbols:
    def test_layer_order(self, renderer, rows, geo, symbol_indicator):
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=symbol_indicator))
        assert kinds(result) == [
            "background",
            "boundaries",
            "symbols",
            "labels",
            "overlay",
            "outline",
            "hit-targets",
        ]
        assert result.summary["mode"] == SYMBOLS
        assert_stacking_order(result)

    def test_symbols_sorted_largest_first(self, renderer, rows, geo, symbol_indicator):
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=symbol_indicator))
        symbols = result.layer("symbols").data
        assert [mark.key for mark in symbols] == ["01", "02", "03"]
        radii = [mark.radius for mark in symbols]
        assert radii == sorted(radii, reverse=True)
        assert radii[0] == pytest.approx(20.0)

    def test_boundaries_unfilled_and_labels(self, renderer, rows, geo, symbol_indicator):
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=symbol_indicator))
        assert all(mark.fill is None for mark in result.layer("boundaries").data)
        assert sorted(label.text for label in result.layer("labels").data) == ["1", "2", "3"]
        assert result.layer("outline").style["stroke_width"] == pytest.approx(2.5)
        assert result.size_scale is not None and result.size_scale.label == "Population"

    def test_choropleth_mode_override(self, renderer, rows, geo, symbol_indicator):
        result = renderer.render(
            RenderRequest(rows=rows, geo=geo, indicator=symbol_indicator, mode="choropleth")
        )
        assert "symbols" not in kinds(result)
        assert result.size_scale is None


# ── Packaged indicators ───────────────────────────────────────────────────

class TestPackagedIndicators:
    def test_inegalites_tooltip_shows_derived_amplitude(self, renderer, geo):
        indicator = load_config().indicator("inegalites")
        rows = [{"dep": "01", "d9": "20", "d1": "5", "moyenne": "12,5"}]
        result = renderer.render(
            RenderRequest(
                rows=rows,
                geo=geo,
                indicator=indicator,
                metric="moyenne",
                facility_label="Urgences",
            )
        )
        titles = [target.title for target in result.layer("hit-targets").data]
        assert (
            "Ain\nUrgences\ndurée moyenne (min): 12.5 min\namplitude D9-D1 (min): 15.0 min"
            in titles
        )

    def test_secondary_metric_ignores_fixed_value_column(self, renderer, rows, geo, indicator_raw):
        raw = copy.deepcopy(indicator_raw)
        raw["data_keys"]["value_column"] = "taux"
        raw["tooltip"] = {"template": "dual-metric", "include_secondary_metric": True}
        indicator = IndicatorConfig.from_mapping(raw)
        result = renderer.render(RenderRequest(rows=rows, geo=geo, indicator=indicator, metric="taux"))
        titles = [target.title for target in result.layer("hit-targets").data]
        assert any(title.endswith("Taux: 0.0\nÉvolution: -8.7") for title in titles)
