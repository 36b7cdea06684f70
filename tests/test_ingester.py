"""Tests for catalog.ingester."""

from datetime import datetime, timezone

import pytest

from catalog.ingester import normalize, parse_catalog, seed_features
from conftest import feature, polygon
from errors import ParseFailure
from shared_schema import AdminLevel, BoundingBox, WarningKinds


def by_id(regions):
    return {r.id: r for r in regions}


class TestParseCatalog:

    def test_feature_collection(self):
        payload = {"type": "FeatureCollection", "features": [feature("europe")]}
        assert parse_catalog(payload) == [feature("europe")]

    def test_bare_list(self):
        assert parse_catalog([feature("europe")]) == [feature("europe")]

    @pytest.mark.parametrize("payload", [None, "features", 42, {"type": "FeatureCollection"},
                                         {"features": {"a": 1}}])
    def test_other_shapes_fail_hard(self, payload):
        with pytest.raises(ParseFailure):
            parse_catalog(payload)


class TestAdminLevels:

    def test_levels_follow_parent_chain(self, sample_features):
        regions, warnings = normalize(sample_features)
        levels = {r.id: r.admin_level for r in regions}
        assert levels == {
            "europe": AdminLevel.CONTINENT,
            "germany": AdminLevel.COUNTRY,
            "germany-bayern": AdminLevel.REGION,
            "liechtenstein": AdminLevel.COUNTRY,
        }
        assert warnings == []

    def test_explicit_world_root(self):
        regions, _ = normalize([feature("world", "World"), feature("europe", "Europe", parent="world")])
        levels = {r.id: r.admin_level for r in regions}
        assert levels == {"world": AdminLevel.WORLD, "europe": AdminLevel.CONTINENT}

    def test_deep_chain_capped_at_subregion(self):
        features = [feature("r0")] + [feature(f"r{i}", parent=f"r{i - 1}") for i in range(1, 8)]
        regions, warnings = normalize(features)
        levels = [r.admin_level for r in regions]
        assert levels[:4] == [AdminLevel.CONTINENT, AdminLevel.COUNTRY,
                              AdminLevel.REGION, AdminLevel.SUBREGION]
        assert all(level == AdminLevel.SUBREGION for level in levels[3:])
        assert warnings == []

    def test_child_listed_before_parent(self):
        regions, _ = normalize([feature("germany", parent="europe"), feature("europe")])
        assert [r.id for r in regions] == ["germany", "europe"]
        assert by_id(regions)["germany"].admin_level == AdminLevel.COUNTRY


class TestStructuralDefects:

    def test_dangling_parent_becomes_root(self):
        regions, warnings = normalize([feature("atlantis", parent="ocean")])
        assert len(regions) == 1
        assert regions[0].parent_id is None
        assert regions[0].admin_level == AdminLevel.CONTINENT
        assert [(w.feature_id, w.kind, w.fatal) for w in warnings] == [
            ("atlantis", WarningKinds.DANGLING_PARENT, False)
        ]

    def test_two_cycle_excludes_both(self):
        features = [feature("x", parent="y"), feature("y", parent="x"), feature("europe")]
        regions, warnings = normalize(features)
        assert [r.id for r in regions] == ["europe"]
        cycle_warnings = [w for w in warnings if w.kind == WarningKinds.CYCLE]
        assert sorted(w.feature_id for w in cycle_warnings) == ["x", "y"]
        assert all(w.fatal for w in cycle_warnings)

    def test_self_parent_is_a_cycle(self):
        regions, warnings = normalize([feature("loop", parent="loop")])
        assert regions == []
        assert [w.kind for w in warnings] == [WarningKinds.CYCLE]

    def test_chain_feeding_into_cycle_excluded(self):
        features = [feature("a", parent="b"), feature("b", parent="a"), feature("c", parent="a")]
        regions, warnings = normalize(features)
        assert regions == []
        assert sorted(w.feature_id for w in warnings) == ["a", "b", "c"]

    def test_duplicate_id_keeps_first(self):
        features = [feature("europe", "Europe"), feature("europe", "Europa")]
        regions, warnings = normalize(features)
        assert [r.name for r in regions] == ["Europe"]
        assert [w.kind for w in warnings] == [WarningKinds.DUPLICATE_ID]

    @pytest.mark.parametrize("raw", [
        {"type": "Feature", "properties": {"name": "No id"}},
        {"type": "Feature", "properties": {"id": "", "name": "Blank"}},
        {"type": "Feature", "properties": {"id": "x"}},
        {"type": "Feature"},
        "not a feature",
    ])
    def test_invalid_feature_skipped(self, raw):
        regions, warnings = normalize([raw, feature("europe")])
        assert [r.id for r in regions] == ["europe"]
        assert len(warnings) == 1
        assert warnings[0].kind == WarningKinds.INVALID_FEATURE
        assert warnings[0].fatal

    def test_malformed_geometry_falls_back(self):
        bad = {"type": "Polygon", "coordinates": "nonsense"}
        regions, warnings = normalize([feature("germany", geometry=bad)])
        assert regions[0].bounding_box == BoundingBox(47.2, 5.8, 55.1, 15.0)
        assert [w.kind for w in warnings] == [WarningKinds.INVALID_GEOMETRY]


class TestRegionFields:

    def test_has_children_matches_parent_references(self, sample_features):
        regions, _ = normalize(sample_features)
        parent_ids = {r.parent_id for r in regions if r.parent_id}
        for region in regions:
            assert region.has_children == (region.id in parent_ids)
        assert by_id(regions)["germany"].has_children
        assert not by_id(regions)["liechtenstein"].has_children

    def test_input_order_preserved(self, sample_features):
        regions, _ = normalize(sample_features)
        assert [r.id for r in regions] == [f["properties"]["id"] for f in sample_features]

    def test_bounds_from_geometry_fallback_and_parent(self, sample_features):
        sample_features.append(feature("germany-unknown", parent="germany"))
        regions = by_id(normalize(sample_features)[0])
        assert regions["germany-bayern"].bounding_box == BoundingBox(47.3, 8.9, 50.6, 13.8)
        assert regions["liechtenstein"].bounding_box == BoundingBox(47.048, 9.471, 47.270, 9.636)
        assert regions["germany-unknown"].bounding_box == regions["germany"].bounding_box

    def test_unknown_root_gets_world_box(self):
        regions, _ = normalize([feature("mars")])
        assert regions[0].bounding_box == BoundingBox.world()

    def test_country_codes_and_service_url(self, sample_features):
        regions = by_id(normalize(sample_features)[0])
        assert regions["germany"].country_code == "DE"
        assert regions["germany-bayern"].country_code == "DE"
        assert regions["europe"].country_code is None
        assert regions["germany"].service_url.endswith("germany-latest.osm.pbf")
        assert regions["liechtenstein"].service_url is None

    def test_population_and_area(self, sample_features):
        regions = by_id(normalize(sample_features)[0])
        assert regions["germany"].population == 83_200_000
        assert regions["germany-bayern"].population is None
        assert regions["germany"].area_km2 == pytest.approx(
            regions["germany"].bounding_box.area_km2())

    def test_timestamps_shared(self, sample_features):
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        regions, _ = normalize(sample_features, now=now)
        assert {r.created_at for r in regions} == {now}
        assert {r.updated_at for r in regions} == {now}

    def test_multipolygon_and_point_geometry(self):
        multi = {
            "type": "MultiPolygon",
            "coordinates": [
                polygon(0.0, 0.0, 1.0, 1.0)["coordinates"],
                polygon(5.0, -2.0, 6.0, 3.0)["coordinates"],
            ],
        }
        point = {"type": "Point", "coordinates": [10.0, 50.0]}
        regions = by_id(normalize([feature("multi", geometry=multi), feature("pt", geometry=point)])[0])
        assert regions["multi"].bounding_box == BoundingBox(-2.0, 0.0, 3.0, 6.0)
        box = regions["pt"].bounding_box
        assert box.min_lat == pytest.approx(49.999)
        assert box.max_lon == pytest.approx(10.001)


class TestSeedFeatures:

    def test_seed_hierarchy(self):
        regions, warnings = normalize(seed_features())
        assert warnings == []
        regions = by_id(regions)
        assert len(regions) == 22
        assert regions["world"].admin_level == AdminLevel.WORLD
        assert regions["europe"].admin_level == AdminLevel.CONTINENT
        assert regions["germany"].admin_level == AdminLevel.COUNTRY
        assert regions["germany-berlin"].admin_level == AdminLevel.REGION
        assert regions["germany-berlin"].country_code == "DE"
        assert regions["germany-bayern"].service_url == \
            "https://download.geofabrik.de/europe/germany/bayern-latest.osm.pbf"
        assert regions["australia-oceania"].name == "Australia and Oceania"
        assert not regions["liechtenstein"].has_children
        assert regions["world"].has_children
