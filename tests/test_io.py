"""Tests for feature sources, the cell writer, the grid runner and the CLI."""

import json

import pandas as pd
import pyarrow.parquet as pq
import pytest
import yaml
from shapely.geometry import Point, box, mapping

from feature_grid.bounds import Bounds
from feature_grid.cli import main
from feature_grid.datasource import GeoJSONSource, GeoParquetSource, build_source
from feature_grid.features import Feature
from feature_grid.policy import CullingTechnique, GridPolicy
from feature_grid.runner import GridRunner
from feature_grid.writer import CellWriter


def _geojson_feature(geom, **props):
    return {"type": "Feature", "geometry": mapping(geom) if geom is not None else None, "properties": props}


@pytest.fixture
def scenario_features():
    return [
        _geojson_feature(Point(10, 10), id=1),
        _geojson_feature(Point(60, 10), id=2),
        _geojson_feature(Point(200, 200), id=3),
    ]


@pytest.fixture
def geojson_path(tmp_path, scenario_features):
    path = tmp_path / "points.geojson"
    fc = {
        "type": "FeatureCollection",
        "crs": {"type": "name", "properties": {"name": "EPSG:3857"}},
        "features": scenario_features,
    }
    path.write_text(json.dumps(fc), encoding="utf-8")
    return path


class TestGeoJSONSource:

    def test_feature_collection(self, geojson_path):
        src = GeoJSONSource(str(geojson_path), batch_rows=2)
        features = src.read_all()

        assert src.crs_hint == "EPSG:3857"
        assert [f.properties["id"] for f in features] == [1, 2, 3]
        assert features[1].geometry.equals(Point(60, 10))

    def test_geojson_lines(self, tmp_path):
        path = tmp_path / "polys.geojsonl"
        lines = [
            json.dumps(_geojson_feature(box(0, 0, 1, 1), name="a")),
            "",
            json.dumps(_geojson_feature(None, name="b")),
        ]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        features = GeoJSONSource(str(path)).read_all()
        assert len(features) == 2
        assert features[0].geometry.equals(box(0, 0, 1, 1))
        assert features[1].geometry is None
        assert features[1].properties == {"name": "b"}

    def test_pretty_printed_collection(self, tmp_path, scenario_features):
        path = tmp_path / "pretty.json"
        fc = {"type": "FeatureCollection", "features": scenario_features, "crs": {"properties": {"name": "late"}}}
        path.write_text(json.dumps(fc, indent=2), encoding="utf-8")

        src = GeoJSONSource(str(path), batch_rows=1)
        assert not src.lines
        # a crs member after the features is not part of the header
        assert src.crs_hint is None
        assert [f.properties["id"] for f in src.read_all()] == [1, 2, 3]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            GeoJSONSource(str(tmp_path / "missing.geojson"))

    def test_dispatch(self, geojson_path):
        assert isinstance(build_source(str(geojson_path)), GeoJSONSource)
        upper = geojson_path.with_name("POINTS.GeoJSON")
        upper.write_bytes(geojson_path.read_bytes())
        assert isinstance(build_source(str(upper)), GeoJSONSource)


class TestCellWriter:

    def test_write_and_read_back(self, tmp_path):
        writer = CellWriter(str(tmp_path / "out"), crs_hint="EPSG:3857")
        features = [
            Feature(geometry=box(0, 0, 1, 1), properties={"name": "a", "rank": 1}),
            Feature(geometry=Point(2, 2), properties={"name": "b", "rank": 2}),
        ]
        path = writer.write_cell(7, features, Bounds(0.0, 0.0, 5.0, 5.0))
        assert path.name == "cell_000007.parquet"

        geo = json.loads(pq.read_schema(path).metadata[b"geo"])
        col = geo["columns"]["geometry"]
        assert geo["primary_column"] == "geometry"
        assert col["encoding"] == "WKB"
        assert col["bbox"] == [0.0, 0.0, 5.0, 5.0]
        assert col["geometry_types"] == ["Point", "Polygon"]
        assert col["crs"] == "EPSG:3857"

        src = GeoParquetSource(str(path))
        back = src.read_all()
        assert src.crs_hint == "EPSG:3857"
        assert [f.properties for f in back] == [{"name": "a", "rank": 1}, {"name": "b", "rank": 2}]
        assert back[0].geometry.equals(box(0, 0, 1, 1))

    def test_geometry_only(self, tmp_path):
        writer = CellWriter(str(tmp_path))
        path = writer.write_cell(0, [Feature(geometry=Point(1, 1))])
        assert pq.read_table(path).column_names == ["geometry"]

    def test_empty_cell_not_written(self, tmp_path):
        writer = CellWriter(str(tmp_path))
        assert writer.write_cell(0, []) is None
        assert not writer.cell_path(0).exists()

    def test_missing_geometry_column(self, tmp_path):
        path = CellWriter(str(tmp_path), geom_col="geom").write_cell(0, [Feature(geometry=Point(0, 0))])
        with pytest.raises(ValueError):
            GeoParquetSource(str(path)).read_all()


class TestGridRunner:

    def test_centroid_scenario(self, tmp_path, geojson_path):
        outdir = tmp_path / "grid"
        runner = GridRunner(
            GeoJSONSource(str(geojson_path)),
            str(outdir),
            policy=GridPolicy(cell_size=50.0),
            bounds=Bounds(0.0, 0.0, 100.0, 100.0),
        )
        summary = runner.run()

        assert summary.num_cells == 4
        assert sorted(summary.written) == [0, 1]
        assert summary.assigned == 2

        index = pd.read_csv(summary.index_path)
        assert list(index["id"]) == ["cell_000000", "cell_000001", "cell_000002", "cell_000003"]
        assert list(index["count_out"]) == [1, 1, 0, 0]
        assert list(index["count_in"]) == [3, 3, 3, 3]

        cell1 = GeoParquetSource(str(summary.written[1])).read_all()
        assert [f.properties["id"] for f in cell1] == [2]

        assert yaml.safe_load((outdir / "policy.yaml").read_text()) == {"cell_size": 50.0}

    def test_crop_derives_extent(self, tmp_path):
        class ListSource:
            crs_hint = None

            def __init__(self, features):
                self.features = features

            def read_all(self):
                return list(self.features)

        big = box(0, 0, 100, 40)
        features = [Feature(geometry=big, properties={"id": "big"})]
        policy = GridPolicy(cell_size=25.0, culling_technique=CullingTechnique.CROP)
        summary = GridRunner(ListSource(features), str(tmp_path), policy=policy).run()

        assert summary.bounds == Bounds(0.0, 0.0, 100.0, 40.0)
        assert summary.num_cells == 8
        assert len(summary.written) == 8
        # source features are not modified by cropping
        assert features[0].geometry is big

        pieces = [GeoParquetSource(str(p)).read_all()[0].geometry for p in summary.written.values()]
        assert sum(p.area for p in pieces) == pytest.approx(big.area)

    def test_empty_input(self, tmp_path):
        class EmptySource:
            crs_hint = None

            def read_all(self):
                return []

        summary = GridRunner(EmptySource(), str(tmp_path), policy=GridPolicy(cell_size=1.0)).run()
        assert summary.num_cells == 0
        assert summary.bounds is None


class TestCli:

    def test_main_crop(self, tmp_path, geojson_path):
        outdir = tmp_path / "cli"
        rc = main([
            "--input", str(geojson_path),
            "--outdir", str(outdir),
            "--cell-size", "50",
            "--culling", "crop",
            "--bounds", "0,0,100,100",
            "--log-level", "WARNING",
        ])
        assert rc == 0
        assert (outdir / "cell_000000.parquet").exists()
        assert (outdir / "cell_000001.parquet").exists()
        assert not (outdir / "cell_000003.parquet").exists()

        policy = yaml.safe_load((outdir / "policy.yaml").read_text())
        assert policy == {"cell_size": 50.0, "culling_technique": "crop"}

    def test_config_file_overridden_by_flags(self, tmp_path, geojson_path):
        conf = tmp_path / "conf.json"
        conf.write_text(json.dumps({"cell_size": 10, "cluster_culling": True}), encoding="utf-8")
        outdir = tmp_path / "cli"
        main([
            "--input", str(geojson_path),
            "--outdir", str(outdir),
            "--config", str(conf),
            "--cell-size", "100",
            "--log-level", "WARNING",
        ])
        policy = yaml.safe_load((outdir / "policy.yaml").read_text())
        assert policy == {"cell_size": 100.0, "cluster_culling": True}

    def test_bad_bounds(self, tmp_path, geojson_path):
        with pytest.raises(SystemExit):
            main(["--input", str(geojson_path), "--outdir", str(tmp_path), "--bounds", "1,2"])
