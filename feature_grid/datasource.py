from typing import Any, Dict, Iterable, Iterator, Optional
from itertools import islice
import logging
import json
from pathlib import Path

import ijson
import pyarrow as pa
import pyarrow.parquet as pq
from shapely import from_wkb

from .features import Feature, FeatureList

logger = logging.getLogger(__name__)


class DataSource:
    crs_hint: Optional[str] = None

    def iter_features(self) -> Iterable[Feature]:
        raise NotImplementedError

    def read_all(self) -> FeatureList:
        features = list(self.iter_features())
        logger.info("%s read %d features", type(self).__name__, len(features))
        return features


def _features_from_table(t: pa.Table, geom_col: str) -> Iterable[Feature]:
    if geom_col not in t.column_names:
        raise ValueError(f"Missing geometry column '{geom_col}'")

    geoms = from_wkb(t[geom_col].to_numpy(zero_copy_only=False))
    props = t.select([c for c in t.column_names if c != geom_col]).to_pylist()
    for g, p in zip(geoms, props):
        yield Feature(geometry=g, properties=p)


def _crs_from_geo_metadata(schema: pa.Schema, geom_col: str) -> Optional[str]:
    raw = (schema.metadata or {}).get(b"geo")
    if not raw:
        return None
    try:
        j = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Unreadable 'geo' metadata; ignoring CRS")
        return None
    prim = j.get("primary_column") or geom_col
    crs = j.get("columns", {}).get(prim, {}).get("crs")
    if crs is None or isinstance(crs, str):
        return crs
    # PROJJSON: keep the identifier if there is one
    ident = crs.get("id") if isinstance(crs, dict) else None
    if isinstance(ident, dict) and "authority" in ident and "code" in ident:
        return f"{ident['authority']}:{ident['code']}"
    return None


# ------------------------- GeoParquet source ------------------------- #
class GeoParquetSource(DataSource):
    def __init__(self, path: str, geom_col: str = "geometry"):
        if not Path(path).exists():
            raise FileNotFoundError(f"GeoParquet file not found: {path}")
        self._pf = pq.ParquetFile(path)
        self._schema = self._pf.schema_arrow
        self._num_row_groups = self._pf.num_row_groups
        self.geom_col = geom_col
        self.crs_hint = _crs_from_geo_metadata(self._schema, geom_col)
        logger.info("GeoParquetSource opened %s with %d row groups", path, self._num_row_groups)

    def iter_features(self) -> Iterable[Feature]:
        for i in range(self._num_row_groups):
            logger.debug("Reading row group %d/%d", i, self._num_row_groups)
            yield from _features_from_table(self._pf.read_row_group(i), self.geom_col)


# ------------------------- GeoJSON source ------------------------- #
_GEOJSON_SUFFIXES = (".geojson", ".geojsonl", ".json", ".jsonl")
_SNIFF_CHARS = 64 * 1024


def _is_geojson_lines(path: str) -> bool:
    """True when the first non-blank line parses as a standalone Feature."""
    with open(path, "r", encoding="utf-8") as fin:
        line = fin.readline(_SNIFF_CHARS)
        while line and not line.strip():
            line = fin.readline(_SNIFF_CHARS)
    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        return False
    return isinstance(obj, dict) and obj.get("type") == "Feature"


def _collection_crs_name(path: str) -> Optional[str]:
    # only the header is parsed; the scan stops where the features begin
    with open(path, "rb") as fin:
        for prefix, event, value in ijson.parse(fin):
            if prefix == "crs.properties.name" and event == "string":
                return value
            if prefix == "features" and event == "start_array":
                break
    return None


def _as_feature(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": raw.get("geometry"),
        "properties": raw.get("properties") or {},
    }


class GeoJSONSource(DataSource):
    """
    Reads a GeoJSON FeatureCollection (streamed with ijson) or a GeoJSON Lines
    file. Geometries are parsed by geopandas `batch_rows` features at a time.
    The CRS hint is the collection's legacy `crs.properties.name`, if any.
    """

    def __init__(self, path: str, batch_rows: int = 1_000):
        if not Path(path).exists():
            raise FileNotFoundError(f"GeoJSON file not found: {path}")
        self.path = path
        self.batch_rows = int(batch_rows)
        self.lines = _is_geojson_lines(path)
        self.crs_hint = None if self.lines else _collection_crs_name(path)
        logger.info(
            "GeoJSONSource opened %s as %s (batch_rows=%d)",
            path, "GeoJSON Lines" if self.lines else "FeatureCollection", self.batch_rows,
        )

    def _raw_features(self) -> Iterator[Dict[str, Any]]:
        if self.lines:
            with open(self.path, "r", encoding="utf-8") as fin:
                for line in fin:
                    if line.strip():
                        yield json.loads(line)
        else:
            with open(self.path, "rb") as fin:
                yield from ijson.items(fin, "features.item", use_float=True)

    def iter_features(self) -> Iterable[Feature]:
        import geopandas as gpd

        raw = self._raw_features()
        batch_index = 0
        while True:
            batch = [_as_feature(f) for f in islice(raw, self.batch_rows)]
            if not batch:
                break
            gdf = gpd.GeoDataFrame.from_features(batch)
            logger.debug("GeoJSON batch %d (%d rows)", batch_index, len(gdf))
            # property dicts come from the raw features; the frame pads missing keys with NaN
            for f, geom in zip(batch, gdf.geometry):
                yield Feature(geometry=geom, properties=dict(f["properties"]))
            batch_index += 1


def build_source(input_path: str, geom_col: str = "geometry") -> DataSource:
    if input_path.lower().endswith(_GEOJSON_SUFFIXES):
        logger.info("Using GeoJSONSource for %s", input_path)
        return GeoJSONSource(input_path)
    logger.info("Using GeoParquetSource for %s", input_path)
    return GeoParquetSource(input_path, geom_col=geom_col)
