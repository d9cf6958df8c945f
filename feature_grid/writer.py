from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import logging

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import shapely

from .bounds import Bounds
from .features import FeatureList

logger = logging.getLogger(__name__)

INDEX_COLUMNS = ["id", "minx", "miny", "maxx", "maxy", "count_in", "count_out", "clip_failures"]


def cell_id(i: int) -> str:
    return f"cell_{i:06d}"


def _attach_geoparquet_metadata(
    schema: pa.Schema,
    geom_col: str,
    bbox: Optional[Bounds],
    geometry_types: List[str],
    crs_hint: Optional[str],
) -> pa.Schema:
    """
    Return a copy of `schema` with a minimal GeoParquet 1.1.0 'geo' block:
    primary column, WKB encoding, geometry types, cell bbox and CRS hint.
    """
    md = dict(schema.metadata or {})
    col: Dict[str, Any] = {"encoding": "WKB", "geometry_types": geometry_types}
    if bbox is not None:
        col["bbox"] = list(bbox.to_tuple())
    if crs_hint:
        col["crs"] = crs_hint
    geo = {"version": "1.1.0", "primary_column": geom_col, "columns": {geom_col: col}}
    md[b"geo"] = json.dumps(geo, separators=(",", ":")).encode("utf-8")
    return pa.schema(schema, metadata=md)


class CellWriter:
    """Writes each grid cell's features to its own GeoParquet file."""

    def __init__(
        self,
        outdir: str,
        compression: str = "zstd",
        geom_col: str = "geometry",
        crs_hint: Optional[str] = None,
    ):
        self.outdir = Path(outdir)
        self.compression = compression
        self.geom_col = geom_col
        self.crs_hint = crs_hint
        self.outdir.mkdir(parents=True, exist_ok=True)

    def cell_path(self, i: int) -> Path:
        return self.outdir / f"{cell_id(i)}.parquet"

    def to_table(self, features: FeatureList, bounds: Optional[Bounds] = None) -> pa.Table:
        geoms = [f.geometry for f in features]
        wkb = shapely.to_wkb(geoms, hex=False).tolist() if geoms else []
        geometry_col = pa.array(wkb, type=pa.binary())

        rows = [{k: v for k, v in f.properties.items() if k != self.geom_col} for f in features]
        props_table = pa.Table.from_pylist(rows)
        table = (
            pa.table([geometry_col], names=[self.geom_col])
            if props_table.num_columns == 0
            else props_table.append_column(self.geom_col, geometry_col)
        )

        geometry_types = sorted({g.geom_type for g in geoms if g is not None})
        schema = _attach_geoparquet_metadata(
            table.schema, self.geom_col, bounds, geometry_types, self.crs_hint
        )
        return table.replace_schema_metadata(schema.metadata)

    def write_cell(self, i: int, features: FeatureList, bounds: Optional[Bounds] = None) -> Optional[Path]:
        if not features:
            return None
        table = self.to_table(features, bounds)
        path = self.cell_path(i)
        pq.write_table(table, path, compression=self.compression)
        logger.debug("Wrote %s (%d rows)", path, table.num_rows)
        return path

    def write_index(self, rows: List[Dict[str, Any]], name: str = "cells_index.csv") -> Path:
        df = pd.DataFrame(rows, columns=INDEX_COLUMNS)
        path = self.outdir / name
        df.to_csv(path, index=False)
        logger.info("Wrote cell index to %s (%d cells)", path, len(df))
        return path
