from __future__ import annotations
import argparse
import logging
from time import perf_counter

from .bounds import Bounds
from .config import Config
from .datasource import build_source
from .policy import CullingTechnique, GridPolicy, PROP_CELL_SIZE, PROP_CULLING_TECHNIQUE
from .runner import GridRunner

logger = logging.getLogger(__name__)


def _parse_bounds(raw: str) -> Bounds:
    try:
        return Bounds.parse(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid --bounds: {e}") from e


def _parse_culling(raw: str) -> str:
    s = (raw or "").strip().lower()
    if s in ("crop", "cropping", "clip"):
        return CullingTechnique.CROP.value
    if s in ("centroid", "center", "centre"):
        return CullingTechnique.CENTROID.value
    raise argparse.ArgumentTypeError(f"Unsupported --culling: {raw}")


def build_policy(args: argparse.Namespace) -> GridPolicy:
    conf = Config.from_file(args.config) if args.config else Config()
    conf.update({
        PROP_CELL_SIZE: args.cell_size,
        PROP_CULLING_TECHNIQUE: args.culling,
    })
    return GridPolicy.from_config(conf)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="GeoJSON/GeoParquet → regular grid of GeoParquet cells (centroid or crop culling)."
    )
    # Source
    ap.add_argument("--input", required=True, help="Path to input GeoJSON or GeoParquet.")
    ap.add_argument("--geom-col", default="geometry", help="Geometry column name (default: geometry).")

    # Output
    ap.add_argument("--outdir", required=True, help="Output directory for cells.")
    ap.add_argument("--compression", default="zstd", help="Parquet compression codec (default: zstd).")

    # Policy
    ap.add_argument("--config", default=None,
                    help="YAML (or JSON) file with gridding policy keys (cell_size, culling_technique, ...).")
    ap.add_argument("--cell-size", type=float, default=None,
                    help="Cell side length in input units. Omit for a single cell over the whole extent.")
    ap.add_argument("--culling", type=_parse_culling, default=None,
                    help="centroid|crop (default: centroid).")
    ap.add_argument("--bounds", type=_parse_bounds, default=None,
                    help='Grid extent "minx,miny,maxx,maxy" (default: extent of the input).')

    ap.add_argument("--log-level", default="INFO")
    return ap


def main(argv=None):
    args = build_parser().parse_args(argv)

    level = getattr(logging, args.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(relativeCreated).0fms] %(levelname)s %(name)s: %(message)s",
    )

    policy = build_policy(args)
    logger.info("Effective policy: %s", policy.to_config().to_dict())

    source = build_source(args.input, geom_col=args.geom_col)
    runner = GridRunner(
        source=source,
        outdir=args.outdir,
        policy=policy,
        bounds=args.bounds,
        compression=args.compression,
        geom_col=args.geom_col,
    )

    start = perf_counter()
    summary = runner.run()
    logger.info(
        "Wrote %d of %d cells to %s in %.2f seconds",
        len(summary.written), summary.num_cells, args.outdir, perf_counter() - start,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
