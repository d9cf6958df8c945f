from .bounds import Bounds
from .config import Config
from .features import Feature, working_copy
from .policy import CullingTechnique, GridPolicy
from .clipping import ClipEngine, ClipResult, ShapelyClipEngine
from .gridder import CullReport, FeatureGridder
from .datasource import GeoJSONSource, GeoParquetSource, build_source
from .writer import CellWriter
from .runner import GridRunner, GridSummary

__all__ = [
    "Bounds",
    "Config",
    "Feature",
    "working_copy",
    "CullingTechnique",
    "GridPolicy",
    "ClipEngine",
    "ClipResult",
    "ShapelyClipEngine",
    "CullReport",
    "FeatureGridder",
    "GeoJSONSource",
    "GeoParquetSource",
    "build_source",
    "CellWriter",
    "GridRunner",
    "GridSummary",
]
