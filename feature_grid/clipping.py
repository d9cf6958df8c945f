"""
Clip engine seam.

The gridder only needs four things from a computational-geometry library:
import a feature geometry, intersect it with the cell rectangle, export the
result and release whatever native objects were created. `ShapelyClipEngine`
provides them on top of shapely (GEOS). Other engines can be injected into the
gridder; passing no engine at all makes cropping unavailable.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional, Protocol
import logging

import shapely
from shapely import make_valid
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from .bounds import Bounds

logger = logging.getLogger(__name__)


class ClipEngine(Protocol):
    name: str

    def import_geometry(self, geom: BaseGeometry) -> Any: ...

    def export_geometry(self, native: Any) -> Optional[BaseGeometry]: ...

    def intersection(self, a: Any, b: Any) -> Any: ...

    def release(self, native: Any) -> None: ...


class ShapelyClipEngine:
    name = "shapely"

    def __init__(self, repair_invalid: bool = True):
        self.repair_invalid = repair_invalid

    def import_geometry(self, geom: BaseGeometry) -> Optional[BaseGeometry]:
        if geom is None or geom.is_empty:
            return None
        if self.repair_invalid and not geom.is_valid:
            geom = make_valid(geom)
        return geom

    def export_geometry(self, native: Any) -> Optional[BaseGeometry]:
        if native is None or native.is_empty:
            return None
        return native

    def intersection(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        return shapely.intersection(a, b)

    def release(self, native: Any) -> None:
        # shapely geometries are reference counted
        pass


DEFAULT_CLIP_ENGINE = ShapelyClipEngine()


def cell_polygon(bounds: Bounds) -> BaseGeometry:
    """Closed, counter-clockwise 4-vertex rectangle covering a cell."""
    return box(bounds.x_min, bounds.y_min, bounds.x_max, bounds.y_max, ccw=True)


def release_native(engine: ClipEngine, native: Any) -> None:
    """Hand `native` back to the engine. A failing release is logged, not raised."""
    if native is None:
        return
    try:
        engine.release(native)
    except Exception as e:
        logger.info("Clip engine %s failed to release a geometry (%s: %s)", engine.name, type(e).__name__, e)


@dataclass(frozen=True)
class ClipResult:
    geometry: Optional[BaseGeometry] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def clip_geometry(engine: ClipEngine, geom: BaseGeometry, crop_native: Any) -> ClipResult:
    """
    Intersect one geometry with an already-imported crop rectangle.

    Engine faults come back as a failed ClipResult rather than an exception so
    that the caller's loop over features keeps going.
    """
    native = None
    out = None
    try:
        native = engine.import_geometry(geom)
        if native is None:
            return ClipResult()
        out = engine.intersection(native, crop_native)
        if out is None:
            return ClipResult()
        return ClipResult(geometry=engine.export_geometry(out))
    except Exception as e:
        return ClipResult(error=f"{type(e).__name__}: {e}")
    finally:
        release_native(engine, out)
        release_native(engine, native)
