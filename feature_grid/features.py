from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional

from shapely.geometry.base import BaseGeometry

from .bounds import Bounds


@dataclass
class Feature:
    """A geometry plus the attributes that travel with it."""
    geometry: Optional[BaseGeometry]
    properties: Dict[str, Any] = field(default_factory=dict)

    def has_geometry(self) -> bool:
        return self.geometry is not None and not self.geometry.is_empty

    def bounds(self) -> Optional[Bounds]:
        return Bounds.of(self.geometry) if self.has_geometry() else None


FeatureList = List[Feature]


def working_copy(features: Iterable[Feature]) -> FeatureList:
    """
    Shallow per-feature copy: culling may drop entries and cropping replaces
    geometries, neither of which should leak back into `features`.
    """
    return [replace(f) for f in features]


def is_valid_geometry(geom: Optional[BaseGeometry]) -> bool:
    return geom is not None and not geom.is_empty and bool(geom.is_valid)
