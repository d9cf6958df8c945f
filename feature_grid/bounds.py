from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np
import shapely


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned planar rectangle (min/max per axis)."""
    x_min: float
    y_min: float
    x_max: float
    y_max: float

    def __post_init__(self):
        if self.x_min > self.x_max or self.y_min > self.y_max:
            raise ValueError(
                f"Inverted bounds: ({self.x_min}, {self.y_min}) => ({self.x_max}, {self.y_max})"
            )

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    def center(self) -> Tuple[float, float]:
        return (self.x_min + self.x_max) * 0.5, (self.y_min + self.y_max) * 0.5

    def contains(self, x: float, y: float) -> bool:
        return self.x_min <= x <= self.x_max and self.y_min <= y <= self.y_max

    def contains_half_open(self, x: float, y: float, close_x: bool = False, close_y: bool = False) -> bool:
        """
        Min edges inclusive, max edges exclusive unless closed.
        Adjacent rectangles sharing an edge never both claim a point on it.
        """
        in_x = self.x_min <= x and (x <= self.x_max if close_x else x < self.x_max)
        in_y = self.y_min <= y and (y <= self.y_max if close_y else y < self.y_max)
        return in_x and in_y

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return self.x_min, self.y_min, self.x_max, self.y_max

    @classmethod
    def of(cls, geom) -> Optional["Bounds"]:
        if geom is None or geom.is_empty:
            return None
        minx, miny, maxx, maxy = geom.bounds
        return cls(float(minx), float(miny), float(maxx), float(maxy))

    @classmethod
    def union_of(cls, geoms: Iterable) -> Optional["Bounds"]:
        """Extent of every non-empty geometry in `geoms`, or None if there is none."""
        arr = np.asarray([g for g in geoms if g is not None and not g.is_empty], dtype=object)
        if arr.size == 0:
            return None
        boxes = shapely.bounds(arr)  # (N, 4)
        mins = boxes[:, :2].min(axis=0)
        maxs = boxes[:, 2:].max(axis=0)
        return cls(float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1]))

    @classmethod
    def parse(cls, raw: str) -> "Bounds":
        parts = [p.strip() for p in raw.split(",")]
        if len(parts) != 4:
            raise ValueError(f"Expected 'minx,miny,maxx,maxy', got: {raw!r}")
        minx, miny, maxx, maxy = (float(p) for p in parts)
        return cls(minx, miny, maxx, maxy)

    def __str__(self) -> str:
        return f"{self.x_min},{self.y_min} => {self.x_max},{self.y_max}"
