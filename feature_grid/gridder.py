from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple
import logging
import math

from .bounds import Bounds
from .clipping import DEFAULT_CLIP_ENGINE, ClipEngine, cell_polygon, clip_geometry, release_native
from .features import FeatureList, is_valid_geometry
from .policy import CullingTechnique, GridPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CullReport:
    """What one cull call did: the cell it used and how many features survived."""
    cell: int
    bounds: Optional[Bounds]
    technique: CullingTechnique
    count_in: int
    count_out: int
    clip_failures: int = 0
    ok: bool = True

    def __str__(self) -> str:
        b = str(self.bounds) if self.bounds is not None else "<invalid cell>"
        return f"Grid cell {self.cell}: bounds={b}; in={self.count_in}; out={self.count_out}"


class FeatureGridder:
    """
    Regular grid over an input extent.

    Cells are indexed row-major (x varies fastest) from the (x_min, y_min)
    corner. The last column and row are clamped to the input extent, so they
    can be narrower than `cell_size`.

    Centroid ownership is half-open: a cell owns its min edges and not its
    max edges, except on the outer edge of the grid. Every centroid inside the
    input extent therefore lands in exactly one cell.
    """

    def __init__(
        self,
        input_bounds: Bounds,
        policy: Optional[GridPolicy] = None,
        clip_engine: Optional[ClipEngine] = DEFAULT_CLIP_ENGINE,
    ):
        self._input_bounds = input_bounds
        self._policy = policy or GridPolicy()
        self._engine = clip_engine

        cs = self._policy.cell_size
        if cs is not None and math.isfinite(cs) and cs > 0.0:
            self._cell_size: Optional[float] = float(cs)
            cells_x = int(math.ceil(input_bounds.width / cs))
            cells_y = int(math.ceil(input_bounds.height / cs))
        else:
            self._cell_size = None
            cells_x = 1
            cells_y = 1

        self._cells_x = max(cells_x, 1)
        self._cells_y = max(cells_y, 1)

        if self._policy.culling_technique == CullingTechnique.CROP and self._engine is None:
            logger.warning(
                "Gridding policy 'cull by cropping' requires a clip engine. Falling back on 'cull by centroid'."
            )
            self._policy = self._policy.with_technique(CullingTechnique.CENTROID)

        logger.debug(
            "FeatureGridder: bounds=%s cell_size=%s cells=%dx%d technique=%s",
            input_bounds, self._cell_size, self._cells_x, self._cells_y, self._policy.technique.value,
        )

    @property
    def input_bounds(self) -> Bounds:
        return self._input_bounds

    @property
    def policy(self) -> GridPolicy:
        return self._policy

    @property
    def clip_engine(self) -> Optional[ClipEngine]:
        return self._engine

    @property
    def cells_x(self) -> int:
        return self._cells_x

    @property
    def cells_y(self) -> int:
        return self._cells_y

    @property
    def num_cells(self) -> int:
        return self._cells_x * self._cells_y

    def get_num_cells(self) -> int:
        return self.num_cells

    def is_valid_cell(self, i: int) -> bool:
        return 0 <= i < self.num_cells

    def cell_coords(self, i: int) -> Optional[Tuple[int, int]]:
        if not self.is_valid_cell(i):
            return None
        return i % self._cells_x, i // self._cells_x

    def cell_bounds(self, i: int) -> Optional[Bounds]:
        """Bounds of cell `i`, or None when `i` is outside [0, num_cells)."""
        coords = self.cell_coords(i)
        if coords is None:
            return None
        if self._cell_size is None:
            return self._input_bounds

        x, y = coords
        b = self._input_bounds
        c = self._cell_size
        xmin = b.x_min + c * x
        ymin = b.y_min + c * y
        xmax = min(b.x_min + c * (x + 1), b.x_max)
        ymax = min(b.y_min + c * (y + 1), b.y_max)
        return Bounds(xmin, ymin, xmax, ymax)

    def cells(self) -> Iterator[Tuple[int, Bounds]]:
        for i in range(self.num_cells):
            yield i, self.cell_bounds(i)

    # ------------------------------------------------------------------
    def cull_feature_list_to_cell(self, i: int, features: FeatureList) -> bool:
        """
        Filter `features` in place down to the ones belonging to cell `i`.

        With cropping, surviving features also get their geometry replaced by
        its intersection with the cell. Pass a working copy if the original
        list is needed afterwards.
        """
        return self.cull_to_cell(i, features).ok

    def cull_to_cell(self, i: int, features: FeatureList) -> CullReport:
        technique = self._policy.technique
        count_in = len(features)
        failures = 0

        b = self.cell_bounds(i)
        if b is None:
            logger.warning("Grid cell %d is out of range [0, %d); features left untouched", i, self.num_cells)
        elif technique == CullingTechnique.CENTROID:
            self._cull_by_centroid(i, b, features)
        else:
            failures = self._cull_by_cropping(i, b, features)

        report = CullReport(
            cell=i,
            bounds=b,
            technique=technique,
            count_in=count_in,
            count_out=len(features),
            clip_failures=failures,
        )
        logger.debug("%s", report)
        return report

    # ------------------------------------------------------------------
    def _cull_by_centroid(self, i: int, b: Bounds, features: FeatureList) -> None:
        x, y = self.cell_coords(i)
        close_x = x == self._cells_x - 1
        close_y = y == self._cells_y - 1

        kept = []
        for feature in features:
            fb = feature.bounds()
            if fb is None:
                continue
            cx, cy = fb.center()
            if b.contains_half_open(cx, cy, close_x=close_x, close_y=close_y):
                kept.append(feature)
        features[:] = kept

    def _cull_by_cropping(self, i: int, b: Bounds, features: FeatureList) -> int:
        engine = self._engine
        try:
            crop = engine.import_geometry(cell_polygon(b))
        except Exception as e:
            failures = sum(1 for f in features if f.has_geometry())
            logger.info(
                "Feature gridder, clip engine could not import the rectangle of cell %d (%s: %s), "
                "skipping %d features",
                i, type(e).__name__, e, failures,
            )
            features.clear()
            return failures

        failures = 0
        kept = []
        try:
            for idx, feature in enumerate(features):
                if not feature.has_geometry():
                    continue

                result = clip_geometry(engine, feature.geometry, crop)
                if result.failed:
                    failures += 1
                    logger.info(
                        "Feature gridder, clip engine fault in cell %d on feature %d (%s), skipping feature",
                        i, idx, result.error,
                    )
                    continue

                if is_valid_geometry(result.geometry):
                    feature.geometry = result.geometry
                    kept.append(feature)
        finally:
            release_native(engine, crop)

        features[:] = kept
        return failures
