from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping, Optional, Union

from .config import Config

PROP_CELL_SIZE = "cell_size"
PROP_CULLING_TECHNIQUE = "culling_technique"
PROP_SPATIALIZE_GROUPS = "spatialize_groups"
PROP_CLUSTER_CULLING = "cluster_culling"


class CullingTechnique(str, Enum):
    CENTROID = "centroid"
    CROP = "crop"

    @classmethod
    def parse(cls, raw: Any) -> Optional["CullingTechnique"]:
        """Literal 'crop' / 'centroid'; anything else is unrecognized (None)."""
        for t in cls:
            if raw == t.value:
                return t
        return None


@dataclass(frozen=True)
class GridPolicy:
    """
    How a feature set is gridded.

    Every field is None until explicitly set, so `to_config` only writes back
    what was configured. `spatialize_groups` and `cluster_culling` are carried
    for downstream consumers and not interpreted by the gridder.
    """
    cell_size: Optional[float] = None
    culling_technique: Optional[CullingTechnique] = None
    spatialize_groups: Optional[bool] = None
    cluster_culling: Optional[bool] = None

    # ---------------- effective values ---------------- #
    @property
    def technique(self) -> CullingTechnique:
        return self.culling_technique or CullingTechnique.CENTROID

    @property
    def spatialize_groups_enabled(self) -> bool:
        return True if self.spatialize_groups is None else self.spatialize_groups

    @property
    def cluster_culling_enabled(self) -> bool:
        return False if self.cluster_culling is None else self.cluster_culling

    def with_technique(self, technique: CullingTechnique) -> "GridPolicy":
        return replace(self, culling_technique=technique)

    # ---------------- config round-trip ---------------- #
    @classmethod
    def from_config(cls, conf: Union[Config, Mapping[str, Any]]) -> "GridPolicy":
        if not isinstance(conf, Config):
            conf = Config(conf)

        cell_size = None
        if conf.has_value(PROP_CELL_SIZE):
            cell_size = conf.value(PROP_CELL_SIZE, None, float)

        technique = CullingTechnique.parse(conf.value(PROP_CULLING_TECHNIQUE))

        return cls(
            cell_size=cell_size,
            culling_technique=technique,
            spatialize_groups=conf.get_optional(PROP_SPATIALIZE_GROUPS, bool),
            cluster_culling=conf.get_optional(PROP_CLUSTER_CULLING, bool),
        )

    def to_config(self) -> Config:
        conf = Config()
        conf.add_optional(PROP_CELL_SIZE, self.cell_size)
        if self.culling_technique is not None:
            conf.add(PROP_CULLING_TECHNIQUE, self.culling_technique.value)
        conf.add_optional(PROP_SPATIALIZE_GROUPS, self.spatialize_groups)
        conf.add_optional(PROP_CLUSTER_CULLING, self.cluster_culling)
        return conf
