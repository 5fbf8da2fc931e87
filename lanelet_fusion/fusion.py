from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from lanelet_fusion.constants import FusionConfig
from lanelet_fusion.conflation.conflation import (
    ConflationResult,
    conflate_lanelet_osm,
    create_updated_map,
    remove_tags,
)
from lanelet_fusion.conflation.lane_check import LaneCheck
from lanelet_fusion.lanelet_map import Lanelet, LaneletMap
from lanelet_fusion.map_transformation.align import (
    PolylineLike,
    get_transformation,
    transform_map,
)
from lanelet_fusion.matching import Match

logger = logging.getLogger(__name__)

AlignmentInput = Union[np.ndarray, Tuple[PolylineLike, PolylineLike]]


@dataclass
class FusionResult:
    lanelet_map: LaneletMap
    fused_map: Optional[LaneletMap] = None
    colors: Dict[int, LaneCheck] = field(default_factory=dict)
    deleted: List[Lanelet] = field(default_factory=list)
    transform: Optional[np.ndarray] = None

    @property
    def ok(self) -> bool:
        return self.fused_map is not None


def run_fusion(
    lanelet_map: LaneletMap,
    matches: Sequence[Match],
    config: Optional[FusionConfig] = None,
    alignment: Optional[AlignmentInput] = None,
) -> FusionResult:
    """Align (optional), clean, conflate and finalize a lanelet map.

    `alignment` is either a ready 3x3 transform or a (source, target) polyline pair
    to compute one from. If the transform cannot be computed the pipeline stops
    before conflation and the result has no fused map.
    """
    if config is None:
        config = FusionConfig.default()
    result = FusionResult(lanelet_map=lanelet_map)

    if alignment is not None:
        if isinstance(alignment, np.ndarray):
            trans = alignment
        else:
            src, target = alignment
            logger.info("Computing alignment with %s", config.align_method)
            trans = get_transformation(src, target, config.align_method, config)
            if trans is None:
                logger.error("Alignment failed - skipping conflation")
                return result
        transform_map(lanelet_map, trans)
        result.transform = trans

    remove_tags(lanelet_map)

    conflation: ConflationResult = conflate_lanelet_osm(lanelet_map, matches, config)
    result.colors = conflation.colors
    result.deleted = conflation.deleted
    result.fused_map = create_updated_map(lanelet_map, conflation.deleted)
    return result
