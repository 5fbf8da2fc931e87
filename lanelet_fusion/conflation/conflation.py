"""conflation.py

Transfer OpenStreetMap semantics onto a lanelet map, match by match.

Per match, in this order (later steps depend on the chains updated by earlier ones):
    1. find the points where any target key changes along the OSM route
    2. split the matched lanelets at those points
    3. highway       -> subtype + location
    4. maxspeed      -> speed_limit
       name          -> road_name
       oneway        -> one_way
       surface       -> road_surface
       lane_markings -> lane_markings
    5. lanes/shoulder -> review category per lanelet, removal of lonely surplus lanelets

The lanelet map and the matches are modified in place. Deleted lanelets stay in the
map until `create_updated_map` builds the output map without them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from tqdm import tqdm

from lanelet_fusion.constants import (
    AUTOGENERATED_POINT_TAGS,
    TARGET_KEYS,
    TRANSFER_KEYS,
    FusionConfig,
)
from lanelet_fusion.conflation.lane_check import LaneCheck, check_lanes
from lanelet_fusion.conflation.propagation import set_type_location, transfer_att
from lanelet_fusion.conflation.splitting import split_lanelet
from lanelet_fusion.conflation.tag_changes import TagChanges, check_tag_change, merge_point_vec
from lanelet_fusion.lanelet_map import Lanelet, LaneletMap
from lanelet_fusion.matching import Match

logger = logging.getLogger(__name__)


@dataclass
class ConflationResult:
    colors: Dict[int, LaneCheck] = field(default_factory=dict)
    deleted: List[Lanelet] = field(default_factory=list)

    @property
    def deleted_ids(self) -> List[int]:
        return [ll.id for ll in self.deleted]

    def color_list(self, lanelet_map: LaneletMap) -> List[Tuple[int, str]]:
        """(lanelet id, colour code) for every lanelet; unmatched lanelets get NO_MATCH."""
        return [
            (ll_id, self.colors.get(ll_id, LaneCheck.NO_MATCH).color)
            for ll_id in lanelet_map.lanelets
        ]

    def summary(self) -> Dict[str, int]:
        counts = {check.value: 0 for check in LaneCheck}
        for check in self.colors.values():
            counts[check.value] += 1
        counts["deleted"] = len(self.deleted)
        return counts


def remove_tags(lanelet_map: LaneletMap, names: Iterable[str] = AUTOGENERATED_POINT_TAGS) -> int:
    """Strip point attributes that map-builder tools generate (stale after alignment)."""
    names = tuple(names)
    removed = 0
    for pt in lanelet_map.points.values():
        for name in names:
            if pt.attributes.pop(name, None) is not None:
                removed += 1
    logger.debug("Removed %d auto-generated point attributes", removed)
    return removed


def split_on_tag_change(
    lanelet_map: LaneletMap,
    match: Match,
    keys: Sequence[str],
    tolerance: float,
) -> Dict[str, TagChanges]:
    """Detect tag changes on the target route and split the matched lanelets there."""
    changes = check_tag_change(match.target_pline, keys)
    pts_merged = merge_point_vec(c.points for c in changes.values())
    if pts_merged:
        split_lanelet(lanelet_map, match, pts_merged, tolerance)
    return changes


def conflate_match(
    lanelet_map: LaneletMap,
    match: Match,
    result: ConflationResult,
    config: FusionConfig,
) -> None:
    threshold = config.direction_threshold_deg
    changes = split_on_tag_change(lanelet_map, match, TARGET_KEYS, config.split_tolerance)

    set_type_location(lanelet_map, match, changes["highway"], threshold)
    for osm_key, ref_key in TRANSFER_KEYS.items():
        transfer_att(lanelet_map, match, ref_key, changes[osm_key], threshold)

    check_lanes(
        lanelet_map,
        match,
        changes["lanes"],
        changes["shoulder"],
        result.colors,
        result.deleted,
        threshold,
    )


def conflate_lanelet_osm(
    lanelet_map: LaneletMap,
    matches: Sequence[Match],
    config: Optional[FusionConfig] = None,
    result: Optional[ConflationResult] = None,
) -> ConflationResult:
    """Conflate every match into `lanelet_map`; returns review categories and deleted lanelets."""
    if config is None:
        config = FusionConfig.default()
        logger.debug("No FusionConfig provided; using defaults from fusion_parameters.json")
    if result is None:
        result = ConflationResult()

    n_lanelets_before = len(lanelet_map)
    skipped = 0
    for match in tqdm(matches, desc="conflating matches", disable=not matches):
        if match.is_empty():
            skipped += 1
            continue
        conflate_match(lanelet_map, match, result, config)

    logger.info(
        "Conflated %d matches (%d skipped): %d lanelets created by splitting, %d marked for deletion",
        len(matches) - skipped,
        skipped,
        len(lanelet_map) - n_lanelets_before,
        len(result.deleted),
    )
    logger.info("Set lanelet subtype and location based on OSM highway tag")
    for osm_key, ref_key in TRANSFER_KEYS.items():
        logger.info("Transferred %s to %s", osm_key, ref_key)
    logger.info("Lane review categories: %s", result.summary())
    return result


def create_updated_map(lanelet_map: LaneletMap, deleted: Iterable[Lanelet]) -> LaneletMap:
    """New map with every element of `lanelet_map` except the deleted lanelets.

    Points and linestrings are not copied on their own: they come in through the
    lanelets and areas that reference them.
    """
    deleted_ids = {ll.id for ll in deleted}
    new_map = LaneletMap()
    for ll in lanelet_map.lanelets.values():
        if ll.id not in deleted_ids:
            new_map.add(ll)
    for area in lanelet_map.areas.values():
        new_map.add(area)
    for reg_elem in lanelet_map.regulatory_elements.values():
        new_map.add(reg_elem)
    for poly in lanelet_map.polygons.values():
        new_map.add(poly)
    logger.info(
        "Created updated map: %d of %d lanelets kept",
        len(new_map), len(lanelet_map),
    )
    return new_map
