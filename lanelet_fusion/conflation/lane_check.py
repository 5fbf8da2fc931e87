"""Compare the lanelets a reference segment represents with the OSM `lanes` tag.

Each matched lanelet gets a review category:
  - MATCH:    lanelet count equals lanes (+ shoulder lanes)
  - MISMATCH: counts differ
  - UNKNOWN:  no usable lanes tag
  - NO_MATCH: lanelet not covered by any match (assigned when the colour list is built)

When the lanelet map has more lanelets than OSM reports, "lonely" lanelets (neither
predecessor nor successor) are treated as mapping errors and removed one at a time.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Optional

from lanelet_fusion.constants import DIRECTIONS, SHOULDER_BOTH_SIDES, SHOULDER_ONE_SIDE
from lanelet_fusion.conflation.propagation import segment_values
from lanelet_fusion.conflation.tag_changes import TagChanges
from lanelet_fusion.lanelet_map import Lanelet, LaneletMap, is_lonely, successor_graph
from lanelet_fusion.matching import Match, RouteSegment

logger = logging.getLogger(__name__)


class LaneCheck(str, Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    UNKNOWN = "unknown"
    NO_MATCH = "no_match"

    @property
    def color(self) -> str:
        return COLOR_CODES[self]


# RViz colour names used by the visualisation of the review result
COLOR_CODES = {
    LaneCheck.MATCH: "WEBGreen",
    LaneCheck.MISMATCH: "WEBRed",
    LaneCheck.UNKNOWN: "WEBBlueLight",
    LaneCheck.NO_MATCH: "White",
}


def osm_lane_count(lanes: str, shoulder: str) -> Optional[int]:
    """Drivable lanes according to OSM, shoulders included; None without a usable lanes tag."""
    if lanes == "":
        return None
    try:
        count = int(lanes.strip())
    except ValueError:
        logger.debug("Could not parse lanes='%s'", lanes)
        return None
    if shoulder in SHOULDER_ONE_SIDE:
        count += 1
    elif shoulder == SHOULDER_BOTH_SIDES:
        count += 2
    return count


def classify(lanes_count: int, lanes_osm: Optional[int]) -> LaneCheck:
    if lanes_osm is None:
        return LaneCheck.UNKNOWN
    if lanes_count == lanes_osm:
        return LaneCheck.MATCH
    return LaneCheck.MISMATCH


def set_color_code_dir(
    lanelet_map: LaneletMap,
    seg: RouteSegment,
    direction: str,
    check: LaneCheck,
    colors: Dict[int, LaneCheck],
) -> None:
    """Assign `check` to the lanelets of one chain that have no category yet."""
    for ll_id in seg.chain(direction):
        if ll_id in colors:
            continue
        if lanelet_map.find_lanelet(ll_id) is None:
            continue
        colors[ll_id] = check


def find_wrong_lanelet(
    lanelet_map: LaneletMap,
    seg: RouteSegment,
    deleted: List[Lanelet],
    match: Match,
) -> bool:
    """Remove the first lonely lanelet of `seg` from the match and mark it deleted.

    Returns False if none of the segment's lanelets is lonely.
    """
    G = successor_graph(lanelet_map)
    for ll_id in seg.lanelet_ids():
        ll = lanelet_map.find_lanelet(ll_id)
        if ll is None:
            continue
        if not is_lonely(G, ll_id):
            continue
        if ll not in deleted:
            deleted.append(ll)
        match.remove_lanelet(ll_id)
        logger.info("Removing lonely lanelet %s (segment %s)", ll_id, seg.id)
        return True
    return False


def check_lanes(
    lanelet_map: LaneletMap,
    match: Match,
    lanes: TagChanges,
    shoulder: TagChanges,
    colors: Dict[int, LaneCheck],
    deleted: List[Lanelet],
    threshold_deg: float = 90.0,
) -> None:
    """Categorise the lanelets of every reference segment and drop surplus lonely lanelets."""
    val_lanes = segment_values(match, lanes, threshold_deg)
    val_shoulder = segment_values(match, shoulder, threshold_deg)

    for seg, val_lane, val_sh in zip(match.ref_pline, val_lanes, val_shoulder):
        lanes_count = seg.lane_count()
        lanes_osm = osm_lane_count(val_lane, val_sh)
        check = classify(lanes_count, lanes_osm)
        for direction in DIRECTIONS:
            set_color_code_dir(lanelet_map, seg, direction, check, colors)

        if lanes_osm is None:
            continue
        while lanes_count > lanes_osm:
            if find_wrong_lanelet(lanelet_map, seg, deleted, match):
                lanes_count -= 1
            else:
                logger.warning(
                    "Couldn't identify wrong lanelets clearly on segment %s "
                    "(%d lanelets, %d OSM lanes) - skipping segment",
                    seg.id, lanes_count, lanes_osm,
                )
                break
