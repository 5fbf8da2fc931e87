from __future__ import annotations

import logging
from bisect import bisect_right
from typing import List, Set, Tuple

from lanelet_fusion.constants import DIRECTIONS, HIGHWAY_NONURBAN, ROAD_URBAN
from lanelet_fusion.conflation.tag_changes import TagChanges
from lanelet_fusion.lanelet_map import LaneletMap
from lanelet_fusion.matching import Match, RouteSegment, get_index, same_direction

logger = logging.getLogger(__name__)


def highway2subtype_location(highway: str) -> Tuple[str, str]:
    """Map an OSM highway value to lanelet2 (subtype, location)."""
    if highway in HIGHWAY_NONURBAN:
        return "highway", "nonurban"
    if highway in ROAD_URBAN:
        return "road", "urban"
    if highway == "living_street":
        return "play_street", ""
    if highway == "busway":
        return "bus_lane", "urban"
    if highway == "cycleway":
        return "bicycle_lane", ""
    return "", ""


def segment_values(match: Match, changes: TagChanges, threshold_deg: float = 90.0) -> List[str]:
    """Value of `changes.key` that applies to each reference segment, in reference order.

    Change points are located on the reference route; if both routes were traced in
    opposite directions the value sequence (and with it the change order) is flipped first.
    """
    ind_change = [get_index(match, pt) for pt in changes.points]
    values = list(changes.values)
    if not same_direction(match, threshold_deg):
        values.reverse()
        ind_change.reverse()

    # values[k + 1] starts at ind_change[k]; keep the pairs together when ordering
    pairs = sorted(zip(ind_change, values[1:]), key=lambda item: item[0])
    if [ind for ind, _ in pairs] != ind_change:
        logger.debug(
            "Change points of '%s' are not monotonic along the reference route: %s",
            changes.key, ind_change,
        )
    boundaries = [ind for ind, _ in pairs]
    values = values[:1] + [value for _, value in pairs]
    return [values[bisect_right(boundaries, ind)] for ind in range(len(match.ref_pline))]


def set_value_dir(
    lanelet_map: LaneletMap,
    seg: RouteSegment,
    direction: str,
    key: str,
    value: str,
    written: Set[int],
) -> None:
    """Write key=value to every lanelet of one chain, once per lanelet."""
    for ll_id in seg.chain(direction):
        if ll_id in written:
            continue
        ll = lanelet_map.find_lanelet(ll_id)
        if ll is None:
            continue
        ll.attributes[key] = value
        written.add(ll_id)


def set_type_location(
    lanelet_map: LaneletMap,
    match: Match,
    changes: TagChanges,
    threshold_deg: float = 90.0,
) -> Tuple[Set[int], Set[int]]:
    """Derive subtype and location of the matched lanelets from the OSM highway tag.

    Returns the ids written for `subtype` and for `location`.
    """
    set_subtype: Set[int] = set()
    set_location: Set[int] = set()
    for seg, highway in zip(match.ref_pline, segment_values(match, changes, threshold_deg)):
        subtype, location = highway2subtype_location(highway)
        for direction in DIRECTIONS:
            set_value_dir(lanelet_map, seg, direction, "subtype", subtype, set_subtype)
            set_value_dir(lanelet_map, seg, direction, "location", location, set_location)
    return set_subtype, set_location


def transfer_att(
    lanelet_map: LaneletMap,
    match: Match,
    ref_key: str,
    changes: TagChanges,
    threshold_deg: float = 90.0,
) -> Set[int]:
    """Copy an OSM tag onto the matched lanelets under the lanelet2 key `ref_key`."""
    written: Set[int] = set()
    for seg, value in zip(match.ref_pline, segment_values(match, changes, threshold_deg)):
        for direction in DIRECTIONS:
            set_value_dir(lanelet_map, seg, direction, ref_key, value, written)
    return written
