from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from lanelet_fusion.lanelet_map import Point
from lanelet_fusion.matching import RouteSegment

logger = logging.getLogger(__name__)


@dataclass
class TagChanges:
    """Where one OSM key changes along a target route.

    `values` always holds one more entry than `points`: values[0] is the value at the
    start of the route, values[i + 1] the value from points[i] onwards. A missing key
    is represented by the empty string.
    """
    key: str
    points: List[Point] = field(default_factory=list)
    values: List[str] = field(default_factory=lambda: [""])


def check_tag_change(pline: Sequence[RouteSegment], keys: Iterable[str]) -> Dict[str, TagChanges]:
    """Find the points along `pline` where each key changes value (or appears/disappears)."""
    out: Dict[str, TagChanges] = {}
    for key in keys:
        val = pline[0].attributes.get(key, "") if pline else ""
        changes = TagChanges(key, [], [val])
        for seg in pline[1:]:
            new_val = seg.attributes.get(key, "")
            if new_val != val:
                changes.points.append(seg.front())
                changes.values.append(new_val)
                val = new_val
        if changes.points:
            logger.debug("Key '%s' changes %d times: %s", key, len(changes.points), changes.values)
        out[key] = changes
    return out


def merge_point_vec(points_lists: Iterable[Iterable[Point]]) -> List[Point]:
    """Flatten change points of several keys, dropping duplicates (same point id)."""
    merged: List[Point] = []
    seen = set()
    for pts in points_lists:
        for pt in pts:
            if pt.id not in seen:
                seen.add(pt.id)
                merged.append(pt)
    return merged
