"""Output contract of the geometric matching stage.

A Match pairs a reference route (segments of the lanelet map's road network) with a
target route (OSM ways). Every reference segment knows which lanelets it represents:
`forward` lists the lanelets driving along the segment, `backward` the ones driving
against it. List position + 1 is the chain index (`ll_id_forward_1`, ...).
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from lanelet_fusion.constants import BACKWARD, DIRECTIONS, FORWARD
from lanelet_fusion.lanelet_map import Point, register_id

logger = logging.getLogger(__name__)

CHAIN_KEY_PREFIX = "ll_id_"
_CHAIN_KEY_RE = re.compile(r"^ll_id_(forward|backward)_(\d+)$")


@dataclass(eq=False)
class RouteSegment:
    id: int
    points: List[Point]
    attributes: Dict[str, str] = field(default_factory=dict)
    forward: List[int] = field(default_factory=list)
    backward: List[int] = field(default_factory=list)

    def __post_init__(self):
        register_id(self.id)
        if len(self.points) < 2:
            raise ValueError(f"RouteSegment {self.id} needs at least two points")

    @classmethod
    def from_attributes(cls, id: int, points: List[Point], attributes: Dict[str, str]) -> "RouteSegment":
        """Build a segment from raw numbered chain keys (`ll_id_forward_1`, ...).

        Chain keys are moved out of the attribute table into the ordered chain lists;
        indices must be contiguous from 1, a gap ends the chain like the numbered lookup does.
        """
        attributes = dict(attributes)
        found: Dict[str, Dict[int, int]] = {FORWARD: {}, BACKWARD: {}}
        for key in list(attributes):
            m = _CHAIN_KEY_RE.match(key)
            if m is None:
                continue
            found[m.group(1)][int(m.group(2))] = int(attributes.pop(key))

        chains: Dict[str, List[int]] = {}
        for direction, by_index in found.items():
            chain = []
            i = 1
            while i in by_index:
                chain.append(by_index[i])
                i += 1
            if len(chain) != len(by_index):
                logger.warning(
                    "Segment %s: non-contiguous %s chain indices %s, kept %d entries",
                    id, direction, sorted(by_index), len(chain),
                )
            chains[direction] = chain
        return cls(id, points, attributes, forward=chains[FORWARD], backward=chains[BACKWARD])

    def front(self) -> Point:
        return self.points[0]

    def back(self) -> Point:
        return self.points[-1]

    def chain(self, direction: str) -> List[int]:
        if direction == FORWARD:
            return self.forward
        if direction == BACKWARD:
            return self.backward
        raise ValueError(f"Unknown chain direction {direction!r}")

    def lanelet_ids(self) -> List[int]:
        """All lanelets represented by the segment, backward chain first."""
        return list(self.backward) + list(self.forward)

    def lane_count(self) -> int:
        return len(self.forward) + len(self.backward)

    def chain_attributes(self) -> Dict[str, str]:
        """Render the chains back to numbered string keys."""
        out = {}
        for direction in DIRECTIONS:
            for i, ll_id in enumerate(self.chain(direction), start=1):
                out[f"{CHAIN_KEY_PREFIX}{direction}_{i}"] = str(ll_id)
        return out


@dataclass
class Match:
    ref_pline: List[RouteSegment] = field(default_factory=list)
    target_pline: List[RouteSegment] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.ref_pline or not self.target_pline

    def replace_ref_lanelet(self, direction: str, old_id: int, new_id: int, start_index: int) -> int:
        """Replace `old_id` by `new_id` in the chains of segment `start_index` and all later ones.

        Returns the number of chain entries that were replaced.
        """
        replaced = 0
        for seg in self.ref_pline[start_index:]:
            chain = seg.chain(direction)
            for i, ll_id in enumerate(chain):
                if ll_id == old_id:
                    chain[i] = new_id
                    replaced += 1
        return replaced

    def remove_lanelet(self, lanelet_id: int) -> int:
        """Drop a lanelet from every chain of the reference route."""
        removed = 0
        for seg in self.ref_pline:
            for direction in DIRECTIONS:
                chain = seg.chain(direction)
                n = len(chain)
                chain[:] = [ll_id for ll_id in chain if ll_id != lanelet_id]
                removed += n - len(chain)
        return removed


def _dist2d(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def get_index(match: Match, pt: Point) -> int:
    """Index of the reference segment whose end points are closest to `pt`."""
    best_ind = 0
    best_d = float("inf")
    for i, seg in enumerate(match.ref_pline):
        d = _dist2d(seg.front(), pt) + _dist2d(seg.back(), pt)
        if d < best_d:
            best_d = d
            best_ind = i
    return best_ind


def _start_to_end(pline: Sequence[RouteSegment]):
    start = pline[0].front()
    end = pline[-1].back()
    return end.x - start.x, end.y - start.y


def same_direction(match: Match, threshold_deg: float = 90.0) -> bool:
    """True if reference and target route were traced in the same direction.

    Compares the start->end vectors of both routes; routes whose vectors enclose an
    angle of `threshold_deg` or more count as opposite.
    """
    if match.is_empty():
        return False
    x1, y1 = _start_to_end(match.ref_pline)
    x2, y2 = _start_to_end(match.target_pline)
    angle = math.atan2(x1 * y2 - x2 * y1, x1 * x2 + y1 * y2)
    return abs(angle) < math.radians(threshold_deg)
