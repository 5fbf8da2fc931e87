from dataclasses import dataclass
from typing import Dict, List

import pytest

from lanelet_fusion.lanelet_map import Curve, Lanelet, LaneletMap, Point, get_id
from lanelet_fusion.matching import Match, RouteSegment

LANE_WIDTH = 3.5


def make_points(coords):
    return [Point(get_id(), *c) for c in coords]


def make_curve(coords, **attributes):
    return Curve(get_id(), make_points(coords), attributes)


def make_route(xs, y=0.0, tags=None):
    """Consecutive segments along the x axis sharing their joint points."""
    pts = make_points([(x, y) for x in xs])
    segs = []
    for i in range(len(pts) - 1):
        attrs = dict(tags[i]) if tags else {}
        segs.append(RouteSegment(get_id(), [pts[i], pts[i + 1]], attrs))
    return segs


@dataclass
class Corridor:
    lanelet_map: LaneletMap
    ref_pline: List[RouteSegment]
    forward: List[Lanelet]
    backward: List[Lanelet]
    curves: Dict[int, Curve]

    def match(self, target_pline):
        return Match(self.ref_pline, target_pline)


def build_corridor(xs, n_forward=1, n_backward=0):
    """Straight road along x: forward lanes at y > 0, backward lanes at y < 0.

    Every lanelet spans the whole road; boundary k lies at y = k * LANE_WIDTH and
    the centre boundary (k = 0) is shared by both directions.
    """
    curves = {
        k: make_curve([(x, k * LANE_WIDTH) for x in xs])
        for k in range(-n_backward, n_forward + 1)
    }
    forward = [
        Lanelet(get_id(), curves[k + 1], curves[k], {"type": "lanelet"})
        for k in range(n_forward)
    ]
    backward = [
        Lanelet(get_id(), curves[-(j + 1)].invert(), curves[-j].invert(), {"type": "lanelet"})
        for j in range(n_backward)
    ]
    lanelet_map = LaneletMap()
    lanelet_map.add_all(forward + backward)

    ref_pline = make_route(xs)
    for seg in ref_pline:
        seg.forward = [ll.id for ll in forward]
        seg.backward = [ll.id for ll in backward]
    return Corridor(lanelet_map, ref_pline, forward, backward, curves)


@pytest.fixture
def points():
    return make_points


@pytest.fixture
def curve():
    return make_curve


@pytest.fixture
def route():
    return make_route


@pytest.fixture
def corridor():
    return build_corridor
