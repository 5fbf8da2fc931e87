"""Structural splitting of lanelets where an OSM tag changes.

A change point of the target route is located on the reference route, and every
lanelet the closest reference segment represents is cut in two: the original lanelet
keeps the upstream part of both bounds, a new lanelet gets the downstream part.

Adjacent lanelets share boundary curves, so every curve is cut only once per match.
The `splitted` memo maps a curve id to the downstream curve produced by the first cut,
oriented along the reference route; later requests for the same curve get that curve back.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np

from lanelet_fusion.constants import BACKWARD, DIRECTIONS, FusionConfig
from lanelet_fusion.lanelet_map import (
    Curve,
    CurveView,
    Lanelet,
    LaneletMap,
    Point,
    get_id,
)
from lanelet_fusion.matching import Match, get_index

logger = logging.getLogger(__name__)


def project_point(points: Sequence[Point], pt: Point) -> Tuple[np.ndarray, int]:
    """Project `pt` onto the polyline through `points` (3D).

    Returns the projected coordinate and the index of the polyline segment
    (points[i] -> points[i + 1]) it lies on.
    """
    P = np.array([p.xyz for p in points], dtype=float)
    q = pt.xyz
    a = P[:-1]
    ab = P[1:] - a
    denom = np.einsum("ij,ij->i", ab, ab)
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(denom > 0, np.einsum("ij,ij->i", q - a, ab) / denom, 0.0)
    t = np.clip(t, 0.0, 1.0)
    proj = a + t[:, None] * ab
    dist = np.linalg.norm(proj - q, axis=1)
    seg = int(np.argmin(dist))
    return proj[seg], seg


def position_along(points: Sequence[Point], pt: Point) -> float:
    """Arc length from the first point to the projection of `pt`."""
    proj, seg = project_point(points, pt)
    P = np.array([p.xyz for p in points[: seg + 1]], dtype=float)
    walked = float(np.sum(np.linalg.norm(np.diff(P, axis=0), axis=1)))
    return walked + float(np.linalg.norm(proj - P[-1]))


def _midpoint(a: Point, b: Point) -> Point:
    return Point(get_id(), (a.x + b.x) / 2.0, (a.y + b.y) / 2.0, (a.z + b.z) / 2.0)


def _cut(points: List[Point], pt: Point, tolerance: float) -> Tuple[List[Point], List[Point]]:
    """Divide a point sequence at the projection of `pt`; both parts keep >= 2 points."""
    proj, seg = project_point(points, pt)
    d = np.linalg.norm(np.array([p.xyz for p in points]) - proj, axis=1)
    i_min = int(np.argmin(d))

    if d[i_min] < tolerance:
        if i_min == 0:
            split_pt = _midpoint(points[0], points[1])
            return [points[0], split_pt], [split_pt] + points[1:]
        if i_min == len(points) - 1:
            split_pt = _midpoint(points[-2], points[-1])
            return points[:-1] + [split_pt], [split_pt, points[-1]]
        return points[: i_min + 1], points[i_min:]

    split_pt = Point(get_id(), float(proj[0]), float(proj[1]), float(proj[2]))
    return points[: seg + 1] + [split_pt], [split_pt] + points[seg + 1:]


def split_linestring(
    bound: CurveView,
    pt: Point,
    invert: bool,
    splitted: Dict[int, CurveView],
    tolerance: float = FusionConfig.split_tolerance,
) -> CurveView:
    """Cut a lanelet bound at `pt` and return the downstream part.

    The bound keeps the upstream part in place. `invert` is set for lanelets driving
    against the reference route: the cut then happens on the inverted bound so that
    upstream/downstream refer to the reference direction, and the returned curve is
    oriented like `bound`.
    """
    work = bound.invert() if invert else bound
    new_view = splitted.get(work.id)
    if new_view is None:
        prefix, suffix = _cut(work.points, pt, tolerance)
        work.set_points(prefix)
        new_view = Curve(get_id(), suffix, dict(work.attributes)).view()
        splitted[work.id] = new_view
        logger.debug(
            "Split curve %s at (%.3f, %.3f): %d + %d points, new curve %s",
            work.id, suffix[0].x, suffix[0].y, len(prefix), len(suffix), new_view.id,
        )
    return new_view.invert() if invert else new_view


def split_ll_dir(
    lanelet_map: LaneletMap,
    match: Match,
    ind: int,
    direction: str,
    splitted: Dict[int, CurveView],
    pt: Point,
    tolerance: float = FusionConfig.split_tolerance,
) -> List[Lanelet]:
    """Split every lanelet of one chain of reference segment `ind`."""
    invert = direction == BACKWARD
    created = []
    for ll_id in list(match.ref_pline[ind].chain(direction)):
        orig = lanelet_map.find_lanelet(ll_id)
        if orig is None:
            continue
        new_left = split_linestring(orig.left, pt, invert, splitted, tolerance)
        new_right = split_linestring(orig.right, pt, invert, splitted, tolerance)
        new_ll = Lanelet(get_id(), new_left, new_right, orig.attributes)
        lanelet_map.add(new_ll)
        match.replace_ref_lanelet(direction, orig.id, new_ll.id, ind)
        created.append(new_ll)
    return created


def split_lanelet(
    lanelet_map: LaneletMap,
    match: Match,
    pts: Sequence[Point],
    tolerance: float = FusionConfig.split_tolerance,
) -> List[Lanelet]:
    """Split the lanelets of `match` at every change point in `pts`.

    Points are handled in reference-route order (segment index, then position along
    that segment), so a later cut always works on the downstream lanelet left by an
    earlier one.
    """
    splitted: Dict[int, CurveView] = {}
    created: List[Lanelet] = []
    located = []
    for pt in pts:
        ind = get_index(match, pt)
        located.append((ind, position_along(match.ref_pline[ind].points, pt), pt))
    located.sort(key=lambda item: item[:2])
    for ind, _, pt in located:
        for direction in DIRECTIONS:
            created.extend(
                split_ll_dir(lanelet_map, match, ind, direction, splitted, pt, tolerance)
            )
    if created:
        logger.debug("Created %d lanelets at %d split points", len(created), len(located))
    return created
