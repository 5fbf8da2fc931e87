"""align.py

Rigid 2D alignment between two coordinate frames, e.g. a lanelet map recorded in a
local frame and the projected OSM network (or a GPS trajectory).

Methods
-------
- "Umeyama": both polylines are resampled to the same number of points at equal
  arc-length spacing, then the closed-form least-squares fit (Umeyama 1991) is
  computed without scaling. A scaled fit is computed as a sanity check: a scale
  factor below `scale_warning_threshold` suggests the two polylines don't belong
  together and is reported, the rigid transform is still returned.
- "ICP": point-to-point iterative closest point on the polyline vertices, nearest
  neighbours from a scipy cKDTree.

Transforms are 3x3 homogeneous matrices mapping source -> target. Applying a
transform to a map uses its inverse (target frame -> source frame).
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.spatial import cKDTree
from shapely.geometry import LineString

from lanelet_fusion.constants import FusionConfig
from lanelet_fusion.lanelet_map import Curve, CurveView, LaneletMap, Point, get_id

logger = logging.getLogger(__name__)

PolylineLike = Union[Curve, CurveView, Sequence[Point]]

SUPPORTED_METHODS = ("ICP", "Umeyama")


def _points_of(pline: PolylineLike) -> List[Point]:
    if isinstance(pline, (Curve, CurveView)):
        return list(pline.points)
    return list(pline)


def ls2pc2d(pline: PolylineLike) -> np.ndarray:
    """Vertices of a polyline as an (N, 2) array."""
    return np.array([[p.x, p.y] for p in _points_of(pline)], dtype=float)


def ls2interp_mat2d(pline: PolylineLike, num: int) -> np.ndarray:
    """Resample a polyline to `num` points equally spaced along its 2D length; (2, num) array."""
    line = LineString(ls2pc2d(pline))
    distances = np.linspace(0.0, line.length, num)
    mat = np.empty((2, num), dtype=float)
    for i, d in enumerate(distances):
        pt = line.interpolate(d)
        mat[:, i] = (pt.x, pt.y)
    return mat


def umeyama(src: np.ndarray, dst: np.ndarray, with_scaling: bool = True) -> np.ndarray:
    """Least-squares similarity transform mapping src -> dst.

    src, dst: (m, n) arrays, one point per column. Returns an (m+1, m+1) homogeneous matrix.
    """
    m, n = src.shape
    src_mean = src.mean(axis=1, keepdims=True)
    dst_mean = dst.mean(axis=1, keepdims=True)
    src_demean = src - src_mean
    dst_demean = dst - dst_mean

    sigma = dst_demean @ src_demean.T / n
    U, d, Vt = np.linalg.svd(sigma)
    S = np.ones(m)
    if np.linalg.det(U) * np.linalg.det(Vt) < 0:
        S[-1] = -1.0
    R = U @ np.diag(S) @ Vt

    c = 1.0
    if with_scaling:
        src_var = float(np.sum(src_demean ** 2)) / n
        c = float(d @ S) / src_var if src_var > 0 else 1.0

    T = np.eye(m + 1)
    T[:m, :m] = c * R
    T[:m, m] = (dst_mean - c * R @ src_mean).ravel()
    return T


def _apply(trans: np.ndarray, pts: np.ndarray) -> np.ndarray:
    """Apply a 3x3 homogeneous transform to an (N, 2) array."""
    return pts @ trans[:2, :2].T + trans[:2, 2]


def point_transformation_umeyama(
    src: PolylineLike,
    target: PolylineLike,
    num_inter: int = 100,
    scale_warning_threshold: float = 0.95,
) -> np.ndarray:
    src_mat = ls2interp_mat2d(src, num_inter)
    target_mat = ls2interp_mat2d(target, num_inter)

    trans = umeyama(src_mat, target_mat, with_scaling=False)

    # scale factor of the similarity fit relative to the rigid one
    trans_scaling = umeyama(src_mat, target_mat, with_scaling=True)
    scale = float(np.linalg.norm(trans_scaling[:2, 0]) / np.linalg.norm(trans[:2, 0]))
    if scale < scale_warning_threshold:
        logger.warning(
            "High scaling factor (%.3f) between source and target polyline. "
            "Are you sure they belong together?",
            scale,
        )
    return trans


def point_transformation_icp(
    src: PolylineLike,
    target: PolylineLike,
    max_iterations: int = 50,
    tolerance: float = 1e-8,
) -> Tuple[np.ndarray, bool]:
    """Point-to-point ICP on the vertices; returns (transform, converged)."""
    src_pts = ls2pc2d(src)
    target_pts = ls2pc2d(target)
    tree = cKDTree(target_pts)

    trans = np.eye(3)
    current = src_pts.copy()
    prev_err = float("inf")
    converged = False
    for i in range(max_iterations):
        dist, idx = tree.query(current)
        step = umeyama(current.T, target_pts[idx].T, with_scaling=False)
        current = _apply(step, current)
        trans = step @ trans
        err = float(np.mean(dist ** 2))
        if abs(prev_err - err) < tolerance:
            converged = True
            logger.debug("ICP converged after %d iterations (mse=%.6f)", i + 1, err)
            break
        prev_err = err
    return trans, converged


def get_transformation(
    src: PolylineLike,
    target: PolylineLike,
    method: Optional[str] = None,
    config: Optional[FusionConfig] = None,
) -> Optional[np.ndarray]:
    """Transformation src -> target by the selected method; None if the method is unknown."""
    if config is None:
        config = FusionConfig.default()
    method = method or config.align_method

    if method == "ICP":
        trans, converged = point_transformation_icp(
            src, target, config.icp_max_iterations, config.icp_tolerance
        )
        if not converged:
            logger.warning("ICP has not converged - continuing with last estimate")
        return trans
    if method == "Umeyama":
        return point_transformation_umeyama(
            src, target, config.align_num_inter_ume, config.scale_warning_threshold
        )
    logger.error("Registration method %r not supported (expected one of %s)", method, SUPPORTED_METHODS)
    return None


def transform_pt(pt: Point, trans_inv: np.ndarray) -> None:
    x, y, _ = trans_inv @ np.array([pt.x, pt.y, 1.0])
    pt.x = float(x)
    pt.y = float(y)


def transform_map(lanelet_map: LaneletMap, trans: np.ndarray) -> None:
    """Move every point of the map by the inverse of `trans` (z unchanged)."""
    trans_inv = np.linalg.inv(trans)
    for pt in lanelet_map.points.values():
        transform_pt(pt, trans_inv)
    logger.info("Transformed %d map points", len(lanelet_map.points))


def transform_ls(pline: PolylineLike, trans: np.ndarray) -> Curve:
    """Transformed copy of a polyline with new point ids (2D, z = 0)."""
    trans_inv = np.linalg.inv(trans)
    points = []
    for pt in _points_of(pline):
        x, y, _ = trans_inv @ np.array([pt.x, pt.y, 1.0])
        points.append(Point(get_id(), float(x), float(y), 0.0))
    return Curve(get_id(), points)


def get_intersection_nodes(plines: Iterable[PolylineLike]) -> List[Point]:
    """Points that occur more than once across the polylines, i.e. junctions of the street network."""
    seen = set()
    nodes: List[Point] = []
    node_ids = set()
    for pline in plines:
        for pt in _points_of(pline):
            if pt.id in seen:
                if pt.id not in node_ids:
                    node_ids.add(pt.id)
                    nodes.append(pt)
            else:
                seen.add(pt.id)
    return nodes
