import logging
import math

import numpy as np
import pytest

from lanelet_fusion.constants import FusionConfig
from lanelet_fusion.lanelet_map import LaneletMap, Point, get_id
from lanelet_fusion.map_transformation.align import (
    get_intersection_nodes,
    get_transformation,
    ls2interp_mat2d,
    point_transformation_icp,
    point_transformation_umeyama,
    transform_ls,
    transform_map,
    umeyama,
)

ALIGN_LOGGER = "lanelet_fusion.map_transformation.align"


def _rigid(theta_deg, tx, ty):
    t = math.radians(theta_deg)
    return np.array(
        [
            [math.cos(t), -math.sin(t), tx],
            [math.sin(t), math.cos(t), ty],
            [0.0, 0.0, 1.0],
        ]
    )


def _moved(pts, trans):
    out = []
    for p in pts:
        x, y, _ = trans @ np.array([p.x, p.y, 1.0])
        out.append(Point(get_id(), x, y))
    return out


@pytest.fixture
def l_shape(points):
    """Non-symmetric L with vertices 1 m apart."""
    coords = [(float(x), 0.0) for x in range(11)] + [(0.0, float(y)) for y in range(1, 7)]
    return points(coords)


def test_interpolation_is_equally_spaced(points):
    mat = ls2interp_mat2d(points([(0, 0), (10, 0), (10, 10)]), 5)
    assert mat.shape == (2, 5)
    np.testing.assert_allclose(mat[:, 0], [0, 0])
    np.testing.assert_allclose(mat[:, 2], [10, 0])
    np.testing.assert_allclose(mat[:, -1], [10, 10])


def test_umeyama_with_scaling():
    src = np.array([[0.0, 4.0, 4.0, 1.0], [0.0, 0.0, 3.0, 5.0]])
    expected = _rigid(40, 2.0, 1.0)
    expected[:2, :2] *= 2.0
    dst = expected[:2, :2] @ src + expected[:2, 2:]
    np.testing.assert_allclose(umeyama(src, dst, with_scaling=True), expected, atol=1e-9)


def test_umeyama_recovers_rigid_transform(points, caplog):
    src = points([(0, 0), (20, 0), (20, 15), (35, 20)])
    expected = _rigid(30, 5.0, -3.0)
    target = _moved(src, expected)

    with caplog.at_level(logging.WARNING, logger=ALIGN_LOGGER):
        trans = point_transformation_umeyama(src, target)

    np.testing.assert_allclose(trans, expected, atol=1e-6)
    assert "High scaling factor" not in caplog.text


def test_umeyama_warns_about_scaling(points, caplog):
    src = points([(0, 0), (20, 0), (20, 15)])
    target = [Point(get_id(), 0.5 * p.x, 0.5 * p.y) for p in src]

    with caplog.at_level(logging.WARNING, logger=ALIGN_LOGGER):
        trans = point_transformation_umeyama(src, target)

    assert "High scaling factor" in caplog.text
    # a rigid transform is returned anyway
    np.testing.assert_allclose(trans[:2, :2] @ trans[:2, :2].T, np.eye(2), atol=1e-9)


def test_icp_recovers_small_offset(l_shape):
    expected = _rigid(0.5, 0.1, -0.05)
    target = _moved(l_shape, expected)

    trans, converged = point_transformation_icp(l_shape, target)

    assert converged
    np.testing.assert_allclose(trans, expected, atol=1e-6)


def test_get_transformation_dispatches_on_method(l_shape):
    expected = _rigid(0.5, 0.1, -0.05)
    target = _moved(l_shape, expected)
    config = FusionConfig(align_method="ICP")

    trans = get_transformation(l_shape, target, config=config)

    np.testing.assert_allclose(trans, expected, atol=1e-6)


def test_unsupported_method(l_shape, caplog):
    with caplog.at_level(logging.ERROR, logger=ALIGN_LOGGER):
        assert get_transformation(l_shape, l_shape, method="NDT") is None
    assert "not supported" in caplog.text


def test_transform_map_applies_inverse(points):
    pts = points([(6, 1, 3), (10, 1, 4)])
    lanelet_map = LaneletMap()
    lanelet_map.add_all(pts)

    transform_map(lanelet_map, _rigid(0, 5.0, 0.0))

    assert [(p.x, p.y, p.z) for p in pts] == [
        pytest.approx((1, 1, 3)),
        pytest.approx((5, 1, 4)),
    ]


def test_transform_ls_copies_points(curve):
    c = curve([(0, 0, 7), (0, 10, 7)])
    moved = transform_ls(c, _rigid(90, 0.0, 0.0))

    assert moved.id != c.id
    assert {p.id for p in moved.points}.isdisjoint({p.id for p in c.points})
    assert [(p.x, p.y, p.z) for p in moved.points] == [
        pytest.approx((0, 0, 0)),
        pytest.approx((10, 0, 0)),
    ]
    assert [(p.x, p.y) for p in c.points] == [(0, 0), (0, 10)]


def test_get_intersection_nodes(points):
    a, b, c, d, e = points([(0, 0), (10, 0), (20, 0), (10, 10), (10, -10)])
    nodes = get_intersection_nodes([[a, b], [b, c], [b, d], [d, e]])
    assert nodes == [b, d]
