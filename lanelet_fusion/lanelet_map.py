"""lanelet_map.py

In-memory lanelet map used by the fusion pipeline.

Primitives
----------
- Point: id, x/y/z coordinate, attributes. Equality and hashing by id.
- Curve: boundary linestring. Owns an ordered list of Points in *stored* order.
- CurveView: orientation-aware handle on a Curve. Two lanelets driving in
  opposite directions share one Curve, one of them through an inverted view;
  writing through a view updates the shared Curve for both.
- Lanelet: left/right CurveView plus attributes (subtype, location, speed_limit, ...).
- Area, RegulatoryElement, Polygon: carried through the pipeline untouched.

Layers of a LaneletMap are insertion-ordered dicts keyed by id, so iteration
order is the order elements were added (new lanelets created by splitting come last).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import networkx as nx
import numpy as np

logger = logging.getLogger(__name__)


class _IdGenerator:
    """Hands out ids that are unique across every primitive type."""

    def __init__(self, start: int = 1):
        self._next = start

    def next(self) -> int:
        value = self._next
        self._next += 1
        return value

    def register(self, used_id: int) -> None:
        if used_id >= self._next:
            self._next = used_id + 1


_ID_GENERATOR = _IdGenerator()


def get_id() -> int:
    """Return a fresh, unused primitive id."""
    return _ID_GENERATOR.next()


def register_id(used_id: int) -> None:
    """Mark an externally assigned id as used so get_id never returns it."""
    _ID_GENERATOR.register(used_id)


# -----------------------------------------------------------------------------
# Primitives
# -----------------------------------------------------------------------------


@dataclass(eq=False)
class Point:
    id: int
    x: float
    y: float
    z: float = 0.0
    attributes: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        register_id(self.id)

    @property
    def xyz(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    @property
    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Point) and other.id == self.id

    def __hash__(self) -> int:
        return hash(("Point", self.id))

    def __repr__(self) -> str:
        return f"Point(id={self.id}, x={self.x:.3f}, y={self.y:.3f}, z={self.z:.3f})"


@dataclass(eq=False)
class Curve:
    id: int
    points: List[Point]
    attributes: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        register_id(self.id)
        self.points = list(self.points)

    def view(self) -> "CurveView":
        return CurveView(self, False)

    def invert(self) -> "CurveView":
        return CurveView(self, True)

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self) -> str:
        return f"Curve(id={self.id}, points={[p.id for p in self.points]})"


class CurveView:
    """Curve seen in travel direction of its owner (stored order or reversed)."""

    __slots__ = ("curve", "inverted")

    def __init__(self, curve: Curve, inverted: bool = False):
        self.curve = curve
        self.inverted = inverted

    @property
    def id(self) -> int:
        return self.curve.id

    @property
    def attributes(self) -> Dict[str, str]:
        return self.curve.attributes

    @property
    def points(self) -> List[Point]:
        if self.inverted:
            return list(reversed(self.curve.points))
        return list(self.curve.points)

    def set_points(self, points: Sequence[Point]) -> None:
        """Replace the curve geometry; `points` are given in view order."""
        points = list(points)
        if self.inverted:
            points.reverse()
        self.curve.points = points

    def front(self) -> Point:
        return self.curve.points[-1] if self.inverted else self.curve.points[0]

    def back(self) -> Point:
        return self.curve.points[0] if self.inverted else self.curve.points[-1]

    def invert(self) -> "CurveView":
        return CurveView(self.curve, not self.inverted)

    def __len__(self) -> int:
        return len(self.curve.points)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, CurveView)
            and other.curve is self.curve
            and other.inverted == self.inverted
        )

    def __hash__(self) -> int:
        return hash((self.curve.id, self.inverted))

    def __repr__(self) -> str:
        return f"CurveView(id={self.id}, inverted={self.inverted})"


CurveLike = Union[Curve, CurveView]


def as_view(curve: CurveLike) -> CurveView:
    if isinstance(curve, CurveView):
        return curve
    return curve.view()


class Lanelet:
    def __init__(
        self,
        id: int,
        left: CurveLike,
        right: CurveLike,
        attributes: Optional[Dict[str, str]] = None,
    ):
        left = as_view(left)
        right = as_view(right)
        if len(left) < 2 or len(right) < 2:
            raise ValueError(
                f"Lanelet {id} needs bounds with at least two points "
                f"(left={len(left)}, right={len(right)})"
            )
        register_id(id)
        self.id = id
        self.left = left
        self.right = right
        self.attributes: Dict[str, str] = dict(attributes or {})

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Lanelet) and other.id == self.id

    def __hash__(self) -> int:
        return hash(("Lanelet", self.id))

    def __repr__(self) -> str:
        return f"Lanelet(id={self.id}, left={self.left!r}, right={self.right!r})"


@dataclass(eq=False)
class Area:
    id: int
    outer: List[CurveView]
    attributes: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        register_id(self.id)
        self.outer = [as_view(c) for c in self.outer]


@dataclass(eq=False)
class RegulatoryElement:
    id: int
    parameters: Dict[str, List[Any]] = field(default_factory=dict)
    attributes: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        register_id(self.id)


@dataclass(eq=False)
class Polygon:
    id: int
    points: List[Point]
    attributes: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        register_id(self.id)


# -----------------------------------------------------------------------------
# Map
# -----------------------------------------------------------------------------


class LaneletMap:
    """Layers of primitives keyed by id.

    Adding a lanelet/area/polygon also registers the curves and points it references,
    so the point and linestring layers always cover the reachable geometry.
    """

    def __init__(self):
        self.points: Dict[int, Point] = {}
        self.linestrings: Dict[int, Curve] = {}
        self.lanelets: Dict[int, Lanelet] = {}
        self.areas: Dict[int, Area] = {}
        self.regulatory_elements: Dict[int, RegulatoryElement] = {}
        self.polygons: Dict[int, Polygon] = {}

    def add(self, element) -> None:
        if isinstance(element, Lanelet):
            self._add_curve(element.left.curve)
            self._add_curve(element.right.curve)
            self.lanelets[element.id] = element
        elif isinstance(element, (Curve, CurveView)):
            self._add_curve(as_view(element).curve)
        elif isinstance(element, Point):
            self.points[element.id] = element
        elif isinstance(element, Area):
            for view in element.outer:
                self._add_curve(view.curve)
            self.areas[element.id] = element
        elif isinstance(element, RegulatoryElement):
            self.regulatory_elements[element.id] = element
        elif isinstance(element, Polygon):
            for pt in element.points:
                self.points[pt.id] = pt
            self.polygons[element.id] = element
        else:
            raise TypeError(f"Cannot add {type(element).__name__} to a LaneletMap")

    def add_all(self, elements: Iterable) -> None:
        for element in elements:
            self.add(element)

    def _add_curve(self, curve: Curve) -> None:
        self.linestrings[curve.id] = curve
        for pt in curve.points:
            self.points[pt.id] = pt

    def find_lanelet(self, lanelet_id: int) -> Optional[Lanelet]:
        ll = self.lanelets.get(lanelet_id)
        if ll is None:
            logger.error("Couldn't find lanelet for id %s", lanelet_id)
        return ll

    @property
    def lanelet_layer(self) -> List[Lanelet]:
        return list(self.lanelets.values())

    def __len__(self) -> int:
        return len(self.lanelets)

    def __repr__(self) -> str:
        return (
            f"LaneletMap(points={len(self.points)}, linestrings={len(self.linestrings)}, "
            f"lanelets={len(self.lanelets)}, areas={len(self.areas)}, "
            f"regulatory_elements={len(self.regulatory_elements)}, polygons={len(self.polygons)})"
        )


# -----------------------------------------------------------------------------
# Topology
# -----------------------------------------------------------------------------


def follows(prev: Lanelet, nxt: Lanelet) -> bool:
    """True if `nxt` directly continues `prev` (both bounds share the joint points)."""
    return (
        prev.left.back() == nxt.left.front()
        and prev.right.back() == nxt.right.front()
    )


def successor_graph(lanelet_map: LaneletMap) -> nx.DiGraph:
    """Directed graph over all lanelet ids with an edge prev -> next for every `follows` pair."""
    G = nx.DiGraph()
    by_front: Dict[Tuple[int, int], List[int]] = {}
    for ll in lanelet_map.lanelets.values():
        G.add_node(ll.id)
        by_front.setdefault((ll.left.front().id, ll.right.front().id), []).append(ll.id)

    for ll in lanelet_map.lanelets.values():
        for succ_id in by_front.get((ll.left.back().id, ll.right.back().id), []):
            if succ_id != ll.id:
                G.add_edge(ll.id, succ_id)
    return G


def is_lonely(G: nx.DiGraph, lanelet_id: int) -> bool:
    """Neither predecessor nor successor among the other lanelets of the graph."""
    if lanelet_id not in G:
        return True
    return G.in_degree(lanelet_id) == 0 and G.out_degree(lanelet_id) == 0
