"""Connector path construction for archmap.

Each renderable connection becomes a ``PathDescriptor``: a cubic bezier from
an anchor on the ``from`` node's boundary to an anchor on the ``to`` node's
boundary.  Control points sit on the midline between the anchors and are
pushed sideways by the connection's curve offset, giving a single-bend S/C
curve.

Connections that share an endpoint pair and declare no ``curve`` are spread
into a bundle centered on the straight line:

    offset(k) = spacing * (k - (N - 1) / 2)

for the k-th sibling (declaration order) of N.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .config import DEFAULT_CONFIG, EngineConfig
from .geometry import ArcLengthTable, Point, edge_point, node_center
from .models import ArchitectureMap, Connection

logger = logging.getLogger(__name__)


def compute_curve_offsets(
    connections: Iterable[tuple[int, Connection]],
    spacing: float = DEFAULT_CONFIG.curve_spacing,
) -> dict[int, float]:
    """Map declaration index -> curve offset.

    Connections with an explicit ``curve`` keep it and are left out of the
    sibling groups; the others are grouped by unordered endpoint pair.
    """
    offsets: dict[int, float] = {}
    groups: dict[frozenset[str], list[int]] = {}

    for index, conn in connections:
        if conn.curve is not None:
            offsets[index] = conn.curve
        else:
            groups.setdefault(conn.endpoint_key(), []).append(index)

    for members in groups.values():
        n = len(members)
        for k, index in enumerate(sorted(members)):
            offsets[index] = spacing * (k - (n - 1) / 2)

    return offsets


@dataclass
class PathDescriptor:
    """Resolved geometry of one connector, in local coordinates.

    The stored parametrization always runs start (``from`` side) to end
    (``to`` side).  ``hit_d`` shares the exact geometry of ``d`` and is meant
    to be stroked ``hit_width`` wide, invisibly, for pointer interaction.
    """
    index: int
    connection: Connection
    start: Point
    cp1: Point
    cp2: Point
    end: Point
    curve: float
    horizontal: bool
    color: str
    width: float = DEFAULT_CONFIG.stroke_width
    hit_width: float = DEFAULT_CONFIG.hit_stroke_width
    samples: int = DEFAULT_CONFIG.bezier_samples
    _table: Optional[ArcLengthTable] = field(default=None, init=False, repr=False, compare=False)

    @property
    def from_id(self) -> str:
        return self.connection.from_id

    @property
    def to_id(self) -> str:
        return self.connection.to_id

    @property
    def dash(self) -> bool:
        return self.connection.dash

    @property
    def tags(self) -> tuple[str, ...]:
        return self.connection.tags()

    @property
    def d(self) -> str:
        return (
            f"M {self.start.x} {self.start.y} "
            f"C {self.cp1.x} {self.cp1.y}, {self.cp2.x} {self.cp2.y}, {self.end.x} {self.end.y}"
        )

    @property
    def hit_d(self) -> str:
        return self.d

    @property
    def arc(self) -> ArcLengthTable:
        if self._table is None:
            self._table = ArcLengthTable(self.start, self.cp1, self.cp2, self.end, self.samples)
        return self._table

    @property
    def length(self) -> float:
        return self.arc.total_length

    def point_at(self, fraction: float, reverse: bool = False) -> Point:
        return self.arc.point_at_fraction(fraction, reverse=reverse)

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "from": self.from_id,
            "to": self.to_id,
            "type": self.connection.type,
            "tags": list(self.tags),
            "start": list(self.start),
            "cp1": list(self.cp1),
            "cp2": list(self.cp2),
            "end": list(self.end),
            "curve": self.curve,
            "d": self.d,
            "hit_d": self.hit_d,
            "color": self.color,
            "dash": self.dash,
            "width": self.width,
            "hit_width": self.hit_width,
        }


def build_path(
    index: int,
    conn: Connection,
    arch_map: ArchitectureMap,
    curve: float,
    config: EngineConfig = DEFAULT_CONFIG,
) -> PathDescriptor:
    """Build the bezier for one connection whose endpoints both exist."""
    source = arch_map.get_node(conn.from_id)
    target = arch_map.get_node(conn.to_id)

    p1 = edge_point(source, node_center(target))
    p2 = edge_point(target, node_center(source))

    horizontal = abs(p2.x - p1.x) > abs(p2.y - p1.y)
    if horizontal:
        mid_x = p1.x + (p2.x - p1.x) / 2
        cp1 = Point(mid_x, p1.y + curve)
        cp2 = Point(mid_x, p2.y + curve)
    else:
        mid_y = p1.y + (p2.y - p1.y) / 2
        cp1 = Point(p1.x + curve, mid_y)
        cp2 = Point(p2.x + curve, mid_y)

    return PathDescriptor(
        index=index,
        connection=conn,
        start=p1,
        cp1=cp1,
        cp2=cp2,
        end=p2,
        curve=curve,
        horizontal=horizontal,
        color=arch_map.connection_color(conn),
        width=config.stroke_width,
        hit_width=config.hit_stroke_width,
        samples=config.bezier_samples,
    )


class ConnectionPathBuilder:
    """Owns the path descriptors of one map.

    ``build_all`` resolves every renderable connection; ``rebuild_for_node``
    refreshes only the connectors touching a moved node.  Curve offsets
    depend on declaration order alone, so they are computed once.
    """

    def __init__(self, arch_map: ArchitectureMap, config: EngineConfig = DEFAULT_CONFIG):
        self.arch_map = arch_map
        self.config = config
        self.paths: dict[int, PathDescriptor] = {}
        self._offsets: dict[int, float] = {}
        self._by_node: dict[str, list[int]] = {}
        self.build_all()

    def build_all(self) -> dict[int, PathDescriptor]:
        renderable = self.arch_map.renderable_connections()
        self._offsets = compute_curve_offsets(renderable, self.config.curve_spacing)
        self._by_node = {}
        self.paths = {}
        for index, conn in renderable:
            self.paths[index] = build_path(index, conn, self.arch_map, self._offsets[index], self.config)
            self._by_node.setdefault(conn.from_id, []).append(index)
            if conn.to_id != conn.from_id:
                self._by_node.setdefault(conn.to_id, []).append(index)
        logger.debug(f"Built {len(self.paths)} connector paths")
        return self.paths

    def rebuild_for_node(self, node_id: str) -> list[int]:
        """Re-resolve the paths touching ``node_id``; returns their indices."""
        touched = self._by_node.get(node_id, [])
        for index in touched:
            conn = self.paths[index].connection
            self.paths[index] = build_path(index, conn, self.arch_map, self._offsets[index], self.config)
        return list(touched)

    def get(self, index: int) -> Optional[PathDescriptor]:
        return self.paths.get(index)

    def curve_offset(self, index: int) -> Optional[float]:
        return self._offsets.get(index)

    def touching(self, node_id: str) -> list[int]:
        return list(self._by_node.get(node_id, []))

    def find_between(self, a: str, b: str) -> Optional[PathDescriptor]:
        """First path (declaration order) joining the unordered pair {a, b}."""
        for index in sorted(self._by_node.get(a, [])):
            path = self.paths[index]
            if path.connection.joins(a, b):
                return path
        return None

    def __iter__(self):
        return iter(self.paths[i] for i in sorted(self.paths))

    def __len__(self) -> int:
        return len(self.paths)
