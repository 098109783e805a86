"""
Data models for archmap - the architecture map records.

An architecture map is a flat collection of records loaded once from a
static configuration document:

    ArchitectureMap
    ├── Site        - a background grouping rectangle (e.g. a data center)
    ├── Node        - a rectangular box on the canvas (server, service, ...)
    ├── Connection  - a connector between two nodes, tagged with a layer
    ├── Layer       - a protocol/layer used for filtering and coloring
    └── Simulation  - an ordered route of node ids a marker travels along

Node type metadata (``nodeTypes``) and per-type documentation
(``documentation``) are carried for the inspector panels that consume a node
record; the geometry engine never reads them.

Keys follow the camelCase spelling of the configuration files (``isWan``,
``nodeTypes``, ``iconColor``); every field can also be populated by its
Python name.

Node sizes are authoritative data.  Nothing is measured from a rendered
element, so every piece of geometry can be computed without a display.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_NODE_WIDTH = 200.0
DEFAULT_NODE_HEIGHT = 90.0
DEFAULT_CONNECTION_COLOR = "#ffffff"

# Secondary tag carried by wide-area connections.
WAN_TAG = "wan"


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Display metadata
# ---------------------------------------------------------------------------

class NodeType(_Record):
    """Visual defaults shared by every node of one type.

    Attributes:
        icon:         Icon name (font-awesome class or literal text).
        icon_color:   Icon foreground color.
        icon_bg:      Icon background color.
        header_bg:    Header strip background color.
        header_color: Header text color.
        style:        Border style hint ("dashed", "border-left").
    """
    icon: str = ""
    icon_color: Optional[str] = Field(default=None, alias="iconColor")
    icon_bg: Optional[str] = Field(default=None, alias="iconBg")
    header_bg: Optional[str] = Field(default=None, alias="headerBg")
    header_color: Optional[str] = Field(default=None, alias="headerColor")
    style: Optional[str] = None


class DocBlock(_Record):
    title: str
    content: str = ""


class NodeDoc(_Record):
    """Inspector documentation for one node type."""
    role: str = ""
    blocks: list[DocBlock] = Field(default_factory=list)


class Site(_Record):
    """A labelled background rectangle grouping nodes visually."""
    id: str
    label: str = ""
    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------

class Node(_Record):
    """A rectangular box on the canvas.

    ``x``/``y`` is the top-left corner in local (canvas) coordinates and is
    the only field that changes after load (node drag).  ``width`` and
    ``height`` may be given as ``w``/``h`` in the configuration.
    """
    id: str
    type: str = "default"
    x: float = 0.0
    y: float = 0.0
    width: float = Field(
        default=DEFAULT_NODE_WIDTH,
        validation_alias=AliasChoices("width", "w"),
    )
    height: float = Field(
        default=DEFAULT_NODE_HEIGHT,
        validation_alias=AliasChoices("height", "h"),
    )
    label: Optional[str] = None
    sub: str = ""
    tag: Optional[str] = None
    tag_class: Optional[str] = Field(default=None, alias="tagClass")
    icon: Optional[str] = None
    icon_color: Optional[str] = Field(default=None, alias="iconColor")
    icon_bg: Optional[str] = Field(default=None, alias="iconBg")

    def get_label(self) -> str:
        """Return ``label`` if set, otherwise the id."""
        return self.label if self.label else self.id


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------

class Connection(_Record):
    """A connector between two nodes.

    The endpoints form an unordered pair: ``from``/``to`` only fixes the
    direction of the stored path parametrization, never the meaning of the
    connection.

    Tags
    ----
    ``type`` is the primary layer tag.  ``isWan`` adds the secondary ``wan``
    tag; such a connection is only visible when both tags are active.

    Curve
    -----
    ``curve`` is an explicit perpendicular offset for the bezier control
    points.  When omitted the offset is derived from the connection's
    siblings sharing the same endpoint pair.
    """
    from_id: str = Field(alias="from")
    to_id: str = Field(alias="to")
    type: str = "default"
    color: Optional[str] = None
    curve: Optional[float] = None
    dash: bool = False
    is_wan: bool = Field(default=False, alias="isWan")
    label: str = ""
    detail: str = ""

    def tags(self) -> tuple[str, ...]:
        """Every layer tag this connection carries."""
        if self.is_wan:
            return (self.type, WAN_TAG)
        return (self.type,)

    def endpoint_key(self) -> frozenset[str]:
        """Unordered endpoint pair, shared by every sibling connection."""
        return frozenset((self.from_id, self.to_id))

    def joins(self, a: str, b: str) -> bool:
        return self.endpoint_key() == frozenset((a, b))


# ---------------------------------------------------------------------------
# Layers and simulations
# ---------------------------------------------------------------------------

class Layer(_Record):
    """A filterable protocol/layer.

    Attributes:
        id:     Tag carried by connections.
        label:  Display name for the filter button.
        color:  Default stroke color for connections of this layer.
        active: Whether the layer starts in the active set.
        group:  Optional button group ("infra" layers are listed apart).
    """
    id: str
    label: str = ""
    color: str = DEFAULT_CONNECTION_COLOR
    active: bool = True
    group: Optional[str] = None

    def get_label(self) -> str:
        return self.label if self.label else self.id


class Simulation(_Record):
    """A scripted route; the marker travels each consecutive hop in order."""
    id: str
    label: str = ""
    icon: str = ""
    nodes: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# ArchitectureMap (Root)
# ---------------------------------------------------------------------------

class ArchitectureMap(_Record):
    """The root record: a complete diagram.

    The map owns every record for its lifetime.  It keeps a ``_node_map``
    for O(1) lookup by id; use ``get_node(id)`` for lookups and
    ``renderable_connections()`` for the connections whose endpoints both
    exist.

    ``layers`` may also be given as ``protocols``.
    """
    title: str = "Architecture Map"
    sites: list[Site] = Field(default_factory=list)
    node_types: dict[str, NodeType] = Field(default_factory=dict, alias="nodeTypes")
    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    layers: list[Layer] = Field(
        default_factory=list,
        validation_alias=AliasChoices("layers", "protocols"),
    )
    simulations: list[Simulation] = Field(default_factory=list)
    documentation: dict[str, NodeDoc] = Field(default_factory=dict)

    _node_map: dict[str, Node] = {}

    def model_post_init(self, __context):
        """Build lookup maps and drop routes too short to animate."""
        self._node_map = {node.id: node for node in self.nodes}

        routes = []
        for sim in self.simulations:
            if len(sim.nodes) < 2:
                logger.warning(f"Skipping simulation '{sim.id}': route needs at least two nodes")
                continue
            routes.append(sim)
        self.simulations = routes

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._node_map.get(node_id)

    def get_layer(self, layer_id: str) -> Optional[Layer]:
        for layer in self.layers:
            if layer.id == layer_id:
                return layer
        return None

    def get_simulation(self, simulation_id: str) -> Optional[Simulation]:
        for sim in self.simulations:
            if sim.id == simulation_id:
                return sim
        return None

    def layer_ids(self) -> set[str]:
        """The universe of declared layer ids."""
        return {layer.id for layer in self.layers}

    def connection_color(self, conn: Connection) -> str:
        """Resolve a connection's stroke color.

        An explicit ``color`` wins, then the color of the layer named by
        ``type``, then white.
        """
        if conn.color:
            return conn.color
        layer = self.get_layer(conn.type)
        return layer.color if layer else DEFAULT_CONNECTION_COLOR

    def renderable_connections(self) -> list[tuple[int, Connection]]:
        """Return (declaration index, connection) for every connection whose
        endpoints both reference existing nodes.

        Dangling connections are skipped; the rest of the map is unaffected.
        """
        result = []
        for index, conn in enumerate(self.connections):
            if conn.from_id not in self._node_map or conn.to_id not in self._node_map:
                logger.warning(
                    f"Skipping connection #{index} {conn.from_id} -> {conn.to_id}: unknown node"
                )
                continue
            result.append((index, conn))
        return result
