"""Interaction controller for archmap.

Translates pointer, wheel, filter and simulation input into engine state.
The controller owns the only mutable UI state, the ``ViewState`` (viewport,
pointer mode, drag anchors), and the engine components that hang off the
map: the path builder, the visibility filter and the animator.

Pointer protocol (screen coordinates throughout):

    pointer_down(x, y)  - press; hit-tests unless a target is supplied
    pointer_move(x, y)  - pans the canvas or drags the pressed node
    pointer_up(x, y)    - release; a press that travelled less than the
                          click threshold inspects the pressed node

Everything observable is reported through ``subscribe``d listeners as
events from ``archmap.events``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .config import DEFAULT_CONFIG, EngineConfig
from .events import Event, LayerToggled, NodeMoved, VisualDiff, path_entity
from .geometry import Point, Viewport, node_center, node_rect, node_screen_rect
from .layers import LayerVisibilityFilter
from .models import ArchitectureMap
from .paths import ConnectionPathBuilder
from .simulation import SimulationAnimator

logger = logging.getLogger(__name__)


class PointerMode(str, Enum):
    IDLE = "idle"
    PANNING = "panning"
    NODE_PRESSED = "node_pressed"
    DRAGGING_NODE = "dragging_node"


@dataclass(frozen=True)
class HitTarget:
    kind: str  # "node", "connector" or "background"
    node_id: Optional[str] = None
    path_index: Optional[int] = None


BACKGROUND = HitTarget("background")


@dataclass
class ViewState:
    """Mutable UI state, written only by the controller."""
    viewport: Viewport
    mode: PointerMode = PointerMode.IDLE
    active_node: Optional[str] = None
    press: Point = Point(0.0, 0.0)
    last: Point = Point(0.0, 0.0)
    pan_anchor: Point = Point(0.0, 0.0)
    node_start: Point = Point(0.0, 0.0)
    travel: float = 0.0
    inspection: Optional[dict] = field(default=None)


class InteractionController:
    """Single owner of the viewport, the pointer state and the animator."""

    def __init__(self, arch_map: ArchitectureMap, config: EngineConfig = DEFAULT_CONFIG):
        self.arch_map = arch_map
        self.config = config
        self.builder = ConnectionPathBuilder(arch_map, config)
        self.visibility = LayerVisibilityFilter(arch_map.layers)
        self.animator = SimulationAnimator(self.builder, self.visibility, config, emit=self._emit)
        self.state = ViewState(viewport=Viewport.from_config(config))
        self._listeners: list[Callable[[Event], None]] = []

    # --- Events ---

    def subscribe(self, listener: Callable[[Event], None]) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: Event) -> None:
        for listener in list(self._listeners):
            listener(event)

    @property
    def viewport(self) -> Viewport:
        return self.state.viewport

    @property
    def inspection(self) -> Optional[dict]:
        return self.state.inspection

    # --- Hit testing ---

    def hit_test(self, x: float, y: float) -> HitTarget:
        """What lies under a screen point: a node, a visible connector, or
        the background.  Later nodes are on top of earlier ones."""
        local = self.viewport.screen_to_local(Point(x, y))
        for node in reversed(self.arch_map.nodes):
            if node_rect(node).contains(local):
                return HitTarget("node", node_id=node.id)

        # Hit widths are in screen pixels
        for path in reversed(list(self.builder)):
            if not self.visibility.is_visible(path.connection):
                continue
            reach = path.hit_width / 2 / self.viewport.scale
            if path.arc.distance_to(local) <= reach:
                return HitTarget("connector", path_index=path.index)
        return BACKGROUND

    # --- Pointer ---

    def pointer_down(self, x: float, y: float, target: Optional[HitTarget] = None) -> HitTarget:
        target = target or self.hit_test(x, y)
        state = self.state
        state.press = Point(x, y)
        state.last = Point(x, y)
        state.travel = 0.0

        if target.kind == "node":
            node = self.arch_map.get_node(target.node_id)
            if node is None:
                return BACKGROUND
            state.active_node = node.id
            state.node_start = Point(node.x, node.y)
            state.inspection = None
            if self.animator.is_running:
                # No drags while a simulation owns the highlights
                logger.debug(f"Drag of '{node.id}' refused: simulation in flight")
                state.mode = PointerMode.NODE_PRESSED
            else:
                state.mode = PointerMode.DRAGGING_NODE
        elif target.kind == "connector":
            state.mode = PointerMode.IDLE
            state.inspection = self.inspect_connection(target.path_index)
        else:
            state.mode = PointerMode.PANNING
            vp = self.viewport
            state.pan_anchor = Point(x - vp.pan_x, y - vp.pan_y)
        return target

    def pointer_move(self, x: float, y: float) -> None:
        state = self.state
        if state.mode is PointerMode.IDLE:
            return
        state.travel += math.hypot(x - state.last.x, y - state.last.y)
        state.last = Point(x, y)

        if state.mode is PointerMode.PANNING:
            self.viewport.set_pan(x - state.pan_anchor.x, y - state.pan_anchor.y)
        elif state.mode is PointerMode.DRAGGING_NODE:
            # Geometry lives in local units
            scale = self.viewport.scale
            dx = (x - state.press.x) / scale
            dy = (y - state.press.y) / scale
            self.move_node(state.active_node, state.node_start.x + dx, state.node_start.y + dy)

    def pointer_up(self, x: float, y: float) -> Optional[dict]:
        """End the gesture.  Returns the inspection record when the gesture
        was a click on a node."""
        state = self.state
        if (x, y) != tuple(state.last):
            self.pointer_move(x, y)
        inspected = None
        if state.mode in (PointerMode.NODE_PRESSED, PointerMode.DRAGGING_NODE):
            if state.travel < self.config.click_threshold:
                inspected = self.inspect_node(state.active_node)
                state.inspection = inspected
        state.mode = PointerMode.IDLE
        state.active_node = None
        return inspected

    def wheel(self, delta: float) -> float:
        return self.viewport.zoom(delta, self.config.zoom_sensitivity)

    # --- Nodes ---

    def move_node(self, node_id: str, x: float, y: float) -> bool:
        """Place a node at a local position and re-route its connectors."""
        node = self.arch_map.get_node(node_id)
        if node is None:
            return False
        node.x = x
        node.y = y
        self.builder.rebuild_for_node(node_id)
        self._emit(NodeMoved(node_id, x, y))
        return True

    def focus_node(self, node_id: str, viewport_width: float, viewport_height: float) -> bool:
        node = self.arch_map.get_node(node_id)
        if node is None:
            return False
        self.viewport.center_on(node_center(node), viewport_width, viewport_height)
        return True

    # --- Layers ---

    def visibility_map(self) -> dict[int, bool]:
        return {path.index: self.visibility.is_visible(path.connection) for path in self.builder}

    def _refilter(self, change: Callable[[], None]) -> None:
        before = self.visibility_map()
        change()
        for index, visible in self.visibility_map().items():
            if before.get(index) != visible:
                self._emit(VisualDiff(path_entity(index), visible=visible))

    def toggle_layer(self, layer_id: str) -> bool:
        if layer_id not in self.visibility.universe:
            logger.warning(f"Unknown layer '{layer_id}'")
            return False
        result = []
        self._refilter(lambda: result.append(self.visibility.toggle(layer_id)))
        self._emit(LayerToggled(layer_id, result[0]))
        return result[0]

    def reset_layers(self) -> None:
        newly_active = sorted(self.visibility.universe - self.visibility.active)
        self._refilter(self.visibility.reset_all)
        for layer_id in newly_active:
            self._emit(LayerToggled(layer_id, True))

    def preview_layer(self, tag: str) -> None:
        self._refilter(lambda: self.visibility.preview(tag))

    def clear_preview(self) -> None:
        self._refilter(self.visibility.clear_preview)

    # --- Simulation ---

    def run_simulation(self, simulation_id: str) -> bool:
        simulation = self.arch_map.get_simulation(simulation_id)
        if simulation is None:
            logger.info(f"Unknown simulation '{simulation_id}'")
            return False
        self.animator.start(simulation)
        return True

    def cancel_simulation(self) -> None:
        self.animator.cancel()

    def tick(self, dt: float) -> bool:
        """Advance the animation one frame.  Returns whether a run is still
        in flight afterwards."""
        self.animator.step(dt)
        return self.animator.is_running

    # --- Inspection ---

    def inspect_node(self, node_id: str) -> Optional[dict]:
        node = self.arch_map.get_node(node_id)
        if node is None:
            return None
        doc = self.arch_map.documentation.get(node.type)
        return {
            "kind": "node",
            "id": node.id,
            "title": node.get_label(),
            "type": node.type,
            "role": doc.role if doc else "",
            "blocks": [b.model_dump() for b in doc.blocks] if doc else [],
        }

    def inspect_connection(self, index: int) -> Optional[dict]:
        path = self.builder.get(index)
        if path is None:
            return None
        conn = path.connection
        return {
            "kind": "connection",
            "index": index,
            "title": conn.label,
            "role": "Connection Detail",
            "detail": conn.detail,
            "color": path.color,
            "from": conn.from_id,
            "to": conn.to_id,
        }

    # --- Scene ---

    def scene(self) -> dict:
        """Snapshot of everything a renderer needs for one frame."""
        vp = self.viewport
        highlighted_nodes = self.animator.highlighted_nodes
        highlighted_paths = self.animator.highlighted_paths
        marker = self.animator.marker_position()

        return {
            "title": self.arch_map.title,
            "viewport": vp.to_dict(),
            "transform": vp.css_transform(),
            "matrix": list(vp.matrix()),
            "sites": [site.model_dump() for site in self.arch_map.sites],
            "nodes": [
                {
                    "id": node.id,
                    "type": node.type,
                    "label": node.get_label(),
                    "sub": node.sub,
                    "rect": list(node_rect(node)),
                    "screen_rect": list(node_screen_rect(node, vp)),
                    "highlighted": node.id in highlighted_nodes,
                }
                for node in self.arch_map.nodes
            ],
            "connections": [
                dict(
                    path.to_dict(),
                    visible=self.visibility.is_visible(path.connection),
                    highlighted=path.index in highlighted_paths,
                )
                for path in self.builder
            ],
            "marker": list(marker) if marker else None,
            "marker_screen": list(vp.local_to_screen(marker)) if marker else None,
            "simulation": {
                "state": self.animator.state,
                "id": self.animator.run.simulation_id if self.animator.run else None,
            },
            "active_layers": sorted(self.visibility.active),
            "preview": self.visibility.preview_tag,
        }
