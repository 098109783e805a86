"""Events emitted by the archmap engine.

The engine never touches a rendering surface.  It reports what happened as
these small immutable records; a renderer (or a server streaming to one)
applies them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class NodeMoved:
    node_id: str
    x: float
    y: float


@dataclass(frozen=True)
class LayerToggled:
    layer_id: str
    active: bool


@dataclass(frozen=True)
class SimulationStarted:
    simulation_id: str


@dataclass(frozen=True)
class SimulationHopStarted:
    from_id: str
    to_id: str
    path_index: int
    reverse: bool


@dataclass(frozen=True)
class SimulationHopSkipped:
    from_id: str
    to_id: str
    reason: str  # "missing" or "hidden"


@dataclass(frozen=True)
class SimulationFinished:
    simulation_id: str
    cancelled: bool = False


@dataclass(frozen=True)
class VisualDiff:
    """Declarative change to one entity's visual state.

    ``entity_id`` is a node id or ``"path:<index>"`` for a connector.  A
    ``None`` field is unchanged.
    """
    entity_id: str
    visible: Optional[bool] = None
    highlighted: Optional[bool] = None


Event = Union[
    NodeMoved,
    LayerToggled,
    SimulationStarted,
    SimulationHopStarted,
    SimulationHopSkipped,
    SimulationFinished,
    VisualDiff,
]


def path_entity(index: int) -> str:
    return f"path:{index}"


def event_to_dict(event: Event) -> dict:
    """JSON-friendly form, tagged with the event class name."""
    data = asdict(event)
    data["event"] = type(event).__name__
    return data
