"""
Simulation animator for archmap.

A simulation walks an ordered route of node ids.  Each consecutive pair is a
*hop*; the marker travels the connector joining the pair, one hop after
another, then the run lingers for a settle delay before its highlights are
cleared.

State machine
-------------

    IDLE ──start──> TRAVERSING(hop, progress) ──progress>=1──> next hop ...
                          │                                        │
                          └──────────── no hops left ──────────────┘
                                              │
                                          SETTLING ──settle_delay──> DONE ──> IDLE

A hop whose connector is missing or currently hidden is skipped without
animation; the run moves on to the next hop in the same tick.

Progress is frame coupled: every tick adds ``progress_step`` regardless of
``dt``.  ``dt`` only feeds the settle timer.  The marker position is sampled
by arc length, so it moves at constant speed along curved connectors.

The tick itself is the pure function ``advance``; ``SimulationAnimator``
binds it to live geometry and visibility and turns its results into events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from .config import DEFAULT_CONFIG, EngineConfig
from .events import (
    Event,
    SimulationFinished,
    SimulationHopSkipped,
    SimulationHopStarted,
    SimulationStarted,
    VisualDiff,
    path_entity,
)
from .geometry import Point, distance, node_center
from .layers import LayerVisibilityFilter
from .models import Simulation
from .paths import ConnectionPathBuilder

logger = logging.getLogger(__name__)


class RunPhase(str, Enum):
    TRAVERSING = "traversing"
    SETTLING = "settling"
    DONE = "done"


class CancellationToken:
    """Marks an in-flight run as abandoned."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(frozen=True)
class Hop:
    from_id: str
    to_id: str
    path_index: int
    reverse: bool


# Resolves a route pair to a hop, or to (None, reason) when it must be skipped.
HopResolver = Callable[[str, str], tuple[Optional[Hop], str]]


@dataclass(frozen=True)
class AnimationRun:
    simulation_id: str
    route: tuple[str, ...]
    hop_index: int = 0
    progress: float = 0.0
    hop: Optional[Hop] = None
    phase: RunPhase = RunPhase.TRAVERSING
    settle_elapsed: float = 0.0
    token: CancellationToken = field(default_factory=CancellationToken, compare=False)

    @property
    def hop_count(self) -> int:
        return len(self.route) - 1


@dataclass(frozen=True)
class StepResult:
    run: AnimationRun
    hop_done: bool = False
    run_done: bool = False
    started: tuple[Hop, ...] = ()
    skipped: tuple[tuple[str, str, str], ...] = ()


def _seek(run: AnimationRun, first: int, resolve: HopResolver) -> tuple[AnimationRun, list[Hop], list]:
    """Resolve hops from index ``first`` until one can be traversed."""
    skipped = []
    for i in range(first, run.hop_count):
        a, b = run.route[i], run.route[i + 1]
        hop, reason = resolve(a, b)
        if hop is None:
            skipped.append((a, b, reason))
            continue
        run = replace(run, hop_index=i, progress=0.0, hop=hop, phase=RunPhase.TRAVERSING)
        return run, [hop], skipped
    run = replace(run, hop_index=run.hop_count, phase=RunPhase.SETTLING, settle_elapsed=0.0)
    return run, [], skipped


def begin(simulation_id: str, route: list[str], resolve: HopResolver) -> StepResult:
    """Create a run and resolve its first traversable hop."""
    run = AnimationRun(simulation_id=simulation_id, route=tuple(route))
    run, started, skipped = _seek(run, 0, resolve)
    return StepResult(run=run, started=tuple(started), skipped=tuple(skipped))


def advance(
    run: AnimationRun,
    dt: float,
    resolve: HopResolver,
    config: EngineConfig = DEFAULT_CONFIG,
) -> StepResult:
    """Advance ``run`` by one tick."""
    if run.token.cancelled or run.phase is RunPhase.DONE:
        return StepResult(run=replace(run, phase=RunPhase.DONE), run_done=True)

    if run.phase is RunPhase.SETTLING:
        elapsed = run.settle_elapsed + dt
        if elapsed >= config.settle_delay:
            return StepResult(run=replace(run, settle_elapsed=elapsed, phase=RunPhase.DONE), run_done=True)
        return StepResult(run=replace(run, settle_elapsed=elapsed))

    progress = run.progress + config.progress_step
    if progress < 1.0:
        return StepResult(run=replace(run, progress=progress))

    run = replace(run, progress=1.0)
    run, started, skipped = _seek(run, run.hop_index + 1, resolve)
    return StepResult(run=run, hop_done=True, started=tuple(started), skipped=tuple(skipped))


class SimulationAnimator:
    """Drives one marker across simulation routes.

    Only one run is ever in flight: ``start`` cancels the previous run,
    clearing its highlights, before beginning the next.
    """

    def __init__(
        self,
        builder: ConnectionPathBuilder,
        visibility: LayerVisibilityFilter,
        config: EngineConfig = DEFAULT_CONFIG,
        emit: Optional[Callable[[Event], None]] = None,
    ):
        self.builder = builder
        self.visibility = visibility
        self.config = config
        self.emit = emit or (lambda event: None)
        self.run: Optional[AnimationRun] = None
        self.highlighted_nodes: set[str] = set()
        self.highlighted_paths: set[int] = set()

    @property
    def is_running(self) -> bool:
        return self.run is not None

    @property
    def state(self) -> str:
        return self.run.phase.value if self.run else "idle"

    def resolve_hop(self, a: str, b: str) -> tuple[Optional[Hop], str]:
        """Resolve the first connector (declaration order) joining {a, b}.

        A hidden connector skips the hop even when a later sibling is
        visible.  The stored parametrization runs from the connection's
        ``from`` node; the hop is reversed when the path's end lies closer
        to ``a``.
        """
        path = self.builder.find_between(a, b)
        if path is None:
            return None, "missing"
        if not self.visibility.is_visible(path.connection):
            return None, "hidden"
        source = self.builder.arch_map.get_node(a)
        anchor = node_center(source)
        reverse = distance(path.end, anchor) < distance(path.start, anchor)
        return Hop(from_id=a, to_id=b, path_index=path.index, reverse=reverse), ""

    def start(self, simulation: Simulation) -> AnimationRun:
        if self.run is not None:
            self.cancel()
        logger.info(f"Starting simulation '{simulation.id}' ({len(simulation.nodes) - 1} hops)")
        self.emit(SimulationStarted(simulation.id))
        result = begin(simulation.id, simulation.nodes, self.resolve_hop)
        self.run = result.run
        self._apply(result)
        return self.run

    def cancel(self) -> None:
        if self.run is None:
            return
        logger.info(f"Cancelling simulation '{self.run.simulation_id}'")
        self.run.token.cancel()
        simulation_id = self.run.simulation_id
        self._finish()
        self.emit(SimulationFinished(simulation_id, cancelled=True))

    def step(self, dt: float) -> Optional[StepResult]:
        """Advance the in-flight run by one tick; ``None`` when idle."""
        if self.run is None:
            return None
        result = advance(self.run, dt, self.resolve_hop, self.config)
        self.run = result.run
        self._apply(result)
        return result

    def marker_position(self) -> Optional[Point]:
        """Marker location in local coordinates, ``None`` while hidden."""
        if self.run is None or self.run.hop is None:
            return None
        path = self.builder.get(self.run.hop.path_index)
        if path is None:
            return None
        return path.point_at(self.run.progress, reverse=self.run.hop.reverse)

    def _apply(self, result: StepResult) -> None:
        for a, b, reason in result.skipped:
            logger.debug(f"Skipping hop {a} -> {b}: {reason}")
            self.emit(SimulationHopSkipped(a, b, reason))
        for hop in result.started:
            for node_id in (hop.from_id, hop.to_id):
                if node_id not in self.highlighted_nodes:
                    self.highlighted_nodes.add(node_id)
                    self.emit(VisualDiff(node_id, highlighted=True))
            if hop.path_index not in self.highlighted_paths:
                self.highlighted_paths.add(hop.path_index)
                self.emit(VisualDiff(path_entity(hop.path_index), highlighted=True))
            self.emit(SimulationHopStarted(hop.from_id, hop.to_id, hop.path_index, hop.reverse))
        if result.run_done:
            simulation_id = result.run.simulation_id
            cancelled = result.run.token.cancelled
            self._finish()
            logger.info(f"Simulation '{simulation_id}' finished")
            self.emit(SimulationFinished(simulation_id, cancelled=cancelled))

    def _finish(self) -> None:
        for node_id in sorted(self.highlighted_nodes):
            self.emit(VisualDiff(node_id, highlighted=False))
        for index in sorted(self.highlighted_paths):
            self.emit(VisualDiff(path_entity(index), highlighted=False))
        self.highlighted_nodes.clear()
        self.highlighted_paths.clear()
        self.run = None
