"""
Tests for the simulation state machine and the animator built on it.
"""

import dataclasses
import math

import pytest

from archmap.events import (
    SimulationFinished,
    SimulationHopSkipped,
    SimulationHopStarted,
    SimulationStarted,
    VisualDiff,
)
from archmap.geometry import Point
from archmap.interaction import InteractionController
from archmap.parser import parse_dict
from archmap.simulation import Hop, RunPhase, advance, begin

DT = 1 / 60


def always(a, b):
    return Hop(a, b, path_index=0, reverse=False), ""


def never(a, b):
    return None, "missing"


def run_to_completion(controller, dt=DT, limit=5000):
    ticks = 0
    while controller.tick(dt):
        ticks += 1
        assert ticks < limit
    return ticks + 1


class TestStateMachine:
    """The pure tick function."""

    def test_begin_resolves_first_hop(self):
        result = begin("s", ["a", "b", "c"], always)
        assert result.run.phase is RunPhase.TRAVERSING
        assert result.run.hop == Hop("a", "b", 0, False)
        assert result.started == (Hop("a", "b", 0, False),)
        assert result.run.hop_count == 2

    def test_begin_with_nothing_traversable_settles(self):
        result = begin("s", ["a", "b", "c"], never)
        assert result.run.phase is RunPhase.SETTLING
        assert result.run.hop is None
        assert result.skipped == (("a", "b", "missing"), ("b", "c", "missing"))

    def test_advance_is_pure(self):
        run = begin("s", ["a", "b"], always).run
        result = advance(run, DT, always)
        assert run.progress == 0.0
        assert result.run.progress == pytest.approx(0.02)
        assert not result.hop_done

    def test_progress_ignores_dt(self):
        run = begin("s", ["a", "b"], always).run
        slow = advance(run, 1.0, always).run
        fast = advance(run, 0.001, always).run
        assert slow.progress == fast.progress

    def test_cancelled_run_is_done(self):
        run = begin("s", ["a", "b"], always).run
        run.token.cancel()
        result = advance(run, DT, always)
        assert result.run_done
        assert result.run.phase is RunPhase.DONE

    def test_settle_is_measured_in_dt(self):
        run = begin("s", ["a", "b"], never).run
        results = [advance(run, 0.5, never)]
        while not results[-1].run_done:
            results.append(advance(results[-1].run, 0.5, never))
        assert len(results) == 4


class TestAnimator:
    """Runs against the shared sample map."""

    def test_hop_takes_about_fifty_ticks(self, controller):
        controller.run_simulation("write")
        ticks = 0
        while True:
            ticks += 1
            if controller.animator.step(DT).hop_done:
                break
        assert 49 <= ticks <= 51

    def test_write_path_highlights_accumulate(self, controller):
        animator = controller.animator
        controller.run_simulation("write")
        assert animator.highlighted_nodes == {"web1", "db1"}
        assert animator.highlighted_paths == {0}

        while not animator.step(DT).hop_done:
            pass
        assert animator.highlighted_nodes == {"web1", "db1", "cache"}
        assert animator.highlighted_paths == {0, 1}
        assert animator.run.hop == Hop("db1", "cache", 1, False)

    def test_run_finishes_and_clears(self, controller, events):
        controller.run_simulation("write")
        run_to_completion(controller)

        animator = controller.animator
        assert animator.highlighted_nodes == set()
        assert animator.highlighted_paths == set()
        assert animator.marker_position() is None
        assert animator.state == "idle"
        assert events[0] == SimulationStarted("write")
        assert events[-1] == SimulationFinished("write", cancelled=False)

        cleared = [e for e in events if isinstance(e, VisualDiff) and e.highlighted is False]
        assert {e.entity_id for e in cleared} == {"web1", "db1", "cache", "path:0", "path:1"}

    def test_settle_delay_after_last_hop(self, controller):
        animator = controller.animator
        controller.run_simulation("write")
        while animator.state == "traversing":
            animator.step(0.5)

        assert animator.state == "settling"
        assert animator.marker_position() == pytest.approx(Point(350, 300))
        ticks = 0
        while controller.tick(0.5):
            ticks += 1
        assert ticks + 1 == 4

    def test_hidden_hop_is_skipped(self, controller, events):
        controller.run_simulation("via-mgmt")

        assert events == [
            SimulationStarted("via-mgmt"),
            SimulationHopSkipped("cache", "web1", "hidden"),
            VisualDiff("web1", highlighted=True),
            VisualDiff("db1", highlighted=True),
            VisualDiff("path:0", highlighted=True),
            SimulationHopStarted("web1", "db1", 0, False),
        ]
        assert controller.animator.highlighted_nodes == {"web1", "db1"}

    def test_missing_hop_is_skipped_and_reverse_detected(self, controller, events):
        """remote -> db1 travels path 2 (declared db1 -> remote) backwards."""
        controller.run_simulation("orphan")

        assert SimulationHopSkipped("web1", "remote", "missing") in events
        assert SimulationHopStarted("remote", "db1", 2, True) in events
        assert controller.animator.marker_position() == pytest.approx(Point(900, 30))

    def test_reverse_follows_geometry_not_declaration(self, controller):
        animator = controller.animator
        path = controller.builder.get(0)
        controller.builder.paths[0] = dataclasses.replace(
            path, start=path.end, cp1=path.cp2, cp2=path.cp1, end=path.start,
        )

        hop, _ = animator.resolve_hop("web1", "db1")
        assert hop.reverse is True
        hop, _ = animator.resolve_hop("db1", "web1")
        assert hop.reverse is False

    def test_hidden_first_sibling_skips_the_hop(self):
        """Only the first connector in declaration order is considered."""
        arch_map = parse_dict({
            "layers": [{"id": "http"}, {"id": "sql", "active": False}],
            "nodes": [{"id": "a", "x": 0, "y": 0}, {"id": "b", "x": 500, "y": 0}],
            "connections": [
                {"from": "a", "to": "b", "type": "sql"},
                {"from": "b", "to": "a", "type": "http"},
            ],
        })
        controller = InteractionController(arch_map)
        assert controller.animator.resolve_hop("a", "b") == (None, "hidden")

        controller.toggle_layer("sql")
        hop, reason = controller.animator.resolve_hop("b", "a")
        assert reason == ""
        assert hop.path_index == 0
        assert hop.reverse is True

    def test_new_run_cancels_the_old_one(self, controller, events):
        controller.run_simulation("write")
        for _ in range(10):
            controller.tick(DT)
        old_token = controller.animator.run.token

        controller.run_simulation("replicate")

        assert old_token.cancelled
        finished = events.index(SimulationFinished("write", cancelled=True))
        assert events.index(SimulationStarted("replicate")) > finished
        assert controller.animator.run.simulation_id == "replicate"
        assert controller.animator.highlighted_nodes == {"web1", "db1"}

    def test_cancel(self, controller, events):
        controller.run_simulation("write")
        controller.cancel_simulation()
        assert not controller.animator.is_running
        assert events[-1] == SimulationFinished("write", cancelled=True)
        assert controller.tick(DT) is False

    def test_unknown_simulation(self, controller):
        assert controller.run_simulation("nope") is False
        assert controller.animator.state == "idle"

    def test_good_route_runs_beside_a_dropped_one(self):
        arch_map = parse_dict({
            "layers": [{"id": "http"}],
            "nodes": [{"id": "a", "x": 0, "y": 0}, {"id": "b", "x": 500, "y": 0}],
            "connections": [{"from": "a", "to": "b", "type": "http"}],
            "simulations": [{"id": "bad", "nodes": ["a"]}, {"id": "ok", "nodes": ["a", "b"]}],
        })
        controller = InteractionController(arch_map)

        assert controller.run_simulation("bad") is False
        assert controller.run_simulation("ok") is True
        assert controller.animator.run.hop == Hop("a", "b", 0, False)
        run_to_completion(controller)
        assert controller.animator.state == "idle"

    def test_marker_moves_at_constant_speed_on_a_curve(self):
        arch_map = parse_dict({
            "layers": [{"id": "default"}],
            "nodes": [{"id": "a", "x": 0, "y": 0}, {"id": "b", "x": 500, "y": 300}],
            "connections": [{"from": "a", "to": "b", "curve": 80}],
            "simulations": [{"id": "s", "nodes": ["a", "b"]}],
        })
        controller = InteractionController(arch_map)
        animator = controller.animator
        controller.run_simulation("s")

        positions = [animator.marker_position()]
        while not animator.step(DT).hop_done:
            positions.append(animator.marker_position())

        gaps = [math.dist(p, q) for p, q in zip(positions, positions[1:])]
        expected = controller.builder.get(0).length * 0.02
        for gap in gaps:
            assert gap == pytest.approx(expected, rel=0.02)
