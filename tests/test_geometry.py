"""
Tests for node geometry, the viewport transform and arc-length sampling.
"""

import math

import pytest

from archmap.geometry import (
    ArcLengthTable,
    Point,
    Viewport,
    edge_point,
    node_center,
    node_screen_rect,
)
from archmap.models import Node


def make_node(x=0.0, y=0.0, w=100.0, h=60.0, node_id="n"):
    return Node(id=node_id, x=x, y=y, width=w, height=h)


class TestEdgePoint:
    """Boundary anchors for connectors."""

    def test_facing_points_of_side_by_side_nodes(self):
        """A(0,0,100x60) and B(300,0,100x60) meet at A's right-center and
        B's left-center."""
        a = make_node(0, 0, node_id="a")
        b = make_node(300, 0, node_id="b")

        assert edge_point(a, node_center(b)) == pytest.approx(Point(100, 30))
        assert edge_point(b, node_center(a)) == pytest.approx(Point(300, 30))

    def test_center_returned_for_degenerate_direction(self):
        node = make_node(10, 20)
        center = node_center(node)
        assert edge_point(node, center) == center

    def test_zero_horizontal_delta_hits_bottom_edge(self):
        node = make_node()
        assert edge_point(node, Point(50, 500)) == pytest.approx(Point(50, 60))

    def test_diagonal_ray_bound_by_shorter_half_extent(self):
        """Center (50,30) toward (150,130): the half height binds first."""
        node = make_node()
        p = edge_point(node, Point(150, 130))
        assert p.x == pytest.approx(80)
        assert p.y == pytest.approx(60)

    @pytest.mark.parametrize("angle_deg", range(0, 360, 15))
    def test_result_lies_on_rectangle_boundary(self, angle_deg):
        node = make_node(40, -20, w=120, h=50)
        center = node_center(node)
        angle = math.radians(angle_deg)
        toward = Point(center.x + 500 * math.cos(angle), center.y + 500 * math.sin(angle))

        p = edge_point(node, toward)

        on_vertical_side = abs(abs(p.x - center.x) - 60) < 1e-9
        on_horizontal_side = abs(abs(p.y - center.y) - 25) < 1e-9
        assert on_vertical_side or on_horizontal_side
        assert node.x - 1e-9 <= p.x <= node.x + node.width + 1e-9
        assert node.y - 1e-9 <= p.y <= node.y + node.height + 1e-9


class TestViewport:
    """Pan/scale state and the local <-> screen mapping."""

    def test_initial_viewport_matches_viewer_defaults(self):
        vp = Viewport()
        assert (vp.pan_x, vp.pan_y, vp.scale) == (-100, -50, 0.55)

    @pytest.mark.parametrize("pan_x,pan_y,scale", [
        (0, 0, 1.0),
        (-100, -50, 0.55),
        (250.5, -75.25, 0.2),
        (-1e4, 3e3, 3.0),
    ])
    def test_affine_round_trip(self, pan_x, pan_y, scale):
        vp = Viewport(pan_x=pan_x, pan_y=pan_y, scale=scale)
        for p in (Point(0, 0), Point(123.4, -56.7), Point(-900, 4000)):
            back = vp.local_to_screen(vp.screen_to_local(p))
            assert back.x == pytest.approx(p.x)
            assert back.y == pytest.approx(p.y)

    def test_zoom_formula(self):
        vp = Viewport(scale=1.0)
        assert vp.zoom(100) == pytest.approx(0.9)
        assert vp.zoom(-200) == pytest.approx(1.1)

    def test_zoom_is_anchored_at_origin(self):
        vp = Viewport(pan_x=40, pan_y=-10, scale=1.0)
        vp.zoom(250)
        assert (vp.pan_x, vp.pan_y) == (40, -10)
        assert vp.local_to_screen(Point(0, 0)) == Point(40, -10)

    def test_scale_stays_clamped_under_extreme_input(self):
        vp = Viewport()
        for _ in range(50):
            vp.zoom(-1e9)
            assert 0.2 <= vp.scale <= 3.0
        assert vp.scale == 3.0
        for _ in range(50):
            vp.zoom(1e9)
            assert 0.2 <= vp.scale <= 3.0
        assert vp.scale == 0.2
        assert vp.set_scale(float("1e300")) == 3.0

    def test_center_on_puts_point_mid_screen(self):
        vp = Viewport(scale=0.5)
        vp.center_on(Point(1000, 400), 800, 600)
        assert vp.local_to_screen(Point(1000, 400)) == Point(400, 300)

    def test_node_screen_rect(self):
        vp = Viewport(pan_x=10, pan_y=20, scale=2.0)
        rect = node_screen_rect(make_node(5, 5, 100, 60), vp)
        assert tuple(rect) == (20, 30, 200, 120)

    def test_matrix_and_css(self):
        vp = Viewport(pan_x=-100, pan_y=-50, scale=0.55)
        assert vp.matrix() == (0.55, 0.0, 0.0, 0.55, -100, -50)
        assert vp.css_transform() == "translate(-100px, -50px) scale(0.55)"


class TestArcLengthTable:
    """Distance-along-curve sampling."""

    def test_straight_line_is_sampled_linearly(self):
        """Control points bunched at the middle make raw t non-uniform, but
        arc-length sampling stays linear."""
        table = ArcLengthTable(Point(0, 0), Point(50, 0), Point(50, 0), Point(100, 0))
        assert table.total_length == pytest.approx(100)
        for f in (0.0, 0.1, 0.25, 0.5, 0.9, 1.0):
            p = table.point_at_fraction(f)
            assert p.x == pytest.approx(100 * f, abs=1e-6)
            assert p.y == pytest.approx(0, abs=1e-9)

    def test_equal_fractions_give_equal_distances_on_a_curve(self):
        table = ArcLengthTable(Point(0, 0), Point(150, 0), Point(150, 200), Point(300, 200), steps=200)
        points = [table.point_at_fraction(i / 20) for i in range(21)]
        gaps = [math.dist(a, b) for a, b in zip(points, points[1:])]
        expected = table.total_length / 20
        for gap in gaps:
            assert gap == pytest.approx(expected, rel=0.02)

    def test_reverse_starts_at_end(self):
        table = ArcLengthTable(Point(0, 0), Point(10, 10), Point(20, 10), Point(30, 0))
        assert table.point_at_fraction(0, reverse=True) == pytest.approx(table.points[-1])
        assert table.point_at_fraction(1, reverse=True) == pytest.approx(table.points[0])

    def test_zero_length_curve(self):
        p = Point(7, 7)
        table = ArcLengthTable(p, p, p, p)
        assert table.total_length == 0
        assert table.point_at_fraction(0.5) == p

    def test_distance_to_curve(self):
        table = ArcLengthTable(Point(0, 0), Point(50, 0), Point(50, 0), Point(100, 0))
        assert table.distance_to(Point(40, 8)) == pytest.approx(8)
        assert table.distance_to(Point(-3, 4)) == pytest.approx(5)
