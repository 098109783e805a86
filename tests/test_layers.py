"""
Tests for the active-layer set and the connector visibility rule.
"""

import itertools

import pytest

from archmap.layers import LayerVisibilityFilter


@pytest.fixture
def layers(arch_map):
    return LayerVisibilityFilter(arch_map.layers)


def visible_indices(layers, arch_map):
    return sorted(i for i, v in layers.evaluate(arch_map.renderable_connections()).items() if v)


class TestVisibility:
    """A connector is shown iff every tag it carries is active."""

    def test_initial_active_set_honors_layer_flags(self, layers):
        assert layers.universe == {"http", "sql", "wan", "mgmt"}
        assert layers.active == {"http", "sql", "wan"}
        assert not layers.is_active("mgmt")

    def test_initial_visibility(self, layers, arch_map):
        assert visible_indices(layers, arch_map) == [0, 1, 2]

    def test_wan_connector_needs_both_tags(self, layers, arch_map):
        replication = arch_map.connections[2]
        assert layers.is_visible(replication)

        layers.toggle("wan")
        assert not layers.is_visible(replication)
        assert layers.is_visible(arch_map.connections[0])

        layers.toggle("sql")
        layers.toggle("wan")
        assert not layers.is_visible(replication)

        layers.toggle("sql")
        assert layers.is_visible(replication)

    def test_activating_a_layer_never_hides_anything(self, arch_map):
        """Visibility is monotone in the active set."""
        layers = LayerVisibilityFilter(arch_map.layers)
        connections = arch_map.renderable_connections()
        universe = sorted(layers.universe)

        for size in range(len(universe) + 1):
            for subset in itertools.combinations(universe, size):
                layers.active = set(subset)
                before = layers.evaluate(connections)
                for extra in set(universe) - set(subset):
                    layers.active = set(subset) | {extra}
                    after = layers.evaluate(connections)
                    assert all(after[i] for i, v in before.items() if v)


class TestToggle:
    def test_toggle_returns_new_state(self, layers):
        assert layers.toggle("http") is False
        assert not layers.is_active("http")
        assert layers.toggle("http") is True
        assert layers.is_active("http")

    def test_toggle_of_unknown_layer_is_ignored(self, layers):
        before = set(layers.active)
        assert layers.toggle("smtp") is False
        assert layers.active == before

    def test_set_active(self, layers):
        assert layers.set_active("mgmt", True) is True
        assert layers.is_active("mgmt")
        assert layers.set_active("mgmt", False) is False
        assert layers.set_active("nope", True) is False
        assert "nope" not in layers.active

    def test_reset_all(self, layers, arch_map):
        layers.toggle("http")
        layers.toggle("sql")
        layers.reset_all()
        assert layers.active == layers.universe
        assert visible_indices(layers, arch_map) == [0, 1, 2, 4]


class TestPreview:
    """Hovering a layer button shows only that layer, temporarily."""

    def test_preview_shows_only_the_tag(self, layers, arch_map):
        layers.preview("wan")
        assert visible_indices(layers, arch_map) == [2]

    def test_preview_ignores_the_active_set(self, layers, arch_map):
        layers.preview("mgmt")
        assert visible_indices(layers, arch_map) == [4]

    def test_preview_leaves_active_set_untouched(self, layers, arch_map):
        before = set(layers.active)
        layers.preview("http")
        assert layers.active == before
        layers.clear_preview()
        assert layers.preview_tag is None
        assert visible_indices(layers, arch_map) == [0, 1, 2]
