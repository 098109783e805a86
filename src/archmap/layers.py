"""Layer filtering for archmap connectors.

A connector is visible iff every tag it carries is in the active-layer set.
A WAN connector carries both its type and ``wan``, so hiding either layer
hides it.

The hover preview is a temporary override used while the pointer rests on a
layer button: only connectors carrying the previewed tag are shown.  It
never touches the persistent active set.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .models import Connection, Layer

logger = logging.getLogger(__name__)


class LayerVisibilityFilter:
    """Active-layer set plus the visibility rule built on it."""

    def __init__(self, layers: Iterable[Layer]):
        layers = list(layers)
        self.universe: frozenset[str] = frozenset(layer.id for layer in layers)
        self.active: set[str] = {layer.id for layer in layers if layer.active}
        self.preview_tag: Optional[str] = None

    def is_active(self, layer_id: str) -> bool:
        return layer_id in self.active

    def is_visible(self, conn: Connection) -> bool:
        if self.preview_tag is not None:
            return self.preview_tag in conn.tags()
        return all(tag in self.active for tag in conn.tags())

    def toggle(self, layer_id: str) -> bool:
        """Flip membership of ``layer_id``; returns whether it is now active.

        Ids outside the declared universe are ignored.
        """
        if layer_id not in self.universe:
            logger.warning(f"Ignoring toggle of undeclared layer '{layer_id}'")
            return False
        return self.set_active(layer_id, layer_id not in self.active)

    def set_active(self, layer_id: str, active: bool) -> bool:
        if layer_id not in self.universe:
            logger.warning(f"Ignoring undeclared layer '{layer_id}'")
            return False
        if active:
            self.active.add(layer_id)
        else:
            self.active.discard(layer_id)
        return active

    def reset_all(self) -> None:
        self.active = set(self.universe)

    def preview(self, tag: str) -> None:
        self.preview_tag = tag

    def clear_preview(self) -> None:
        self.preview_tag = None

    def evaluate(self, connections: Iterable[tuple[int, Connection]]) -> dict[int, bool]:
        """Visibility of every (index, connection) pair."""
        return {index: self.is_visible(conn) for index, conn in connections}
