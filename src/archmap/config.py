"""
Configuration objects for the archmap engine.

Exposes the tunable constants of the geometry, interaction and animation
code so they can be adjusted without editing core logic.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class EngineConfig:
    """
    Configuration for the geometry, viewport and simulation engine.

    Defaults reproduce the behavior of the browser viewer the engine was
    extracted from.
    """

    # Perpendicular distance between sibling connectors sharing an endpoint pair
    curve_spacing: float = 40.0

    # Viewport
    min_scale: float = 0.2
    max_scale: float = 3.0
    zoom_sensitivity: float = 0.001
    initial_scale: float = 0.55
    initial_pan_x: float = -100.0
    initial_pan_y: float = -50.0

    # Simulation: progress gained per tick, and the pause (seconds of tick dt)
    # before highlights are cleared after the final hop
    progress_step: float = 0.02
    settle_delay: float = 2.0

    # Pointer: presses that travel less than this (screen px) are clicks
    click_threshold: float = 5.0

    # Paths
    bezier_samples: int = 48
    stroke_width: float = 2.0
    hit_stroke_width: float = 16.0


DEFAULT_CONFIG = EngineConfig()

# Where rendered PNG snapshots are written by the servers
OUTPUT_DIR = Path(os.environ.get("ARCHMAP_OUTPUT_DIR", Path.home() / ".archmap" / "renders"))
