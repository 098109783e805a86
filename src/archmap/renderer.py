"""Snapshot renderer using Pillow - draws the current map scene to PNG.

The renderer is a pure consumer of ``InteractionController.scene()``: it
applies the shared viewport transform to sites, connectors and nodes alike
and draws whatever the engine says is visible and highlighted.
"""

from __future__ import annotations

import math
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from .geometry import Point, sample_cubic


# --- Font handling ---

def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font, falling back to default if none available."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return ImageFont.load_default()


def _load_bold_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a bold font, falling back to regular."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return _load_font(size)


# --- Color helpers ---

def _hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Convert hex color to RGB tuple. Supports both 3-char and 6-char hex."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = hex_color[0]*2 + hex_color[1]*2 + hex_color[2]*2
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def _hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    r, g, b = _hex_to_rgb(hex_color)
    return (r, g, b, alpha)


def _safe_color(color: Optional[str], fallback: str) -> str:
    """Only hex colors are understood; CSS variables and names fall back."""
    if color and color.startswith("#") and len(color.lstrip("#")) in (3, 6):
        return color
    return fallback


# --- Drawing primitives ---

def _draw_arrowhead(
    draw: ImageDraw.ImageDraw,
    start: tuple[float, float],
    end: tuple[float, float],
    color: str,
    size: float,
):
    """Draw a filled arrowhead at ``end`` pointing away from ``start``."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length = math.hypot(dx, dy)
    if length == 0:
        return
    udx = dx / length
    udy = dy / length

    ax = end[0] - size * udx + (size / 2) * udy
    ay = end[1] - size * udy - (size / 2) * udx
    bx = end[0] - size * udx - (size / 2) * udy
    by = end[1] - size * udy + (size / 2) * udx
    draw.polygon([end, (ax, ay), (bx, by)], fill=color)


def _draw_polyline(
    draw: ImageDraw.ImageDraw,
    points: list[tuple[float, float]],
    color: str,
    width: int,
    dash: Optional[tuple[float, float]] = None,
):
    """Draw connected segments, optionally dashed (on, off lengths in px)."""
    if not dash:
        for a, b in zip(points, points[1:]):
            draw.line([a, b], fill=color, width=width)
        return

    on, off = dash
    period = on + off
    travelled = 0.0
    for a, b in zip(points, points[1:]):
        seg = math.hypot(b[0] - a[0], b[1] - a[1])
        if seg == 0:
            continue
        pos = 0.0
        while pos < seg:
            phase = (travelled + pos) % period
            run = (on - phase) if phase < on else (period - phase)
            step = min(run, seg - pos)
            if phase < on:
                f0, f1 = pos / seg, (pos + step) / seg
                draw.line(
                    [
                        (a[0] + (b[0] - a[0]) * f0, a[1] + (b[1] - a[1]) * f0),
                        (a[0] + (b[0] - a[0]) * f1, a[1] + (b[1] - a[1]) * f1),
                    ],
                    fill=color,
                    width=width,
                )
            pos += step
        travelled += seg


# --- Main renderer ---

class MapRenderer:
    """Renders a scene snapshot to a PNG image of a fixed viewport size."""

    BACKGROUND = "#11111b"
    SITE_FILL = "#181825"
    SITE_BORDER = "#313244"
    SITE_LABEL = "#6c7086"
    NODE_FILL = "#1e1e2e"
    NODE_BORDER = "#45475a"
    NODE_HEADER = "#313244"
    NODE_LABEL = "#cdd6f4"
    NODE_SUB = "#a6adc8"
    HIGHLIGHT = "#f9e2af"
    MARKER = "#f9e2af"

    HEADER_HEIGHT = 28
    CURVE_STEPS = 30
    MARKER_RADIUS = 6
    DASH = (8, 4)

    def __init__(self, width: int = 1600, height: int = 900):
        self.width = width
        self.height = height
        self.font_label = _load_bold_font(14)
        self.font_body = _load_font(12)
        self.font_title = _load_bold_font(20)

    def render(self, scene: dict, output_path: Optional[str] = None, node_types: Optional[dict] = None) -> bytes:
        """Render a scene to PNG bytes. Optionally save to file.

        Args:
            scene: ``InteractionController.scene()`` output.
            output_path: Optional path to save the PNG.
            node_types: Optional ``{type: NodeType}`` for header colors.
        """
        img = Image.new("RGBA", (self.width, self.height), _hex_to_rgba(self.BACKGROUND))
        draw = ImageDraw.Draw(img)
        a, b, c, d, e, f = scene["matrix"]
        scale = a

        def to_screen(x: float, y: float) -> tuple[float, float]:
            return (a * x + c * y + e, b * x + d * y + f)

        # Sites behind everything
        for site in scene.get("sites", []):
            x1, y1 = to_screen(site["x"], site["y"])
            x2, y2 = to_screen(site["x"] + site["w"], site["y"] + site["h"])
            draw.rounded_rectangle([x1, y1, x2, y2], radius=int(12 * scale),
                                   fill=self.SITE_FILL, outline=self.SITE_BORDER, width=1)
            draw.text((x1 + 10, y1 + 6), site.get("label", ""), fill=self.SITE_LABEL, font=self.font_body)

        # Connectors behind nodes
        for conn in scene.get("connections", []):
            if conn["visible"]:
                self._draw_connection(draw, conn, to_screen, scale)

        for node in scene.get("nodes", []):
            self._draw_node(draw, node, scale, node_types or {})

        marker = scene.get("marker_screen")
        if marker:
            r = self.MARKER_RADIUS
            draw.ellipse([marker[0] - r, marker[1] - r, marker[0] + r, marker[1] + r],
                         fill=self.MARKER, outline="#ffffff")

        draw.text((16, 12), scene.get("title", ""), fill=self.NODE_LABEL, font=self.font_title)

        buf = BytesIO()
        img.save(buf, format="PNG", optimize=True)
        png_bytes = buf.getvalue()

        if output_path:
            Path(output_path).write_bytes(png_bytes)

        return png_bytes

    def _draw_connection(self, draw: ImageDraw.ImageDraw, conn: dict, to_screen, scale: float):
        """Draw one bezier connector, sampled into line segments."""
        p0, p1, p2, p3 = (Point(*conn[k]) for k in ("start", "cp1", "cp2", "end"))
        points = [to_screen(p.x, p.y) for p in sample_cubic(p0, p1, p2, p3, self.CURVE_STEPS)]

        color = _safe_color(conn.get("color"), "#ffffff")
        base_width = conn.get("width", 2)
        width = max(1, int(round(base_width * scale * (2 if conn.get("highlighted") else 1))))
        if conn.get("highlighted"):
            _draw_polyline(draw, points, self.HIGHLIGHT, width + 2)
        _draw_polyline(draw, points, color, width, dash=self.DASH if conn.get("dash") else None)
        _draw_arrowhead(draw, points[-2], points[-1], color, size=max(6.0, 10 * scale))

    def _draw_node(self, draw: ImageDraw.ImageDraw, node: dict, scale: float, node_types: dict):
        x, y, w, h = node["screen_rect"]
        node_type = node_types.get(node["type"])
        header_bg = _safe_color(getattr(node_type, "header_bg", None), self.NODE_HEADER)
        header_fg = _safe_color(getattr(node_type, "header_color", None), self.NODE_LABEL)
        outline = self.HIGHLIGHT if node.get("highlighted") else self.NODE_BORDER
        border = 3 if node.get("highlighted") else 1
        radius = max(2, int(8 * scale))

        draw.rounded_rectangle([x, y, x + w, y + h], radius=radius,
                               fill=self.NODE_FILL, outline=outline, width=border)
        header_h = min(h, self.HEADER_HEIGHT * scale)
        draw.rounded_rectangle([x + 1, y + 1, x + w - 1, y + header_h], radius=radius, fill=header_bg)

        draw.text((x + 8 * scale, y + 6 * scale), node["label"], fill=header_fg, font=self.font_label)
        if node.get("sub"):
            draw.text((x + 8 * scale, y + header_h + 6 * scale), node["sub"],
                      fill=self.NODE_SUB, font=self.font_body)
