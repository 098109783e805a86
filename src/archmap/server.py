"""archmap MCP server - tools for exploring an architecture map headlessly.

The server keeps one loaded map (and its interaction controller) per
process.  Tools mutate it the way the interactive viewer would: toggling
layers, moving nodes, adjusting the viewport, running simulations on a
simulated frame clock, and rendering PNG snapshots.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import OUTPUT_DIR
from .events import VisualDiff, event_to_dict
from .interaction import InteractionController
from .parser import map_to_yaml, parse_file, parse_yaml
from .renderer import MapRenderer

logger = logging.getLogger(__name__)

# Frame clock used for headless simulation runs
FRAME_DT = 1 / 60
MAX_FRAMES = 100_000

server = Server("archmap")

_controller: Optional[InteractionController] = None


def _ensure_output_dir():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)


def _text(payload: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload))]


def _error(message: str) -> list[TextContent]:
    return [TextContent(type="text", text=message)]


# --- Tool definitions ---

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="load_map",
            description=(
                "Load an architecture map from a YAML/JSON string or a file path. "
                "Replaces the currently loaded map."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "yaml_config": {"type": "string", "description": "Map configuration as YAML or JSON."},
                    "path": {"type": "string", "description": "Path to a YAML/JSON map file."},
                },
            },
        ),
        Tool(
            name="render_map",
            description="Render the current map state to a PNG file and return its path.",
            inputSchema={
                "type": "object",
                "properties": {
                    "width": {"type": "integer", "default": 1600},
                    "height": {"type": "integer", "default": 900},
                    "filename": {
                        "type": "string",
                        "description": "Output filename (without extension). Default: auto-generated.",
                    },
                },
            },
        ),
        Tool(
            name="list_simulations",
            description="List the simulations (scripted routes) defined by the loaded map.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="run_simulation",
            description=(
                "Run a simulation to completion on a 60 fps frame clock. Returns the "
                "hops traversed and skipped (hidden or missing connectors)."
            ),
            inputSchema={
                "type": "object",
                "properties": {"simulation_id": {"type": "string"}},
                "required": ["simulation_id"],
            },
        ),
        Tool(
            name="toggle_layer",
            description="Toggle a layer in the active-layer set.",
            inputSchema={
                "type": "object",
                "properties": {"layer_id": {"type": "string"}},
                "required": ["layer_id"],
            },
        ),
        Tool(
            name="reset_layers",
            description="Activate every layer.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="set_viewport",
            description="Set pan and/or scale (scale is clamped to 0.2-3.0).",
            inputSchema={
                "type": "object",
                "properties": {
                    "pan_x": {"type": "number"},
                    "pan_y": {"type": "number"},
                    "scale": {"type": "number"},
                },
            },
        ),
        Tool(
            name="move_node",
            description="Move a node to a local canvas position; its connectors are re-routed.",
            inputSchema={
                "type": "object",
                "properties": {
                    "node_id": {"type": "string"},
                    "x": {"type": "number"},
                    "y": {"type": "number"},
                },
                "required": ["node_id", "x", "y"],
            },
        ),
        Tool(
            name="inspect_node",
            description="Return the inspector record (label, role, documentation) for a node.",
            inputSchema={
                "type": "object",
                "properties": {"node_id": {"type": "string"}},
                "required": ["node_id"],
            },
        ),
        Tool(
            name="export_map",
            description="Save the current map, including moved node positions, as YAML.",
            inputSchema={
                "type": "object",
                "properties": {
                    "filename": {"type": "string", "description": "Output name without extension"},
                },
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    handlers = {
        "load_map": _load_map,
        "render_map": _render_map,
        "list_simulations": _list_simulations,
        "run_simulation": _run_simulation,
        "toggle_layer": _toggle_layer,
        "reset_layers": _reset_layers,
        "set_viewport": _set_viewport,
        "move_node": _move_node,
        "inspect_node": _inspect_node,
        "export_map": _export_map,
    }
    handler = handlers.get(name)
    if handler is None:
        return _error(f"Unknown tool: {name}")
    if name != "load_map" and _controller is None:
        return _error("No map loaded. Call load_map first.")
    return await handler(arguments or {})


async def _load_map(args: dict) -> list[TextContent]:
    global _controller
    try:
        if args.get("yaml_config"):
            arch_map = parse_yaml(args["yaml_config"])
        elif args.get("path"):
            arch_map = parse_file(args["path"])
        else:
            return _error("Provide either yaml_config or path.")
    except (ValueError, OSError) as e:
        return _error(f"Failed to load map: {e}")

    _controller = InteractionController(arch_map)
    logger.info(f"Loaded map '{arch_map.title}'")
    return _text({
        "status": "success",
        "title": arch_map.title,
        "nodes": len(arch_map.nodes),
        "connections": len(_controller.builder),
        "dropped_connections": len(arch_map.connections) - len(_controller.builder),
        "layers": sorted(_controller.visibility.universe),
        "active_layers": sorted(_controller.visibility.active),
        "simulations": [sim.id for sim in arch_map.simulations],
    })


async def _render_map(args: dict) -> list[TextContent]:
    """Render the current scene to PNG."""
    _ensure_output_dir()
    filename = args.get("filename", str(uuid.uuid4())[:8])
    output_path = str(OUTPUT_DIR / f"{filename}.png")

    renderer = MapRenderer(width=int(args.get("width", 1600)), height=int(args.get("height", 900)))
    try:
        renderer.render(_controller.scene(), output_path=output_path,
                        node_types=_controller.arch_map.node_types)
    except Exception as e:
        return _error(f"Rendering failed: {e}")

    return _text({"status": "success", "path": output_path})


async def _list_simulations(args: dict) -> list[TextContent]:
    return _text({
        "simulations": [
            {"id": sim.id, "label": sim.label, "nodes": sim.nodes}
            for sim in _controller.arch_map.simulations
        ]
    })


async def _run_simulation(args: dict) -> list[TextContent]:
    events = []
    unsubscribe = _controller.subscribe(events.append)
    try:
        if not _controller.run_simulation(args["simulation_id"]):
            return _text({"status": "unknown_simulation", "simulation_id": args["simulation_id"]})
        frames = 0
        while _controller.tick(FRAME_DT) and frames < MAX_FRAMES:
            frames += 1
    finally:
        unsubscribe()

    logged = [event_to_dict(e) for e in events if not isinstance(e, VisualDiff)]
    return _text({
        "status": "success",
        "frames": frames,
        "hops": [e for e in logged if e["event"] == "SimulationHopStarted"],
        "skipped": [e for e in logged if e["event"] == "SimulationHopSkipped"],
        "events": logged,
    })


async def _toggle_layer(args: dict) -> list[TextContent]:
    layer_id = args["layer_id"]
    if layer_id not in _controller.visibility.universe:
        return _error(f"Unknown layer: {layer_id}")
    active = _controller.toggle_layer(layer_id)
    return _text({"layer_id": layer_id, "active": active, "visible": _visible_count()})


async def _reset_layers(args: dict) -> list[TextContent]:
    _controller.reset_layers()
    return _text({"active_layers": sorted(_controller.visibility.active), "visible": _visible_count()})


async def _set_viewport(args: dict) -> list[TextContent]:
    vp = _controller.viewport
    if "pan_x" in args or "pan_y" in args:
        vp.set_pan(float(args.get("pan_x", vp.pan_x)), float(args.get("pan_y", vp.pan_y)))
    if "scale" in args:
        vp.set_scale(float(args["scale"]))
    return _text(vp.to_dict())


async def _move_node(args: dict) -> list[TextContent]:
    if _controller.animator.is_running:
        return _error("A simulation is running; nodes cannot be moved.")
    if not _controller.move_node(args["node_id"], float(args["x"]), float(args["y"])):
        return _error(f"Unknown node: {args['node_id']}")
    touched = _controller.builder.touching(args["node_id"])
    return _text({
        "node_id": args["node_id"],
        "paths": [_controller.builder.get(i).to_dict() for i in touched],
    })


async def _inspect_node(args: dict) -> list[TextContent]:
    record = _controller.inspect_node(args["node_id"])
    if record is None:
        return _error(f"Unknown node: {args['node_id']}")
    return _text(record)


async def _export_map(args: dict) -> list[TextContent]:
    _ensure_output_dir()
    filename = args.get("filename", str(uuid.uuid4())[:8])
    output_path = OUTPUT_DIR / f"{filename}.yaml"
    output_path.write_text(map_to_yaml(_controller.arch_map))
    logger.info(f"Exported map to {output_path}")
    return _text({"status": "success", "path": str(output_path)})


def _visible_count() -> int:
    return sum(_controller.visibility_map().values())


def main():
    """Entry point for the MCP server."""
    import asyncio
    asyncio.run(_run())


async def _run():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    main()
