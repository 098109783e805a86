#!/usr/bin/env python3
"""
archmap web backend - JSON/SSE API for an interactive architecture map

A lightweight aiohttp server that owns one InteractionController and lets a
browser front end drive it: pointer and wheel input, layer filters, node
inspection, and simulations streamed frame by frame as Server-Sent Events.

Usage:
    python -m archmap.web [--port 8766] [--host 0.0.0.0] [--map diagram.yaml]
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from aiohttp import web

from .events import event_to_dict
from .interaction import InteractionController
from .parser import map_to_yaml, parse_file, parse_yaml
from .renderer import MapRenderer

logger = logging.getLogger(__name__)

FRAME_DT = 1 / 60


@dataclass
class MapSession:
    """The map currently served; replaced wholesale by POST /api/map."""
    controller: Optional[InteractionController] = None


SESSION_KEY = web.AppKey("session", MapSession)


def _controller(request) -> InteractionController:
    controller = request.app[SESSION_KEY].controller
    if controller is None:
        raise web.HTTPConflict(
            text=json.dumps({"error": "No map loaded"}),
            content_type="application/json",
        )
    return controller


async def _read_json(request) -> dict:
    try:
        data = await request.json()
    except json.JSONDecodeError:
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Invalid JSON body"}),
            content_type="application/json",
        )
    return data if isinstance(data, dict) else {}


def _collect(controller: InteractionController):
    """Subscribe a list to the controller; returns (events, unsubscribe)."""
    events = []
    return events, controller.subscribe(events.append)


# =============================================================================
# HTTP Handlers
# =============================================================================

async def handle_status(request):
    """Health check endpoint."""
    controller = request.app[SESSION_KEY].controller
    return web.json_response({
        "status": "ok",
        "service": "archmap",
        "map": controller.arch_map.title if controller else None,
        "timestamp": datetime.now().isoformat()
    })


async def handle_load_map(request):
    """Replace the served map with a YAML/JSON configuration."""
    data = await _read_json(request)
    yaml_content = data.get("yaml", "")
    if not yaml_content:
        return web.json_response({"error": "No YAML provided"}, status=400)

    try:
        arch_map = parse_yaml(yaml_content)
    except ValueError as e:
        return web.json_response({"error": str(e)}, status=400)

    session = request.app[SESSION_KEY]
    if session.controller is not None:
        session.controller.cancel_simulation()
    session.controller = InteractionController(arch_map)
    logger.info(f"Serving map '{arch_map.title}'")
    return web.json_response({"success": True, "title": arch_map.title})


async def handle_scene(request):
    return web.json_response(_controller(request).scene())


async def handle_export_map(request):
    """Current map, moved positions included, as YAML."""
    arch_map = _controller(request).arch_map
    return web.Response(text=map_to_yaml(arch_map), content_type="application/x-yaml")


async def handle_pointer(request):
    """Pointer input: /api/pointer/{down,move,up} with {"x": .., "y": ..}."""
    controller = _controller(request)
    action = request.match_info["action"]
    data = await _read_json(request)
    try:
        x, y = float(data["x"]), float(data["y"])
    except (KeyError, TypeError, ValueError):
        return web.json_response({"error": "x and y are required"}, status=400)

    events, unsubscribe = _collect(controller)
    try:
        result = {}
        if action == "down":
            target = controller.pointer_down(x, y)
            result["target"] = {"kind": target.kind, "node_id": target.node_id, "path_index": target.path_index}
        elif action == "move":
            controller.pointer_move(x, y)
        elif action == "up":
            result["inspection"] = controller.pointer_up(x, y)
        else:
            return web.json_response({"error": f"Unknown pointer action: {action}"}, status=404)
    finally:
        unsubscribe()

    result["inspection"] = result.get("inspection", controller.inspection)
    result["viewport"] = controller.viewport.to_dict()
    result["events"] = [event_to_dict(e) for e in events]
    return web.json_response(result)


async def handle_wheel(request):
    controller = _controller(request)
    data = await _read_json(request)
    try:
        delta = float(data["delta"])
    except (KeyError, TypeError, ValueError):
        return web.json_response({"error": "delta is required"}, status=400)
    controller.wheel(delta)
    return web.json_response({"viewport": controller.viewport.to_dict()})


async def handle_toggle_layer(request):
    controller = _controller(request)
    layer_id = request.match_info["layer_id"]
    if layer_id not in controller.visibility.universe:
        return web.json_response({"error": f"Unknown layer: {layer_id}"}, status=404)
    events, unsubscribe = _collect(controller)
    try:
        active = controller.toggle_layer(layer_id)
    finally:
        unsubscribe()
    return web.json_response({
        "layer_id": layer_id,
        "active": active,
        "events": [event_to_dict(e) for e in events],
    })


async def handle_reset_layers(request):
    controller = _controller(request)
    controller.reset_layers()
    return web.json_response({"active_layers": sorted(controller.visibility.active)})


async def handle_preview_layer(request):
    controller = _controller(request)
    if request.method == "DELETE":
        controller.clear_preview()
    else:
        controller.preview_layer(request.match_info["layer_id"])
    return web.json_response({"visibility": {str(k): v for k, v in controller.visibility_map().items()}})


async def handle_inspect_node(request):
    record = _controller(request).inspect_node(request.match_info["node_id"])
    if record is None:
        return web.json_response({"error": "Unknown node"}, status=404)
    return web.json_response(record)


async def handle_run_simulation(request):
    """Start a simulation and stream its frames as Server-Sent Events.

    Query parameters:
        dt:       seconds per frame (default 1/60)
        realtime: "0" streams frames back to back without sleeping
    """
    controller = _controller(request)
    sim_id = request.match_info["simulation_id"]
    if controller.arch_map.get_simulation(sim_id) is None:
        return web.json_response({"error": f"Unknown simulation: {sim_id}"}, status=404)

    try:
        dt = float(request.query.get("dt", FRAME_DT))
    except ValueError:
        return web.json_response({"error": "dt must be a number"}, status=400)
    if dt <= 0:
        return web.json_response({"error": "dt must be positive"}, status=400)
    realtime = request.query.get("realtime", "1") != "0"

    response = web.StreamResponse(
        status=200,
        reason='OK',
        headers={
            'Content-Type': 'text/event-stream',
            'Cache-Control': 'no-cache',
            'Connection': 'keep-alive',
            'Access-Control-Allow-Origin': '*',
            'X-Accel-Buffering': 'no',
        }
    )
    await response.prepare(request)

    async def send_sse_data(data_dict):
        await response.write(f'data: {json.dumps(data_dict)}\n\n'.encode())

    events, unsubscribe = _collect(controller)
    try:
        controller.run_simulation(sim_id)
        run = controller.animator.run
        token = run.token if run else None
        logger.info(f"Streaming simulation '{sim_id}'")

        def in_flight() -> bool:
            current = controller.animator.run
            return token is not None and not token.cancelled and current is not None and current.token is token

        # Closing events ride on the final message
        while in_flight():
            frame_events = [event_to_dict(e) for e in events]
            events.clear()
            marker = controller.animator.marker_position()
            await send_sse_data({
                "type": "frame",
                "state": controller.animator.state,
                "marker": list(marker) if marker else None,
                "events": frame_events,
            })
            controller.tick(dt)
            if realtime and in_flight():
                await asyncio.sleep(dt)

        final = [event_to_dict(e) for e in events]
        events.clear()
        done_type = "cancelled" if token is not None and token.cancelled else "done"
        await send_sse_data({"type": done_type, "events": final})

    except (ConnectionResetError, BrokenPipeError) as e:
        logger.debug(f"Client disconnected: {e}")
        controller.cancel_simulation()
    finally:
        unsubscribe()

    return response


async def handle_render(request):
    """PNG snapshot of the current scene."""
    controller = _controller(request)
    try:
        width = int(request.query.get("width", 1600))
        height = int(request.query.get("height", 900))
    except ValueError:
        return web.json_response({"error": "width and height must be integers"}, status=400)

    renderer = MapRenderer(width=width, height=height)
    png = renderer.render(controller.scene(), node_types=controller.arch_map.node_types)
    return web.Response(body=png, content_type="image/png")


def create_app(controller: Optional[InteractionController] = None):
    """Create the aiohttp application."""
    app = web.Application()
    app[SESSION_KEY] = MapSession(controller=controller)

    app.router.add_get('/api/status', handle_status)
    app.router.add_post('/api/map', handle_load_map)
    app.router.add_get('/api/map', handle_export_map)
    app.router.add_get('/api/scene', handle_scene)
    app.router.add_post('/api/pointer/{action}', handle_pointer)
    app.router.add_post('/api/wheel', handle_wheel)
    app.router.add_post('/api/layers/reset', handle_reset_layers)
    app.router.add_post('/api/layers/{layer_id}/toggle', handle_toggle_layer)
    app.router.add_post('/api/layers/{layer_id}/preview', handle_preview_layer)
    app.router.add_delete('/api/layers/preview', handle_preview_layer)
    app.router.add_get('/api/nodes/{node_id}', handle_inspect_node)
    app.router.add_get('/api/simulations/{simulation_id}/run', handle_run_simulation)
    app.router.add_get('/api/render.png', handle_render)

    return app


async def main(host: str = '0.0.0.0', port: int = 8766, map_path: Optional[str] = None):
    """Run the web server."""
    controller = InteractionController(parse_file(map_path)) if map_path else None
    app = create_app(controller)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"archmap running at http://{host}:{port}")
    if map_path:
        logger.info(f"Map: {map_path}")

    # Keep running
    while True:
        await asyncio.sleep(3600)


def run():
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description='archmap web backend')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8766, help='Port to listen on')
    parser.add_argument('--map', dest='map_path', help='Map configuration to serve on startup')
    args = parser.parse_args()

    try:
        asyncio.run(main(host=args.host, port=args.port, map_path=args.map_path))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == '__main__':
    run()
