"""Configuration loader for archmap.

Reads the static diagram configuration (sites, node types, nodes,
connections, layers, simulations and documentation) from YAML.  JSON
documents are valid YAML, so the viewer's JSON configs load unchanged.

Example:
    title: Campus Network
    layers:
      - {id: http, label: HTTP, color: "#89b4fa"}
      - {id: wan, label: WAN, color: "#f38ba8", group: infra}
    nodes:
      - {id: web1, type: server, x: 0, y: 0, label: Web}
      - {id: db1, type: database, x: 400, y: 0, label: Primary DB}
    connections:
      - {from: web1, to: db1, type: http, label: Queries}
    simulations:
      - {id: read, label: Read path, nodes: [web1, db1]}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import ArchitectureMap

logger = logging.getLogger(__name__)


def parse_yaml(yaml_str: str) -> ArchitectureMap:
    """Parse a YAML (or JSON) string into an ArchitectureMap."""
    try:
        data = yaml.safe_load(yaml_str)
    except yaml.YAMLError as e:
        # JSON indented with tabs is not valid YAML
        try:
            data = json.loads(yaml_str)
        except json.JSONDecodeError:
            raise ValueError(f"Invalid YAML: {e}") from e
    if not data:
        raise ValueError("Empty YAML input")
    if not isinstance(data, dict):
        raise ValueError("Map configuration must be a mapping")

    # Some configs nest everything under a top-level "map" key
    if "map" in data and isinstance(data["map"], dict):
        data = data["map"]

    return parse_dict(data)


def parse_dict(data: dict) -> ArchitectureMap:
    """Validate an already-decoded configuration mapping."""
    try:
        arch_map = ArchitectureMap.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid map configuration: {e}") from e

    _warn_undeclared_tags(arch_map)
    logger.info(
        f"Loaded map '{arch_map.title}': {len(arch_map.nodes)} nodes, "
        f"{len(arch_map.connections)} connections, {len(arch_map.simulations)} simulations"
    )
    return arch_map


def parse_file(path: str) -> ArchitectureMap:
    """Parse a YAML or JSON file into an ArchitectureMap."""
    content = Path(path).read_text()
    return parse_yaml(content)


def _warn_undeclared_tags(arch_map: ArchitectureMap) -> None:
    """Connections tagged with an undeclared layer can never become visible."""
    declared = arch_map.layer_ids()
    if not declared:
        return
    missing = set()
    for conn in arch_map.connections:
        missing.update(tag for tag in conn.tags() if tag not in declared)
    for tag in sorted(missing):
        logger.warning(f"Connections use undeclared layer '{tag}'; they will stay hidden")


def map_to_yaml(arch_map: ArchitectureMap) -> str:
    """Serialize an ArchitectureMap back to YAML, current node positions
    included.  Unset optional fields are omitted."""
    data = {"title": arch_map.title}

    if arch_map.sites:
        data["sites"] = [site.model_dump() for site in arch_map.sites]
    if arch_map.node_types:
        data["nodeTypes"] = {
            name: node_type.model_dump(by_alias=True, exclude_none=True)
            for name, node_type in arch_map.node_types.items()
        }

    data["layers"] = [layer.model_dump(exclude_none=True) for layer in arch_map.layers]

    data["nodes"] = []
    for node in arch_map.nodes:
        node_data = node.model_dump(by_alias=True, exclude_none=True)
        if not node_data.get("sub"):
            node_data.pop("sub", None)
        data["nodes"].append(node_data)

    data["connections"] = []
    for conn in arch_map.connections:
        conn_data = conn.model_dump(by_alias=True, exclude_none=True)
        # Defaults stay implicit
        if not conn_data.get("dash"):
            conn_data.pop("dash", None)
        if not conn_data.get("isWan"):
            conn_data.pop("isWan", None)
        data["connections"].append(conn_data)

    if arch_map.simulations:
        data["simulations"] = [sim.model_dump() for sim in arch_map.simulations]
    if arch_map.documentation:
        data["documentation"] = {
            name: doc.model_dump() for name, doc in arch_map.documentation.items()
        }

    return yaml.dump(data, default_flow_style=False, sort_keys=False)
