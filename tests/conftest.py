"""Shared fixtures: a small four-node map exercising every connector case."""

import pytest

from archmap.interaction import InteractionController
from archmap.parser import parse_yaml

# Connection indices:
#   0  web1 -> db1     sql            straight horizontal
#   1  db1  -> cache   http           vertical
#   2  db1  -> remote  sql + wan      horizontal
#   3  web1 -> ghost   http           dangling, never rendered
#   4  cache -> web1   mgmt           hidden at load (mgmt inactive)
SAMPLE_MAP = """
title: Test Map
layers:
  - {id: http, label: HTTP, color: "#89b4fa"}
  - {id: sql, label: SQL, color: "#a6e3a1"}
  - {id: wan, label: WAN, color: "#f38ba8", group: infra}
  - {id: mgmt, label: Management, color: "#fab387", active: false}
nodeTypes:
  server: {icon: fa-server, headerBg: "#313244", headerColor: "#cdd6f4"}
nodes:
  - {id: web1, type: server, x: 0, y: 0, w: 100, h: 60, label: Web, sub: nginx}
  - {id: db1, type: database, x: 300, y: 0, w: 100, h: 60, label: Primary DB}
  - {id: cache, type: cache, x: 300, y: 300, w: 100, h: 60}
  - {id: remote, type: server, x: 900, y: 0, w: 100, h: 60, label: DR Site}
connections:
  - {from: web1, to: db1, type: sql, label: Queries, detail: "TCP 5432"}
  - {from: db1, to: cache, type: http, label: Warmup}
  - {from: db1, to: remote, type: sql, isWan: true, label: Replication, dash: true}
  - {from: web1, to: ghost, type: http, label: Dangling}
  - {from: cache, to: web1, type: mgmt, color: "#ff0000", label: Metrics}
simulations:
  - {id: write, label: Write path, nodes: [web1, db1, cache]}
  - {id: replicate, label: Replication, nodes: [web1, db1, remote]}
  - {id: via-mgmt, label: Management, nodes: [cache, web1, db1]}
  - {id: orphan, label: Orphan hop, nodes: [web1, remote, db1]}
documentation:
  server:
    role: Application server
    blocks:
      - {title: Runtime, content: Python 3}
"""


@pytest.fixture
def arch_map():
    return parse_yaml(SAMPLE_MAP)


@pytest.fixture
def controller(arch_map):
    return InteractionController(arch_map)


@pytest.fixture
def events(controller):
    """Every event the controller emits, in order."""
    received = []
    controller.subscribe(received.append)
    return received
