"""Selecting cluster nodes by their role."""

from __future__ import annotations

from collections.abc import Iterable

from kindling.constants import (
    CONTROL_PLANE_NODE_ROLE_VALUE,
    EXTERNAL_LOAD_BALANCER_NODE_ROLE_VALUE,
)
from kindling.node import Node


def select_nodes_by_role(all_nodes: Iterable[Node], role: str) -> list[Node]:
    """Return the nodes whose role is role."""
    return [node for node in all_nodes if node.role() == role]


def external_load_balancer_node(all_nodes: Iterable[Node]) -> Node | None:
    """Return the external load balancer node, or None if there is none."""
    nodes = select_nodes_by_role(all_nodes, EXTERNAL_LOAD_BALANCER_NODE_ROLE_VALUE)
    if not nodes:
        return None
    if len(nodes) > 1:
        raise RuntimeError(
            f"unexpected number of {EXTERNAL_LOAD_BALANCER_NODE_ROLE_VALUE} "
            f"nodes {len(nodes)}"
        )
    return nodes[0]


def control_plane_nodes(all_nodes: Iterable[Node]) -> list[Node]:
    """Return the control plane nodes sorted by name; the first bootstraps."""
    nodes = select_nodes_by_role(all_nodes, CONTROL_PLANE_NODE_ROLE_VALUE)
    return sorted(nodes, key=lambda node: node.name)


def _require_control_plane(all_nodes: Iterable[Node]) -> list[Node]:
    nodes = control_plane_nodes(all_nodes)
    if not nodes:
        raise RuntimeError(
            f"expected at least one {CONTROL_PLANE_NODE_ROLE_VALUE} node"
        )
    return nodes


def bootstrap_control_plane_node(all_nodes: Iterable[Node]) -> Node:
    """Return the bootstrap control plane node."""
    return _require_control_plane(all_nodes)[0]


def secondary_control_plane_nodes(all_nodes: Iterable[Node]) -> list[Node]:
    """Return the control plane nodes other than the bootstrap one."""
    return _require_control_plane(all_nodes)[1:]