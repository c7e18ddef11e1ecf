"""CNI configuration for the node networking daemon, and node reconciliation."""

from __future__ import annotations

import contextlib
import ipaddress
import os
import string
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

CNI_CONFIG_PATH = "/etc/cni/net.d/10-kindnet.conflist"
"""Where the computed CNI config is written."""

_CNI_CONFIG_TEMPLATE = string.Template(
    """
{
	"cniVersion": "0.3.1",
	"name": "kindnet",
	"plugins": [
	{
		"type": "ptp",
		"ipMasq": false,
		"ipam": {
			"type": "host-local",
			"dataDir": "/run/cni-ipam-state",
			"routes": [
				{
					"dst": "${default_route}"
				}
			],
			"ranges": [
			[
				{
					"subnet": "${pod_cidr}"
				}
			]
		]
		}
	},
	{
		"type": "portmap",
		"capabilities": {
			"portMappings": true
		}
	}
	]
}
"""
)


@dataclass(frozen=True)
class CNIConfigInputs:
    """Values filled into the CNI config template."""

    pod_cidr: str = ""
    default_route: str = ""


def _field(node: Mapping[str, Any], *keys: str) -> Any:
    value: Any = node
    for key in keys:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def _is_ipv6_cidr(cidr: str) -> bool:
    if "/" not in cidr:
        return False
    try:
        return ipaddress.ip_network(cidr, strict=False).version == 6
    except ValueError:
        return False


def compute_cni_config_inputs(node: Mapping[str, Any]) -> CNIConfigInputs:
    """Compute template inputs from a Kubernetes node object."""
    pod_cidr = _field(node, "spec", "podCIDR") or ""
    default_route = "::/0" if _is_ipv6_cidr(pod_cidr) else "0.0.0.0/0"
    return CNIConfigInputs(pod_cidr=pod_cidr, default_route=default_route)


def render_cni_config(inputs: CNIConfigInputs) -> str:
    """Return the CNI config list for inputs."""
    return _CNI_CONFIG_TEMPLATE.substitute(
        pod_cidr=inputs.pod_cidr, default_route=inputs.default_route
    )


@dataclass
class CNIConfigWriter:
    """Writes the CNI config, skipping writes whose inputs did not change.

    Not safe for concurrent use.
    """

    path: str = CNI_CONFIG_PATH
    last_inputs: CNIConfigInputs = field(default_factory=CNIConfigInputs)

    def write(self, inputs: CNIConfigInputs) -> None:
        """Atomically write the config for inputs unless they were last written."""
        if inputs == self.last_inputs:
            return
        target = os.fspath(self.path)
        # an extension CNI ignores, renamed into place once complete
        temp = target + ".temp"
        with open(temp, "w", encoding="utf-8") as handle:
            try:
                handle.write(render_cni_config(inputs))
                handle.flush()
                os.fsync(handle.fileno())
            except BaseException:
                handle.close()
                with contextlib.suppress(OSError):
                    os.remove(temp)
                raise
        os.replace(temp, target)
        self.last_inputs = inputs


def internal_ip(node: Mapping[str, Any]) -> str | None:
    """Return the node's InternalIP address, or None if it has none."""
    for address in _field(node, "status", "addresses") or ():
        if address.get("type") == "InternalIP":
            return address.get("address")
    return None


def make_nodes_reconciler(
    cni_config: CNIConfigWriter,
    host_ip: str,
    sync_route: Callable[[str, str], None],
) -> Callable[[Any], None]:
    """Return a function reconciling a node list.

    The current node (whose InternalIP is host_ip) gets its CNI config
    written; every other node gets ``sync_route(node_ip, pod_cidr)``.
    Nodes without an InternalIP or PodCIDR are skipped. The node list may be
    a Kubernetes list object with ``items`` or an iterable of nodes.
    """

    def reconcile_node(node: Mapping[str, Any]) -> None:
        name = _field(node, "metadata", "name")
        node_ip = internal_ip(node)
        if not node_ip:
            print(f"Node {name} has no Internal IP, ignoring")
            return

        pod_cidr = _field(node, "spec", "podCIDR")
        if not pod_cidr:
            print(f"Node {name} has no CIDR, ignoring")
            return

        if node_ip == host_ip:
            print("handling current node")
            cni_config.write(compute_cni_config_inputs(node))
            return

        print(f"Handling node with IP: {node_ip}")
        print(f"Node {name} has CIDR {pod_cidr} ")
        sync_route(node_ip, pod_cidr)

    def reconcile_nodes(nodes: Any) -> None:
        items: Iterable[Mapping[str, Any]]
        if isinstance(nodes, Mapping):
            items = nodes.get("items") or ()
        else:
            items = nodes
        for node in items:
            reconcile_node(node)

    return reconcile_nodes