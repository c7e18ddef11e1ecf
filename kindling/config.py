"""Cluster configuration types (kind.sigs.k8s.io/v1alpha3) and their defaults."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from kindling.cri import Mount, PortMapping

DEFAULT_IMAGE = (
    "kindest/node:v1.15.3"
    "@sha256:27e388752544890482a86b90d8ac50fcfa63a2e8656a96ec5337b902ec8e5157"
)
"""The default node image."""

GROUP_NAME = "kind.sigs.k8s.io"
"""The API group of the configuration."""

VERSION = "v1alpha3"
"""The API version of the configuration."""

API_VERSION = f"{GROUP_NAME}/{VERSION}"
"""The apiVersion value identifying this configuration format."""

KIND = "Cluster"
"""The kind value identifying a cluster configuration."""


class NodeRole(str, enum.Enum):
    """The role of a node in the cluster."""

    CONTROL_PLANE = "control-plane"
    WORKER = "worker"


class ClusterIPFamily(str, enum.Enum):
    """The IP family of the cluster network."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"


@dataclass
class Node:
    """A node container and the role it plays in the cluster."""

    role: NodeRole | str = ""
    image: str = ""
    extra_mounts: list[Mount] = field(default_factory=list)
    extra_port_mappings: list[PortMapping] = field(default_factory=list)


@dataclass
class Networking:
    """Cluster wide network settings."""

    ip_family: ClusterIPFamily | str = ""
    api_server_port: int = 0
    api_server_address: str = ""
    pod_subnet: str = ""
    service_subnet: str = ""
    disable_default_cni: bool = False


@dataclass
class PatchJSON6902:
    """An inline JSON 6902 patch and the resource it targets."""

    group: str = ""
    version: str = ""
    kind: str = ""
    name: str = ""
    namespace: str = ""
    patch: str = ""


@dataclass
class Cluster:
    """A cluster configuration."""

    kind: str = ""
    api_version: str = ""
    nodes: list[Node] = field(default_factory=list)
    networking: Networking = field(default_factory=Networking)
    kubeadm_config_patches: list[str] = field(default_factory=list)
    kubeadm_config_patches_json6902: list[PatchJSON6902] = field(default_factory=list)


def set_defaults_cluster(obj: Cluster) -> None:
    """Fill unset cluster fields with their defaults, in place."""
    if not obj.nodes:
        obj.nodes = [Node(image=DEFAULT_IMAGE, role=NodeRole.CONTROL_PLANE)]

    net = obj.networking
    if not net.ip_family:
        net.ip_family = ClusterIPFamily.IPV4
    ipv6 = net.ip_family == ClusterIPFamily.IPV6

    if not net.api_server_address:
        net.api_server_address = "::1" if ipv6 else "127.0.0.1"
    if not net.pod_subnet:
        net.pod_subnet = "fd00:10:244::/64" if ipv6 else "10.244.0.0/16"
    if not net.service_subnet:
        net.service_subnet = "fd00:10:96::/112" if ipv6 else "10.96.0.0/12"


def set_defaults_node(obj: Node) -> None:
    """Fill unset node fields with their defaults, in place."""
    if not obj.image:
        obj.image = DEFAULT_IMAGE
    if not obj.role:
        obj.role = NodeRole.CONTROL_PLANE