"""Handles to cluster node containers, with cached facts about each node."""

from __future__ import annotations

import io
import json
import os
import posixpath
import re
import threading
from dataclasses import dataclass, field
from typing import IO, Any

from kindling.constants import NODE_ROLE_KEY
from kindling.container import ContainerCmder
from kindling.docker import network_inspect
from kindling.exec import (
    Cmd,
    CommandError,
    combined_output_lines,
    command,
    run_logging_output_on_fail,
)

DEFAULT_NETWORK = "bridge"
"""The docker default bridge network."""

HTTP_PROXY = "HTTP_PROXY"
HTTPS_PROXY = "HTTPS_PROXY"
NO_PROXY = "NO_PROXY"

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass
class _NodeCache:
    """Facts already learned about a node; safe to share between threads."""

    kubernetes_version: str = ""
    ipv4: str = ""
    ipv6: str = ""
    ports: dict[int, int] = field(default_factory=dict)
    role: str = ""
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)


class Node:
    """A handle to a node container, identified by container name or ID.

    ``cmder`` creates the ``docker`` commands run on the host; by default
    commands run locally.
    """

    def __init__(self, name: str, cmder: Any = None) -> None:
        self.name = name
        self._host = cmder
        self._cache = _NodeCache()

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Node({self.name!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def _host_command(self, name: str, *args: str) -> Cmd:
        if self._host is None:
            return command(name, *args)
        return self._host.command(name, *args)

    def _inspect(self, format: str) -> list[str]:
        return combined_output_lines(
            self._host_command("docker", "inspect", "-f", format, self.name)
        )

    def cmder(self) -> ContainerCmder:
        """Return a command factory that runs commands on the node."""
        return ContainerCmder(self.name, self._host)

    def command(self, command: str, *args: str) -> Cmd:
        """Return a command that runs on the node."""
        return self.cmder().command(command, *args)

    def copy_to(self, source: str, dest: str) -> None:
        """Copy the host file source to dest on the node."""
        self._host_command("docker", "cp", source, f"{self.name}:{dest}").run()

    def copy_from(self, source: str, dest: str) -> None:
        """Copy source on the node to dest on the host."""
        self._host_command("docker", "cp", f"{self.name}:{source}", dest).run()

    def kube_version(self) -> str:
        """Return the Kubernetes version installed on the node."""
        with self._cache.lock:
            cached = self._cache.kubernetes_version
        if cached:
            return cached
        try:
            lines = combined_output_lines(self.command("cat", "/kind/version"))
        except CommandError as exc:
            raise RuntimeError("failed to get file") from exc
        if len(lines) != 1:
            raise RuntimeError(f"file should only be one line, got {len(lines)} lines")
        version = lines[0]
        with self._cache.lock:
            self._cache.kubernetes_version = version
        return version

    def ip(self) -> tuple[str, str]:
        """Return the node's (IPv4, IPv6) addresses."""
        with self._cache.lock:
            cached = (self._cache.ipv4, self._cache.ipv6)
        if cached[0] and cached[1]:
            return cached
        try:
            lines = self._inspect(
                "{{range .NetworkSettings.Networks}}"
                "{{.IPAddress}},{{.GlobalIPv6Address}}{{end}}"
            )
        except CommandError as exc:
            raise RuntimeError("failed to get container details") from exc
        if len(lines) != 1:
            raise RuntimeError(f"file should only be one line, got {len(lines)} lines")
        ips = lines[0].split(",")
        if len(ips) != 2:
            raise RuntimeError(
                f"container addresses should have 2 values, got {len(ips)} values"
            )
        ipv4, ipv6 = ips
        with self._cache.lock:
            self._cache.ipv4 = ipv4
            self._cache.ipv6 = ipv6
        return ipv4, ipv6

    def ports(self, container_port: int) -> int:
        """Return the host port that container_port is published on."""
        with self._cache.lock:
            cached = self._cache.ports.get(container_port)
        if cached is not None:
            return cached
        try:
            lines = self._inspect(
                "{{(index (index .NetworkSettings.Ports "
                f'"{container_port}/tcp") 0).HostPort}}}}'
            )
        except CommandError as exc:
            raise RuntimeError("failed to get file") from exc
        if len(lines) != 1:
            raise RuntimeError(f"file should only be one line, got {len(lines)} lines")
        text = lines[0]
        if not _INTEGER.fullmatch(text):
            raise RuntimeError(f"failed to get file: invalid port {text!r}")
        host_port = int(text)
        if not _INT32_MIN <= host_port <= _INT32_MAX:
            raise RuntimeError(f"failed to get file: port out of range {text!r}")
        with self._cache.lock:
            self._cache.ports[container_port] = host_port
        return host_port

    def role(self) -> str:
        """Return the node's role label."""
        with self._cache.lock:
            cached = self._cache.role
        if cached:
            return cached
        try:
            lines = self._inspect(
                f"{{{{index .Config.Labels {json.dumps(NODE_ROLE_KEY)}}}}}"
            )
        except CommandError as exc:
            raise RuntimeError(f'failed to get "{NODE_ROLE_KEY}" label') from exc
        if len(lines) != 1:
            raise RuntimeError(
                f'"{NODE_ROLE_KEY}" label should only be one line, got {len(lines)} lines'
            )
        role = lines[0].strip("'")
        with self._cache.lock:
            self._cache.role = role
        return role

    def write_file(self, dest: str, content: str) -> None:
        """Write content to dest on the node, creating its directory."""
        directory = posixpath.dirname(dest) or "."
        try:
            run_logging_output_on_fail(self.command("mkdir", "-p", directory))
        except CommandError as exc:
            raise RuntimeError(f"failed to create directory {dest}") from exc
        cmd = self.command("cp", "/dev/stdin", dest)
        cmd.stdin = content.encode("utf-8")
        cmd.run()

    def image_id(self, image: str) -> str:
        """Return the ID of image if it is present on the node."""
        out = io.BytesIO()
        cmd = self.command("crictl", "inspecti", image)
        cmd.stdout = out
        cmd.run()
        data = json.loads(out.getvalue() or b"null")
        if data is None:
            return ""
        if not isinstance(data, dict):
            raise ValueError("crictl output must be a JSON object")
        status = data.get("status")
        if status is None:
            return ""
        if not isinstance(status, dict):
            raise ValueError("crictl status must be a JSON object")
        image_ref = status.get("id") or ""
        if not isinstance(image_ref, str):
            raise ValueError("crictl image id must be a string")
        return image_ref

    def load_image_archive(self, image: IO[bytes] | bytes) -> None:
        """Import an image archive into the node's k8s.io containerd namespace."""
        cmd = self.command("ctr", "--namespace=k8s.io", "images", "import", "-")
        cmd.stdin = image
        try:
            cmd.run()
        except CommandError as exc:
            raise RuntimeError("failed to load image") from exc

    def enable_ipv6(self) -> None:
        """Enable IPv6 and IPv6 forwarding inside the node."""
        try:
            run_logging_output_on_fail(
                self.command("sysctl", "net.ipv6.conf.all.disable_ipv6=0")
            )
        except CommandError as exc:
            raise RuntimeError("failed to enable ipv6") from exc
        try:
            run_logging_output_on_fail(
                self.command("sysctl", "net.ipv6.conf.all.forwarding=1")
            )
        except CommandError as exc:
            raise RuntimeError("failed to enable ipv6 forwarding") from exc


def from_name(name: str) -> Node:
    """Return a handle to the node with the given container name."""
    return Node(name)


def get_proxy_details() -> dict[str, str]:
    """Return the host proxy environment variables to pass to nodes.

    Each proxy variable set in upper or lower case is returned under both
    spellings. When any is set, the default docker network's subnets are
    prepended to NO_PROXY.
    """
    envs: dict[str, str] = {}
    for name in (HTTP_PROXY, HTTPS_PROXY, NO_PROXY):
        value = os.environ.get(name) or os.environ.get(name.lower()) or ""
        if value:
            envs[name] = value
            envs[name.lower()] = value

    if envs:
        subnets = get_subnets(DEFAULT_NETWORK)
        no_proxy_list = ",".join([*subnets, envs.get(NO_PROXY, "")])
        envs[NO_PROXY] = no_proxy_list
        envs[NO_PROXY.lower()] = no_proxy_list
    return envs


def get_subnets(network_name: str) -> list[str]:
    """Return the subnets of a docker network."""
    format = '{{range (index (index . "IPAM") "Config")}}{{index . "Subnet"}} {{end}}'
    lines = network_inspect([network_name], format)
    if not lines:
        raise RuntimeError(f"no output inspecting network {network_name!r}")
    return lines[0].strip().split(" ")