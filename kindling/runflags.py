"""Turning mounts and port mappings into ``docker run`` arguments, and running containers."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from kindling.cri import Mount, MountPropagation, PortMapping, PortMappingProtocol
from kindling.exec import CommandError, combined_output_lines, command

logger = logging.getLogger(__name__)

_PROPAGATION_FLAGS = {
    MountPropagation.NONE: None,
    MountPropagation.BIDIRECTIONAL: "rshared",
    MountPropagation.HOST_TO_CONTAINER: "rslave",
}

_PROTOCOL_NAMES = {
    PortMappingProtocol.TCP: "TCP",
    PortMappingProtocol.UDP: "UDP",
    PortMappingProtocol.SCTP: "SCTP",
}


def _propagation_flag(mount: Mount) -> str | None:
    try:
        propagation = MountPropagation(mount.propagation)
    except ValueError:
        logger.warning("unknown propagation mode for hostPath %r", mount.host_path)
        return None
    return _PROPAGATION_FLAGS[propagation]


def generate_mount_bindings(*mounts: Mount) -> list[str]:
    """Return a ``--volume=<host>:<container>[:options]`` flag for each mount.

    Options are ``ro`` for read-only mounts, ``Z`` for SELinux relabeling and
    ``rshared`` / ``rslave`` for bidirectional / host-to-container propagation.
    """
    result = []
    for mount in mounts:
        bind = f"{mount.host_path}:{mount.container_path}"
        attrs = []
        if mount.readonly:
            attrs.append("ro")
        if mount.selinux_relabel:
            attrs.append("Z")
        flag = _propagation_flag(mount)
        if flag is not None:
            attrs.append(flag)
        if attrs:
            bind = f"{bind}:{','.join(attrs)}"
        result.append(f"--volume={bind}")
    return result


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def generate_port_mappings(*port_mappings: PortMapping) -> list[str]:
    """Return a ``--publish=[address:]hostPort:containerPort/PROTO`` flag per mapping."""
    result = []
    for mapping in port_mappings:
        if mapping.listen_address:
            binding = _join_host_port(mapping.listen_address, mapping.host_port)
        else:
            binding = str(mapping.host_port)
        try:
            protocol = _PROTOCOL_NAMES[PortMappingProtocol(mapping.protocol)]
        except ValueError:
            protocol = "TCP"
        result.append(f"--publish={binding}:{mapping.container_port}/{protocol}")
    return result


def build_run_args(
    image: str,
    *,
    run_args: Iterable[str] = (),
    container_args: Iterable[str] = (),
    mounts: Iterable[Mount] = (),
    port_mappings: Iterable[PortMapping] = (),
) -> list[str]:
    """Return the ``docker`` arguments for ``run args... image containerArgs...``."""
    args = ["run", *run_args]
    for mount in mounts:
        args.extend(generate_mount_bindings(mount))
    for mapping in port_mappings:
        args.extend(generate_port_mappings(mapping))
    args.append(image)
    args.extend(container_args)
    return args


def run(
    image: str,
    *,
    run_args: Iterable[str] = (),
    container_args: Iterable[str] = (),
    mounts: Iterable[Mount] = (),
    port_mappings: Iterable[PortMapping] = (),
) -> None:
    """Create a container with ``docker run``, logging its output if it fails."""
    args = build_run_args(
        image,
        run_args=run_args,
        container_args=container_args,
        mounts=mounts,
        port_mappings=port_mappings,
    )
    try:
        combined_output_lines(command("docker", *args))
    except CommandError as exc:
        for line in exc.output:
            logger.error(line)
        raise