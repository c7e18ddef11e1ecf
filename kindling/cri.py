"""Container mount and port mapping types with their on-disk encoding."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


class MountPropagation(enum.IntEnum):
    """How mounts propagate between host and container."""

    NONE = 0
    HOST_TO_CONTAINER = 1
    BIDIRECTIONAL = 2


class PortMappingProtocol(enum.IntEnum):
    """Transport protocol of a port mapping."""

    TCP = 0
    UDP = 1
    SCTP = 2


MOUNT_PROPAGATION_VALUE_TO_NAME = {
    MountPropagation.NONE: "None",
    MountPropagation.HOST_TO_CONTAINER: "HostToContainer",
    MountPropagation.BIDIRECTIONAL: "Bidirectional",
}
MOUNT_PROPAGATION_NAME_TO_VALUE = {
    name: value for value, name in MOUNT_PROPAGATION_VALUE_TO_NAME.items()
}

PORT_MAPPING_PROTOCOL_VALUE_TO_NAME = {
    PortMappingProtocol.TCP: "TCP",
    PortMappingProtocol.UDP: "UDP",
    PortMappingProtocol.SCTP: "SCTP",
}
PORT_MAPPING_PROTOCOL_NAME_TO_VALUE = {
    name: value for value, name in PORT_MAPPING_PROTOCOL_VALUE_TO_NAME.items()
}


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    folded = key.casefold()
    for candidate, value in data.items():
        if isinstance(candidate, str) and candidate.casefold() == folded:
            return value
    return None


def _string(data: Mapping[str, Any], key: str) -> str:
    value = _lookup(data, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


def _boolean(data: Mapping[str, Any], key: str) -> bool:
    value = _lookup(data, key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean, got {value!r}")
    return value


def _int32(data: Mapping[str, Any], key: str) -> int:
    value = _lookup(data, key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ValueError(f"{key} out of range: {value}")
    return value


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"expected a mapping, got {type(data).__name__}")
    return data


@dataclass
class Mount:
    """A host path mounted into a container."""

    container_path: str = ""
    host_path: str = ""
    readonly: bool = False
    selinux_relabel: bool = False
    propagation: MountPropagation = MountPropagation.NONE

    def to_dict(self) -> dict[str, Any]:
        """Encode with the propagation written by name and empty fields left out."""
        try:
            name = MOUNT_PROPAGATION_VALUE_TO_NAME[MountPropagation(self.propagation)]
        except ValueError:
            raise ValueError(f"unknown propagation value: {self.propagation}") from None
        result: dict[str, Any] = {"propagation": name}
        if self.container_path:
            result["containerPath"] = self.container_path
        if self.host_path:
            result["hostPath"] = self.host_path
        if self.readonly:
            result["readOnly"] = True
        if self.selinux_relabel:
            result["selinuxRelabel"] = True
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Mount:
        """Decode a mount; an absent propagation falls back to None."""
        data = _require_mapping(data)
        propagation = MountPropagation.NONE
        name = _string(data, "propagation")
        if name:
            try:
                propagation = MOUNT_PROPAGATION_NAME_TO_VALUE[name]
            except KeyError:
                raise ValueError(f"unknown propagation value: {name}") from None
        return cls(
            container_path=_string(data, "containerPath"),
            host_path=_string(data, "hostPath"),
            readonly=_boolean(data, "readOnly"),
            selinux_relabel=_boolean(data, "selinuxRelabel"),
            propagation=propagation,
        )


@dataclass
class PortMapping:
    """A host port mapped to a container port."""

    container_port: int = 0
    host_port: int = 0
    listen_address: str = ""
    protocol: PortMappingProtocol = PortMappingProtocol.TCP

    def to_dict(self) -> dict[str, Any]:
        """Encode with the protocol written by name and empty fields left out."""
        try:
            name = PORT_MAPPING_PROTOCOL_VALUE_TO_NAME[PortMappingProtocol(self.protocol)]
        except ValueError:
            raise ValueError(f"unknown protocol value: {self.protocol}") from None
        result: dict[str, Any] = {"protocol": name}
        if self.container_port:
            result["containerPort"] = self.container_port
        if self.host_port:
            result["hostPort"] = self.host_port
        if self.listen_address:
            result["listenAddress"] = self.listen_address
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PortMapping:
        """Decode a port mapping; the protocol name is matched case-insensitively."""
        data = _require_mapping(data)
        protocol = PortMappingProtocol.TCP
        name = _string(data, "protocol")
        if name:
            try:
                protocol = PORT_MAPPING_PROTOCOL_NAME_TO_VALUE[name.upper()]
            except KeyError:
                raise ValueError(f"unknown protocol value: {name}") from None
        return cls(
            container_port=_int32(data, "containerPort"),
            host_port=_int32(data, "hostPort"),
            listen_address=_string(data, "listenAddress"),
            protocol=protocol,
        )