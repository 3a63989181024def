"""Jupyter-style connection file shared with the Ark kernel."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence

from ..fileio import read_json, write_json_atomic

CONNECTION_FILENAME = "ark-connection.json"
TRANSPORT = "tcp"
SIGNATURE_SCHEME = "hmac-sha256"
CHANNEL_ROLES = ("shell_port", "iopub_port", "stdin_port", "control_port", "hb_port")


@dataclass(frozen=True)
class ConnectionInfo:
    shell_port: int
    iopub_port: int
    stdin_port: int
    control_port: int
    hb_port: int
    ip: str
    key: str = ""
    transport: str = TRANSPORT
    signature_scheme: str = SIGNATURE_SCHEME

    def __post_init__(self) -> None:
        ports = self.ports
        if len(set(ports)) != len(ports):
            raise ValueError(f"Connection ports must be distinct, got {list(ports)}")
        for role, port in zip(CHANNEL_ROLES, ports):
            if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
                raise ValueError(f"{role} must be a TCP port number, got {port!r}")

    @classmethod
    def from_ports(cls, ip: str, ports: Sequence[int], *, key: str = "") -> "ConnectionInfo":
        if len(ports) != len(CHANNEL_ROLES):
            raise ValueError(f"Expected {len(CHANNEL_ROLES)} ports, got {len(ports)}")
        return cls(**dict(zip(CHANNEL_ROLES, ports)), ip=ip, key=key)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ConnectionInfo":
        missing = [name for name in (*CHANNEL_ROLES, "ip") if name not in payload]
        if missing:
            raise ValueError(f"Connection file is missing {', '.join(missing)}")
        return cls(
            **{role: payload[role] for role in CHANNEL_ROLES},
            ip=str(payload["ip"]),
            key=str(payload.get("key", "")),
            transport=str(payload.get("transport", TRANSPORT)),
            signature_scheme=str(payload.get("signature_scheme", SIGNATURE_SCHEME)),
        )

    @property
    def ports(self) -> tuple[int, ...]:
        return tuple(getattr(self, role) for role in CHANNEL_ROLES)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {role: getattr(self, role) for role in CHANNEL_ROLES}
        payload.update(
            {
                "ip": self.ip,
                "key": self.key,
                "transport": self.transport,
                "signature_scheme": self.signature_scheme,
            }
        )
        return payload


def write_connection_file(directory: Path, ip: str, ports: Sequence[int]) -> Path:
    """Write the connection file for `ports` into `directory` and return its path.

    The key is left empty; this file only ever backs a throwaway local session.
    """

    info = ConnectionInfo.from_ports(ip, ports)
    return write_json_atomic(directory / CONNECTION_FILENAME, info.to_dict())


def read_connection_file(path: Path) -> ConnectionInfo:
    payload = read_json(path)
    if not isinstance(payload, dict):
        raise ValueError(f"Connection file {path} must contain a JSON object")
    return ConnectionInfo.from_mapping(payload)
