from __future__ import annotations

from .config import ProbeConfig
from .connection import ConnectionInfo, read_connection_file, write_connection_file
from .errors import (
    MalformedFrame,
    PortAllocationFailure,
    ProbeInterrupted,
    ProcessSpawnFailure,
    ReadinessTimeout,
    RpcConnectionFailure,
    RpcTimeout,
    SidecarExitedPrematurely,
    SidecarProbeError,
    SidecarReportedError,
)
from .framing import FrameDecoder, encode_message
from .ports import allocate_ports, get_free_port
from .probe import ProbeResult, SidecarProbe, run_probe
from .processes import ProcessHandle, ProcessOrchestrator
from .readiness import SidecarEvent, iter_sidecar_events, parse_sidecar_event, wait_for_sidecar_port
from .resources import ProbeResources
from .rpc import FramedRpcClient, response_to
from .scenario import ScenarioDriver, ScenarioResult, TextDocument

__all__ = [
    "ProbeConfig",
    "ConnectionInfo",
    "read_connection_file",
    "write_connection_file",
    "MalformedFrame",
    "PortAllocationFailure",
    "ProbeInterrupted",
    "ProcessSpawnFailure",
    "ReadinessTimeout",
    "RpcConnectionFailure",
    "RpcTimeout",
    "SidecarExitedPrematurely",
    "SidecarProbeError",
    "SidecarReportedError",
    "FrameDecoder",
    "encode_message",
    "allocate_ports",
    "get_free_port",
    "ProbeResult",
    "SidecarProbe",
    "run_probe",
    "ProcessHandle",
    "ProcessOrchestrator",
    "SidecarEvent",
    "iter_sidecar_events",
    "parse_sidecar_event",
    "wait_for_sidecar_port",
    "ProbeResources",
    "FramedRpcClient",
    "response_to",
    "ScenarioDriver",
    "ScenarioResult",
    "TextDocument",
]
