"""Failure kinds raised while probing the Ark kernel + sidecar pipeline."""

from __future__ import annotations


class SidecarProbeError(RuntimeError):
    pass


class PortAllocationFailure(SidecarProbeError):
    def __init__(self, host: str, reason: object) -> None:
        super().__init__(f"Failed to allocate a free port on {host}: {reason}")
        self.host = host


class ProcessSpawnFailure(SidecarProbeError):
    def __init__(self, role: str, executable: str, reason: object) -> None:
        super().__init__(f"Failed to spawn {role} '{executable}': {reason}")
        self.role = role
        self.executable = executable


class ReadinessTimeout(SidecarProbeError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Timed out waiting for sidecar port after {timeout:g}s.")
        self.timeout = timeout


class SidecarReportedError(SidecarProbeError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Sidecar reported an error: {message}")
        self.message = message


class SidecarExitedPrematurely(SidecarProbeError):
    def __init__(self, returncode: int | None) -> None:
        code = "null" if returncode is None else returncode
        super().__init__(f"Sidecar exited with code {code} before announcing a port.")
        self.returncode = returncode


class RpcTimeout(SidecarProbeError):
    def __init__(self, timeout: float, description: str = "LSP response") -> None:
        super().__init__(f"Timed out waiting for {description} after {timeout:g}s.")
        self.timeout = timeout


class RpcConnectionFailure(SidecarProbeError):
    def __init__(self, host: str, port: int, reason: object) -> None:
        super().__init__(f"Could not connect to LSP endpoint {host}:{port}: {reason}")
        self.host = host
        self.port = port


class MalformedFrame(ValueError):
    """Unparseable header or body; absorbed by the framing layer."""


class ProbeInterrupted(SidecarProbeError):
    def __init__(self, signum: int) -> None:
        super().__init__(f"Interrupted by signal {signum}")
        self.signum = signum
