"""Environment-driven settings for the sidecar LSP probe."""

from __future__ import annotations

import dataclasses
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .logs import DEFAULT_ARK_LOG_LEVEL, normalize_ark_log_level

DEFAULT_TIMEOUT_MS = 15000
DEFAULT_IP_ADDRESS = "127.0.0.1"
DEFAULT_SESSION_MODE = "notebook"
DEFAULT_KERNEL_EXECUTABLE = "ark"
SIDECAR_EXECUTABLE = "vscode-r-ark-sidecar"


def _env(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def parse_timeout_ms(raw: str | None, default: int = DEFAULT_TIMEOUT_MS) -> int:
    try:
        value = int(raw) if raw is not None else 0
    except ValueError:
        return default
    return value if value > 0 else default


def sidecar_executable_name(platform: str = sys.platform) -> str:
    return f"{SIDECAR_EXECUTABLE}.exe" if platform.startswith("win") else SIDECAR_EXECUTABLE


def resolve_sidecar_path(override: str | None = None, *, root: Path | None = None) -> str:
    """Prefer an explicit path, then a local cargo build, then whatever PATH has."""

    if override:
        return override
    exe_name = sidecar_executable_name()
    target_dir = (root or repo_root()) / "ark-sidecar" / "target"
    for profile in ("release", "debug"):
        candidate = target_dir / profile / exe_name
        if candidate.exists():
            return str(candidate)
    return exe_name


@dataclass(frozen=True)
class ProbeConfig:
    kernel_path: str = DEFAULT_KERNEL_EXECUTABLE
    sidecar_path: str = SIDECAR_EXECUTABLE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    ip_address: str = DEFAULT_IP_ADDRESS
    session_mode: str = DEFAULT_SESSION_MODE
    ark_log_level: str = DEFAULT_ARK_LOG_LEVEL

    @property
    def timeout(self) -> float:
        """Timeout in seconds, as asyncio expects it."""

        return self.timeout_ms / 1000.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, *, root: Path | None = None) -> "ProbeConfig":
        env = os.environ if environ is None else environ
        return cls(
            kernel_path=_env(env, "ARK_PATH") or DEFAULT_KERNEL_EXECUTABLE,
            sidecar_path=resolve_sidecar_path(_env(env, "ARK_SIDECAR_PATH"), root=root),
            timeout_ms=parse_timeout_ms(_env(env, "ARK_LSP_TIMEOUT_MS")),
            ip_address=_env(env, "ARK_IP_ADDRESS") or DEFAULT_IP_ADDRESS,
            session_mode=_env(env, "ARK_SESSION_MODE") or DEFAULT_SESSION_MODE,
            ark_log_level=normalize_ark_log_level(_env(env, "ARK_LOG_LEVEL")),
        )

    def with_overrides(self, **changes: Any) -> "ProbeConfig":
        """Apply non-None overrides (typically parsed CLI flags)."""

        updates = {key: value for key, value in changes.items() if value is not None}
        if "ark_log_level" in updates:
            updates["ark_log_level"] = normalize_ark_log_level(updates["ark_log_level"])
        if "timeout_ms" in updates and int(updates["timeout_ms"]) <= 0:
            raise ValueError(f"timeout_ms must be positive, got {updates['timeout_ms']}")
        return dataclasses.replace(self, **updates)
