"""Spawn Ark and the sidecar with captured pipes and forwarded stderr."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Mapping, Optional, TextIO

from .config import ProbeConfig
from .errors import ProcessSpawnFailure
from .logs import format_ark_rust_log, format_sidecar_rust_log, parse_sidecar_json_log

LOGGER = logging.getLogger("krarkode.sidecar.processes")

KILL_GRACE_SECONDS = 2.0
STREAM_LIMIT = 1024 * 1024

LineRenderer = Callable[[str], str]


async def read_lines(stream: asyncio.StreamReader) -> AsyncIterator[bytes]:
    """Yield newline-terminated lines; lines longer than the stream limit are dropped."""

    skipping = False
    while True:
        try:
            line = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            if exc.partial and not skipping:
                yield exc.partial
            return
        except asyncio.LimitOverrunError as exc:
            # the oversized bytes stay buffered until read; drop them and the rest of the line
            await stream.readexactly(exc.consumed)
            if not skipping:
                LOGGER.debug("Dropping line longer than %d bytes", exc.consumed)
            skipping = True
            continue
        if skipping:
            skipping = False
            continue
        yield line


def render_sidecar_line(line: str) -> str:
    parsed = parse_sidecar_json_log(line)
    if parsed is None:
        return line
    return f"{parsed.level.upper()} {parsed.message}"


async def forward_stream(
    stream: asyncio.StreamReader,
    label: str,
    sink: TextIO | None = None,
    *,
    render: LineRenderer | None = None,
) -> None:
    """Copy `stream` line by line to `sink` (stderr by default) with a `[label]` prefix."""

    async for raw in read_lines(stream):
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if not line.strip():
            continue
        text = render(line) if render else line
        target = sink or sys.stderr
        target.write(f"[{label}] {text}\n")
        target.flush()


async def drain_stream(stream: asyncio.StreamReader, label: str) -> None:
    async for raw in read_lines(stream):
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if line:
            LOGGER.debug("[%s stdout] %s", label, line)


@dataclass
class ProcessHandle:
    role: str
    argv: List[str]
    process: asyncio.subprocess.Process
    stdout: asyncio.StreamReader
    exited: "asyncio.Future[int]"
    pumps: List["asyncio.Task[None]"] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    def drain_stdout(self) -> None:
        """Hand stdout to a background reader so the child never blocks on a full pipe."""

        self.pumps.append(asyncio.ensure_future(drain_stream(self.stdout, self.role)))

    async def terminate(self, grace: float = KILL_GRACE_SECONDS) -> Optional[int]:
        """Kill the process if it is still running and wait up to `grace` for it to exit."""

        if self.running:
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
        try:
            await asyncio.wait_for(asyncio.shield(self.exited), timeout=grace)
        except asyncio.TimeoutError:
            LOGGER.warning("%s (pid %s) did not exit within %.1fs of SIGKILL", self.role, self.pid, grace)
            self.exited.cancel()
        for pump in self.pumps:
            pump.cancel()
        await asyncio.gather(*self.pumps, return_exceptions=True)
        self.pumps.clear()
        return self.returncode


class ProcessOrchestrator:
    def __init__(
        self,
        config: ProbeConfig,
        *,
        stderr_sink: TextIO | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self._stderr_sink = stderr_sink
        self._environ = dict(os.environ if environ is None else environ)

    def kernel_command(self, connection_file: Path) -> List[str]:
        return [
            self.config.kernel_path,
            "--connection_file",
            str(connection_file),
            "--session-mode",
            self.config.session_mode,
        ]

    def sidecar_command(self, connection_file: Path) -> List[str]:
        return [
            self.config.sidecar_path,
            "--connection-file",
            str(connection_file),
            "--ip-address",
            self.config.ip_address,
            "--timeout-ms",
            str(self.config.timeout_ms),
        ]

    def kernel_env(self, connection_file: Path) -> Dict[str, str]:
        env = dict(self._environ)
        env["ARK_CONNECTION_FILE"] = str(connection_file)
        rust_log = format_ark_rust_log(self.config.ark_log_level)
        if rust_log:
            env["RUST_LOG"] = rust_log
        return env

    def sidecar_env(self) -> Dict[str, str]:
        env = dict(self._environ)
        rust_log = format_sidecar_rust_log(self.config.ark_log_level)
        if rust_log:
            env["RUST_LOG"] = rust_log
            LOGGER.debug("Sidecar log level set to %s", rust_log)
        return env

    async def spawn_kernel(self, connection_file: Path) -> ProcessHandle:
        handle = await self._spawn("kernel", self.kernel_command(connection_file), self.kernel_env(connection_file))
        handle.drain_stdout()
        return handle

    async def spawn_sidecar(self, connection_file: Path) -> ProcessHandle:
        # stdout stays unread here; the readiness watcher consumes it.
        return await self._spawn(
            "sidecar",
            self.sidecar_command(connection_file),
            self.sidecar_env(),
            render=render_sidecar_line,
        )

    async def _spawn(
        self,
        role: str,
        argv: List[str],
        env: Mapping[str, str],
        *,
        render: LineRenderer | None = None,
    ) -> ProcessHandle:
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(env),
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            raise ProcessSpawnFailure(role, argv[0], exc) from exc
        if process.stdout is None or process.stderr is None:
            process.kill()
            await process.wait()
            raise ProcessSpawnFailure(role, argv[0], "stdio pipes were not created")
        LOGGER.info("Started %s (pid %s): %s", role, process.pid, shlex.join(argv))
        handle = ProcessHandle(
            role=role,
            argv=list(argv),
            process=process,
            stdout=process.stdout,
            exited=asyncio.ensure_future(process.wait()),
        )
        handle.pumps.append(
            asyncio.ensure_future(forward_stream(process.stderr, role, self._stderr_sink, render=render))
        )
        return handle
