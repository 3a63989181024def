"""Watch the sidecar's stdout for its `lsp_port` / `error` announcement.

The sidecar prints newline-delimited JSON on stdout. Only two shapes matter::

    {"event": "lsp_port", "port": 4711}
    {"event": "error", "message": "..."}

Everything else (log noise, unrelated events, half-written lines) is skipped.
The watcher settles exactly once: on the first event, on process exit, or on
timeout, whichever comes first. After that it stops reading.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Awaitable, Optional, Union

from .errors import ReadinessTimeout, SidecarExitedPrematurely, SidecarReportedError
from .processes import read_lines

LOGGER = logging.getLogger("krarkode.sidecar.readiness")

READY_EVENT = "lsp_port"
ERROR_EVENT = "error"

Line = Union[bytes, str]
Lines = Union[asyncio.StreamReader, AsyncIterable[Line]]


@dataclass(frozen=True)
class SidecarEvent:
    kind: str
    port: Optional[int] = None
    message: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.kind == READY_EVENT


def parse_sidecar_event(line: Line) -> Optional[SidecarEvent]:
    text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
    text = text.strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    event = payload.get("event")
    if event == READY_EVENT:
        port = payload.get("port")
        if isinstance(port, int) and not isinstance(port, bool):
            return SidecarEvent(kind=READY_EVENT, port=port)
        return None
    if event == ERROR_EVENT:
        message = payload.get("message")
        return SidecarEvent(kind=ERROR_EVENT, message=message if isinstance(message, str) and message else "Sidecar error")
    return None


async def iter_sidecar_events(lines: Lines) -> AsyncIterator[SidecarEvent]:
    """Lazily turn raw stdout lines into readiness events, in arrival order."""

    if isinstance(lines, asyncio.StreamReader):
        lines = read_lines(lines)
    async for line in lines:
        event = parse_sidecar_event(line)
        if event is None:
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            if line.strip():
                LOGGER.debug("[sidecar stdout] %s", line.rstrip())
            continue
        yield event


async def _first_event(lines: Lines) -> Optional[SidecarEvent]:
    async with aclosing(iter_sidecar_events(lines)) as events:
        async for event in events:
            return event
    return None


def _settle(event: SidecarEvent) -> int:
    if event.is_ready and event.port is not None:
        return event.port
    raise SidecarReportedError(event.message or "Sidecar error")


async def wait_for_sidecar_port(
    lines: Lines,
    exited: Awaitable[Optional[int]],
    timeout: float,
) -> int:
    """Return the announced LSP port.

    `exited` resolves with the sidecar's exit code. It is shielded, so the
    caller's exit future survives the watcher detaching.
    """

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    reader = asyncio.ensure_future(_first_event(lines))
    exit_watch = asyncio.shield(exited)
    try:
        done, _ = await asyncio.wait({reader, exit_watch}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if reader in done:
            event = reader.result()
            if event is not None:
                return _settle(event)
            # stdout closed without an announcement; the exit status decides.
            done, _ = await asyncio.wait({exit_watch}, timeout=max(0.0, deadline - loop.time()))
            if not done:
                raise ReadinessTimeout(timeout)
            raise SidecarExitedPrematurely(exit_watch.result())
        if exit_watch in done:
            raise SidecarExitedPrematurely(exit_watch.result())
        raise ReadinessTimeout(timeout)
    finally:
        reader.cancel()
        exit_watch.cancel()
        await asyncio.gather(reader, return_exceptions=True)
