"""Minimal framed JSON-RPC client for the sidecar's LSP endpoint."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .errors import RpcConnectionFailure, RpcTimeout
from .framing import FrameDecoder, encode_message

LOGGER = logging.getLogger("krarkode.sidecar.rpc")

READ_CHUNK = 64 * 1024

Predicate = Callable[[Any], bool]


def response_to(request_id: int | str) -> Predicate:
    """Match the response (not a server request) carrying `request_id`."""

    def _matches(message: Any) -> bool:
        if not isinstance(message, dict) or "method" in message:
            return False
        value = message.get("id")
        return value == request_id and type(value) is type(request_id)

    return _matches


@dataclass
class _PendingWait:
    predicate: Predicate
    future: "asyncio.Future[Any]"
    description: str
    timer: Optional[asyncio.TimerHandle] = None


class FramedRpcClient:
    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._decoder = FrameDecoder()
        self._pending: List[_PendingWait] = []
        self._read_task: Optional["asyncio.Task[None]"] = None
        self._closed = False

    @classmethod
    async def connect(cls, host: str, port: int, *, timeout: float | None = None) -> "FramedRpcClient":
        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
        except (OSError, asyncio.TimeoutError) as exc:
            raise RpcConnectionFailure(host, port, exc) from exc
        client = cls(reader, writer)
        client.start()
        LOGGER.debug("Connected to LSP endpoint %s:%s", host, port)
        return client

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._read_task is None:
            self._read_task = asyncio.ensure_future(self._read_loop())

    async def send(self, message: Any, *, timeout: float | None = None) -> None:
        """Write one framed message; `timeout` bounds the wait for the peer to take it."""

        if self._closed:
            raise RuntimeError("LSP connection is closed")
        self._writer.write(encode_message(message))
        try:
            await asyncio.wait_for(self._writer.drain(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise RpcTimeout(timeout or 0.0, "LSP write to drain") from exc

    def wait_for(self, predicate: Predicate, timeout: float, *, description: str = "LSP response") -> "asyncio.Future[Any]":
        """Future for the first inbound message matching `predicate`.

        Register the wait before sending the request it answers: `send`
        yields to the loop, and the reply may be dispatched meanwhile.
        """

        loop = asyncio.get_running_loop()
        wait = _PendingWait(predicate=predicate, future=loop.create_future(), description=description)
        wait.timer = loop.call_later(timeout, self._expire, wait, timeout)
        self._pending.append(wait)
        # covers cancellation by the caller as well
        wait.future.add_done_callback(lambda _future: self._release(wait))
        return wait.future

    def _release(self, wait: _PendingWait) -> None:
        if wait.timer is not None:
            wait.timer.cancel()
            wait.timer = None
        try:
            self._pending.remove(wait)
        except ValueError:
            pass

    def _expire(self, wait: _PendingWait, timeout: float) -> None:
        self._release(wait)
        if not wait.future.done():
            wait.future.set_exception(RpcTimeout(timeout, wait.description))

    def _dispatch(self, message: Any) -> None:
        for wait in list(self._pending):
            if wait.future.done():
                continue
            try:
                matched = wait.predicate(message)
            except Exception as exc:
                self._release(wait)
                wait.future.set_exception(exc)
                continue
            if matched:
                self._release(wait)
                wait.future.set_result(message)

    async def _read_loop(self) -> None:
        try:
            while True:
                chunk = await self._reader.read(READ_CHUNK)
                if not chunk:
                    LOGGER.debug("LSP connection closed by peer")
                    return
                for message in self._decoder.feed(chunk):
                    self._dispatch(message)
        except (ConnectionError, OSError) as exc:
            LOGGER.debug("LSP connection read failed: %s", exc)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for wait in list(self._pending):
            self._release(wait)
            wait.future.cancel()
        if self._read_task is not None:
            self._read_task.cancel()
            await asyncio.gather(self._read_task, return_exceptions=True)
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass
