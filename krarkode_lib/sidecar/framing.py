"""`Content-Length` framing for JSON-RPC over a byte stream (LSP base protocol)."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List

from .errors import MalformedFrame

LOGGER = logging.getLogger("krarkode.sidecar.framing")

HEADER_TERMINATOR = b"\r\n\r\n"
_CONTENT_LENGTH = re.compile(rb"Content-Length:[ \t]*(\d+)", re.IGNORECASE)


def message_payload(message: Any) -> Any:
    """Plain JSON value for `message`; pydantic models (mcp.types) are dumped by alias."""

    if hasattr(message, "model_dump"):
        return message.model_dump(by_alias=True, mode="json")
    return message


def encode_message(message: Any) -> bytes:
    body = json.dumps(message_payload(message), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


def parse_content_length(header: bytes) -> int:
    match = _CONTENT_LENGTH.search(header)
    if not match:
        raise MalformedFrame(f"Missing Content-Length in header {bytes(header)[:80]!r}")
    return int(match.group(1))


class FrameDecoder:
    """Incremental decoder: feed it chunks, get back complete decoded messages.

    Partial frames stay buffered between calls. `_scan_from` remembers where
    the terminator search can resume so a slowly arriving header or body is not
    rescanned from the start on every chunk.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._scan_from = 0

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[Any]:
        self._buffer.extend(chunk)
        messages: List[Any] = []
        while True:
            header_end = self._buffer.find(HEADER_TERMINATOR, self._scan_from)
            if header_end < 0:
                # keep a partial terminator at the tail scannable
                self._scan_from = max(0, len(self._buffer) - (len(HEADER_TERMINATOR) - 1))
                break
            body_start = header_end + len(HEADER_TERMINATOR)
            try:
                length = parse_content_length(self._buffer[:header_end])
            except MalformedFrame as exc:
                LOGGER.debug("Skipping frame: %s", exc)
                del self._buffer[:body_start]
                self._scan_from = 0
                continue
            body_end = body_start + length
            if len(self._buffer) < body_end:
                self._scan_from = header_end
                break
            body = bytes(self._buffer[body_start:body_end])
            del self._buffer[:body_end]
            self._scan_from = 0
            try:
                messages.append(json.loads(body.decode("utf-8")))
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                LOGGER.debug("Dropping undecodable %d-byte body: %s", length, exc)
        return messages
