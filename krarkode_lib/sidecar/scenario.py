"""The fixed LSP conversation used to prove the sidecar endpoint works."""

from __future__ import annotations

import itertools
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from mcp import types

from .rpc import FramedRpcClient, response_to

LOGGER = logging.getLogger("krarkode.sidecar.scenario")

SYNTHETIC_DOCUMENT_NAME = "sidecar-test.R"
SYNTHETIC_DOCUMENT_TEXT = "x <- 1\n"


@dataclass(frozen=True)
class TextDocument:
    uri: str
    language_id: str
    version: int
    text: str

    @classmethod
    def from_path(cls, path: Path, *, language_id: str = "r", version: int = 1) -> "TextDocument":
        return cls(
            uri=path.resolve().as_uri(),
            language_id=language_id,
            version=version,
            text=path.read_text(encoding="utf-8"),
        )

    def to_item(self) -> Dict[str, Any]:
        return {
            "uri": self.uri,
            "languageId": self.language_id,
            "version": self.version,
            "text": self.text,
        }


def write_synthetic_document(directory: Path) -> TextDocument:
    path = directory / SYNTHETIC_DOCUMENT_NAME
    path.write_text(SYNTHETIC_DOCUMENT_TEXT, encoding="utf-8")
    return TextDocument.from_path(path)


@dataclass(frozen=True)
class ScenarioResult:
    initialize: Dict[str, Any]
    shutdown: Dict[str, Any]
    opened: List[str]


class ScenarioDriver:
    """initialize -> initialized -> didOpen -> shutdown -> exit, no retries."""

    def __init__(self, client: FramedRpcClient, *, timeout: float, process_id: Optional[int] = None) -> None:
        self._client = client
        self._timeout = timeout
        self._process_id = os.getpid() if process_id is None else process_id
        self._ids = itertools.count(1)

    async def run(self, root_uri: str, documents: Iterable[TextDocument]) -> ScenarioResult:
        initialize = await self.request(
            "initialize",
            {"processId": self._process_id, "rootUri": root_uri, "capabilities": {}},
        )
        await self.notify("initialized", {})
        opened: List[str] = []
        for document in documents:
            await self.notify("textDocument/didOpen", {"textDocument": document.to_item()})
            opened.append(document.uri)
        shutdown = await self.request("shutdown", None)
        await self.notify("exit", None)
        return ScenarioResult(initialize=initialize, shutdown=shutdown, opened=opened)

    async def request(self, method: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        request_id = next(self._ids)
        pending = self._client.wait_for(
            response_to(request_id),
            self._timeout,
            description=f"'{method}' response (id {request_id})",
        )
        try:
            await self._client.send(
                types.JSONRPCRequest(jsonrpc="2.0", id=request_id, method=method, params=params),
                timeout=self._timeout,
            )
        except BaseException:
            pending.cancel()
            raise
        response = await pending
        if "error" in response:
            LOGGER.warning("'%s' returned an error: %s", method, response["error"])
        else:
            LOGGER.debug("'%s' answered (id %s)", method, request_id)
        return response

    async def notify(self, method: str, params: Optional[Dict[str, Any]]) -> None:
        await self._client.send(
            types.JSONRPCNotification(jsonrpc="2.0", method=method, params=params),
            timeout=self._timeout,
        )
