"""Single owner of everything a probe run has to tear down."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from .processes import KILL_GRACE_SECONDS, ProcessHandle
from .rpc import FramedRpcClient

LOGGER = logging.getLogger("krarkode.sidecar.resources")


class ProbeResources:
    """Socket, child processes and scratch directory of one run.

    Slots start empty and are filled as the run progresses. `aclose` releases
    whatever is present and skips the rest. Teardown runs once in its own task:
    cancelling a caller of `aclose` does not stop it, and later calls wait for
    the same task. A failing step does not prevent the steps after it.
    """

    def __init__(self, temp_dir: Optional[Path] = None, *, kill_grace: float = KILL_GRACE_SECONDS) -> None:
        self.temp_dir = temp_dir
        self.kernel: Optional[ProcessHandle] = None
        self.sidecar: Optional[ProcessHandle] = None
        self.client: Optional[FramedRpcClient] = None
        self.kill_grace = kill_grace
        self._teardown: Optional["asyncio.Future[None]"] = None

    @property
    def closed(self) -> bool:
        return self._teardown is not None

    async def aclose(self) -> None:
        if self._teardown is None:
            self._teardown = asyncio.ensure_future(self._release_all())
        await asyncio.shield(self._teardown)

    async def _release_all(self) -> None:
        steps: List[Callable[[], Awaitable[None]]] = [
            self._close_client,
            lambda: self._terminate(self.sidecar),
            lambda: self._terminate(self.kernel),
            self._remove_temp_dir,
        ]
        failures: List[Exception] = []
        for step in steps:
            try:
                await step()
            except Exception as exc:
                LOGGER.warning("Teardown step failed: %s", exc)
                failures.append(exc)
        if failures:
            raise failures[0]

    async def _close_client(self) -> None:
        if self.client is not None:
            await self.client.close()

    async def _terminate(self, handle: Optional[ProcessHandle]) -> None:
        if handle is None:
            return
        code = await handle.terminate(self.kill_grace)
        LOGGER.debug("%s (pid %s) exited with code %s", handle.role, handle.pid, code)

    async def _remove_temp_dir(self) -> None:
        if self.temp_dir is not None:
            shutil.rmtree(self.temp_dir, ignore_errors=True)
            LOGGER.debug("Removed %s", self.temp_dir)

    async def __aenter__(self) -> "ProbeResources":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
