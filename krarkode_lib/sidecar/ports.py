"""Free local port discovery for the kernel connection file."""

from __future__ import annotations

import asyncio
import logging
from typing import List

from .errors import PortAllocationFailure

LOGGER = logging.getLogger("krarkode.sidecar.ports")

# The OS may hand a just-released port straight back; retry that many times.
MAX_DUPLICATE_RETRIES = 20


async def get_free_port(host: str) -> int:
    """Bind an ephemeral listener on `host`, read its port, then release it."""

    loop = asyncio.get_running_loop()
    try:
        server = await loop.create_server(asyncio.Protocol, host, 0)
    except OSError as exc:
        raise PortAllocationFailure(host, exc) from exc
    try:
        sockets = server.sockets or ()
        if not sockets:
            raise PortAllocationFailure(host, "listener exposed no socket")
        return int(sockets[0].getsockname()[1])
    finally:
        server.close()
        await server.wait_closed()


async def allocate_ports(host: str, count: int) -> List[int]:
    """Return `count` distinct ports, allocated one after another."""

    if count < 1:
        raise ValueError(f"count must be positive, got {count}")
    ports: List[int] = []
    duplicates = 0
    while len(ports) < count:
        port = await get_free_port(host)
        if port in ports:
            duplicates += 1
            if duplicates > MAX_DUPLICATE_RETRIES:
                raise PortAllocationFailure(host, f"port {port} was handed out repeatedly")
            continue
        ports.append(port)
    LOGGER.debug("Allocated ports on %s: %s", host, ports)
    return ports
