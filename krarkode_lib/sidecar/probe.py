"""End-to-end probe: Ark + sidecar up, one LSP session, everything down."""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, TextIO

from .config import ProbeConfig
from .connection import CHANNEL_ROLES, write_connection_file
from .ports import allocate_ports
from .processes import ProcessOrchestrator
from .readiness import wait_for_sidecar_port
from .resources import ProbeResources
from .rpc import FramedRpcClient
from .scenario import ScenarioDriver, ScenarioResult, write_synthetic_document

LOGGER = logging.getLogger("krarkode.sidecar.probe")

TEMP_DIR_PREFIX = "vscode-r-ark-"


@dataclass(frozen=True)
class ProbeResult:
    lsp_port: int
    temp_dir: Path
    connection_file: Path
    scenario: ScenarioResult


class SidecarProbe:
    def __init__(
        self,
        config: ProbeConfig,
        *,
        orchestrator: Optional[ProcessOrchestrator] = None,
        stderr_sink: TextIO | None = None,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator or ProcessOrchestrator(config, stderr_sink=stderr_sink)
        self.resources: Optional[ProbeResources] = None

    async def run(self) -> ProbeResult:
        temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX))
        resources = ProbeResources(temp_dir)
        self.resources = resources
        try:
            return await self._run(resources, temp_dir)
        finally:
            await resources.aclose()

    async def _run(self, resources: ProbeResources, temp_dir: Path) -> ProbeResult:
        config = self.config
        ports = await allocate_ports(config.ip_address, len(CHANNEL_ROLES))
        connection_file = write_connection_file(temp_dir, config.ip_address, ports)
        document = write_synthetic_document(temp_dir)
        LOGGER.debug("Connection file %s (ports %s)", connection_file, ports)

        resources.kernel = await self.orchestrator.spawn_kernel(connection_file)
        resources.sidecar = await self.orchestrator.spawn_sidecar(connection_file)

        lsp_port = await wait_for_sidecar_port(resources.sidecar.stdout, resources.sidecar.exited, config.timeout)
        resources.sidecar.drain_stdout()
        LOGGER.info("Sidecar announced LSP port %s", lsp_port)

        resources.client = await FramedRpcClient.connect(config.ip_address, lsp_port, timeout=config.timeout)
        driver = ScenarioDriver(resources.client, timeout=config.timeout)
        scenario = await driver.run(temp_dir.resolve().as_uri(), [document])
        return ProbeResult(
            lsp_port=lsp_port,
            temp_dir=temp_dir,
            connection_file=connection_file,
            scenario=scenario,
        )


async def run_probe(config: ProbeConfig, *, stderr_sink: TextIO | None = None) -> ProbeResult:
    return await SidecarProbe(config, stderr_sink=stderr_sink).run()
