"""Command line entry point for the Ark sidecar LSP smoke test."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from typing import List, Sequence

from .config import ProbeConfig
from .errors import ProbeInterrupted, SidecarProbeError
from .logs import ARK_LOG_LEVELS
from .probe import ProbeResult, SidecarProbe

LOGGER = logging.getLogger("krarkode.sidecar")

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_log_level(name: str | None) -> int:
    return LOG_LEVELS.get((name or "").strip().upper(), logging.INFO)


def configure_logging(level: str | None) -> None:
    logging.basicConfig(
        level=resolve_log_level(level or os.getenv("ARK_PROBE_LOG_LEVEL")),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Start Ark and the sidecar, wait for the LSP port, and run initialize/shutdown against it."
    )
    ap.add_argument("--ark-path", help="Kernel executable (default ${ARK_PATH} or 'ark')")
    ap.add_argument("--sidecar-path", help="Sidecar executable (default ${ARK_SIDECAR_PATH} or the local cargo build)")
    ap.add_argument("--timeout-ms", type=int, help="Readiness and per-request timeout (default ${ARK_LSP_TIMEOUT_MS} or 15000)")
    ap.add_argument("--ip-address", help="Bind address (default ${ARK_IP_ADDRESS} or 127.0.0.1)")
    ap.add_argument("--session-mode", help="Kernel session mode (default ${ARK_SESSION_MODE} or notebook)")
    ap.add_argument("--ark-log-level", choices=ARK_LOG_LEVELS, help="RUST_LOG level for the children (default inherit)")
    ap.add_argument(
        "--log-level",
        type=str.upper,
        choices=tuple(LOG_LEVELS),
        help="Log level for this script (default ${ARK_PROBE_LOG_LEVEL} or INFO)",
    )
    return ap.parse_args(argv)


def build_config(args: argparse.Namespace) -> ProbeConfig:
    return ProbeConfig.from_env().with_overrides(
        kernel_path=args.ark_path,
        sidecar_path=args.sidecar_path,
        timeout_ms=args.timeout_ms,
        ip_address=args.ip_address,
        session_mode=args.session_mode,
        ark_log_level=args.ark_log_level,
    )


async def _run_until_signalled(probe: SidecarProbe) -> ProbeResult:
    """Run the probe; the first SIGTERM cancels it so teardown still happens.

    Later signals are ignored so they cannot interrupt that teardown.
    """

    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    received: List[int] = []
    installed: List[int] = []

    def _on_signal(signum: int) -> None:
        if received:
            LOGGER.warning("Signal %s ignored; teardown in progress", signum)
            return
        received.append(signum)
        if task is not None:
            task.cancel()

    for sig in (getattr(signal, "SIGTERM", None),):
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, _on_signal, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            continue
    try:
        return await probe.run()
    except asyncio.CancelledError:
        if received:
            raise ProbeInterrupted(received[0]) from None
        raise
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        config = build_config(args)
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2
    LOGGER.debug("Probe configuration: %s", config)
    try:
        result = asyncio.run(_run_until_signalled(SidecarProbe(config)))
    except KeyboardInterrupt:
        LOGGER.error("Interrupted")
        return 130
    except ProbeInterrupted as exc:
        LOGGER.error("%s", exc)
        return 128 + exc.signum
    except SidecarProbeError as exc:
        LOGGER.error("%s", exc)
        return 1
    except Exception as exc:
        LOGGER.debug("Probe failed", exc_info=True)
        LOGGER.error("Probe failed: %s", exc)
        return 1
    print(f"Ark sidecar OK, LSP port {result.lsp_port}", flush=True)
    return 0
