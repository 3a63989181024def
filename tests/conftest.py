import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_ark_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's Ark settings out of the tests."""

    for var in (
        "ARK_PATH",
        "ARK_SIDECAR_PATH",
        "ARK_LSP_TIMEOUT_MS",
        "ARK_IP_ADDRESS",
        "ARK_SESSION_MODE",
        "ARK_LOG_LEVEL",
        "ARK_PROBE_LOG_LEVEL",
        "ARK_CONNECTION_FILE",
        "RUST_LOG",
        "FAKE_SIDECAR_MODE",
        "FAKE_SIDECAR_RECORD",
        "FAKE_KERNEL_RECORD",
    ):
        monkeypatch.delenv(var, raising=False)
