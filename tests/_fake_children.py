"""Stand-in Ark kernel and sidecar executables for end-to-end tests."""

from __future__ import annotations

import json
import os
import stat
import sys
import textwrap
from pathlib import Path
from typing import Any, Dict, List

FAKE_KERNEL = '''
import json
import os
import sys
import time

record = os.environ.get("FAKE_KERNEL_RECORD")
if record:
    with open(record, "w", encoding="utf-8") as handle:
        json.dump({"argv": sys.argv[1:], "connection_file": os.environ.get("ARK_CONNECTION_FILE"), "rust_log": os.environ.get("RUST_LOG")}, handle)
print("kernel stdout chatter", flush=True)
print("kernel booted", file=sys.stderr, flush=True)
time.sleep(60)
'''

FAKE_SIDECAR = '''
import argparse
import json
import os
import socket
import sys
import time

ap = argparse.ArgumentParser()
ap.add_argument("--connection-file", required=True)
ap.add_argument("--ip-address", required=True)
ap.add_argument("--timeout-ms", type=int, required=True)
args = ap.parse_args()

mode = os.environ.get("FAKE_SIDECAR_MODE", "ok")
record_path = os.environ.get("FAKE_SIDECAR_RECORD")
received = []


def save():
    if not record_path:
        return
    with open(args.connection_file, encoding="utf-8") as handle:
        connection = json.load(handle)
    with open(record_path, "w", encoding="utf-8") as handle:
        json.dump({"args": vars(args), "connection": connection, "received": received}, handle)


def send(conn, payload, split=False):
    body = json.dumps(payload).encode("utf-8")
    frame = b"Content-Length: %d\\r\\n\\r\\n" % len(body) + body
    if not split:
        conn.sendall(frame)
        return
    cuts = [10, len(frame) - len(body) + 3, len(frame)]
    start = 0
    for cut in cuts:
        conn.sendall(frame[start:cut])
        start = cut
        time.sleep(0.02)


def read_message(conn, buffer):
    while b"\\r\\n\\r\\n" not in buffer:
        chunk = conn.recv(4096)
        if not chunk:
            return None, b""
        buffer += chunk
    header, _, rest = buffer.partition(b"\\r\\n\\r\\n")
    length = int(header.split(b":", 1)[1].strip())
    while len(rest) < length:
        chunk = conn.recv(4096)
        if not chunk:
            return None, b""
        rest += chunk
    return json.loads(rest[:length].decode("utf-8")), rest[length:]


print("sidecar warming up", flush=True)
print(json.dumps({"level": "INFO", "fields": {"message": "sidecar starting", "mode": mode}}), file=sys.stderr, flush=True)

if mode == "exit":
    sys.exit(3)
if mode == "error":
    print(json.dumps({"event": "error", "message": "ark kernel unreachable"}), flush=True)
    time.sleep(60)
    sys.exit(0)
if mode == "silent":
    time.sleep(60)
    sys.exit(0)

server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
server.bind((args.ip_address, 0))
server.listen(1)
port = server.getsockname()[1]
print(json.dumps({"event": "status", "state": "booting"}), flush=True)
print(json.dumps({"event": "lsp_port", "port": port}), flush=True)

conn, _ = server.accept()
buffer = b""
while True:
    message, buffer = read_message(conn, buffer)
    if message is None:
        break
    received.append(message)
    save()
    method = message.get("method")
    if method == "initialize":
        send(conn, {"jsonrpc": "2.0", "method": "window/logMessage", "params": {"type": 3, "message": "hello"}})
        send(conn, {"jsonrpc": "2.0", "id": 1, "method": "client/registerCapability", "params": {"registrations": []}})
        send(conn, {"jsonrpc": "2.0", "id": message["id"], "result": {"capabilities": {"textDocumentSync": 1}}}, split=True)
    elif method == "shutdown":
        if mode != "no-shutdown":
            send(conn, {"jsonrpc": "2.0", "id": message["id"], "result": None})
    elif method == "exit":
        break
conn.close()
server.close()
time.sleep(60)
'''


def _write_executable(path: Path, source: str) -> Path:
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(source).lstrip(), encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def write_fake_kernel(directory: Path) -> Path:
    return _write_executable(directory / "fake-ark", FAKE_KERNEL)


def write_fake_sidecar(directory: Path) -> Path:
    return _write_executable(directory / "fake-ark-sidecar", FAKE_SIDECAR)


def child_env(tmp_path: Path, *, mode: str = "ok") -> Dict[str, str]:
    env = os.environ.copy()
    env.update(
        {
            "FAKE_SIDECAR_MODE": mode,
            "FAKE_SIDECAR_RECORD": str(tmp_path / "sidecar-record.json"),
            "FAKE_KERNEL_RECORD": str(tmp_path / "kernel-record.json"),
        }
    )
    return env


def load_record(path: Path) -> Dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def received_methods(record: Dict[str, Any]) -> List[str]:
    return [message.get("method") for message in record["received"]]
