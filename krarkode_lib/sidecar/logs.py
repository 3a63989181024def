"""Helpers for the Rust-side log output of Ark and the sidecar."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping

ARK_LOG_LEVELS = ("inherit", "error", "warn", "info", "debug", "trace")
DEFAULT_ARK_LOG_LEVEL = "inherit"
SIDECAR_RUST_LOG_TARGET = "vscode_r_ark_sidecar"

SIDECAR_LEVELS = ("trace", "debug", "info", "warn", "error")


@dataclass(frozen=True)
class ParsedSidecarLog:
    level: str
    message: str


def normalize_ark_log_level(value: str | None) -> str:
    candidate = (value or "").strip().lower()
    return candidate if candidate in ARK_LOG_LEVELS else DEFAULT_ARK_LOG_LEVEL


def format_ark_rust_log(level: str) -> str | None:
    if level == "inherit":
        return None
    return f"ark={level}"


def format_sidecar_rust_log(level: str) -> str | None:
    if level == "inherit":
        return None
    return f"{SIDECAR_RUST_LOG_TARGET}={level}"


def parse_sidecar_json_log(line: str) -> ParsedSidecarLog | None:
    """Decode one `tracing` JSON line; returns None for anything else."""

    try:
        parsed = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    raw_level = parsed.get("level")
    level = raw_level.lower() if isinstance(raw_level, str) else ""
    if level not in SIDECAR_LEVELS:
        level = "info"
    fields = parsed.get("fields") if isinstance(parsed.get("fields"), dict) else None
    return ParsedSidecarLog(level=level, message=_extract_message(parsed, fields, line))


def _extract_message(parsed: Mapping[str, Any], fields: Mapping[str, Any] | None, fallback: str) -> str:
    if fields and isinstance(fields.get("message"), str):
        base = fields["message"]
    elif isinstance(parsed.get("message"), str):
        base = parsed["message"]
    else:
        base = ""
    suffix = _format_field_suffix(fields) if fields else ""
    if base and suffix:
        return f"{base} {suffix}"
    return base or suffix or fallback


def _format_field_suffix(fields: Mapping[str, Any]) -> str:
    return " ".join(
        f"{key}={_format_field_value(value)}" for key, value in fields.items() if key != "message"
    )


def _format_field_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)
