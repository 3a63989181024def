from __future__ import annotations

import json

from mcp import types

from krarkode_lib.sidecar.framing import FrameDecoder, encode_message, message_payload


def _frame(payload: object) -> bytes:
    body = json.dumps(payload).encode("utf-8")
    return b"Content-Length: %d\r\n\r\n" % len(body) + body


def test_three_chunk_delivery_matches_single_chunk() -> None:
    payload = {"jsonrpc": "2.0", "id": 1, "result": {"capabilities": {"hoverProvider": True}}}
    frame = _frame(payload)

    whole = FrameDecoder().feed(frame)

    decoder = FrameDecoder()
    cuts = [7, len(frame) - 12, len(frame)]
    pieces = []
    start = 0
    for cut in cuts:
        pieces.append(decoder.feed(frame[start:cut]))
        start = cut

    assert whole == [payload]
    assert pieces[0] == [] and pieces[1] == []
    assert pieces[2] == whole
    assert decoder.buffered == 0


def test_split_inside_header_terminator() -> None:
    frame = _frame({"id": 3})
    terminator_at = frame.index(b"\r\n\r\n")
    decoder = FrameDecoder()

    assert decoder.feed(frame[: terminator_at + 2]) == []
    assert decoder.feed(frame[terminator_at + 2 : terminator_at + 3]) == []
    assert decoder.feed(frame[terminator_at + 3 :]) == [{"id": 3}]


def test_byte_at_a_time_delivery() -> None:
    frame = _frame({"method": "window/logMessage", "params": {"message": "héllo ✓"}})
    decoder = FrameDecoder()
    messages = []
    for index in range(len(frame)):
        messages.extend(decoder.feed(frame[index : index + 1]))
    assert messages == [{"method": "window/logMessage", "params": {"message": "héllo ✓"}}]


def test_back_to_back_messages_in_one_chunk() -> None:
    first = {"jsonrpc": "2.0", "method": "window/logMessage", "params": {}}
    second = {"jsonrpc": "2.0", "id": 2, "result": None}

    assert FrameDecoder().feed(_frame(first) + _frame(second)) == [first, second]


def test_trailing_partial_message_is_kept() -> None:
    decoder = FrameDecoder()
    second = _frame({"id": 2})

    assert decoder.feed(_frame({"id": 1}) + second[:5]) == [{"id": 1}]
    assert decoder.buffered == 5
    assert decoder.feed(second[5:]) == [{"id": 2}]


def test_malformed_header_is_skipped() -> None:
    garbage = b"X-Nonsense: yes\r\n\r\n"
    assert FrameDecoder().feed(garbage + _frame({"id": 7})) == [{"id": 7}]


def test_unparseable_body_is_dropped() -> None:
    bad_body = b"{nope"
    bad = b"Content-Length: %d\r\n\r\n" % len(bad_body) + bad_body
    assert FrameDecoder().feed(bad + _frame({"id": 8})) == [{"id": 8}]


def test_header_is_case_insensitive_and_tolerates_extra_fields() -> None:
    body = json.dumps({"id": 9}).encode("utf-8")
    frame = (
        b"content-length: %d\r\nContent-Type: application/vscode-jsonrpc; charset=utf-8\r\n\r\n" % len(body)
        + body
    )
    assert FrameDecoder().feed(frame) == [{"id": 9}]


def test_encode_message_counts_bytes_not_characters() -> None:
    frame = encode_message({"text": "ü"})
    header, _, body = frame.partition(b"\r\n\r\n")
    assert header == b"Content-Length: %d" % len(body)
    assert len(body) > len('{"text":"ü"}')
    assert FrameDecoder().feed(frame) == [{"text": "ü"}]


def test_mcp_models_serialize_as_jsonrpc() -> None:
    request = types.JSONRPCRequest(jsonrpc="2.0", id=2, method="shutdown", params=None)
    notification = types.JSONRPCNotification(jsonrpc="2.0", method="initialized", params={})

    assert message_payload(request) == {"jsonrpc": "2.0", "id": 2, "method": "shutdown", "params": None}
    assert message_payload(notification) == {"jsonrpc": "2.0", "method": "initialized", "params": {}}
    assert FrameDecoder().feed(encode_message(request)) == [
        {"jsonrpc": "2.0", "id": 2, "method": "shutdown", "params": None}
    ]
