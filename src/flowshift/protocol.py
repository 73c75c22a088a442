"""Content-Length framed JSON over byte streams.

Used between the primary and its workers, and between a worker and the Node
bridge. Streams read by a ``select`` loop must be unbuffered, otherwise bytes
sitting in a Python buffer are invisible to ``select``.
"""

from __future__ import annotations

import json
import select

from pydantic import ValidationError

from flowshift.exceptions import WorkerProtocolError
from flowshift.json_types import JSONObject
from flowshift.schema import PROTOCOL_MESSAGE_ADAPTER, ProtocolMessage

_HEADER_END = b"\r\n\r\n"


def wait_readable(streams: list, timeout: float | None) -> list:
    """Streams out of ``streams`` with bytes available, ``[]`` on timeout."""
    if timeout is not None:
        timeout = max(0.0, timeout)
    ready, _, _ = select.select(streams, [], [], timeout)
    return ready


def _read_exact(stream, length: int) -> bytes:
    body = bytearray()
    while len(body) < length:
        chunk = stream.read(length - len(body))
        if not chunk:
            raise WorkerProtocolError("stream closed inside a frame")
        body.extend(chunk)
    return bytes(body)


def read_frame(stream) -> JSONObject | None:
    """Read one frame. Returns None on a clean end of stream between frames."""
    header = b""
    while _HEADER_END not in header:
        chunk = stream.read(1)
        if not chunk:
            if header:
                raise WorkerProtocolError("stream closed inside a frame header")
            return None
        header += chunk
    head, _, rest = header.partition(_HEADER_END)
    length = 0
    for line in head.split(b"\r\n"):
        if line.lower().startswith(b"content-length:"):
            try:
                length = int(line.split(b":", 1)[1].strip())
            except ValueError:
                raise WorkerProtocolError("invalid Content-Length") from None
            break
    if length <= 0:
        raise WorkerProtocolError("invalid Content-Length")
    body = rest + _read_exact(stream, length - len(rest))
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise WorkerProtocolError(f"malformed frame body: {exc}") from exc
    if not isinstance(message, dict):
        raise WorkerProtocolError("frame payload is not an object")
    return message


def write_frame(stream, message: JSONObject) -> None:
    payload = json.dumps(message).encode("utf-8")
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("utf-8")
    stream.write(header + payload)
    stream.flush()


def send_message(stream, message: ProtocolMessage) -> None:
    write_frame(stream, message.model_dump(mode="json"))


def receive_message(stream) -> ProtocolMessage | None:
    frame = read_frame(stream)
    if frame is None:
        return None
    try:
        return PROTOCOL_MESSAGE_ADAPTER.validate_python(frame)
    except ValidationError as exc:
        raise WorkerProtocolError(f"unrecognized message: {exc}") from exc