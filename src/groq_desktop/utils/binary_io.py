"""Binary stdin/stdout framing for Protocol V2.

Every message travels as one frame::

    +---------+-------+--------+---------------------------+
    | version | flags | length | MessagePack payload       |
    |  u16    |  u8   |  u32   | (zlib when FLAG_COMPRESSED)|
    +---------+-------+--------+---------------------------+

All integers are big-endian. Payloads above 1 KiB are compressed when that
makes them smaller. Streams default to ``sys.stdin.buffer`` and
``sys.stdout.buffer``; tests inject BytesIO objects instead.
"""

from __future__ import annotations

import struct
import sys
import zlib

from typing import Any, BinaryIO, NamedTuple

import msgpack

from groq_desktop.utils.logger import logger

PROTOCOL_VERSION = 2
FLAG_COMPRESSED = 0x01
COMPRESSION_THRESHOLD = 1024
COMPRESSION_LEVEL = 6
MAX_MESSAGE_SIZE = 100 * 1024 * 1024  # 100MB

_HEADER = struct.Struct("!HBI")
HEADER_SIZE = _HEADER.size


class BinaryIOError(Exception):
    """Raised when binary I/O operations fail."""


class FrameHeader(NamedTuple):
    version: int
    flags: int
    length: int

    @property
    def compressed(self) -> bool:
        return bool(self.flags & FLAG_COMPRESSED)


def _read_exact(source: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, looping over short reads until EOF."""
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def parse_header(raw: bytes) -> FrameHeader:
    """Validate and unpack a frame header."""
    if len(raw) < HEADER_SIZE:
        raise BinaryIOError(f"Incomplete header: got {len(raw)} bytes, expected {HEADER_SIZE}")
    header = FrameHeader(*_HEADER.unpack(raw))
    if header.version != PROTOCOL_VERSION:
        raise BinaryIOError(f"Unsupported protocol version: {header.version}")
    if header.length > MAX_MESSAGE_SIZE:
        raise BinaryIOError(f"Message too large: {header.length} bytes (max {MAX_MESSAGE_SIZE})")
    return header


def decode_payload(payload: bytes, compressed: bool) -> dict[str, Any]:
    """MessagePack (optionally zlib) payload -> message dict."""
    if compressed:
        try:
            payload = zlib.decompress(payload)
        except zlib.error as e:
            raise BinaryIOError(f"Decompression failed: {e}") from e

    try:
        decoded = msgpack.unpackb(payload, raw=False)
    except Exception as e:
        raise BinaryIOError(f"MessagePack decode failed: {e}") from e
    if not isinstance(decoded, dict):
        raise BinaryIOError(f"Expected dict from MessagePack, got {type(decoded)}")
    return decoded


def encode_frame(message: dict[str, Any]) -> bytes:
    """Encode one message as a complete frame (header + payload).

    Keys starting with ``_`` are read-side metadata and never sent.
    """
    payload = msgpack.packb({k: v for k, v in message.items() if not k.startswith("_")}, use_bin_type=True)

    flags = 0
    if len(payload) > COMPRESSION_THRESHOLD:
        packed = zlib.compress(payload, level=COMPRESSION_LEVEL)
        if len(packed) < len(payload):
            payload, flags = packed, flags | FLAG_COMPRESSED

    if len(payload) > MAX_MESSAGE_SIZE:
        raise BinaryIOError(f"Message too large: {len(payload)} bytes")
    return _HEADER.pack(PROTOCOL_VERSION, flags, len(payload)) + payload


def read_message(stream: BinaryIO | None = None) -> dict[str, Any]:
    """Read one complete message.

    The returned dict carries ``_size`` (payload bytes on the wire) and
    ``_compressed`` for logging.

    Raises:
        BinaryIOError: On I/O errors or malformed frames
        EOFError: When the stream ends between frames
    """
    source = stream if stream is not None else sys.stdin.buffer
    try:
        raw_header = _read_exact(source, HEADER_SIZE)
        if not raw_header:
            raise EOFError("End of input stream")
        header = parse_header(raw_header)

        payload = _read_exact(source, header.length)
        if len(payload) < header.length:
            raise BinaryIOError(f"Incomplete payload: got {len(payload)} bytes, expected {header.length}")

        message = decode_payload(payload, header.compressed)
    except (BinaryIOError, EOFError):
        raise
    except Exception as e:
        logger.error(f"Unexpected error reading message: {e}", exc_info=True)
        raise BinaryIOError(f"Read failed: {e}") from e

    message["_size"] = header.length
    message["_compressed"] = header.compressed
    logger.debug(f"Read message: type={message.get('type')}, size={header.length}, compressed={header.compressed}")
    return message


def write_message(message: dict[str, Any], stream: BinaryIO | None = None) -> None:
    """Write one complete message and flush.

    Raises:
        BinaryIOError: On encoding or I/O errors
    """
    target = stream if stream is not None else sys.stdout.buffer
    try:
        frame = encode_frame(message)
        target.write(frame)
        target.flush()
    except BinaryIOError:
        raise
    except Exception as e:
        logger.error(f"Failed to write message: {e}", exc_info=True)
        raise BinaryIOError(f"Write failed: {e}") from e

    logger.throttled_debug("ipc_write", f"Wrote message: type={message.get('type')}, frame={len(frame)} bytes")


__all__ = [
    "BinaryIOError",
    "FrameHeader",
    "decode_payload",
    "encode_frame",
    "parse_header",
    "read_message",
    "write_message",
]
