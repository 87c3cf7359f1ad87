from __future__ import annotations

import struct
from io import BytesIO
from pathlib import Path
from typing import BinaryIO

from PIL import GifImagePlugin

from .errors import EmptyBufferError, EncodeIOError
from .frame_buffer import MS_PER_TICK, FrameBuffer

# NETSCAPE2.0 loop count; 0 repeats forever.
LOOP_FOREVER = 0
TRAILER = b";"


def _loop_extension(loops: int) -> bytes:
    return b"!\xff\x0bNETSCAPE2.0\x03\x01" + struct.pack("<H", loops) + b"\x00"


def _graphic_control(delay: int) -> bytes:
    # No transparency, no disposal method; delay in ticks.
    return b"!\xf9\x04\x00" + struct.pack("<H", delay) + b"\x00\x00"


def _animation_bytes(buffer: FrameBuffer) -> bytes:
    animation = buffer.snapshot()
    if not animation.images:
        raise EmptyBufferError("cannot encode an empty frame buffer")

    # Frames are written one by one so that consecutive identical frames
    # are kept instead of being merged by Pillow's multi-frame writer.
    out = BytesIO()
    header, _ = GifImagePlugin.getheader(animation.images[0].copy(), info={"optimize": False})
    # Extension blocks below need GIF89a; Pillow picks 87a for a bare header.
    header = list(header)
    header[0] = b"GIF89a" + header[0][6:]
    for chunk in header:
        out.write(chunk)
    out.write(_loop_extension(LOOP_FOREVER))
    for image, duration in zip(animation.images, animation.durations_ms):
        out.write(_graphic_control(duration // MS_PER_TICK))
        for chunk in GifImagePlugin.getdata(image, include_color_table=True):
            out.write(chunk)
    out.write(TRAILER)
    return out.getvalue()


def serialize(buffer: FrameBuffer, sink: BinaryIO) -> None:
    """Write every buffered frame to ``sink`` as a looping animated GIF.

    Each frame carries its own colour table and the buffer's uniform delay.
    """
    try:
        payload = _animation_bytes(buffer)
        sink.write(payload)
    except (OSError, ValueError, struct.error) as exc:
        raise EncodeIOError(f"failed to write animation: {exc}") from exc


def encode(buffer: FrameBuffer) -> bytes:
    out = BytesIO()
    serialize(buffer, out)
    return out.getvalue()


def write_to_file(buffer: FrameBuffer, path: Path) -> None:
    payload = encode(buffer)
    try:
        path.write_bytes(payload)
    except OSError as exc:
        raise EncodeIOError(f"failed to write {path}: {exc}") from exc


def write_latest_frame(buffer: FrameBuffer, sink: BinaryIO) -> None:
    """Write only the most recently inserted frame as a still GIF."""
    frame = buffer.latest()
    try:
        frame.image.save(sink, format="GIF", optimize=False)
    except (OSError, ValueError, struct.error) as exc:
        raise EncodeIOError(f"failed to write frame: {exc}") from exc
