"""Encode raw camera frames as baseline JPEG."""

from __future__ import annotations

from typing import Callable, Optional

from camconv.jpeg_encoder import EncoderParams, JpegEncoder, Subsampling
from camconv.pixformat import ConversionError, PixFormat
from camconv.yuv import yuv_to_rgb

# Capacity of the in-memory output; longer streams are cut off here.
JPG_BUFFER_SIZE = 128 * 1024

OutputCallback = Callable[[int, bytes], Optional[int]]


def _line_slice(data: bytes, line_bytes: int, line: int) -> bytes:
    start = line * line_bytes
    end = start + line_bytes
    if line < 0 or len(data) < end:
        raise ConversionError(
            f"source holds {len(data)} bytes, line {line} needs bytes {start}..{end}"
        )
    return data[start:end]


def _yuv422_line(src: bytes, width: int, following: bytes) -> bytes:
    out = bytearray()
    for i in range(0, width - 1, 2):
        y0, u, y1, v = src[2 * i : 2 * i + 4]
        out += bytes(yuv_to_rgb(y0, u, v))
        out += bytes(yuv_to_rgb(y1, u, v))
    if width % 2:
        y0, u = src[-2:]
        v = following[1] if len(following) > 1 else 128
        out += bytes(yuv_to_rgb(y0, u, v))
    return bytes(out)


def convert_line(data: bytes, fmt: PixFormat | str, width: int, line: int) -> bytes:
    """Convert one source scanline to RGB888 (or Y8 for grayscale) for the encoder."""
    fmt = PixFormat.parse(fmt)
    data = bytes(data)
    if width < 0:
        raise ConversionError("width must not be negative")
    if fmt is PixFormat.GRAYSCALE:
        return _line_slice(data, width, line)
    if fmt is PixFormat.RGB888:
        src = _line_slice(data, width * 3, line)
        out = bytearray(len(src))
        out[0::3] = src[2::3]
        out[1::3] = src[1::3]
        out[2::3] = src[0::3]
        return bytes(out)
    if fmt is PixFormat.RGB565:
        src = _line_slice(data, width * 2, line)
        out = bytearray()
        for hb, lb in zip(src[0::2], src[1::2]):
            out.append(hb & 0xF8)
            out.append(((hb & 0x07) << 5) | ((lb & 0xE0) >> 3))
            out.append((lb & 0x1F) << 3)
        return bytes(out)
    if fmt is PixFormat.YUV422:
        src = _line_slice(data, width * 2, line)
        end = (line + 1) * width * 2
        return _yuv422_line(src, width, data[end : end + 2])
    raise ConversionError(f"cannot encode {fmt.name} frames as JPEG")


def _clamp_quality(quality: int) -> int:
    if quality < 1:
        return 1
    return min(quality, 100)


def _encode(data: bytes, width: int, height: int, fmt: PixFormat | str, quality: int,
            write: Callable[[bytes], Optional[bool]]) -> None:
    fmt = PixFormat.parse(fmt)
    if fmt is PixFormat.JPEG:
        raise ConversionError("the source is already JPEG")
    if fmt is PixFormat.GRAYSCALE:
        channels, subsampling = 1, Subsampling.Y_ONLY
    else:
        channels, subsampling = 3, Subsampling.H2V2
    params = EncoderParams(quality=_clamp_quality(quality), subsampling=subsampling)
    encoder = JpegEncoder(write, width, height, channels, params)
    data = bytes(data)
    for line in range(height):
        encoder.process_scanline(convert_line(data, fmt, width, line))
    encoder.finish()


def fmt_to_jpg_cb(data: bytes, width: int, height: int, fmt: PixFormat | str,
                  quality: int, callback: OutputCallback) -> int:
    """Encode a frame, handing each chunk to ``callback(index, chunk)``.

    The callback returns how many bytes it consumed (``None`` counts as
    the whole chunk); the running total is the next chunk's index and is
    returned at the end.
    """
    index = 0

    def write(chunk: bytes) -> bool:
        nonlocal index
        consumed = callback(index, chunk)
        index += len(chunk) if consumed is None else consumed
        return True

    _encode(data, width, height, fmt, quality, write)
    return index


def fmt_to_jpg(data: bytes, width: int, height: int, fmt: PixFormat | str,
               quality: int) -> bytes:
    """Encode a frame to JPEG bytes, holding at most JPG_BUFFER_SIZE bytes."""
    buffer = bytearray()

    def write(chunk: bytes) -> bool:
        room = JPG_BUFFER_SIZE - len(buffer)
        if room > 0:
            buffer.extend(chunk[:room])
        return True

    _encode(data, width, height, fmt, quality, write)
    return bytes(buffer)