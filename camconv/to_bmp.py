"""Convert raw camera frames to 24-bit BGR pixels and BMP files."""

from __future__ import annotations

import struct

from camconv.pixformat import ConversionError, PixFormat
from camconv.yuv import yuv_to_rgb

BMP_HEADER_LEN = 54
_DIB_HEADER_LEN = 40
_PIXELS_PER_METER = 0x0B13  # 72 DPI
_HEADER = struct.Struct("<2sIIIIiiHHIIIIII")


def rgb565_to_bgr888(data: bytes) -> bytes:
    """Expand big-endian RGB565 pixels to B, G, R byte triples."""
    data = bytes(data)
    out = bytearray()
    for hb, lb in zip(data[0::2], data[1::2]):
        out.append((lb & 0x1F) << 3)
        out.append(((hb & 0x07) << 5) | ((lb & 0xE0) >> 3))
        out.append(hb & 0xF8)
    return bytes(out)


def grayscale_to_bgr888(data: bytes) -> bytes:
    """Repeat each grey byte three times."""
    out = bytearray()
    for value in bytes(data):
        out += bytes((value, value, value))
    return bytes(out)


def yuv422_to_bgr888(data: bytes) -> bytes:
    """Convert packed Y0 U Y1 V groups to B, G, R triples, two pixels per group."""
    data = bytes(data)
    groups = (len(data) // 2) // 2
    out = bytearray()
    for start in range(0, groups * 4, 4):
        y0, u, y1, v = data[start : start + 4]
        for y in (y0, y1):
            r, g, b = yuv_to_rgb(y, u, v)
            out += bytes((b, g, r))
    return bytes(out)


def fmt_to_rgb888(data: bytes, fmt: PixFormat | str) -> bytes:
    """Convert a whole frame to 24-bit pixels in BMP (B, G, R) byte order."""
    fmt = PixFormat.parse(fmt)
    if fmt is PixFormat.JPEG:
        raise ConversionError("decoding JPEG frames is not supported")
    if fmt is PixFormat.RGB888:
        return bytes(data)
    if fmt is PixFormat.RGB565:
        return rgb565_to_bgr888(data)
    if fmt is PixFormat.GRAYSCALE:
        return grayscale_to_bgr888(data)
    return yuv422_to_bgr888(data)


def bmp_header(width: int, height: int) -> bytes:
    """The 54-byte header of a top-down 24-bit BMP of the given size."""
    if not 0 <= width <= 0xFFFF or not 0 <= height <= 0xFFFF:
        raise ConversionError("BMP dimensions must be in 0..65535")
    image_size = width * height * 3
    return _HEADER.pack(
        b"BM",
        image_size + BMP_HEADER_LEN,
        0,
        BMP_HEADER_LEN,
        _DIB_HEADER_LEN,
        width,
        -height,  # negative height: rows run top to bottom
        1,
        24,
        0,
        image_size,
        _PIXELS_PER_METER,
        _PIXELS_PER_METER,
        0,
        0,
    )


def fmt_to_bmp(data: bytes, width: int, height: int, fmt: PixFormat | str) -> bytes:
    """Build a complete BMP file from a raw frame."""
    fmt = PixFormat.parse(fmt)
    if fmt is PixFormat.JPEG:
        raise ConversionError("decoding JPEG frames is not supported")
    header = bmp_header(width, height)
    pixel_count = width * height
    needed = fmt.frame_size(width, height)
    data = bytes(data)
    if len(data) < needed:
        raise ConversionError(f"frame needs {needed} bytes, got {len(data)}")
    pixels = fmt_to_rgb888(data[:needed], fmt)
    size = pixel_count * 3
    return header + pixels[:size].ljust(size, b"\x00")