"""Pixel formats understood by the converters and their error type."""

from __future__ import annotations

from enum import Enum


class ConversionError(ValueError):
    """Raised when an image cannot be converted."""


class PixFormat(Enum):
    """Source pixel formats of a camera frame."""

    RGB565 = "rgb565"
    YUV422 = "yuv422"
    GRAYSCALE = "grayscale"
    JPEG = "jpeg"
    RGB888 = "rgb888"

    @property
    def bytes_per_pixel(self) -> int | None:
        """Bytes per pixel for raw formats, or None for compressed ones."""
        return _BYTES_PER_PIXEL[self]

    @property
    def is_compressed(self) -> bool:
        return self is PixFormat.JPEG

    def frame_size(self, width: int, height: int) -> int:
        """Byte length of a raw frame of the given dimensions."""
        bpp = self.bytes_per_pixel
        if bpp is None:
            raise ConversionError(f"{self.name} frames have no fixed size")
        if width < 0 or height < 0:
            raise ConversionError("frame dimensions must not be negative")
        return width * height * bpp

    @classmethod
    def parse(cls, name: str | PixFormat) -> PixFormat:
        """Look a format up by name, case-insensitively."""
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise ConversionError(f"unknown pixel format: {name!r}") from None


_BYTES_PER_PIXEL = {
    PixFormat.RGB565: 2,
    PixFormat.YUV422: 2,
    PixFormat.GRAYSCALE: 1,
    PixFormat.JPEG: None,
    PixFormat.RGB888: 3,
}