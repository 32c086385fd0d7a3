"""Streaming baseline JPEG encoder.

Scanlines are fed one at a time and the compressed stream is handed to a
``write`` callable in chunks of at most 512 bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from camconv.jpeg_tables import (
    AC_CHROMA_TABLE,
    AC_LUM_TABLE,
    DC_CHROMA_TABLE,
    DC_LUM_TABLE,
    STD_CHROMA_QUANT,
    STD_LUM_QUANT,
    HuffmanTable,
    compute_quant_table,
    dct_2d,
    quantize,
    rgb_to_y,
    rgb_to_ycc,
    y_to_ycc,
)
from camconv.pixformat import ConversionError

OUT_BUF_SIZE = 512
_MAX_DIMENSION = 0xFFFF

_M_SOF0 = 0xC0
_M_DHT = 0xC4
_M_SOI = 0xD8
_M_EOI = 0xD9
_M_SOS = 0xDA
_M_DQT = 0xDB
_M_APP0 = 0xE0


class Subsampling(IntEnum):
    """Chroma subsampling of the encoded image."""

    Y_ONLY = 0  # grayscale
    H1V1 = 1  # YCbCr 1x1x1, 3 blocks per MCU
    H2V1 = 2  # YCbCr 2x1x1, 4 blocks per MCU
    H2V2 = 3  # YCbCr 4x1x1, 6 blocks per MCU


@dataclass
class EncoderParams:
    """Compression parameters: quality 1..100 and chroma subsampling."""

    quality: int = 85
    subsampling: Subsampling = Subsampling.H2V2

    def check(self) -> bool:
        """Return True if the parameters are within their valid ranges."""
        if not isinstance(self.quality, int) or not 1 <= self.quality <= 100:
            return False
        try:
            Subsampling(self.subsampling)
        except ValueError:
            return False
        return True


# components, (h, v) sampling per component, MCU width, MCU height
_LAYOUTS = {
    Subsampling.Y_ONLY: (1, ((1, 1),), 8, 8),
    Subsampling.H1V1: (3, ((1, 1), (1, 1), (1, 1)), 8, 8),
    Subsampling.H2V1: (3, ((2, 1), (1, 1), (1, 1)), 16, 8),
    Subsampling.H2V2: (3, ((2, 2), (1, 1), (1, 1)), 16, 16),
}

WriteCallback = Callable[[bytes], Optional[bool]]


class JpegEncoder:
    """Encode an image scanline by scanline into a baseline JPEG stream.

    ``write`` receives each chunk of output; returning ``False`` from it
    marks the stream as failed, after which the encoder raises
    :class:`ConversionError`. Markers are emitted on construction.
    """

    def __init__(
        self,
        write: WriteCallback,
        width: int,
        height: int,
        channels: int,
        params: EncoderParams | None = None,
    ) -> None:
        params = params if params is not None else EncoderParams()
        if write is None:
            raise ConversionError("an output callable is required")
        if width < 1 or height < 1:
            raise ConversionError("image dimensions must be positive")
        if width > _MAX_DIMENSION or height > _MAX_DIMENSION:
            raise ConversionError("image dimensions must not exceed 65535")
        if channels not in (1, 3, 4):
            raise ConversionError(f"unsupported channel count: {channels}")
        if not params.check():
            raise ConversionError(f"invalid encoder parameters: {params}")

        self._write = write
        self._params = params
        self._width = width
        self._height = height
        self._channels = channels

        subsampling = Subsampling(params.subsampling)
        self._subsampling = subsampling
        self._components, self._sampling, self._mcu_x, self._mcu_y = _LAYOUTS[subsampling]
        self._width_mcu = (width + self._mcu_x - 1) & ~(self._mcu_x - 1)
        self._row_bytes = width * self._components
        self._row_bytes_mcu = self._width_mcu * self._components
        self._mcus_per_row = self._width_mcu // self._mcu_x
        self._mcu_lines = [bytearray(self._row_bytes_mcu) for _ in range(self._mcu_y)]
        self._mcu_y_ofs = 0

        self._quant = (
            compute_quant_table(params.quality, STD_LUM_QUANT),
            compute_quant_table(params.quality, STD_CHROMA_QUANT),
        )
        self._huffman = (
            (DC_LUM_TABLE, AC_LUM_TABLE),
            (DC_CHROMA_TABLE, AC_CHROMA_TABLE),
        )

        self._out = bytearray()
        self._bit_buffer = 0
        self._bits_in = 0
        self._last_dc = [0, 0, 0]
        self._written = 0
        self._failed = False
        self._finished = False

        self._emit_marker(_M_SOI)
        self._emit_jfif_app0()
        self._emit_dqt()
        self._emit_sof()
        self._emit_dhts()
        self._emit_sos()
        if self._failed:
            raise ConversionError("writing the JPEG header failed")

    @property
    def size(self) -> int:
        """Number of bytes handed to the output so far."""
        return self._written

    @property
    def finished(self) -> bool:
        return self._finished

    # -- output ---------------------------------------------------------

    def _flush(self) -> None:
        if self._out:
            if not self._failed:
                chunk = bytes(self._out)
                if self._write(chunk) is False:
                    self._failed = True
                else:
                    self._written += len(chunk)
            self._out.clear()

    def _emit_byte(self, value: int) -> None:
        self._out.append(value & 0xFF)
        if len(self._out) == OUT_BUF_SIZE:
            self._flush()

    def _emit_bytes(self, data: bytes) -> None:
        for value in data:
            self._emit_byte(value)

    def _emit_word(self, value: int) -> None:
        self._emit_byte(value >> 8)
        self._emit_byte(value)

    def _emit_marker(self, marker: int) -> None:
        self._emit_byte(0xFF)
        self._emit_byte(marker)

    def _put_bits(self, bits: int, length: int) -> None:
        self._bits_in += length
        self._bit_buffer |= bits << (24 - self._bits_in)
        while self._bits_in >= 8:
            c = (self._bit_buffer >> 16) & 0xFF
            self._emit_byte(c)
            if c == 0xFF:
                self._emit_byte(0)
            self._bit_buffer = (self._bit_buffer << 8) & 0xFFFFFFFF
            self._bits_in -= 8

    # -- headers --------------------------------------------------------

    def _emit_jfif_app0(self) -> None:
        self._emit_marker(_M_APP0)
        self._emit_word(2 + 4 + 1 + 2 + 1 + 2 + 2 + 1 + 1)
        self._emit_bytes(b"JFIF\x00")
        self._emit_byte(1)  # major version
        self._emit_byte(1)  # minor version
        self._emit_byte(0)  # density unit
        self._emit_word(1)
        self._emit_word(1)
        self._emit_byte(0)  # no thumbnail
        self._emit_byte(0)

    def _emit_dqt(self) -> None:
        count = 2 if self._components == 3 else 1
        for index, table in enumerate(self._quant[:count]):
            self._emit_marker(_M_DQT)
            self._emit_word(64 + 1 + 2)
            self._emit_byte(index)
            self._emit_bytes(bytes(table))

    def _emit_sof(self) -> None:
        self._emit_marker(_M_SOF0)
        self._emit_word(3 * self._components + 2 + 5 + 1)
        self._emit_byte(8)  # precision
        self._emit_word(self._height)
        self._emit_word(self._width)
        self._emit_byte(self._components)
        for index, (h, v) in enumerate(self._sampling):
            self._emit_byte(index + 1)
            self._emit_byte((h << 4) + v)
            self._emit_byte(1 if index > 0 else 0)

    def _emit_dht(self, table: HuffmanTable, index: int, ac: bool) -> None:
        self._emit_marker(_M_DHT)
        length = sum(table.bits[1:17])
        self._emit_word(length + 2 + 1 + 16)
        self._emit_byte(index + (16 if ac else 0))
        self._emit_bytes(bytes(table.bits[1:17]))
        self._emit_bytes(bytes(table.values[:length]))

    def _emit_dhts(self) -> None:
        self._emit_dht(DC_LUM_TABLE, 0, False)
        self._emit_dht(AC_LUM_TABLE, 0, True)
        if self._components == 3:
            self._emit_dht(DC_CHROMA_TABLE, 1, False)
            self._emit_dht(AC_CHROMA_TABLE, 1, True)

    def _emit_sos(self) -> None:
        self._emit_marker(_M_SOS)
        self._emit_word(2 * self._components + 2 + 1 + 3)
        self._emit_byte(self._components)
        for index in range(self._components):
            self._emit_byte(index + 1)
            self._emit_byte(0x00 if index == 0 else 0x11)
        self._emit_byte(0)  # spectral selection
        self._emit_byte(63)
        self._emit_byte(0)

    # -- block loading --------------------------------------------------

    def _block_grey(self, x: int) -> list[int]:
        start = x * 8
        return [
            sample - 128
            for row in self._mcu_lines[:8]
            for sample in row[start : start + 8]
        ]

    def _block_8_8(self, x: int, y: int, c: int) -> list[int]:
        start = x * 24 + c
        rows = self._mcu_lines[y * 8 : y * 8 + 8]
        return [sample - 128 for row in rows for sample in row[start : start + 24 : 3]]

    def _block_16_8(self, x: int, c: int) -> list[int]:
        start = x * 48 + c
        block = []
        a, b = 0, 2
        for i in range(0, 16, 2):
            top = self._mcu_lines[i][start : start + 48 : 3]
            bottom = self._mcu_lines[i + 1][start : start + 48 : 3]
            for k in range(8):
                bias = a if k % 2 == 0 else b
                total = top[2 * k] + top[2 * k + 1] + bottom[2 * k] + bottom[2 * k + 1]
                block.append(((total + bias) >> 2) - 128)
            a, b = b, a
        return block

    def _block_16_8_8(self, x: int, c: int) -> list[int]:
        start = x * 48 + c
        block = []
        for row in self._mcu_lines[:8]:
            samples = row[start : start + 48 : 3]
            block.extend(((samples[2 * k] + samples[2 * k + 1]) >> 1) - 128 for k in range(8))
        return block

    # -- entropy coding -------------------------------------------------

    def _code_block(self, samples: list[int], component: int) -> None:
        chroma = 1 if component > 0 else 0
        coefficients = quantize(dct_2d(samples), self._quant[chroma])
        dc_table, ac_table = self._huffman[chroma]

        diff = coefficients[0] - self._last_dc[component]
        self._last_dc[component] = coefficients[0]
        value = diff - 1 if diff < 0 else diff
        nbits = abs(diff).bit_length()
        self._put_bits(*dc_table.code_for(nbits))
        if nbits:
            self._put_bits(value & ((1 << nbits) - 1), nbits)

        run_len = 0
        for coefficient in coefficients[1:]:
            if coefficient == 0:
                run_len += 1
                continue
            while run_len >= 16:
                self._put_bits(*ac_table.code_for(0xF0))
                run_len -= 16
            value = coefficient - 1 if coefficient < 0 else coefficient
            nbits = max(abs(coefficient).bit_length(), 1)
            self._put_bits(*ac_table.code_for((run_len << 4) + nbits))
            self._put_bits(value & ((1 << nbits) - 1), nbits)
            run_len = 0
        if run_len:
            self._put_bits(*ac_table.code_for(0))

    def _process_mcu_row(self) -> None:
        h, v = self._sampling[0]
        for i in range(self._mcus_per_row):
            if self._components == 1:
                self._code_block(self._block_grey(i), 0)
            elif (h, v) == (1, 1):
                for c in range(3):
                    self._code_block(self._block_8_8(i, 0, c), c)
            elif (h, v) == (2, 1):
                self._code_block(self._block_8_8(i * 2, 0, 0), 0)
                self._code_block(self._block_8_8(i * 2 + 1, 0, 0), 0)
                self._code_block(self._block_16_8_8(i, 1), 1)
                self._code_block(self._block_16_8_8(i, 2), 2)
            else:
                self._code_block(self._block_8_8(i * 2, 0, 0), 0)
                self._code_block(self._block_8_8(i * 2 + 1, 0, 0), 0)
                self._code_block(self._block_8_8(i * 2, 1, 0), 0)
                self._code_block(self._block_8_8(i * 2 + 1, 1, 0), 0)
                self._code_block(self._block_16_8(i, 1), 1)
                self._code_block(self._block_16_8(i, 2), 2)

    def _load_mcu(self, line: bytes) -> None:
        width = self._width
        if self._channels == 3:
            pixels = line[: width * 3]
            converted = rgb_to_y(pixels) if self._components == 1 else rgb_to_ycc(pixels)
        else:
            # Any other channel count is read as one luminance byte per pixel.
            pixels = line[:width]
            converted = pixels if self._components == 1 else y_to_ycc(pixels)
        last_pixel = converted[self._row_bytes - self._components : self._row_bytes]
        padding = last_pixel * (self._width_mcu - width)
        self._mcu_lines[self._mcu_y_ofs][:] = converted + padding

        self._mcu_y_ofs += 1
        if self._mcu_y_ofs == self._mcu_y:
            self._process_mcu_row()
            self._mcu_y_ofs = 0

    # -- public API -----------------------------------------------------

    def _check_usable(self) -> None:
        if self._finished:
            raise ConversionError("the encoder has already finished")
        if self._failed:
            raise ConversionError("writing the JPEG stream failed")

    def process_scanline(self, line: bytes | None) -> None:
        """Encode one scanline of ``width * channels`` bytes.

        Passing ``None`` finishes the image, like :meth:`finish`.
        """
        if line is None:
            self.finish()
            return
        self._check_usable()
        data = bytes(line)
        needed = self._width * self._channels
        if len(data) < needed:
            raise ConversionError(f"scanline needs {needed} bytes, got {len(data)}")
        self._load_mcu(data)
        if self._failed:
            raise ConversionError("writing the JPEG stream failed")

    def finish(self) -> None:
        """Flush the last MCU row, write the end marker and flush output."""
        self._check_usable()
        if self._mcu_y_ofs:
            last = bytes(self._mcu_lines[self._mcu_y_ofs - 1])
            for row in self._mcu_lines[self._mcu_y_ofs :]:
                row[:] = last
            self._process_mcu_row()
        self._put_bits(0x7F, 7)
        self._emit_marker(_M_EOI)
        self._flush()
        self._finished = True
        if self._failed:
            raise ConversionError("writing the JPEG stream failed")