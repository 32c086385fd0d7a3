from itertools import accumulate

import pytest

from camconv.pixformat import ConversionError, PixFormat
from camconv.to_jpg import convert_line, fmt_to_jpg, fmt_to_jpg_cb
from camconv.yuv import yuv_to_rgb


def _gradient(width, height, bpp):
    return bytes((i * 7 + 3) % 256 for i in range(width * height * bpp))


def _sof(jpeg):
    pos = jpeg.index(b"\xff\xc0")
    return jpeg[pos + 2 : pos + 2 + 17]


def test_convert_line_rgb888_swaps_order():
    assert convert_line(b"\x01\x02\x03\x04\x05\x06", PixFormat.RGB888, 2, 0) == b"\x03\x02\x01\x06\x05\x04"


def test_convert_line_grayscale_selects_row():
    data = bytes(range(6))
    assert convert_line(data, PixFormat.GRAYSCALE, 3, 1) == bytes([3, 4, 5])


def test_convert_line_rgb565_pure_red():
    assert convert_line(b"\xf8\x00", PixFormat.RGB565, 1, 0) == b"\xf8\x00\x00"


def test_convert_line_yuv422_matches_yuv_to_rgb():
    data = bytes([100, 90, 150, 200])
    expected = bytes(yuv_to_rgb(100, 90, 200)) + bytes(yuv_to_rgb(150, 90, 200))
    assert convert_line(data, "yuv422", 2, 0) == expected


def test_convert_line_short_data_raises():
    with pytest.raises(ConversionError):
        convert_line(b"\x00\x01", PixFormat.RGB888, 1, 0)


def test_convert_line_jpeg_raises():
    with pytest.raises(ConversionError):
        convert_line(b"\xff\xd8", PixFormat.JPEG, 1, 0)


@pytest.mark.parametrize("fmt,bpp", [
    (PixFormat.RGB888, 3), (PixFormat.RGB565, 2), (PixFormat.YUV422, 2), (PixFormat.GRAYSCALE, 1),
])
def test_fmt_to_jpg_markers(fmt, bpp):
    jpeg = fmt_to_jpg(_gradient(20, 12, bpp), 20, 12, fmt, 50)
    assert jpeg.startswith(b"\xff\xd8\xff\xe0")
    assert jpeg.endswith(b"\xff\xd9")


def test_fmt_to_jpg_dimensions_in_sof():
    jpeg = fmt_to_jpg(_gradient(20, 12, 3), 20, 12, PixFormat.RGB888, 80)
    sof = _sof(jpeg)
    assert sof[3:5] == (12).to_bytes(2, "big")
    assert sof[5:7] == (20).to_bytes(2, "big")
    assert sof[7] == 3


def test_fmt_to_jpg_grayscale_has_one_component():
    jpeg = fmt_to_jpg(_gradient(9, 9, 1), 9, 9, PixFormat.GRAYSCALE, 80)
    assert _sof(jpeg)[7] == 1


def test_quality_is_clamped():
    data = _gradient(16, 16, 3)
    assert fmt_to_jpg(data, 16, 16, PixFormat.RGB888, 0) == fmt_to_jpg(data, 16, 16, PixFormat.RGB888, 1)
    assert fmt_to_jpg(data, 16, 16, PixFormat.RGB888, 250) == fmt_to_jpg(data, 16, 16, PixFormat.RGB888, 100)


def test_callback_output_matches_buffer():
    data = _gradient(40, 30, 2)
    chunks = []

    def callback(index, chunk):
        chunks.append((index, chunk))
        return len(chunk)

    total = fmt_to_jpg_cb(data, 40, 30, PixFormat.RGB565, 60, callback)
    joined = b"".join(chunk for _, chunk in chunks)
    assert joined == fmt_to_jpg(data, 40, 30, PixFormat.RGB565, 60)
    assert total == len(joined)
    indices = [index for index, _ in chunks]
    lengths = [len(chunk) for _, chunk in chunks]
    assert len(indices) > 0
    assert indices == list(accumulate([0] + lengths[:-1]))


def test_callback_return_value_drives_index():
    indices = []

    def callback(index, chunk):
        indices.append(index)
        return 1

    total = fmt_to_jpg_cb(_gradient(8, 8, 1), 8, 8, PixFormat.GRAYSCALE, 50, callback)
    assert total == len(indices)
    assert indices == list(range(len(indices)))


def test_short_frame_raises():
    with pytest.raises(ConversionError):
        fmt_to_jpg(b"\x00" * 10, 8, 8, PixFormat.RGB888, 50)


def test_jpeg_source_raises():
    with pytest.raises(ConversionError):
        fmt_to_jpg(b"\xff\xd8\xff\xd9", 8, 8, PixFormat.JPEG, 50)


def test_zero_width_raises():
    with pytest.raises(ConversionError):
        fmt_to_jpg(b"", 0, 4, PixFormat.GRAYSCALE, 50)