import random

import pytest

from camconv.jpeg_encoder import EncoderParams, JpegEncoder, Subsampling
from camconv.jpeg_tables import (
    AC_CHROMA_BITS,
    AC_CHROMA_VALUES,
    AC_LUM_BITS,
    AC_LUM_VALUES,
    DC_CHROMA_BITS,
    DC_CHROMA_VALUES,
    DC_LUM_BITS,
    DC_LUM_VALUES,
    STD_CHROMA_QUANT,
    STD_LUM_QUANT,
    compute_quant_table,
)
from camconv.pixformat import ConversionError


def encode(width, height, channels, lines, params=None):
    chunks = []
    encoder = JpegEncoder(chunks.append, width, height, channels, params)
    for line in lines:
        encoder.process_scanline(line)
    encoder.finish()
    return chunks, encoder


def encode_bytes(width, height, channels, lines, params=None):
    chunks, _ = encode(width, height, channels, lines, params)
    return b"".join(chunks)


def noisy_lines(width, height, channels, seed=1):
    rng = random.Random(seed)
    return [bytes(rng.randrange(256) for _ in range(width * channels)) for _ in range(height)]


def segments(data):
    assert data[:2] == b"\xff\xd8"
    pos = 2
    out = []
    while True:
        assert data[pos] == 0xFF
        marker = data[pos + 1]
        length = int.from_bytes(data[pos + 2 : pos + 4], "big")
        out.append((marker, data[pos + 4 : pos + 2 + length]))
        pos += 2 + length
        if marker == 0xDA:
            return out, data[pos:]


def test_params_check():
    assert EncoderParams().check()
    assert EncoderParams(quality=1, subsampling=Subsampling.Y_ONLY).check()
    assert not EncoderParams(quality=0).check()
    assert not EncoderParams(quality=101).check()
    assert not EncoderParams(subsampling=7).check()


def test_jfif_header_prefix():
    data = encode_bytes(8, 8, 1, [bytes(8)] * 8, EncoderParams(subsampling=Subsampling.Y_ONLY))
    assert data.startswith(
        b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    )
    assert data.endswith(b"\xff\xd9")


def test_marker_order_colour():
    data = encode_bytes(16, 16, 3, noisy_lines(16, 16, 3))
    segs, _ = segments(data)
    assert [m for m, _ in segs] == [0xE0, 0xDB, 0xDB, 0xC0, 0xC4, 0xC4, 0xC4, 0xC4, 0xDA]


def test_marker_order_grayscale():
    params = EncoderParams(subsampling=Subsampling.Y_ONLY)
    data = encode_bytes(8, 8, 1, noisy_lines(8, 8, 1), params)
    segs, _ = segments(data)
    assert [m for m, _ in segs] == [0xE0, 0xDB, 0xC0, 0xC4, 0xC4, 0xDA]


@pytest.mark.parametrize("quality", [10, 50, 90])
def test_dqt_tables_match_quality(quality):
    params = EncoderParams(quality=quality, subsampling=Subsampling.H1V1)
    data = encode_bytes(8, 8, 3, noisy_lines(8, 8, 3), params)
    segs, _ = segments(data)
    dqts = [payload for marker, payload in segs if marker == 0xDB]
    assert dqts[0] == bytes([0]) + bytes(compute_quant_table(quality, STD_LUM_QUANT))
    assert dqts[1] == bytes([1]) + bytes(compute_quant_table(quality, STD_CHROMA_QUANT))


@pytest.mark.parametrize(
    "subsampling, components",
    [
        (Subsampling.Y_ONLY, [(1, 0x11, 0)]),
        (Subsampling.H1V1, [(1, 0x11, 0), (2, 0x11, 1), (3, 0x11, 1)]),
        (Subsampling.H2V1, [(1, 0x21, 0), (2, 0x11, 1), (3, 0x11, 1)]),
        (Subsampling.H2V2, [(1, 0x22, 0), (2, 0x11, 1), (3, 0x11, 1)]),
    ],
)
def test_sof_fields(subsampling, components):
    width, height = 21, 13
    data = encode_bytes(width, height, 3, noisy_lines(width, height, 3), EncoderParams(subsampling=subsampling))
    segs, _ = segments(data)
    sof = dict(segs)[0xC0]
    assert sof[0] == 8
    assert int.from_bytes(sof[1:3], "big") == height
    assert int.from_bytes(sof[3:5], "big") == width
    assert sof[5] == len(components)
    triples = [tuple(sof[6 + 3 * i : 9 + 3 * i]) for i in range(len(components))]
    assert triples == components


def test_dht_payloads():
    data = encode_bytes(16, 16, 3, noisy_lines(16, 16, 3))
    segs, _ = segments(data)
    dhts = [payload for marker, payload in segs if marker == 0xC4]
    expected = [
        (0x00, DC_LUM_BITS, DC_LUM_VALUES),
        (0x10, AC_LUM_BITS, AC_LUM_VALUES),
        (0x01, DC_CHROMA_BITS, DC_CHROMA_VALUES),
        (0x11, AC_CHROMA_BITS, AC_CHROMA_VALUES),
    ]
    for payload, (index, bits, values) in zip(dhts, expected):
        assert payload == bytes([index]) + bytes(bits[1:]) + bytes(values)


def test_sos_payload_colour():
    data = encode_bytes(16, 16, 3, noisy_lines(16, 16, 3))
    segs, _ = segments(data)
    assert dict(segs)[0xDA] == bytes([3, 1, 0x00, 2, 0x11, 3, 0x11, 0, 63, 0])


def test_flat_gray_block_scan_data():
    params = EncoderParams(subsampling=Subsampling.Y_ONLY)
    data = encode_bytes(8, 8, 1, [bytes([128] * 8)] * 8, params)
    _, scan = segments(data)
    assert scan == b"\x2b\xff\xd9"


def test_chunks_are_full_except_last():
    chunks, encoder = encode(48, 48, 3, noisy_lines(48, 48, 3))
    assert len(chunks) > 1
    assert all(len(chunk) == 512 for chunk in chunks[:-1])
    assert 0 < len(chunks[-1]) <= 512
    assert encoder.size == sum(len(chunk) for chunk in chunks)


def test_scan_bytes_are_stuffed():
    data = encode_bytes(32, 32, 3, noisy_lines(32, 32, 3, seed=7))
    _, scan = segments(data)
    body = scan[:-2]
    assert scan[-2:] == b"\xff\xd9"
    for i, value in enumerate(body):
        if value == 0xFF:
            assert body[i + 1] == 0


def test_deterministic_and_quality_affects_size():
    lines = noisy_lines(32, 32, 3, seed=3)
    high = encode_bytes(32, 32, 3, lines, EncoderParams(quality=95))
    assert high == encode_bytes(32, 32, 3, lines, EncoderParams(quality=95))
    low = encode_bytes(32, 32, 3, lines, EncoderParams(quality=10))
    assert len(low) < len(high)


def test_gray_rgb_matches_luminance_input():
    rng = random.Random(5)
    grays = [bytes(rng.randrange(256) for _ in range(16)) for _ in range(16)]
    rgb = [bytes(v for g in row for v in (g, g, g)) for row in grays]
    params = EncoderParams(subsampling=Subsampling.H1V1)
    assert encode_bytes(16, 16, 3, rgb, params) == encode_bytes(16, 16, 1, grays, params)


def test_odd_dimensions_complete():
    data = encode_bytes(13, 7, 3, noisy_lines(13, 7, 3))
    segs, scan = segments(data)
    sof = dict(segs)[0xC0]
    assert int.from_bytes(sof[1:3], "big") == 7
    assert int.from_bytes(sof[3:5], "big") == 13
    assert scan.endswith(b"\xff\xd9")


def test_none_scanline_finishes():
    lines = noisy_lines(8, 8, 1)
    params = EncoderParams(subsampling=Subsampling.Y_ONLY)
    chunks = []
    encoder = JpegEncoder(chunks.append, 8, 8, 1, params)
    for line in lines:
        encoder.process_scanline(line)
    encoder.process_scanline(None)
    assert encoder.finished
    assert b"".join(chunks) == encode_bytes(8, 8, 1, lines, params)


@pytest.mark.parametrize(
    "width, height, channels, params",
    [
        (0, 8, 3, EncoderParams()),
        (8, 0, 3, EncoderParams()),
        (8, 8, 2, EncoderParams()),
        (8, 8, 3, EncoderParams(quality=0)),
        (70000, 8, 3, EncoderParams()),
    ],
)
def test_invalid_setup_raises(width, height, channels, params):
    with pytest.raises(ConversionError):
        JpegEncoder(lambda chunk: None, width, height, channels, params)


def test_short_scanline_raises():
    encoder = JpegEncoder(lambda chunk: None, 8, 8, 3, EncoderParams())
    with pytest.raises(ConversionError):
        encoder.process_scanline(bytes(8 * 3 - 1))


def test_use_after_finish_raises():
    encoder = JpegEncoder(lambda chunk: None, 8, 8, 1, EncoderParams(subsampling=Subsampling.Y_ONLY))
    encoder.finish()
    with pytest.raises(ConversionError):
        encoder.finish()
    with pytest.raises(ConversionError):
        encoder.process_scanline(bytes(8))


def test_failing_writer_on_colour_header():
    with pytest.raises(ConversionError):
        JpegEncoder(lambda chunk: False, 16, 16, 3, EncoderParams())


def test_failing_writer_during_scan():
    params = EncoderParams(quality=100, subsampling=Subsampling.Y_ONLY)
    encoder = JpegEncoder(lambda chunk: False, 64, 64, 1, params)
    with pytest.raises(ConversionError):
        for line in noisy_lines(64, 64, 1):
            encoder.process_scanline(line)
        encoder.finish()
    assert encoder.size == 0