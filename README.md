# camconv

This library converts raw camera frames into baseline JPEG files and 24-bit BMP files. It is written in pure Python and has no third-party dependencies.

## Pixel formats

`camconv.pixformat.PixFormat` lists the source formats:

| Format | Layout |
| --- | --- |
| `RGB565` | 2 bytes per pixel, high byte first |
| `RGB888` | 3 bytes per pixel, stored as B, G, R |
| `YUV422` | YUYV: the group Y0 U Y1 V covers two pixels |
| `GRAYSCALE` | 1 byte per pixel |
| `JPEG` | listed, but no converter accepts it as a source (see below) |

Every function that takes a format accepts either a `PixFormat` member or its name as a string, in any case. For example, `"rgb565"` works. `PixFormat.parse` does this lookup.

Each format has two helpers:

- `PixFormat.bytes_per_pixel` gives the bytes per pixel.
- `PixFormat.frame_size(width, height)` gives the byte length of a raw frame.

## Encoding to JPEG

```python
from camconv.pixformat import PixFormat
from camconv.to_jpg import fmt_to_jpg, fmt_to_jpg_cb

jpeg_bytes = fmt_to_jpg(frame, 320, 240, PixFormat.RGB565, 80)
```

How the encoder treats its input:

- **Quality:** values below 1 are raised to 1, and values above 100 are lowered to 100.
- **Colour input:** encoded with 2x2 chroma subsampling.
- **Grayscale input:** gives a single-component JPEG.
- **Output limit:** `fmt_to_jpg` keeps at most `JPG_BUFFER_SIZE` bytes, which is 128 KiB. A longer stream is cut off at that length.

### Streaming the output

`fmt_to_jpg_cb` streams the output instead of collecting it. It calls `callback(index, chunk)` for each chunk, and each chunk is at most 512 bytes.

The callback returns how many bytes it accepted. If it returns `None`, the whole chunk counts as accepted. The running total becomes the next `index`, and `fmt_to_jpg_cb` returns that total when encoding ends.

```python
chunks = []
total = fmt_to_jpg_cb(frame, 320, 240, "yuv422", 60, lambda index, chunk: chunks.append(chunk))
```

### Converting a single line

`camconv.to_jpg.convert_line(data, fmt, width, line)` converts one source scanline into the form the encoder takes:

- RGB bytes for colour formats
- Y bytes for grayscale

### Using the encoder directly

For finer control, use `camconv.jpeg_encoder.JpegEncoder`:

```python
from camconv.jpeg_encoder import EncoderParams, JpegEncoder, Subsampling

out = bytearray()
enc = JpegEncoder(out.extend, width, height, 3, EncoderParams(quality=90, subsampling=Subsampling.H1V1))
for row in rows:  # each row: width * channels bytes of RGB, or Y for 1 channel
    enc.process_scanline(row)
enc.finish()
```

How the encoder behaves:

- **Headers:** the encoder writes the JPEG headers when it is constructed.
- **Finishing:** passing `None` to `process_scanline` has the same effect as calling `finish()`.
- **Failed writes:** if the `write` callable returns `False`, the stream is marked as failed and the encoder raises `ConversionError`.
- **Progress:** `enc.size` gives the number of bytes written so far, and `enc.finished` tells whether the image has been completed.
- **Subsampling:** `Subsampling` offers `Y_ONLY`, `H1V1`, `H2V1` and `H2V2`.

### Encoding building blocks

`camconv.jpeg_tables` holds the standard quantisation and Huffman tables. It also exposes the steps the encoder uses:

- `compute_quant_table`
- `compute_huffman_table`
- `rgb_to_ycc`
- `rgb_to_y`
- `y_to_ycc`
- `dct_2d`
- `quantize`

## Converting to BMP

```python
from camconv.to_bmp import fmt_to_bmp, fmt_to_rgb888

bmp_bytes = fmt_to_bmp(frame, 320, 240, PixFormat.YUV422)
pixels = fmt_to_rgb888(frame, PixFormat.RGB565)
```

BMP files are written at 24 bits per pixel in B, G, R order, stored top to bottom. The 54-byte header records the height as a negative number, which marks the top-to-bottom order. `bmp_header(width, height)` returns that header on its own.

How the pixels are produced:

- **`fmt_to_rgb888`** converts a whole frame to B, G, R triples. `RGB888` frames are returned unchanged.
- **Per-format converters:** `rgb565_to_bgr888`, `grayscale_to_bgr888` and `yuv422_to_bgr888` are also available.
- **Short frames:** `fmt_to_bmp` raises an error if the frame is shorter than its dimensions require.

## Colour conversion

`camconv.yuv.yuv_to_rgb(y, u, v)` returns an `(r, g, b)` tuple.

- It uses a fixed lookup table.
- It clamps each channel to the range 0–255.
- It raises `ValueError` for inputs outside 0–255.

## Errors

Failures raise `camconv.pixformat.ConversionError`, which is a subclass of `ValueError`. Typical causes:

- invalid dimensions
- short frames
- unknown or unsupported formats
- invalid encoder parameters
- a failed output write

## What this package does not do

The package encodes only. It has no JPEG decoder, so:

- `PixFormat.JPEG` is rejected as a source by `fmt_to_rgb888`, `fmt_to_bmp` and the JPEG encoding functions.
- Frames that are already JPEG cannot be turned into BMP or raw pixels.

The package also does not capture frames from a camera. It works only on byte buffers that you supply.