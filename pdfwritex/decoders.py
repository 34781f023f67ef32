"""Bitmap decoding for image embedding.

JPEG files are embedded untouched, so only their dimensions and color model
are needed; Pillow reads those. PNG files are taken apart chunk by chunk so
that the compressed ``IDAT`` stream can be passed through unchanged with
the PNG predictors declared in ``/DecodeParms``.
"""

from __future__ import annotations

import logging
import struct
import zlib
from dataclasses import dataclass, field
from io import BytesIO
from typing import Iterator

from PIL import Image, UnidentifiedImageError

from .exceptions import UnsupportedImageError

LOGGER = logging.getLogger("pdfwritex.images")

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_PNG_COLOR_TYPES = {
    0: "DeviceGray",
    2: "DeviceRGB",
    3: "Indexed",
    4: "DeviceGray",
    6: "DeviceRGB",
}

_JPEG_COLOR_MODELS = {
    "RGB": "DeviceRGB",
    "YCbCr": "DeviceRGB",
    "L": "DeviceGray",
    "CMYK": "DeviceCMYK",
}


@dataclass(slots=True)
class DecodedImage:
    """Everything needed to write an image XObject.

    For PNG, ``data`` holds zlib-compressed, predictor-filtered samples and
    ``smask`` (if any) the uncompressed, filtered alpha rows. For JPEG,
    ``data`` is the complete file.
    """

    format: str
    width: int
    height: int
    bits_per_component: int
    colorspace: str
    data: bytes
    palette: bytes = b""
    transparency: bytes = b""
    smask: bytes = b""
    decode_parms: dict[str, int] = field(default_factory=dict)


def identify(data: bytes) -> str | None:
    """Pillow's format name for *data*, ``None`` if Pillow cannot read it."""

    # PNG variants Pillow refuses to open still deserve a precise error
    if data.startswith(PNG_SIGNATURE):
        return "PNG"
    try:
        with Image.open(BytesIO(data)) as image:
            return image.format
    except UnidentifiedImageError:
        return None
    except (OSError, Image.DecompressionBombError) as exc:
        raise UnsupportedImageError(f"Unable to read image: {exc}") from exc


def decode_jpeg(data: bytes) -> DecodedImage:
    try:
        with Image.open(BytesIO(data)) as image:
            mode = image.mode
            width, height = image.size
    except (OSError, Image.DecompressionBombError) as exc:
        raise UnsupportedImageError(f"Unable to read JPEG image: {exc}") from exc
    colorspace = _JPEG_COLOR_MODELS.get(mode)
    if colorspace is None:
        raise UnsupportedImageError(f"Unsupported JPEG color model {mode}")
    return DecodedImage(
        format="jpeg",
        width=width,
        height=height,
        bits_per_component=8,
        colorspace=colorspace,
        data=data,
    )


def _chunks(data: bytes) -> Iterator[tuple[bytes, bytes]]:
    offset = len(PNG_SIGNATURE)
    while offset + 8 <= len(data):
        (length,) = struct.unpack(">I", data[offset : offset + 4])
        chunk_type = data[offset + 4 : offset + 8]
        start = offset + 8
        end = start + length
        if end + 4 > len(data):
            raise UnsupportedImageError(f"Truncated PNG chunk {chunk_type!r}")
        yield chunk_type, data[start:end]
        if chunk_type == b"IEND":
            return
        offset = end + 4


def _transparency(color_type: int, chunk: bytes) -> bytes:
    if color_type == 0:
        if len(chunk) < 2:
            raise UnsupportedImageError("Malformed tRNS chunk")
        return bytes([chunk[1]])
    if color_type == 2:
        if len(chunk) < 6:
            raise UnsupportedImageError("Malformed tRNS chunk")
        return bytes([chunk[1], chunk[3], chunk[5]])
    # indexed: the first fully transparent palette entry
    position = chunk.find(b"\x00")
    return bytes([position]) if position >= 0 else b""


def split_alpha(raw: bytes, width: int, height: int, channels: int) -> tuple[bytes, bytes]:
    """Separate inflated PNG rows into color and alpha rows.

    Both outputs keep each row's filter type byte. PNG filters operate per
    byte on corresponding bytes of the previous pixel, so filtering the
    separated channels with the same filter type stays consistent.
    """

    stride = channels * width
    if len(raw) < (stride + 1) * height:
        raise UnsupportedImageError("PNG image data is truncated")
    color = bytearray()
    alpha = bytearray()
    for row in range(height):
        position = (stride + 1) * row
        line = raw[position + 1 : position + 1 + stride]
        color.append(raw[position])
        alpha.append(raw[position])
        if channels == 2:
            color += line[0::2]
            alpha += line[1::2]
        else:
            color += bytes(value for index, value in enumerate(line) if index % 4 != 3)
            alpha += line[3::4]
    return bytes(color), bytes(alpha)


def decode_png(data: bytes) -> DecodedImage:
    if not data.startswith(PNG_SIGNATURE):
        raise UnsupportedImageError("Not a PNG file")

    chunks = _chunks(data)
    first = next(chunks, None)
    if first is None or first[0] != b"IHDR" or len(first[1]) < 13:
        raise UnsupportedImageError("Incorrect PNG file")
    width, height, bit_depth, color_type, compression, filter_method, interlace = struct.unpack(
        ">IIBBBBB", first[1][:13]
    )

    if bit_depth > 8:
        raise UnsupportedImageError("16-bit depth not supported")
    colorspace = _PNG_COLOR_TYPES.get(color_type)
    if colorspace is None:
        raise UnsupportedImageError(f"Unknown color type {color_type}")
    if compression != 0:
        raise UnsupportedImageError("Unknown compression method")
    if filter_method != 0:
        raise UnsupportedImageError("Unknown filter method")
    if interlace != 0:
        raise UnsupportedImageError("Interlacing not supported")

    palette = b""
    transparency = b""
    idat = bytearray()
    for chunk_type, body in chunks:
        if chunk_type == b"PLTE":
            palette = body
        elif chunk_type == b"tRNS":
            transparency = _transparency(color_type, body)
        elif chunk_type == b"IDAT":
            idat += body

    if colorspace == "Indexed" and not palette:
        raise UnsupportedImageError("Missing palette")

    decode_parms = {"Predictor": 15, "Columns": width}
    if colorspace == "DeviceRGB":
        decode_parms["Colors"] = 3
    if bit_depth != 8:
        decode_parms["BitsPerComponent"] = bit_depth

    image = DecodedImage(
        format="png",
        width=width,
        height=height,
        bits_per_component=bit_depth,
        colorspace=colorspace,
        data=bytes(idat),
        palette=palette,
        transparency=transparency,
        decode_parms=decode_parms,
    )

    if color_type >= 4:
        try:
            raw = zlib.decompress(bytes(idat))
        except zlib.error as exc:
            raise UnsupportedImageError(f"Corrupt PNG image data: {exc}") from exc
        channels = 2 if color_type == 4 else 4
        color, alpha = split_alpha(raw, width, height, channels)
        image.data = zlib.compress(color, 1)
        image.smask = alpha
        LOGGER.debug("Split alpha channel from %dx%d PNG", width, height)

    return image


__all__ = [
    "DecodedImage",
    "PNG_SIGNATURE",
    "decode_jpeg",
    "decode_png",
    "identify",
    "split_alpha",
]
