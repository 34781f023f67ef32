from __future__ import annotations

import io
import struct
import zlib
from pathlib import Path
from typing import Callable
import sys

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.t2CharStringPen import T2CharStringPen
from fontTools.pens.ttGlyphPen import TTGlyphPen
from fontTools.ttLib.tables.TupleVariation import TupleVariation
from PIL import Image
from pypdf import PdfWriter
from pypdf.generic import DecodedStreamObject, DictionaryObject, NameObject, RectangleObject

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pdfwritex import PDFWriter, WriterSettings  # noqa: E402

GLYPH_ORDER = [".notdef", "space", "A", "B", "C", "H", "e", "l", "o"]
CHARACTER_MAP = {
    0x20: "space",
    0x41: "A",
    0x42: "B",
    0x43: "C",
    0x48: "H",
    0x65: "e",
    0x6C: "l",
    0x6F: "o",
}


def _finish_font(builder: FontBuilder, ps_name: str, variable: bool = False) -> bytes:
    builder.setupHorizontalMetrics({name: (500, 50) for name in GLYPH_ORDER})
    builder.setupHorizontalHeader(ascent=800, descent=-200)
    builder.setupNameTable(
        {"familyName": "Test Sans", "styleName": "Regular", "psName": ps_name}
    )
    builder.setupOS2(
        sTypoAscender=800,
        sTypoDescender=-200,
        usWinAscent=800,
        usWinDescent=200,
        sCapHeight=700,
        sxHeight=500,
    )
    builder.setupPost()
    if variable:
        builder.setupFvar(axes=[("wght", 100, 400, 900, "Weight")], instances=[])
        # heavier instances widen every outline to the right
        deltas = [(0, 0), (0, 0), (40, 0), (40, 0)] + [(0, 0)] * 4
        builder.setupGvar(
            {
                name: [TupleVariation({"wght": (0.0, 1.0, 1.0)}, deltas)]
                for name in GLYPH_ORDER
                if name != "space"
            }
        )
    buffer = io.BytesIO()
    builder.save(buffer)
    return buffer.getvalue()


def build_truetype_font(ps_name: str = "TestSans-Regular", variable: bool = False) -> bytes:
    builder = FontBuilder(1000, isTTF=True)
    builder.setupGlyphOrder(GLYPH_ORDER)
    builder.setupCharacterMap(CHARACTER_MAP)
    glyphs = {}
    for name in GLYPH_ORDER:
        pen = TTGlyphPen(None)
        if name != "space":
            pen.moveTo((50, 0))
            pen.lineTo((50, 700))
            pen.lineTo((450, 700))
            pen.lineTo((450, 0))
            pen.closePath()
        glyphs[name] = pen.glyph()
    builder.setupGlyf(glyphs)
    builder.setupMaxp()
    return _finish_font(builder, ps_name, variable)


def build_cff_font() -> bytes:
    builder = FontBuilder(1000, isTTF=False)
    builder.setupGlyphOrder(GLYPH_ORDER)
    builder.setupCharacterMap(CHARACTER_MAP)
    charstrings = {}
    for name in GLYPH_ORDER:
        pen = T2CharStringPen(500, None)
        if name != "space":
            pen.moveTo((50, 0))
            pen.lineTo((50, 700))
            pen.lineTo((450, 700))
            pen.lineTo((450, 0))
            pen.closePath()
        charstrings[name] = pen.getCharString()
    builder.setupCFF("TestSerif-Regular", {"FullName": "Test Serif"}, charstrings, {})
    builder.setupMaxp()
    return _finish_font(builder, "TestSerif-Regular")


def png_chunk(chunk_type: bytes, body: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + body) & 0xFFFFFFFF
    return struct.pack(">I", len(body)) + chunk_type + body + struct.pack(">I", crc)


@pytest.fixture(scope="session")
def ttf_font_bytes() -> bytes:
    return build_truetype_font()


@pytest.fixture(scope="session")
def variable_font_bytes() -> bytes:
    return build_truetype_font("TestVar-Regular", variable=True)


@pytest.fixture(scope="session")
def cff_font_bytes() -> bytes:
    return build_cff_font()


@pytest.fixture()
def ttf_font_path(tmp_path: Path, ttf_font_bytes: bytes) -> Path:
    path = tmp_path / "TestSans-Regular.ttf"
    path.write_bytes(ttf_font_bytes)
    return path


@pytest.fixture()
def output() -> io.BytesIO:
    return io.BytesIO()


@pytest.fixture()
def writer(output: io.BytesIO) -> PDFWriter:
    settings = WriterSettings(default_page_width=200, default_page_height=100)
    return PDFWriter(output, settings)


@pytest.fixture()
def page_factory(writer: PDFWriter) -> Callable[..., object]:
    def _create(content: str = "0 0 m 10 10 l S"):
        stream = writer.new_object()
        stream.write(content)
        return writer.add_page(stream)

    return _create


@pytest.fixture()
def image_factory(tmp_path: Path) -> Callable[..., Path]:
    def _create(mode: str, fmt: str = "PNG", size: tuple[int, int] = (4, 3), name: str | None = None) -> Path:
        image = Image.new(mode, size)
        pixels = image.load()
        for x in range(size[0]):
            for y in range(size[1]):
                if mode == "RGBA":
                    pixels[x, y] = (x * 60, y * 80, 200, 40 + x * 50)
                elif mode == "RGB":
                    pixels[x, y] = (x * 60, y * 80, 200)
                elif mode == "LA":
                    pixels[x, y] = (x * 60, 30 + y * 70)
                elif mode == "CMYK":
                    pixels[x, y] = (x * 60, y * 80, 20, 10)
                elif mode == "P":
                    pixels[x, y] = (x + y) % 3
                else:
                    pixels[x, y] = x * 60
        if mode == "P":
            image.putpalette([255, 0, 0, 0, 255, 0, 0, 0, 255])
        extension = {"PNG": "png", "JPEG": "jpg", "GIF": "gif"}[fmt]
        path = tmp_path / (name or f"{mode.lower()}.{extension}")
        image.save(path, fmt)
        return path

    return _create


@pytest.fixture()
def raw_png() -> Callable[..., bytes]:
    """Assemble a PNG from IHDR fields, rows of filtered samples and extra chunks."""

    def _create(
        width: int = 2,
        height: int = 2,
        bit_depth: int = 8,
        color_type: int = 0,
        interlace: int = 0,
        rows: bytes | None = None,
        extra: list[tuple[bytes, bytes]] | None = None,
    ) -> bytes:
        if rows is None:
            rows = (b"\x00" + bytes(range(16, 16 + width))) * height
        header = struct.pack(">IIBBBBB", width, height, bit_depth, color_type, 0, 0, interlace)
        data = b"\x89PNG\r\n\x1a\n" + png_chunk(b"IHDR", header)
        for chunk_type, body in extra or []:
            data += png_chunk(chunk_type, body)
        data += png_chunk(b"IDAT", zlib.compress(rows))
        data += png_chunk(b"IEND", b"")
        return data

    return _create


@pytest.fixture()
def source_pdf(tmp_path: Path) -> Path:
    pdf_path = tmp_path / "source.pdf"
    writer = PdfWriter()
    page = writer.add_blank_page(width=200, height=100)

    content = DecodedStreamObject()
    content.set_data(b"0 0 m 100 50 l S")
    page[NameObject("/Contents")] = writer._add_object(content)

    font = DictionaryObject(
        {
            NameObject("/Type"): NameObject("/Font"),
            NameObject("/Subtype"): NameObject("/Type1"),
            NameObject("/BaseFont"): NameObject("/Helvetica"),
        }
    )
    page[NameObject("/Resources")] = DictionaryObject(
        {NameObject("/Font"): DictionaryObject({NameObject("/F1"): writer._add_object(font)})}
    )
    page.cropbox = RectangleObject((10, 10, 150, 90))

    writer.add_blank_page(width=300, height=300)
    with pdf_path.open("wb") as stream:
        writer.write(stream)
    return pdf_path
