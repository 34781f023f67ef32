from __future__ import annotations

import io
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable

import pytest
from pypdf import PdfReader

from pdfwritex import (
    DocumentStructureError,
    PDFWriteError,
    PDFWriter,
    WriterSettings,
)
from pdfwritex.values import Name, String
from pdfwritex.writer import SequenceAllocator
from pdfwritex.xref import build_sections, document_id, format_sections


def _read(output: io.BytesIO) -> PdfReader:
    return PdfReader(io.BytesIO(output.getvalue()), strict=True)


def _build_document(output: io.BytesIO) -> PDFWriter:
    writer = PDFWriter(output, WriterSettings(default_page_width=200, default_page_height=100))
    content = writer.new_object()
    content.write("0 0 m 10 10 l S")
    writer.add_page(content)
    writer.finish()
    return writer


def test_finish_without_pages_writes_nothing(writer: PDFWriter, output: io.BytesIO) -> None:
    with pytest.raises(DocumentStructureError):
        writer.finish()

    assert output.getvalue() == b""


def test_minimal_document_round_trips(output: io.BytesIO) -> None:
    writer = _build_document(output)

    data = output.getvalue()
    assert data.startswith(b"%PDF-1.7\n%\x80\x80\x80\x80")
    assert data.endswith(b"%%EOF\n")
    assert writer.page_count == 1
    assert writer.size == len(data)

    reader = _read(output)
    assert len(reader.pages) == 1
    assert float(reader.pages[0].mediabox.width) == 200
    assert float(reader.pages[0].mediabox.height) == 100
    assert reader.trailer["/Size"] == writer.next_object_number
    assert b"10 10 l" in reader.pages[0].get_contents().get_data()


def test_xref_offsets_point_at_objects(output: io.BytesIO) -> None:
    _build_document(output)
    data = output.getvalue()

    startxref = int(re.search(rb"startxref\n(\d+)\n%%EOF\n$", data).group(1))
    assert data[startxref:].startswith(b"xref\n0 ")

    table = data[startxref:].split(b"trailer\n")[0].decode("ascii").splitlines()[1:]
    number = None
    for line in table:
        fields = line.split()
        if len(fields) == 2:
            number = int(fields[0])
            continue
        offset, generation, kind = int(fields[0]), fields[1], fields[2]
        if number == 0:
            assert (offset, generation, kind) == (0, "65535", "f")
        else:
            assert kind == "n"
            assert data[offset:].startswith(f"{number} 0 obj\n".encode())
        number += 1


def test_trailer_id_is_checksum_of_xref(output: io.BytesIO) -> None:
    _build_document(output)
    data = output.getvalue().decode("latin-1")

    start = data.index("\nxref\n") + len("\nxref\n")
    body = data[start : data.index("trailer\n", start)]
    checksum = document_id(body)
    assert re.fullmatch(r"[0-9A-F]{32}", checksum)
    assert f"/ID [<{checksum}> <{checksum}>]" in data


def test_output_is_deterministic() -> None:
    first, second = io.BytesIO(), io.BytesIO()
    _build_document(first)
    _build_document(second)

    assert first.getvalue() == second.getvalue()


def test_build_sections_splits_on_gaps() -> None:
    sections = build_sections({0: 0, 1: 15, 2: 40, 5: 90}, 6)

    assert [(s.start, s.offsets) for s in sections] == [(0, [0, 15, 40]), (5, [90])]
    assert format_sections(sections) == (
        "0 3\n"
        "0000000000 65535 f \n"
        "0000000015 00000 n \n"
        "0000000040 00000 n \n"
        "5 1\n"
        "0000000090 00000 n \n"
    )


def test_unsaved_object_numbers_leave_gaps(writer: PDFWriter, output: io.BytesIO, page_factory: Callable) -> None:
    writer.next_object()
    page_factory()
    writer.finish()

    reader = _read(output)
    assert len(reader.pages) == 1
    assert b"\n0 1\n" in output.getvalue()


def test_info_dictionary(writer: PDFWriter, output: io.BytesIO, page_factory: Callable) -> None:
    writer.info_dict["Title"] = String("Quarterly report")
    writer.info_dict["Creator"] = String("pdfwritex")
    page_factory()
    writer.finish()

    reader = _read(output)
    assert reader.metadata is not None
    assert reader.metadata.title == "Quarterly report"


def test_info_dictionary_skipped_for_pdf2(output: io.BytesIO) -> None:
    writer = PDFWriter(output, WriterSettings(major=2, minor=0, default_page_width=10, default_page_height=10))
    writer.info_dict["Title"] = String("ignored")
    content = writer.new_object()
    writer.add_page(content)
    writer.finish()

    data = output.getvalue()
    assert data.startswith(b"%PDF-2.0")
    assert b"/Info" not in data
    assert b"ignored" not in data


def test_catalog_overrides_are_merged_last(writer: PDFWriter, output: io.BytesIO, page_factory: Callable) -> None:
    writer.catalog["PageMode"] = Name("UseOutlines")
    writer.catalog["/PageLayout"] = Name("SinglePage")
    page_factory()
    writer.finish()

    root = _read(output).trailer["/Root"]
    assert root["/PageMode"] == "/UseOutlines"
    assert root["/PageLayout"] == "/SinglePage"
    assert root["/Type"] == "/Catalog"


def test_page_with_own_geometry_gets_media_box(writer: PDFWriter, output: io.BytesIO, page_factory: Callable) -> None:
    page_factory()
    wide = page_factory()
    wide.width = 300.456

    writer.finish()

    reader = _read(output)
    assert float(reader.pages[1].mediabox.width) == pytest.approx(300.46)
    assert float(reader.pages[0].mediabox.width) == 200


def test_add_page_with_reserved_number(writer: PDFWriter, output: io.BytesIO) -> None:
    number = writer.next_object()
    content = writer.new_object()
    page = writer.add_page(content, number)
    writer.finish()

    assert page.number == number
    assert content.force_stream
    assert _read(output).pages[0].indirect_reference.idnum == number


def test_finish_twice_is_an_error(writer: PDFWriter, page_factory: Callable) -> None:
    page_factory()
    writer.finish()

    with pytest.raises(RuntimeError):
        writer.finish()


def test_finish_and_close(tmp_path: Path) -> None:
    path = tmp_path / "out.pdf"
    handle = path.open("wb")
    writer = PDFWriter(handle, WriterSettings(default_page_width=50, default_page_height=50))
    writer.add_page(writer.new_object())

    writer.finish_and_close()

    assert handle.closed
    assert len(PdfReader(path).pages) == 1


def test_sink_errors_are_wrapped() -> None:
    class BrokenSink:
        def write(self, data: bytes) -> int:
            raise OSError("disk full")

    writer = PDFWriter(BrokenSink())  # type: ignore[arg-type]

    with pytest.raises(PDFWriteError, match="disk full"):
        writer.write("x")


def test_allocator_is_thread_safe() -> None:
    allocator = SequenceAllocator(1)

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(pool.map(lambda _: allocator.allocate(), range(800)))

    assert sorted(numbers) == list(range(1, 801))
    assert allocator.peek() == 801


def test_settings_validation() -> None:
    with pytest.raises(ValueError):
        WriterSettings(compression_level=10)
    with pytest.raises(ValueError):
        WriterSettings(major=0)
    assert WriterSettings().version == "1.7"
