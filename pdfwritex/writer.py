"""Low-level PDF document writer."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from .config import WriterSettings
from .document import NameDest, Outline, Page, Separation, write_document_catalog_and_pages
from .exceptions import PDFWriteError
from .objects import PDFObject
from .values import Dict, ObjectNumber
from .xref import write_xref_and_trailer

if TYPE_CHECKING:  # pragma: no cover
    from .fonts import Face
    from .images import Imagefile

LOGGER = logging.getLogger("pdfwritex.writer")


class SequenceAllocator:
    """Thread-safe, strictly increasing integer counter."""

    def __init__(self, start: int = 0) -> None:
        self._next = start
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def peek(self) -> int:
        with self._lock:
            return self._next


class PDFWriter:
    """Streams a PDF document into a binary sink.

    Objects are written as soon as they are saved; the cross-reference
    table, the page tree, the catalog and all registered fonts and images
    are emitted by :meth:`finish`.

    Object numbers and the ids used for font and image resource names are
    drawn from two independent allocators that can be shared between
    threads. Everything that writes to the sink must run on one thread.
    """

    def __init__(self, output: BinaryIO, settings: WriterSettings | None = None) -> None:
        self.settings = settings or WriterSettings()
        self.major = self.settings.major
        self.minor = self.settings.minor
        self.default_page_width = self.settings.default_page_width
        self.default_page_height = self.settings.default_page_height
        self.default_offset_x = self.settings.default_offset_x
        self.default_offset_y = self.settings.default_offset_y

        self.catalog = Dict()
        self.info_dict = Dict()
        self.names = Dict()
        self.colorspaces: list[Separation] = []
        self.name_destinations: dict[str, NameDest] = {}
        self.outlines: list[Outline] = []
        self.pages: list[Page] = []
        self.page_count = 0
        self.ids = SequenceAllocator(0)

        self._output = output
        self._objects = SequenceAllocator(1)
        self._locations: dict[int, int] = {0: 0}
        self._pos = 0
        self._last_eol = 0
        self._finished = False

    # -- raw output ---------------------------------------------------------

    @property
    def size(self) -> int:
        """Number of bytes written so far."""

        return self._pos

    @property
    def object_locations(self) -> dict[int, int]:
        return dict(self._locations)

    @property
    def next_object_number(self) -> int:
        return self._objects.peek()

    def write(self, data: str | bytes) -> None:
        if self._pos == 0:
            self._emit(f"%PDF-{self.major}.{self.minor}\n%\x80\x80\x80\x80")
        self._emit(data)

    def writeln(self, data: str | bytes = "") -> None:
        if isinstance(data, str):
            self.write(data + "\n")
        else:
            self.write(data + b"\n")

    def _emit(self, data: str | bytes) -> None:
        if isinstance(data, str):
            data = data.encode("latin-1")
        try:
            self._output.write(data)
        except OSError as exc:
            raise PDFWriteError(f"Failed to write PDF output: {exc}") from exc
        self._pos += len(data)

    def begin_object(self, number: int) -> None:
        """Record the offset of object *number* and write its header."""

        if number in self._locations:
            raise RuntimeError(f"Object {number} has already been written")
        if self._pos == 0:
            self.write(b"")
        self._locations[number] = self._pos + 1
        self.write(f"\n{number} 0 obj\n")

    def end_object(self) -> None:
        self._eol()
        self.writeln("endobj")

    def _eol(self) -> None:
        if self._pos != self._last_eol:
            self.writeln()
            self._last_eol = self._pos

    # -- objects ------------------------------------------------------------

    def next_object(self) -> ObjectNumber:
        """Reserve the next object number without creating an object."""

        return ObjectNumber(self._objects.allocate())

    def new_object(self) -> PDFObject:
        return PDFObject(self, self.next_object())

    def new_object_with_number(self, number: int) -> PDFObject:
        """Create an object for a number reserved with :meth:`next_object`."""

        return PDFObject(self, number)

    # -- pages --------------------------------------------------------------

    def add_page(self, content: PDFObject, number: int | None = None) -> Page:
        """Register a page whose content stream is *content*.

        The page object is allocated now (or takes *number* if the caller
        reserved one earlier) and written during :meth:`finish`.
        """

        content.force_stream = True
        page = Page(
            number=ObjectNumber(number) if number is not None else self.next_object(),
            content_stream=content,
            width=self.default_page_width,
            height=self.default_page_height,
            offset_x=self.default_offset_x,
            offset_y=self.default_offset_y,
        )
        self.pages.append(page)
        return page

    def get_catalog_name_tree_dict(self, name: str) -> Dict:
        """Entry *name* of the catalog's ``/Names`` dictionary, created on first use."""

        entry = self.names.get(name)
        if entry is None:
            entry = self.names[name] = Dict()
        return entry

    # -- assets -------------------------------------------------------------

    def load_face(self, filename: str | Path, index: int = 0) -> "Face":
        from .fonts import load_face

        return load_face(self, filename, index)

    def new_face_from_data(self, data: bytes, index: int = 0) -> "Face":
        from .fonts import new_face_from_data

        return new_face_from_data(self, data, index)

    def load_image_file(
        self,
        filename: str | Path,
        box: str = "/MediaBox",
        page_number: int = 1,
    ) -> "Imagefile":
        from .images import load_image_file

        return load_image_file(self, filename, box=box, page_number=page_number)

    def load_image_data(
        self,
        data: bytes,
        *,
        filename: str = "<memory>",
        box: str = "/MediaBox",
        page_number: int = 1,
    ) -> "Imagefile":
        from .images import load_image_data

        return load_image_data(self, data, filename=filename, box=box, page_number=page_number)

    # -- finishing ----------------------------------------------------------

    def finish(self) -> None:
        """Write pages, catalog, fonts, images, xref table and trailer."""

        if self._finished:
            raise RuntimeError("PDF document has already been finished")
        root = write_document_catalog_and_pages(self)
        info = self._write_info_dict()
        write_xref_and_trailer(self, root, info)
        self._finished = True
        self.page_count = len(self.pages)
        LOGGER.info("Finished PDF: %d pages, %d bytes", self.page_count, self._pos)

    def finish_and_close(self) -> None:
        self.finish()
        close = getattr(self._output, "close", None)
        if close is not None:
            try:
                close()
            except OSError as exc:
                raise PDFWriteError(f"Failed to close PDF output: {exc}") from exc

    def _write_info_dict(self) -> ObjectNumber | None:
        # the document information dictionary is deprecated in PDF 2.0
        if not self.info_dict or self.major >= 2:
            return None
        info = self.new_object()
        info.dict(self.info_dict).save()
        return info.number


__all__ = ["PDFWriter", "SequenceAllocator"]
