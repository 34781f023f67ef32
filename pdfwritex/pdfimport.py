"""Import pages of existing PDF files as Form XObjects using :mod:`pypdf`."""

from __future__ import annotations

import io
import logging
import zlib
from dataclasses import dataclass
from typing import Any, Callable

from pypdf import PdfReader
from pypdf.errors import PdfReadError
from pypdf.generic import (
    ArrayObject,
    DictionaryObject,
    FloatObject,
    IndirectObject,
    NameObject,
    NumberObject,
    PdfObject,
    StreamObject,
)

from .exceptions import PageOutOfRangeError, PDFImportError

_LOGGER = logging.getLogger("pdfwritex.pdfimport")

PAGE_BOXES = ("/MediaBox", "/CropBox", "/BleedBox", "/TrimBox", "/ArtBox")


@dataclass(frozen=True, slots=True)
class BoxDimensions:
    """A page box as lower-left and upper-right corners, in PDF points."""

    llx: float
    lly: float
    urx: float
    ury: float

    @property
    def x(self) -> float:
        return self.llx

    @property
    def y(self) -> float:
        return self.lly

    @property
    def w(self) -> float:
        return self.urx - self.llx

    @property
    def h(self) -> float:
        return self.ury - self.lly

    def clamp(self, outer: "BoxDimensions") -> "BoxDimensions":
        """This box with every edge moved inside *outer*."""

        return BoxDimensions(
            llx=max(self.llx, outer.llx),
            lly=max(self.lly, outer.lly),
            urx=min(self.urx, outer.urx),
            ury=min(self.ury, outer.ury),
        )


def _number(value: Any) -> float:
    if isinstance(value, IndirectObject):
        value = value.get_object()
    return float(value)


def _box(rectangle: Any) -> BoxDimensions:
    values = [_number(value) for value in rectangle]
    if len(values) != 4:
        raise PDFImportError(f"Malformed page box: {values}")
    llx, lly, urx, ury = values
    return BoxDimensions(min(llx, urx), min(lly, ury), max(llx, urx), max(lly, ury))


def _dump(obj: PdfObject) -> bytes:
    buffer = io.BytesIO()
    obj.write_to_stream(buffer)
    return buffer.getvalue()


class _ObjectCopier:
    """Copies objects reachable from a page into a fresh number space."""

    def __init__(self, allocate: Callable[[], int]) -> None:
        self._allocate = allocate
        self._numbers: dict[tuple[int, int], int] = {}
        self._pending: list[tuple[int, IndirectObject]] = []

    def _number_for(self, reference: IndirectObject) -> int:
        key = (reference.idnum, reference.generation)
        number = self._numbers.get(key)
        if number is None:
            number = self._allocate()
            self._numbers[key] = number
            self._pending.append((number, reference))
        return number

    def remap(self, value: Any) -> Any:
        if isinstance(value, IndirectObject):
            return IndirectObject(self._number_for(value), 0, None)
        if isinstance(value, DictionaryObject):
            copied = DictionaryObject()
            for key, item in value.items():
                # page tree links would drag the whole source document along
                if key == "/Parent":
                    continue
                copied[NameObject(key)] = self.remap(item)
            return copied
        if isinstance(value, ArrayObject):
            return ArrayObject(self.remap(item) for item in value)
        return value

    def render(self, value: Any) -> bytes:
        if isinstance(value, StreamObject):
            entries = DictionaryObject()
            for key, item in value.items():
                if key in ("/Length", "/Parent"):
                    continue
                entries[NameObject(key)] = self.remap(item)
            data = value._data  # still encoded with the source's filters
            entries[NameObject("/Length")] = NumberObject(len(data))
            return _dump(entries) + b"\nstream\n" + data + b"\nendstream"
        return _dump(self.remap(value))

    def drain(self) -> dict[int, bytes]:
        objects: dict[int, bytes] = {}
        while self._pending:
            number, reference = self._pending.pop()
            objects[number] = self.render(reference.get_object())
        return objects


class PDFImporter:
    """Read access to a foreign PDF for embedding its pages."""

    def __init__(self, source: bytes, *, filename: str = "<memory>", compression_level: int = 9) -> None:
        self.filename = filename
        self.compression_level = compression_level
        try:
            self.reader = PdfReader(io.BytesIO(source))
        except PdfReadError as exc:
            raise PDFImportError(f"Corrupted or invalid PDF file: {filename}. Error: {exc}") from exc
        except Exception as exc:
            raise PDFImportError(f"Unexpected error reading PDF: {filename}. Error: {exc}") from exc

        if self.reader.is_encrypted and self.reader.decrypt("") == 0:
            raise PDFImportError(f"PDF is encrypted: {filename}")

    def page_count(self) -> int:
        return len(self.reader.pages)

    def page_sizes(self) -> dict[int, dict[str, BoxDimensions]]:
        """The boxes defined on each page, keyed by 1-based page number."""

        sizes: dict[int, dict[str, BoxDimensions]] = {}
        try:
            for number, page in enumerate(self.reader.pages, start=1):
                boxes = {"/MediaBox": _box(page.mediabox)}
                for name in PAGE_BOXES[1:]:
                    if name in page:
                        boxes[name] = _box(page[name])
                sizes[number] = boxes
        except PdfReadError as exc:
            raise PDFImportError(f"Unable to read page boxes from {self.filename}: {exc}") from exc
        return sizes

    def import_page(
        self,
        page_number: int,
        bbox: BoxDimensions,
        allocate: Callable[[], int],
    ) -> dict[int, bytes]:
        """Copy page *page_number* and everything it uses.

        The first number drawn from *allocate* belongs to the Form XObject
        representing the page. Returns the serialized body of every new
        object keyed by its object number.
        """

        if not 1 <= page_number <= self.page_count():
            raise PageOutOfRangeError(
                f"Page {page_number} out of range (1-{self.page_count()}): {self.filename}"
            )
        _LOGGER.debug("Importing page %d from %s", page_number, self.filename)

        try:
            page = self.reader.pages[page_number - 1]
            copier = _ObjectCopier(allocate)
            form_number = allocate()

            resources = page.raw_get("/Resources") if "/Resources" in page else DictionaryObject()
            contents = page.get_contents()
            content = contents.get_data() if contents is not None else b""
            compressed = zlib.compress(content, self.compression_level)

            form = DictionaryObject()
            form[NameObject("/Type")] = NameObject("/XObject")
            form[NameObject("/Subtype")] = NameObject("/Form")
            form[NameObject("/FormType")] = NumberObject(1)
            form[NameObject("/BBox")] = ArrayObject(
                FloatObject(value) for value in (bbox.llx, bbox.lly, bbox.urx, bbox.ury)
            )
            form[NameObject("/Resources")] = copier.remap(resources)
            form[NameObject("/Filter")] = NameObject("/FlateDecode")
            form[NameObject("/Length")] = NumberObject(len(compressed))

            objects = {form_number: _dump(form) + b"\nstream\n" + compressed + b"\nendstream"}
            objects.update(copier.drain())
        except PdfReadError as exc:
            raise PDFImportError(
                f"Unable to import page {page_number} from {self.filename}: {exc}"
            ) from exc
        _LOGGER.debug("Imported %d objects from %s", len(objects), self.filename)
        return objects


__all__ = ["BoxDimensions", "PAGE_BOXES", "PDFImporter"]
