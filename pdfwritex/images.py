"""Image XObjects from PNG, JPEG and PDF files."""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from .decoders import DecodedImage, decode_jpeg, decode_png, identify
from .exceptions import BoxNotFoundError, InvalidAssetError, PageOutOfRangeError, UnsupportedImageError
from .pdfimport import PAGE_BOXES, BoxDimensions, PDFImporter
from .values import Array, Dict, Name, ObjectNumber

if TYPE_CHECKING:  # pragma: no cover
    from .writer import PDFWriter

LOGGER = logging.getLogger("pdfwritex.images")

# boxes that inherit the crop box before the media box when missing
_CROP_FALLBACK_BOXES = ("/ArtBox", "/BleedBox", "/TrimBox")


class ImageState(enum.Enum):
    CREATED = "created"
    FINISHED = "finished"


def _normalize_box_name(box: str) -> str:
    if not box:
        return "/MediaBox"
    return box if box.startswith("/") else "/" + box


def resolve_box(
    page_sizes: dict[int, dict[str, BoxDimensions]], page_number: int, box: str
) -> BoxDimensions:
    """Dimensions of *box* on *page_number*, clamped to the page's media box.

    A missing ``/CropBox`` falls back to the ``/MediaBox``; a missing
    ``/ArtBox``, ``/BleedBox`` or ``/TrimBox`` falls back to the
    ``/CropBox`` if present and to the ``/MediaBox`` otherwise.
    """

    box = _normalize_box_name(box)
    boxes = page_sizes.get(page_number)
    if not boxes:
        raise PageOutOfRangeError(f"Page {page_number} not found")
    mediabox = boxes.get("/MediaBox")
    if mediabox is None:
        raise BoxNotFoundError(f"Page {page_number} has no /MediaBox")
    if box not in PAGE_BOXES:
        raise BoxNotFoundError(f"Unknown box {box!r} on page {page_number}")

    if box == "/MediaBox":
        return mediabox
    source = boxes.get(box)
    if source is None and box in _CROP_FALLBACK_BOXES:
        source = boxes.get("/CropBox")
    if source is None:
        source = mediabox
    return source.clamp(mediabox)


class Imagefile:
    """An image registered with a writer.

    Bitmaps (PNG, JPEG) have a scale of 1 and are sized by ``width`` and
    ``height`` in pixels. A page of a PDF file is embedded as a Form
    XObject whose scale is the width and height of the selected box.
    """

    def __init__(
        self,
        writer: "PDFWriter",
        *,
        filename: str,
        format: str,
        source: bytes,
        box: str = "/MediaBox",
        page_number: int = 1,
    ) -> None:
        self.filename = filename
        self.format = format
        self.box = _normalize_box_name(box)
        self.page_number = page_number
        self.number_of_pages = 1
        self.page_sizes: dict[int, dict[str, BoxDimensions]] = {}
        self.width = 0
        self.height = 0
        self.scale_x = 1.0
        self.scale_y = 1.0
        self.decoded: DecodedImage | None = None
        self.id = writer.ids.allocate()
        self.image_object = writer.new_object()
        self.state = ImageState.CREATED
        self._writer = writer
        self._source: bytes | None = source
        self._importer: PDFImporter | None = None

    def __repr__(self) -> str:
        return f"Imagefile(id={self.id}, filename={self.filename!r}, format={self.format!r})"

    def internal_name(self) -> str:
        return f"/Im{self.id}"

    def get_pdf_box_dimensions(self, page_number: int, box: str) -> BoxDimensions:
        return resolve_box(self.page_sizes, page_number, box)

    def close(self) -> None:
        """Release the source data. The image can no longer be written."""

        self._source = None
        self._importer = None

    def finish(self) -> None:
        if self.state is ImageState.FINISHED:
            raise RuntimeError(f"Image {self.filename} has already been written")
        if self._source is None:
            raise RuntimeError(f"Image {self.filename} was closed before it was written")
        LOGGER.info("Write image %s to PDF", self.filename)
        if self.format == "pdf":
            self._finish_pdf()
        else:
            self._finish_bitmap()
        self.state = ImageState.FINISHED

    def _finish_pdf(self) -> None:
        assert self._importer is not None
        writer = self._writer
        reserved = [self.image_object.number]

        def allocate() -> int:
            if reserved:
                return reserved.pop()
            return writer.next_object()

        bbox = self.get_pdf_box_dimensions(self.page_number, self.box)
        imported = self._importer.import_page(self.page_number, bbox, allocate)
        for number in sorted(imported):
            if number == self.image_object.number:
                obj = self.image_object
            else:
                obj = writer.new_object_with_number(number)
            obj.raw = True
            obj.data = bytearray(imported[number])
            obj.save()

    def _finish_bitmap(self) -> None:
        decoded = self.decoded
        assert decoded is not None
        writer = self._writer

        entries = Dict(
            Type=Name("XObject"),
            Subtype=Name("Image"),
            BitsPerComponent=decoded.bits_per_component,
            ColorSpace=Name(decoded.colorspace),
            Width=decoded.width,
            Height=decoded.height,
        )
        if decoded.transparency:
            # color key masking: [min max] per component, both set to the key
            entries["Mask"] = Array(value for value in decoded.transparency for _ in range(2))
        if decoded.smask:
            entries["SMask"] = self._write_smask(decoded)
        if decoded.colorspace == "Indexed":
            palette = writer.new_object()
            palette.write(decoded.palette)
            palette.save()
            entries["ColorSpace"] = Array(
                [Name("Indexed"), Name("DeviceRGB"), len(decoded.palette) // 3 - 1, palette.number]
            )
        if decoded.decode_parms:
            entries["DecodeParms"] = Dict(decoded.decode_parms)

        if self.format == "png":
            entries["Filter"] = Name("FlateDecode")
        else:
            entries["Filter"] = Name("DCTDecode")
        obj = self.image_object
        obj.dict(entries)
        obj.data = bytearray(decoded.data)
        obj.save()

    def _write_smask(self, decoded: DecodedImage) -> ObjectNumber:
        smask = self._writer.new_object()
        smask.dict(
            Dict(
                Type=Name("XObject"),
                Subtype=Name("Image"),
                BitsPerComponent=decoded.bits_per_component,
                ColorSpace=Name("DeviceGray"),
                Width=decoded.width,
                Height=decoded.height,
                DecodeParms=Dict(Predictor=15, Columns=decoded.width, Colors=1),
            )
        )
        # the predictor in DecodeParms only applies behind a Flate filter
        smask.set_compression(max(self._writer.settings.compression_level, 1))
        smask.write(decoded.smask)
        smask.save()
        return smask.number


def load_image_data(
    writer: "PDFWriter",
    source: bytes,
    *,
    filename: str = "<memory>",
    box: str = "/MediaBox",
    page_number: int = 1,
) -> Imagefile:
    """Register an image held in memory. See :func:`load_image_file`."""

    try:
        image_format = identify(source)
        if image_format is None:
            decoded = None
        elif image_format == "PNG":
            decoded = decode_png(source)
        elif image_format == "JPEG":
            decoded = decode_jpeg(source)
        else:
            raise UnsupportedImageError(f"Unsupported image format {image_format}")
    except UnsupportedImageError as exc:
        raise UnsupportedImageError(f"{exc}: {filename}") from exc

    if decoded is None:
        return _load_pdf(writer, source, filename=filename, box=box, page_number=page_number)
    image = Imagefile(writer, filename=filename, format=decoded.format, source=source)
    image.decoded = decoded
    image.width = decoded.width
    image.height = decoded.height
    LOGGER.debug("Loaded %s image %s (%dx%d)", decoded.format, filename, decoded.width, decoded.height)
    return image


def _load_pdf(
    writer: "PDFWriter", source: bytes, *, filename: str, box: str, page_number: int
) -> Imagefile:
    if not source.startswith(b"%PDF"):
        raise UnsupportedImageError(f"Unknown image format: {filename}")
    importer = PDFImporter(
        source, filename=filename, compression_level=writer.settings.compression_level
    )
    page_sizes = importer.page_sizes()
    dimensions = resolve_box(page_sizes, page_number, box)

    image = Imagefile(
        writer, filename=filename, format="pdf", source=source, box=box, page_number=page_number
    )
    image._importer = importer
    image.number_of_pages = importer.page_count()
    image.page_sizes = page_sizes
    image.width = round(dimensions.w)
    image.height = round(dimensions.h)
    image.scale_x = dimensions.w
    image.scale_y = dimensions.h
    return image


def load_image_file(
    writer: "PDFWriter",
    filename: str | Path,
    *,
    box: str = "/MediaBox",
    page_number: int = 1,
) -> Imagefile:
    """Register a PNG, JPEG or PDF file.

    For PDF files *page_number* (1-based) and *box* select what is placed;
    bitmaps ignore both.
    """

    path = Path(filename)
    LOGGER.info("Load image %s", path)
    try:
        source = path.read_bytes()
    except OSError as exc:
        raise InvalidAssetError(f"Unable to read image file: {path}. Error: {exc}") from exc
    return load_image_data(writer, source, filename=str(path), box=box, page_number=page_number)


__all__ = [
    "ImageState",
    "Imagefile",
    "load_image_data",
    "load_image_file",
    "resolve_box",
]
