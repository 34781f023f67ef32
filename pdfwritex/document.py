"""Pages, outlines, destinations and the document catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable

from .exceptions import DocumentStructureError
from .objects import PDFObject
from .values import Array, Dict, Name, ObjectNumber, String, round_point

if TYPE_CHECKING:  # pragma: no cover
    from .fonts import Face
    from .images import Imagefile
    from .writer import PDFWriter

LOGGER = logging.getLogger("pdfwritex.writer")


@dataclass(slots=True)
class Annotation:
    """A link or other annotation placed on a page.

    ``rect`` is ``(llx, lly, urx, ury)`` in PDF points; ``dictionary`` is
    merged last and may override any computed entry.
    """

    rect: tuple[float, float, float, float]
    subtype: str = "Link"
    action: Any = None
    dictionary: Dict = field(default_factory=Dict)


@dataclass(slots=True)
class Separation:
    """A spot color written as a ``/Separation`` color space."""

    id: str
    name: str
    cmyk: tuple[float, float, float, float]
    icc_profile: ObjectNumber | None = None
    object_number: ObjectNumber | None = None


@dataclass(slots=True)
class Outline:
    """A bookmark entry. ``dest`` is a named destination or an explicit value."""

    title: str
    dest: Any = None
    children: list["Outline"] = field(default_factory=list)
    open: bool = False
    object_number: ObjectNumber | None = None


@dataclass(slots=True)
class NameDest:
    """A named destination pointing at a position on a page.

    The name tree lists it under its key in ``PDFWriter.name_destinations``.
    """

    name: str
    page_object_number: ObjectNumber
    x: float = 0.0
    y: float = 0.0
    object_number: ObjectNumber | None = None


@dataclass(slots=True, eq=False)
class Page:
    number: ObjectNumber
    content_stream: PDFObject
    width: float = 0.0
    height: float = 0.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    faces: list["Face"] = field(default_factory=list)
    images: list["Imagefile"] = field(default_factory=list)
    annotations: list[Annotation] = field(default_factory=list)
    dictionary: Dict = field(default_factory=Dict)

    def add_face(self, face: "Face") -> None:
        if face not in self.faces:
            self.faces.append(face)

    def add_image(self, image: "Imagefile") -> None:
        if image not in self.images:
            self.images.append(image)


def _box(offset_x: float, offset_y: float, width: float, height: float) -> Array:
    return Array([round_point(offset_x), round_point(offset_y), round_point(width), round_point(height)])


def _unique(items: Iterable[Any]) -> list[Any]:
    seen: dict[int, Any] = {}
    for item in items:
        seen.setdefault(id(item), item)
    return list(seen.values())


def write_separation(writer: "PDFWriter", separation: Separation) -> ObjectNumber:
    if separation.object_number is not None:
        return separation.object_number
    c, m, y, k = separation.cmyk
    tint = writer.new_object()
    tint.dict(
        Dict(
            FunctionType=2,
            Domain=Array([0, 1]),
            C0=Array([0, 0, 0, 0]),
            C1=Array([c, m, y, k]),
            N=1,
        )
    ).save()
    if separation.icc_profile is not None:
        alternate: Any = Array([Name("ICCBased"), separation.icc_profile])
    else:
        alternate = Name("DeviceCMYK")
    colorspace = writer.new_object()
    colorspace.array = Array([Name("Separation"), Name(separation.name), alternate, tint.number])
    colorspace.save()
    separation.object_number = colorspace.number
    return colorspace.number


def _write_annotation(writer: "PDFWriter", annotation: Annotation) -> ObjectNumber:
    entries = Dict(
        Type=Name("Annot"),
        Subtype=Name(annotation.subtype),
        Rect=Array(round_point(value) for value in annotation.rect),
    )
    if annotation.action is not None:
        entries["A"] = annotation.action
    entries.update(annotation.dictionary)
    obj = writer.new_object()
    obj.dict(entries).save()
    return obj.number


def _write_page(writer: "PDFWriter", page: Page, parent: ObjectNumber) -> None:
    resources = Dict()
    if page.faces:
        resources["Font"] = Dict({face.internal_name(): face.font_object.number for face in page.faces})
    if page.images:
        resources["XObject"] = Dict(
            {image.internal_name(): image.image_object.number for image in page.images}
        )
    if writer.colorspaces:
        resources["ColorSpace"] = Dict(
            {cs.id: write_separation(writer, cs) for cs in writer.colorspaces}
        )

    entries = Dict(
        Type=Name("Page"),
        Contents=page.content_stream.number,
        Parent=parent,
    )
    geometry = (page.offset_x, page.offset_y, page.width, page.height)
    default_geometry = (
        writer.default_offset_x,
        writer.default_offset_y,
        writer.default_page_width,
        writer.default_page_height,
    )
    if geometry != default_geometry:
        entries["MediaBox"] = _box(*geometry)
    if resources:
        entries["Resources"] = resources
    if page.annotations:
        entries["Annots"] = Array(_write_annotation(writer, annot) for annot in page.annotations)
    entries.update(page.dictionary)

    obj = writer.new_object_with_number(page.number)
    obj.dict(entries).save()


def _outline_dest(dest: Any) -> Any:
    if type(dest) is str:
        return String(dest)
    return dest


def _write_outline_level(
    writer: "PDFWriter", parent: ObjectNumber, outlines: list[Outline]
) -> tuple[ObjectNumber, ObjectNumber, int]:
    """Write one level of the outline tree.

    Returns the first and last entry and the number of entries visible
    beneath *parent*.
    """

    for outline in outlines:
        outline.object_number = writer.next_object()

    count = 0
    for index, outline in enumerate(outlines):
        count += 1
        entries = Dict(Parent=parent, Title=String(outline.title))
        if outline.dest is not None:
            entries["Dest"] = _outline_dest(outline.dest)
        if index > 0:
            entries["Prev"] = outlines[index - 1].object_number
        if index < len(outlines) - 1:
            entries["Next"] = outlines[index + 1].object_number
        if outline.children:
            first, last, descendants = _write_outline_level(
                writer, outline.object_number, outline.children
            )
            entries["First"] = first
            entries["Last"] = last
            if outline.open:
                entries["Count"] = descendants
                count += descendants
            else:
                entries["Count"] = -descendants
        writer.new_object_with_number(outline.object_number).dict(entries).save()

    return outlines[0].object_number, outlines[-1].object_number, count


def _write_name_destinations(writer: "PDFWriter") -> Dict:
    names = Array()
    first = last = None
    for key in sorted(writer.name_destinations):
        dest = writer.name_destinations[key]
        obj = writer.new_object()
        obj.dict(
            Dict(D=Array([dest.page_object_number, Name("XYZ"), dest.x, dest.y, None]))
        ).save()
        dest.object_number = obj.number
        names.append(String(key))
        names.append(obj.number)
        if first is None:
            first = key
        last = key
    return Dict(Limits=Array([String(first), String(last)]), Names=names)


def write_document_catalog_and_pages(writer: "PDFWriter") -> ObjectNumber:
    """Write every page, the page tree, outlines and the catalog.

    Images are finished before the pages that reference them and fonts
    last, once every glyph has been registered. Returns the catalog's
    object number.
    """

    pages = writer.pages
    if not pages:
        raise DocumentStructureError("No pages in document")

    for page in pages:
        page.content_stream.save()

    pages_obj = writer.new_object()

    images = _unique(image for page in pages for image in page.images)
    for image in sorted(images, key=lambda img: (img.filename, img.id)):
        image.finish()

    for page in pages:
        _write_page(writer, page, pages_obj.number)

    pages_obj.dict(
        Dict(
            Type=Name("Pages"),
            Kids=Array(page.number for page in pages),
            Count=len(pages),
            MediaBox=_box(
                writer.default_offset_x,
                writer.default_offset_y,
                writer.default_page_width,
                writer.default_page_height,
            ),
        )
    ).save()

    catalog_entries = Dict(Type=Name("Catalog"), Pages=pages_obj.number)

    if writer.outlines:
        outlines_obj = writer.new_object()
        first, last, count = _write_outline_level(writer, outlines_obj.number, writer.outlines)
        outlines_obj.dict(Dict(Type=Name("Outlines"), First=first, Last=last, Count=count)).save()
        catalog_entries["Outlines"] = outlines_obj.number

    if writer.name_destinations:
        writer.names["Dests"] = _write_name_destinations(writer)
    if writer.names:
        catalog_entries["Names"] = writer.names

    catalog_entries.update(writer.catalog)
    catalog = writer.new_object()
    catalog.dict(catalog_entries).save()

    faces = _unique(face for page in pages for face in page.faces)
    for face in sorted(faces, key=lambda f: f.face_id):
        face.finish()

    LOGGER.debug("Wrote %d pages, %d images, %d fonts", len(pages), len(images), len(faces))
    return catalog.number


__all__ = [
    "Annotation",
    "NameDest",
    "Outline",
    "Page",
    "Separation",
    "write_document_catalog_and_pages",
    "write_separation",
]
