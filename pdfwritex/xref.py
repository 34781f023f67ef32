"""Cross-reference table and trailer emission."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Mapping

from .values import Array, Dict, ObjectNumber, Raw, serialize

if TYPE_CHECKING:  # pragma: no cover
    from .writer import PDFWriter

LOGGER = logging.getLogger("pdfwritex.writer")


@dataclass(slots=True)
class XrefSection:
    """A run of consecutive object numbers with their byte offsets."""

    start: int
    offsets: list[int] = field(default_factory=list)


def build_sections(locations: Mapping[int, int], next_object: int) -> list[XrefSection]:
    """Group the recorded object offsets into runs without gaps.

    Object 0 is the head of the free list and is always expected in
    *locations* with offset 0.
    """

    sections: list[XrefSection] = []
    current: XrefSection | None = None
    for number in range(next_object + 1):
        offset = locations.get(number)
        if offset is None:
            if current is not None:
                sections.append(current)
                current = None
            continue
        if current is None:
            current = XrefSection(start=number)
        current.offsets.append(offset)
    if current is not None:
        sections.append(current)
    return sections


def format_sections(sections: Iterable[XrefSection]) -> str:
    lines: list[str] = []
    for section in sections:
        lines.append(f"{section.start} {len(section.offsets)}\n")
        for index, offset in enumerate(section.offsets):
            if section.start + index == 0:
                lines.append(f"{offset:010d} 65535 f \n")
            else:
                lines.append(f"{offset:010d} 00000 n \n")
    return "".join(lines)


def document_id(xref_text: str) -> str:
    """Checksum of the cross-reference text used as the trailer ``/ID``."""

    return hashlib.md5(xref_text.encode("ascii")).hexdigest().upper()


def write_xref_and_trailer(
    writer: "PDFWriter",
    root: ObjectNumber,
    info: ObjectNumber | None = None,
) -> None:
    size = writer.next_object_number
    body = format_sections(build_sections(writer.object_locations, size))
    xref_position = writer.size

    writer.writeln("xref")
    writer.write(body)

    checksum = document_id(body)
    trailer = Dict(
        Size=size,
        Root=root,
        ID=Array([Raw(f"<{checksum}>"), Raw(f"<{checksum}>")]),
    )
    if info is not None:
        trailer["Info"] = info

    writer.writeln("trailer")
    writer.write(serialize(trailer))
    writer.write(f"\nstartxref\n{xref_position}\n%%EOF\n")
    LOGGER.debug("Wrote xref at offset %d (size %d)", xref_position, size)


__all__ = [
    "XrefSection",
    "build_sections",
    "document_id",
    "format_sections",
    "write_xref_and_trailer",
]
