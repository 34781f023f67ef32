"""Embedding of OpenType/TrueType fonts as composite (Type0) fonts."""

from __future__ import annotations

import enum
import hashlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Mapping

from fontTools.ttLib import TTLibError

from .exceptions import FontEmbeddingError
from .fontprogram import FLAVOR_CFF, FLAVOR_CFF2, FontMetrics, FontProgram, SubsetResult
from .values import Array, Dict, Name, ObjectNumber, String, format_float

if TYPE_CHECKING:  # pragma: no cover
    from .writer import PDFWriter

LOGGER = logging.getLogger("pdfwritex.fonts")

_FLAG_FIXED_PITCH = 1
_FLAG_NONSYMBOLIC = 32
_FLAG_ITALIC = 64
_CMAP_BLOCK = 100
_REPLACEMENT_CHARACTER = 0xFFFD


class FaceState(enum.Enum):
    CREATED = "created"
    FINISHED = "finished"


def subset_tag(glyphs: Iterable[int], variations: Mapping[str, float] | None = None) -> str:
    """Six uppercase letters derived from the glyph set and variation settings.

    The tag depends on nothing else, so identical inputs yield identical
    tags across runs while different subsets of the same font get
    different ``BaseFont`` names.
    """

    payload = bytearray()
    for gid in sorted(set(glyphs)):
        payload += gid.to_bytes(2, "big")
    for axis in sorted(variations or {}):
        payload += f"{axis}:{format_float(float(variations[axis]))}".encode("utf-8")
    digest = hashlib.md5(payload).digest()
    return "".join(chr((digest[2 * i] + digest[2 * i + 1]) % 26 + ord("A")) for i in range(6))


def stem_v(weight_class: int) -> int:
    if weight_class >= 700:
        return 140
    if weight_class >= 500:
        return 100
    return 80


def _scale(value: float, units_per_em: int) -> int:
    return round(value * 1000 / units_per_em)


def widths_array(advances: Mapping[int, int], units_per_em: int) -> Array:
    """``/W`` entries grouping consecutive glyph ids into ``c [w1 w2 ...]`` runs."""

    result = Array()
    run: list[int] = []
    previous: int | None = None
    for gid in sorted(advances):
        width = _scale(advances[gid], units_per_em)
        if previous is not None and gid == previous + 1:
            run.append(width)
        else:
            if run:
                result.append(Array(run))
            result.append(gid)
            run = [width]
        previous = gid
    if run:
        result.append(Array(run))
    return result


def _utf16_hex(codepoint: int) -> str:
    return chr(codepoint).encode("utf-16-be").hex().upper()


def to_unicode_cmap(mapping: Mapping[int, int]) -> str:
    """A ToUnicode CMap for 2-byte glyph codes given ``gid -> code point``."""

    highest = min(max(mapping, default=0) + 1, 0xFFFF)
    lines = [
        "/CIDInit /ProcSet findresource begin",
        "12 dict begin",
        "begincmap",
        "/CIDSystemInfo << /Registry (Adobe) /Ordering (UCS) /Supplement 0 >> def",
        "/CMapName /Adobe-Identity-UCS def",
        "/CMapType 2 def",
        "1 begincodespacerange",
        f"<0000> <{highest:04X}>",
        "endcodespacerange",
    ]
    gids = sorted(mapping)
    for start in range(0, len(gids), _CMAP_BLOCK):
        block = gids[start : start + _CMAP_BLOCK]
        lines.append(f"{len(block)} beginbfchar")
        for gid in block:
            lines.append(f"<{gid:04X}> <{_utf16_hex(mapping[gid])}>")
        lines.append("endbfchar")
    lines += [
        "endcmap",
        "CMapName currentdict /CMap defineresource pop",
        "end",
        "end",
    ]
    return "\n".join(lines) + "\n"


class Face:
    """A font registered with a writer.

    Text is set with glyph ids: look them up with :meth:`codepoints`,
    register them with :meth:`register_codepoints` and write them as
    2-byte codes. After :meth:`compact_subset` content must use the ids
    returned by :meth:`glyph_id` instead.
    """

    def __init__(self, writer: "PDFWriter", program: FontProgram, *, filename: str = "") -> None:
        self.face_id = writer.ids.allocate()
        self.program = program
        self.filename = filename
        self.postscript_name = program.postscript_name
        self.units_per_em = program.units_per_em
        self.used_glyphs: set[int] = {0}
        self.variations: dict[str, float] = {}
        self.glyph_map: dict[int, int] | None = None
        self.font_object = writer.new_object()
        self.state = FaceState.CREATED
        self._writer = writer
        self._compact: SubsetResult | None = None
        self._compact_glyphs: frozenset[int] | None = None

    def __repr__(self) -> str:
        return f"Face(id={self.face_id}, name={self.postscript_name!r})"

    def internal_name(self) -> str:
        return f"/F{self.face_id}"

    # -- glyph lookup -------------------------------------------------------

    def codepoint(self, char: str) -> int:
        """Glyph id for *char*, ``0`` if the font has no glyph for it."""

        gid = self.program.glyph_for(ord(char))
        return 0 if gid is None else gid

    def codepoints(self, text: str) -> list[int]:
        """Glyph ids for the characters of *text* that the font covers."""

        result = []
        for char in text:
            gid = self.program.glyph_for(ord(char))
            if gid is not None:
                result.append(gid)
        return result

    def register_codepoint(self, gid: int) -> None:
        self._check_open()
        if not 0 <= gid < self.program.glyph_count:
            raise FontEmbeddingError(
                f"Glyph id {gid} out of range for {self.postscript_name} "
                f"({self.program.glyph_count} glyphs)"
            )
        self.used_glyphs.add(gid)

    def register_codepoints(self, gids: Iterable[int]) -> None:
        for gid in gids:
            self.register_codepoint(gid)

    def set_variations(self, variations: Mapping[str, float]) -> None:
        """Pin the design axes of a variable font, e.g. ``{"wght": 700}``."""

        self._check_open()
        if variations and not self.program.is_variable:
            raise FontEmbeddingError(f"{self.postscript_name} is not a variable font")
        if self.glyph_map is not None:
            raise FontEmbeddingError(
                f"Variations of {self.postscript_name} must be set before compact_subset()"
            )
        self.variations = {axis: float(value) for axis, value in variations.items()}

    def subset_tag(self) -> str:
        return subset_tag(self.used_glyphs, self.variations)

    # -- compact subsets ----------------------------------------------------

    def compact_subset(self) -> dict[int, int]:
        """Renumber the registered glyphs densely and return the mapping.

        Call this once every glyph has been registered and before content
        is written. Content streams then use :meth:`glyph_id` values.
        """

        self._check_open()
        result = self._make_subset(renumber=True)
        assert result.glyph_map is not None
        self._compact = result
        self._compact_glyphs = frozenset(self.used_glyphs)
        self.glyph_map = dict(result.glyph_map)
        return dict(self.glyph_map)

    def glyph_id(self, gid: int) -> int:
        """Glyph id to write for original glyph *gid*."""

        if self.glyph_map is None:
            return gid
        try:
            return self.glyph_map[gid]
        except KeyError:
            raise FontEmbeddingError(
                f"Glyph id {gid} was not part of the compact subset of {self.postscript_name}"
            ) from None

    def _make_subset(self, *, renumber: bool) -> SubsetResult:
        try:
            return self.program.subset(
                self.used_glyphs, renumber=renumber, variations=self.variations or None
            )
        except FontEmbeddingError:
            raise
        except Exception as exc:
            raise FontEmbeddingError(
                f"Unable to subset font {self.postscript_name} ({self.filename or 'memory'}): {exc}"
            ) from exc

    def _check_open(self) -> None:
        if self.state is FaceState.FINISHED:
            raise RuntimeError(f"Font {self.postscript_name} has already been written")

    # -- writing ------------------------------------------------------------

    def finish(self) -> None:
        """Write the font program, descriptor, CMap and font dictionaries."""

        if self.state is FaceState.FINISHED:
            raise RuntimeError(f"Font {self.postscript_name} has already been written")
        LOGGER.info("Write font %s (%s) to PDF", self.postscript_name, self.filename or "memory")

        if self.glyph_map is not None:
            if self._compact is not None and self._compact_glyphs == frozenset(self.used_glyphs):
                result = self._compact
            else:
                LOGGER.warning(
                    "Glyphs were registered after compact_subset() for %s; recomputing",
                    self.postscript_name,
                )
                result = self._make_subset(renumber=True)
                assert result.glyph_map is not None
                self.glyph_map = dict(result.glyph_map)
        else:
            result = self._make_subset(renumber=False)

        writer = self._writer
        level = writer.settings.compression_level
        font_name = f"{self.subset_tag()}+{self.postscript_name}"
        is_cff = result.flavor in (FLAVOR_CFF, FLAVOR_CFF2)

        fontstream = writer.new_object()
        fontstream.dictionary = Dict()
        if result.flavor == FLAVOR_CFF:
            fontstream.dictionary["Subtype"] = Name("CIDFontType0C")
        elif result.flavor == FLAVOR_CFF2:
            fontstream.dictionary["Subtype"] = Name("OpenType")
        fontstream.write(result.data)
        fontstream.set_compression(level)
        fontstream.save()

        descriptor = writer.new_object()
        descriptor.dict(self._font_descriptor(font_name, result, fontstream.number)).save()

        cmap = writer.new_object()
        cmap.write(to_unicode_cmap(self._unicode_for(result)))
        cmap.set_compression(level)
        cmap.save()

        cidfont = writer.new_object()
        cidfont_entries = Dict(
            Type=Name("Font"),
            Subtype=Name("CIDFontType0" if is_cff else "CIDFontType2"),
            BaseFont=Name(font_name),
            CIDSystemInfo=Dict(Registry=String("Adobe"), Ordering=String("Identity"), Supplement=0),
            FontDescriptor=descriptor.number,
            W=widths_array(result.advances, result.metrics.units_per_em),
        )
        if not is_cff:
            cidfont_entries["CIDToGIDMap"] = Name("Identity")
        cidfont.dict(cidfont_entries).save()

        self.font_object.dict(
            Dict(
                Type=Name("Font"),
                Subtype=Name("Type0"),
                BaseFont=Name(font_name),
                DescendantFonts=Array([cidfont.number]),
                Encoding=Name("Identity-H"),
                ToUnicode=cmap.number,
            )
        ).save()
        self.state = FaceState.FINISHED

    def _unicode_for(self, result: SubsetResult) -> dict[int, int]:
        original = self.program.unicode_map()
        if result.glyph_map is None:
            pairs = ((gid, gid) for gid in sorted(self.used_glyphs))
        else:
            pairs = result.glyph_map.items()
        return {new: original.get(old, _REPLACEMENT_CHARACTER) for old, new in pairs}

    def _font_descriptor(self, font_name: str, result: SubsetResult, fontfile: ObjectNumber) -> Dict:
        metrics: FontMetrics = result.metrics
        upem = metrics.units_per_em
        flags = _FLAG_NONSYMBOLIC
        if metrics.is_fixed_pitch:
            flags |= _FLAG_FIXED_PITCH
        if metrics.is_italic:
            flags |= _FLAG_ITALIC
        entries = Dict(
            Type=Name("FontDescriptor"),
            FontName=Name(font_name),
            FontBBox=Array(_scale(value, upem) for value in metrics.bbox),
            Ascent=_scale(metrics.ascent, upem),
            Descent=_scale(metrics.descent, upem),
            CapHeight=_scale(metrics.cap_height, upem),
            XHeight=_scale(metrics.x_height, upem),
            ItalicAngle=metrics.italic_angle,
            Flags=flags,
            StemV=stem_v(metrics.weight_class),
        )
        if result.flavor in (FLAVOR_CFF, FLAVOR_CFF2):
            entries["FontFile3"] = fontfile
        else:
            entries["FontFile2"] = fontfile
        return entries


def _new_face(writer: "PDFWriter", data: bytes, index: int, filename: str) -> Face:
    try:
        program = FontProgram(data, index)
    except TTLibError as exc:
        raise FontEmbeddingError(f"Unable to parse font {filename} (index {index}): {exc}") from exc
    except Exception as exc:
        raise FontEmbeddingError(f"Unexpected error reading font {filename}: {exc}") from exc
    face = Face(writer, program, filename=filename)
    LOGGER.debug("Registered font %s as %s", program.postscript_name, face.internal_name())
    return face


def load_face(writer: "PDFWriter", filename: str | Path, index: int = 0) -> Face:
    """Load the font at *filename* (sub-font *index* of a collection)."""

    path = Path(filename)
    LOGGER.info("Load font %s", path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise FontEmbeddingError(f"Unable to read font file: {path}. Error: {exc}") from exc
    return _new_face(writer, data, index, str(path))


def new_face_from_data(writer: "PDFWriter", data: bytes, index: int = 0) -> Face:
    return _new_face(writer, data, index, "")


__all__ = [
    "Face",
    "FaceState",
    "load_face",
    "new_face_from_data",
    "stem_v",
    "subset_tag",
    "to_unicode_cmap",
    "widths_array",
]
