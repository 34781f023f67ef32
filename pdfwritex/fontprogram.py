"""Thin adapter over :mod:`fontTools` for parsing, subsetting and instancing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Iterable, Mapping

from fontTools import subset
from fontTools.ttLib import TTFont
from fontTools.varLib import instancer

LOGGER = logging.getLogger("pdfwritex.fonts")

FLAVOR_TRUETYPE = "truetype"
FLAVOR_CFF = "cff"
FLAVOR_CFF2 = "cff2"


@dataclass(frozen=True, slots=True)
class FontMetrics:
    """Font-wide metrics in font units."""

    units_per_em: int
    bbox: tuple[int, int, int, int]
    ascent: int
    descent: int
    cap_height: int
    x_height: int
    italic_angle: float
    weight_class: int
    is_fixed_pitch: bool
    is_italic: bool


@dataclass(slots=True)
class SubsetResult:
    """Outcome of :meth:`FontProgram.subset`.

    ``data`` is the font program ready to embed (the bare ``CFF `` table for
    CFF-flavored fonts, the whole sfnt otherwise). ``glyph_map`` is only set
    when glyphs were renumbered and maps original to new glyph ids.
    ``advances`` is keyed by the glyph ids of the embedded program.
    """

    data: bytes
    flavor: str
    glyph_map: dict[int, int] | None
    advances: dict[int, int]
    metrics: FontMetrics


def _read_metrics(font: TTFont) -> FontMetrics:
    head = font["head"]
    hhea = font["hhea"] if "hhea" in font else None
    os2 = font["OS/2"] if "OS/2" in font else None
    post = font["post"] if "post" in font else None

    if hhea is not None:
        ascent, descent = hhea.ascent, hhea.descent
    elif os2 is not None:
        ascent, descent = os2.sTypoAscender, os2.sTypoDescender
    else:
        ascent, descent = head.yMax, head.yMin

    fs_selection = getattr(os2, "fsSelection", 0) if os2 is not None else 0
    return FontMetrics(
        units_per_em=head.unitsPerEm,
        bbox=(head.xMin, head.yMin, head.xMax, head.yMax),
        ascent=ascent,
        descent=descent,
        cap_height=getattr(os2, "sCapHeight", 0) if os2 is not None else 0,
        x_height=getattr(os2, "sxHeight", 0) if os2 is not None else 0,
        italic_angle=float(getattr(post, "italicAngle", 0.0)) if post is not None else 0.0,
        weight_class=getattr(os2, "usWeightClass", 400) if os2 is not None else 400,
        is_fixed_pitch=bool(getattr(post, "isFixedPitch", 0)) if post is not None else False,
        is_italic=bool(head.macStyle & 0x02) or bool(fs_selection & 0x01),
    )


def _flavor(font: TTFont) -> str:
    if "CFF2" in font:
        return FLAVOR_CFF2
    if "CFF " in font:
        return FLAVOR_CFF
    return FLAVOR_TRUETYPE


class FontProgram:
    """A parsed OpenType/TrueType font, optionally one member of a collection."""

    def __init__(self, data: bytes, index: int = 0) -> None:
        self.data = bytes(data)
        self.index = index
        self.font = self._open()
        self.units_per_em: int = self.font["head"].unitsPerEm
        self.flavor = _flavor(self.font)
        self.metrics = _read_metrics(self.font)
        self.postscript_name = self._postscript_name()
        self._cmap: dict[int, str] = self.font.getBestCmap() or {}

    def _open(self) -> TTFont:
        # fontNumber is ignored for plain sfnt files
        return TTFont(BytesIO(self.data), fontNumber=self.index, recalcTimestamp=False)

    def _postscript_name(self) -> str:
        name_table = self.font["name"] if "name" in self.font else None
        name = None
        if name_table is not None:
            name = name_table.getDebugName(6) or name_table.getDebugName(4)
        if not name:
            name = "Untitled"
        return name.replace(" ", "")

    @property
    def glyph_count(self) -> int:
        return len(self.font.getGlyphOrder())

    @property
    def is_variable(self) -> bool:
        return "fvar" in self.font

    def glyph_for(self, codepoint: int) -> int | None:
        glyph_name = self._cmap.get(codepoint)
        if glyph_name is None:
            return None
        return self.font.getGlyphID(glyph_name)

    def advance(self, gid: int) -> int:
        order = self.font.getGlyphOrder()
        return self.font["hmtx"][order[gid]][0]

    def unicode_map(self) -> dict[int, int]:
        """Glyph id to the lowest code point that maps to it."""

        result: dict[int, int] = {}
        for codepoint in sorted(self._cmap):
            gid = self.font.getGlyphID(self._cmap[codepoint])
            result.setdefault(gid, codepoint)
        return result

    def subset(
        self,
        glyphs: Iterable[int],
        *,
        renumber: bool = False,
        variations: Mapping[str, float] | None = None,
    ) -> SubsetResult:
        """Subset a fresh copy of the font to *glyphs*.

        Glyph ids are kept in place unless *renumber* is set, in which case
        the retained glyphs are packed and ``glyph_map`` reports the new
        ids. *variations* pins the axes of a variable font before subsetting.
        """

        requested = sorted(set(glyphs))
        font = self._open()
        if variations:
            LOGGER.debug("Instancing font at %s", dict(variations))
            font = instancer.instantiateVariableFont(font, dict(variations))
        original_order = font.getGlyphOrder()

        options = subset.Options(layout_closure=False)
        options.drop_tables += ["GPOS", "GDEF", "GSUB"]
        options.retain_gids = not renumber
        options.notdef_outline = True
        options.name_IDs = ["*"]
        options.name_languages = ["*"]
        options.name_legacy = True

        subsetter = subset.Subsetter(options=options)
        subsetter.populate(gids=requested)
        subsetter.subset(font)

        new_order = font.getGlyphOrder()
        glyph_map: dict[int, int] | None = None
        if renumber:
            new_ids = {name: gid for gid, name in enumerate(new_order)}
            glyph_map = {gid: new_ids[original_order[gid]] for gid in requested}
            embedded = sorted(glyph_map.values())
        else:
            embedded = requested

        hmtx = font["hmtx"]
        advances = {gid: hmtx[new_order[gid]][0] for gid in embedded}

        flavor = _flavor(font)
        buffer = BytesIO()
        if flavor == FLAVOR_CFF:
            font["CFF "].cff.compile(buffer, font)
        else:
            font.save(buffer)
        return SubsetResult(
            data=buffer.getvalue(),
            flavor=flavor,
            glyph_map=glyph_map,
            advances=advances,
            metrics=_read_metrics(font),
        )


__all__ = [
    "FLAVOR_CFF",
    "FLAVOR_CFF2",
    "FLAVOR_TRUETYPE",
    "FontMetrics",
    "FontProgram",
    "SubsetResult",
]
