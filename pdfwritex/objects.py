"""Indirect PDF objects."""

from __future__ import annotations

import enum
import logging
import zlib
from typing import TYPE_CHECKING, Any, Mapping

from .values import Array, Dict, Name, ObjectNumber, serialize

if TYPE_CHECKING:  # pragma: no cover
    from .writer import PDFWriter

LOGGER = logging.getLogger("pdfwritex.writer")


class ObjectState(enum.Enum):
    CREATED = "created"
    SAVED = "saved"


class PDFObject:
    """An indirect object owned by a :class:`~pdfwritex.writer.PDFWriter`.

    An object carries a dictionary or an array, optional stream ``data`` and
    a compression level. :meth:`save` emits it exactly once; later calls
    are no-ops. With ``raw`` set, ``data`` is copied between ``obj`` and
    ``endobj`` untouched, which is how foreign objects from an imported PDF
    are carried over.
    """

    def __init__(self, writer: "PDFWriter", number: int) -> None:
        self.number = ObjectNumber(number)
        self.dictionary: Dict | None = None
        self.array: Array | None = None
        self.data = bytearray()
        self.raw = False
        self.force_stream = False
        self.comment = ""
        self.state = ObjectState.CREATED
        self._compression_level = 0
        self._writer = writer

    def __repr__(self) -> str:
        return f"PDFObject(number={int(self.number)}, state={self.state.value})"

    @property
    def saved(self) -> bool:
        return self.state is ObjectState.SAVED

    @property
    def compression_level(self) -> int:
        return self._compression_level

    def set_compression(self, level: int) -> "PDFObject":
        """Compress the stream data with zlib at *level* (0 turns it off)."""

        if not 0 <= level <= 9:
            raise ValueError(f"Compression level must be between 0 and 9, got {level}")
        self._compression_level = level
        return self

    def dict(self, dictionary: Mapping[str, Any]) -> "PDFObject":
        self.dictionary = dictionary if isinstance(dictionary, Dict) else Dict(dictionary)
        return self

    def write(self, data: str | bytes) -> "PDFObject":
        """Append *data* to the stream payload."""

        if isinstance(data, str):
            data = data.encode("latin-1")
        self.data += data
        return self

    def save(self) -> None:
        if self.state is ObjectState.SAVED:
            return
        self.state = ObjectState.SAVED
        writer = self._writer

        if self.comment:
            writer.write(f"\n% {self.comment}")

        if self.raw:
            writer.begin_object(self.number)
            writer.write(bytes(self.data))
            writer.end_object()
            return

        payload = bytes(self.data)
        is_stream = bool(payload) or self.force_stream
        if is_stream:
            if self.dictionary is None:
                self.dictionary = Dict()
            if self._compression_level > 0:
                compressed = zlib.compress(payload, self._compression_level)
                self._add_flate_filter()
                self.dictionary["Length"] = len(compressed)
                self.dictionary["Length1"] = len(payload)
                payload = compressed
            else:
                self.dictionary["Length"] = len(payload)

        writer.begin_object(self.number)
        if self.dictionary is not None:
            writer.write(serialize(self.dictionary))
        elif self.array is not None:
            writer.write(serialize(self.array))
        elif not is_stream:
            writer.write("null")
        if is_stream:
            writer.write("\nstream\n")
            writer.write(payload)
            writer.write("\nendstream")
        writer.end_object()
        LOGGER.debug("Saved object %d (%d stream bytes)", self.number, len(payload))

    def _add_flate_filter(self) -> None:
        assert self.dictionary is not None
        existing = self.dictionary.get("Filter")
        if existing is None:
            self.dictionary["Filter"] = Name("FlateDecode")
            return
        # data already carries a filter; Flate is applied on top of it
        filters = list(existing) if isinstance(existing, (list, tuple)) else [existing]
        self.dictionary["Filter"] = Array([Name("FlateDecode"), *filters])
        parms = self.dictionary.get("DecodeParms")
        if parms is not None:
            parms = list(parms) if isinstance(parms, (list, tuple)) else [parms]
            self.dictionary["DecodeParms"] = Array([None, *parms])


__all__ = ["ObjectState", "PDFObject"]
