"""Writer settings for :mod:`pdfwritex`."""

from __future__ import annotations

import dataclasses


@dataclasses.dataclass(slots=True)
class WriterSettings:
    """Document-wide defaults applied by :class:`~pdfwritex.writer.PDFWriter`.

    ``compression_level`` is the zlib level used for the streams the
    library creates itself (font programs, ToUnicode CMaps, soft masks and
    imported page content). Page content streams are only compressed when
    the caller asks for it on the object.
    """

    major: int = 1
    minor: int = 7
    default_page_width: float = 0.0
    default_page_height: float = 0.0
    default_offset_x: float = 0.0
    default_offset_y: float = 0.0
    compression_level: int = 9

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not 0 <= self.compression_level <= 9:
            raise ValueError(
                f"Compression level must be between 0 and 9, got {self.compression_level}"
            )
        if self.major < 1 or self.minor < 0:
            raise ValueError(f"Unsupported PDF version: {self.major}.{self.minor}")

    @property
    def version(self) -> str:
        return f"{self.major}.{self.minor}"


__all__ = ["WriterSettings"]
