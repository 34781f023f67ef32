"""Low-level PDF writer with font subsetting and image embedding."""

from __future__ import annotations

from .config import WriterSettings
from .document import Annotation, NameDest, Outline, Page, Separation
from .exceptions import (
    BoxNotFoundError,
    DocumentStructureError,
    FontEmbeddingError,
    InvalidAssetError,
    PageOutOfRangeError,
    PDFImportError,
    PDFWriteError,
    PDFWriteXError,
    UnsupportedImageError,
)
from .fonts import Face
from .images import Imagefile
from .objects import PDFObject
from .pdfimport import BoxDimensions
from .values import (
    Array,
    Dict,
    Name,
    NameTreeData,
    ObjectNumber,
    Raw,
    String,
    float_to_point,
    serialize,
)
from .writer import PDFWriter

__version__ = "1.0.0"

__all__ = [
    "Annotation",
    "Array",
    "BoxDimensions",
    "BoxNotFoundError",
    "Dict",
    "DocumentStructureError",
    "Face",
    "FontEmbeddingError",
    "Imagefile",
    "InvalidAssetError",
    "Name",
    "NameDest",
    "NameTreeData",
    "ObjectNumber",
    "Outline",
    "PDFImportError",
    "PDFObject",
    "PDFWriteError",
    "PDFWriteXError",
    "PDFWriter",
    "Page",
    "PageOutOfRangeError",
    "Raw",
    "Separation",
    "String",
    "UnsupportedImageError",
    "WriterSettings",
    "float_to_point",
    "serialize",
]
