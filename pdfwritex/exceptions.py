"""Custom exception types for :mod:`pdfwritex`."""

from __future__ import annotations


class PDFWriteXError(Exception):
    """Base exception for all pdfwritex related errors."""


class PDFWriteError(PDFWriteXError):
    """Raised when the output sink fails while the PDF is being written."""


class InvalidAssetError(PDFWriteXError):
    """Raised when a source asset (image, foreign PDF) cannot be used."""


class UnsupportedImageError(InvalidAssetError):
    """Raised when an image is unreadable or uses an unsupported variant."""


class PageOutOfRangeError(InvalidAssetError):
    """Raised when a page that does not exist is requested from a PDF."""


class BoxNotFoundError(InvalidAssetError):
    """Raised when a page box cannot be resolved."""


class DocumentStructureError(PDFWriteXError):
    """Raised when the document cannot be finished, e.g. it has no pages."""


class FontEmbeddingError(PDFWriteXError):
    """Raised when a font cannot be loaded, subsetted or instanced."""


class PDFImportError(PDFWriteXError):
    """Raised when a page cannot be imported from a foreign PDF."""
