"""PDF page rasterisation using PyMuPDF."""

import logging
from typing import Iterator, Optional

import fitz  # PyMuPDF
from PIL import Image

from qr_scan.buffer import PixelBuffer
from qr_scan.config import DEFAULT_PDF_SCALE, MAX_PDF_SCALE, MIN_PDF_SCALE
from qr_scan.errors import AcquisitionError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"


def open_pdf(data: bytes) -> fitz.Document:
    """Open a PDF held in memory, raising ``AcquisitionError`` if it is unusable."""
    if not data:
        raise AcquisitionError("PDF is empty")
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as e:  # fitz.FileDataError is a RuntimeError
        raise AcquisitionError(f"Could not open PDF: {e}") from e
    if doc.needs_pass:
        doc.close()
        raise AcquisitionError("PDF is encrypted")
    if doc.page_count == 0:
        doc.close()
        raise AcquisitionError("PDF has no pages")
    return doc


def render_page(
    doc: fitz.Document,
    page_index: int,
    scale: float = DEFAULT_PDF_SCALE,
    max_pixels: Optional[int] = None,
) -> PixelBuffer:
    """Render page *page_index* (0-based) of *doc* into an RGBA buffer.

    Scale 1.0 is 72 DPI.  Higher scales help small, dense codes but memory and
    CPU grow with the square of the scale.  The page is drawn on white.
    """
    if not 0 <= page_index < doc.page_count:
        raise AcquisitionError(f"Page out of range: {page_index} (0..{doc.page_count - 1})")
    if not MIN_PDF_SCALE <= scale <= MAX_PDF_SCALE:
        raise ValueError(f"scale must be between {MIN_PDF_SCALE} and {MAX_PDF_SCALE}, got {scale}")

    page = doc[page_index]
    width = round(page.rect.width * scale)
    height = round(page.rect.height * scale)
    if max_pixels is not None and width * height > max_pixels:
        raise AcquisitionError(
            f"Page {page_index + 1} would render at {width}x{height}, "
            f"above the {max_pixels} pixel limit"
        )

    try:
        pixmap = page.get_pixmap(matrix=fitz.Matrix(scale, scale), colorspace=fitz.csRGB, alpha=False)
    except RuntimeError as e:
        raise AcquisitionError(f"Could not render page {page_index + 1}: {e}") from e

    image = Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)
    return PixelBuffer.from_image(image)


def iter_pages(
    data: bytes,
    scale: float = DEFAULT_PDF_SCALE,
    max_pages: Optional[int] = None,
    max_pixels: Optional[int] = None,
) -> Iterator[PixelBuffer]:
    """Yield rendered pages in order, rendering each only when it is requested."""
    doc = open_pdf(data)
    try:
        count = doc.page_count if max_pages is None else min(max_pages, doc.page_count)
        for index in range(count):
            logger.info("Rendering page %d/%d at %.1fx", index + 1, doc.page_count, scale)
            yield render_page(doc, index, scale=scale, max_pixels=max_pixels)
    finally:
        doc.close()


def is_pdf(data: bytes) -> bool:
    return data[:1024].lstrip().startswith(PDF_MAGIC)
