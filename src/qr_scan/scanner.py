"""Decode orchestration: acquire a document, then search it page by page.

Every request moves through two states.  *Acquiring* turns the source (an
uploaded file or a URL) into pixel buffers; any failure there ends the request
as ``acquisition_failed``.  *Searching* runs the quadrant search on each page in
order and stops at the first payload.  When every page is exhausted the result
is ``no_code_found``; an exception from enhancement or from the decoder itself
ends the request as ``decoder_fault``.  Exactly one outcome is produced per
request and no intermediate failure is ever reported on its own.
"""

import io
import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence, Union

from PIL import Image, ImageOps

from qr_scan import messages
from qr_scan.buffer import PixelBuffer
from qr_scan.config import DEFAULT_FORMATS, DecoderKind, EnhancementConfig, ScanSettings
from qr_scan.decoders.base import BaseDecoder
from qr_scan.decoders.opencv import OpenCVDecoder
from qr_scan.decoders.zxing import ZXingDecoder
from qr_scan.errors import AcquisitionError, DecoderFault
from qr_scan.fetch import fetch
from qr_scan.pdf import is_pdf, iter_pages
from qr_scan.postprocessing import normalize_payload
from qr_scan.preprocessing import preprocess_for_decode, rescan_scales
from qr_scan.search import Attempt, search

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
IMAGE_MIME_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
    "image/gif",
    "image/bmp",
    "image/tiff",
}
# Types that say nothing about the content; the bytes are sniffed instead.
GENERIC_MIME_TYPES = {"application/octet-stream", "binary/octet-stream"}


class Outcome(str, Enum):
    SUCCESS = "success"
    NO_CODE_FOUND = "no_code_found"
    ACQUISITION_FAILED = "acquisition_failed"
    DECODER_FAULT = "decoder_fault"


MESSAGES = {
    Outcome.SUCCESS: messages.SUCCESS,
    Outcome.NO_CODE_FOUND: messages.NO_CODE_FOUND,
    Outcome.ACQUISITION_FAILED: messages.ACQUISITION_FAILED,
    Outcome.DECODER_FAULT: messages.DECODER_FAULT,
}


@dataclass
class DecodeOutcome:
    status: Outcome
    payload: Optional[str] = None
    error: Optional[BaseException] = None
    page: Optional[int] = None  # 1-based page the payload came from

    @property
    def ok(self) -> bool:
        return self.status is Outcome.SUCCESS

    @property
    def message(self) -> str:
        return MESSAGES[self.status]


@dataclass(frozen=True)
class FileSource:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class UrlSource:
    href: str


Source = Union[FileSource, UrlSource]


def build_decoder(kind: DecoderKind, formats: Sequence[str] = DEFAULT_FORMATS) -> BaseDecoder:
    """Build a fresh decoder handle.

    *formats* only applies to zxing-cpp; unknown format names raise ``ValueError``.
    """
    if kind == DecoderKind.ZXING:
        return ZXingDecoder(formats=formats)
    elif kind == DecoderKind.OPENCV:
        return OpenCVDecoder()
    else:
        raise ValueError(f"Unknown decoder: {kind}")


# ── Acquisition ────────────────────────────────────────────────────────────────


def _media_type(mime_type: Optional[str]) -> str:
    return (mime_type or "").split(";", 1)[0].strip().lower()


def _load_image(data: bytes, max_pixels: int) -> PixelBuffer:
    try:
        with Image.open(io.BytesIO(data)) as image:
            if image.width * image.height > max_pixels:
                raise AcquisitionError(
                    f"Image is {image.width}x{image.height}, above the {max_pixels} pixel limit"
                )
            image.load()
            # Phone photos are often stored sideways with an EXIF rotation tag.
            return PixelBuffer.from_image(ImageOps.exif_transpose(image))
    except (OSError, Image.DecompressionBombError) as e:  # UnidentifiedImageError is an OSError
        raise AcquisitionError(f"Could not read image: {e}") from e


def _acquire(source: Source, settings: ScanSettings) -> Iterator[PixelBuffer]:
    """Yield the raster pages of *source*, lazily and in order."""
    if isinstance(source, UrlSource):
        resource = fetch(source.href, timeout=settings.fetch_timeout)
        data, mime_type = resource.content, resource.mime_type
    else:
        data, mime_type = source.data, source.mime_type

    if not data:
        raise AcquisitionError("Document is empty")

    media_type = _media_type(mime_type)
    if not media_type or media_type in GENERIC_MIME_TYPES:
        media_type = PDF_MIME_TYPE if is_pdf(data) else "image/*"
        logger.debug("Sniffed content type as %s", media_type)

    if media_type == PDF_MIME_TYPE:
        yield from iter_pages(
            data,
            scale=settings.pdf_scale,
            max_pages=settings.max_pages,
            max_pixels=settings.max_pixels,
        )
    elif media_type in IMAGE_MIME_TYPES or media_type == "image/*":
        yield _load_image(data, settings.max_pixels)
    else:
        raise AcquisitionError(f"Unsupported content type: {media_type}")


# ── Searching ──────────────────────────────────────────────────────────────────


def _make_attempt(decoder: BaseDecoder, config: EnhancementConfig) -> Attempt:
    def attempt(crop: PixelBuffer) -> Optional[str]:
        for scale in rescan_scales(crop.width, crop.height, config):
            text = decoder.try_decode(preprocess_for_decode(crop, config, scale))
            payload = normalize_payload(text) if text else ""
            if payload:
                return payload
        return None

    return attempt


def _scan(pages: Iterable[PixelBuffer], decoder: BaseDecoder, settings: ScanSettings) -> DecodeOutcome:
    attempt = _make_attempt(decoder, settings.enhancement)
    try:
        for number, page in enumerate(pages, start=1):
            logger.info("Searching page %d (%dx%d)", number, page.width, page.height)
            payload = search(page, attempt, max_depth=settings.max_depth, min_size=settings.min_region)
            if payload:
                logger.info("Found a code on page %d", number)
                return DecodeOutcome(Outcome.SUCCESS, payload=payload, page=number)
    except AcquisitionError as e:
        logger.warning("Acquisition failed: %s", e)
        return DecodeOutcome(Outcome.ACQUISITION_FAILED, error=e)
    except Exception as e:
        logger.exception("Decoding failed")
        if isinstance(e, DecoderFault):
            return DecodeOutcome(Outcome.DECODER_FAULT, error=e)
        fault = DecoderFault(f"Decoding failed: {e}")
        fault.__cause__ = e
        return DecodeOutcome(Outcome.DECODER_FAULT, error=fault)
    finally:
        # Releases the open PDF when the search stops before the last page.
        close = getattr(pages, "close", None)
        if close is not None:
            close()

    logger.info("No code found")
    return DecodeOutcome(Outcome.NO_CODE_FOUND)


# ── Public API ─────────────────────────────────────────────────────────────────


def decode_document(
    source: Source,
    decoder: Optional[BaseDecoder] = None,
    settings: Optional[ScanSettings] = None,
) -> DecodeOutcome:
    """Extract the single code carried by *source*.

    A fresh decoder handle is built for the request unless one is passed in;
    handles must not be shared between concurrent requests.
    """
    if not isinstance(source, (FileSource, UrlSource)):
        raise TypeError(f"Unsupported source: {source!r}")
    settings = settings or ScanSettings()
    if decoder is None:
        decoder = build_decoder(settings.decoder, settings.formats)
    return _scan(_acquire(source, settings), decoder, settings)


def decode_file(
    path: Path,
    decoder: Optional[BaseDecoder] = None,
    settings: Optional[ScanSettings] = None,
) -> DecodeOutcome:
    """Decode a file on disk, guessing its content type from the suffix."""
    mime_type, _ = mimetypes.guess_type(str(path))
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        error = AcquisitionError(f"Could not read {path}: {e}")
        error.__cause__ = e
        return DecodeOutcome(Outcome.ACQUISITION_FAILED, error=error)
    return decode_document(FileSource(data, mime_type or ""), decoder=decoder, settings=settings)


def decode_image(
    buffer: PixelBuffer,
    decoder: Optional[BaseDecoder] = None,
    settings: Optional[ScanSettings] = None,
) -> DecodeOutcome:
    """Decode an already-rasterised frame, e.g. one grabbed from a camera."""
    settings = settings or ScanSettings()
    if decoder is None:
        decoder = build_decoder(settings.decoder, settings.formats)
    return _scan([buffer], decoder, settings)
