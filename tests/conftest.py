"""Shared fixtures for the test suite.

All fixtures here produce real files / real bytes so tests exercise actual
code paths.  Decoders are the one external capability replaced by stubs: a
``DarkPatchDecoder`` "recognises" a code when most of the image it receives is
dark, which mimics a real locator that only succeeds once the code fills
enough of the crop.
"""

import io
import os
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF
import numpy as np
import pytest
from click.testing import CliRunner
from PIL import Image

from qr_scan.buffer import PixelBuffer
from qr_scan.config import (
    EnhancementConfig,
    OutputFormat,
    ScanSettings,
    ThresholdConfig,
    ThresholdMode,
)
from qr_scan.decoders.base import BaseDecoder
from qr_scan.errors import NoPayloadFound

PAYLOAD = "https://pay.example.com/invoice/INV-2024-0042"


# ── Buffer helpers ─────────────────────────────────────────────────────────


def solid_buffer(width: int, height: int, color=(255, 255, 255, 255)) -> PixelBuffer:
    array = np.empty((height, width, 4), dtype=np.uint8)
    array[:, :] = color
    return PixelBuffer.from_array(array)


def buffer_with_patch(width: int, height: int, x: int, y: int, size: int) -> PixelBuffer:
    """White buffer with a black ``size``×``size`` square at (*x*, *y*)."""
    array = np.full((height, width, 4), 255, dtype=np.uint8)
    array[y : y + size, x : x + size, :3] = 0
    return PixelBuffer.from_array(array)


def png_of(buffer: PixelBuffer) -> bytes:
    out = io.BytesIO()
    buffer.to_image().save(out, format="PNG")
    return out.getvalue()


def dark_fraction(image_bytes: bytes) -> float:
    with Image.open(io.BytesIO(image_bytes)) as image:
        gray = np.asarray(image.convert("L"))
    return float((gray < 128).mean())


# ── Stub decoders ──────────────────────────────────────────────────────────


class DarkPatchDecoder(BaseDecoder):
    """Returns *payload* when at least *min_dark* of the image is dark."""

    name = "stub"

    def __init__(self, payload: str = PAYLOAD, min_dark: float = 0.5) -> None:
        self.payload = payload
        self.min_dark = min_dark
        self.sizes: list[tuple[int, int]] = []

    @property
    def calls(self) -> int:
        return len(self.sizes)

    def decode(self, image_bytes: bytes) -> str:
        with Image.open(io.BytesIO(image_bytes)) as image:
            self.sizes.append(image.size)
        if dark_fraction(image_bytes) >= self.min_dark:
            return self.payload
        raise NoPayloadFound("stub found nothing")


class NeverDecoder(BaseDecoder):
    name = "never"

    def __init__(self) -> None:
        self.calls = 0

    def decode(self, image_bytes: bytes) -> str:
        self.calls += 1
        raise NoPayloadFound("never decodes")


class FixedDecoder(BaseDecoder):
    """Always returns *text* (possibly needing normalisation)."""

    name = "fixed"

    def __init__(self, text: str) -> None:
        self.text = text

    def decode(self, image_bytes: bytes) -> str:
        return self.text


class BrokenDecoder(BaseDecoder):
    name = "broken"

    def decode(self, image_bytes: bytes) -> str:
        raise RuntimeError("decoder state corrupted")


@pytest.fixture
def dark_decoder() -> DarkPatchDecoder:
    return DarkPatchDecoder()


@pytest.fixture
def never_decoder() -> NeverDecoder:
    return NeverDecoder()


# ── Settings ───────────────────────────────────────────────────────────────


@pytest.fixture
def exact_config() -> EnhancementConfig:
    """Lossless, edge-stable enhancement so stub decoders see exact pixels."""
    return EnhancementConfig(
        contrast=1.0,
        sharpen=False,
        threshold=ThresholdConfig(mode=ThresholdMode.FIXED, value=128),
        output_format=OutputFormat.PNG,
    )


@pytest.fixture
def exact_settings(exact_config: EnhancementConfig) -> ScanSettings:
    return ScanSettings(pdf_scale=1.0, enhancement=exact_config)


# ── CLI runner ─────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


# ── Image fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def blank_png_bytes() -> bytes:
    """A real, valid 400×400 white PNG."""
    return png_of(solid_buffer(400, 400))


@pytest.fixture
def code_png_bytes() -> bytes:
    """A 400×400 PNG that is mostly covered by a dark 'code'."""
    return png_of(buffer_with_patch(400, 400, 20, 20, 360))


@pytest.fixture
def code_png_file(tmp_path: Path, code_png_bytes: bytes) -> Path:
    path = tmp_path / "invoice.png"
    path.write_bytes(code_png_bytes)
    return path


@pytest.fixture
def blank_png_file(tmp_path: Path, blank_png_bytes: bytes) -> Path:
    path = tmp_path / "blank.png"
    path.write_bytes(blank_png_bytes)
    return path


# ── PDF fixtures ───────────────────────────────────────────────────────────


def _pdf_bytes(pages: list[Optional[fitz.Rect]], **save_kwargs) -> bytes:
    """Build a PDF with one A4 page per entry; a Rect entry is drawn filled black."""
    doc = fitz.open()
    for rect in pages:
        page = doc.new_page(width=595, height=842)  # A4
        page.insert_text((72, 60), "INVOICE")
        if rect is not None:
            page.draw_rect(rect, color=(0, 0, 0), fill=(0, 0, 0))
    data = doc.tobytes(**save_kwargs)
    doc.close()
    return data


@pytest.fixture
def single_page_pdf_bytes() -> bytes:
    return _pdf_bytes([None])


@pytest.fixture
def three_page_pdf_bytes() -> bytes:
    return _pdf_bytes([None, None, None])


@pytest.fixture
def code_on_page_two_pdf_bytes() -> bytes:
    """Page 1 is blank; page 2 is mostly covered by a dark 'code'."""
    return _pdf_bytes([None, fitz.Rect(50, 50, 545, 792)])


@pytest.fixture
def encrypted_pdf_bytes() -> bytes:
    return _pdf_bytes(
        [None],
        encryption=fitz.PDF_ENCRYPT_AES_256,
        owner_pw="owner",
        user_pw="user",
    )


@pytest.fixture
def code_pdf_file(tmp_path: Path) -> Path:
    path = tmp_path / "invoice.pdf"
    path.write_bytes(_pdf_bytes([fitz.Rect(50, 50, 545, 792)]))
    return path


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep QR_SCAN_* variables from the developer's shell out of every test."""
    for key in list(os.environ):
        if key.startswith("QR_SCAN_"):
            monkeypatch.delenv(key)
