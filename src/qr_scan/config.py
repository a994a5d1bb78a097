"""Configuration for the enhancement chain and the scan request.

``EnhancementConfig`` is fixed for the lifetime of one decode attempt.
``ScanSettings`` holds the request-level knobs and can be loaded from
``QR_SCAN_*`` environment variables (or a ``.env`` file via the CLI).
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence, TypeVar

T = TypeVar("T")


class ThresholdMode(str, Enum):
    FIXED = "fixed"
    ADAPTIVE = "adaptive"


class DenoiseMode(str, Enum):
    GAUSSIAN = "gaussian"
    BILATERAL = "bilateral"


class OutputFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"


class DecoderKind(str, Enum):
    ZXING = "zxing"
    OPENCV = "opencv"


@dataclass(frozen=True)
class ThresholdConfig:
    """Binarisation settings.

    ``value`` is the cutoff for fixed mode. Adaptive mode compares each pixel
    with the mean of a ``block_size`` square around it minus ``constant``;
    a ``block_size`` of 0 picks a block of roughly an eighth of the shorter
    image side.
    """

    mode: ThresholdMode = ThresholdMode.ADAPTIVE
    value: int = 128
    block_size: int = 0
    constant: float = 10.0

    def __post_init__(self) -> None:
        if not 0 <= self.value <= 255:
            raise ValueError(f"threshold value must be in [0, 255], got {self.value}")
        if self.block_size < 0 or (self.block_size and self.block_size % 2 == 0):
            raise ValueError(f"block_size must be 0 or a positive odd number, got {self.block_size}")


@dataclass(frozen=True)
class EnhancementConfig:
    max_dimension: int = 1600
    min_dimension: int = 200
    scaling_factor: float = 0.75
    contrast: float = 1.1
    brightness: float = 0.0
    gamma: float = 1.0
    grayscale: bool = True
    denoise: bool = False
    denoise_radius: int = 1
    denoise_mode: DenoiseMode = DenoiseMode.GAUSSIAN
    sharpen: bool = True
    threshold: Optional[ThresholdConfig] = field(default_factory=ThresholdConfig)
    output_format: OutputFormat = OutputFormat.JPEG
    output_quality: float = 0.95
    rescan: bool = False

    def __post_init__(self) -> None:
        if self.max_dimension <= 0 or self.min_dimension <= 0:
            raise ValueError("max_dimension and min_dimension must be positive")
        if self.min_dimension > self.max_dimension:
            raise ValueError(
                f"min_dimension ({self.min_dimension}) exceeds max_dimension ({self.max_dimension})"
            )
        if not 0.0 < self.scaling_factor < 1.0:
            raise ValueError(f"scaling_factor must be in (0, 1), got {self.scaling_factor}")
        if self.gamma <= 0:
            raise ValueError(f"gamma must be positive, got {self.gamma}")
        if self.contrast < 0:
            raise ValueError(f"contrast must not be negative, got {self.contrast}")
        if self.denoise_radius < 1:
            raise ValueError(f"denoise_radius must be at least 1, got {self.denoise_radius}")
        if not 0.0 <= self.output_quality <= 1.0:
            raise ValueError(f"output_quality must be in [0, 1], got {self.output_quality}")


ENV_PREFIX = "QR_SCAN_"

# zxing-cpp BarcodeFormat names; OpenCV only ever reads QR codes.
DEFAULT_FORMATS = ("QRCode",)

DEFAULT_PDF_SCALE = 8.0
MIN_PDF_SCALE = 1.0
MAX_PDF_SCALE = 8.0


def _from_env(name: str, cast: Callable[[str], T], default: T) -> T:
    key = ENV_PREFIX + name
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid value for {key}: {raw!r} ({e})") from e


def _split_names(raw: str) -> tuple:
    return tuple(name.strip() for name in raw.split(",") if name.strip())


@dataclass
class ScanSettings:
    """Request-level settings for ``decode_document``."""

    decoder: DecoderKind = DecoderKind.ZXING
    formats: tuple = DEFAULT_FORMATS
    pdf_scale: float = DEFAULT_PDF_SCALE
    max_pages: Optional[int] = None
    max_depth: int = 3
    min_region: int = 100
    max_pixels: int = 64_000_000
    fetch_timeout: float = 30.0
    enhancement: EnhancementConfig = field(default_factory=EnhancementConfig)

    def __post_init__(self) -> None:
        if not MIN_PDF_SCALE <= self.pdf_scale <= MAX_PDF_SCALE:
            raise ValueError(
                f"pdf_scale must be between {MIN_PDF_SCALE} and {MAX_PDF_SCALE}, got {self.pdf_scale}"
            )
        if self.max_pages is not None and self.max_pages < 1:
            raise ValueError(f"max_pages must be at least 1, got {self.max_pages}")
        if self.max_depth < 0:
            raise ValueError(f"max_depth must not be negative, got {self.max_depth}")
        if self.min_region < 2:
            raise ValueError(f"min_region must be at least 2, got {self.min_region}")
        if not self.formats:
            raise ValueError("formats must name at least one barcode format")
        if self.decoder == DecoderKind.OPENCV and tuple(self.formats) != DEFAULT_FORMATS:
            raise ValueError(f"The opencv decoder only reads QR codes, got formats {self.formats}")

    @classmethod
    def from_env(
        cls,
        decoder_override: Optional[DecoderKind] = None,
        scale_override: Optional[float] = None,
        max_pages_override: Optional[int] = None,
        formats_override: Optional[Sequence[str]] = None,
        enhancement: Optional[EnhancementConfig] = None,
    ) -> "ScanSettings":
        decoder = decoder_override or _from_env("DECODER", DecoderKind, DecoderKind.ZXING)
        pdf_scale = scale_override or _from_env("PDF_SCALE", float, DEFAULT_PDF_SCALE)
        max_pages = max_pages_override or _from_env("MAX_PAGES", int, None)
        formats = tuple(formats_override or ()) or _from_env("FORMATS", _split_names, DEFAULT_FORMATS)
        try:
            return cls(
                decoder=decoder,
                formats=formats,
                pdf_scale=pdf_scale,
                max_pages=max_pages,
                max_depth=_from_env("MAX_DEPTH", int, 3),
                min_region=_from_env("MIN_REGION", int, 100),
                max_pixels=_from_env("MAX_PIXELS", int, 64_000_000),
                fetch_timeout=_from_env("FETCH_TIMEOUT", float, 30.0),
                enhancement=enhancement or EnhancementConfig(),
            )
        except ValueError as e:
            raise RuntimeError(f"Invalid scan settings: {e}") from e
