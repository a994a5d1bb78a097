"""zxing-cpp barcode decoder."""

import functools
import io
import logging
import operator
from typing import Sequence

import numpy as np
import zxingcpp
from PIL import Image

from qr_scan.config import DEFAULT_FORMATS
from qr_scan.decoders.base import BaseDecoder
from qr_scan.errors import NoPayloadFound

logger = logging.getLogger(__name__)


def resolve_formats(names: Sequence[str]):
    """Combine zxing-cpp format names (``"QRCode"``, ``"DataMatrix"``, …) into one filter."""
    if not names:
        raise ValueError("At least one barcode format is required")
    formats = []
    for name in names:
        fmt = getattr(zxingcpp.BarcodeFormat, name, None)
        if fmt is None:
            raise ValueError(f"Unknown barcode format: {name}")
        formats.append(fmt)
    return functools.reduce(operator.or_, formats)


class ZXingDecoder(BaseDecoder):
    name = "zxing"

    def __init__(
        self,
        formats: Sequence[str] = DEFAULT_FORMATS,
        try_rotate: bool = True,
        try_downscale: bool = True,
    ) -> None:
        self.formats = resolve_formats(formats)
        self.try_rotate = try_rotate
        self.try_downscale = try_downscale

    def decode(self, image_bytes: bytes) -> str:
        with Image.open(io.BytesIO(image_bytes)) as image:
            gray = np.asarray(image.convert("L"))

        results = zxingcpp.read_barcodes(
            gray,
            formats=self.formats,
            try_rotate=self.try_rotate,
            try_downscale=self.try_downscale,
        )
        for result in results:
            if getattr(result, "valid", True) and result.text:
                logger.debug("zxing-cpp read %s", result.format)
                return result.text
        raise NoPayloadFound("zxing-cpp found no barcode")
