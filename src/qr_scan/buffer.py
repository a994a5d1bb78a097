"""In-memory RGBA pixel buffers and rectangular regions.

A ``PixelBuffer`` is the unit every pipeline stage hands to the next one.
Stages never mutate a buffer they receive; each returns a fresh buffer, so a
buffer passed into a transform can be treated as consumed by the caller.
"""

from dataclasses import dataclass

import numpy as np
from PIL import Image

CHANNELS = 4  # RGBA


@dataclass(frozen=True)
class Region:
    """A rectangle in pixel coordinates. Describes pixels, never owns them."""

    x: int
    y: int
    width: int
    height: int

    @classmethod
    def full(cls, buffer: "PixelBuffer") -> "Region":
        return cls(0, 0, buffer.width, buffer.height)

    def fits_within(self, width: int, height: int) -> bool:
        return (
            self.x >= 0
            and self.y >= 0
            and self.width > 0
            and self.height > 0
            and self.x + self.width <= width
            and self.y + self.height <= height
        )


@dataclass(frozen=True)
class PixelBuffer:
    width: int
    height: int
    pixels: bytes

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Buffer dimensions must be positive, got {self.width}x{self.height}")
        expected = self.width * self.height * CHANNELS
        if len(self.pixels) != expected:
            raise ValueError(
                f"Pixel data has {len(self.pixels)} bytes, expected {expected} "
                f"for a {self.width}x{self.height} RGBA buffer"
            )

    # ── Conversions ────────────────────────────────────────────────────────

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Build a buffer from an ``(height, width, 4)`` uint8 array."""
        if array.ndim != 3 or array.shape[2] != CHANNELS:
            raise ValueError(f"Expected an (H, W, 4) array, got shape {array.shape}")
        height, width = array.shape[:2]
        data = np.ascontiguousarray(array, dtype=np.uint8).tobytes()
        return cls(width=width, height=height, pixels=data)

    def to_array(self) -> np.ndarray:
        """Return a read-only ``(height, width, 4)`` uint8 view of the pixels."""
        return np.frombuffer(self.pixels, dtype=np.uint8).reshape(
            self.height, self.width, CHANNELS
        )

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls(width=image.width, height=image.height, pixels=image.tobytes())

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), self.pixels)

    # ── Regions ────────────────────────────────────────────────────────────

    def crop(self, region: Region) -> "PixelBuffer":
        """Copy the pixels inside *region* into a new, independent buffer."""
        if not region.fits_within(self.width, self.height):
            raise ValueError(
                f"Region {region} is not contained in a {self.width}x{self.height} buffer"
            )
        if region == Region.full(self):
            return self
        view = self.to_array()[
            region.y : region.y + region.height,
            region.x : region.x + region.width,
        ]
        return PixelBuffer.from_array(view)
