"""Image enhancement to improve barcode decode rates on real-world scans.

Each stage is optional, but when several are enabled they always run in the
order below.  Pixel arithmetic is done on float arrays with numpy and clamped
to [0, 255] after every stage, so no stage can wrap around.

Pipeline
--------
1. Rescale     — shrink so the longer side is at most ``max_dimension``.
                 Never upscales; rescans at smaller scales are driven by
                 ``rescan_scales``.

2. Grayscale   — BT.601 luminance (0.299 R + 0.587 G + 0.114 B).  Plain
                 averaging visibly flattens contrast on coloured paper.

3. Denoise     — normalised binomial (Gaussian-like) kernel, or a bilateral
                 variant that keeps the hard black/white edges finder
                 patterns rely on.

4. Sharpen     — 3×3 Laplacian sharpen per colour channel.

5. Tone        — gamma first (compensates for the capture), then contrast
                 gain and brightness offset.

6. Threshold   — fixed global cutoff, or adaptive local mean minus a
                 constant.  Adaptive is the most useful single step for
                 photographed invoices with uneven lighting.

7. Encode      — JPEG or PNG bytes for the decoder (``encode``).

Alpha is carried through untouched and flattened onto white at encode time.
"""

import io
import math
from typing import Iterator

import numpy as np
from PIL import Image

from qr_scan.buffer import PixelBuffer
from qr_scan.config import (
    DenoiseMode,
    EnhancementConfig,
    OutputFormat,
    ThresholdConfig,
    ThresholdMode,
)

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)

SHARPEN_KERNEL = np.array(
    [
        [0, -1, 0],
        [-1, 5, -1],
        [0, -1, 0],
    ],
    dtype=np.float64,
)

# Bilateral weights: exp(-|ΔL| / SIGMA_INTENSITY - d² / SIGMA_SPATIAL)
BILATERAL_SIGMA_INTENSITY = 25.0
BILATERAL_SIGMA_SPATIAL = 2.0


# ── Helpers ────────────────────────────────────────────────────────────────────


def _clamp(channels: np.ndarray) -> np.ndarray:
    return np.clip(channels, 0.0, 255.0)


def _luminance(rgba: np.ndarray) -> np.ndarray:
    return rgba[..., :3] @ LUMA_WEIGHTS


def _convolve(channels: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """Convolve each channel of an ``(H, W, C)`` array, replicating edges."""
    r = kernel.shape[0] // 2
    h, w = channels.shape[:2]
    padded = np.pad(channels, ((r, r), (r, r), (0, 0)), mode="edge")
    out = np.zeros_like(channels)
    for dy in range(kernel.shape[0]):
        for dx in range(kernel.shape[1]):
            weight = kernel[dy, dx]
            if weight:
                out += weight * padded[dy : dy + h, dx : dx + w]
    return out


def _binomial_kernel(radius: int) -> np.ndarray:
    row = np.array([math.comb(2 * radius, k) for k in range(2 * radius + 1)], dtype=np.float64)
    kernel = np.outer(row, row)
    return kernel / kernel.sum()


def _box_mean(lum: np.ndarray, block_size: int) -> np.ndarray:
    """Mean of a ``block_size`` square around each pixel, clipped at the borders."""
    h, w = lum.shape
    r = block_size // 2
    integral = np.zeros((h + 1, w + 1), dtype=np.float64)
    integral[1:, 1:] = lum.cumsum(axis=0).cumsum(axis=1)

    y0 = np.clip(np.arange(h) - r, 0, h)
    y1 = np.clip(np.arange(h) + r + 1, 0, h)
    x0 = np.clip(np.arange(w) - r, 0, w)
    x1 = np.clip(np.arange(w) + r + 1, 0, w)

    total = (
        integral[np.ix_(y1, x1)]
        - integral[np.ix_(y0, x1)]
        - integral[np.ix_(y1, x0)]
        + integral[np.ix_(y0, x0)]
    )
    count = np.outer(y1 - y0, x1 - x0)
    # An empty neighbourhood falls back to the global mean.
    return np.where(count > 0, total / np.maximum(count, 1), lum.mean())


def _auto_block_size(height: int, width: int) -> int:
    return max(3, min(height, width) // 8) | 1


# ── Stages ─────────────────────────────────────────────────────────────────────


def rescale(buffer: PixelBuffer, max_dimension: int, scale: float = 1.0) -> PixelBuffer:
    """Shrink *buffer* so its longer side fits *max_dimension*, then by *scale*."""
    longest = max(buffer.width, buffer.height)
    factor = min(1.0, max_dimension / longest) * scale
    if factor >= 1.0:
        return buffer
    width = max(1, round(buffer.width * factor))
    height = max(1, round(buffer.height * factor))
    resized = buffer.to_image().resize((width, height), Image.Resampling.LANCZOS)
    return PixelBuffer.from_image(resized)


def to_grayscale(rgba: np.ndarray) -> np.ndarray:
    out = rgba.copy()
    out[..., :3] = _luminance(rgba)[..., None]
    return _clamp(out)


def denoise(rgba: np.ndarray, radius: int = 1, mode: DenoiseMode = DenoiseMode.GAUSSIAN) -> np.ndarray:
    out = rgba.copy()
    if mode == DenoiseMode.BILATERAL:
        out[..., :3] = _bilateral(rgba, radius)
    else:
        out[..., :3] = _convolve(rgba[..., :3], _binomial_kernel(radius))
    return _clamp(out)


def _bilateral(rgba: np.ndarray, radius: int) -> np.ndarray:
    h, w = rgba.shape[:2]
    rgb = rgba[..., :3]
    lum = _luminance(rgba)
    padded_rgb = np.pad(rgb, ((radius, radius), (radius, radius), (0, 0)), mode="edge")
    padded_lum = np.pad(lum, radius, mode="edge")

    acc = np.zeros_like(rgb)
    weights = np.zeros_like(lum)
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            ys = slice(radius + dy, radius + dy + h)
            xs = slice(radius + dx, radius + dx + w)
            delta = np.abs(padded_lum[ys, xs] - lum)
            weight = np.exp(
                -delta / BILATERAL_SIGMA_INTENSITY - (dx * dx + dy * dy) / BILATERAL_SIGMA_SPATIAL
            )
            acc += weight[..., None] * padded_rgb[ys, xs]
            weights += weight
    # The centre pixel always contributes weight 1, so weights >= 1.
    return acc / weights[..., None]


def sharpen(rgba: np.ndarray) -> np.ndarray:
    out = rgba.copy()
    out[..., :3] = _convolve(rgba[..., :3], SHARPEN_KERNEL)
    return _clamp(out)


def adjust_tone(
    rgba: np.ndarray,
    contrast: float = 1.0,
    brightness: float = 0.0,
    gamma: float = 1.0,
) -> np.ndarray:
    if contrast == 1.0 and brightness == 0.0 and gamma == 1.0:
        return rgba
    out = rgba.copy()
    normalized = rgba[..., :3] / 255.0
    out[..., :3] = 255.0 * np.power(normalized, gamma) * contrast + brightness
    return _clamp(out)


def binarize(rgba: np.ndarray, threshold: ThresholdConfig) -> np.ndarray:
    lum = _luminance(rgba)
    if threshold.mode == ThresholdMode.FIXED:
        mask = lum > threshold.value
    else:
        block_size = threshold.block_size or _auto_block_size(*lum.shape)
        mask = lum > _box_mean(lum, block_size) - threshold.constant
    out = rgba.copy()
    out[..., :3] = np.where(mask, 255.0, 0.0)[..., None]
    return out


# ── Public API ─────────────────────────────────────────────────────────────────


def enhance(buffer: PixelBuffer, config: EnhancementConfig, scale: float = 1.0) -> PixelBuffer:
    """Run the enhancement chain and return a new buffer.

    Always returns a buffer; with every stage disabled and no resize needed
    the result is pixel-identical to the input.
    """
    buffer = rescale(buffer, config.max_dimension, scale)
    rgba = buffer.to_array().astype(np.float64)

    if config.grayscale:
        rgba = to_grayscale(rgba)
    if config.denoise:
        rgba = denoise(rgba, config.denoise_radius, config.denoise_mode)
    if config.sharpen:
        rgba = sharpen(rgba)
    rgba = adjust_tone(rgba, config.contrast, config.brightness, config.gamma)
    if config.threshold is not None:
        rgba = binarize(rgba, config.threshold)

    return PixelBuffer.from_array(np.rint(rgba).astype(np.uint8))


def encode(buffer: PixelBuffer, config: EnhancementConfig) -> bytes:
    """Flatten *buffer* onto white and serialise it in the configured format."""
    image = buffer.to_image()
    background = Image.new("RGBA", image.size, (255, 255, 255, 255))
    flat = Image.alpha_composite(background, image).convert("RGB")

    out = io.BytesIO()
    if config.output_format == OutputFormat.PNG:
        flat.save(out, format="PNG")
    else:
        flat.save(out, format="JPEG", quality=max(1, round(config.output_quality * 100)))
    return out.getvalue()


def preprocess_for_decode(buffer: PixelBuffer, config: EnhancementConfig, scale: float = 1.0) -> bytes:
    """Enhance *buffer* and return the encoded bytes a decoder consumes."""
    return encode(enhance(buffer, config, scale), config)


def rescan_scales(width: int, height: int, config: EnhancementConfig) -> Iterator[float]:
    """Yield the scale factors to try for one region, largest first.

    Always yields 1.0.  With ``config.rescan`` set, keeps shrinking by
    ``scaling_factor`` while the longer side stays at or above
    ``min_dimension``.
    """
    yield 1.0
    if not config.rescan:
        return
    longest = min(max(width, height), config.max_dimension)
    scale = config.scaling_factor
    while longest * scale >= config.min_dimension:
        yield scale
        scale *= config.scaling_factor
