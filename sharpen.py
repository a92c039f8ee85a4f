"""Unsharp-kernel sharpening and the bicubic upscale built on it."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from kernels import SHARPEN, convolve3x3
from pixels import PixelBuffer, clamp, resample, scaled_size, to_bytes
from styles import REGISTRY, BaseTransform

log = logging.getLogger("pixeltools.sharpen")

__all__ = ["sharpen", "upscale", "SharpenTransform", "UpscaleTransform"]

DEFAULT_SHARPNESS = 0.4
MAX_UPSCALE = 4.0


def sharpen(buffer: PixelBuffer, intensity: float = DEFAULT_SHARPNESS) -> PixelBuffer:
    """Blend each pixel towards the unsharp kernel response.

    ``output = original * (1 - intensity) + convolved * intensity`` per RGB
    channel, clamped to a byte; alpha is copied. An intensity of 0 returns
    ``buffer`` itself.
    """
    intensity = clamp(float(intensity), 0.0, 1.0)
    if intensity == 0.0 or buffer.pixel_count == 0:
        return buffer
    src = buffer.as_array()
    rgb = src[..., :3].astype(np.float64)
    convolved = convolve3x3(rgb, SHARPEN)
    out = np.empty_like(src)
    out[..., :3] = to_bytes(rgb * (1.0 - intensity) + convolved * intensity)
    out[..., 3] = src[..., 3]
    return PixelBuffer.from_array(out)


def upscale(buffer: PixelBuffer, scale: float = 1.0, sharpness: float = DEFAULT_SHARPNESS) -> PixelBuffer:
    """Smooth (bicubic) enlargement followed by :func:`sharpen`.

    An approximation of super-resolution: nothing is hallucinated, the
    sharpen pass only restores some of the edge contrast the interpolation
    softens. ``scale`` is clamped to 1..4.
    """
    scale = clamp(float(scale), 1.0, MAX_UPSCALE)
    if buffer.pixel_count == 0:
        return buffer.copy()
    target = scaled_size(buffer.width, buffer.height, scale)
    log.info("upscale: %dx%d -> %dx%d sharpness=%.2f", buffer.width, buffer.height, *target, sharpness)
    return sharpen(resample(buffer, *target, smooth=True), sharpness)


@dataclass
class SharpenTransform(BaseTransform):
    """3x3 unsharp kernel blended by ``intensity``."""
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:
        return sharpen(buffer, float(kwargs.get("intensity", DEFAULT_SHARPNESS)))


@dataclass
class UpscaleTransform(BaseTransform):
    """Enlarge by ``scale`` (1..4) and sharpen by ``sharpness``."""
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:
        return upscale(
            buffer,
            scale=float(kwargs.get("scale", 1.0)),
            sharpness=float(kwargs.get("sharpness", DEFAULT_SHARPNESS)),
        )


REGISTRY.register("sharpen", SharpenTransform)
REGISTRY.register("upscale", UpscaleTransform)
