"""Artistic styles (grayscale, sketch, cartoon, ink, pixelate) and the transform registry."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Union

import numpy as np
from PIL import Image

from kernels import sobel_magnitude
from pixels import PixelBuffer, clamp, luma_plane, round_half_up, to_bytes

log = logging.getLogger("pixeltools.styles")

__all__ = [
    "REGISTRY",
    "BaseTransform",
    "Style",
    "StyleParameters",
    "grayscale",
    "pixelate",
    "sketch",
    "cartoon",
    "ink",
    "stylize",
]

EDGE_GAMMA = 0.8         # bias that makes mid-strength edges bolder than a linear map
POSTER_LEVELS = 6
OUTLINE_TONE = 40.0
MIN_BLOCK = 4
MAX_BLOCK = 40
DEFAULT_INTENSITY = 0.7


# =============== Registry ===============
class TransformRegistry:
    def __init__(self) -> None:
        self._by_name: Dict[str, type[BaseTransform]] = {}

    def register(self, name: str, cls: type["BaseTransform"]) -> None:
        key = name.strip().lower()
        self._by_name[key] = cls

    def names(self) -> list[str]:
        return sorted(self._by_name.keys())

    def create(self, name: str, **kwargs) -> "BaseTransform":
        key = name.strip().lower()
        if key not in self._by_name:
            raise KeyError(f"Unknown transform '{name}'. Available: {', '.join(self.names()) or '(none)'}")
        return self._by_name[key](**kwargs)


REGISTRY = TransformRegistry()


@dataclass
class BaseTransform:
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:  # pragma: no cover
        raise NotImplementedError


# =============== Parameters ===============
class Style(Enum):
    GRAYSCALE = "grayscale"
    SKETCH = "sketch"
    CARTOON = "cartoon"
    INK = "ink"
    PIXELATE = "pixelate"

    @classmethod
    def parse(cls, value: Union[str, "Style"]) -> "Style":
        if isinstance(value, Style):
            return value
        key = str(value).strip().lower()
        if key == "pixel":
            key = "pixelate"
        try:
            return cls(key)
        except ValueError:
            raise ValueError(
                f"Unknown style '{value}'. Available: {', '.join(s.value for s in cls)}"
            ) from None


@dataclass(frozen=True)
class StyleParameters:
    style: Style = Style.GRAYSCALE
    intensity: float = DEFAULT_INTENSITY

    def __post_init__(self) -> None:
        object.__setattr__(self, "style", Style.parse(self.style))
        object.__setattr__(self, "intensity", clamp(float(self.intensity), 0.0, 1.0))


# =============== Helpers ===============
def _with_rgb(buffer: PixelBuffer, r: np.ndarray, g: np.ndarray, b: np.ndarray) -> PixelBuffer:
    """New buffer with the given uint8 channels and the source alpha."""
    src = buffer.as_array()
    out = np.empty_like(src)
    out[..., 0] = r
    out[..., 1] = g
    out[..., 2] = b
    out[..., 3] = src[..., 3]
    return PixelBuffer.from_array(out)


def _edge_strength(luma: np.ndarray) -> np.ndarray:
    """Sobel magnitude over the max found in the image, raised to EDGE_GAMMA."""
    mag = sobel_magnitude(luma)
    peak = float(mag.max()) if mag.size else 0.0
    return np.power(mag / (peak or 1.0), EDGE_GAMMA)


def block_factor(intensity: float) -> int:
    return max(MIN_BLOCK, round_half_up((1.0 - clamp(float(intensity), 0.0, 1.0)) * MAX_BLOCK))


# =============== Styles ===============
def grayscale(buffer: PixelBuffer) -> PixelBuffer:
    gray = to_bytes(luma_plane(buffer))
    return _with_rgb(buffer, gray, gray, gray)


def pixelate(buffer: PixelBuffer, intensity: float = DEFAULT_INTENSITY) -> PixelBuffer:
    """Nearest-neighbour down to ceil(w/f) x ceil(h/f), then back up to w x h."""
    if buffer.pixel_count == 0:
        return buffer.copy()
    f = block_factor(intensity)
    small = (max(1, math.ceil(buffer.width / f)), max(1, math.ceil(buffer.height / f)))
    img = buffer.to_image()
    blocks = img.resize(small, Image.Resampling.NEAREST).resize(buffer.size, Image.Resampling.NEAREST)
    log.debug("pixelate: factor=%d grid=%dx%d", f, *small)
    return PixelBuffer.from_image(blocks)


def sketch(buffer: PixelBuffer, intensity: float = DEFAULT_INTENSITY) -> PixelBuffer:
    """Pencil look: white paper, dark where the luma gradient is strong.

    ``intensity`` is accepted for a uniform signature; the shading depends on
    the edge map only.
    """
    e = _edge_strength(luma_plane(buffer))
    shade = to_bytes(255.0 - e * 255.0)
    return _with_rgb(buffer, shade, shade, shade)


def cartoon(buffer: PixelBuffer, intensity: float = DEFAULT_INTENSITY) -> PixelBuffer:
    intensity = clamp(float(intensity), 0.0, 1.0)
    luma = luma_plane(buffer)
    e = _edge_strength(luma)
    step = 255.0 / POSTER_LEVELS
    poster = np.floor(luma / step + 0.5) * step
    # tone is stored as a byte before the warm cast
    tone = to_bytes(poster * (1.0 - e) + e * OUTLINE_TONE).astype(np.float64)
    adjust = intensity * 0.35 + 0.65
    r = to_bytes(np.minimum(255.0, tone * adjust))
    g = to_bytes(np.minimum(255.0, tone * adjust * 0.98))
    b = to_bytes(np.minimum(255.0, tone * adjust * 0.94))
    return _with_rgb(buffer, r, g, b)


def ink(buffer: PixelBuffer, intensity: float = DEFAULT_INTENSITY) -> PixelBuffer:
    intensity = clamp(float(intensity), 0.0, 1.0)
    blend = luma_plane(buffer) * (0.7 + intensity * 0.3)
    r = to_bytes(np.minimum(255.0, blend * 1.05 + 12.0))
    g = to_bytes(np.minimum(255.0, blend * 0.92 + 10.0))
    b = to_bytes(np.minimum(255.0, blend * 0.85 + 18.0))
    return _with_rgb(buffer, r, g, b)


_DISPATCH: Dict[Style, Callable[[PixelBuffer, float], PixelBuffer]] = {
    Style.GRAYSCALE: lambda buf, _intensity: grayscale(buf),
    Style.SKETCH: sketch,
    Style.CARTOON: cartoon,
    Style.INK: ink,
    Style.PIXELATE: pixelate,
}


def stylize(buffer: PixelBuffer, params: StyleParameters) -> PixelBuffer:
    log.debug("stylize: %s intensity=%.2f on %dx%d", params.style.value, params.intensity, *buffer.size)
    return _DISPATCH[params.style](buffer, params.intensity)


# =============== Transforms ===============
@dataclass
class GrayscaleTransform(BaseTransform):
    """Luma into R, G and B."""
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:
        return grayscale(buffer)


@dataclass
class SketchTransform(BaseTransform):
    """Sobel edges shaded as pencil strokes."""
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:
        return sketch(buffer, float(kwargs.get("intensity", DEFAULT_INTENSITY)))


@dataclass
class CartoonTransform(BaseTransform):
    """Posterized luma with dark outlines and a warm cast."""
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:
        return cartoon(buffer, float(kwargs.get("intensity", DEFAULT_INTENSITY)))


@dataclass
class InkTransform(BaseTransform):
    """Ink-wash tint."""
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:
        return ink(buffer, float(kwargs.get("intensity", DEFAULT_INTENSITY)))


@dataclass
class PixelateTransform(BaseTransform):
    """Hard-edged blocks; higher intensity means smaller blocks."""
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:
        return pixelate(buffer, float(kwargs.get("intensity", DEFAULT_INTENSITY)))


@dataclass
class StylizeTransform(BaseTransform):
    """Any style picked with ``style=...``."""
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:
        params = StyleParameters(
            style=kwargs.get("style", Style.GRAYSCALE.value),
            intensity=float(kwargs.get("intensity", DEFAULT_INTENSITY)),
        )
        return stylize(buffer, params)


# ---- Register at import time ----
REGISTRY.register("grayscale", GrayscaleTransform)
REGISTRY.register("sketch", SketchTransform)
REGISTRY.register("cartoon", CartoonTransform)
REGISTRY.register("ink", InkTransform)
REGISTRY.register("pixelate", PixelateTransform)
REGISTRY.register("stylize", StylizeTransform)
