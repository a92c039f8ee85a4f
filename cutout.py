"""Chroma-key background removal.

Pixels whose RGB distance to a picked reference color is within
``tolerance`` get their alpha rewritten; everything else is left alone. With
``feather > 0`` the new alpha grows linearly with the distance, so pixels
close to the reference fade out completely while those near the tolerance
boundary stay almost opaque. Feathering never reaches past ``tolerance``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from pixels import Color, ColorLike, PixelBuffer, clamp, distance_map, parse_color, to_bytes
from styles import REGISTRY, BaseTransform

log = logging.getLogger("pixeltools.cutout")

__all__ = ["chroma_key", "affected_count", "sample_color", "CutoutTransform"]

DEFAULT_TOLERANCE = 30.0
MAX_TOLERANCE = 120.0
MAX_FEATHER = 60.0


def _key_mask(buffer: PixelBuffer, reference: ColorLike, tolerance: float) -> tuple[np.ndarray, np.ndarray]:
    d = distance_map(buffer, reference)
    return d, d <= tolerance


def chroma_key(
    buffer: PixelBuffer,
    reference: Optional[ColorLike],
    tolerance: float = DEFAULT_TOLERANCE,
    feather: float = 0.0,
) -> PixelBuffer:
    """Return a copy of ``buffer`` with the alpha of near-``reference`` pixels rewritten.

    Args:
        buffer: Source pixels (never modified).
        reference: Background color to key out. ``None`` gives an unmodified copy.
        tolerance: Maximum RGB distance that counts as background, clamped to 0..120.
        feather: 0 for a hard cut; any positive value (clamped to 60) switches to
            the distance-proportional soft edge.
    """
    if reference is None or buffer.pixel_count == 0:
        return buffer.copy()
    tolerance = clamp(float(tolerance), 0.0, MAX_TOLERANCE)
    feather = clamp(float(feather), 0.0, MAX_FEATHER)

    d, mask = _key_mask(buffer, reference, tolerance)
    out = buffer.as_array().copy()
    alpha = out[..., 3]
    if feather > 0:
        soft = to_bytes(np.clip(255.0 * (d / max(tolerance, 1.0)), 0.0, 255.0))
        alpha[mask] = soft[mask]
    else:
        alpha[mask] = 0
    log.debug(
        "chroma_key: ref=%s tol=%.1f feather=%.1f keyed=%d/%d",
        tuple(reference[:3]), tolerance, feather, int(mask.sum()), buffer.pixel_count,
    )
    return PixelBuffer.from_array(out)


def affected_count(buffer: PixelBuffer, reference: Optional[ColorLike], tolerance: float) -> int:
    """How many pixels :func:`chroma_key` would rewrite for this reference and tolerance."""
    if reference is None or buffer.pixel_count == 0:
        return 0
    tolerance = clamp(float(tolerance), 0.0, MAX_TOLERANCE)
    _, mask = _key_mask(buffer, reference, tolerance)
    return int(mask.sum())


def sample_color(buffer: PixelBuffer, x: int, y: int) -> Optional[Color]:
    """Pick the RGB at (x, y), clamping the coordinates into the buffer."""
    if buffer.pixel_count == 0:
        return None
    x = int(clamp(int(x), 0, buffer.width - 1))
    y = int(clamp(int(y), 0, buffer.height - 1))
    r, g, b, _a = buffer.pixel(x, y)
    return Color(r, g, b)


@dataclass
class CutoutTransform(BaseTransform):
    """Chroma-key cutout. ``color=#rrggbb`` or pick with ``x=``/``y=`` (default top-left)."""
    def apply(self, buffer: PixelBuffer, **kwargs) -> PixelBuffer:
        color = kwargs.get("color")
        if color is not None:
            reference = parse_color(str(color))
        else:
            reference = sample_color(buffer, int(kwargs.get("x", 0)), int(kwargs.get("y", 0)))
        return chroma_key(
            buffer,
            reference,
            tolerance=float(kwargs.get("tolerance", DEFAULT_TOLERANCE)),
            feather=float(kwargs.get("feather", 0.0)),
        )


REGISTRY.register("cutout", CutoutTransform)
