"""Vertical photo collage: every image resized to the widest width, stacked in order."""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from PIL import Image

from errors import InputShapeError, ResourceExhaustedError
from pixels import WHITE, PixelBuffer, resample, round_half_up

log = logging.getLogger("pixeltools.collage")

__all__ = ["collage_plan", "compose_vertical"]


def collage_plan(buffers: Sequence[PixelBuffer]) -> Tuple[int, List[int], int]:
    """Return ``(base_width, scaled_heights, total_height)`` for ``buffers``.

    Raises:
        InputShapeError: if ``buffers`` is empty or any buffer has zero width.
    """
    if not buffers:
        raise InputShapeError("A collage needs at least one image")
    for i, buf in enumerate(buffers):
        if buf.width == 0:
            raise InputShapeError(f"Collage input {i} has zero width")
    base_width = max(buf.width for buf in buffers)
    heights = [round_half_up(base_width * buf.height / buf.width) for buf in buffers]
    return base_width, heights, sum(heights)


def compose_vertical(buffers: Sequence[PixelBuffer]) -> PixelBuffer:
    """Stack ``buffers`` top to bottom on a white canvas ``base_width`` wide.

    Each input keeps its aspect ratio and is alpha-composited over the
    background, so transparent areas come out white. Input order is output
    order.
    """
    base_width, heights, total_height = collage_plan(buffers)
    log.info("collage: %d image(s) -> %dx%d", len(buffers), base_width, total_height)
    if total_height == 0:
        return PixelBuffer.blank(base_width, 0)
    try:
        canvas = Image.new("RGBA", (base_width, total_height), WHITE)
    except MemoryError as e:
        raise ResourceExhaustedError(f"Cannot allocate a {base_width}x{total_height} collage") from e

    y = 0
    for buf, h in zip(buffers, heights):
        if h > 0 and buf.pixel_count > 0:
            tile = resample(buf, base_width, h, smooth=True)
            canvas.alpha_composite(tile.to_image(), (0, y))
        y += h
    return PixelBuffer.from_image(canvas)
