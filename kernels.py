"""3x3 convolution with edge-clamped sampling, plus the kernels the transforms use."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

__all__ = ["Kernel", "SHARPEN", "SOBEL_X", "SOBEL_Y", "convolve3x3", "sobel_magnitude"]


@dataclass(frozen=True)
class Kernel:
    """Nine row-major weights. Not normalized; callers blend with the source to set strength."""
    weights: Tuple[float, ...]

    def __init__(self, weights: Sequence[float]) -> None:
        w = tuple(float(v) for v in weights)
        if len(w) != 9:
            raise ValueError(f"A 3x3 kernel needs 9 weights, got {len(w)}")
        object.__setattr__(self, "weights", w)

    def as_matrix(self) -> np.ndarray:
        return np.array(self.weights, np.float64).reshape(3, 3)


SHARPEN = Kernel([0, -1, 0, -1, 5, -1, 0, -1, 0])
SOBEL_X = Kernel([-1, 0, 1, -2, 0, 2, -1, 0, 1])
SOBEL_Y = Kernel([-1, -2, -1, 0, 0, 0, 1, 2, 1])


def convolve3x3(plane: np.ndarray, kernel: Kernel) -> np.ndarray:
    """Weighted 3x3 neighbourhood sum over an (h, w) or (h, w, c) array.

    Samples outside the image take the value of the nearest edge pixel
    (``np.pad(mode="edge")``), so the output has the input's shape. Terms are
    accumulated row by row, left to right, in float64.
    """
    src = np.asarray(plane, dtype=np.float64)
    h, w = src.shape[:2]
    out = np.zeros(src.shape, np.float64)
    if h == 0 or w == 0:
        return out
    pad = ((1, 1), (1, 1)) + ((0, 0),) * (src.ndim - 2)
    p = np.pad(src, pad, mode="edge")
    m = kernel.as_matrix()
    for ky in range(3):
        for kx in range(3):
            weight = m[ky, kx]
            if weight == 0.0:
                continue
            out += p[ky:ky + h, kx:kx + w] * weight
    return out


def sobel_magnitude(luma: np.ndarray) -> np.ndarray:
    """Gradient magnitude sqrt(Gx^2 + Gy^2) of a luma plane."""
    gx = convolve3x3(luma, SOBEL_X)
    gy = convolve3x3(luma, SOBEL_Y)
    return np.sqrt(gx * gx + gy * gy)
