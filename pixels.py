"""RGBA pixel buffers and the color metrics shared by every transform.

A :class:`PixelBuffer` is the only thing the transforms exchange: width,
height and an immutable ``bytes`` payload laid out R,G,B,A row-major from the
top-left corner. Transforms read it through :meth:`PixelBuffer.as_array` (a
read-only numpy view) and hand back a fresh buffer built with
:meth:`PixelBuffer.from_array`.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image

from errors import InputShapeError, ResourceExhaustedError

__all__ = [
    "Color",
    "PixelBuffer",
    "WHITE",
    "TRANSPARENT",
    "clamp",
    "round_half_up",
    "ColorLike",
    "to_bytes",
    "distance",
    "luminance",
    "distance_map",
    "luma_plane",
    "parse_color",
    "encode_buffer",
    "scaled_size",
    "resample",
]

RGBA = Tuple[int, int, int, int]

WHITE: RGBA = (255, 255, 255, 255)
TRANSPARENT: RGBA = (0, 0, 0, 0)


class Color(NamedTuple):
    r: int
    g: int
    b: int


ColorLike = Union[Color, Sequence[float]]


# =============== Scalar helpers ===============
def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def round_half_up(value: float) -> int:
    """Round .5 towards +inf (the rounding browsers use for ``Math.round``)."""
    return int(math.floor(value + 0.5))


def to_bytes(values: np.ndarray) -> np.ndarray:
    """Round to nearest (ties to even) and clamp into 0..255 as uint8."""
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


# =============== Color metrics ===============
def distance(a: ColorLike, b: ColorLike) -> float:
    """Euclidean distance between two RGB triples, 0..441.67."""
    dr = float(a[0]) - float(b[0])
    dg = float(a[1]) - float(b[1])
    db = float(a[2]) - float(b[2])
    return math.sqrt(dr * dr + dg * dg + db * db)


def luminance(c: ColorLike) -> float:
    """BT.601 luma, 0..255."""
    return 0.299 * float(c[0]) + 0.587 * float(c[1]) + 0.114 * float(c[2])


def _rgb_planes(buffer: "PixelBuffer") -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    arr = buffer.as_array()
    return (
        arr[..., 0].astype(np.float64),
        arr[..., 1].astype(np.float64),
        arr[..., 2].astype(np.float64),
    )


def distance_map(buffer: "PixelBuffer", color: ColorLike) -> np.ndarray:
    """Per-pixel :func:`distance` to ``color`` as an (h, w) float64 array."""
    r, g, b = _rgb_planes(buffer)
    dr = r - float(color[0])
    dg = g - float(color[1])
    db = b - float(color[2])
    return np.sqrt(dr * dr + dg * dg + db * db)


def luma_plane(buffer: "PixelBuffer") -> np.ndarray:
    """Per-pixel :func:`luminance` as an (h, w) float64 array."""
    r, g, b = _rgb_planes(buffer)
    return 0.299 * r + 0.587 * g + 0.114 * b


def parse_color(value: Union[str, ColorLike, None]) -> Optional[Color]:
    """Accept ``#rgb``, ``#rrggbb``, ``"r,g,b"`` or a 3-sequence."""
    if value is None:
        return None
    if isinstance(value, str):
        s = value.strip()
        if "," in s:
            parts = [p.strip() for p in s.split(",")]
            if len(parts) != 3:
                raise ValueError(f"Expected 'r,g,b', got {value!r}")
            r, g, b = (int(clamp(round(float(p)), 0, 255)) for p in parts)
            return Color(r, g, b)
        s = s.lstrip("#")
        if len(s) == 3:
            s = "".join(c * 2 for c in s)
        if len(s) != 6:
            raise ValueError(f"Expected a hex color like #11aa33, got {value!r}")
        return Color(int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))
    r, g, b = value[:3]
    return Color(int(r), int(g), int(b))


# =============== Buffer ===============
@dataclass(frozen=True)
class PixelBuffer:
    width: int
    height: int
    data: bytes

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise InputShapeError(f"Negative dimensions {self.width}x{self.height}")
        object.__setattr__(self, "width", int(self.width))
        object.__setattr__(self, "height", int(self.height))
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))
        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise InputShapeError(
                f"{self.width}x{self.height} RGBA buffer needs {expected} bytes, got {len(self.data)}"
            )

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @classmethod
    def blank(cls, width: int, height: int, fill: RGBA = WHITE) -> "PixelBuffer":
        try:
            arr = np.empty((height, width, 4), np.uint8)
            arr[...] = np.asarray(fill, np.uint8)
        except MemoryError as e:
            raise ResourceExhaustedError(f"Cannot allocate a {width}x{height} buffer") from e
        return cls.from_array(arr)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "PixelBuffer":
        """Wrap an (h, w, 4) uint8 array. Other dtypes go through :func:`to_bytes` first."""
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise InputShapeError(f"Expected an (h, w, 4) array, got shape {arr.shape}")
        if arr.dtype != np.uint8:
            arr = to_bytes(arr)
        h, w = arr.shape[:2]
        try:
            raw = np.ascontiguousarray(arr).tobytes()
        except MemoryError as e:
            raise ResourceExhaustedError(f"Cannot allocate a {w}x{h} buffer") from e
        return cls(w, h, raw)

    @classmethod
    def from_image(cls, img: Image.Image) -> "PixelBuffer":
        rgba = img if img.mode == "RGBA" else img.convert("RGBA")
        return cls(rgba.width, rgba.height, rgba.tobytes())

    def to_image(self) -> Image.Image:
        if self.pixel_count == 0:
            raise InputShapeError("Cannot build an image from an empty buffer")
        return Image.frombytes("RGBA", (self.width, self.height), self.data)

    def as_array(self) -> np.ndarray:
        """Read-only (h, w, 4) uint8 view over ``data``."""
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 4)

    def pixel(self, x: int, y: int) -> RGBA:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height}")
        i = (y * self.width + x) * 4
        r, g, b, a = self.data[i:i + 4]
        return r, g, b, a

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.width, self.height, bytes(bytearray(self.data)))


# =============== Encoding ===============
def encode_buffer(buffer: PixelBuffer, fmt: str = "PNG", quality: int = 92) -> bytes:
    """Compress ``buffer`` with Pillow. JPEG has no alpha, so it is flattened onto white."""
    fmt = fmt.upper()
    if fmt == "JPG":
        fmt = "JPEG"
    img = buffer.to_image()
    out = io.BytesIO()
    if fmt == "JPEG":
        flat = Image.new("RGB", img.size, WHITE[:3])
        flat.paste(img, mask=img.getchannel("A"))
        flat.save(out, format="JPEG", quality=int(clamp(int(quality), 1, 100)))
    elif fmt == "WEBP":
        img.save(out, format="WEBP", quality=int(clamp(int(quality), 1, 100)))
    else:
        img.save(out, format=fmt, optimize=True)
    return out.getvalue()


# =============== Resampling ===============
def scaled_size(width: int, height: int, scale: float) -> Tuple[int, int]:
    """Uniformly scaled dimensions, never below 1x1."""
    return (
        max(1, round_half_up(width * scale)),
        max(1, round_half_up(height * scale)),
    )


def resample(buffer: PixelBuffer, width: int, height: int, *, smooth: bool = True) -> PixelBuffer:
    """Resize to ``width`` x ``height``; bicubic when ``smooth`` else nearest-neighbour."""
    if (width, height) == buffer.size:
        return buffer
    if width == 0 or height == 0:
        return PixelBuffer.blank(width, height, TRANSPARENT)
    if buffer.pixel_count == 0:
        raise InputShapeError(f"Cannot resample an empty {buffer.width}x{buffer.height} buffer")
    method = Image.Resampling.BICUBIC if smooth else Image.Resampling.NEAREST
    try:
        out = buffer.to_image().resize((int(width), int(height)), method)
    except MemoryError as e:
        raise ResourceExhaustedError(f"Cannot allocate a {width}x{height} buffer") from e
    return PixelBuffer.from_image(out)
