"""Tests for the artistic styles and the transform registry."""

import numpy as np
import pytest

import cutout  # noqa: F401
import sharpen  # noqa: F401
from pixels import PixelBuffer
from styles import (
    REGISTRY,
    Style,
    StyleParameters,
    block_factor,
    cartoon,
    grayscale,
    ink,
    pixelate,
    sketch,
    stylize,
)


def _solid(w: int, h: int, rgba) -> PixelBuffer:
    return PixelBuffer(w, h, bytes(rgba) * (w * h))


def _split(w: int = 8, h: int = 8) -> PixelBuffer:
    """Left half black, right half white."""
    arr = np.zeros((h, w, 4), np.uint8)
    arr[:, w // 2:, :3] = 255
    arr[..., 3] = 255
    return PixelBuffer.from_array(arr)


def _gradient(w: int = 10, h: int = 10) -> PixelBuffer:
    arr = np.zeros((h, w, 4), np.uint8)
    arr[..., 0] = (np.arange(w)[None, :] * 20) % 256
    arr[..., 1] = (np.arange(h)[:, None] * 20) % 256
    arr[..., 3] = 255
    return PixelBuffer.from_array(arr)


def test_registry_lists_every_transform():
    assert REGISTRY.names() == sorted(
        ["cartoon", "cutout", "grayscale", "ink", "pixelate", "sharpen", "sketch", "stylize", "upscale"]
    )
    with pytest.raises(KeyError):
        REGISTRY.create("emboss")


def test_style_parse():
    assert Style.parse("Pixel") is Style.PIXELATE
    assert Style.parse(Style.INK) is Style.INK
    with pytest.raises(ValueError):
        Style.parse("oil")


def test_style_parameters_clamp_intensity():
    assert StyleParameters("ink", 2.0).intensity == 1.0
    assert StyleParameters("ink", -1).intensity == 0.0
    assert StyleParameters("sketch").style is Style.SKETCH


def test_grayscale_uses_luma_and_keeps_alpha():
    out = grayscale(_solid(1, 1, (255, 0, 0, 128)))
    assert out.pixel(0, 0) == (76, 76, 76, 128)


def test_block_factor():
    assert block_factor(1.0) == 4
    assert block_factor(0.0) == 40
    assert block_factor(0.5) == 20
    assert block_factor(0.7) == 12


def test_pixelate_makes_uniform_blocks():
    src = _gradient(8, 8)
    out = pixelate(src, intensity=1.0).as_array()
    assert out.shape == (8, 8, 4)
    for by in (0, 4):
        for bx in (0, 4):
            block = out[by:by + 4, bx:bx + 4]
            assert (block == block[0, 0]).all()


def test_pixelate_keeps_size_when_not_divisible():
    out = pixelate(_gradient(10, 7), intensity=1.0)
    assert out.size == (10, 7)


def test_sketch_white_on_flat_and_black_on_strongest_edge():
    flat = sketch(_solid(4, 4, (90, 90, 90, 255)))
    assert (flat.as_array()[..., :3] == 255).all()

    edged = sketch(_split()).as_array()
    assert edged[..., 0].min() == 0
    assert edged[0, 0, 0] == 255


def test_cartoon_posterizes_and_warms():
    out = cartoon(_solid(2, 2, (128, 128, 128, 255)), intensity=1.0)
    # 128 -> level 3 of 6 (127.5), stored as 128, then the warm cast
    assert out.pixel(0, 0) == (128, 125, 120, 255)


def test_cartoon_outlines_edges():
    out = cartoon(_split(), intensity=1.0).as_array()
    flat_white = out[0, 7, 0]
    edge = out[4, 4, 0]
    assert edge < flat_white


def test_ink_tint_on_black():
    out = ink(_solid(1, 1, (0, 0, 0, 33)), intensity=0.5)
    assert out.pixel(0, 0) == (12, 10, 18, 33)


@pytest.mark.parametrize("style", list(Style))
def test_stylize_dispatch_and_alpha(style):
    src = _gradient()
    params = StyleParameters(style, 0.6)
    out = stylize(src, params)
    assert out.size == src.size
    assert (out.as_array()[..., 3] == 255).all()
    via_registry = REGISTRY.create("stylize").apply(src, style=style.value, intensity=0.6)
    assert via_registry.data == out.data


def test_styles_on_empty_buffer():
    empty = PixelBuffer(0, 0, b"")
    for style in Style:
        assert stylize(empty, StyleParameters(style)).pixel_count == 0


def test_grayscale_is_idempotent():
    once = grayscale(_gradient())
    assert grayscale(once).data == once.data
    arr = once.as_array()
    assert (arr[..., 0] == arr[..., 1]).all() and (arr[..., 1] == arr[..., 2]).all()


def test_sketch_is_deterministic():
    src = _gradient()
    assert sketch(src).data == sketch(src).data


@pytest.mark.parametrize("intensity", [0.0, 0.1, 0.35, 0.5, 0.9, 1.0])
@pytest.mark.parametrize("size", [(1, 1), (7, 3), (13, 29), (41, 5)])
def test_pixelate_preserves_dimensions(intensity, size):
    src = _gradient(*size)
    assert pixelate(src, intensity).size == size
