"""Tests for chroma-key cutout."""

import pytest

import cutout  # noqa: F401  (registers "cutout")
from cutout import affected_count, chroma_key, sample_color
from pixels import Color, PixelBuffer
from styles import REGISTRY


def _row(*pixels) -> PixelBuffer:
    return PixelBuffer(len(pixels), 1, bytes(v for p in pixels for v in p))


def _alphas(buf: PixelBuffer) -> list:
    return buf.as_array()[..., 3].ravel().tolist()


def test_hard_cut_clears_matching_pixels_only():
    src = _row((0, 255, 0, 255), (255, 0, 0, 255))
    out = chroma_key(src, (0, 255, 0), tolerance=30)
    assert _alphas(out) == [0, 255]
    # RGB is untouched
    assert out.pixel(0, 0)[:3] == (0, 255, 0)
    # and the input is not modified
    assert _alphas(src) == [255, 255]


def test_no_reference_returns_unmodified_copy():
    src = _row((1, 2, 3, 4))
    out = chroma_key(src, None)
    assert out is not src
    assert out.data == src.data


def test_tolerance_is_clamped_to_120():
    src = _row((100, 0, 0, 255), (130, 0, 0, 255))
    out = chroma_key(src, (0, 0, 0), tolerance=500)
    assert _alphas(out) == [0, 255]
    assert affected_count(src, (0, 0, 0), 500) == 1


def test_feather_scales_alpha_with_distance():
    src = _row((0, 0, 0, 255), (50, 0, 0, 255), (100, 0, 0, 255), (150, 0, 0, 200))
    out = chroma_key(src, (0, 0, 0), tolerance=100, feather=10)
    # 255 * 50/100 = 127.5 rounds to the even 128; outside tolerance stays as it was
    assert _alphas(out) == [0, 128, 255, 200]


def test_zero_tolerance_only_keys_exact_color():
    src = _row((5, 5, 5, 255), (5, 5, 6, 255))
    out = chroma_key(src, (5, 5, 5), tolerance=0)
    assert _alphas(out) == [0, 255]


def test_empty_buffer():
    empty = PixelBuffer(0, 0, b"")
    assert chroma_key(empty, (0, 0, 0)).pixel_count == 0
    assert affected_count(empty, (0, 0, 0), 30) == 0
    assert sample_color(empty, 0, 0) is None


def test_sample_color_clamps_coordinates():
    src = _row((9, 8, 7, 255), (1, 1, 1, 255))
    assert sample_color(src, -5, 99) == Color(9, 8, 7)
    assert sample_color(src, 10, 0) == Color(1, 1, 1)


@pytest.mark.parametrize("extras", [{"color": "#00ff00"}, {"color": "0,255,0"}, {}])
def test_registered_transform(extras):
    src = _row((0, 255, 0, 255), (255, 0, 0, 255))
    out = REGISTRY.create("cutout").apply(src, tolerance=10, **extras)
    assert _alphas(out) == [0, 255]


def test_larger_tolerance_never_keys_fewer_pixels():
    src = PixelBuffer(16, 1, bytes(v for i in range(16) for v in (i * 8, 0, 0, 255)))
    counts = [affected_count(src, (0, 0, 0), tol) for tol in (0, 10, 40, 80, 120)]
    assert counts == sorted(counts)
    assert counts[0] == 1
    assert counts[-1] == 16
