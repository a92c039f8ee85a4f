import numpy as np

from pixels import PixelBuffer
from sharpen import sharpen, upscale


def _dot() -> PixelBuffer:
    """3x3 black with a gray center, semi-transparent."""
    arr = np.zeros((3, 3, 4), np.uint8)
    arr[1, 1, :3] = 100
    arr[..., 3] = 90
    return PixelBuffer.from_array(arr)


def test_zero_intensity_returns_input():
    buf = _dot()
    assert sharpen(buf, 0) is buf


def test_sharpen_blends_towards_kernel_response():
    out = sharpen(_dot(), 0.1).as_array()
    # 100 * 0.9 + 500 * 0.1
    assert out[1, 1, 0] == 140
    # neighbour response is -100, blended and clamped
    assert out[0, 1, 0] == 0
    assert out[0, 0, 0] == 0
    assert (out[..., 3] == 90).all()


def test_flat_image_is_unchanged():
    buf = PixelBuffer(4, 4, bytes((60, 70, 80, 255)) * 16)
    assert sharpen(buf, 1.0).data == buf.data


def test_upscale_dimensions_and_clamping():
    buf = PixelBuffer(3, 2, bytes((60, 70, 80, 255)) * 6)
    assert upscale(buf, 2).size == (6, 4)
    assert upscale(buf, 10).size == (12, 8)
    assert upscale(buf, 0.5).size == (3, 2)


def test_upscale_keeps_flat_color():
    buf = PixelBuffer(3, 2, bytes((60, 70, 80, 255)) * 6)
    arr = upscale(buf, 2, sharpness=0.4).as_array().astype(int)
    assert np.abs(arr[..., :3] - np.array([60, 70, 80])).max() <= 1
    assert (arr[..., 3] == 255).all()


def test_upscale_empty():
    assert upscale(PixelBuffer(0, 0, b""), 2).pixel_count == 0


def test_bright_values_clamp_to_255():
    arr = np.zeros((3, 3, 4), np.uint8)
    arr[1, 1, :3] = 255
    arr[..., 3] = 255
    out = sharpen(PixelBuffer.from_array(arr), 1.0).as_array()
    # 5 * 255 is clamped, not wrapped
    assert out[1, 1, :3].tolist() == [255, 255, 255]
    assert out[0, 1, :3].tolist() == [0, 0, 0]
