"""Error types raised by the pixel engine and its collaborators."""

from __future__ import annotations


class PixelToolsError(Exception):
    """Base error for pixeltools."""


class InputShapeError(PixelToolsError, ValueError):
    """Buffer data does not match its declared dimensions, or a zero-width collage input."""


class DecodeError(PixelToolsError, ValueError):
    """Input bytes could not be decoded into pixels or pages."""


class ResourceExhaustedError(PixelToolsError, MemoryError):
    """A buffer allocation failed; the caller may retry with a smaller input."""
