"""PDF assembly on PyMuPDF.

``PdfEncoder`` is the document collaborator the assembler drives: it knows
how to create a document, add sized pages, embed and draw rasters, copy pages
out of an existing PDF and serialize the result. ``DocumentBuilder`` turns an
ordered list of items (rasters and donor PDFs) into PDF bytes for a given
resolution scale, which is exactly the ``build(scale)`` callable
``assembler.assemble`` expects.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pymupdf
from PIL import Image

from errors import DecodeError, InputShapeError
from pixels import PixelBuffer, encode_buffer, resample, scaled_size

log = logging.getLogger("pixeltools.documents")

__all__ = [
    "PAGE_PRESETS",
    "RasterAsset",
    "RasterItem",
    "PdfItem",
    "PdfEncoder",
    "DocumentBuilder",
    "page_count",
]

# Page sizes in PDF points; None keeps each raster's own (scaled) size.
PAGE_PRESETS: Dict[str, Optional[Tuple[float, float]]] = {
    "source": None,
    "a4-portrait": (595.28, 841.89),
    "a4-landscape": (841.89, 595.28),
}


@dataclass(frozen=True)
class RasterAsset:
    """An encoded image ready to be placed on pages."""
    data: bytes
    format: str
    width: int
    height: int


@dataclass(frozen=True)
class RasterItem:
    buffer: PixelBuffer


@dataclass(frozen=True)
class PdfItem:
    """Pages of an existing PDF; ``pages`` are 0-based indices, None for all."""
    data: bytes
    pages: Optional[Tuple[int, ...]] = None


Item = Union[RasterItem, PdfItem]


def _open_pdf(data: bytes) -> pymupdf.Document:
    try:
        return pymupdf.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise DecodeError(f"Cannot read PDF: {e}") from e


def page_count(data: bytes) -> int:
    doc = _open_pdf(data)
    try:
        return doc.page_count
    finally:
        doc.close()


class PdfEncoder:
    """Thin adapter over PyMuPDF documents and pages."""

    def __init__(self, image_format: str = "PNG", quality: int = 92) -> None:
        fmt = image_format.upper()
        fmt = "JPEG" if fmt == "JPG" else fmt
        if fmt not in ("PNG", "JPEG"):
            raise ValueError(f"Pages embed PNG or JPEG, got {image_format}")
        self.image_format = fmt
        self.quality = int(quality)

    def create_document(self) -> pymupdf.Document:
        return pymupdf.open()

    def add_page(self, doc: pymupdf.Document, width: float, height: float) -> pymupdf.Page:
        return doc.new_page(width=float(width), height=float(height))

    def encode(self, buffer: PixelBuffer) -> bytes:
        return encode_buffer(buffer, self.image_format, self.quality)

    def embed_raster_asset(self, doc: pymupdf.Document, encoded: bytes, fmt: str) -> RasterAsset:
        """Accept already-encoded PNG/JPEG bytes as they are."""
        fmt = fmt.upper()
        fmt = "JPEG" if fmt == "JPG" else fmt
        if fmt not in ("PNG", "JPEG"):
            raise ValueError(f"Only PNG or JPEG can be embedded, got {fmt}")
        try:
            with Image.open(io.BytesIO(encoded)) as probe:
                width, height = probe.size
        except (OSError, ValueError) as e:
            raise DecodeError(f"Cannot read {fmt} image: {e}") from e
        return RasterAsset(data=encoded, format=fmt, width=width, height=height)

    def draw_image(
        self,
        page: pymupdf.Page,
        image: Union[PixelBuffer, RasterAsset],
        x: float,
        y: float,
        width: float,
        height: float,
    ) -> None:
        if isinstance(image, PixelBuffer):
            asset = self.embed_raster_asset(page.parent, self.encode(image), self.image_format)
        else:
            asset = image
        rect = pymupdf.Rect(x, y, x + width, y + height)
        page.insert_image(rect, stream=asset.data, keep_proportion=False)

    def copy_pages(
        self,
        doc: pymupdf.Document,
        source: bytes,
        indices: Optional[Iterable[int]] = None,
    ) -> List[pymupdf.Page]:
        donor = _open_pdf(source)
        try:
            wanted = list(range(donor.page_count)) if indices is None else [int(i) for i in indices]
            pages: List[pymupdf.Page] = []
            for i in wanted:
                if not 0 <= i < donor.page_count:
                    raise IndexError(f"Page {i} not in a {donor.page_count}-page document")
                doc.insert_pdf(donor, from_page=i, to_page=i)
                pages.append(doc[doc.page_count - 1])
            return pages
        finally:
            donor.close()

    def serialize(self, doc: pymupdf.Document) -> bytes:
        return doc.tobytes(garbage=3, deflate=True)


@dataclass
class DocumentBuilder:
    """Ordered rasters and donor PDFs, rendered to PDF bytes at a given scale.

    A raster page is ``width * scale`` by ``height * scale`` points (one
    point per source pixel at scale 1). Below scale 1 the pixels themselves
    are downsampled before encoding, which is what makes a smaller scale
    produce a smaller file. With a preset page size the raster is fitted
    inside the page and centred.
    """
    items: Sequence[Item]
    preset: str = "source"
    encoder: PdfEncoder = field(default_factory=PdfEncoder)

    def __post_init__(self) -> None:
        if self.preset not in PAGE_PRESETS:
            raise ValueError(f"Unknown page preset '{self.preset}'. Available: {', '.join(PAGE_PRESETS)}")
        for item in self.items:
            if isinstance(item, RasterItem) and item.buffer.pixel_count == 0:
                raise InputShapeError("Cannot place an empty image on a page")

    @property
    def has_raster_content(self) -> bool:
        return any(isinstance(item, RasterItem) for item in self.items)

    def build(self, scale: float) -> bytes:
        if not scale > 0:
            raise ValueError(f"Scale must be positive, got {scale}")
        doc = self.encoder.create_document()
        try:
            for item in self.items:
                if isinstance(item, RasterItem):
                    self._add_raster(doc, item.buffer, scale)
                else:
                    self.encoder.copy_pages(doc, item.data, item.pages)
            data = self.encoder.serialize(doc)
        finally:
            doc.close()
        log.debug("build: scale=%.4f items=%d -> %d bytes", scale, len(self.items), len(data))
        return data

    def _add_raster(self, doc: pymupdf.Document, buffer: PixelBuffer, scale: float) -> None:
        target_w = buffer.width * scale
        target_h = buffer.height * scale
        pixels = buffer
        if scale < 1.0:
            pixels = resample(buffer, *scaled_size(buffer.width, buffer.height, scale), smooth=True)
        asset = self.encoder.embed_raster_asset(doc, self.encoder.encode(pixels), self.encoder.image_format)

        size = PAGE_PRESETS[self.preset]
        if size is None:
            page = self.encoder.add_page(doc, target_w, target_h)
            self.encoder.draw_image(page, asset, 0, 0, target_w, target_h)
            return
        page_w, page_h = size
        ratio = min(page_w / target_w, page_h / target_h)
        draw_w = target_w * ratio
        draw_h = target_h * ratio
        page = self.encoder.add_page(doc, page_w, page_h)
        self.encoder.draw_image(page, asset, (page_w - draw_w) / 2, (page_h - draw_h) / 2, draw_w, draw_h)
