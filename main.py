from __future__ import annotations

import argparse
import hashlib
import io
import logging
import mimetypes
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse, unquote

import requests
from PIL import Image, ImageOps

# Import registry & transforms (registration happens at import time)
from styles import REGISTRY
import cutout  # noqa: F401
import sharpen  # noqa: F401

from assembler import assemble, describe_outcome
from collage import compose_vertical
from documents import PAGE_PRESETS, DocumentBuilder, PdfEncoder, PdfItem, RasterItem
from errors import DecodeError, ResourceExhaustedError
from pixels import PixelBuffer, encode_buffer

# =============== Logging ===============
log = logging.getLogger("pixeltools")


def setup_logging(verbosity: int = 0) -> None:
    level = [logging.WARNING, logging.INFO, logging.DEBUG][min(verbosity, 2)]
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )


# =============== Core: Fetcher & Loader ===============
class FileFetcher:
    """Fetch bytes from http(s) / file:// / local path with a tiny, safe cache."""

    def __init__(self, cache_dir: Optional[Path] = None, timeout: float = 20.0) -> None:
        self.timeout = timeout
        self.cache_dir = cache_dir or Path(tempfile.gettempdir()) / "pixeltools_cache"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "pixeltools/1.0 (+https://local)"})

    def fetch(self, src: str) -> Tuple[bytes, Optional[str]]:
        parsed = urlparse(src)
        scheme = (parsed.scheme or "").lower()
        if scheme in ("http", "https"):
            return self._fetch_http_cached(src)
        if scheme == "file":
            local_path = unquote(parsed.path)
            if os.name == "nt" and local_path.startswith("/"):
                local_path = local_path[1:]
            return self._fetch_local(local_path)
        if scheme == "" or (os.name == "nt" and len(scheme) == 1):
            return self._fetch_local(src)
        raise ValueError(f"Unsupported URL scheme: {scheme}")

    def _cache_key(self, url: str) -> Path:
        h = hashlib.sha256(url.encode("utf-8")).hexdigest()[:32]
        return self.cache_dir / f"{h}.bin"

    def _fetch_http_cached(self, url: str) -> Tuple[bytes, Optional[str]]:
        key = self._cache_key(url)
        if key.exists():
            try:
                raw = key.read_bytes()
            except OSError as e:
                log.warning("Cache read failed for %s: %s", key.name, e)
            else:
                log.info("Cache hit: %s", key.name)
                return raw, mimetypes.guess_type(url)[0]
        log.info("Fetching: %s", url)
        r = self._session.get(url, timeout=self.timeout)
        r.raise_for_status()
        raw = r.content
        try:
            key.write_bytes(raw)
        except OSError as e:
            log.warning("Cache write failed for %s: %s", key.name, e)
        return raw, r.headers.get("Content-Type")

    def _fetch_local(self, path_str: str) -> Tuple[bytes, Optional[str]]:
        p = Path(path_str)
        if not p.exists() or not p.is_file():
            raise FileNotFoundError(f"Input file not found: {p}")
        raw = p.read_bytes()
        return raw, mimetypes.guess_type(p.name)[0]


class ImageLoader:
    """Decode bytes → RGBA PixelBuffer. Optional max-size for speed/RAM."""

    def load(self, raw: bytes, content_type: Optional[str] = None, *, max_size: Optional[int] = None) -> PixelBuffer:
        try:
            img = Image.open(io.BytesIO(raw))
            img.load()
        except MemoryError as e:
            raise ResourceExhaustedError(f"Image too large to decode: {e}") from e
        except Exception as e:
            raise DecodeError(f"Failed to decode image ({content_type or 'unknown type'}): {e}") from e

        img = ImageOps.exif_transpose(img)
        if max_size:
            img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
        return PixelBuffer.from_image(img)


def _is_pdf(raw: bytes, content_type: Optional[str]) -> bool:
    if content_type and content_type.lower().startswith("application/pdf"):
        return True
    return raw[:5] == b"%PDF-"


# =============== Small CLI helpers ===============
def _coerce(v: str) -> Any:
    if v.isdigit():
        return int(v)
    try:
        return float(v)
    except ValueError:
        low = v.lower()
        if low in ("true", "false"):
            return low == "true"
    return v


def _parse_kv_pairs(pairs: Optional[List[str]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if not pairs:
        return out
    for p in pairs:
        if "=" in p:
            k, v = p.split("=", 1)
            out[k.strip()] = _coerce(v.strip())
    return out


_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|k|mb|m)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {None: 1, "b": 1, "k": 1024, "kb": 1024, "m": 1024 * 1024, "mb": 1024 * 1024}


def _parse_size(s: str) -> int:
    """'0', '800000', '500KB', '2MB' → bytes."""
    m = _SIZE_RE.match(s)
    if not m:
        raise argparse.ArgumentTypeError(f"Invalid size {s!r}, expected e.g. 500KB or 2MB")
    unit = m.group(2).lower() if m.group(2) else None
    return int(float(m.group(1)) * _SIZE_UNITS[unit])


def _positive_float(s: str) -> float:
    try:
        v = float(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number {s!r}") from None
    if not v > 0:
        raise argparse.ArgumentTypeError(f"Must be positive, got {s}")
    return v


def _infer_format_from_path(p: Path) -> str:
    ext = p.suffix.lower()
    if ext in (".jpg", ".jpeg"):
        return "JPEG"
    if ext == ".png":
        return "PNG"
    if ext == ".webp":
        return "WEBP"
    return "PNG"


def _save_buffer(buf: PixelBuffer, out: Path, quality: int) -> None:
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(encode_buffer(buf, _infer_format_from_path(out), quality))
    log.info("Saved %s (%dx%d)", out, buf.width, buf.height)


def _load_images(sources: List[str], max_size: Optional[int]) -> List[PixelBuffer]:
    fetcher = FileFetcher()
    loader = ImageLoader()
    buffers = []
    for src in sources:
        raw, ctype = fetcher.fetch(src)
        buffers.append(loader.load(raw, ctype, max_size=max_size))
    return buffers


# ======= Pipeline helpers (multi-transform) =======
def _parse_pipeline(spec: Optional[str]) -> List[str]:
    if not spec:
        raise ValueError("Provide --pipeline 't1|t2|...'. Example: cutout|sharpen")
    stages = [s.strip().lower() for s in spec.split("|") if s.strip()]
    if not stages:
        raise ValueError("Empty --pipeline. Example: cutout|sharpen")
    return stages


def _split_stage_extras(stages: List[str], raw_extras: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Extras can be:
      - Unprefixed:        key=val          (applies to ALL stages unless overridden)
      - By name:           name.key=val     (applies to the stage whose name matches)
      - By index (0-based) 0.key=val        (applies to stage at index 0)
      - 'all.key=val'      applies to all (alias of unprefixed)
    Merge order per stage: (unprefixed/all) -> (by-name) -> (by-index)
    """
    global_extras: Dict[str, Any] = {}
    name_targets: Dict[str, Dict[str, Any]] = {}
    index_targets: Dict[int, Dict[str, Any]] = {}

    for k, v in raw_extras.items():
        if "." not in k:
            global_extras[k] = v
            continue
        prefix, key = k.split(".", 1)
        prefix = prefix.strip().lower()
        key = key.strip()
        if prefix == "all":
            global_extras[key] = v
        elif prefix.isdigit():
            idx = int(prefix)
            if 0 <= idx < len(stages):
                index_targets.setdefault(idx, {})[key] = v
        else:
            name_targets.setdefault(prefix, {})[key] = v

    stage_extras = []
    for i, name in enumerate(stages):
        merged: Dict[str, Any] = {}
        merged.update(global_extras)
        merged.update(name_targets.get(name, {}))
        merged.update(index_targets.get(i, {}))
        stage_extras.append(merged)
    return stage_extras


def _run_pipeline(buf: PixelBuffer, stages: List[str], stage_extras: List[Dict[str, Any]]) -> PixelBuffer:
    out = buf
    for i, name in enumerate(stages):
        transform = REGISTRY.create(name)
        extras = stage_extras[i]
        log.info("Stage %d/%d: %s extras=%s", i + 1, len(stages), name, {k: extras[k] for k in sorted(extras)})
        out = transform.apply(out, **extras)
    return out


def _check_stages(stages: List[str]) -> None:
    unknown = [s for s in stages if s not in REGISTRY.names()]
    if unknown:
        raise SystemExit(f"Unknown transform(s) in pipeline: {', '.join(unknown)}")


# =============== CLI ===============
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Raster image tools: cutout, sharpen/upscale, styles, collage, image → PDF")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v, -vv).")

    sub = p.add_subparsers(dest="cmd", required=True)

    lp = sub.add_parser("list", help="List transforms.")
    lp.set_defaults(func=cmd_list)

    rp = sub.add_parser("run", help="Run one or more transforms (pipeline) on an image.")
    rp.add_argument("--url", required=True, help="HTTP(S) URL, file:// URL, or local path.")
    rp.add_argument("--pipeline", required=True, help="Pipe transforms as 't1|t2|t3'. (Quote on PowerShell)")
    rp.add_argument("--out", type=Path, required=True, help="Output image file (png/jpg/webp).")
    rp.add_argument("--quality", type=int, default=92, help="JPEG/WebP quality (1-100).")
    rp.add_argument("--max-size", type=int, default=None, help="Downscale input longest side before processing.")
    rp.add_argument(
        "--extra",
        nargs="*",
        help=(
            "Extra k=v pairs. Unprefixed apply to all stages. "
            "Use name.key=val or index.key=val for per-stage (e.g., cutout.tolerance=45 or 1.intensity=0.6)."
        ),
    )
    rp.set_defaults(func=cmd_run)

    cp = sub.add_parser("collage", help="Stack images vertically at a common width.")
    cp.add_argument("inputs", nargs="+", help="Images in top-to-bottom order (URLs or paths).")
    cp.add_argument("--out", type=Path, required=True, help="Output image file (png/jpg/webp).")
    cp.add_argument("--quality", type=int, default=90, help="JPEG/WebP quality (1-100).")
    cp.add_argument("--max-size", type=int, default=None, help="Downscale each input's longest side first.")
    cp.set_defaults(func=cmd_collage)

    dp = sub.add_parser("pdf", help="Assemble images and PDFs into one PDF, optionally under a size limit.")
    dp.add_argument("inputs", nargs="+", help="Images and/or PDFs in page order (URLs or paths).")
    dp.add_argument("--out", type=Path, required=True, help="Output PDF file.")
    dp.add_argument("--scale", type=_positive_float, default=1.0, help="Resolution scale for image pages (e.g. 0.5-2).")
    dp.add_argument("--budget", type=_parse_size, default=0, help="Size limit, e.g. 500KB or 2MB (0 = none).")
    dp.add_argument("--preset", choices=list(PAGE_PRESETS), default="source", help="Page size for image pages.")
    dp.add_argument("--image-format", choices=["png", "jpeg"], default="png", help="Encoding of image pages.")
    dp.add_argument("--quality", type=int, default=92, help="JPEG quality (1-100).")
    dp.add_argument("--max-size", type=int, default=None, help="Downscale each image's longest side first.")
    dp.set_defaults(func=cmd_pdf)

    bp = sub.add_parser("bench", help="Micro-benchmark a pipeline.")
    bp.add_argument("--url", required=True)
    bp.add_argument("--pipeline", required=True, help="Pipe transforms as 't1|t2|t3'.")
    bp.add_argument("--runs", type=int, default=3)
    bp.add_argument("--extra", nargs="*")
    bp.set_defaults(func=cmd_bench)

    return p


# =============== Commands ===============
def cmd_list(_args: argparse.Namespace) -> int:
    print("Available transforms:", ", ".join(REGISTRY.names()) or "(none)")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    try:
        # Parse pipeline first (so errors show early)
        stages = _parse_pipeline(args.pipeline)
        _check_stages(stages)
        stage_extras = _split_stage_extras(stages, _parse_kv_pairs(args.extra))

        src = _load_images([args.url], args.max_size)[0]
        out = _run_pipeline(src, stages, stage_extras)
        _save_buffer(out, args.out, args.quality)
        return 0
    except MemoryError:
        log.error("Out of memory: lower --max-size or the upscale factor.")
        return 1
    except Exception as e:
        log.exception("Failed: %s", e)
        return 1


def cmd_collage(args: argparse.Namespace) -> int:
    try:
        buffers = _load_images(args.inputs, args.max_size)
        _save_buffer(compose_vertical(buffers), args.out, args.quality)
        return 0
    except MemoryError:
        log.error("Out of memory: lower --max-size or use fewer images.")
        return 1
    except Exception as e:
        log.exception("Collage failed: %s", e)
        return 1


def cmd_pdf(args: argparse.Namespace) -> int:
    try:
        fetcher = FileFetcher()
        loader = ImageLoader()
        items = []
        for src in args.inputs:
            raw, ctype = fetcher.fetch(src)
            if _is_pdf(raw, ctype):
                items.append(PdfItem(raw))
            else:
                items.append(RasterItem(loader.load(raw, ctype, max_size=args.max_size)))

        builder = DocumentBuilder(
            items,
            preset=args.preset,
            encoder=PdfEncoder(args.image_format, args.quality),
        )
        result = assemble(builder.build, args.scale, args.budget, builder.has_raster_content)

        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_bytes(result.data)
        log.info("Saved %s (%d bytes, scale %.3f, %d build(s))", args.out, result.size, result.scale, result.builds)
        print(describe_outcome(result))
        return 0
    except MemoryError:
        log.error("Out of memory: lower --max-size or --scale.")
        return 1
    except Exception as e:
        log.exception("PDF failed: %s", e)
        return 1


def cmd_bench(args: argparse.Namespace) -> int:
    try:
        src = _load_images([args.url], None)[0]

        stages = _parse_pipeline(args.pipeline)
        _check_stages(stages)
        stage_extras = _split_stage_extras(stages, _parse_kv_pairs(args.extra))

        times = []
        for _ in range(max(1, args.runs)):
            t0 = time.perf_counter()
            _ = _run_pipeline(src, stages, stage_extras)
            times.append(time.perf_counter() - t0)
        avg = sum(times) / len(times)
        print(
            f"{'|'.join(stages)}: {args.runs} run(s), avg {avg*1000:.2f} ms, "
            f"min {min(times)*1000:.2f} ms, max {max(times)*1000:.2f} ms"
        )
        return 0
    except Exception as e:
        log.exception("Bench failed: %s", e)
        return 1


# =============== Entry ===============
def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
