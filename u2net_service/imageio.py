"""
Image decoding and encoding helpers built on Pillow.

Only these helpers touch files or encoded bytes; the pipeline itself works on
in-memory images.
"""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from .errors import InvalidImage, UnsupportedFormat

_FORMATS = {"png": "PNG", "jpg": "JPEG", "jpeg": "JPEG", "webp": "WEBP"}


def load_image(path: Union[str, Path]) -> Image.Image:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    return load_image_from_bytes(path.read_bytes())


def load_image_from_bytes(image_bytes: bytes) -> Image.Image:
    """Decode bytes into an RGB image."""
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except Exception as exc:  # noqa: BLE001
        raise InvalidImage("Invalid image data") from exc
    return image.convert("RGB")


def _format_for(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if not ext:
        raise UnsupportedFormat("unknown")
    if ext not in _FORMATS:
        raise UnsupportedFormat(ext)
    return _FORMATS[ext]


def flatten_on_white(image: Image.Image) -> Image.Image:
    """Blend RGBA over a white background: `c * a + 255 * (1 - a)`."""
    rgba = np.asarray(image.convert("RGBA"), dtype=np.float32)
    alpha = rgba[..., 3:4] / 255.0
    rgb = rgba[..., :3] * alpha + 255.0 * (1.0 - alpha)
    return Image.fromarray(np.clip(np.round(rgb), 0, 255).astype(np.uint8), mode="RGB")


def save_image(image: Image.Image, path: Union[str, Path], quality: int = 95) -> None:
    """
    Save `image` choosing the codec from the file extension.

    PNG and WebP keep transparency; JPEG is flattened onto white.
    """
    path = Path(path)
    fmt = _format_for(path)
    if not 1 <= quality <= 100:
        raise ValueError("quality must be within 1..100")
    path.parent.mkdir(parents=True, exist_ok=True)

    if fmt == "JPEG":
        flatten_on_white(image).save(path, format="JPEG", quality=quality)
    elif fmt == "WEBP":
        image.save(path, format="WEBP", lossless=True)
    else:
        image.save(path, format="PNG")


def mask_to_transparent(mask: Image.Image) -> Image.Image:
    """White RGBA image whose alpha is the mask value."""
    alpha = np.asarray(mask.convert("L"), dtype=np.uint8)
    rgba = np.empty(alpha.shape + (4,), dtype=np.uint8)
    rgba[..., :3] = 255
    rgba[..., 3] = alpha
    return Image.fromarray(rgba, mode="RGBA")


def save_mask(mask: Image.Image, path: Union[str, Path], quality: int = 95) -> None:
    save_image(mask_to_transparent(mask), path, quality=quality)


def mask_path_for(output_path: Union[str, Path]) -> Path:
    """`out/cat.png` -> `out/cat_mask.png`."""
    output_path = Path(output_path)
    stem = output_path.stem or "output"
    ext = output_path.suffix.lstrip(".") or "png"
    return output_path.parent / f"{stem}_mask.{ext}"


def encode_png(image: Image.Image) -> bytes:
    buf = BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()
