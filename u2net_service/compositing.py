"""Merge the source colours with a computed alpha mask."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import cv2
import numpy as np
from PIL import Image

from .errors import InvalidImage
from .preprocessing import image_to_rgb_array


@dataclass(frozen=True)
class RemovalResult:
    image: Image.Image  # RGBA, source size
    mask: Image.Image  # L, source size

    def into_parts(self):
        return self.image, self.mask


def compose(source: Union[Image.Image, np.ndarray], mask: np.ndarray) -> RemovalResult:
    """
    Attach `mask` as the alpha channel of `source`.

    RGB values are copied unchanged; the mask is also returned as an
    independent grayscale image.
    """
    rgb = image_to_rgb_array(source)
    mask = np.asarray(mask)
    if mask.ndim != 2:
        raise InvalidImage(f"Mask must be single-channel, got shape {mask.shape}")
    if mask.shape != rgb.shape[:2]:
        raise InvalidImage(
            f"Mask size {mask.shape[1]}x{mask.shape[0]} does not match image size "
            f"{rgb.shape[1]}x{rgb.shape[0]}"
        )

    alpha = np.clip(mask, 0, 255).astype(np.uint8)
    rgba = np.dstack((rgb, alpha))
    return RemovalResult(
        image=Image.fromarray(rgba, mode="RGBA"),
        mask=Image.fromarray(alpha.copy(), mode="L"),
    )


def _smoothstep(edge0: float, edge1: float, x: np.ndarray) -> np.ndarray:
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def add_sticker_outline(
    rgba: Image.Image,
    stroke: float = 6.0,
    feather: float = 1.5,
    alpha_cutoff: int = 16,
) -> Image.Image:
    """
    Draw a soft black outline outside the cut-out subject.

    The outline is full strength up to `stroke` pixels from the subject and
    fades out over the next `feather` pixels. Subject pixels keep their
    colour and alpha.
    """
    arr = np.asarray(rgba.convert("RGBA"), dtype=np.float32)
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        return rgba.convert("RGBA")

    top_alpha = arr[..., 3] / 255.0
    inside = arr[..., 3] >= alpha_cutoff
    if not np.any(inside):
        return rgba.convert("RGBA")

    # distanceTransform measures distance to the nearest zero pixel.
    outside_u8 = np.where(inside, 0, 255).astype(np.uint8)
    dist = cv2.distanceTransform(outside_u8, cv2.DIST_L2, cv2.DIST_MASK_PRECISE)

    outline = np.where(dist <= stroke, 1.0, 1.0 - _smoothstep(stroke, stroke + feather, dist))
    outline = np.clip(np.round(outline * 255.0), 0, 255)
    outline = np.where(outline < 3, 0.0, outline) / 255.0
    outline = np.where(inside, 0.0, outline)

    # "over" compositing of the subject onto a black outline layer
    out_alpha = top_alpha + outline * (1.0 - top_alpha)
    safe = np.where(out_alpha > 0, out_alpha, 1.0)
    rgb = arr[..., :3] * top_alpha[..., None] / safe[..., None]
    rgb = np.where(out_alpha[..., None] > 0, rgb, 0.0)

    out = np.dstack((np.round(rgb), np.round(out_alpha * 255.0)))
    return Image.fromarray(np.clip(out, 0, 255).astype(np.uint8), mode="RGBA")
