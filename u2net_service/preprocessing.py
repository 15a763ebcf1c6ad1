"""
Image preprocessing for U2-Net style saliency networks.

The network is trained on stretched square inputs, so every source image is
resized straight to `input_size x input_size` without letterboxing, then
normalized per channel and laid out channel-major.
"""

from __future__ import annotations

from typing import Union

import numpy as np
from PIL import Image

from .config import IMAGENET, Normalization
from .errors import InvalidImage
from .resize import resize

DEFAULT_INPUT_SIZE = 320


def image_to_rgb_array(image: Union[Image.Image, np.ndarray]) -> np.ndarray:
    """Return an (H, W, 3) uint8 view of `image`, dropping any alpha channel."""
    if isinstance(image, Image.Image):
        if image.width == 0 or image.height == 0:
            raise InvalidImage(f"Image has zero size: {image.width}x{image.height}")
        return np.asarray(image.convert("RGB"), dtype=np.uint8)

    array = np.asarray(image)
    if array.ndim == 2:
        array = np.repeat(array[..., None], 3, axis=2)
    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise InvalidImage(f"Expected an RGB or RGBA pixel grid, got shape {array.shape}")
    if array.shape[0] == 0 or array.shape[1] == 0:
        raise InvalidImage(f"Image has zero size: {array.shape[1]}x{array.shape[0]}")
    if array.dtype != np.uint8:
        raise InvalidImage(f"Expected 8-bit channels, got {array.dtype}")
    return array[..., :3]


def prepare_tensor(
    image: Union[Image.Image, np.ndarray],
    normalization: Normalization = IMAGENET,
    input_size: int = DEFAULT_INPUT_SIZE,
) -> np.ndarray:
    """
    Convert a source image into the network's (3, input_size, input_size) float32 tensor.

    Raises:
        InvalidImage: when the image has zero width or height.
    """
    rgb = image_to_rgb_array(image)
    resized = resize(rgb, input_size, input_size)

    mean = np.asarray(normalization.mean, dtype=np.float32)
    std = np.asarray(normalization.std, dtype=np.float32)
    im_np = resized.astype(np.float32) / 255.0
    im_np = (im_np - mean) / std
    im_np = np.transpose(im_np, (2, 0, 1))  # HWC -> CHW
    return np.ascontiguousarray(im_np, dtype=np.float32)
