"""
Bilinear resampling shared by preprocessing and postprocessing.

Corner pixels of the source map onto corner pixels of the target
(`align_corners=True`), so an output coordinate `x` samples the source at
`x * (src_w - 1) / (dst_w - 1)`. Downscaling to the network size and
upscaling its output back use the same mapping.
"""

from __future__ import annotations

import logging

import numpy as np
import torch
import torch.nn.functional as F

logger = logging.getLogger(__name__)


def resize(array: np.ndarray, target_width: int, target_height: int) -> np.ndarray:
    """
    Resize an (H, W) or (H, W, C) array to (target_height, target_width[, C]).

    Integer inputs are rounded half-up and clipped back to their dtype range;
    float inputs keep their dtype. Empty sources constant-fill with zeros and
    empty targets return an empty array of the right shape.
    """
    if array.ndim not in (2, 3):
        raise ValueError(f"resize expects a 2D or 3D array, got shape {array.shape}")
    if target_width < 0 or target_height < 0:
        raise ValueError("target dimensions must be non-negative")

    src_h, src_w = array.shape[:2]
    out_shape = (target_height, target_width) + array.shape[2:]

    if (src_h, src_w) == (target_height, target_width):
        return array.copy()
    if target_height == 0 or target_width == 0 or src_h == 0 or src_w == 0:
        return np.zeros(out_shape, dtype=array.dtype)

    planar = array if array.ndim == 3 else array[..., None]
    # (H, W, C) -> (1, C, H, W); float64 keeps 8-bit rounding exact.
    tensor = torch.from_numpy(np.ascontiguousarray(planar, dtype=np.float64)).permute(2, 0, 1).unsqueeze(0)
    with torch.no_grad():
        scaled = F.interpolate(
            tensor,
            size=(target_height, target_width),
            mode="bilinear",
            align_corners=True,
        )
    out = scaled[0].permute(1, 2, 0).numpy()
    if array.ndim == 2:
        out = out[..., 0]

    if np.issubdtype(array.dtype, np.integer):
        info = np.iinfo(array.dtype)
        out = np.clip(np.floor(out + 0.5), info.min, info.max)
    logger.debug("resize: %dx%d -> %dx%d", src_w, src_h, target_width, target_height)
    return out.astype(array.dtype)
