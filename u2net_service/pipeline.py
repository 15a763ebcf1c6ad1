"""
High-level background-removal pipeline.

`remove_background` is the main entry point used by the HTTP API and the
local CLI. It keeps orchestration simple:
image -> preprocessing -> network -> post-processing -> compositing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

from . import config
from .compositing import RemovalResult, add_sticker_outline, compose
from .imageio import encode_png, load_image_from_bytes
from .model_loader import ModelHandle, get_model
from .postprocessing import RemovalOptions, finalize_mask, squeeze_output
from .preprocessing import image_to_rgb_array, prepare_tensor

logger = logging.getLogger(__name__)


def remove_background(
    image: Union[Image.Image, np.ndarray],
    options: Optional[RemovalOptions] = None,
    model: Optional[ModelHandle] = None,
    debug_dir: Optional[Path] = None,
) -> RemovalResult:
    """
    Cut the salient subject out of `image`.

    `model` defaults to the shared handle from `get_model()`; pass an explicit
    handle to use a different network. Both outputs match the source size.

    Raises:
        InvalidImage, InvalidThreshold, ModelOutputShapeMismatch, InferenceFailure
    """
    options = options or RemovalOptions()
    options.validate()
    rgb = image_to_rgb_array(image)
    height, width = rgb.shape[:2]

    model = model or get_model()
    tensor = prepare_tensor(rgb, normalization=model.normalization, input_size=model.input_size)
    raw = squeeze_output(model.run(tensor), model.input_size)

    mask = finalize_mask(raw, width, height, options, input_size=model.input_size, debug_dir=debug_dir)
    logger.debug("pipeline: processed %dx%d image with %s", width, height, model.name)
    return compose(rgb, mask)


def process_image_bytes(
    image_bytes: bytes,
    options: Optional[RemovalOptions] = None,
    sticker_border: bool = False,
    model: Optional[ModelHandle] = None,
) -> RemovalResult:
    """
    Full pipeline from encoded image bytes to a `RemovalResult`.

    Raises:
        ValueError: when input is invalid (`InvalidImage`, `InvalidThreshold`).
    """
    settings = config.get_settings()
    options = options or RemovalOptions(threshold=settings.default_threshold, binary=settings.default_binary)
    image = load_image_from_bytes(image_bytes)

    debug_dir = Path(settings.debug_output_dir) if settings.debug else None
    result = remove_background(image, options, model=model, debug_dir=debug_dir)
    if sticker_border:
        result = RemovalResult(image=add_sticker_outline(result.image), mask=result.mask)
    return result
