"""
U2-Net background removal package.

Exposes reusable primitives for loading the model, preprocessing images,
post-processing the saliency map, compositing the cut-out, and serving the
FastAPI application.
"""

from .compositing import RemovalResult
from .errors import (
    InferenceFailure,
    InvalidImage,
    InvalidThreshold,
    ModelOutputShapeMismatch,
    RembgError,
)
from .pipeline import remove_background
from .postprocessing import RemovalOptions

__all__ = [
    "InferenceFailure",
    "InvalidImage",
    "InvalidThreshold",
    "ModelOutputShapeMismatch",
    "RembgError",
    "RemovalOptions",
    "RemovalResult",
    "remove_background",
]
