"""
Typed failures raised by the background-removal pipeline.

Caller mistakes (bad image, bad options) subclass `ValueError` so the HTTP
layer can keep mapping them to 400 responses.
"""

from __future__ import annotations


class RembgError(Exception):
    """Base class for every pipeline failure."""


class InvalidImage(RembgError, ValueError):
    """Source image is empty or could not be decoded."""


class InvalidThreshold(RembgError, ValueError):
    """Threshold outside [0.0, 1.0]."""


class ModelOutputShapeMismatch(RembgError):
    """The network returned a map that does not squeeze to (size, size)."""


class InferenceFailure(RembgError):
    """Opaque failure surfaced from the inference engine."""


class ModelNotFound(RembgError, FileNotFoundError):
    pass


class UnsupportedFormat(RembgError, ValueError):
    pass
