"""Post-processing that turns raw saliency logits into an 8-bit alpha mask."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import numbers
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

from .errors import InferenceFailure, InvalidThreshold, ModelOutputShapeMismatch
from .resize import resize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemovalOptions:
    """
    threshold: cutoff probability used in binary mode (0..1).
    binary: hard cutout with only 0/255 alpha when True.

    In soft mode the threshold is informational only: alpha keeps the full
    probability gradient.
    """

    threshold: float = 0.5
    binary: bool = False

    def __post_init__(self) -> None:
        self.validate()
        object.__setattr__(self, "threshold", float(self.threshold))

    def validate(self) -> None:
        threshold = self.threshold
        if isinstance(threshold, bool) or not isinstance(threshold, numbers.Real):
            raise InvalidThreshold(f"threshold must be a number, got {threshold!r}")
        if not math.isfinite(threshold) or not 0.0 <= threshold <= 1.0:
            raise InvalidThreshold(f"threshold must be within [0, 1], got {threshold}")


# Heat-map gradient stops: 0.0 = black, 1.0 = white.
HEATMAP_STOPS: Tuple[Tuple[float, Tuple[int, int, int]], ...] = (
    (0.00, (0, 0, 0)),
    (0.15, (0, 0, 64)),
    (0.30, (0, 0, 255)),
    (0.45, (128, 0, 192)),
    (0.60, (255, 0, 0)),
    (0.75, (255, 128, 0)),
    (0.90, (255, 255, 0)),
    (1.00, (255, 255, 255)),
)


def squeeze_output(raw: np.ndarray, input_size: int = 320) -> np.ndarray:
    """Drop unit batch/channel axes; anything but (size, size) is a mismatch."""
    raw = np.asarray(raw)
    squeezed = np.squeeze(raw) if raw.ndim > 2 else raw
    if squeezed.shape != (input_size, input_size):
        raise ModelOutputShapeMismatch(
            f"Expected model output squeezable to ({input_size}, {input_size}), got {raw.shape}"
        )
    return squeezed


def sigmoid(x: np.ndarray) -> np.ndarray:
    # Split by sign so large magnitudes never overflow exp().
    x = np.asarray(x, dtype=np.float64)
    out = np.empty_like(x)
    pos = x >= 0
    out[pos] = 1.0 / (1.0 + np.exp(-x[pos]))
    exp_x = np.exp(x[~pos])
    out[~pos] = exp_x / (1.0 + exp_x)
    return out


def probability_to_alpha(prob: np.ndarray, options: RemovalOptions) -> np.ndarray:
    """Apply the binary/soft edge policy and pack to uint8."""
    prob = np.asarray(prob, dtype=np.float64)
    if options.binary:
        return np.where(prob >= options.threshold, 255, 0).astype(np.uint8)
    alpha = np.floor(prob * 255.0 + 0.5)
    return np.clip(alpha, 0, 255).astype(np.uint8)


def finalize_mask(
    raw: np.ndarray,
    original_width: int,
    original_height: int,
    options: RemovalOptions,
    input_size: int = 320,
    debug_dir: Optional[Path] = None,
) -> np.ndarray:
    """
    Convert a raw (input_size, input_size) logit map into an
    (original_height, original_width) uint8 mask.

    Steps: sigmoid -> bilinear resize -> threshold / soft policy -> clamp.
    Accepts maps with extra unit axes, e.g. (1, 1, size, size).
    """
    options.validate()
    logits = squeeze_output(raw, input_size)
    if np.isnan(logits).any():
        raise InferenceFailure("Model output contains NaN values")

    prob = sigmoid(logits)
    prob = resize(prob, original_width, original_height)
    prob = np.clip(prob, 0.0, 1.0)

    alpha = probability_to_alpha(prob, options)
    logger.debug(
        "postprocess: %dx%d binary=%s threshold=%.3f opaque_fraction=%.4f",
        original_width,
        original_height,
        options.binary,
        options.threshold,
        float(np.mean(alpha == 255)) if alpha.size else 0.0,
    )
    if debug_dir is not None:
        maybe_dump_debug(prob, alpha, debug_dir)
    return alpha


def probability_heatmap(prob: np.ndarray, gamma: float = 1.2) -> np.ndarray:
    """Render a probability map as a false-colour RGB uint8 image."""
    g = float(np.clip(gamma, 0.2, 5.0))
    levels = np.clip(np.round(np.asarray(prob, dtype=np.float64) * 255.0), 0, 255).astype(np.intp)

    t = (np.arange(256, dtype=np.float64) / 255.0) ** g
    xs = [stop for stop, _ in HEATMAP_STOPS]
    lut = np.stack(
        [np.interp(t, xs, [color[c] for _, color in HEATMAP_STOPS]) for c in range(3)],
        axis=-1,
    )
    lut = np.round(lut).astype(np.uint8)
    return lut[levels]


def maybe_dump_debug(prob: np.ndarray, alpha_u8: np.ndarray, debug_dir: Path) -> None:
    """Write the probability heat-map and final mask when DEBUG is enabled."""
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
        heat = probability_heatmap(prob)
        cv2.imwrite(str(debug_dir / "heatmap.png"), cv2.cvtColor(heat, cv2.COLOR_RGB2BGR))
        cv2.imwrite(str(debug_dir / "alpha.png"), alpha_u8)
        logger.debug("postprocess: wrote debug outputs to %s", debug_dir)
    except Exception as exc:  # noqa: BLE001
        logger.warning("postprocess: failed to write debug outputs: %s", exc)
