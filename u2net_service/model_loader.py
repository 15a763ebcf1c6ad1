"""
Model loading utilities for U2-Net style saliency networks.

The loader:
 - opens `.onnx` files with ONNX Runtime and anything else as TorchScript,
 - wraps the engine in a `ModelHandle` carrying its normalization profile,
 - keeps a single shared instance for the process,
 - exposes `get_model()` for inference callers.
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Callable, Optional

import numpy as np
import onnxruntime as ort
import torch

from . import config
from .config import IMAGENET, Normalization
from .errors import InferenceFailure, ModelNotFound

logger = logging.getLogger(__name__)

_MODEL: Optional["ModelHandle"] = None
# Prefer CUDA -> Apple MPS -> CPU to support both GPU servers and local macOS dev.
if torch.cuda.is_available():
    _DEVICE = torch.device("cuda")
elif torch.backends.mps.is_available():  # type: ignore[attr-defined]
    _DEVICE = torch.device("mps")
else:
    _DEVICE = torch.device("cpu")
_LOCK = Lock()


def get_device() -> torch.device:
    """Return the TorchScript inference device (prefers CUDA when available)."""
    return _DEVICE


class ModelHandle:
    """
    A loaded network shared read-only across pipeline calls.

    `runner` takes a (1, 3, S, S) float32 batch and returns the first network
    output as a numpy array. With `serialize=True` every call holds a lock,
    for engines that do not tolerate concurrent runs.
    """

    def __init__(
        self,
        runner: Callable[[np.ndarray], np.ndarray],
        normalization: Normalization = IMAGENET,
        input_size: int = 320,
        serialize: bool = False,
        name: str = "model",
    ):
        self._runner = runner
        self.normalization = normalization
        self.input_size = input_size
        self.name = name
        self._lock = Lock() if serialize else None

    def run(self, tensor: np.ndarray) -> np.ndarray:
        """Run a (3, S, S) tensor through the network and return its raw output."""
        batch = np.ascontiguousarray(tensor, dtype=np.float32)[None, ...]
        try:
            if self._lock is not None:
                with self._lock:
                    output = self._runner(batch)
            else:
                output = self._runner(batch)
        except InferenceFailure:
            raise
        except Exception as exc:
            raise InferenceFailure(f"{self.name} inference failed: {exc}") from exc
        return np.asarray(output, dtype=np.float32)


def _first_output(outputs):
    # U2-Net exports return the fused map first, followed by side outputs.
    while isinstance(outputs, (list, tuple)):
        if not outputs:
            raise InferenceFailure("Model returned no outputs")
        outputs = outputs[0]
    return outputs


def _onnx_runner(model_path: Path, threads: int) -> Callable[[np.ndarray], np.ndarray]:
    options = ort.SessionOptions()
    options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    options.intra_op_num_threads = threads
    session = ort.InferenceSession(str(model_path), sess_options=options, providers=["CPUExecutionProvider"])
    input_name = session.get_inputs()[0].name

    def run(batch: np.ndarray) -> np.ndarray:
        return _first_output(session.run(None, {input_name: batch}))

    return run


def _torchscript_runner(model_path: Path) -> Callable[[np.ndarray], np.ndarray]:
    model = torch.jit.load(str(model_path), map_location=_DEVICE)
    if hasattr(model, "eval"):
        model.eval()

    def run(batch: np.ndarray) -> np.ndarray:
        with torch.no_grad():
            output = _first_output(model(torch.from_numpy(batch).to(_DEVICE)))
        return output.detach().float().cpu().numpy()

    return run


def load_model(
    model_path: Path,
    normalization: Normalization = IMAGENET,
    input_size: int = 320,
    threads: int = 4,
    serialize: bool = False,
) -> ModelHandle:
    """Load the network at `model_path` into a new `ModelHandle`."""
    model_path = Path(model_path)
    if not model_path.exists():
        raise ModelNotFound(f"Model file not found at {model_path}")

    if model_path.suffix.lower() == ".onnx":
        logger.info("Loading ONNX model from %s", model_path)
        runner = _onnx_runner(model_path, threads)
    else:
        logger.info("Loading TorchScript model from %s on %s", model_path, _DEVICE)
        runner = _torchscript_runner(model_path)

    return ModelHandle(
        runner,
        normalization=normalization,
        input_size=input_size,
        serialize=serialize,
        name=model_path.name,
    )


def get_model() -> ModelHandle:
    """
    Return the process-wide model handle.

    The model is loaded once on first access and reused across requests
    to avoid re-initialization costs.
    """
    global _MODEL
    if _MODEL is not None:
        return _MODEL

    with _LOCK:
        if _MODEL is None:
            settings = config.get_settings()
            _MODEL = load_model(
                settings.u2net_model_path,
                normalization=config.resolve_normalization(settings),
                input_size=settings.u2net_input_size,
                threads=settings.u2net_inference_threads,
                serialize=settings.serialize_inference,
            )
            logger.info("Model %s loaded (variant=%s)", _MODEL.name, settings.u2net_model_variant)
    return _MODEL


def reset_model() -> None:
    """Drop the shared handle so the next `get_model()` reloads it."""
    global _MODEL
    with _LOCK:
        _MODEL = None
