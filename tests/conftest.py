"""Shared fixtures: an in-process stand-in for the saliency network."""

from __future__ import annotations

import math

import numpy as np
import pytest

from u2net_service.model_loader import ModelHandle


def logit(p: float) -> float:
    return math.log(p / (1.0 - p))


class RecordingRunner:
    """Returns a constant logit map and remembers every batch it was given."""

    def __init__(self, value: float, shape=(1, 1, 320, 320)):
        self.value = value
        self.shape = shape
        self.batches = []

    def __call__(self, batch: np.ndarray) -> np.ndarray:
        self.batches.append(batch)
        return np.full(self.shape, self.value, dtype=np.float32)


@pytest.fixture
def make_model():
    def factory(probability: float = 0.9, shape=(1, 1, 320, 320), **kwargs) -> ModelHandle:
        runner = RecordingRunner(logit(probability), shape=shape)
        handle = ModelHandle(runner, name="fake", **kwargs)
        handle.runner = runner
        return handle

    return factory
