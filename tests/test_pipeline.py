"""End-to-end pipeline tests against an in-process fake network."""

import numpy as np
import pytest
from PIL import Image

from u2net_service import pipeline
from u2net_service.errors import (
    InferenceFailure,
    InvalidImage,
    InvalidThreshold,
    ModelOutputShapeMismatch,
)
from u2net_service.imageio import encode_png
from u2net_service.model_loader import ModelHandle
from u2net_service.pipeline import process_image_bytes, remove_background
from u2net_service.postprocessing import RemovalOptions


@pytest.mark.parametrize("size", [(1, 1), (7, 13), (320, 320), (641, 479)])
def test_outputs_match_source_size(make_model, size):
    image = Image.new("RGB", size, (30, 60, 90))

    result = remove_background(image, RemovalOptions(), model=make_model(0.9))

    assert result.image.size == size
    assert result.mask.size == size
    assert result.image.mode == "RGBA"
    assert result.mask.mode == "L"


def test_model_receives_a_normalized_batch(make_model):
    model = make_model(0.9)

    remove_background(Image.new("RGB", (50, 20), (255, 255, 255)), model=model)

    (batch,) = model.runner.batches
    assert batch.shape == (1, 3, 320, 320)
    assert batch.dtype == np.float32
    assert batch[0, 0, 0, 0] == pytest.approx((1.0 - 0.485) / 0.229, rel=1e-5)


def test_binary_cutout_scenario(make_model):
    result = remove_background(
        Image.new("RGB", (33, 21), (1, 2, 3)),
        RemovalOptions(threshold=0.5, binary=True),
        model=make_model(0.9),
    )

    assert (np.asarray(result.mask) == 255).all()
    rgba = np.asarray(result.image)
    assert (rgba[..., :3] == (1, 2, 3)).all()
    assert (rgba[..., 3] == 255).all()


def test_soft_mode_keeps_partial_alpha(make_model):
    result = remove_background(
        Image.new("RGB", (10, 10)),
        RemovalOptions(threshold=0.9, binary=False),
        model=make_model(0.25),
    )

    assert (np.asarray(result.mask) == 64).all()


def test_is_deterministic(make_model):
    rng = np.random.default_rng(7)
    image = Image.fromarray(rng.integers(0, 256, size=(37, 52, 3), dtype=np.uint8))
    model = ModelHandle(lambda batch: batch.mean(axis=1, keepdims=True) * 3.0)
    options = RemovalOptions(threshold=0.4)

    first = remove_background(image, options, model=model)
    second = remove_background(image, options, model=model)

    assert encode_png(first.image) == encode_png(second.image)
    assert encode_png(first.mask) == encode_png(second.mask)


def test_custom_normalization_flows_to_the_model(make_model):
    from u2net_service.config import MODEL_PROFILES

    model = make_model(0.9, normalization=MODEL_PROFILES["modnet"])

    remove_background(Image.new("RGB", (4, 4), (0, 0, 0)), model=model)

    assert np.allclose(model.runner.batches[0], -1.0)


@pytest.mark.parametrize("size", [(0, 10), (10, 0)])
def test_zero_sized_image_is_invalid(make_model, size):
    model = make_model(0.9)

    with pytest.raises(InvalidImage):
        remove_background(Image.new("RGB", size), model=model)
    assert model.runner.batches == []


def test_invalid_threshold_is_rejected_before_inference(make_model):
    model = make_model(0.9)
    options = RemovalOptions()
    object.__setattr__(options, "threshold", -0.1)

    with pytest.raises(InvalidThreshold):
        remove_background(Image.new("RGB", (4, 4)), options, model=model)
    assert model.runner.batches == []


def test_wrong_output_shape(make_model):
    with pytest.raises(ModelOutputShapeMismatch):
        remove_background(Image.new("RGB", (4, 4)), model=make_model(0.9, shape=(1, 1, 160, 160)))


def test_engine_errors_surface_as_inference_failure():
    def broken(batch):
        raise RuntimeError("device lost")

    with pytest.raises(InferenceFailure, match="device lost"):
        remove_background(Image.new("RGB", (4, 4)), model=ModelHandle(broken))


def test_defaults_to_shared_model(monkeypatch, make_model):
    model = make_model(0.9)
    monkeypatch.setattr(pipeline, "get_model", lambda: model)

    remove_background(Image.new("RGB", (4, 4)))

    assert len(model.runner.batches) == 1


def test_process_image_bytes(make_model):
    png = encode_png(Image.new("RGB", (25, 15), (9, 9, 9)))

    result = process_image_bytes(png, options=RemovalOptions(binary=True), model=make_model(0.9))

    assert result.image.size == (25, 15)
    assert (np.asarray(result.mask) == 255).all()


def test_process_image_bytes_with_sticker_border(make_model):
    png = encode_png(Image.new("RGB", (25, 15)))

    result = process_image_bytes(png, sticker_border=True, model=make_model(0.9))

    assert result.image.size == (25, 15)
    assert result.image.mode == "RGBA"


def test_process_image_bytes_rejects_garbage(make_model):
    with pytest.raises(InvalidImage):
        process_image_bytes(b"not an image", model=make_model(0.9))
