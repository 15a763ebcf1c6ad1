"""
FastAPI layer exposing U2-Net background removal.

Endpoints:
 - GET /health
 - POST /remove-bg        (image URL in, R2 URLs out)
 - POST /remove-bg/file   (multipart upload in, PNG out)
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional
from urllib.parse import urljoin

import boto3
from botocore.client import Config as BotoConfig
from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, HttpUrl
import requests

from . import config
from .errors import RembgError
from .imageio import encode_png
from .pipeline import process_image_bytes
from .postprocessing import RemovalOptions

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="U2-Net Background Removal Service", version="0.1.0")


class RemoveBgRequest(BaseModel):
    imageUrl: HttpUrl
    threshold: Optional[float] = None  # 0-1
    binary: Optional[bool] = None
    includeMask: bool = False
    stickerBorder: bool = False


class RemoveBgResponse(BaseModel):
    outputUrl: HttpUrl
    maskUrl: Optional[HttpUrl] = None
    threshold: float
    binary: bool


def _get_s3_client():
    required = [
        settings.r2_endpoint,
        settings.r2_access_key_id,
        settings.r2_secret_access_key,
        settings.r2_bucket_name,
    ]
    if any(v is None for v in required):
        raise RuntimeError("R2 configuration is incomplete; check env vars.")
    session = boto3.session.Session()
    return session.client(
        service_name="s3",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        endpoint_url=settings.r2_endpoint,
        config=BotoConfig(signature_version="s3v4"),
    )


def _build_public_url(client, key: str) -> str:
    if settings.r2_public_base_url:
        return urljoin(settings.r2_public_base_url.rstrip("/") + "/", key)
    return client.generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.r2_bucket_name, "Key": key},
        ExpiresIn=3600,
    )


def _upload_png(client, key: str, png_bytes: bytes) -> str:
    client.put_object(
        Bucket=settings.r2_bucket_name,
        Key=key,
        Body=png_bytes,
        ContentType="image/png",
    )
    return _build_public_url(client, key)


def _download_image(url: str) -> bytes:
    resp = requests.get(url, timeout=(5, settings.request_timeout_seconds))
    resp.raise_for_status()
    return resp.content


def _resolve_options(threshold: Optional[float], binary: Optional[bool]) -> RemovalOptions:
    try:
        return RemovalOptions(
            threshold=settings.default_threshold if threshold is None else threshold,
            binary=settings.default_binary if binary is None else binary,
        )
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve


def _run(image_bytes: bytes, options: RemovalOptions, sticker_border: bool):
    try:
        return process_image_bytes(image_bytes, options=options, sticker_border=sticker_border)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve
    except RembgError as exc:
        logger.exception("Background removal failed: %s", exc)
        raise HTTPException(status_code=500, detail="Background removal failed") from exc


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/remove-bg", response_model=RemoveBgResponse)
def remove_bg(body: RemoveBgRequest):
    options = _resolve_options(body.threshold, body.binary)
    try:
        image_bytes = _download_image(str(body.imageUrl))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to download image: %s", exc)
        raise HTTPException(status_code=400, detail="Could not download image") from exc

    result = _run(image_bytes, options, body.stickerBorder)

    job_id = uuid.uuid4()
    try:
        client = _get_s3_client()
        output_url = _upload_png(client, f"u2net/{job_id}.png", encode_png(result.image))
        mask_url = None
        if body.includeMask:
            mask_url = _upload_png(client, f"u2net/{job_id}_mask.png", encode_png(result.mask))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to upload cutout to R2: %s", exc)
        raise HTTPException(status_code=500, detail="Upload to storage failed") from exc

    return RemoveBgResponse(
        outputUrl=output_url,
        maskUrl=mask_url,
        threshold=options.threshold,
        binary=options.binary,
    )


@app.post("/remove-bg/file")
def remove_bg_file(
    file: UploadFile = File(...),
    threshold: Optional[float] = Query(None),
    binary: Optional[bool] = Query(None),
    mask: bool = Query(False),
    stickerBorder: bool = Query(False),
):
    options = _resolve_options(threshold, binary)
    result = _run(file.file.read(), options, stickerBorder)
    body = encode_png(result.mask if mask else result.image)
    return Response(content=body, media_type="image/png")
