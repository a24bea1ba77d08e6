"""
Photo validation - decoding, format, size, resolution, and quality checks.

Rejects job-site photos the vision model cannot read before an inference
call is spent on them. Structural checks run first and stop at the first
failure; quality is only measured on a photo that passed all of them.
"""

import base64
import binascii
import io
import re
from typing import Callable

import cv2
import numpy as np
from PIL import Image, ImageOps

from tradeproof.models import PhotoCheck, QualityMetrics, ValidationError
from tradeproof.config import (
    MAX_FILE_SIZE_MB,
    MIN_RESOLUTION,
    ALLOWED_FORMATS,
    QUALITY_THRESHOLD,
    QUALITY_WEIGHTS,
    QUALITY_MAX_EDGE,
    SHARPNESS_CEILING,
    BRIGHTNESS_LOW,
    BRIGHTNESS_HIGH,
    CONTRAST_CEILING,
    CONTRAST_LOW,
)


_DATA_URL_RE = re.compile(r"^data:image/[a-zA-Z+.-]+;base64,(.+)$", re.DOTALL)

MEDIA_TYPES: dict[str, str] = {"JPEG": "image/jpeg", "PNG": "image/png"}


# --- Public API ---

def decode_photo(encoded: str) -> bytes:
    """
    Decodes a base64 photo, with or without a data URL prefix.

    Raises:
        ValidationError: If the payload is not valid base64.
    """
    match = _DATA_URL_RE.match(encoded.strip())
    payload = match.group(1) if match else encoded.strip()
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image must be valid base64-encoded data")


def validate_photo(image_bytes: bytes) -> PhotoCheck:
    """
    Validates a job-site photo.

    Order: size, decodability, format, resolution, then quality.
    Returns PhotoCheck with is_valid=False and the first failure's
    message for rejections; never raises for bad photo data.
    """
    size_bytes = len(image_bytes)
    size_mb = size_bytes / (1024 * 1024)
    if size_mb > MAX_FILE_SIZE_MB:
        return PhotoCheck(
            is_valid=False,
            error_message=f"Photo too large: {size_mb:.1f}MB (max {MAX_FILE_SIZE_MB}MB)",
            size_bytes=size_bytes,
        )

    img = _open_photo(image_bytes)
    if img is None:
        return PhotoCheck(is_valid=False, error_message="Invalid photo - file is corrupted or not an image")

    for check in _STRUCTURAL_CHECKS:
        error = check(img)
        if error:
            return PhotoCheck(
                is_valid=False,
                error_message=error,
                format=img.format,
                size_bytes=size_bytes,
                resolution=img.size if check is _check_resolution else None,
            )

    return PhotoCheck(
        is_valid=True,
        format=img.format,
        size_bytes=size_bytes,
        resolution=img.size,
        quality=_assess_quality(img),
    )


def media_type_for(check: PhotoCheck) -> str:
    return MEDIA_TYPES.get(check.format or "", "image/jpeg")


def is_quality_acceptable(result: PhotoCheck) -> bool:
    """Whether photo quality is good enough to judge code compliance."""
    return result.quality.overall >= QUALITY_THRESHOLD


def get_quality_feedback(result: PhotoCheck) -> str:
    """Human-readable quality feedback for API response."""
    if not result.quality.issues:
        return "Photo quality is good."
    return "Please retake: " + "; ".join(result.quality.issues)


# --- Structural checks ---

def _open_photo(image_bytes: bytes) -> Image.Image | None:
    try:
        Image.open(io.BytesIO(image_bytes)).verify()
        # verify() leaves the image unusable; reopen for reading
        return Image.open(io.BytesIO(image_bytes))
    except Exception:
        return None


def _check_format(img: Image.Image) -> str | None:
    if img.format in ALLOWED_FORMATS:
        return None
    return f"Unsupported format: {img.format} (only {', '.join(sorted(ALLOWED_FORMATS))} allowed)"


def _check_resolution(img: Image.Image) -> str | None:
    width, height = img.size
    if width >= MIN_RESOLUTION and height >= MIN_RESOLUTION:
        return None
    return f"Resolution too low: {width}x{height} (minimum {MIN_RESOLUTION}x{MIN_RESOLUTION})"


_STRUCTURAL_CHECKS: list[Callable[[Image.Image], str | None]] = [_check_format, _check_resolution]


# --- Quality ---

def _assess_quality(img: Image.Image) -> QualityMetrics:
    """
    Scores sharpness, exposure, and contrast of a photo in [0, 1].

    Measured on an upright grayscale copy no longer than QUALITY_MAX_EDGE
    so a 12MP phone shot and a cropped screenshot are judged on the same
    scale.
    """
    gray = _working_copy(img)

    # Laplacian variance: fine edges such as conductor strands and labels
    sharpness = min(float(cv2.Laplacian(gray, cv2.CV_64F).var()) / SHARPNESS_CEILING, 1.0)
    exposure = float(gray.mean()) / 255
    brightness = 1.0 - abs(exposure - 0.5) * 2
    contrast = min(float(gray.std()) / CONTRAST_CEILING, 1.0)

    overall = sum(
        score * QUALITY_WEIGHTS[name]
        for name, score in (("sharpness", sharpness), ("brightness", brightness), ("contrast", contrast))
    )

    return QualityMetrics(
        overall=min(overall, 1.0),
        sharpness=sharpness,
        brightness=brightness,
        contrast=contrast,
        issues=_quality_issues(sharpness, exposure, contrast),
    )


def _working_copy(img: Image.Image) -> np.ndarray:
    """Grayscale pixel array, EXIF-rotated and downscaled."""
    upright = ImageOps.exif_transpose(img) or img
    gray = upright.convert("L")
    gray.thumbnail((QUALITY_MAX_EDGE, QUALITY_MAX_EDGE))
    return np.asarray(gray, dtype=np.uint8)


def _quality_issues(sharpness: float, exposure: float, contrast: float) -> list[str]:
    issues = []
    if sharpness < QUALITY_THRESHOLD:
        issues.append("Photo too blurry - hold the camera steady and focus on the work")
    if exposure < BRIGHTNESS_LOW:
        issues.append("Photo too dark - use a work light or flash")
    elif exposure > BRIGHTNESS_HIGH:
        issues.append("Photo too bright - avoid pointing into direct light")
    if contrast < CONTRAST_LOW:
        issues.append("Low contrast - conductors and terminals must be distinguishable")
    return issues
