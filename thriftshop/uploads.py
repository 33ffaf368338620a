"""Product image upload checks and storage."""

from __future__ import annotations

import io
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError


MAX_FILE_SIZE = 5 * 1024 * 1024
MAX_FILES_PER_UPLOAD = 5
MAX_IMAGE_DIMENSION = 4096
ALLOWED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")


@dataclass(frozen=True)
class FileCheck:
    valid: bool
    error: Optional[str] = None


def _extension(filename: str) -> str:
    m = re.search(r"\.[^.]+$", (filename or "").lower())
    return m.group(0) if m else ""


def has_image_magic(header: bytes) -> bool:
    is_png = header[:4] == b"\x89PNG"
    is_jpeg = header[:3] == b"\xff\xd8\xff"
    is_webp = header[8:12] == b"WEBP"
    return is_png or is_jpeg or is_webp


def validate_image(filename: str, content_type: str | None, data: bytes) -> FileCheck:
    if len(data) > MAX_FILE_SIZE:
        return FileCheck(False, f"File too large. Maximum size is {MAX_FILE_SIZE // 1024 // 1024}MB")
    if (content_type or "") not in ALLOWED_MIME_TYPES:
        return FileCheck(False, f"Invalid file type. Allowed: {', '.join(ALLOWED_MIME_TYPES)}")
    if _extension(filename) not in ALLOWED_EXTENSIONS:
        return FileCheck(False, f"Invalid file extension. Allowed: {', '.join(ALLOWED_EXTENSIONS)}")
    if not has_image_magic(data[:12]):
        return FileCheck(False, "File is not a valid image (header verification failed)")

    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError):
        return FileCheck(False, "File is not a valid image")
    if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
        return FileCheck(False, f"Image too large. Maximum dimensions: {MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION}px")
    return FileCheck(True)


def sanitize_filename(filename: str) -> str:
    out = re.sub(r"[^a-zA-Z0-9._-]", "_", filename or "")
    out = re.sub(r"\.+", ".", out)
    out = re.sub(r"^\.+", "", out)
    return out[:100]


def secure_filename(original: str) -> str:
    ext = _extension(original) or ".jpg"
    stem = original[: -len(ext)] if original.lower().endswith(ext) else original
    return f"{int(time.time() * 1000)}_{secrets.token_hex(6)}_{sanitize_filename(stem)}{ext}"


def store_image(upload_dir: Path, original: str, data: bytes) -> str:
    upload_dir.mkdir(parents=True, exist_ok=True)
    name = secure_filename(original)
    (upload_dir / name).write_bytes(data)
    return name
