"""
Image uploads to Cloudinary (unsigned preset).

Files are sent one at a time; the caller gets a progress callback per file
and the secure URL of each upload back in order.
"""

import logging
import os
from typing import BinaryIO, Callable, Iterable, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

MAX_FILES = 8
UPLOAD_TIMEOUT = 60

ProgressCallback = Callable[[str, int], None]


class UploadError(Exception):
    pass


def upload_url() -> str:
    cloud_name = os.getenv("CLOUDINARY_CLOUD_NAME")
    preset = os.getenv("CLOUDINARY_UPLOAD_PRESET")
    if not cloud_name or not preset:
        raise UploadError("Cloudinary not configured. Set CLOUDINARY_CLOUD_NAME & CLOUDINARY_UPLOAD_PRESET")
    return f"https://api.cloudinary.com/v1_1/{cloud_name}/upload"


def upload_image(filename: str, data: BinaryIO, content_type: Optional[str] = None) -> str:
    url = upload_url()
    files = {"file": (filename, data, content_type or "application/octet-stream")}
    form = {"upload_preset": os.getenv("CLOUDINARY_UPLOAD_PRESET")}
    try:
        resp = requests.post(url, data=form, files=files, timeout=UPLOAD_TIMEOUT)
    except requests.RequestException as e:
        raise UploadError(f"Network error during Cloudinary upload: {e}") from e
    if not 200 <= resp.status_code < 300:
        raise UploadError(f"Cloudinary upload failed: {resp.status_code}")
    try:
        body = resp.json()
    except ValueError as e:
        raise UploadError("Cloudinary returned an unreadable response") from e
    secure_url = body.get("secure_url") or body.get("url")
    if not secure_url:
        raise UploadError("No URL returned from Cloudinary")
    return secure_url


def dedupe_files(files: Iterable[Tuple[str, int, object]]) -> List[Tuple[str, int, object]]:
    """Drop repeats by (name, size) and keep at most MAX_FILES."""
    seen = set()
    out = []
    for name, size, payload in files:
        key = (name, size)
        if key in seen:
            continue
        seen.add(key)
        out.append((name, size, payload))
    return out[:MAX_FILES]


def upload_images(
    files: Iterable[Tuple[str, BinaryIO, Optional[str]]],
    on_progress: Optional[ProgressCallback] = None,
) -> List[str]:
    urls = []
    for filename, data, content_type in files:
        if on_progress:
            on_progress(filename, 0)
        urls.append(upload_image(filename, data, content_type))
        if on_progress:
            on_progress(filename, 100)
        logger.info("Uploaded %s", filename)
    return urls
