import base64
import binascii
import ipaddress
import logging
import os
import socket
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import boto3
import httpx
from botocore.config import Config as BotoConfig

from app.core.config import settings
from app.core.constants import MAX_IMAGE_REDIRECTS

logger = logging.getLogger(__name__)

_MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/gif": ".gif",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}


@dataclass
class UploadedImage:
    """Result of re-hosting an image in object storage."""

    url: str
    key: str


class StorageBackend(Protocol):
    def upload(
        self, file_content: bytes, folder: str, filename: str, content_type: str | None = None
    ) -> str:
        """Upload file and return the stored path/key."""
        ...

    def download_url(self, path: str) -> str:
        """Return a URL to download the file."""
        ...


class LocalStorage:
    """Local filesystem storage for development."""

    def __init__(self, base_dir: str) -> None:
        self._base_dir = Path(base_dir)

    def upload(
        self, file_content: bytes, folder: str, filename: str, content_type: str | None = None
    ) -> str:
        upload_dir = self._resolve_safe_path(folder)
        upload_dir.mkdir(parents=True, exist_ok=True)
        file_path = upload_dir / filename
        with open(file_path, "wb") as f:
            f.write(file_content)
        return f"{folder}/{filename}"

    def download_url(self, path: str) -> str:
        return f"{settings.BACKEND_URL}/uploads/{path}"

    def _resolve_safe_path(self, path: str) -> Path:
        """Resolve path and validate it stays within base directory."""
        base_resolved = self._base_dir.resolve()
        full_path = (self._base_dir / path).resolve()
        if (
            not str(full_path).startswith(str(base_resolved) + os.sep)
            and full_path != base_resolved
        ):
            raise ValueError(f"Path traversal attempt detected: {path}")
        return full_path


class R2Storage:
    """Cloudflare R2 storage (S3-compatible) for production."""

    def __init__(self) -> None:
        self._client = boto3.client(
            "s3",
            endpoint_url=settings.r2_endpoint_url,
            aws_access_key_id=settings.R2_ACCESS_KEY_ID,
            aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
            config=BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
            ),
            region_name="auto",
        )
        self._bucket = settings.R2_BUCKET_NAME

    def upload(
        self, file_content: bytes, folder: str, filename: str, content_type: str | None = None
    ) -> str:
        key = f"{folder}/{filename}"
        extra = {"ContentType": content_type} if content_type else {}
        self._client.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=file_content,
            **extra,
        )
        return key

    def download_url(self, path: str) -> str:
        if settings.R2_PUBLIC_URL:
            return f"{settings.R2_PUBLIC_URL}/{path}"
        url: str = self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": path},
            ExpiresIn=3600,
        )
        return url


def get_storage() -> StorageBackend:
    if settings.STORAGE_BACKEND == "r2":
        return R2Storage()
    return LocalStorage(settings.UPLOAD_DIR)


def sniff_image_mime(encoded: str) -> str:
    """Guess the mime type of raw base64 image data from its first bytes."""
    if encoded.startswith("iVBORw0KGgo"):
        return "image/png"
    if encoded.startswith("R0lGOD"):
        return "image/gif"
    if encoded.startswith("UklGR"):
        return "image/webp"
    return "image/jpeg"


def _decode_base64(encoded: str) -> bytes:
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Invalid image data: not valid base64") from exc


def _resolve_host_addresses(host: str) -> list[str]:
    try:
        infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    except socket.gaierror as exc:
        raise ValueError(f"Could not resolve image host: {host}") from exc
    return [str(info[4][0]).split("%")[0] for info in infos]


def _ensure_public_host(url: httpx.URL) -> None:
    """Reject URLs that resolve to loopback, private, link-local or reserved addresses."""
    if url.scheme not in ("http", "https") or not url.host:
        raise ValueError(f"Unsupported image URL: {url}")
    for address in _resolve_host_addresses(url.host):
        if not ipaddress.ip_address(address).is_global:
            raise ValueError(f"Image host is not allowed: {url.host}")


def _http_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout, follow_redirects=False)


def _fetch_remote_image(url: str, timeout: float, max_bytes: int) -> tuple[bytes, str]:
    """Download an image, checking every redirect hop and stopping at ``max_bytes``."""
    target = httpx.URL(url)
    try:
        with _http_client(timeout) as client:
            for _ in range(MAX_IMAGE_REDIRECTS + 1):
                _ensure_public_host(target)
                with client.stream("GET", target) as response:
                    if response.is_redirect:
                        target = target.join(response.headers["location"])
                        continue
                    response.raise_for_status()

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > max_bytes:
                        raise ValueError("Image is empty or exceeds the maximum allowed size")

                    chunks = []
                    received = 0
                    for chunk in response.iter_bytes():
                        received += len(chunk)
                        if received > max_bytes:
                            raise ValueError("Image is empty or exceeds the maximum allowed size")
                        chunks.append(chunk)

                    mime_type = response.headers.get("content-type", "").split(";")[0].strip()
                    return b"".join(chunks), mime_type
    except httpx.HTTPError as exc:
        raise ValueError(f"Could not fetch image: {exc}") from exc

    raise ValueError("Could not fetch image: too many redirects")


def read_image_payload(data: str, timeout: float = 15.0) -> tuple[bytes, str]:
    """Turn a data URL, raw base64 string or http(s) URL into bytes and a mime type.

    Remote URLs are only fetched from public hosts, and the download stops
    once it passes the size limit.

    Raises:
        ValueError: If the payload is empty, undecodable, not an image, too large,
            or points at a host that may not be fetched.
    """
    if not data or not isinstance(data, str):
        raise ValueError("Invalid image data: must be a non-empty string")

    max_bytes = settings.MAX_CHAT_IMAGE_SIZE_MB * 1024 * 1024

    if data.startswith(("http://", "https://")):
        content, mime_type = _fetch_remote_image(data, timeout, max_bytes)
    elif data.startswith("data:"):
        header, _, encoded = data.partition(",")
        if ";base64" not in header:
            raise ValueError("Invalid image data: data URL must be base64 encoded")
        mime_type = header[len("data:") :].split(";")[0]
        content = _decode_base64(encoded)
    else:
        mime_type = sniff_image_mime(data)
        content = _decode_base64(data)

    if mime_type not in _MIME_EXTENSIONS:
        raise ValueError(f"Unsupported image type: {mime_type or 'unknown'}")

    if not content or len(content) > max_bytes:
        raise ValueError("Image is empty or exceeds the maximum allowed size")

    return content, mime_type


def upload_image(
    data: str, folder: str, storage: StorageBackend | None = None
) -> UploadedImage:
    """Re-host an image in the configured storage backend and return its public URL."""
    content, mime_type = read_image_payload(data)
    backend = storage or get_storage()
    filename = f"{uuid.uuid4()}{_MIME_EXTENSIONS[mime_type]}"

    logger.info("Uploading image to storage folder %s", folder)
    key = backend.upload(content, folder, filename, content_type=mime_type)
    return UploadedImage(url=backend.download_url(key), key=key)
