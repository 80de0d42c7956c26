from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif"})
EVENT_IMAGE_EXTENSIONS = frozenset({"png"})


class StorageError(RuntimeError):
    pass


class Storage:
    url_prefix: str = "/uploads"

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        return f"{self.url_prefix.rstrip('/')}/{key.lstrip('/')}"

    def key_from_url(self, url: str) -> str | None:
        prefix = self.url_prefix.rstrip("/") + "/"
        if not url or not url.startswith(prefix):
            return None
        return url[len(prefix):]


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path
    url_prefix: str = "/uploads"

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        if ".." in safe_key.split("/"):
            raise StorageError(f"Refusing path traversal in storage key: {key!r}")
        return self.root / safe_key

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        p = self._path(key)
        return p.open("rb")

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, key: str) -> None:
        self._path(key).unlink()


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str
    url_prefix: str = "/uploads"

    def _client(self):
        import boto3

        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        self._client().put_object(Bucket=self.bucket, Key=key, Body=data, **extra)

    def open(self, key: str) -> BinaryIO:
        obj = self._client().get_object(Bucket=self.bucket, Key=key)
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._client().head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError:
            return False

    def delete(self, key: str) -> None:
        self._client().delete_object(Bucket=self.bucket, Key=key)


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    url_prefix = (config.get("UPLOAD_URL_PREFIX") or "/uploads").strip()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "ap-south-1").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
            url_prefix=url_prefix,
        )
    # default local
    root = Path(config.get("LOCAL_STORAGE_ROOT") or "uploads")
    if not root.is_absolute():
        root = Path(os.getcwd()) / root
    return LocalStorage(root=root, url_prefix=url_prefix)


def image_extension(filename: str) -> str:
    _, _, ext = (filename or "").rpartition(".")
    return ext.lower() if ext != filename else ""


def build_image_key(prefix: str, filename: str) -> str:
    """
    Storage key for an uploaded image: <prefix>/<uuid>-<secure filename>.
    The uuid keeps concurrent uploads of the same file name apart.
    """
    safe_filename = secure_filename(filename or "") or "image.bin"
    return f"{prefix.strip('/')}/{uuid.uuid4().hex}-{safe_filename}"


def save_image(
    storage: Storage,
    prefix: str,
    data: bytes,
    filename: str,
    content_type: str | None,
    *,
    allowed_extensions: frozenset[str] = ALLOWED_IMAGE_EXTENSIONS,
) -> str:
    """Validate and store an uploaded image; returns its public URL."""
    from app.palette.errors import ValidationError

    if not data:
        raise ValidationError("Image file is empty.")
    ext = image_extension(filename)
    if ext not in allowed_extensions or not (content_type or "").startswith("image/"):
        allowed = ", ".join(sorted(allowed_extensions))
        raise ValidationError(f"Only image files ({allowed}) are allowed.")
    key = build_image_key(prefix, filename)
    storage.put_bytes(key, data, content_type=content_type)
    return storage.public_url(key)


def release_blob(storage: Storage, url: str | None) -> bool:
    """
    Best-effort delete of the blob behind a public URL.
    Failures are logged and reported as False; callers never fail on them.
    """
    if not url:
        return False
    key = storage.key_from_url(url)
    if key is None:
        logger.warning("Not releasing blob with foreign URL: %s", url)
        return False
    try:
        storage.delete(key)
    except Exception:
        logger.exception("Failed to release blob %s", key)
        return False
    logger.info("Released blob %s", key)
    return True
