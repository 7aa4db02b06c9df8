from __future__ import annotations

import logging
import os
import re
import uuid
from datetime import timedelta

from app.core.config import settings
from app.core.errors import StorageError
from app.core.security import create_file_token

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def document_object_path(guide_id: str, filename: str, now_ms: int) -> str:
    """guide_<id>/<unix ms>_<8 hex>_<filename>, with the filename reduced to a safe basename.

    The random fragment keeps two uploads of the same name in the same
    millisecond from colliding.
    """
    base = os.path.basename(filename or "") or "document"
    safe = _UNSAFE.sub("_", base).strip("._") or "document"
    return f"guide_{guide_id}/{now_ms}_{uuid.uuid4().hex[:8]}_{safe}"


class DocumentStorage:
    """Object store holding guide verification documents.

    ``upload`` never overwrites: an existing path is an error, so a verified
    document's bytes cannot be silently replaced.
    """

    backend = "none"

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError

    def remove(self, paths: list[str]) -> None:
        raise NotImplementedError

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        raise NotImplementedError


class LocalDocumentStorage(DocumentStorage):
    backend = "local"

    def __init__(self, base_dir: str):
        self.base_dir = os.path.abspath(base_dir)

    def full_path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.base_dir, path))
        if os.path.commonpath([full, self.base_dir]) != self.base_dir:
            raise StorageError(f"invalid object path: {path}")
        return full

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        full = self.full_path(path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise StorageError(f"object already exists: {path}") from e
        except OSError as e:
            raise StorageError(f"local upload failed: {e}") from e
        return path

    def remove(self, paths: list[str]) -> None:
        for path in paths:
            try:
                os.remove(self.full_path(path))
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"local delete failed: {e}") from e

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        token = create_file_token(path, ttl_seconds)
        return f"{settings.API_PUBLIC_URL}/api/v1/files/{token}"


class GCSDocumentStorage(DocumentStorage):
    backend = "gcs"

    def __init__(self, bucket_name: str):
        from google.cloud import storage

        self.bucket = storage.Client().bucket(bucket_name)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        from google.api_core import exceptions as gcs_errors

        blob = self.bucket.blob(path)
        try:
            # generation 0 = "must not exist yet"
            blob.upload_from_string(data, content_type=content_type, if_generation_match=0)
        except gcs_errors.PreconditionFailed as e:
            raise StorageError(f"object already exists: {path}") from e
        except gcs_errors.GoogleAPIError as e:
            raise StorageError(f"GCS upload failed: {e}") from e
        return path

    def remove(self, paths: list[str]) -> None:
        from google.api_core import exceptions as gcs_errors

        for path in paths:
            try:
                self.bucket.blob(path).delete()
            except gcs_errors.NotFound:
                continue
            except gcs_errors.GoogleAPIError as e:
                raise StorageError(f"GCS delete failed: {e}") from e

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        blob = self.bucket.blob(path)
        try:
            return blob.generate_signed_url(expiration=timedelta(seconds=ttl_seconds), method="GET", version="v4")
        except Exception as e:
            raise StorageError(f"could not sign URL: {e}") from e


_storage: DocumentStorage | None = None


def get_storage() -> DocumentStorage:
    """Process-wide backend: GCS when a bucket and credentials are configured, else local disk."""
    global _storage
    if _storage is None:
        if settings.GCS_BUCKET_NAME and settings.GOOGLE_APPLICATION_CREDENTIALS:
            _storage = GCSDocumentStorage(settings.GCS_BUCKET_NAME)
        else:
            _storage = LocalDocumentStorage(settings.DOCUMENT_LOCAL_DIR or "./data/guide-documents")
        logger.info("document storage backend: %s", _storage.backend)
    return _storage
