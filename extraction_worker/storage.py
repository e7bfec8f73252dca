from __future__ import annotations

import logging
import mimetypes
import os

from google.cloud import storage

from extraction_worker.errors import StorageError

logger = logging.getLogger(__name__)

_URI_SCHEMES = ("gs://", "s3://")


def gs_uri(bucket: str, name: str) -> str:
    return f"gs://{bucket}/{name}"


def object_key_from_uri(uri: str, bucket: str) -> str:
    """Turn ``gs://bucket/key``, ``s3://bucket/key`` or a bare key into a key for ``bucket``."""
    key = uri.strip()
    for scheme in _URI_SCHEMES:
        if key.startswith(scheme):
            key = key[len(scheme):]
            break
    if key.startswith(f"{bucket}/"):
        key = key[len(bucket) + 1:]
    key = key.lstrip("/")
    if not key:
        raise StorageError(f"Cannot derive object key from {uri!r}")
    return key


class ObjectStorage:
    """Bucket + key object store. The bucket is always selected explicitly via ``set_bucket``."""

    def __init__(self, client: storage.Client) -> None:
        self._client = client
        self._bucket: str | None = None

    @property
    def bucket(self) -> str | None:
        return self._bucket

    def set_bucket(self, bucket: str) -> None:
        self._bucket = bucket

    def _current(self) -> storage.Bucket:
        if not self._bucket:
            raise StorageError("Bucket not set. Call set_bucket() before performing operations.")
        return self._client.bucket(self._bucket)

    def upload_file(self, local_path: str, key: str, content_type: str | None = None) -> str:
        b = self._current()
        ctype = content_type or mimetypes.guess_type(local_path)[0] or "application/octet-stream"
        try:
            b.blob(key).upload_from_filename(local_path, content_type=ctype)
        except Exception as e:
            raise StorageError(f"Failed to upload {os.path.basename(local_path)} to {key}: {e}") from e
        logger.info("Uploaded %s -> %s", local_path, gs_uri(b.name, key))
        return gs_uri(b.name, key)

    def upload_string(self, data: str | bytes, key: str, content_type: str = "text/plain") -> str:
        b = self._current()
        try:
            b.blob(key).upload_from_string(data, content_type=content_type)
        except Exception as e:
            raise StorageError(f"Failed to upload object {key}: {e}") from e
        return gs_uri(b.name, key)

    def download(self, key: str, local_path: str) -> str:
        b = self._current()
        os.makedirs(os.path.dirname(local_path) or ".", exist_ok=True)
        try:
            b.blob(key).download_to_filename(local_path)
        except Exception as e:
            raise StorageError(f"Failed to download {gs_uri(b.name, key)}: {e}") from e
        return local_path
