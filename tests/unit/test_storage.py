"""ObjectStorage with a mocked google-cloud-storage client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from extraction_worker.errors import StorageError
from extraction_worker.storage import ObjectStorage, object_key_from_uri


@pytest.fixture
def client() -> MagicMock:
    c = MagicMock()
    c.bucket.return_value.name = "docs-bucket"
    return c


class TestObjectKey:
    @pytest.mark.parametrize(
        "uri",
        [
            "s3://docs-bucket/u1/report.pdf",
            "gs://docs-bucket/u1/report.pdf",
            "docs-bucket/u1/report.pdf",
            "u1/report.pdf",
            "/u1/report.pdf",
        ],
    )
    def test_variants(self, uri):
        assert object_key_from_uri(uri, "docs-bucket") == "u1/report.pdf"

    def test_empty_rejected(self):
        with pytest.raises(StorageError):
            object_key_from_uri("gs://docs-bucket/", "docs-bucket")


class TestObjectStorage:
    def test_requires_bucket(self, client):
        storage = ObjectStorage(client)
        with pytest.raises(StorageError, match="set_bucket"):
            storage.upload_string("x", "k")

    def test_upload_string_returns_url(self, client):
        storage = ObjectStorage(client)
        storage.set_bucket("docs-bucket")

        url = storage.upload_string('{"a": 1}', "websites/u1/x.json", "application/json")

        assert url == "gs://docs-bucket/websites/u1/x.json"
        blob = client.bucket.return_value.blob.return_value
        blob.upload_from_string.assert_called_once_with('{"a": 1}', content_type="application/json")

    def test_upload_failure_wrapped(self, client, tmp_path):
        path = tmp_path / "a.mp4"
        path.write_bytes(b"media")
        client.bucket.return_value.blob.return_value.upload_from_filename.side_effect = RuntimeError("403")
        storage = ObjectStorage(client)
        storage.set_bucket("docs-bucket")

        with pytest.raises(StorageError, match="403"):
            storage.upload_file(str(path), "raw-media/u1/v.mp4")

    def test_download_creates_parent(self, client, tmp_path):
        storage = ObjectStorage(client)
        storage.set_bucket("docs-bucket")
        target = tmp_path / "nested" / "file.pdf"

        assert storage.download("u1/file.pdf", str(target)) == str(target)
        assert target.parent.is_dir()
