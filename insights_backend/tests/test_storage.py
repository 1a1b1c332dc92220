"""
Storage Tests
=============

Local filesystem backend, signed file tokens and the S3 backend against a
mocked boto3 client.
"""

from pathlib import Path
import sys
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from insights_backend.errors import NotFoundError, StorageError
from insights_backend.storage import (
    AUDIO_BUCKET, GENERATED_DOCUMENTS_BUCKET, SOURCES_BUCKET, LocalStorage, S3Storage,
    create_file_token, decode_file_token, group_by_bucket,
)


@pytest.fixture
def local(tmp_path, sqlalchemy_db):
    return LocalStorage(str(tmp_path / "files"), "http://api.local/")


class TestLocalStorage:

    def test_put_get_remove(self, local):
        local.put(SOURCES_BUCKET, "nb/a.pdf", b"data")
        assert local.exists(SOURCES_BUCKET, "nb/a.pdf")
        assert local.get(SOURCES_BUCKET, "nb/a.pdf") == b"data"

        assert local.remove(SOURCES_BUCKET, ["nb/a.pdf", "nb/missing.pdf"]) == ["nb/a.pdf"]
        assert not local.exists(SOURCES_BUCKET, "nb/a.pdf")

    def test_put_refuses_overwrite_without_upsert(self, local):
        local.put(AUDIO_BUCKET, "x.mp3", b"1")
        with pytest.raises(StorageError):
            local.put(AUDIO_BUCKET, "x.mp3", b"2")
        local.put(AUDIO_BUCKET, "x.mp3", b"2", upsert=True)
        assert local.get(AUDIO_BUCKET, "x.mp3") == b"2"

    def test_missing_file(self, local):
        with pytest.raises(NotFoundError):
            local.get(SOURCES_BUCKET, "nope.pdf")

    def test_path_traversal_is_rejected(self, local):
        with pytest.raises(StorageError):
            local.put(SOURCES_BUCKET, "../audio/evil.mp3", b"x")
        with pytest.raises(StorageError):
            local.get(SOURCES_BUCKET, "../../etc/passwd")

    def test_unknown_bucket(self, local):
        with pytest.raises(StorageError):
            local.put("avatars", "a.png", b"x")

    def test_signed_url_names_the_file(self, local):
        local.put(GENERATED_DOCUMENTS_BUCKET, "u/d/pismo.docx", b"PK")
        url, expires_at = local.signed_url(GENERATED_DOCUMENTS_BUCKET, "u/d/pismo.docx", expires_in=60)

        assert url.startswith("http://api.local/api/v1/files/")
        token = url.rsplit("/", 1)[1]
        assert decode_file_token(token) == (GENERATED_DOCUMENTS_BUCKET, "u/d/pismo.docx")
        assert expires_at is not None


class TestFileTokens:

    def test_expired_token(self, sqlalchemy_db):
        token = create_file_token(SOURCES_BUCKET, "a.pdf", expires_in=-10)
        with pytest.raises(NotFoundError):
            decode_file_token(token)

    def test_access_token_is_not_a_file_token(self, sqlalchemy_db):
        from insights_backend.auth import create_access_token

        with pytest.raises(NotFoundError):
            decode_file_token(create_access_token({"sub": "user-1"}))

    def test_download_endpoint(self, client):
        from insights_backend.storage import get_storage

        storage = get_storage()
        storage.put(SOURCES_BUCKET, "nb/notatki.txt", b"tresc")
        url, _ = storage.signed_url(SOURCES_BUCKET, "nb/notatki.txt")

        response = client.get(url.replace("http://testserver", ""))
        assert response.status_code == 200
        assert response.content == b"tresc"
        assert response.headers["cache-control"] == "no-store"

        assert client.get("/api/v1/files/not-a-token").status_code == 404

    def test_group_by_bucket(self):
        grouped = group_by_bucket([(SOURCES_BUCKET, "a"), (AUDIO_BUCKET, "b"), (SOURCES_BUCKET, "c"),
                                   (SOURCES_BUCKET, None)])
        assert grouped == {SOURCES_BUCKET: ["a", "c"], AUDIO_BUCKET: ["b"]}


class TestS3Storage:

    @pytest.fixture
    def s3(self):
        s3_client = MagicMock()
        with patch("insights_backend.storage.boto3.client", return_value=s3_client):
            storage = S3Storage("insights-", "eu-central-1")
        return storage, s3_client

    def test_bucket_prefix(self, s3):
        storage, s3_client = s3
        s3_client.head_object.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")

        storage.put(SOURCES_BUCKET, "nb/a.pdf", b"data", content_type="application/pdf")

        s3_client.put_object.assert_called_once_with(
            Bucket="insights-sources", Key="nb/a.pdf", Body=b"data", ContentType="application/pdf",
        )

    def test_get_missing_key(self, s3):
        storage, s3_client = s3
        s3_client.get_object.side_effect = ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        with pytest.raises(NotFoundError):
            storage.get(SOURCES_BUCKET, "nb/a.pdf")

    def test_remove_returns_deleted_keys(self, s3):
        storage, s3_client = s3
        s3_client.delete_objects.return_value = {"Deleted": [{"Key": "a"}]}

        assert storage.remove(AUDIO_BUCKET, ["a", "b"]) == ["a"]
        assert storage.remove(AUDIO_BUCKET, []) == []
        assert s3_client.delete_objects.call_count == 1

    def test_urls(self, s3):
        storage, s3_client = s3
        s3_client.generate_presigned_url.return_value = "https://signed"

        assert storage.public_url(AUDIO_BUCKET, "x.mp3") == "https://insights-audio.s3.eu-central-1.amazonaws.com/x.mp3"
        url, _ = storage.signed_url(AUDIO_BUCKET, "x.mp3", expires_in=600)
        assert url == "https://signed"
        assert s3_client.generate_presigned_url.call_args.kwargs["ExpiresIn"] == 600
