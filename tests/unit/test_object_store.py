"""Unit tests for object keys and the object stores."""

import re
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from app.config import Settings
from app.exceptions import TransportError
from app.services import object_store
from app.services.object_store import LocalObjectStore, S3ObjectStore, make_key

KEY_PATTERN = re.compile(r"^images/ada@example\.com/[0-9a-f-]{36}_card_front\.jpg$")


def test_make_key_layout():
    assert KEY_PATTERN.match(make_key("Ada@Example.com", "card front.jpg"))


def test_make_key_is_unique():
    assert make_key("a@example.com", "x.png") != make_key("a@example.com", "x.png")


def test_make_key_sanitizes_path_characters():
    key = make_key("a/b@example.com", "../../etc/passwd")

    assert key.startswith("images/a_b@example.com/")
    assert "/.." not in key
    assert key.count("/") == 2


def test_local_presign_returns_mock_entries():
    store = LocalObjectStore()

    presigned = store.presign("ada@example.com", [
        {"name": "card front.jpg", "contentType": "image/jpeg"},
        {"name": None, "contentType": None},
    ])

    assert [p["url"] for p in presigned] == [None, None]
    assert all(p["mock"] is True for p in presigned)
    assert presigned[0]["contentType"] == "image/jpeg"
    assert presigned[1]["contentType"] == "application/octet-stream"
    assert presigned[1]["key"].endswith("_upload")


def test_local_delete_acknowledges_keys():
    assert LocalObjectStore().delete(["images/a/1_x.png"]) == ["images/a/1_x.png"]


@pytest.fixture
def s3_settings():
    return Settings(s3_bucket=' "intake-images" ', s3_region="us-west-2")


@pytest.fixture
def s3_client():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://intake-images.s3.amazonaws.com/signed"
    return client


def client_error(operation):
    return ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, operation)


class TestS3ObjectStore:

    def test_bucket_setting_is_unquoted(self, s3_settings):
        assert s3_settings.s3_bucket == "intake-images"
        assert s3_settings.s3_configured is True

    def test_presign_signs_put_object(self, s3_settings, s3_client):
        store = S3ObjectStore(s3_settings, client=s3_client)

        [entry] = store.presign("ada@example.com", [{"name": "front.jpg", "contentType": "image/jpeg"}])

        assert entry["url"] == "https://intake-images.s3.amazonaws.com/signed"
        assert entry["contentType"] == "image/jpeg"
        assert "mock" not in entry
        s3_client.generate_presigned_url.assert_called_once_with(
            "put_object",
            Params={"Bucket": "intake-images", "Key": entry["key"], "ContentType": "image/jpeg"},
            ExpiresIn=900,
        )

    def test_presign_failure_raises_transport_error(self, s3_settings, s3_client):
        s3_client.generate_presigned_url.side_effect = client_error("PutObject")

        with pytest.raises(TransportError):
            S3ObjectStore(s3_settings, client=s3_client).presign("a@example.com", [{"name": "x.png"}])

    def test_delete_sends_batch(self, s3_settings, s3_client):
        s3_client.delete_objects.return_value = {
            "Deleted": [{"Key": "images/a/1_x.png"}],
            "Errors": [{"Key": "images/a/2_y.png", "Code": "AccessDenied"}],
        }
        store = S3ObjectStore(s3_settings, client=s3_client)

        with patch('app.services.object_store.logger') as mock_logger:
            deleted = store.delete(["images/a/1_x.png", "images/a/2_y.png"])

            assert "refused to delete 1" in str(mock_logger.warning.call_args)

        assert deleted == ["images/a/1_x.png"]
        s3_client.delete_objects.assert_called_once_with(
            Bucket="intake-images",
            Delete={"Objects": [{"Key": "images/a/1_x.png"}, {"Key": "images/a/2_y.png"}]},
        )

    def test_delete_nothing_skips_request(self, s3_settings, s3_client):
        assert S3ObjectStore(s3_settings, client=s3_client).delete([]) == []
        s3_client.delete_objects.assert_not_called()

    def test_delete_failure_raises_transport_error(self, s3_settings, s3_client):
        s3_client.delete_objects.side_effect = client_error("DeleteObjects")

        with pytest.raises(TransportError):
            S3ObjectStore(s3_settings, client=s3_client).delete(["images/a/1_x.png"])

    def test_client_created_lazily_for_region(self, s3_settings):
        with patch('app.services.object_store.boto3') as mock_boto3:
            store = S3ObjectStore(s3_settings)
            mock_boto3.client.assert_not_called()

            store.delete(["images/a/1_x.png"])

            mock_boto3.client.assert_called_once_with("s3", region_name="us-west-2")


class TestGetObjectStore:

    def test_s3_selected_when_bucket_set(self, s3_settings, monkeypatch):
        monkeypatch.setattr(object_store, "_store_instance", None)
        monkeypatch.setattr(object_store, "get_settings", lambda: s3_settings)

        assert isinstance(object_store.get_object_store(), S3ObjectStore)

    def test_local_store_without_bucket(self, monkeypatch):
        monkeypatch.setattr(object_store, "_store_instance", None)
        monkeypatch.setattr(object_store, "get_settings", lambda: Settings(s3_bucket=""))

        assert isinstance(object_store.get_object_store(), LocalObjectStore)
