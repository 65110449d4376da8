import base64

import cloudinary
import cloudinary.uploader
import pytest
from cloudinary import exceptions as cloudinary_errors

from errors import StorageError
from publisher import ArtifactPublisher, CloudinaryConfig
from utils import pass_public_id

CFG = CloudinaryConfig(cloud_name="demo", api_key="key123", api_secret="secret456")


class FakeUploader:
    """Keeps one object per folder/public_id, like an overwrite=True upload."""

    def __init__(self, *failures):
        self.failures = list(failures)
        self.objects = {}
        self.calls = []

    def __call__(self, file, **options):
        self.calls.append(options)
        if self.failures:
            raise self.failures.pop(0)
        key = f"{options['folder']}/{options['public_id']}"
        self.objects[key] = file.read()
        return {"public_id": key, "secure_url": f"https://res.cloudinary.com/demo/image/upload/{key}.jpg"}


@pytest.fixture
def uploader(monkeypatch):
    fake = FakeUploader()
    monkeypatch.setattr(cloudinary.uploader, "upload", fake)
    return fake


def test_unconfigured_returns_inline_data_uri():
    pub = ArtifactPublisher(None)
    buf = b"\xff\xd8\xff\xe0jpeg-bytes"
    url = pub.publish(buf, "Event-Pass-Kate-T1")
    assert url.startswith("data:image/jpeg;base64,")
    assert base64.b64decode(url.split(",", 1)[1]) == buf
    assert not pub.configured


def test_configured_publisher_sets_sdk_credentials():
    ArtifactPublisher(CFG)
    cfg = cloudinary.config()
    assert (cfg.cloud_name, cfg.api_key, cfg.api_secret) == ("demo", "key123", "secret456")
    assert cfg.secure


def test_same_member_gets_same_key_and_overwrites(uploader):
    pub = ArtifactPublisher(CFG)
    key1 = pass_public_id("Kate Marlowe", "GT-2026-4496")
    key2 = pass_public_id("Kate Marlowe", "GT-2026-4496")
    assert key1 == key2

    url1 = pub.publish(b"first", key1)
    url2 = pub.publish(b"first", key2)
    url3 = pub.publish(b"second", key1)

    assert url1 == url2 == url3
    assert len(uploader.objects) == 1
    assert uploader.objects[f"IDs/{key1}"] == b"second"


def test_upload_options_overwrite_and_invalidate(uploader):
    ArtifactPublisher(CFG, folder="IDs").publish(b"jpeg", "Event-Pass-Kate-T1")
    opts = uploader.calls[0]
    assert opts["folder"] == "IDs"
    assert opts["public_id"] == "Event-Pass-Kate-T1"
    assert opts["overwrite"] is True
    assert opts["invalidate"] is True
    assert opts["resource_type"] == "image"
    assert opts["format"] == "jpg"


def test_rejected_upload_raises_storage_error_without_retry(monkeypatch):
    fake = FakeUploader(cloudinary_errors.AuthorizationRequired("Invalid Signature"))
    monkeypatch.setattr(cloudinary.uploader, "upload", fake)
    with pytest.raises(StorageError):
        ArtifactPublisher(CFG).publish(b"jpeg", "k")
    assert len(fake.calls) == 1


def test_transient_errors_are_retried(monkeypatch):
    fake = FakeUploader(cloudinary_errors.GeneralError("503 Service Unavailable"))
    monkeypatch.setattr(cloudinary.uploader, "upload", fake)
    url = ArtifactPublisher(CFG).publish(b"jpeg", "k")
    assert url == "https://res.cloudinary.com/demo/image/upload/IDs/k.jpg"
    assert len(fake.calls) == 2


def test_connection_failure_raises_storage_error_after_retries(monkeypatch):
    fake = FakeUploader(*(ConnectionError("no route") for _ in range(3)))
    monkeypatch.setattr(cloudinary.uploader, "upload", fake)
    with pytest.raises(StorageError):
        ArtifactPublisher(CFG, max_attempts=3).publish(b"jpeg", "k")
    assert len(fake.calls) == 3


def test_missing_secure_url_raises(monkeypatch):
    monkeypatch.setattr(cloudinary.uploader, "upload", lambda file, **options: {"public_id": "k"})
    with pytest.raises(StorageError):
        ArtifactPublisher(CFG).publish(b"jpeg", "k")


def test_empty_buffer_rejected():
    with pytest.raises(ValueError):
        ArtifactPublisher(None).publish(b"", "k")


def test_local_copy_is_written(tmp_path):
    pub = ArtifactPublisher(None, local_dir=tmp_path / "IDs")
    pub.publish(b"jpeg", "Event-Pass-Kate-T1")
    assert (tmp_path / "IDs" / "Event-Pass-Kate-T1.jpg").read_bytes() == b"jpeg"
