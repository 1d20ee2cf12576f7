import pytest

from parsebench.config import Settings
from parsebench.services.gcs import GCSAssetStore, NullAssetStore, get_asset_store


class StubBlob:
    def __init__(self, bucket: "StubBucket", path: str) -> None:
        self.bucket = bucket
        self.path = path

    def upload_from_string(self, data, content_type=None):
        if self.bucket.fail:
            raise RuntimeError("403 Forbidden")
        self.bucket.uploads.append((self.path, data, content_type))


class StubBucket:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.uploads = []

    def blob(self, path):
        return StubBlob(self, path)


class StubClient:
    def __init__(self, bucket: StubBucket) -> None:
        self._bucket = bucket
        self.requested = []

    def bucket(self, name):
        self.requested.append(name)
        return self._bucket


@pytest.mark.asyncio
async def test_upload_returns_public_url():
    bucket = StubBucket()
    store = GCSAssetStore("assets", "bench", "https://cdn.test/", client=StubClient(bucket))

    url = await store.store(b"png", "image/png", "mistral/img-0.png")

    (path, data, content_type), = bucket.uploads
    assert path.startswith("bench/") and path.endswith("-mistral_img-0.png")
    assert (data, content_type) == (b"png", "image/png")
    assert url == f"https://cdn.test/assets/{path}"


@pytest.mark.asyncio
async def test_object_names_are_unique():
    bucket = StubBucket()
    store = GCSAssetStore("assets", client=StubClient(bucket))

    await store.store(b"a", "image/png", "same.png")
    await store.store(b"b", "image/png", "same.png")

    assert bucket.uploads[0][0] != bucket.uploads[1][0]


@pytest.mark.asyncio
async def test_upload_failure_is_reported_as_unavailable():
    store = GCSAssetStore("assets", client=StubClient(StubBucket(fail=True)))

    assert await store.store(b"png", "image/png", "x.png") is None


@pytest.mark.asyncio
async def test_unconfigured_storage(monkeypatch):
    monkeypatch.setenv("ASSET_BUCKET", "")

    store = get_asset_store(Settings())

    assert isinstance(store, NullAssetStore)
    assert await store.store(b"png", "image/png", "x.png") is None
