from __future__ import annotations

import importlib

import pytest
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet

from securestore.base import ItemTooLargeError
from securestore.chunked import ChunkedValueStore
from securestore.s3_store import S3SecureStore


class _FakeBody:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def read(self) -> bytes:
        return self._data


class _FakeS3:
    def __init__(self) -> None:
        self._store = {}  # (bucket, key) -> bytes

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentType: str):
        self._store[(Bucket, Key)] = Body
        return {"ETag": f'"fake-{len(Body)}"'}

    def get_object(self, *, Bucket: str, Key: str):
        body = self._store.get((Bucket, Key))
        if body is None:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": _FakeBody(body)}

    def delete_object(self, *, Bucket: str, Key: str):
        self._store.pop((Bucket, Key), None)
        return {}

    def object_keys(self):
        return sorted(k for _, k in self._store)


class _DeniedS3(_FakeS3):
    def get_object(self, *, Bucket: str, Key: str):
        raise ClientError({"Error": {"Code": "AccessDenied"}}, "GetObject")


@pytest.fixture
def fernet_key() -> bytes:
    return Fernet.generate_key()


def test_get_missing_returns_none(fernet_key: bytes):
    store = S3SecureStore(s3=_FakeS3(), bucket="b", fernet_key=fernet_key)
    assert store.get("authToken") is None


def test_set_get_roundtrip_with_prefix(fernet_key: bytes):
    s3 = _FakeS3()
    store = S3SecureStore(s3=s3, bucket="b", prefix="devices/d1/", fernet_key=fernet_key)

    store.set("role", "counselor")
    assert store.get("role") == "counselor"
    assert s3.object_keys() == ["devices/d1/role"]


def test_values_are_encrypted_at_rest(fernet_key: bytes):
    s3 = _FakeS3()
    store = S3SecureStore(s3=s3, bucket="b", fernet_key=fernet_key)
    store.set("authToken", "secret-token")

    raw = s3._store[("b", "authToken")]
    assert b"secret-token" not in raw
    assert Fernet(fernet_key).decrypt(raw) == b"secret-token"


def test_delete_is_idempotent(fernet_key: bytes):
    s3 = _FakeS3()
    store = S3SecureStore(s3=s3, bucket="b", fernet_key=fernet_key)
    store.set("k", "v")
    store.delete("k")
    store.delete("k")
    assert store.get("k") is None


def test_oversized_value_rejected(fernet_key: bytes):
    s3 = _FakeS3()
    store = S3SecureStore(s3=s3, bucket="b", fernet_key=fernet_key)

    with pytest.raises(ItemTooLargeError):
        store.set("k", "x" * 2049)
    # Limit is on the UTF-8 size, not the character count
    with pytest.raises(ItemTooLargeError):
        store.set("k", "é" * 1025)
    assert s3.object_keys() == []


def test_bad_token_raises_value_error(fernet_key: bytes):
    s3 = _FakeS3()
    s3.put_object(Bucket="b", Key="k", Body=b"garbage", ContentType="application/octet-stream")
    store = S3SecureStore(s3=s3, bucket="b", fernet_key=fernet_key)

    with pytest.raises(ValueError):
        store.get("k")


def test_other_client_errors_propagate(fernet_key: bytes):
    store = S3SecureStore(s3=_DeniedS3(), bucket="b", fernet_key=fernet_key)
    with pytest.raises(ClientError):
        store.get("k")


def test_chunked_values_over_s3(fernet_key: bytes):
    s3 = _FakeS3()
    codec = ChunkedValueStore(S3SecureStore(s3=s3, bucket="b", fernet_key=fernet_key))
    value = '{"name":"' + "Zoë " * 900 + '"}'

    codec.put("login_detail", value)

    assert codec.fetch("login_detail") == value
    assert "login_detail" not in s3.object_keys()
    assert "login_detail_chunks" in s3.object_keys()


def test_from_env_missing_vars_raises(monkeypatch):
    for name in ("CRM_STORE_BUCKET", "CRM_STORE_PREFIX", "CRM_FERNET_KEY"):
        monkeypatch.delenv(name, raising=False)

    mod = importlib.import_module("securestore.s3_store")
    with pytest.raises(RuntimeError) as ei:
        mod.S3SecureStore.from_env()
    assert "CRM_STORE_BUCKET" in str(ei.value)
    assert "CRM_FERNET_KEY" in str(ei.value)


def test_from_env_reads_prefix(monkeypatch, fernet_key: bytes):
    monkeypatch.setenv("CRM_STORE_BUCKET", "bucket")
    monkeypatch.setenv("CRM_STORE_PREFIX", "p/")
    monkeypatch.setenv("CRM_FERNET_KEY", fernet_key.decode("ascii"))
    s3 = _FakeS3()

    store = S3SecureStore.from_env(s3=s3)
    store.set("role", "staff")

    assert s3._store.keys() == {("bucket", "p/role")}
