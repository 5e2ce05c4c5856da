from __future__ import annotations

import os
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet, InvalidToken

from .base import ItemTooLargeError


# Environment variable names for convenience configuration
ENV_BUCKET = "CRM_STORE_BUCKET"
ENV_PREFIX = "CRM_STORE_PREFIX"
ENV_FERNET_KEY = "CRM_FERNET_KEY"

# Android's SecureStore rejects items above ~2048 bytes; keep the same ceiling
DEFAULT_MAX_ITEM_BYTES = 2048


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a urlsafe base64-encoded 32-byte key."""
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


class S3SecureStore:
    """
    S3-backed `KeyValueStore`, every item encrypted at rest using Fernet.

    Usage
    - Each key maps to one object at `prefix + key`.
    - `get(key)` returns the decrypted string, or None if the object does not exist.
    - `set(key, value)` rejects values whose UTF-8 size exceeds `max_item_bytes`
      with `ItemTooLargeError`, mirroring device secure storage limits.
    - `delete(key)` is idempotent.

    Environment variables (optional)
    - `CRM_STORE_BUCKET`: S3 bucket holding the items
    - `CRM_STORE_PREFIX`: key prefix, e.g. "devices/abc/" (default "")
    - `CRM_FERNET_KEY`:   urlsafe base64-encoded key for Fernet
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        prefix: str = "",
        fernet_key: str | bytes,
        max_item_bytes: Optional[int] = DEFAULT_MAX_ITEM_BYTES,
        region_name: Optional[str] = None,
    ) -> None:
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._bucket = bucket
        self._prefix = prefix
        self._fernet = _to_fernet(fernet_key)
        self._max_item_bytes = max_item_bytes

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls, **kwargs) -> "S3SecureStore":
        bucket = os.environ.get(ENV_BUCKET)
        fkey = os.environ.get(ENV_FERNET_KEY)
        if not bucket or not fkey:
            missing = [name for name, val in [(ENV_BUCKET, bucket), (ENV_FERNET_KEY, fkey)] if not val]
            raise RuntimeError(
                f"Missing required environment variables for S3 secure store: {', '.join(missing)}"
            )
        prefix = os.environ.get(ENV_PREFIX, "")
        return cls(bucket=bucket, prefix=prefix, fernet_key=fkey, **kwargs)

    def _object_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    # -------- Core operations --------
    def get(self, key: str) -> Optional[str]:
        """Read and decrypt one item.

        Raises:
        - ValueError if the stored body is not a valid Fernet token.
        - botocore.exceptions.ClientError for S3 issues other than a missing object.
        """
        try:
            resp = self._s3.get_object(Bucket=self._bucket, Key=self._object_key(key))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return None
            raise

        body = resp["Body"].read()
        try:
            plaintext = self._fernet.decrypt(body)
        except InvalidToken as ex:
            raise ValueError(f"Failed to decrypt item {key!r}: invalid Fernet token") from ex
        return plaintext.decode("utf-8")

    def set(self, key: str, value: str) -> None:
        plaintext = value.encode("utf-8")
        if self._max_item_bytes is not None and len(plaintext) > self._max_item_bytes:
            raise ItemTooLargeError(
                f"value for {key!r} is {len(plaintext)} bytes (limit {self._max_item_bytes})"
            )
        self._s3.put_object(
            Bucket=self._bucket,
            Key=self._object_key(key),
            Body=self._fernet.encrypt(plaintext),
            ContentType="application/octet-stream",
        )

    def delete(self, key: str) -> None:
        # S3 DeleteObject succeeds for missing keys
        self._s3.delete_object(Bucket=self._bucket, Key=self._object_key(key))
