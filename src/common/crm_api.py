from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from securestore.base import KeyValueStore
from session import keys
from session.auth import clear_auth_data, touch_last_active


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://afsana-backend-production-0897.up.railway.app/api/"

_RETRYABLE_STATUS = (502, 503, 504)


class CrmApiError(RuntimeError):
    """Base error for the CRM REST API client."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CrmAuthError(CrmApiError):
    """Backend rejected the credentials or the stored token (HTTP 401)."""


class CrmApiClient:
    """
    Minimal CRM backend client covering auth and permission endpoints.

    Notes
    - With a `store`, each request carries `Authorization: Bearer <authToken>`
      when a token is stored and refreshes `lastActiveAt`, like the mobile
      client's request interceptor.
    - A 401 clears the stored auth data before `CrmAuthError` is raised.
    - GET requests are retried with exponential backoff on transport errors and
      502/503/504. POSTs are never retried.
    - Satisfies `session.PermissionSource`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        store: Optional[KeyValueStore] = None,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
        max_attempts: int = 3,
        retry_backoff: float = 0.5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        self._base_url = base_url.rstrip("/")
        self._store = store
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=self._timeout, headers={"Content-Type": "application/json"}
        )
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self._clock = clock

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "CrmApiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Authenticate; returns the backend payload (`{token, user, ...}`)."""
        return self._request("POST", "auth/login", json_body={"email": email, "password": password})

    def signup(self, full_name: str, email: str, password: str) -> Dict[str, Any]:
        """Create a student account."""
        payload = {
            "email": email,
            "password": password,
            "full_name": full_name,
            "role": "student",
        }
        return self._request("POST", "auth/createStudent", json_body=payload)

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self._request("POST", "auth/forgot-password", json_body={"email": email})

    def reset_password(self, token: str, new_password: str) -> Dict[str, Any]:
        return self._request(
            "POST", "auth/reset-password", json_body={"token": token, "password": new_password}
        )

    def get_permissions(self, role_name: str) -> Any:
        """Permission list granted to `role_name`."""
        return self._request("GET", "permission", params={"role_name": role_name})

    def get_user_permissions(self, user_id: Any) -> Any:
        """Permission list granted to one user."""
        return self._request("GET", "permissions", params={"user_id": str(user_id)})

    # --------------- Internal ---------------
    def _headers(self) -> Dict[str, str]:
        if self._store is None:
            return {}
        headers: Dict[str, str] = {}
        try:
            token = self._store.get(keys.AUTH_TOKEN)
        except Exception:
            logger.exception("Error getting token")
            token = None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        touch_last_active(self._store, clock=self._clock)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = self._headers()
        retryable = method == "GET"

        attempt = 0
        backoff = self._retry_backoff
        last_exc: Optional[Exception] = None
        while attempt < self._max_attempts:
            try:
                resp = self._client.request(method, url, params=params, json=json_body, headers=headers)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                if not retryable:
                    raise CrmApiError(f"{method} {path} failed") from exc
                last_exc = exc
            else:
                if resp.status_code == 401:
                    if self._store is not None:
                        clear_auth_data(self._store)
                    raise CrmAuthError(f"HTTP 401 from CRM API: {resp.text[:200]}", status_code=401)
                if 200 <= resp.status_code < 300:
                    return self._decode(resp)
                if retryable and resp.status_code in _RETRYABLE_STATUS:
                    last_exc = CrmApiError(
                        f"HTTP {resp.status_code} from CRM API", status_code=resp.status_code
                    )
                else:
                    raise CrmApiError(
                        f"HTTP {resp.status_code} from CRM API: {resp.text[:200]}",
                        status_code=resp.status_code,
                    )

            # Retry path
            attempt += 1
            logger.warning("%s %s failed (attempt %d/%d)", method, path, attempt, self._max_attempts)
            if attempt < self._max_attempts:
                time.sleep(backoff)
                backoff = min(backoff * 2, 8.0)

        if last_exc is not None:
            raise CrmApiError(
                f"{method} {path} failed after retries",
                status_code=getattr(last_exc, "status_code", None),
            ) from last_exc
        raise CrmApiError(f"{method} {path} failed after retries (unknown error)")

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise CrmApiError(
                "Failed to parse JSON from CRM API", status_code=resp.status_code
            ) from exc


__all__ = [
    "CrmApiClient",
    "CrmApiError",
    "CrmAuthError",
    "DEFAULT_BASE_URL",
]
