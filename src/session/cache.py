from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from securestore.base import KeyValueStore, StorageError
from securestore.chunked import DEFAULT_CHUNK_SIZE, ChunkedValueStore

from . import keys
from .auth import DEFAULT_IDLE_LIMIT_MS, check_idle_timeout, clear_auth_data, now_ms
from .models import SessionRecord


logger = logging.getLogger(__name__)


class PermissionSource(Protocol):
    """Backend lookups needed to build a session (see `common.crm_api.CrmApiClient`)."""

    def get_permissions(self, role_name: str) -> Any: ...

    def get_user_permissions(self, user_id: Any) -> Any: ...


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=True)


class SessionCache:
    """
    Persist and restore the post-login session on a secure key/value store.

    Small fixed fields (token, role, ids, last-active timestamp) are stored as
    single items. The user profile and both permission lists go through
    `ChunkedValueStore` because they can exceed the per-item size limit.

    Error policy
    - `save()` logs and re-raises, so a login flow can report that the session
      could not be persisted.
    - `load()` logs and returns None; any failure means "no session".
    - `clear()` is best effort.
    """

    def __init__(
        self,
        store: KeyValueStore,
        permissions: PermissionSource,
        *,
        clock: Callable[[], float] = time.time,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_limit_ms: int = DEFAULT_IDLE_LIMIT_MS,
    ) -> None:
        self._store = store
        self._idle_limit_ms = idle_limit_ms
        self._values = ChunkedValueStore(store, chunk_size=chunk_size)
        self._permissions = permissions
        self._clock = clock

    @property
    def values(self) -> ChunkedValueStore:
        return self._values

    # --------------- Public API ---------------
    def save(self, user: Mapping[str, Any], token: str) -> None:
        """Persist the session of `user` after a successful login.

        Raises ValueError before writing anything when `user` has no role,
        StorageError when any item cannot be written, or the permission
        source's own error when a permission lookup fails.
        """
        role = user.get("role")
        if role is None or not str(role).strip():
            raise ValueError("user has no role")
        try:
            self._set(keys.AUTH_TOKEN, token)
            self._set(keys.ROLE, str(user["role"]))
            self._set(keys.USER_ID, str(user["id"]))
            self._values.put(keys.LOGIN_DETAIL, _dumps(dict(user)))

            if user.get("student_id"):
                self._set(keys.STUDENT_ID, str(user["student_id"]))
            if user.get("counselor_id"):
                self._set(keys.COUNSELOR_ID, str(user["counselor_id"]))

            permissions = self._permissions.get_permissions(user["role"])
            user_permissions = self._permissions.get_user_permissions(user["id"])
            self._values.put(keys.PERMISSIONS, _dumps(permissions))
            self._values.put(keys.USER_PERMISSIONS, _dumps(user_permissions))

            self._set(keys.LAST_ACTIVE_AT, str(now_ms(self._clock)))
        except Exception:
            logger.exception("Error saving auth data")
            raise

    def load(self) -> Optional[SessionRecord]:
        """Restore the stored session, or None if there is no valid one."""
        try:
            token = self._store.get(keys.AUTH_TOKEN)
            role = self._store.get(keys.ROLE)
            user_id = self._store.get(keys.USER_ID)
            student_id = self._store.get(keys.STUDENT_ID)
            counselor_id = self._store.get(keys.COUNSELOR_ID)
            last_active = self._store.get(keys.LAST_ACTIVE_AT)
            login_detail = self._values.fetch(keys.LOGIN_DETAIL)
            permissions = self._values.fetch(keys.PERMISSIONS)
            user_permissions = self._values.fetch(keys.USER_PERMISSIONS)
        except Exception:
            logger.exception("Error getting stored auth data")
            return None

        if not token or not role:
            return None

        return SessionRecord(
            token=token,
            role=role,
            user_id=user_id,
            student_id=student_id,
            counselor_id=counselor_id,
            user=_parse_user(login_detail),
            permissions=_parse_list(keys.PERMISSIONS, permissions),
            user_permissions=_parse_list(keys.USER_PERMISSIONS, user_permissions),
            last_active_at=_parse_int(last_active),
        )

    def clear(self) -> None:
        """Erase the session, including chunk artifacts of the large items."""
        clear_auth_data(self._store)
        for key in keys.CHUNKED_KEYS:
            self._values.delete(key)

    logout = clear

    def expire_if_idle(self) -> bool:
        """Clear the session when it has been idle too long; True if it was cleared."""
        expired = check_idle_timeout(self._store, idle_limit_ms=self._idle_limit_ms, clock=self._clock)
        if expired:
            for key in keys.CHUNKED_KEYS:
                self._values.delete(key)
        return expired

    # --------------- Internal ---------------
    def _set(self, key: str, value: str) -> None:
        try:
            self._store.set(key, value)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"set {key!r} failed") from exc


def _parse_user(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Stored %s is not valid JSON; ignoring", keys.LOGIN_DETAIL)
        return None
    if not isinstance(data, dict):
        logger.warning("Stored %s is not an object; ignoring", keys.LOGIN_DETAIL)
        return None
    return data


def _parse_list(key: str, raw: Optional[str]) -> List[Any]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Stored %s is not valid JSON; ignoring", key)
        return []
    if not isinstance(data, list):
        logger.warning("Stored %s is not a list; ignoring", key)
        return []
    return data


def _parse_int(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None
