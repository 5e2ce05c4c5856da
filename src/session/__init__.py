"""
Login session persistence for the CRM mobile client.

`SessionCache` saves the session after login, restores it on resume and
erases it on logout. Large items go through `securestore.ChunkedValueStore`.
"""

from .auth import check_idle_timeout, clear_auth_data, touch_last_active
from .cache import PermissionSource, SessionCache
from .models import SessionRecord

__all__ = [
    "PermissionSource",
    "SessionCache",
    "SessionRecord",
    "check_idle_timeout",
    "clear_auth_data",
    "touch_last_active",
]
