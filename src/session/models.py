from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionRecord(BaseModel):
    """
    Logged-in session restored from secure storage.

    Fields
    - token / role: mandatory; a session missing either is not a session.
    - user_id, student_id, counselor_id: numeric ids as stored (strings).
    - user: full login profile as returned by `auth/login`, None if absent or unreadable.
    - permissions: role permissions from `permission?role_name=`.
    - user_permissions: per-user overrides from `permissions?user_id=`.
    - last_active_at: epoch milliseconds of the last authenticated request.

    Notes
    - Dumping with `by_alias=True` gives the camelCase shape the app screens use
      (`userId`, `userPermissions`, ...).
    """

    model_config = ConfigDict(populate_by_name=True)

    token: str
    role: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    student_id: Optional[str] = Field(default=None, alias="studentId")
    counselor_id: Optional[str] = Field(default=None, alias="counselorId")
    user: Optional[Dict[str, Any]] = None
    permissions: List[Any] = Field(default_factory=list)
    user_permissions: List[Any] = Field(default_factory=list, alias="userPermissions")
    last_active_at: Optional[int] = Field(
        default=None,
        alias="lastActiveAt",
        description="Epoch milliseconds of last activity (None if never recorded)",
    )
