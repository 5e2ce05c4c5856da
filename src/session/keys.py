"""Storage key layout shared with existing installs of the mobile client."""

AUTH_TOKEN = "authToken"
ROLE = "role"
USER_ID = "user_id"
STUDENT_ID = "student_id"
COUNSELOR_ID = "counselor_id"
LAST_ACTIVE_AT = "lastActiveAt"

# Stored through the chunked codec
LOGIN_DETAIL = "login_detail"
PERMISSIONS = "permissions"
USER_PERMISSIONS = "userpermissions"

CHUNKED_KEYS = (LOGIN_DETAIL, PERMISSIONS, USER_PERMISSIONS)

# Order matches the client's logout routine
AUTH_KEYS = (
    AUTH_TOKEN,
    LAST_ACTIVE_AT,
    ROLE,
    USER_ID,
    STUDENT_ID,
    COUNSELOR_ID,
    LOGIN_DETAIL,
    PERMISSIONS,
    USER_PERMISSIONS,
)
