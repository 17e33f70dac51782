from __future__ import annotations

from typing import Any

from identity_access.utils.time_utils import iso_now

# user lifecycle
USER_CREATED = "user.created"
USER_UPDATED = "user.updated"
USER_DEACTIVATED = "user.deactivated"

# authentication
AUTH_LOGIN = "auth.login"
AUTH_LOGIN_ATTEMPT = "auth.login_attempt"
AUTH_LOGIN_SUCCESS = "auth.login_success"
AUTH_LOGOUT = "auth.logout"
AUTH_TOKEN_REFRESHED = "auth.token_refreshed"

# iam administration
ROLE_CREATED = "iam.role.created"
ROLE_UPDATED = "iam.role.updated"
ROLE_DELETED = "iam.role.deleted"
PERMISSION_CREATED = "iam.permission.created"
PERMISSION_DELETED = "iam.permission.deleted"
ROLE_PERMISSIONS_UPDATED = "iam.role.permissions.updated"
ROLE_PERMISSION_REMOVED = "iam.role.permission.removed"
USER_ROLES_UPDATED = "iam.user.roles.updated"
USER_ROLE_REMOVED = "iam.user.role.removed"


def build_event(**fields: Any) -> dict[str, Any]:
    """Event body: the given fields (None dropped) plus an ISO-8601 UTC timestamp."""
    body = {k: v for k, v in fields.items() if v is not None}
    body["timestamp"] = iso_now()
    return body
