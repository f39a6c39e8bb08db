from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError


class DashboardUserError(Exception):
    pass


def normalize_username(raw: str | None) -> str:
    username = (raw or "").strip()
    if not username:
        raise ValueError("username cannot be empty")
    return username


def normalize_email(raw: str | None) -> str:
    email = normalize_username(raw).lower()
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise ValueError(f"not an email address: {raw!r}")
    return email


def _error_code(e: ClientError) -> str:
    return str((e.response.get("Error") or {}).get("Code", ""))


@dataclass
class DashboardUsers:
    """Kibana logins, which are plain users of the stack's user pool.

    The pool auto-verifies email and requires it, so users are keyed by email
    and created with email_verified already set.
    """

    cognito: Any
    user_pool_id: str

    def invite(self, email: str, *, password: str | None = None) -> dict[str, Any]:
        username = normalize_email(email)
        created = True
        try:
            self.cognito.admin_create_user(
                UserPoolId=self.user_pool_id,
                Username=username,
                UserAttributes=[
                    {"Name": "email", "Value": username},
                    {"Name": "email_verified", "Value": "true"},
                ],
                MessageAction="SUPPRESS",
            )
        except ClientError as e:
            if _error_code(e) != "UsernameExistsException":
                raise DashboardUserError(f"cannot create {username}: {e}") from e
            created = False
        except BotoCoreError as e:
            raise DashboardUserError(f"cannot create {username}: {e}") from e
        if password:
            self.set_password(username, password)
        return {"username": username, "created": created, "passwordSet": bool(password)}

    def set_password(self, username: str, password: str) -> None:
        username = normalize_username(username)
        if not password:
            raise ValueError("password cannot be empty")
        try:
            self.cognito.admin_set_user_password(
                UserPoolId=self.user_pool_id,
                Username=username,
                Password=password,
                Permanent=True,
            )
        except (BotoCoreError, ClientError) as e:
            raise DashboardUserError(f"cannot set password for {username}: {e}") from e

    def remove(self, username: str) -> None:
        username = normalize_username(username)
        try:
            self.cognito.admin_delete_user(UserPoolId=self.user_pool_id, Username=username)
        except (BotoCoreError, ClientError) as e:
            raise DashboardUserError(f"cannot remove {username}: {e}") from e

    def list_users(self) -> list[dict[str, Any]]:
        users: list[dict[str, Any]] = []
        try:
            pages = self.cognito.get_paginator("list_users").paginate(UserPoolId=self.user_pool_id)
            for page in pages:
                for u in page.get("Users") or []:
                    attrs = {a["Name"]: a["Value"] for a in u.get("Attributes") or []}
                    users.append(
                        {
                            "username": u.get("Username", ""),
                            "email": attrs.get("email", ""),
                            "status": u.get("UserStatus", ""),
                            "enabled": bool(u.get("Enabled", False)),
                        }
                    )
        except (BotoCoreError, ClientError) as e:
            raise DashboardUserError(f"cannot list users of {self.user_pool_id}: {e}") from e
        return users
