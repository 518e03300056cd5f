"""
AuthClient SDK: sync client for OpenBlind auth.

Used by the app's backend services and scripts to log in, verify bearer
tokens and manage sessions over HTTP.
"""

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import httpx


@dataclass
class ClientIdentity:
    """Identity info returned by the SDK."""

    id: str
    email: str
    role: str
    is_active: bool = True
    display_name: str = ""
    last_login: Optional[datetime] = None


@dataclass
class ClientLoginResult:
    """Result of login() and register()."""

    success: bool
    token: str = ""
    expires_at: Optional[datetime] = None
    identity: Optional[ClientIdentity] = None
    code: str = ""
    message: str = ""


@dataclass
class ClientVerifyResult:
    """Result of verify()."""

    valid: bool
    session_id: str = ""
    expires_at: Optional[datetime] = None
    identity: Optional[ClientIdentity] = None
    code: str = ""
    detail: str = ""
    message: str = ""


@dataclass
class ClientSession:
    id: str
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    origin_ip: Optional[str] = None
    user_agent: Optional[str] = None
    current: bool = False


@dataclass
class ClientError:
    code: str
    message: str = ""
    detail: str = ""
    status_code: int = 0
    extra: dict[str, Any] = field(default_factory=dict)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None


class AuthClient:
    """
    Synchronous HTTP client for OpenBlind auth.

    After a successful login() or register() the token is kept on the client
    and sent as a bearer token on every authenticated call.
    """

    def __init__(
        self,
        server_url: str = "http://localhost:8080",
        token: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_base: float = 0.5,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.token = token
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self._http = httpx.Client(
            base_url=self.server_url,
            timeout=timeout,
            transport=transport,
        )

    def _auth_headers(self) -> dict[str, str]:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> dict[str, Any] | list[Any]:
        """Central HTTP method with retry and structured error handling.

        Retries on:
        - httpx.TimeoutException and other transport errors
        - 5xx status codes
        - 429 (rate limit)

        4xx responses are never retried: a rejected token or credential stays
        rejected. Their error body is returned with ``status_code`` added.
        """
        last_error = None
        for attempt in range(self.max_retries):
            try:
                resp = self._http.request(method, path, **kwargs)
                if resp.status_code >= 500 or resp.status_code == 429:
                    last_error = f"HTTP {resp.status_code}"
                    if attempt < self.max_retries - 1:
                        time.sleep(self.retry_backoff_base * (2 ** attempt))
                        continue
                    return {
                        "error": f"Server error: {resp.status_code}",
                        "code": "SERVER_ERROR",
                        "status_code": resp.status_code,
                    }
                if resp.status_code >= 400:
                    try:
                        body = resp.json()
                    except json.JSONDecodeError:
                        body = {}
                    if not isinstance(body, dict):
                        body = {}
                    return {
                        "error": body.get("error") or f"Client error: {resp.status_code}",
                        "code": body.get("code", "CLIENT_ERROR"),
                        "detail": body.get("detail", ""),
                        "status_code": resp.status_code,
                    }
                if resp.status_code == 204 or not resp.content:
                    return {}
                return resp.json()
            except httpx.TimeoutException:
                last_error = "timeout"
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_backoff_base * (2 ** attempt))
                    continue
            except httpx.HTTPError as e:
                last_error = str(e)
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_backoff_base * (2 ** attempt))
                    continue
            except json.JSONDecodeError:
                return {"error": "Invalid JSON response", "code": "JSON_ERROR"}

        return {
            "error": f"All {self.max_retries} retries exhausted: {last_error}",
            "code": "CONNECTION_ERROR",
        }

    @staticmethod
    def _is_error(data: Any) -> bool:
        return isinstance(data, dict) and "error" in data

    @staticmethod
    def _to_error(data: dict[str, Any]) -> ClientError:
        return ClientError(
            code=data.get("code", "ERROR"),
            message=data.get("error", ""),
            detail=data.get("detail", ""),
            status_code=data.get("status_code", 0),
        )

    @staticmethod
    def _parse_identity(data: dict) -> ClientIdentity:
        return ClientIdentity(
            id=data.get("id", ""),
            email=data.get("email", ""),
            role=data.get("role", ""),
            is_active=data.get("is_active", True),
            display_name=data.get("display_name", ""),
            last_login=_parse_datetime(data.get("last_login")),
        )

    def _login_result(self, data: dict[str, Any]) -> ClientLoginResult:
        if self._is_error(data):
            return ClientLoginResult(
                success=False, code=data.get("code", "ERROR"),
                message=data.get("error", ""),
            )
        self.token = data.get("token", "")
        identity = None
        if data.get("identity"):
            identity = self._parse_identity(data["identity"])
        return ClientLoginResult(
            success=True,
            token=self.token,
            expires_at=_parse_datetime(data.get("expires_at")),
            identity=identity,
        )

    # ── Authentication ──

    def register(
        self, email: str, password: str, display_name: str = ""
    ) -> ClientLoginResult:
        body = {"email": email, "password": password, "display_name": display_name}
        return self._login_result(self._request("POST", "/auth/register", json=body))

    def login(self, email: str, password: str) -> ClientLoginResult:
        """Log in and keep the issued token for later calls."""
        body = {"email": email, "password": password}
        return self._login_result(self._request("POST", "/auth/login", json=body))

    def logout(self) -> bool:
        """End the current session. The stored token is dropped either way."""
        data = self._request("POST", "/auth/logout", headers=self._auth_headers())
        self.token = None
        return not self._is_error(data)

    def verify(self, token: Optional[str] = None) -> ClientVerifyResult:
        """Check a bearer token (the stored one by default) against the server."""
        token = token or self.token
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        data = self._request("GET", "/auth/verify", headers=headers)
        if self._is_error(data):
            return ClientVerifyResult(
                valid=False,
                code=data.get("code", "ERROR"),
                detail=data.get("detail", ""),
                message=data.get("error", ""),
            )
        return ClientVerifyResult(
            valid=True,
            session_id=data.get("session_id", ""),
            expires_at=_parse_datetime(data.get("expires_at")),
            identity=self._parse_identity(data.get("identity", {})),
        )

    def list_sessions(self) -> list[ClientSession] | ClientError:
        data = self._request("GET", "/auth/sessions", headers=self._auth_headers())
        if self._is_error(data):
            return self._to_error(data)
        return [
            ClientSession(
                id=item.get("id", ""),
                expires_at=_parse_datetime(item.get("expires_at")),
                created_at=_parse_datetime(item.get("created_at")),
                origin_ip=item.get("origin_ip"),
                user_agent=item.get("user_agent"),
                current=item.get("current", False),
            )
            for item in data
        ]

    def change_password(
        self, current_password: str, new_password: str
    ) -> int | ClientError:
        """Change the password. Returns the number of other sessions ended."""
        body = {"current_password": current_password, "new_password": new_password}
        data = self._request(
            "PUT", "/auth/change-password", json=body, headers=self._auth_headers()
        )
        if self._is_error(data):
            return self._to_error(data)
        return data.get("sessions_ended", 0)

    def get_profile(self) -> ClientIdentity | ClientError:
        data = self._request("GET", "/auth/profile", headers=self._auth_headers())
        if self._is_error(data):
            return self._to_error(data)
        return self._parse_identity(data)

    def update_profile(self, display_name: str) -> ClientIdentity | ClientError:
        data = self._request(
            "PUT", "/auth/profile",
            json={"display_name": display_name}, headers=self._auth_headers(),
        )
        if self._is_error(data):
            return self._to_error(data)
        return self._parse_identity(data)

    # ── Users ──

    def list_users(
        self,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ClientIdentity], int] | ClientError:
        """List identities (admin only). Returns (page, total)."""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if role is not None:
            params["role"] = role
        if is_active is not None:
            params["is_active"] = str(is_active).lower()
        data = self._request("GET", "/users", params=params, headers=self._auth_headers())
        if self._is_error(data):
            return self._to_error(data)
        users = [self._parse_identity(u) for u in data.get("users", [])]
        return users, data.get("total", len(users))

    def create_user(
        self, email: str, password: str, role: str = "user", display_name: str = ""
    ) -> ClientIdentity | ClientError:
        body = {"email": email, "password": password, "role": role, "display_name": display_name}
        data = self._request("POST", "/users", json=body, headers=self._auth_headers())
        if self._is_error(data):
            return self._to_error(data)
        return self._parse_identity(data)

    def delete_user(self, identity_id: str) -> bool | ClientError:
        data = self._request("DELETE", f"/users/{identity_id}", headers=self._auth_headers())
        if self._is_error(data):
            return self._to_error(data)
        return True

    def reset_password(self, identity_id: str, new_password: str) -> int | ClientError:
        """Admin password reset. Returns the number of sessions ended."""
        data = self._request(
            "PUT", f"/users/{identity_id}/password",
            json={"new_password": new_password}, headers=self._auth_headers(),
        )
        if self._is_error(data):
            return self._to_error(data)
        return data.get("sessions_ended", 0)

    def get_user(self, identity_id: str) -> ClientIdentity | ClientError:
        data = self._request("GET", f"/users/{identity_id}", headers=self._auth_headers())
        if self._is_error(data):
            return self._to_error(data)
        return self._parse_identity(data)

    def set_user_status(
        self, identity_id: str, is_active: bool
    ) -> ClientIdentity | ClientError:
        data = self._request(
            "PATCH", f"/users/{identity_id}/status",
            json={"is_active": is_active}, headers=self._auth_headers(),
        )
        if self._is_error(data):
            return self._to_error(data)
        return self._parse_identity(data)

    def revoke_sessions(self, identity_id: str) -> int | ClientError:
        data = self._request(
            "DELETE", f"/users/{identity_id}/sessions", headers=self._auth_headers()
        )
        if self._is_error(data):
            return self._to_error(data)
        return data.get("sessions_revoked", 0)

    # ── Lifecycle ──

    def health(self) -> dict[str, Any]:
        return self._request("GET", "/health")

    def close(self) -> None:
        """Close the HTTP client."""
        self._http.close()

    def __enter__(self) -> "AuthClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
