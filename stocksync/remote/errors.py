from __future__ import annotations

"""Remote provider error taxonomy.

HTTP status classification:
- 429 -> RateLimitExceeded
- 401 -> AuthenticationFailed
- 403 -> PermissionDenied
- other non-2xx -> RemoteApiError(status, body)
- transport failures (DNS, timeout, reset) -> RemoteApiError(None, message)
"""

__all__ = [
    "RemoteApiError",
    "RateLimitExceeded",
    "AuthenticationFailed",
    "PermissionDenied",
    "error_for_status",
]


class RemoteApiError(Exception):
    error_type = "REMOTE_API_ERROR"

    def __init__(self, status: int | None, body: str, platform: str = "remote") -> None:
        self.status = status
        self.body = body
        self.platform = platform
        label = f"HTTP {status}" if status is not None else "transport error"
        super().__init__(f"{platform} API error ({label}): {body}")


class RateLimitExceeded(RemoteApiError):
    error_type = "RATE_LIMIT_EXCEEDED"


class AuthenticationFailed(RemoteApiError):
    error_type = "AUTHENTICATION_FAILED"


class PermissionDenied(RemoteApiError):
    error_type = "PERMISSION_DENIED"


_BY_STATUS: dict[int, type[RemoteApiError]] = {
    429: RateLimitExceeded,
    401: AuthenticationFailed,
    403: PermissionDenied,
}


def error_for_status(status: int, body: str, platform: str) -> RemoteApiError:
    return _BY_STATUS.get(status, RemoteApiError)(status, body, platform)
