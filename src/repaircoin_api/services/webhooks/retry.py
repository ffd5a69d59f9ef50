"""Classify processing errors as transient (retryable) or terminal."""

from __future__ import annotations

import errno
import socket

import httpx


RETRYABLE_ERROR_CODES: tuple[str, ...] = (
    "ECONNREFUSED",
    "ETIMEDOUT",
    "ENOTFOUND",
    "ENETUNREACH",
    "EAI_AGAIN",
)


def error_code(exc: BaseException) -> str | None:
    """Best-effort symbolic network error code for an exception."""

    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return code

    if isinstance(exc, socket.gaierror):
        return "EAI_AGAIN" if exc.errno == socket.EAI_AGAIN else "ENOTFOUND"
    if isinstance(exc, ConnectionRefusedError):
        return "ECONNREFUSED"
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return "ETIMEDOUT"

    errno_value = getattr(exc, "errno", None)
    if isinstance(errno_value, int) and errno_value in errno.errorcode:
        return errno.errorcode[errno_value]

    if isinstance(exc, httpx.ConnectError):
        cause = exc.__cause__ or exc.__context__
        if cause is not None and cause is not exc:
            nested = error_code(cause)
            if nested:
                return nested
        return "ECONNREFUSED"
    return None


def is_retryable(exc: BaseException) -> bool:
    code = error_code(exc)
    if code in RETRYABLE_ERROR_CODES:
        return True
    message = str(exc)
    return any(candidate in message for candidate in RETRYABLE_ERROR_CODES)


__all__ = ["RETRYABLE_ERROR_CODES", "error_code", "is_retryable"]
