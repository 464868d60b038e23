"""Exceptions raised by the Drupal Services client.

Every network failure surfaces to the immediate caller of the top-level
operation (login, logout, fetch, save, destroy). Nothing is retried.
"""

from __future__ import annotations

import httpx


class DrupalServicesError(RuntimeError):
    """Base Drupal Services client error."""


class TransportError(DrupalServicesError):
    """Raised when a request cannot be completed at the transport level."""


class RequestError(TransportError):
    """Raised when the server answers with a non-2xx status or an unusable body."""

    def __init__(self, *, status_code: int, method: str, url: str, message: str) -> None:
        self.status_code = status_code
        self.method = method
        self.url = url
        self.message = message
        super().__init__(f"{method} {url} failed ({status_code}): {message}")


class TokenError(TransportError):
    """Raised when the CSRF token endpoint fails or returns no token."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class CoercionError(DrupalServicesError, ValueError):
    """Raised by strict coercion when a field value is not numeric."""

    def __init__(self, field: str | None, value: object) -> None:
        self.field = field
        self.value = value
        where = f" for field {field!r}" if field else ""
        super().__init__(f"Cannot coerce {value!r}{where} to an integer")


def safe_error_message(response: httpx.Response) -> str:
    """Extract a short, single-line error message from a Services response."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, str) and message.strip():
            return " ".join(message.split())[:200]
    # Services renders most errors as a one-element JSON list of strings.
    if isinstance(payload, list) and payload and isinstance(payload[0], str):
        return " ".join(payload[0].split())[:200]

    text = response.text.strip()
    if text:
        return " ".join(text.split())[:200]
    return response.reason_phrase or "unknown error"
