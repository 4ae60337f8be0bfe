"""Response envelope and raw HTTP shapes for the generation API.

Models
------
ApiResponse
    JSON envelope returned by every non-artifact response:
    ``{success, data, error, timestamp}``.
HttpRequest / HttpResponse
    Transport-neutral request and response passed through
    :class:`~stablediff.api.router.RequestRouter`.  The FastAPI app converts
    to and from these; tests can drive the router with them directly.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

JSON_CONTENT_TYPE = "application/json"
BMP_CONTENT_TYPE = "image/bmp"


class ApiResponse(BaseModel):
    """Envelope for JSON responses.

    Attributes:
        success: Whether the operation succeeded.
        data: Operation result (task id, task record, id list) on success.
        error: Human-readable message on failure.
        timestamp: Server time in nanoseconds when the response was built.
    """

    success: bool
    data: Any = None
    error: str | None = None
    timestamp: int = Field(..., description="Server time in nanoseconds.")

    @classmethod
    def ok(cls, data: Any, timestamp: int) -> ApiResponse:
        return cls(success=True, data=data, timestamp=timestamp)

    @classmethod
    def fail(cls, error: str, timestamp: int) -> ApiResponse:
        return cls(success=False, error=error, timestamp=timestamp)


@dataclass
class HttpRequest:
    """Inbound request: verb, path (query allowed), ordered headers, raw body."""

    method: str
    url: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


@dataclass
class HttpResponse:
    """Outbound response: status code, ordered headers, raw body."""

    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        """Return the first header value named *name* (case-insensitive)."""
        wanted = name.lower()
        return next((value for key, value in self.headers if key.lower() == wanted), None)

    @property
    def content_type(self) -> str | None:
        return self.header("Content-Type")

    def json(self) -> Any:
        return json.loads(self.body)
