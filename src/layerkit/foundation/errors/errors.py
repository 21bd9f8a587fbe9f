"""Exception hierarchy for the middleware core.

Four kinds of failure are distinguished:

- configuration errors (``MiddlewareTypeError``) raised at registration time
- reentrancy errors (``NextCalledMultipleTimesError``) raised by ``next``
- exchange failures, usually ``HttpError``, carrying a status for the client
- assertion failures (``NonErrorRaisedError``) for non-exception values that
  reach an error handler
"""

from __future__ import annotations

from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field

from layerkit.foundation import statuses


class ErrorInfo(BaseModel):
    """Serializable view of an HttpError.

    Attributes:
        status: HTTP status code (4xx/5xx)
        message: Human-readable message
        expose: Whether the message is safe to send to the client
        headers: Extra response headers set when the error is rendered
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "title": "HTTP Error",
            "examples": [{"status": 404, "message": "Not Found", "expose": True, "headers": {}}],
        },
    )

    status: Annotated[int, Field(ge=400, le=599)]
    message: Annotated[str, Field(min_length=1)]
    expose: bool = False
    headers: dict[str, str] = Field(default_factory=dict)

    @computed_field
    @property
    def reason(self) -> str:
        return statuses.reason(self.status) or str(self.status)

    @computed_field
    @property
    def is_client_error(self) -> bool:
        return self.status < 500


class LayerkitError(Exception):
    """Base class for all layerkit errors."""


class MiddlewareTypeError(LayerkitError, TypeError):
    """Raised when something that is not middleware is registered or composed."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"middleware must be an async callable accepting (ctx, next), got {value!r}")


class NextCalledMultipleTimesError(LayerkitError, RuntimeError):
    """Raised when a middleware awaits its ``next`` more than once."""

    def __init__(self, message: str = "next() called multiple times") -> None:
        super().__init__(message)


class NonErrorRaisedError(LayerkitError, AssertionError):
    """A value that is not an exception reached an error handler."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"non-error thrown: {value!r}")


class HttpError(LayerkitError):
    """Exchange failure with an HTTP status.

    ``expose`` defaults to True for client errors (4xx) so their message is
    sent to the client, and False for server errors.

    Example:
        >>> err = HttpError(404)
        >>> err.status, str(err), err.expose
        (404, 'Not Found', True)
    """

    def __init__(
        self,
        status: int = 500,
        message: str | None = None,
        *,
        expose: bool | None = None,
        headers: dict[str, str] | None = None,
        **props: object,
    ) -> None:
        if not statuses.is_valid(status) or status < 400:
            status = 500
        self.status = status
        self.expose = status < 500 if expose is None else expose
        self.headers = dict(headers or {})
        for key, value in props.items():
            setattr(self, key, value)
        super().__init__(message or statuses.reason(status))

    @property
    def status_code(self) -> int:
        return self.status

    @property
    def message(self) -> str:
        return str(self)

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(status=self.status, message=self.message, expose=self.expose, headers=self.headers)

    @classmethod
    def from_exception(cls, exc: BaseException, status: int = 500, **props: object) -> Self:
        """Wrap an arbitrary exception, keeping its message and chaining it as the cause."""
        err = cls(status, str(exc) or None, **props)
        err.__cause__ = exc
        return err


def create_error(status: int = 500, message: str | None = None, **props: object) -> HttpError:
    """Create an HttpError; unknown or non-error statuses become 500."""
    return HttpError(status, message, **props)
