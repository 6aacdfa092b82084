"""Domain errors and their HTTP representations."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from http import HTTPStatus


class InternalError(Exception):
    """An error raised by the domain, use-case or storage layers."""

    kind = "internal_server_error"

    def __init__(self, message: str, err: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.err = err if err is not None else self.kind

    def __str__(self) -> str:
        return self.message


class NotFoundError(InternalError):
    """The requested resource does not exist."""

    kind = "not_found"


class BadRequestError(InternalError):
    """The input given by the caller is invalid."""

    kind = "bad_request"


class InternalServerError(InternalError):
    """Something failed on the server side."""

    kind = "internal_server_error"


@dataclass(frozen=True)
class Cause:
    """A single field-level reason for a rejected request."""

    field: str
    message: str


class RestError(Exception):
    """An error in the shape sent back to HTTP clients."""

    def __init__(
        self,
        message: str,
        err: str,
        code: int,
        causes: list[Cause] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.err = err
        self.code = code
        self.causes = causes

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        """Return the JSON body for this error."""
        return {
            "message": self.message,
            "err": self.err,
            "code": self.code,
            "causes": None if self.causes is None else [asdict(c) for c in self.causes],
        }


def bad_request_error(message: str, *args: Cause) -> RestError:
    """Build a 400 error, optionally carrying field causes."""
    return RestError(
        message,
        "bad_request",
        int(HTTPStatus.BAD_REQUEST),
        list(args) if args else None,
    )


def not_found_error(message: str) -> RestError:
    """Build a 404 error."""
    return RestError(message, "not_found", int(HTTPStatus.NOT_FOUND))


def internal_server_error(message: str) -> RestError:
    """Build a 500 error."""
    return RestError(message, "internal_server", int(HTTPStatus.INTERNAL_SERVER_ERROR))


def convert_error(error: InternalError) -> RestError:
    """Map a domain error onto the matching HTTP error."""
    if error.err == "bad_request":
        return bad_request_error(str(error))
    if error.err == "not_found":
        return not_found_error(str(error))
    return internal_server_error(str(error))