"""Errors reported by the package storage engine.

Every failure that reaches a caller is one of the `StorageError`
subclasses below. Transport errors raised by the google client libraries
are wrapped with their original message before being reported.
"""

import typing as t


class ConfigError(ValueError):
    """The storage backend was configured incorrectly."""


class StorageError(Exception):
    """A storage failure with a message, an HTTP status and an optional code.

    Attributes:
        message: human-readable error description
        http_status: the HTTP status the registry should answer with
        code: an optional errno-style code (e.g. ``ENOENT``)
    """

    http_status = 500
    default_message = "internal server error"

    def __init__(
        self, message: t.Optional[str] = None, code: t.Optional[str] = None
    ) -> None:
        self.message = message if message is not None else self.default_message
        self.code = code
        super().__init__(self.message)

    def __repr__(self) -> str:
        return "{}({!r}, code={!r})".format(
            self.__class__.__name__, self.message, self.code
        )


class NotFound(StorageError):
    """The document, artifact or entity does not exist."""

    http_status = 404
    default_message = "no such package available"


class Conflict(StorageError):
    """The document or artifact already exists."""

    http_status = 409
    default_message = "package already exist"


class BadRequest(StorageError):
    """A client or stream fault, including aborted transfers."""

    http_status = 400
    default_message = "bad request"


class InternalError(StorageError):
    """An unexpected transport failure or anomaly."""

    http_status = 500


class InvariantViolation(InternalError):
    """A state the storage engine should never observe."""

    default_message = "this should not happen"


class ServiceUnavailable(StorageError):
    """The operation is deliberately not implemented by this backend."""

    http_status = 503
    default_message = "service unavailable"


def package_already_exist(name: str, code: t.Optional[str] = None) -> Conflict:
    return Conflict(f"{name} package already exist", code=code)


def message_of(err: BaseException) -> str:
    """Return the most useful message carried by an exception."""
    message = getattr(err, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(err)
