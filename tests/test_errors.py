"""Tests for the storage error hierarchy."""

import pytest

from pkgstore import errors


@pytest.mark.parametrize(
    "error_class, status",
    (
        (errors.NotFound, 404),
        (errors.Conflict, 409),
        (errors.BadRequest, 400),
        (errors.InternalError, 500),
        (errors.InvariantViolation, 500),
        (errors.ServiceUnavailable, 503),
    ),
)
def test_http_status(error_class, status):
    err = error_class("boom")
    assert isinstance(err, errors.StorageError)
    assert err.http_status == status
    assert err.message == "boom"
    assert str(err) == "boom"


def test_default_messages():
    assert errors.NotFound().message == "no such package available"
    assert errors.InvariantViolation().message == "this should not happen"


def test_code_is_optional():
    assert errors.BadRequest().code is None
    assert errors.NotFound(code="ENOENT").code == "ENOENT"


def test_invariant_violation_is_internal():
    assert issubclass(errors.InvariantViolation, errors.InternalError)


def test_package_already_exist():
    err = errors.package_already_exist("foo", code="EEXISTS")
    assert isinstance(err, errors.Conflict)
    assert err.message == "foo package already exist"
    assert err.code == "EEXISTS"


class _WithMessage(Exception):
    def __init__(self, message):
        super().__init__("unused")
        self.message = message


@pytest.mark.parametrize(
    "exc, exp",
    (
        (ValueError("plain"), "plain"),
        (_WithMessage("carried"), "carried"),
        (_WithMessage(""), "unused"),
        (errors.Conflict("nope"), "nope"),
    ),
)
def test_message_of(exc, exp):
    assert errors.message_of(exc) == exp


def test_repr():
    assert repr(errors.NotFound(code="ENOENT")) == (
        "NotFound('no such package available', code='ENOENT')"
    )
