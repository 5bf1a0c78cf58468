import pytest

from kasset.errors import (
    CLIENT_ERROR_TYPE,
    ContentFormatError,
    KassetError,
    ResultError,
    RetryBudgetExceeded,
    RootMismatchError,
    ValidationError,
    ValidationErrors,
)
from kasset.nquads import NQuadsFormatError


def test_hierarchy():
    assert issubclass(NQuadsFormatError, ContentFormatError)
    assert issubclass(ValidationErrors, ValidationError)
    assert issubclass(RootMismatchError, KassetError)


def test_validation_error_fields():
    err = ValidationError("frequency", "must be a non-negative number", -1)
    assert str(err) == "frequency: must be a non-negative number"
    assert err.value == -1


def test_validation_errors_mirror_first():
    err = ValidationErrors([ValidationError("a", "bad", 1), ValidationError("b", "worse", 2)])
    assert (err.field, err.message, err.value) == ("a", "bad", 1)
    assert str(err) == "Validation failed: a: bad; b: worse"


def test_result_error_from_exception():
    entry = ResultError.from_exception(RetryBudgetExceeded("publish", "publish-0001", 6))
    assert entry.error_type == CLIENT_ERROR_TYPE
    assert entry.kind == "RetryBudgetExceeded"
    assert entry.to_dict() == {
        "error_type": CLIENT_ERROR_TYPE,
        "error_message": "Unable to get results. Max number of retries reached.",
        "kind": "RetryBudgetExceeded",
    }


def test_root_mismatch_keeps_roots():
    err = RootMismatchError("0xaa", "0xbb")
    assert (err.expected, err.actual) == ("0xaa", "0xbb")


def test_result_error_is_frozen():
    entry = ResultError("T", "m")
    with pytest.raises(AttributeError):
        entry.message = "changed"
