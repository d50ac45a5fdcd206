import pytest
from fastapi import HTTPException
from postgrest.exceptions import APIError

from journaldesk.lib.db_errors import error_code, http_error_from_db, is_unique_violation


def _api_error(code: str, message: str = "boom") -> APIError:
    return APIError({"code": code, "message": message, "details": None, "hint": None})


@pytest.mark.parametrize(
    "code,status",
    [("P0002", 404), ("40001", 409), ("23505", 409), ("42501", 502)],
)
def test_http_error_from_db_maps_sqlstate(code, status):
    err = http_error_from_db(_api_error(code), action="Status transition")
    assert isinstance(err, HTTPException)
    assert err.status_code == status


def test_non_api_errors_become_bad_gateway():
    err = http_error_from_db(RuntimeError("network down"), action="Submission")
    assert err.status_code == 502
    assert err.detail == "Submission failed"


def test_http_exception_passes_through():
    original = HTTPException(status_code=403, detail="nope")
    assert http_error_from_db(original, action="x") is original


def test_unique_violation_helpers():
    assert is_unique_violation(_api_error("23505"))
    assert not is_unique_violation(ValueError("23505"))
    assert error_code(RuntimeError("x")) == ""
