"""Tests for fedilock.core.result — Ok/Err envelope."""

from __future__ import annotations

import pytest

from fedilock.core.errors import BackendConstructionError
from fedilock.core.result import Err, Ok, try_result_with


class TestOk:
    def test_accessors(self):
        r = Ok(7)
        assert r.is_ok() and not r.is_err()
        assert r.unwrap() == 7
        assert r.unwrap_or(0) == 7


class TestErr:
    def test_unwrap_raises(self):
        with pytest.raises(ValueError, match="bad"):
            Err(ValueError("bad")).unwrap()

    def test_unwrap_or(self):
        assert Err(ValueError()).unwrap_or(5) == 5


class TestTryResultWith:
    def test_success(self):
        assert try_result_with(lambda: 3).unwrap() == 3

    def test_failure_is_wrapped(self):
        r = try_result_with(lambda: int("x"))
        assert r.is_err()
        assert isinstance(r.error, ValueError)

    def test_error_mapper(self):
        r = try_result_with(lambda: int("x"), lambda e: BackendConstructionError(str(e), cause=e))
        assert isinstance(r.error, BackendConstructionError)
        assert isinstance(r.error.cause, ValueError)
