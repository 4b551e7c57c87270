"""Unit tests for filebox.engine.errors — Error hierarchy & serialization."""

import json
import pytest

from filebox.engine.errors import (
    FileBoxAuthRequired,
    FileBoxAuthorizationDenied,
    FileBoxBusyError,
    FileBoxConfigError,
    FileBoxError,
    FileBoxNotFoundError,
    FileBoxPersistenceError,
    FileBoxStorageError,
    FileBoxValidationError,
)


class TestFileBoxError:
    """Base error class tests."""

    def test_basic_creation(self):
        err = FileBoxError("something broke")
        assert err.message == "something broke"
        assert str(err) == "something broke"
        assert err.error_type == "FileBoxError"
        assert err.operation is None
        assert err.node_id is None

    def test_context_fields(self):
        err = FileBoxError("fail", execution_id="exec_abc", operation="rename", node_id="n1")
        assert err.execution_id == "exec_abc"
        assert err.operation == "rename"
        assert err.node_id == "n1"

    def test_to_dict(self):
        err = FileBoxError("fail", operation="delete", node_id="n1", custom="x")
        d = err.to_dict()
        assert d["error_type"] == "FileBoxError"
        assert d["message"] == "fail"
        assert d["operation"] == "delete"
        assert d["node_id"] == "n1"
        assert d["context"] == {"custom": "x"}
        assert "timestamp" in d

    def test_to_json(self):
        parsed = json.loads(FileBoxError("fail").to_json())
        assert parsed["error_type"] == "FileBoxError"
        assert parsed["message"] == "fail"

    def test_repr(self):
        r = repr(FileBoxError("fail", operation="rename", node_id="n1"))
        assert "FileBoxError: fail" in r
        assert "operation=rename" in r
        assert "node_id=n1" in r


class TestAuthorizationDenied:
    def test_owner_fields(self):
        err = FileBoxAuthorizationDenied(
            "This item can only be unlocked by user: u1@example.com",
            user_id="u2",
            owner_id="u1",
            owner_contact="u1@example.com",
        )
        assert err.owner_id == "u1"
        assert err.owner_contact == "u1@example.com"
        d = err.to_dict()
        assert d["owner_contact"] == "u1@example.com"
        assert d["user_id"] == "u2"


class TestValidationError:
    def test_field(self):
        err = FileBoxValidationError("Name cannot be empty", field="name")
        assert err.field == "name"
        assert err.to_dict()["field"] == "name"


class TestPersistenceFamily:
    def test_not_found_is_persistence_error(self):
        err = FileBoxNotFoundError("missing", collection="folders")
        assert isinstance(err, FileBoxPersistenceError)
        assert err.to_dict()["collection"] == "folders"

    def test_storage_error_status(self):
        err = FileBoxStorageError("rejected", status_code=413)
        assert isinstance(err, FileBoxPersistenceError)
        assert err.status_code == 413
        assert err.to_dict()["status_code"] == 413


class TestHierarchy:
    @pytest.mark.parametrize("cls", [
        FileBoxValidationError,
        FileBoxAuthRequired,
        FileBoxAuthorizationDenied,
        FileBoxBusyError,
        FileBoxConfigError,
        FileBoxPersistenceError,
        FileBoxNotFoundError,
        FileBoxStorageError,
    ])
    def test_all_derive_from_base(self, cls):
        assert issubclass(cls, FileBoxError)

    def test_denial_is_not_persistence_error(self):
        with pytest.raises(FileBoxAuthorizationDenied):
            try:
                raise FileBoxAuthorizationDenied("denied")
            except FileBoxPersistenceError:
                pytest.fail("Denial must not be caught as a persistence failure")
