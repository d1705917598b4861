# SAKUIN Error Handling Tests
"""
エラーハンドリングフレームワークの単体テスト
"""

import logging

import pytest

from sakuin.errors import (
    ConfigurationError,
    ErrorContext,
    ErrorHandler,
    ErrorHandlerConfig,
    ErrorSeverity,
    FlushFailureError,
    InvalidDocumentIdError,
    LockContentionError,
    RenderError,
    SakuinError,
    StorageError,
    ValidationError,
    create_error_handler,
)


# ============================================================
# ErrorSeverity Tests
# ============================================================


class TestErrorSeverity:
    """ErrorSeverityのテスト"""

    def test_to_logging_level(self):
        assert ErrorSeverity.DEBUG.to_logging_level() == logging.DEBUG
        assert ErrorSeverity.WARNING.to_logging_level() == logging.WARNING
        assert ErrorSeverity.CRITICAL.to_logging_level() == logging.CRITICAL


# ============================================================
# Exception Tests
# ============================================================


class TestSakuinError:
    """SakuinErrorのテスト"""

    def test_defaults(self):
        error = SakuinError("Something failed")
        assert error.code == "SAKUIN_ERROR"
        assert error.severity == ErrorSeverity.ERROR
        assert str(error) == "[SAKUIN_ERROR] Something failed"

    def test_str_with_context(self):
        cause = OSError("disk full")
        error = SakuinError(
            "Write failed", component="cache", operation="flush", cause=cause
        )
        text = str(error)
        assert "(component: cache)" in text
        assert "(operation: flush)" in text
        assert "caused by: disk full" in text

    def test_details(self):
        error = SakuinError("x", doc_id="wiki:start")
        assert error.context.details == {"doc_id": "wiki:start"}
        error.with_context(cursor=3)
        assert error.context.details["cursor"] == 3

    def test_to_dict(self):
        data = SakuinError("x", code="E1").to_dict()
        assert data["error_type"] == "SakuinError"
        assert data["code"] == "E1"
        assert data["context"]["details"] == {}

    def test_from_exception(self):
        error = StorageError.from_exception(OSError("boom"), path="/x")
        assert isinstance(error, StorageError)
        assert error.message == "boom"
        assert error.path == "/x"


class TestSpecificErrors:
    """個別例外クラスのテスト"""

    def test_hierarchy(self):
        assert issubclass(ConfigurationError, SakuinError)
        assert issubclass(InvalidDocumentIdError, ValidationError)
        assert issubclass(LockContentionError, SakuinError)

    def test_validation_error(self):
        error = ValidationError("bad", field="doc_id", value="x" * 200)
        assert error.context.details["field"] == "doc_id"
        assert len(error.context.details["value"]) == 100

    def test_storage_error(self):
        error = StorageError("cannot write", path="/data/index/w3.idx")
        assert error.code == "STORAGE_ERROR"
        assert error.context.details["path"] == "/data/index/w3.idx"

    def test_lock_contention(self):
        error = LockContentionError("held", lock_path="/locks/x", owner_pid=42)
        assert error.code == "LOCK_CONTENTION"
        assert error.context.details["owner_pid"] == 42

    def test_flush_failure(self):
        error = FlushFailureError("failed", partitions=[("i", "3"), ("title", "")])
        assert error.partitions == [("i", "3"), ("title", "")]
        assert error.context.details["partitions"] == ["i3", "title"]

    def test_render_error_is_warning(self):
        error = RenderError("cannot render", doc_id="a")
        assert error.severity == ErrorSeverity.WARNING
        assert error.doc_id == "a"


class TestErrorContext:
    """ErrorContextのテスト"""

    def test_to_dict(self):
        data = ErrorContext(component="lock").to_dict()
        assert data["component"] == "lock"
        assert data["error_id"].startswith("err_")


# ============================================================
# ErrorHandler Tests
# ============================================================


class TestErrorHandler:
    """ErrorHandlerのテスト"""

    def test_handle_reraise(self):
        handler = ErrorHandler()
        with pytest.raises(RenderError):
            handler.handle(RenderError("x", doc_id="a"), component="engine")

    def test_handle_without_reraise(self):
        handler = ErrorHandler()
        error = handler.handle(
            RenderError("x", doc_id="a"),
            component="engine",
            operation="index_page",
            reraise=False,
        )
        assert error.context.component == "engine"
        assert error.context.operation == "index_page"
        assert handler.get_stats()["error_counts"] == {"RenderError": 1}

    def test_wraps_plain_exception(self):
        handler = ErrorHandler()
        error = handler.handle(ValueError("bad"), reraise=False)
        assert isinstance(error, SakuinError)
        assert isinstance(error.cause, ValueError)

    def test_logs_at_severity(self, caplog):
        handler = ErrorHandler()
        with caplog.at_level(logging.WARNING, logger="sakuin.errors"):
            handler.handle(RenderError("render failed", doc_id="a"), reraise=False)
        assert any(
            r.levelno == logging.WARNING and "render failed" in r.getMessage()
            for r in caplog.records
        )

    def test_recent_errors_bounded(self):
        handler = create_error_handler(ErrorHandlerConfig(max_recent_errors=2))
        for i in range(5):
            handler.handle(SakuinError(f"e{i}"), reraise=False)
        stats = handler.get_stats()
        assert stats["total_errors"] == 5
        assert stats["recent_error_count"] == 2
        assert [e["message"] for e in handler.get_recent_errors()] == ["e3", "e4"]

    def test_clear_stats(self):
        handler = ErrorHandler()
        handler.handle(SakuinError("x"), reraise=False)
        handler.clear_stats()
        assert handler.get_stats()["total_errors"] == 0
