"""SAKUIN Error Handling Framework.

インデックス更新処理のための統一的な例外クラスとエラーハンドラを提供。

Example:
    >>> from sakuin.errors import (
    ...     SakuinError, LockContentionError, FlushFailureError, ErrorHandler
    ... )
    >>>
    >>> # カスタム例外
    >>> raise StorageError("Write failed", path="/data/index/w3.idx")
    >>>
    >>> # レンダリング失敗を記録して処理を継続
    >>> handler = ErrorHandler()
    >>> handler.handle(err, component="controller", reraise=False)
"""

from __future__ import annotations

import logging
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

__all__ = [
    # Base exceptions
    "SakuinError",
    "ConfigurationError",
    "ValidationError",
    "InvalidDocumentIdError",
    "StorageError",
    "LockContentionError",
    "FlushFailureError",
    "RenderError",
    # Error context
    "ErrorContext",
    "ErrorSeverity",
    # Error handler
    "ErrorHandlerConfig",
    "ErrorHandler",
    "create_error_handler",
]


# ============================================================
# Error Severity
# ============================================================


class ErrorSeverity(str, Enum):
    """エラー重要度"""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_logging_level(self) -> int:
        """ロギングレベルに変換"""
        mapping = {
            ErrorSeverity.DEBUG: logging.DEBUG,
            ErrorSeverity.INFO: logging.INFO,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL,
        }
        return mapping[self]


# ============================================================
# Error Context
# ============================================================


@dataclass
class ErrorContext:
    """エラーコンテキスト情報

    Attributes:
        error_id: ユニークなエラーID
        timestamp: エラー発生時刻
        component: エラー発生コンポーネント
        operation: 実行中の操作
        details: 追加の詳細情報
        stack_trace: スタックトレース
    """

    error_id: str = field(default_factory=lambda: f"err_{int(time.time() * 1000)}")
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    component: str | None = None
    operation: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    stack_trace: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "component": self.component,
            "operation": self.operation,
            "details": self.details,
            "stack_trace": self.stack_trace,
        }


# ============================================================
# Base Exception Classes
# ============================================================


class SakuinError(Exception):
    """SAKUIN基底例外クラス

    すべてのSAKUIN例外の基底クラス。
    構造化されたエラー情報を提供。

    Attributes:
        message: エラーメッセージ
        code: エラーコード
        severity: エラー重要度
        context: エラーコンテキスト
        cause: 原因となった例外

    Example:
        >>> raise SakuinError(
        ...     "Operation failed",
        ...     code="ERR001",
        ...     severity=ErrorSeverity.ERROR,
        ...     doc_id="wiki:start",
        ... )
    """

    default_code: str = "SAKUIN_ERROR"
    default_severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        severity: ErrorSeverity | None = None,
        cause: Exception | None = None,
        component: str | None = None,
        operation: str | None = None,
        **details: Any,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.severity = severity or self.default_severity
        self.cause = cause

        self.context = ErrorContext(
            component=component,
            operation=operation,
            details=details,
            stack_trace=traceback.format_exc() if cause else None,
        )

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.context.component:
            parts.append(f"(component: {self.context.component})")
        if self.context.operation:
            parts.append(f"(operation: {self.context.operation})")
        if self.cause:
            parts.append(f"caused by: {self.cause}")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"severity={self.severity.value!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "severity": self.severity.value,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }

    def with_context(self, **kwargs: Any) -> "SakuinError":
        """追加のコンテキストを設定"""
        self.context.details.update(kwargs)
        return self

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        **kwargs: Any,
    ) -> "SakuinError":
        """既存の例外からSakuinErrorを作成"""
        return cls(
            message=message or str(exc),
            cause=exc,
            **kwargs,
        )


# ============================================================
# Specific Exception Classes
# ============================================================


class ConfigurationError(SakuinError):
    """設定エラー

    設定ファイルの読み込みや検証に失敗した場合。
    """

    default_code = "CONFIG_ERROR"
    default_severity = ErrorSeverity.ERROR


class ValidationError(SakuinError):
    """バリデーションエラー"""

    default_code = "VALIDATION_ERROR"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        if field:
            self.context.details["field"] = field
        if value is not None:
            self.context.details["value"] = str(value)[:100]


class InvalidDocumentIdError(ValidationError):
    """ドキュメントIDが空、または正規化後に何も残らない場合"""

    default_code = "INVALID_DOCUMENT_ID"


class StorageError(SakuinError):
    """ストレージエラー

    インデックスファイルやマーカーファイルの読み書きに失敗した場合。
    """

    default_code = "STORAGE_ERROR"
    default_severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        path: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.path = path
        if path:
            self.context.details["path"] = path


class LockContentionError(SakuinError):
    """ロック競合エラー

    別の実行がインデクサのロックを保持している。
    この呼び出しは状態を一切変更せずに終了する。
    """

    default_code = "LOCK_CONTENTION"
    default_severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        lock_path: str | None = None,
        owner_pid: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        if lock_path:
            self.context.details["lock_path"] = lock_path
        if owner_pid is not None:
            self.context.details["owner_pid"] = owner_pid


class FlushFailureError(SakuinError):
    """フラッシュ失敗エラー

    1つ以上のパーティションを永続化できなかった。
    失敗したパーティションは dirty のまま残る。
    """

    default_code = "FLUSH_FAILURE"
    default_severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        partitions: list[tuple[str, str]] | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.partitions = list(partitions or [])
        self.context.details["partitions"] = [
            f"{name}{suffix}" for name, suffix in self.partitions
        ]


class RenderError(SakuinError):
    """レンダリングエラー

    外部レンダラがトークンやメタデータを生成できなかった。
    該当ドキュメントはスキップされ、実行は継続する。
    """

    default_code = "RENDER_ERROR"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        doc_id: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.doc_id = doc_id
        if doc_id:
            self.context.details["doc_id"] = doc_id


# ============================================================
# Error Handler
# ============================================================


@dataclass
class ErrorHandlerConfig:
    """エラーハンドラ設定"""

    log_errors: bool = True
    include_stack_trace: bool = False
    max_recent_errors: int = 100


class ErrorHandler:
    """統合エラーハンドラ

    エラーのログ記録、変換、集約を管理。

    Example:
        >>> handler = ErrorHandler()
        >>>
        >>> try:
        ...     renderer.render(doc_id)
        ... except RenderError as e:
        ...     handler.handle(e, component="controller", reraise=False)
    """

    def __init__(
        self,
        config: ErrorHandlerConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config or ErrorHandlerConfig()
        self.logger = logger or logging.getLogger("sakuin.errors")

        self._error_counts: dict[str, int] = {}
        self._recent_errors: list[SakuinError] = []

    def handle(
        self,
        error: Exception,
        component: str | None = None,
        operation: str | None = None,
        reraise: bool = True,
        **context: Any,
    ) -> SakuinError:
        """エラーを処理

        Args:
            error: 処理するエラー
            component: コンポーネント名
            operation: 操作名
            reraise: エラーを再送出するか
            **context: 追加のコンテキスト

        Returns:
            変換されたSakuinError

        Raises:
            SakuinError: reraise=Trueの場合
        """
        if isinstance(error, SakuinError):
            sakuin_error = error
            if component:
                sakuin_error.context.component = component
            if operation:
                sakuin_error.context.operation = operation
            sakuin_error.context.details.update(context)
        else:
            sakuin_error = SakuinError.from_exception(
                error,
                component=component,
                operation=operation,
                **context,
            )

        if self.config.log_errors:
            self._log_error(sakuin_error)

        self._update_stats(sakuin_error)

        if reraise:
            raise sakuin_error

        return sakuin_error

    def _log_error(self, error: SakuinError) -> None:
        """エラーをログ記録"""
        level = error.severity.to_logging_level()

        message = str(error)
        if self.config.include_stack_trace and error.context.stack_trace:
            message += f"\n{error.context.stack_trace}"

        self.logger.log(level, message, extra={"error": error.to_dict()})

    def _update_stats(self, error: SakuinError) -> None:
        """統計を更新"""
        error_type = error.__class__.__name__
        self._error_counts[error_type] = self._error_counts.get(error_type, 0) + 1

        self._recent_errors.append(error)
        if len(self._recent_errors) > self.config.max_recent_errors:
            self._recent_errors.pop(0)

    def get_stats(self) -> dict[str, Any]:
        """エラー統計を取得"""
        return {
            "error_counts": dict(self._error_counts),
            "total_errors": sum(self._error_counts.values()),
            "recent_error_count": len(self._recent_errors),
        }

    def get_recent_errors(self, limit: int = 10) -> list[dict[str, Any]]:
        """最近のエラーを取得"""
        return [e.to_dict() for e in self._recent_errors[-limit:]]

    def clear_stats(self) -> None:
        """統計をクリア"""
        self._error_counts.clear()
        self._recent_errors.clear()


def create_error_handler(
    config: ErrorHandlerConfig | None = None,
    logger: logging.Logger | None = None,
) -> ErrorHandler:
    """エラーハンドラを作成"""
    return ErrorHandler(config=config, logger=logger)
