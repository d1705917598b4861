"""Run Lock.

ディレクトリ作成をミューテックスとして使う実行ロック。

``<lock_dir>/_sakuin_indexer.lock/`` の作成に成功したプロセスだけが
インデックスとマーカーを書き換えられる。ディレクトリ内の ``owner.json`` に
保持プロセスの PID と引き継ぎトークンを記録する。

古いロックの削除は明示的な操作（``--remove-locks`` / ``sakuin index unlock``）
でのみ行い、自動では行わない。
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import psutil

from sakuin.errors import LockContentionError, StorageError

logger = logging.getLogger(__name__)

LOCK_NAME = "_sakuin_indexer.lock"
OWNER_FILE = "owner.json"


@dataclass
class LockOwner:
    """ロック保持者の情報

    Attributes:
        pid: 保持プロセスの PID
        token: 引き継ぎトークン
        acquired_at: 取得時刻（UNIX時刻）
    """

    pid: int
    token: str
    acquired_at: float

    @property
    def alive(self) -> bool:
        """保持プロセスが生存しているか"""
        return psutil.pid_exists(self.pid)

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "pid": self.pid,
            "token": self.token,
            "acquired_at": self.acquired_at,
        }


class RunLock:
    """実行ロック

    Example:
        >>> lock = RunLock(Path("./data/locks"))
        >>> token = lock.acquire()
        >>> lock.held
        True
        >>> lock.release()
    """

    def __init__(self, lock_dir: Path, name: str = LOCK_NAME):
        self.lock_dir = Path(lock_dir)
        self.path = self.lock_dir / name
        self._token: str | None = None

    @property
    def held(self) -> bool:
        """このインスタンスがロックを保持しているか"""
        return self._token is not None

    @property
    def token(self) -> str | None:
        """保持中のトークン"""
        return self._token

    def exists(self) -> bool:
        """ロックディレクトリが存在するか（保持者を問わない）"""
        return self.path.is_dir()

    def owner_info(self) -> LockOwner | None:
        """ロック保持者の情報（読めなければ None）"""
        try:
            data = json.loads((self.path / OWNER_FILE).read_text(encoding="utf-8"))
            return LockOwner(
                pid=int(data["pid"]),
                token=str(data["token"]),
                acquired_at=float(data.get("acquired_at", 0.0)),
            )
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable lock owner file in {self.path}: {e}")
            return None

    def acquire(self, remove_stale: bool = False) -> str:
        """ロックを取得

        Args:
            remove_stale: 既存のロックを削除してから取得する

        Returns:
            引き継ぎトークン

        Raises:
            LockContentionError: 別の実行がロックを保持している場合
        """
        if self.held:
            return self._token  # type: ignore[return-value]

        if remove_stale and self.exists():
            owner = self.owner_info()
            logger.warning(
                f"Removing existing lock {self.path}"
                + (f" (owner pid {owner.pid})" if owner else "")
            )
            self.remove()

        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
            self.path.mkdir()
        except FileExistsError:
            owner = self.owner_info()
            raise LockContentionError(
                f"Indexer lock is held by another run: {self.path}",
                lock_path=str(self.path),
                owner_pid=owner.pid if owner else None,
                component="lock",
                operation="acquire",
            ) from None
        except OSError as e:
            raise StorageError(
                f"Cannot create lock {self.path}",
                path=str(self.path),
                cause=e,
                operation="acquire",
            ) from e

        token = uuid.uuid4().hex
        self._write_owner(token)
        self._token = token
        logger.debug(f"Acquired lock {self.path}")
        return token

    def adopt(self, token: str) -> str:
        """前のプロセスが引き継いだロックを受け取る

        ロックが存在しない場合は新たに取得する。

        Raises:
            LockContentionError: トークンが一致しない場合
        """
        if not self.exists():
            logger.info(f"Handed-off lock {self.path} is gone, acquiring a new one")
            return self.acquire()

        owner = self.owner_info()
        if owner is None or owner.token != token:
            raise LockContentionError(
                f"Lock token does not match the current owner of {self.path}",
                lock_path=str(self.path),
                owner_pid=owner.pid if owner else None,
                component="lock",
                operation="adopt",
            )

        self._write_owner(token)
        self._token = token
        logger.debug(f"Adopted lock {self.path} (previous pid {owner.pid})")
        return token

    def hand_off(self) -> str:
        """ロックディレクトリを残したまま保持を手放す

        Returns:
            後継プロセスに渡すトークン
        """
        if self._token is None:
            raise RuntimeError("Cannot hand off a lock that is not held")
        token = self._token
        self._token = None
        logger.debug(f"Handing off lock {self.path}")
        return token

    def release(self) -> None:
        """ロックを解放"""
        if self._token is None:
            return
        owner = self.owner_info()
        if owner is not None and owner.token != self._token:
            logger.warning(f"Lock {self.path} was taken over, leaving it in place")
            self._token = None
            return
        self.remove()
        self._token = None
        logger.debug(f"Released lock {self.path}")

    def remove(self) -> bool:
        """ロックディレクトリを強制的に削除

        Returns:
            削除した場合 True
        """
        if not self.path.exists():
            return False
        try:
            shutil.rmtree(self.path)
        except OSError as e:
            raise StorageError(
                f"Failed to remove lock {self.path}",
                path=str(self.path),
                cause=e,
                operation="remove",
            ) from e
        return True

    def _write_owner(self, token: str) -> None:
        owner = LockOwner(pid=os.getpid(), token=token, acquired_at=time.time())
        try:
            (self.path / OWNER_FILE).write_text(
                json.dumps(owner.to_dict()), encoding="utf-8"
            )
        except OSError as e:
            raise StorageError(
                f"Cannot write lock owner file in {self.path}",
                path=str(self.path),
                cause=e,
                operation="write_owner",
            ) from e
