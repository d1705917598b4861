# Controller Module
"""
Run control for SAKUIN.

- RunLock: ディレクトリ作成による実行ロック
- PendingQueue: 処理待ちIDのキューファイル
- ResourceMonitor: メモリと処理件数の監視
- RunController: 列挙・処理・フラッシュ・再起動の状態機械
- ExecRestart / InlineRestart: 再起動方式
"""

from sakuin.controller.lock import LOCK_NAME, LockOwner, RunLock
from sakuin.controller.queue import PendingQueue
from sakuin.controller.resources import ResourceMonitor
from sakuin.controller.run import RunController
from sakuin.controller.restart import (
    ExecRestart,
    InlineRestart,
    RestartStrategy,
    create_restart_strategy,
    run_until_complete,
)

__all__ = [
    # Lock
    "LOCK_NAME",
    "LockOwner",
    "RunLock",
    # Queue / resources
    "PendingQueue",
    "ResourceMonitor",
    # Run
    "RunController",
    # Restart
    "ExecRestart",
    "InlineRestart",
    "RestartStrategy",
    "create_restart_strategy",
    "run_until_complete",
]
