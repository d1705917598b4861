# SAKUIN Config Manager
"""
sakuin.api.config - 設定マネージャー
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from sakuin.api.base import RestartMode, SakuinConfig, parse_size
from sakuin.errors import ConfigurationError

_PATH_FIELDS = ("pages_dir", "meta_dir", "index_dir", "lock_dir", "tmp_dir")


class ConfigManager:
    """設定マネージャー"""

    def __init__(self, config_path: str | Path | None = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: SakuinConfig | None = None

    @classmethod
    def from_yaml(cls, path: str | Path) -> ConfigManager:
        """YAMLファイルから読み込み"""
        manager = cls(path)
        manager.load()
        return manager

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> ConfigManager:
        """辞書から作成"""
        manager = cls()
        manager._config = cls._parse_config(config_dict)
        return manager

    @classmethod
    def from_config(cls, config: SakuinConfig) -> ConfigManager:
        """SakuinConfigから作成"""
        manager = cls()
        manager._config = config
        return manager

    def load(self) -> SakuinConfig:
        """設定を読み込み"""
        if not self.config_path or not self.config_path.exists():
            self._config = SakuinConfig()
            return self._config

        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in {self.config_path}",
                cause=e,
                path=str(self.config_path),
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config root must be a mapping: {self.config_path}",
                path=str(self.config_path),
            )

        self._config = self._parse_config(data)
        return self._config

    def save(self, path: str | Path | None = None) -> None:
        """設定を保存"""
        if self._config is None:
            return

        save_path = Path(path) if path else self.config_path
        if save_path is None:
            raise ValueError("No path specified for saving config")

        save_path.parent.mkdir(parents=True, exist_ok=True)

        data = self._config_to_dict(self._config)
        with open(save_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    @staticmethod
    def _parse_config(data: dict[str, Any]) -> SakuinConfig:
        """設定をパース"""
        # restart_mode の変換
        restart_raw = data.get("restart_mode", "exec")
        try:
            restart_mode = (
                restart_raw
                if isinstance(restart_raw, RestartMode)
                else RestartMode(str(restart_raw).lower())
            )
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid restart_mode: {restart_raw}", field="restart_mode"
            ) from e

        memory_limit = str(data.get("memory_limit", "512M"))
        try:
            parse_size(memory_limit)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid memory_limit: {memory_limit}", field="memory_limit"
            ) from e

        high_water = float(data.get("memory_high_water", 0.5))
        if not 0 < high_water <= 1:
            raise ConfigurationError(
                f"memory_high_water must be in (0, 1]: {high_water}",
                field="memory_high_water",
            )

        paths = {
            name: Path(data[name]) if data.get(name) else None
            for name in _PATH_FIELDS
        }

        return SakuinConfig(
            data_dir=Path(data.get("data_dir", "./data")),
            memory_limit=memory_limit,
            memory_high_water=high_water,
            max_runs=int(data.get("max_runs", 0)),
            restart_mode=restart_mode,
            skip_acl=bool(data.get("skip_acl", True)),
            detect_deleted=bool(data.get("detect_deleted", True)),
            min_word_length=int(data.get("min_word_length", 2)),
            log_level=str(data.get("log_level", "info")),
            log_file=data.get("log_file"),
            **paths,
        )

    @staticmethod
    def _config_to_dict(config: SakuinConfig) -> dict[str, Any]:
        """SakuinConfigを辞書に変換"""
        data: dict[str, Any] = {
            "data_dir": str(config.data_dir),
            "memory_limit": config.memory_limit,
            "memory_high_water": config.memory_high_water,
            "max_runs": config.max_runs,
            "restart_mode": config.restart_mode.value,
            "skip_acl": config.skip_acl,
            "detect_deleted": config.detect_deleted,
            "min_word_length": config.min_word_length,
            "log_level": config.log_level,
            "log_file": config.log_file,
        }
        for name in _PATH_FIELDS:
            value = getattr(config, name)
            data[name] = str(value) if value else None
        return data

    @property
    def config(self) -> SakuinConfig:
        """設定を取得"""
        if self._config is None:
            self._config = self.load()
        return self._config


def load_config(path: str | Path | None = None) -> SakuinConfig:
    """設定を読み込むヘルパー関数"""
    manager = ConfigManager(path)
    return manager.load()
