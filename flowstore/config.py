"""
Store 配置與日誌設定。
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ConfigurationError

_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class StoreConfig(BaseModel):
    """
    Store 的配置。

    屬性:
        name: Store 名稱，用於日誌
        log_level: flowstore 日誌器的等級
        freeze_state: 是否把初始狀態與恢復的狀態轉成不可變結構
        persist_keys: PersistMiddleware 預設保存的子狀態鍵，None 表示整個狀態
        raise_subscriber_errors: 訂閱者失敗時是否向 dispatch 呼叫者拋出 SubscriptionError
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = "store"
    log_level: str = "WARNING"
    freeze_state: bool = True
    persist_keys: Optional[List[str]] = None
    raise_subscriber_errors: bool = Field(default=True)

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LEVELS)}")
        return level


def load_config(**overrides) -> StoreConfig:
    """
    以關鍵字參數建立 StoreConfig，驗證失敗時拋出 ConfigurationError。
    """
    try:
        return StoreConfig(**overrides)
    except ValueError as err:
        raise ConfigurationError(str(err), component="StoreConfig") from err


def configure_logging(level: str = "WARNING", handler: Optional[logging.Handler] = None) -> logging.Logger:
    """
    設定 flowstore 套件日誌器的等級與輸出。

    庫本身不安裝 handler；宿主應用可呼叫此函數快速取得主控台輸出。
    """
    root = logging.getLogger("flowstore")
    root.setLevel(level.upper())
    if handler is None and not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    if handler is not None:
        root.addHandler(handler)
    return root
