"""
持久化 adapter 與存取輔助函數。

Store 核心本身不做 I/O：保存與恢復都透過注入的 adapter 進行，
恢復則以保留的 restore_state 動作整體替換狀態。
"""

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from .actions import restore_state
from .errors import PersistenceError
from .immutable_utils import to_dict, to_immutable
from .types import PersistenceAdapter

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class PersistedState(BaseModel):
    """持久化檔案的外層結構。"""

    version: int = FORMAT_VERSION
    saved_at: float
    state: Any = None


class MemoryAdapter:
    """
    保存在行程記憶體中的 adapter，適合測試與短生命週期的快取。
    """

    def __init__(self, state: Any = None) -> None:
        self._state = state
        self.save_count = 0

    def save(self, state: Any) -> None:
        self._state = state
        self.save_count += 1

    def load(self) -> Optional[Any]:
        return self._state

    def clear(self) -> None:
        self._state = None


class JsonFileAdapter:
    """
    以 JSON 檔案保存狀態的 adapter。

    檔案內容為 {"version", "saved_at", "state"}，寫入時先寫暫存檔再替換，
    避免留下寫到一半的檔案。

    Args:
        filepath: 檔案路徑
        state_model: 可選的 pydantic 模型；提供時 load 以它驗證並返回模型實例，
            否則返回以 to_immutable 轉換後的 Map 樹
    """

    def __init__(self, filepath: Union[str, Path], state_model: Optional[Type[BaseModel]] = None) -> None:
        self.filepath = Path(filepath)
        self.state_model = state_model

    def save(self, state: Any) -> None:
        envelope = PersistedState(saved_at=time.time(), state=to_dict(state))
        try:
            payload = envelope.model_dump_json()
        except (TypeError, ValueError) as err:
            raise PersistenceError(f"state is not serializable: {err}", operation="save",
                                   path=str(self.filepath)) from err
        try:
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.filepath.parent, prefix=self.filepath.name, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_path, self.filepath)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as err:
            raise PersistenceError(f"write failed: {err}", operation="save", path=str(self.filepath)) from err
        logger.debug("saved state to %s", self.filepath)

    def load(self) -> Optional[Any]:
        if not self.filepath.exists():
            return None
        try:
            text = self.filepath.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as err:
            raise PersistenceError(f"read failed: {err}", operation="load", path=str(self.filepath)) from err

        try:
            envelope = PersistedState.model_validate_json(text)
        except ValidationError as err:
            raise PersistenceError(f"corrupt state file: {err.error_count()} error(s)", operation="load",
                                   path=str(self.filepath)) from err
        if envelope.version != FORMAT_VERSION:
            raise PersistenceError(f"unsupported format version {envelope.version}", operation="load",
                                   path=str(self.filepath))

        if self.state_model is None:
            return to_immutable(envelope.state)
        try:
            return self.state_model.model_validate(envelope.state)
        except ValidationError as err:
            raise PersistenceError(f"state does not match {self.state_model.__name__}", operation="load",
                                   path=str(self.filepath)) from err

    def clear(self) -> None:
        if self.filepath.exists():
            self.filepath.unlink()


def persist_store(store: Any, adapter: PersistenceAdapter) -> None:
    """
    在 Store 鎖內讀取當前狀態並交給 adapter 保存，確保保存時狀態不在變動中。

    Raises:
        PersistenceError: adapter 保存失敗
    """
    with store.lock:
        state = store.state
        adapter.save(state)


def restore_store(store: Any, adapter: PersistenceAdapter) -> bool:
    """
    從 adapter 載入狀態；載入成功時 dispatch restore_state 動作整體替換狀態。

    沒有已保存的狀態時不 dispatch 任何動作；載入失敗時也不 dispatch，
    並把 PersistenceError 拋給呼叫者。

    Returns:
        是否 dispatch 了恢復動作
    """
    state = adapter.load()
    if state is None:
        logger.debug("nothing to restore")
        return False
    store.dispatch(restore_state(state))
    return True
