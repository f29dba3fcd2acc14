"""
Pylayer 内存引擎

数据保存在进程内字典中，适合测试和临时数据。事务把写入缓存在覆盖层中，
提交时一次性应用，异常时直接丢弃。
"""

import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple

from ..common.exceptions import TransactionError
from ..common.options import EngineOptions, MemoryEngineOptions
from .base import Key, KeyValueEngine, has_prefix, key_sort_key


# 事务覆盖层中的删除标记
_DELETED = object()


def _select_range(data: Mapping[Key, Any], prefix: Key, start_after: Optional[Key],
                  limit: Optional[int]) -> List[Tuple[Key, Any]]:
    keys = sorted((k for k in data if has_prefix(k, prefix)), key=key_sort_key)
    if start_after is not None:
        after = key_sort_key(start_after)
        keys = [k for k in keys if key_sort_key(k) > after]
    if limit is not None:
        keys = keys[:limit]
    return [(k, copy.deepcopy(data[k])) for k in keys]


def _merge_writes(data: Dict[Key, Any], writes: Mapping[Key, Any]) -> None:
    for key, value in writes.items():
        if value is _DELETED:
            data.pop(key, None)
        else:
            data[key] = value


class MemoryEngine(KeyValueEngine):
    """内存引擎（URL: memory://）"""

    ENGINE_NAME = 'memory'
    REQUIRED_DEPENDENCIES = []  # 标准库

    def __init__(self, url: str, options: Optional[EngineOptions] = None):
        super().__init__(url, options or MemoryEngineOptions())
        self._data: Dict[Key, Any] = {}

    async def get(self, key: Key) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, key: Key, value: Any) -> None:
        self._apply({key: copy.deepcopy(value)})

    async def delete(self, key: Key) -> bool:
        if key not in self._data:
            return False
        self._apply({key: _DELETED})
        return True

    async def get_range(self, prefix: Key, start_after: Optional[Key] = None,
                        limit: Optional[int] = None) -> List[Tuple[Key, Any]]:
        return _select_range(self._data, prefix, start_after, limit)

    async def destroy_all(self, prefix: Key) -> None:
        self._apply({k: _DELETED for k in self._data if has_prefix(k, prefix)})

    def _apply(self, writes: Mapping[Key, Any]) -> None:
        """应用一组写入（_DELETED 表示删除）"""
        if writes:
            _merge_writes(self._data, writes)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator['MemoryTransaction']:
        transaction = MemoryTransaction(self)
        try:
            yield transaction
            transaction.commit()
        finally:
            transaction.close()


class MemoryTransaction(KeyValueEngine):
    """
    内存引擎事务

    读操作先查覆盖层再查父引擎，写操作只写覆盖层，commit() 时应用到父引擎。
    """

    ENGINE_NAME = 'memory'

    def __init__(self, parent: MemoryEngine):
        super().__init__(parent.url, parent.options)
        self._parent = parent
        self._writes: Dict[Key, Any] = {}
        self._closed = False
        self._opened = True

    def _check(self) -> None:
        if self._closed:
            raise TransactionError("Transaction is already finished")

    async def get(self, key: Key) -> Optional[Any]:
        self._check()
        if key in self._writes:
            value = self._writes[key]
            return None if value is _DELETED else copy.deepcopy(value)
        return await self._parent.get(key)

    async def put(self, key: Key, value: Any) -> None:
        self._check()
        self._writes[key] = copy.deepcopy(value)

    async def delete(self, key: Key) -> bool:
        self._check()
        exists = await self.get(key) is not None
        if exists:
            self._writes[key] = _DELETED
        return exists

    def _merged(self, prefix: Key) -> Dict[Key, Any]:
        merged = {k: v for k, v in self._parent._data.items() if has_prefix(k, prefix)}
        for key, value in self._writes.items():
            if not has_prefix(key, prefix):
                continue
            if value is _DELETED:
                merged.pop(key, None)
            else:
                merged[key] = value
        return merged

    async def get_range(self, prefix: Key, start_after: Optional[Key] = None,
                        limit: Optional[int] = None) -> List[Tuple[Key, Any]]:
        self._check()
        return _select_range(self._merged(prefix), prefix, start_after, limit)

    async def destroy_all(self, prefix: Key) -> None:
        self._check()
        for key in self._merged(prefix):
            self._writes[key] = _DELETED

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator['MemoryTransaction']:
        # 嵌套事务直接使用当前事务
        self._check()
        yield self

    async def lock(self) -> None:
        await self._parent.lock()

    async def unlock(self) -> None:
        await self._parent.unlock()

    def commit(self) -> None:
        self._check()
        self._parent._apply(self._writes)

    def close(self) -> None:
        self._writes = {}
        self._closed = True
