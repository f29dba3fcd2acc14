"""
Pylayer 引擎抽象基类

引擎是一个按元组键有序存储 JSON 兼容值的异步键值存储，定义所有引擎必须实现的接口。
"""

import asyncio
import importlib.util
from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Dict, List, Optional, Sequence, Tuple

from ..common.options import EngineOptions, IndexDefinition


Key = Tuple[Any, ...]


def key_sort_key(key: Key) -> Tuple[Tuple[int, Any], ...]:
    """
    键的排序键

    键元素按 数字 < 字符串 < 其他 排序，避免不同类型比较时出错。
    """
    parts = []
    for part in key:
        if isinstance(part, (int, float)) and not isinstance(part, bool):
            parts.append((0, part))
        elif isinstance(part, str):
            parts.append((1, part))
        else:
            parts.append((2, repr(part)))
    return tuple(parts)


def has_prefix(key: Key, prefix: Key) -> bool:
    return len(key) >= len(prefix) and key[:len(prefix)] == prefix


class KeyValueEngine(ABC):
    """
    引擎抽象基类

    所有引擎必须实现这个接口：
    - open/close: 打开和关闭连接
    - get/put/delete: 单键读写
    - get_range: 按键顺序读取前缀下的记录
    - destroy_all: 删除前缀下的所有记录
    - transaction: 原子事务（提交时全部生效，异常时全部丢弃）
    - lock/unlock: 引擎级互斥锁（用于 Store 升级）
    """

    ENGINE_NAME: str = ''  # 引擎名称，也是 URL 协议名
    REQUIRED_DEPENDENCIES: List[str] = []  # 需要的第三方库

    def __init__(self, url: str, options: EngineOptions):
        """
        初始化引擎

        Args:
            url: 引擎 URL
            options: 引擎配置选项
        """
        self.url = url
        self.options = options
        self.indexes: Dict[str, List[IndexDefinition]] = {}
        self._lock = asyncio.Lock()
        self._opened = False

    @classmethod
    def is_available(cls) -> bool:
        """检查引擎依赖是否已安装"""
        return all(importlib.util.find_spec(name) is not None for name in cls.REQUIRED_DEPENDENCIES)

    @property
    def is_open(self) -> bool:
        return self._opened

    async def open(self) -> None:
        self._opened = True

    async def close(self) -> None:
        self._opened = False

    def configure_indexes(self, model_name: str, indexes: Sequence[IndexDefinition]) -> None:
        """记录模型声明的索引"""
        self.indexes[model_name] = list(indexes)

    @abstractmethod
    async def get(self, key: Key) -> Optional[Any]:
        """读取键对应的值，不存在时返回 None"""
        pass

    @abstractmethod
    async def put(self, key: Key, value: Any) -> None:
        pass

    @abstractmethod
    async def delete(self, key: Key) -> bool:
        """删除键，返回键是否存在"""
        pass

    @abstractmethod
    async def get_range(self, prefix: Key, start_after: Optional[Key] = None,
                        limit: Optional[int] = None) -> List[Tuple[Key, Any]]:
        """
        按键顺序读取前缀下的记录

        Args:
            prefix: 键前缀
            start_after: 只返回排在该键之后的记录（分页用）
            limit: 最大返回数量

        Returns:
            (键, 值) 列表
        """
        pass

    @abstractmethod
    async def destroy_all(self, prefix: Key) -> None:
        """删除前缀下的所有记录"""
        pass

    @abstractmethod
    def transaction(self) -> AsyncContextManager['KeyValueEngine']:
        """原子事务上下文管理器"""
        pass

    async def lock(self) -> None:
        await self._lock.acquire()

    async def unlock(self) -> None:
        self._lock.release()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url='{self.url}')"
