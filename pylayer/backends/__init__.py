"""
Pylayer 引擎模块

提供引擎注册、发现和实例化功能
"""

from .base import KeyValueEngine
from .backend_memory import MemoryEngine, MemoryTransaction
from .backend_json import JsonEngine
from .registry import (
    EngineRegistry,
    get_engine,
    get_available_engines,
    parse_scheme,
)

EngineRegistry.register(MemoryEngine)
EngineRegistry.register(JsonEngine)

__all__ = [
    'KeyValueEngine',
    'MemoryEngine',
    'MemoryTransaction',
    'JsonEngine',
    'EngineRegistry',
    'get_engine',
    'get_available_engines',
    'parse_scheme',
]
