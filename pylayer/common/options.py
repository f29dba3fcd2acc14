"""
Pylayer 配置选项 dataclass 定义

该模块定义了 Store、引擎和各项操作的配置选项，替代原有的 **kwargs 参数。
"""
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple, Type, Union


# 系统来源：这些来源触发的保存不会刷新 UpdatedOn 字段
SYSTEM_SOURCES: FrozenSet[str] = frozenset({
    'computer',
    'localSynchronizer',
    'remoteSynchronizer',
    'archive',
})

# 批量迭代的默认分页大小
DEFAULT_BATCH_SIZE = 250


@dataclass(slots=True)
class OperationOptions:
    """单次操作（get/put/delete/find/count/for_each）的选项"""
    query: Dict[str, Any] = field(default_factory=dict)  # 字段 -> 期望值（等值匹配）
    order: Optional[str] = None  # 排序字段名，'-name' 表示降序
    limit: Optional[int] = None  # 限制返回记录数
    batch_size: int = DEFAULT_BATCH_SIZE  # for_each 分页大小
    error_if_missing: bool = True  # 记录不存在时是否抛出 NotFoundError
    error_if_exists: bool = False  # 记录已存在时是否抛出 AlreadyExistsError
    validate: bool = True  # 保存前是否执行字段验证
    source: Optional[str] = None  # 操作来源标签

    @property
    def is_system_source(self) -> bool:
        return self.source in SYSTEM_SOURCES


def normalize_options(options: Optional[OperationOptions] = None, **overrides: Any) -> OperationOptions:
    """
    规范化操作选项

    Args:
        options: 已有的选项对象（None 表示默认值）
        **overrides: 覆盖的选项值

    Returns:
        新的 OperationOptions 对象（不会修改传入的对象）

    Raises:
        TypeError: 未知的选项名
    """
    if options is None:
        options = OperationOptions()
    if not overrides:
        return replace(options, query=dict(options.query))

    known = {f.name for f in fields(OperationOptions)}
    unknown = set(overrides) - known
    if unknown:
        raise TypeError(f"Unknown option(s): {', '.join(sorted(unknown))}")

    if 'query' in overrides:
        overrides['query'] = dict(overrides['query'] or {})
    else:
        overrides['query'] = dict(options.query)
    return replace(options, **overrides)


@dataclass(slots=True)
class MemoryEngineOptions:
    """内存引擎配置选项"""


@dataclass(slots=True)
class JsonEngineOptions:
    """JSON 文件引擎配置选项"""
    indent: Optional[int] = None  # 缩进空格数
    ensure_ascii: bool = False  # 是否强制 ASCII 编码
    encoding: str = 'utf-8'  # 文件编码


# Engine 选项联合类型
EngineOptions = Union[MemoryEngineOptions, JsonEngineOptions]


# 索引定义：字段名或字段名元组
IndexDefinition = Union[str, Tuple[str, ...]]


@dataclass(slots=True)
class CollectionDefinition:
    """Store 中一个模型的注册信息"""
    model: Type[Any]
    indexes: List[IndexDefinition] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.model.__name__

    def index_field_names(self) -> Sequence[str]:
        """展开所有索引涉及的字段名"""
        names: List[str] = []
        for index in self.indexes:
            if isinstance(index, str):
                names.append(index)
            else:
                names.extend(index)
        return names


# 默认选项获取函数
def get_default_engine_options(scheme: str) -> EngineOptions:
    """根据引擎类型返回默认选项"""
    defaults: Dict[str, EngineOptions] = {
        'memory': MemoryEngineOptions(),
        'json': JsonEngineOptions(),
    }
    return defaults.get(scheme, MemoryEngineOptions())
