"""
Pylayer 模型基类

Model 实例的生命周期：

- 新建（is_new）：从未保存或加载，saved 为 None
- 已保存：saved 是最近一次保存/加载时的字段值快照
- 已修改（is_modified）：当前字段值与快照不同

    class Person(Model):
        id = PrimaryKey()
        first_name = Field(str)
        age = Field(int)

    person = store.Person.create(first_name='Jean', age=42)
    await person.save()
    person.age = 43
    assert person.is_modified
    await person.save()
"""

import copy
from contextlib import asynccontextmanager
from types import MappingProxyType
from typing import Any, AsyncIterator, Dict, Mapping, Optional, TYPE_CHECKING

from ..common.exceptions import (
    ConfigurationError,
    FieldNotFoundError,
    SchemaError,
    UnsupportedKeyTypeError,
)
from ..common.options import OperationOptions
from .event import event
from .fields import KeyField
from .relation import Origin
from .schema import EMPTY_SCHEMA, Schema, build_schema

if TYPE_CHECKING:
    from .collection import Collection
    from .storage import Store


class Model:
    """
    模型基类

    Args:
        values: 字段值字典；非字典值被视为主键值
        **kwargs: 字段值（也可以是 BELONGS_TO 关系名）

    Raises:
        FieldNotFoundError: 传入了未定义的字段
    """

    __schema__: Schema = EMPTY_SCHEMA

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.__schema__ = build_schema(cls)

    def __init__(self, values: Any = None, /, **kwargs: Any):
        self._reset_state()
        schema = type(self).__schema__
        for name, field in schema.fields.items():
            self._values[name] = field.get_default()

        if values is not None and not isinstance(values, Mapping):
            values = {self.primary_key_name: values}
        data: Dict[str, Any] = dict(values or {})
        data.update(kwargs)

        for name, value in data.items():
            if name in schema.fields:
                self._values[name] = value
            elif name in schema.relations:
                setattr(self, name, value)
            else:
                raise FieldNotFoundError(schema.model_name, name)

    def _reset_state(self) -> None:
        self._values: Dict[str, Any] = {}
        self._relation_cache: Dict[str, Any] = {}
        self.saved: Optional[Mapping[str, Any]] = None
        self.origin: Optional[Origin] = None
        self.collection: Optional['Collection[Any]'] = None
        self.is_saving = False
        self.is_deleting = False

    # ---------- 序列化 ----------

    def serialize(self) -> Dict[str, Any]:
        """
        转换为存储值字典

        值为 None 的字段不会出现在结果中。
        """
        result: Dict[str, Any] = {}
        for name, field in type(self).__schema__.fields.items():
            value = self._values.get(name)
            if value is None:
                continue
            result[name] = field.serialize(value)
        return result

    @classmethod
    def unserialize(cls, data: Mapping[str, Any]) -> 'Model':
        """
        从存储值字典创建实例

        未知字段被忽略，缺失字段为 None（不应用默认值）。
        """
        item = cls.__new__(cls)
        item._reset_state()
        item._load_fields(data)
        return item

    def _load_fields(self, data: Mapping[str, Any]) -> None:
        self._values = {}
        for name, field in type(self).__schema__.fields.items():
            self._values[name] = field.unserialize(data.get(name))

    def clone(self) -> 'Model':
        """复制实例（字段值、快照和所属 Collection）"""
        item = type(self).unserialize(self.serialize())
        item.saved = self.saved
        item.origin = self.origin
        item.collection = self.collection
        return item

    def snapshot(self) -> Mapping[str, Any]:
        """当前字段值的只读深拷贝"""
        fields = type(self).__schema__.fields
        return MappingProxyType({name: copy.deepcopy(self._values.get(name)) for name in fields})

    def to_dict(self) -> Dict[str, Any]:
        """当前字段值（Python 值）"""
        return {name: self._values.get(name) for name in type(self).__schema__.fields}

    # ---------- 生命周期状态 ----------

    @property
    def is_new(self) -> bool:
        return self.saved is None

    @property
    def is_modified(self) -> bool:
        if self.saved is None:
            return True
        return dict(self.saved) != self.to_dict()

    @property
    def store(self) -> 'Store':
        return self._require_collection().store

    @property
    def inside_transaction(self) -> bool:
        return self.collection is not None and self.collection.inside_transaction

    def _require_collection(self) -> 'Collection[Any]':
        if self.collection is None:
            raise ConfigurationError(
                f"'{type(self).__name__}' item is not attached to a collection"
            )
        return self.collection

    # ---------- 主键 ----------

    @property
    def primary_key_name(self) -> str:
        primary_key = type(self).__schema__.primary_key
        if primary_key is None:
            raise SchemaError(f"Primary key field is missing in '{type(self).__name__}'")
        return primary_key.name  # type: ignore[return-value]

    @property
    def primary_key_value(self) -> Any:
        return self._values.get(self.primary_key_name)

    @primary_key_value.setter
    def primary_key_value(self, value: Any) -> None:
        self._values[self.primary_key_name] = value

    def generate_key_value(self, name: str) -> Any:
        """
        为键字段生成随机值（已有值时保持不变）

        Raises:
            FieldNotFoundError: 字段不存在
            UnsupportedKeyTypeError: 字段不是键字段或类型不支持
        """
        field = type(self).__schema__.require_field(name)
        if not isinstance(field, KeyField):
            raise UnsupportedKeyTypeError(name, field.field_type)
        if self._values.get(name) is None:
            self._values[name] = field.generate_value()
        return self._values[name]

    def generate_primary_key_value(self) -> Any:
        return self.generate_key_value(self.primary_key_name)

    # ---------- 验证与事件 ----------

    def validate(self) -> None:
        """
        验证所有字段值

        Raises:
            ValidationError: 验证失败
        """
        for name, field in type(self).__schema__.fields.items():
            field.validate(self._values.get(name))

    async def emit(self, event_name: str, options: Optional[OperationOptions] = None) -> None:
        """
        触发 Model 级事件

        先执行字段和关系提供的内置钩子，再执行全局监听器。
        """
        if options is None:
            options = OperationOptions()
        for hook in type(self).__schema__.hooks_for(event_name):
            await hook(self, options)
        await event.dispatch_model(type(self), event_name, self, options)

    # ---------- 持久化 ----------

    async def load(self, options: Optional[OperationOptions] = None, **kwargs: Any) -> Optional['Model']:
        """
        从 Store 加载字段值

        Returns:
            加载成功返回 self；记录不存在且 error_if_missing=False 时返回 None

        Raises:
            NotFoundError: 记录不存在
        """
        return await self._require_collection().get(self, options, **kwargs)

    async def save(self, options: Optional[OperationOptions] = None, **kwargs: Any) -> 'Model':
        """
        保存到 Store

        新实例以 error_if_exists 语义写入，已有记录的主键冲突会抛出 AlreadyExistsError。
        """
        await self._require_collection().put(self, options, **kwargs)
        return self

    async def delete(self, options: Optional[OperationOptions] = None, **kwargs: Any) -> bool:
        """
        从 Store 删除

        Returns:
            是否删除了记录
        """
        return await self._require_collection().delete(self, options, **kwargs)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator['Model']:
        """
        实例级事务

        在事务中操作实例的副本，提交后将字段值和快照合并回原实例；
        异常时回滚，原实例保持不变。已经在事务中时直接使用当前实例。

        Example:
            async with person.transaction() as p:
                p.age += 1
                await p.save()
        """
        if self.inside_transaction:
            yield self
            return

        collection = self._require_collection()
        async with collection.transaction() as transaction_collection:
            transaction_item = self._copy_to(transaction_collection)
            yield transaction_item
        self._merge(transaction_item)

    def _copy_to(self, collection: 'Collection[Any]') -> 'Model':
        item = type(self).__new__(type(self))
        item._reset_state()
        item._values = copy.deepcopy(self._values)
        item.saved = self.saved
        item.origin = self.origin
        item.collection = collection
        return item

    def _merge(self, other: 'Model') -> None:
        if type(other) is not type(self):
            self.__class__ = type(other)
        self._values = copy.deepcopy(other._values)
        self.saved = other.saved

    def __repr__(self) -> str:
        primary_key = type(self).__schema__.primary_key
        if primary_key is None:
            return f"<{type(self).__name__}>"
        return f"<{type(self).__name__}({primary_key.name}={self._values.get(primary_key.name)!r})>"


Model.__schema__ = build_schema(Model)
