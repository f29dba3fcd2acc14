"""
Pylayer Collection

Collection 是某个模型类在 Store 上的操作入口，负责实例的创建、加载、保存、删除和查询。
通过 HAS_MANY 关系得到的 Collection 带有 origin，所有查询自动按外键过滤，
新建的实例自动填入外键。

    people = store.Person
    person = people.create(first_name='Jean')
    await people.put(person)
    found = await people.find(query={'country': 'France'}, order='age')
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import (
    Any, AsyncIterator, Callable, Generic, List, Mapping, Optional,
    Sequence, Type, TypeVar, TYPE_CHECKING,
)

from ..common.exceptions import (
    ConfigurationError,
    NotFoundError,
    SchemaError,
    TransactionError,
    ValidationError,
)
from ..common.options import OperationOptions, normalize_options
from .event import call_hook
from .model import Model
from .relation import Origin, RelationKind

if TYPE_CHECKING:
    from .schema import Schema
    from .storage import Store, StoredRecord


M = TypeVar('M', bound=Model)

logger = logging.getLogger(__name__)


class Collection(Generic[M]):
    """
    模型集合

    Args:
        store: 所属 Store（或事务视图）
        model_class: 模型类
        origin: HAS_MANY 关系来源，用于按外键过滤
    """

    def __init__(self, store: 'Store', model_class: Type[M], origin: Optional[Origin] = None):
        if origin is not None and origin.relation.foreign_key not in model_class.__schema__.fields:
            raise SchemaError(
                f"Foreign key '{origin.relation.foreign_key}' of relation "
                f"'{origin.relation.name}' is not a field of '{model_class.__name__}'"
            )
        self.store = store
        self.model_class = model_class
        self.origin = origin

    @property
    def name(self) -> str:
        return self.model_class.__name__

    @property
    def schema(self) -> 'Schema':
        return self.model_class.__schema__

    @property
    def inside_transaction(self) -> bool:
        return self.store.inside_transaction

    # ---------- 实例创建 ----------

    def create(self, values: Any = None, /, **fields: Any) -> M:
        """
        创建新实例（未保存）

        Args:
            values: 字段值字典或主键值
            **fields: 字段值
        """
        item = self.model_class(values, **fields)
        self._attach(item)
        return item

    def unserialize(self, data: Any) -> M:
        """从存储值字典（或主键值）创建实例"""
        if not isinstance(data, Mapping):
            data = {self.model_class.__schema__.primary_key.name: data} if self.schema.primary_key else {}
        item = self.model_class.unserialize(data)
        self._attach(item)
        return item  # type: ignore[return-value]

    def _attach(self, item: Model) -> None:
        item.collection = self
        self.initialize_item_from_origin(item)

    def initialize_item_from_origin(self, item: Model) -> None:
        """为新实例填入外键并记录来源"""
        if self.origin is None:
            return
        item._values[self.origin.relation.foreign_key] = self.origin.owner_key
        item.origin = self.origin

    def propagate_origin_to_item(self, item: Model) -> None:
        if self.origin is not None:
            item.origin = self.origin

    def normalize_item(self, item: Any) -> M:
        """
        将主键值、字段字典或实例统一为实例

        Raises:
            ValueError: item 为空
            TypeError: 实例不属于该模型
        """
        if item is None or item == '':
            raise ValueError("'item' parameter is empty")
        if isinstance(item, Model):
            if not isinstance(item, self.model_class):
                raise TypeError(f"Expected a '{self.name}' item, got '{type(item).__name__}'")
            if item.collection is None:
                self._attach(item)
            return item  # type: ignore[return-value]
        if isinstance(item, Mapping):
            return self.create(item)
        return self.unserialize(item)

    def normalize_options(self, options: Optional[OperationOptions] = None, **kwargs: Any) -> OperationOptions:
        """复制选项，并将查询值转换为存储值"""
        options = normalize_options(options, **kwargs)
        if options.query:
            options.query = {
                name: self.schema.require_field(name).serialize(value)
                for name, value in options.query.items()
            }
        return options

    def inject_origin_to_query(self, options: OperationOptions) -> OperationOptions:
        if self.origin is not None:
            foreign_key = self.origin.relation.foreign_key
            options.query[foreign_key] = self.schema.require_field(foreign_key).serialize(self.origin.owner_key)
        return options

    def item_from_record(self, record: 'StoredRecord') -> M:
        """由存储记录创建已保存的实例（使用记录中最具体的类）"""
        model_class = self._record_class(record)
        item = model_class.unserialize(record.fields)
        item.collection = self.store.collection(model_class)
        item.saved = item.snapshot()
        self.propagate_origin_to_item(item)
        return item  # type: ignore[return-value]

    def _record_class(self, record: 'StoredRecord') -> Type[Model]:
        model_class = self.store.get_model_class(record.class_names[0])
        if not issubclass(model_class, self.model_class):
            raise ConfigurationError(
                f"Record '{record.key}' of class '{model_class.__name__}' is not a '{self.name}'"
            )
        return model_class

    def _apply_record(self, item: Model, record: 'StoredRecord') -> None:
        model_class = self._record_class(record)
        if model_class is not type(item) and issubclass(model_class, type(item)):
            item.__class__ = model_class
        item._load_fields(record.fields)
        item.saved = item.snapshot()

    # ---------- 单条操作 ----------

    async def get(self, item: Any, options: Optional[OperationOptions] = None, **kwargs: Any) -> Optional[M]:
        """
        加载实例

        Args:
            item: 主键值或实例。通过 HAS_ONE 关系得到且没有主键的实例按外键查找。

        Returns:
            加载后的实例；不存在且 error_if_missing=False 时返回 None

        Raises:
            NotFoundError: 记录不存在
        """
        item = self.normalize_item(item)
        options = self.normalize_options(options, **kwargs)
        origin = item.origin

        if item.primary_key_value is None and origin is not None and origin.relation.kind == RelationKind.HAS_ONE:
            foreign_key = origin.relation.foreign_key
            query_options = self.normalize_options(query={foreign_key: origin.owner_key}, limit=1)
            records = await self.store.find(type(item).__name__, query_options)
            if not records:
                if options.error_if_missing:
                    raise NotFoundError(type(item).__name__, f"{foreign_key}={origin.owner_key!r}")
                return None
            record: Optional['StoredRecord'] = records[0]
        else:
            key = item.primary_key_value
            if key is None:
                if options.error_if_missing:
                    raise NotFoundError(type(item).__name__, None)
                return None
            record = await self.store.get(type(item).__name__, key, options)
            if record is None:
                return None

        self._apply_record(item, record)
        return item

    async def put(self, item: Any, options: Optional[OperationOptions] = None, **kwargs: Any) -> M:
        """
        保存实例

        流程：will_save 事件（主键生成、时间戳）→ 验证 → 写入 → 更新快照，
        在一个事务内执行；事务提交后在原实例上触发 did_save 事件。
        已经在事务中时 did_save 在写入后立即触发。

        Raises:
            TransactionError: 实例正在保存中
            ValidationError: 字段验证失败
            AlreadyExistsError: 新实例的主键已存在
        """
        item = self.normalize_item(item)
        options = normalize_options(options, **kwargs)

        if item.is_saving:
            raise TransactionError(f"{type(item).__name__}#{item.primary_key_value} is already being saved")
        item.is_saving = True
        try:
            if self.inside_transaction:
                await self._write(item, options)
            else:
                async with item.transaction() as saving_item:
                    saving_item.is_saving = True
                    await saving_item.collection._write(saving_item, options)  # type: ignore[union-attr]
            await item.emit('did_save', options)
        finally:
            item.is_saving = False

        logger.debug("%s#%s saved in store '%s'", type(item).__name__, item.primary_key_value, self.store.name)
        return item

    async def _write(self, item: M, options: OperationOptions) -> None:
        self._fill_foreign_key_from_origin(item)
        await item.emit('will_save', options)
        if options.validate:
            item.validate()
        key = item.primary_key_value
        if key is None:
            raise ValidationError(
                f"Primary key '{item.primary_key_name}' of '{type(item).__name__}' is missing",
                item.primary_key_name
            )
        write_options = replace(options, error_if_exists=options.error_if_exists or item.is_new)
        await self.store.put(type(item).__schema__.class_names, key, item.serialize(), write_options)
        item.saved = item.snapshot()

    def _fill_foreign_key_from_origin(self, item: Model) -> None:
        # HAS_ONE 目标可能在所属实例获得主键之前创建
        origin = item.origin
        if origin is None or origin.relation.kind == RelationKind.BELONGS_TO:
            return
        foreign_key = origin.relation.foreign_key
        if item._values.get(foreign_key) is None:
            item._values[foreign_key] = origin.owner_key

    async def delete(self, item: Any, options: Optional[OperationOptions] = None, **kwargs: Any) -> bool:
        """
        删除实例

        流程：（HAS_ONE 实例先按外键加载）→ will_delete 事件（级联删除）→ 删除，
        在一个事务内执行；事务提交后如果删除了记录，在原实例上触发 did_delete 事件。

        Returns:
            是否删除了记录

        Raises:
            TransactionError: 实例正在删除中
            NotFoundError: 记录不存在
        """
        item = self.normalize_item(item)
        options = normalize_options(options, **kwargs)

        if item.is_deleting:
            raise TransactionError(f"{type(item).__name__}#{item.primary_key_value} is already being deleted")
        item.is_deleting = True
        try:
            if self.inside_transaction:
                deleted = await self._remove(item, options)
            else:
                async with item.transaction() as deleting_item:
                    deleting_item.is_deleting = True
                    deleted = await deleting_item.collection._remove(deleting_item, options)  # type: ignore[union-attr]
            if deleted:
                await item.emit('did_delete', options)
        finally:
            item.is_deleting = False

        if deleted:
            logger.debug("%s#%s deleted from store '%s'", type(item).__name__, item.primary_key_value, self.store.name)
        return deleted

    async def _remove(self, item: M, options: OperationOptions) -> bool:
        origin = item.origin
        if item.primary_key_value is None and origin is not None and origin.relation.kind == RelationKind.HAS_ONE:
            if await self.get(item, options) is None:
                return False
        key = item.primary_key_value
        if key is None:
            if options.error_if_missing:
                raise NotFoundError(type(item).__name__, None)
            return False
        await item.emit('will_delete', options)
        deleted = await self.store.delete(type(item).__name__, key, options)
        if deleted:
            item.saved = None
        return deleted

    # ---------- 批量操作 ----------

    async def get_many(self, items: Sequence[Any], options: Optional[OperationOptions] = None,
                       **kwargs: Any) -> List[M]:
        """
        批量加载

        Returns:
            按请求顺序排列的实例；error_if_missing=False 时跳过不存在的记录

        Raises:
            TypeError: items 不是列表
            NotFoundError: 某条记录不存在
        """
        if not isinstance(items, (list, tuple)):
            raise TypeError("'items' parameter should be a list")
        normalized = [self.normalize_item(item) for item in items]
        if not normalized:
            return []
        options = self.normalize_options(options, **kwargs)
        keys = [item.primary_key_value for item in normalized]
        records = await self.store.get_many(self.name, keys, options)

        results: List[M] = []
        for item, record in zip(normalized, records):
            if record is None:
                continue
            self._apply_record(item, record)
            results.append(item)
        return results

    async def find(self, options: Optional[OperationOptions] = None, **kwargs: Any) -> List[M]:
        """
        查询实例

        Args:
            query: 字段等值条件
            order: 排序字段，'-name' 表示降序
            limit: 最大返回数量
        """
        options = self.inject_origin_to_query(self.normalize_options(options, **kwargs))
        records = await self.store.find(self.name, options)
        return [self.item_from_record(record) for record in records]

    async def count(self, options: Optional[OperationOptions] = None, **kwargs: Any) -> int:
        options = self.inject_origin_to_query(self.normalize_options(options, **kwargs))
        return await self.store.count(self.name, options)

    async def for_each(self, fn: Callable[[M], Any], options: Optional[OperationOptions] = None,
                       **kwargs: Any) -> None:
        """
        逐个遍历实例（分页读取，适合大数据量）

        Args:
            fn: 访问函数，可以是协程函数
        """
        options = self.inject_origin_to_query(self.normalize_options(options, **kwargs))

        async def visit(record: 'StoredRecord') -> None:
            await call_hook(fn, self.item_from_record(record))

        await self.store.for_each(self.name, options, visit)

    async def find_and_delete(self, options: Optional[OperationOptions] = None, **kwargs: Any) -> int:
        """
        查询并逐个删除（触发删除事件和级联）

        Returns:
            删除的数量
        """
        options = self.inject_origin_to_query(self.normalize_options(options, **kwargs))
        return await self.store.find_and_delete(self.name, options)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator['Collection[M]']:
        """
        Collection 级事务，返回绑定到事务视图的 Collection

        已经在事务中时直接使用当前 Collection。
        """
        if self.inside_transaction:
            yield self
            return
        async with self.store.transaction() as transaction_store:
            yield transaction_store.collection(self.model_class, origin=self.origin)

    def __repr__(self) -> str:
        return f"<Collection '{self.name}' of store '{self.store.name}'>"
