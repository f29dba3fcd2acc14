"""
Pylayer Store

Store 是应用访问数据的入口：注册模型、管理引擎连接、维护 Store 自身的版本记录，
并提供按类名进行记录级读写和查询的接口。

    store = Store('myapp', 'json://data/myapp.json', [Person, Company])
    await store.initialize()

    person = store.Person.create(first_name='Jean')
    await person.save()

    async with store.transaction() as tx:
        await tx.Person.put({'id': 'p2', 'first_name': 'Paul'})

事务视图与根 Store 共享注册信息，但使用引擎事务进行读写。
"""

import asyncio
import logging
import secrets
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field
from typing import (
    Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional,
    Sequence, Tuple, Type, Union,
)

from ..backends import get_engine
from ..backends.base import KeyValueEngine
from ..backends.versions import MIN_STORE_VERSION, STORE_VERSION
from ..common.exceptions import (
    AlreadyExistsError,
    ConfigurationError,
    DowngradeError,
    NotFoundError,
    SchemaError,
    TransactionError,
    UnsupportedVersionError,
)
from ..common.options import (
    CollectionDefinition,
    EngineOptions,
    OperationOptions,
    normalize_options,
)
from .collection import Collection
from .event import call_hook, event
from .model import Model
from .relation import Origin
from .schema import get_root_class


logger = logging.getLogger(__name__)


# 每扫描这么多条记录让出一次事件循环
RESPIRATION_RATE = 250

# Store 版本记录在引擎中的键名
STORE_RECORD_NAME = '$Store'

# 模型记录所在的键空间
ITEMS_SPACE = 'items'

STORE_ID_LENGTH = 16


@dataclass
class StoredRecord:
    """
    引擎中保存的模型记录

    Attributes:
        class_names: 持久化类名列表（最具体的类在前）
        key: 主键值
        fields: 字段存储值
    """
    class_names: Tuple[str, ...]
    key: Any
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'class_names': list(self.class_names), 'key': self.key, 'fields': self.fields}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'StoredRecord':
        return cls(tuple(data['class_names']), data['key'], dict(data.get('fields') or {}))

    def matches(self, query: Mapping[str, Any]) -> bool:
        """字段等值匹配（查询值为 None 时匹配缺失的字段）"""
        return all(self.fields.get(name) == value for name, value in query.items())


def _order_records(records: List[StoredRecord], order: str) -> List[StoredRecord]:
    """按字段排序，None 值始终排在最后"""
    descending = order.startswith('-')
    name = order.lstrip('-+')
    present = [r for r in records if r.fields.get(name) is not None]
    missing = [r for r in records if r.fields.get(name) is None]
    try:
        present.sort(key=lambda r: r.fields[name], reverse=descending)
    except TypeError:
        # 混合类型时按字符串排序
        present.sort(key=lambda r: str(r.fields[name]), reverse=descending)
    return present + missing


def generate_store_id() -> str:
    return secrets.token_hex(STORE_ID_LENGTH // 2)


class Store:
    """
    Store

    Args:
        name: Store 名称，同一引擎中不同名称的 Store 互不干扰
        url: 引擎 URL，例如 'memory://' 或 'json://path/to/file.json'
        collections: 注册的模型类或 CollectionDefinition 列表
        engine_options: 引擎配置选项
        log: 使用的 logger（默认为模块 logger）

    Raises:
        ConfigurationError: 参数缺失或注册信息不合法
    """

    def __init__(
        self,
        name: str,
        url: str,
        collections: Sequence[Union[Type[Model], CollectionDefinition, Mapping[str, Any]]] = (),
        engine_options: Optional[EngineOptions] = None,
        log: Optional[logging.Logger] = None,
    ):
        if not name:
            raise ConfigurationError("Store name is missing")
        if not url:
            raise ConfigurationError("Store url is missing")
        if not isinstance(collections, (list, tuple)):
            raise ConfigurationError("'collections' parameter should be a list")

        self.name = name
        self.url = url
        self.log = log or logger
        self._definitions: Dict[str, CollectionDefinition] = {}
        for definition in collections:
            self._register(definition)

        self.engine: KeyValueEngine = get_engine(url, engine_options)
        for definition in self._definitions.values():
            self.engine.configure_indexes(definition.name, definition.indexes)

        self.root: 'Store' = self
        self._collections: Dict[str, Collection[Any]] = {}
        self._initialized = False
        self._initialize_lock = asyncio.Lock()
        self._store_id: Optional[str] = None
        self._root_model: Optional[Type[Model]] = None

    def _register(self, definition: Union[Type[Model], CollectionDefinition, Mapping[str, Any]]) -> None:
        if isinstance(definition, type) and issubclass(definition, Model):
            definition = CollectionDefinition(definition)
        elif isinstance(definition, Mapping):
            if 'class' not in definition:
                raise ConfigurationError(f"Collection definition without 'class': {definition!r}")
            definition = CollectionDefinition(definition['class'], list(definition.get('indexes') or []))
        if not isinstance(definition, CollectionDefinition):
            raise ConfigurationError(f"Invalid collection definition: {definition!r}")
        model = definition.model
        if not (isinstance(model, type) and issubclass(model, Model)):
            raise ConfigurationError(f"'{model!r}' is not a Model subclass")
        if model.__schema__.primary_key is None:
            raise SchemaError(f"Primary key field is missing in '{model.__name__}'")
        if definition.name in self._definitions:
            raise ConfigurationError(f"Model '{definition.name}' is registered twice")
        for field_name in definition.index_field_names():
            if model.__schema__.get_field(field_name) is None:
                raise ConfigurationError(
                    f"Index field '{field_name}' is not a field of '{model.__name__}'"
                )
        self._definitions[definition.name] = definition

    # ---------- 视图 ----------

    @property
    def inside_transaction(self) -> bool:
        return self is not self.root

    def _fork(self, engine: KeyValueEngine) -> 'Store':
        view = object.__new__(type(self))
        view.__dict__.update(self.__dict__)
        view.engine = engine
        view._collections = {}
        return view

    # ---------- 模型注册 ----------

    @property
    def definitions(self) -> Mapping[str, CollectionDefinition]:
        return dict(self._definitions)

    def get_model_class(self, name: str) -> Type[Model]:
        """
        根据类名获取已注册的模型类

        Raises:
            ConfigurationError: 模型未注册
        """
        definition = self._definitions.get(name)
        if definition is None:
            raise ConfigurationError(f"Model '{name}' is not registered in store '{self.name}'")
        return definition.model

    def get_root_model(self) -> Type[Model]:
        """获取注册模型中的根模型（所有其他模型的基类）"""
        root = self.root
        if root._root_model is None:
            root._root_model = get_root_class(d.model for d in self._definitions.values())
        return root._root_model

    def collection(self, model: Union[str, Type[Model]], origin: Optional[Origin] = None) -> Collection[Any]:
        """
        获取模型的 Collection

        Args:
            model: 模型类或类名
            origin: HAS_MANY 关系来源（每次返回新的 Collection）
        """
        if isinstance(model, str):
            model_class = self.get_model_class(model)
        else:
            model_class = self.get_model_class(model.__name__)
            if model_class is not model:
                raise ConfigurationError(f"Model '{model.__name__}' is not registered in store '{self.name}'")
        if origin is not None:
            return Collection(self, model_class, origin)
        collection = self._collections.get(model_class.__name__)
        if collection is None:
            collection = Collection(self, model_class)
            self._collections[model_class.__name__] = collection
        return collection

    def __getattr__(self, name: str) -> Collection[Any]:
        if name.startswith('_'):
            raise AttributeError(name)
        if name in self.__dict__.get('_definitions', {}):
            return self.collection(name)
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def __getitem__(self, name: str) -> Collection[Any]:
        return self.collection(name)

    def use(self, plugin: Any) -> Any:
        """
        安装插件

        插件需提供 plug(store) 方法，返回其结果。
        """
        return plugin.plug(self)

    # ---------- 初始化与版本 ----------

    @property
    def is_initialized(self) -> bool:
        return self.root._initialized

    def _store_record_key(self) -> Tuple[str, ...]:
        return (self.name, STORE_RECORD_NAME)

    def _item_key(self, key: Any) -> Tuple[Any, ...]:
        return (self.name, ITEMS_SPACE, key)

    async def initialize(self) -> None:
        """
        初始化 Store（幂等）

        不存在时创建 Store 版本记录（触发 did_create），否则检查版本并按需升级。

        Raises:
            TransactionError: 在事务中首次初始化
            DowngradeError: 持久化版本高于当前版本
            UnsupportedVersionError: 持久化版本低于最低支持版本
        """
        root = self.root
        if root._initialized:
            return
        if self.inside_transaction:
            raise TransactionError("Cannot initialize the store inside a transaction")

        async with root._initialize_lock:
            if root._initialized:
                return
            await root.engine.open()
            created = await root._create_store_if_does_not_exist()
            if not created:
                await root.engine.lock()
                try:
                    await root._upgrade_store()
                finally:
                    await root.engine.unlock()
            root._initialized = True

        await event.dispatch_store(root, 'did_initialize')
        self.log.debug("Store '%s' initialized", self.name)

    async def _create_store_if_does_not_exist(self) -> bool:
        key = self._store_record_key()
        created = False
        async with self.engine.transaction() as engine_transaction:
            if await engine_transaction.get(key) is None:
                record = {'name': self.name, 'version': STORE_VERSION, 'id': generate_store_id()}
                await engine_transaction.put(key, record)
                created = True
        if created:
            self.log.info("Store '%s' created", self.name)
            await event.dispatch_store(self, 'did_create')
        return created

    async def _upgrade_store(self) -> None:
        key = self._store_record_key()
        record = await self.engine.get(key)
        version = record['version']
        if version == STORE_VERSION:
            return
        if version > STORE_VERSION:
            raise DowngradeError(
                f"Cannot downgrade store '{self.name}' from version {version} to {STORE_VERSION}",
                version
            )
        if version < MIN_STORE_VERSION:
            raise UnsupportedVersionError(
                f"Store '{self.name}' version {version} is not supported "
                f"(minimum supported version is {MIN_STORE_VERSION})",
                version
            )

        await event.dispatch_store(self, 'will_upgrade')
        record = dict(record, version=STORE_VERSION)
        await self.engine.put(key, record)
        self.log.info("Store '%s' upgraded from version %s to %s", self.name, version, STORE_VERSION)
        await event.dispatch_store(self, 'did_upgrade')

    async def get_store_id(self) -> str:
        """获取 Store 的唯一标识（创建时随机生成）"""
        await self.initialize()
        root = self.root
        if root._store_id is None:
            record = await self.engine.get(self._store_record_key())
            root._store_id = record['id']
        return root._store_id  # type: ignore[return-value]

    async def destroy_all(self) -> None:
        """
        删除 Store 的所有数据（包括版本记录）

        Raises:
            TransactionError: 在事务中调用
        """
        if self.inside_transaction:
            raise TransactionError("Cannot destroy the store inside a transaction")
        await event.dispatch_store(self, 'will_destroy')
        await self.engine.open()
        await self.engine.destroy_all((self.name,))
        self._initialized = False
        self._store_id = None
        self.log.info("Store '%s' destroyed", self.name)
        await event.dispatch_store(self, 'did_destroy')

    async def close(self) -> None:
        """关闭引擎连接，之后的操作会重新初始化"""
        root = self.root
        await root.engine.close()
        root._initialized = False

    # ---------- 事务 ----------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator['Store']:
        """
        Store 级事务

        返回绑定到引擎事务的 Store 视图。正常退出时提交，异常时回滚并重新抛出。
        已经在事务中时直接使用当前视图（嵌套事务被展平）。

        Example:
            async with store.transaction() as tx:
                await tx.Person.put(person)
                await tx.Company.put(company)
        """
        if self.inside_transaction:
            yield self
            return
        await self.initialize()
        async with self.engine.transaction() as engine_transaction:
            yield self._fork(engine_transaction)

    # ---------- 记录级操作 ----------

    async def get(self, class_name: str, key: Any,
                  options: Optional[OperationOptions] = None) -> Optional[StoredRecord]:
        """
        读取记录，记录必须属于 class_name

        Raises:
            NotFoundError: 记录不存在（error_if_missing=True）
        """
        options = options or OperationOptions()
        await self.initialize()
        value = await self.engine.get(self._item_key(key))
        record = StoredRecord.from_dict(value) if value is not None else None
        if record is None or class_name not in record.class_names:
            if options.error_if_missing:
                raise NotFoundError(class_name, key)
            return None
        return record

    async def put(self, class_names: Sequence[str], key: Any, fields: Mapping[str, Any],
                  options: Optional[OperationOptions] = None) -> None:
        """
        写入记录

        Raises:
            AlreadyExistsError: 记录已存在（error_if_exists=True）
        """
        options = options or OperationOptions()
        if not class_names:
            raise SchemaError("Cannot store a record without class names")
        await self.initialize()
        engine_key = self._item_key(key)
        if options.error_if_exists and await self.engine.get(engine_key) is not None:
            raise AlreadyExistsError(class_names[0], key)
        record = StoredRecord(tuple(class_names), key, dict(fields))
        await self.engine.put(engine_key, record.to_dict())

    async def delete(self, class_name: str, key: Any, options: Optional[OperationOptions] = None) -> bool:
        """
        删除记录

        Returns:
            是否删除了记录

        Raises:
            NotFoundError: 记录不存在（error_if_missing=True）
        """
        record = await self.get(class_name, key, options)
        if record is None:
            return False
        return await self.engine.delete(self._item_key(key))

    async def get_many(self, class_name: str, keys: Sequence[Any],
                       options: Optional[OperationOptions] = None) -> List[Optional[StoredRecord]]:
        """
        批量读取记录

        Returns:
            与 keys 一一对应的记录列表，不存在的记录为 None（error_if_missing=False 时）
        """
        options = options or OperationOptions()
        records: List[Optional[StoredRecord]] = []
        for index, key in enumerate(keys, 1):
            records.append(await self.get(class_name, key, options))
            if index % RESPIRATION_RATE == 0:
                await asyncio.sleep(0)
        return records

    async def _scan(self, class_name: str, options: OperationOptions) -> AsyncIterator[StoredRecord]:
        """按键顺序分页扫描属于 class_name 且满足查询条件的记录"""
        await self.initialize()
        prefix = (self.name, ITEMS_SPACE)
        batch_size = max(1, options.batch_size)
        start_after: Optional[Tuple[Any, ...]] = None
        scanned = 0
        while True:
            page = await self.engine.get_range(prefix, start_after=start_after, limit=batch_size)
            for engine_key, value in page:
                start_after = engine_key
                scanned += 1
                if scanned % RESPIRATION_RATE == 0:
                    await asyncio.sleep(0)
                record = StoredRecord.from_dict(value)
                if class_name in record.class_names and record.matches(options.query):
                    yield record
            if len(page) < batch_size:
                return

    async def find(self, class_name: str, options: Optional[OperationOptions] = None) -> List[StoredRecord]:
        """
        查询记录

        没有指定 order 时按主键顺序返回。
        """
        options = options or OperationOptions()
        records: List[StoredRecord] = []
        async with aclosing(self._scan(class_name, options)) as scan:
            async for record in scan:
                records.append(record)
                if not options.order and options.limit is not None and len(records) >= options.limit:
                    break
        if options.order:
            records = _order_records(records, options.order)
        if options.limit is not None:
            records = records[:options.limit]
        return records

    async def count(self, class_name: str, options: Optional[OperationOptions] = None) -> int:
        options = options or OperationOptions()
        total = 0
        async for _ in self._scan(class_name, options):
            total += 1
        return total

    async def for_each(self, class_name: str, options: Optional[OperationOptions],
                       visitor: Callable[[StoredRecord], Union[Any, Awaitable[Any]]]) -> None:
        """
        逐条访问记录

        没有指定 order 时分页读取，不会一次加载全部记录。
        """
        options = options or OperationOptions()
        if options.order:
            for index, record in enumerate(await self.find(class_name, options), 1):
                await call_hook(visitor, record)
                if index % RESPIRATION_RATE == 0:
                    await asyncio.sleep(0)
            return

        visited = 0
        async with aclosing(self._scan(class_name, options)) as scan:
            async for record in scan:
                if options.limit is not None and visited >= options.limit:
                    break
                await call_hook(visitor, record)
                visited += 1

    async def find_and_delete(self, class_name: str, options: Optional[OperationOptions] = None) -> int:
        """
        查询并逐个删除记录对应的实例（触发删除事件和级联）

        Returns:
            删除的数量
        """
        options = options or OperationOptions()
        deleted = 0

        async def delete_record(record: StoredRecord) -> None:
            nonlocal deleted
            collection = self.collection(self.get_model_class(class_name))
            item = collection.item_from_record(record)
            if await item.delete(normalize_options(error_if_missing=False, source=options.source)):
                deleted += 1

        await self.for_each(class_name, options, delete_record)
        if deleted:
            self.log.debug("%d %s item(s) deleted from store '%s'", deleted, class_name, self.name)
        return deleted

    def __repr__(self) -> str:
        suffix = ' (transaction)' if self.inside_transaction else ''
        return f"<Store '{self.name}' at '{self.url}'{suffix}>"
