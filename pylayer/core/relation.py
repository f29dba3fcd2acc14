"""
Pylayer 关系定义

三种关系描述符，目标在首次访问时创建并缓存在所属实例上：

    class Album(Model):
        id = PrimaryKey()
        photos = HasMany('Photo', foreign_key='album_id')

    class Photo(Model):
        id = PrimaryKey()
        album_id = ForeignKey()
        album = BelongsTo('Album', foreign_key='album_id')

- HasOne: 返回目标模型的实例，外键预先填入所属实例的主键
- HasMany: 返回按外键过滤的 Collection 视图
- BelongsTo: 返回主键等于所属实例外键值的目标实例，可直接赋值

关系不会立即加载数据，需要时调用 load()/find() 等方法。
"""

import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Type, Union, TYPE_CHECKING

from ..common.exceptions import InvalidRelationDefinitionError
from .event import Hook

if TYPE_CHECKING:
    from ..common.options import OperationOptions
    from .collection import Collection
    from .model import Model


class RelationKind(str, Enum):
    """关系类型"""
    HAS_ONE = 'HAS_ONE'
    HAS_MANY = 'HAS_MANY'
    BELONGS_TO = 'BELONGS_TO'


@dataclass(frozen=True)
class Relation:
    """
    关系定义

    Attributes:
        name: 关系属性名
        kind: 关系类型
        target: 目标模型类名
        foreign_key: 外键字段名（HAS_ONE/HAS_MANY 在目标模型上，BELONGS_TO 在本模型上）
    """
    name: str
    kind: RelationKind
    target: str
    foreign_key: str

    def __post_init__(self) -> None:
        if not (isinstance(self.name, str) and self.name):
            raise InvalidRelationDefinitionError("Relation name is missing")
        if not (isinstance(self.target, str) and self.target):
            raise InvalidRelationDefinitionError(f"Relation '{self.name}': target model is missing")
        if not (isinstance(self.foreign_key, str) and self.foreign_key):
            raise InvalidRelationDefinitionError(f"Relation '{self.name}': foreign key is missing")
        if not self.kind:
            raise InvalidRelationDefinitionError(f"Relation '{self.name}': kind is missing")
        try:
            kind = RelationKind(self.kind)
        except ValueError:
            raise InvalidRelationDefinitionError(
                f"Relation '{self.name}': invalid kind {self.kind!r}"
            ) from None
        object.__setattr__(self, 'kind', kind)


class Origin:
    """
    关系来源

    记录实例是通过哪个关系从哪个所属实例得到的。所属实例只通过弱引用持有，
    其主键值会被缓存，所属实例被回收后仍可用于外键查询。
    """

    __slots__ = ('relation', '_owner_ref', '_owner_key')

    def __init__(self, relation: Relation, owner: 'Model') -> None:
        self.relation = relation
        self._owner_ref = weakref.ref(owner)
        self._owner_key = owner.primary_key_value

    @property
    def owner(self) -> Optional['Model']:
        return self._owner_ref()

    @property
    def owner_key(self) -> Any:
        """所属实例当前的主键值"""
        owner = self.owner
        if owner is not None:
            self._owner_key = owner.primary_key_value
        return self._owner_key

    def __repr__(self) -> str:
        return f"Origin(relation='{self.relation.name}', owner_key={self._owner_key!r})"


class RelationDescriptor:
    """关系描述符基类"""

    kind: RelationKind

    def __init__(self, target: Union[str, Type[Any]], foreign_key: str):
        if isinstance(target, type):
            target = target.__name__
        if not (isinstance(target, str) and target):
            raise InvalidRelationDefinitionError("Relation target model is missing")
        if not (isinstance(foreign_key, str) and foreign_key):
            raise InvalidRelationDefinitionError("Relation foreign key is missing")
        self.target: str = target
        self.foreign_key = foreign_key
        self.name: Optional[str] = None
        self._relation: Optional[Relation] = None

    def __set_name__(self, owner: type, name: str) -> None:
        if self.name is None:
            self.name = name

    @property
    def relation(self) -> Relation:
        if self._relation is None or self._relation.name != self.name:
            self._relation = Relation(self.name or '', self.kind, self.target, self.foreign_key)
        return self._relation

    def __get__(self, instance: Optional['Model'], owner: type) -> Any:
        if instance is None:
            return self
        cache = instance._relation_cache
        if self.name not in cache:
            cache[self.name] = self.resolve(instance)
        return cache[self.name]

    def __set__(self, instance: 'Model', value: Any) -> None:
        raise AttributeError(f"Relation '{self.name}' cannot be assigned")

    def resolve(self, instance: 'Model') -> Any:
        raise NotImplementedError

    def _target_collection(self, instance: 'Model') -> 'Collection[Any]':
        store = instance.store
        return store.collection(store.get_model_class(self.target))

    def _inverse_owner(self, instance: 'Model') -> Optional['Model']:
        """
        如果实例本身是通过反向关系得到的，直接返回其所属实例，避免重复查询

        要求外键相同、所属实例属于目标模型且位于同一个 Store 视图。
        """
        origin = instance.origin
        if origin is None or origin.relation.foreign_key != self.foreign_key:
            return None
        owner = origin.owner
        if owner is None or owner.collection is None or instance.collection is None:
            return None
        if self.target not in (klass.__name__ for klass in type(owner).__mro__):
            return None
        if owner.collection.store is not instance.collection.store:
            return None
        return owner

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name='{self.name}', target='{self.target}', foreign_key='{self.foreign_key}')"


class HasOne(RelationDescriptor):
    """一对一关系（外键在目标模型上）"""

    kind = RelationKind.HAS_ONE

    def resolve(self, instance: 'Model') -> 'Model':
        owner = self._inverse_owner(instance)
        if owner is not None:
            return owner
        collection = self._target_collection(instance)
        item = collection.create()
        item._values[self.foreign_key] = instance.primary_key_value
        item.origin = Origin(self.relation, instance)
        return item

    def __set__(self, instance: 'Model', value: Any) -> None:
        instance._relation_cache[self.name] = value


class HasMany(RelationDescriptor):
    """一对多关系，返回按外键过滤的 Collection 视图"""

    kind = RelationKind.HAS_MANY

    def resolve(self, instance: 'Model') -> 'Collection[Any]':
        store = instance.store
        return store.collection(store.get_model_class(self.target), origin=Origin(self.relation, instance))


class BelongsTo(RelationDescriptor):
    """多对一关系（外键在本模型上）"""

    kind = RelationKind.BELONGS_TO

    def resolve(self, instance: 'Model') -> 'Model':
        owner = self._inverse_owner(instance)
        if owner is not None:
            return owner
        collection = self._target_collection(instance)
        item = collection.create(instance._values.get(self.foreign_key))
        item.origin = Origin(self.relation, instance)
        return item

    def __set__(self, instance: 'Model', value: Any) -> None:
        instance._relation_cache[self.name] = value
        instance._values[self.foreign_key] = None if value is None else value.primary_key_value


RELATION_DESCRIPTORS = {
    RelationKind.HAS_ONE: HasOne,
    RelationKind.HAS_MANY: HasMany,
    RelationKind.BELONGS_TO: BelongsTo,
}


def descriptor_for(relation: Relation) -> RelationDescriptor:
    """根据关系定义创建描述符"""
    descriptor = RELATION_DESCRIPTORS[relation.kind](relation.target, relation.foreign_key)
    descriptor.name = relation.name
    return descriptor


def cascade_hooks(relation: Relation) -> List[Hook]:
    """
    关系提供的级联删除钩子

    所属实例 will_delete 时删除 HAS_ONE 目标和全部 HAS_MANY 子实例，
    以 'computer' 来源删除，不刷新时间戳；已经不存在的目标直接跳过。
    """
    name = relation.name

    if relation.kind == RelationKind.HAS_ONE:
        async def delete_target(item: 'Model', options: 'OperationOptions') -> None:
            if item.primary_key_value is None:
                return
            target = getattr(item, name)
            await target.delete(source='computer', error_if_missing=False)

        return [Hook('will_delete', delete_target, name)]

    if relation.kind == RelationKind.HAS_MANY:
        async def delete_children(item: 'Model', options: 'OperationOptions') -> None:
            if item.primary_key_value is None:
                return
            children = await getattr(item, name).find()
            for child in children:
                await child.delete(source='computer', error_if_missing=False)

        return [Hook('will_delete', delete_children, name)]

    return []
