"""
Pylayer 模型元数据

每个 Model 子类在定义时生成一个不可变的 Schema，包含字段、主键、关系、
持久化类名列表和内置钩子。子类的 Schema 由父类 Schema 加上自身声明构成。

也可以在类定义之后用函数式 API 添加字段和关系：

    define_primary_key_field(Person, 'id')
    define_field(Person, 'name', str)
    define_relation(Person, 'account', {'kind': 'BELONGS_TO', 'target': 'Account', 'foreign_key': 'account_id'})
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union, TYPE_CHECKING

from ..common.exceptions import FieldNotFoundError, NoRootError, AmbiguousHierarchyError, SchemaError
from .event import Hook
from .fields import Field, ForeignKey, PrimaryKey
from .relation import Relation, RelationDescriptor, cascade_hooks, descriptor_for
from .types import FieldType

if TYPE_CHECKING:
    from .model import Model


# Model 实例上的保留属性名，不能用作字段或关系名
RESERVED_NAMES = frozenset({
    'saved', 'origin', 'collection', 'store', 'is_new', 'is_modified',
    'is_saving', 'is_deleting', 'inside_transaction',
    'primary_key_name', 'primary_key_value',
})


@dataclass(frozen=True)
class Schema:
    """
    模型元数据

    Attributes:
        model_name: 模型类名
        fields: 字段名 -> 字段定义（包含继承的字段）
        relations: 关系名 -> 关系定义（包含继承的关系）
        primary_key: 主键字段，没有主键时为 None
        class_names: 持久化类名列表，从最具体的类到根类
        hooks: 字段和关系提供的内置钩子
    """
    model_name: str
    fields: Mapping[str, Field]
    relations: Mapping[str, Relation]
    primary_key: Optional[Field]
    class_names: Tuple[str, ...]
    hooks: Tuple[Hook, ...]

    def get_field(self, name: str) -> Optional[Field]:
        return self.fields.get(name)

    def require_field(self, name: str) -> Field:
        """
        获取字段定义

        Raises:
            FieldNotFoundError: 字段不存在
        """
        field = self.fields.get(name)
        if field is None:
            raise FieldNotFoundError(self.model_name, name)
        return field

    def hooks_for(self, event_name: str) -> Tuple[Hook, ...]:
        return tuple(hook for hook in self.hooks if hook.event_name == event_name)


EMPTY_SCHEMA = Schema('Model', MappingProxyType({}), MappingProxyType({}), None, (), ())


def _parent_schema(cls: type) -> Optional[Schema]:
    for base in cls.__mro__[1:]:
        schema = base.__dict__.get('__schema__')
        if isinstance(schema, Schema):
            return schema
    return None


def _check_name(cls: type, name: str) -> None:
    if name in RESERVED_NAMES:
        raise SchemaError(f"'{cls.__name__}.{name}' uses a reserved attribute name")


def build_schema(cls: type) -> Schema:
    """
    根据类声明和父类 Schema 构建 Schema

    Raises:
        SchemaError: 同一个类声明了两个主键，或子类以不同名称重新声明主键
    """
    parent = _parent_schema(cls)
    fields: Dict[str, Field] = dict(parent.fields) if parent else {}
    relations: Dict[str, Relation] = dict(parent.relations) if parent else {}
    own_primary_key: Optional[Field] = None

    for name, value in list(cls.__dict__.items()):
        if isinstance(value, Field):
            _check_name(cls, name)
            if value.name != name:
                value = value.clone(name)
                setattr(cls, name, value)
            relations.pop(name, None)
            fields[name] = value
            if value.is_primary_key:
                if own_primary_key is not None:
                    raise SchemaError(
                        f"'{cls.__name__}' declares two primary keys: "
                        f"'{own_primary_key.name}' and '{name}'"
                    )
                own_primary_key = value
        elif isinstance(value, RelationDescriptor):
            _check_name(cls, name)
            if value.name != name:
                value.name = name
            fields.pop(name, None)
            relations[name] = value.relation

    inherited_primary_key = parent.primary_key if parent else None
    if own_primary_key is not None:
        if inherited_primary_key is not None and inherited_primary_key.name != own_primary_key.name:
            raise SchemaError(
                f"'{cls.__name__}' declares primary key '{own_primary_key.name}' "
                f"but inherits primary key '{inherited_primary_key.name}'"
            )
        primary_key: Optional[Field] = own_primary_key
    elif inherited_primary_key is not None:
        primary_key = fields.get(inherited_primary_key.name)
        if primary_key is None or not primary_key.is_primary_key:
            raise SchemaError(
                f"'{cls.__name__}' cannot replace inherited primary key '{inherited_primary_key.name}'"
            )
    else:
        primary_key = None

    class_names: Tuple[str, ...] = ()
    if primary_key is not None:
        names: List[str] = [] if cls.__name__.startswith('_') else [cls.__name__]
        if parent is not None and parent.primary_key is not None:
            names.extend(n for n in parent.class_names if n not in names)
        class_names = tuple(names)

    hooks: List[Hook] = []
    for field in fields.values():
        hooks.extend(field.hooks())
    for relation in relations.values():
        hooks.extend(cascade_hooks(relation))

    return Schema(
        model_name=cls.__name__,
        fields=MappingProxyType(fields),
        relations=MappingProxyType(relations),
        primary_key=primary_key,
        class_names=class_names,
        hooks=tuple(hooks),
    )


def rebuild_schema(cls: type) -> None:
    """重新构建类及其所有子类的 Schema"""
    cls.__schema__ = build_schema(cls)  # type: ignore[attr-defined]
    for subclass in cls.__subclasses__():
        rebuild_schema(subclass)


def get_class_names(cls: Type['Model']) -> List[str]:
    """
    获取模型的持久化类名列表

    从 cls 开始沿继承链向上，直到第一个没有主键的类为止。
    以 '_' 开头的类名不参与持久化。没有主键的模型返回空列表。
    """
    return list(cls.__schema__.class_names)


def get_root_class(classes: Iterable[Type['Model']]) -> Type['Model']:
    """
    在一组模型中找出根模型（持久化类名列表只有自身的那个类）

    Raises:
        AmbiguousHierarchyError: 存在多个根模型
        NoRootError: 没有根模型
    """
    roots: List[Type['Model']] = []
    for cls in classes:
        if len(cls.__schema__.class_names) == 1 and cls not in roots:
            roots.append(cls)
    if len(roots) > 1:
        names = ', '.join(f"'{cls.__name__}'" for cls in roots)
        raise AmbiguousHierarchyError(f"Ambiguous hierarchy: several root models found ({names})")
    if not roots:
        raise NoRootError("No root model found")
    return roots[0]


def define_field(cls: Type['Model'], name: str, field_type: FieldType = str, **options: Any) -> Field:
    """
    在已定义的模型上添加普通字段

    Args:
        cls: 模型类
        name: 字段名
        field_type: 字段类型
        **options: 传给 Field 的其他参数

    Returns:
        新建的字段
    """
    return _install_field(cls, name, Field(field_type, **options))


def define_primary_key_field(cls: Type['Model'], name: str = 'id', field_type: FieldType = str,
                             **options: Any) -> Field:
    """在已定义的模型上添加主键字段"""
    return _install_field(cls, name, PrimaryKey(field_type, **options))


def define_foreign_key_field(cls: Type['Model'], name: str, field_type: FieldType = str,
                             **options: Any) -> Field:
    """在已定义的模型上添加外键字段"""
    return _install_field(cls, name, ForeignKey(field_type, **options))


def _install_field(cls: type, name: str, field: Field) -> Field:
    field.name = name
    setattr(cls, name, field)
    rebuild_schema(cls)
    return field


def define_relation(cls: Type['Model'], name: str,
                    definition: Union[Relation, Mapping[str, Any]]) -> Relation:
    """
    在已定义的模型上添加关系

    Args:
        cls: 模型类
        name: 关系属性名
        definition: Relation 对象，或包含 kind/target/foreign_key 的字典

    Raises:
        InvalidRelationDefinitionError: 关系定义不完整或类型无效
    """
    if isinstance(definition, Relation):
        relation = Relation(name, definition.kind, definition.target, definition.foreign_key)
    else:
        target = definition.get('target')
        if isinstance(target, type):
            target = target.__name__
        relation = Relation(name, definition.get('kind'), target, definition.get('foreign_key'))  # type: ignore[arg-type]
    setattr(cls, name, descriptor_for(relation))
    rebuild_schema(cls)
    return relation
