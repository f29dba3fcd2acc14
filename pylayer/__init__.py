"""
Pylayer - 异步对象映射层

基于键值引擎的模型持久化：字段与主键、单表继承、延迟加载的关系、
实例级和 Store 级事务、Store 版本管理和事件钩子。

    from pylayer import Store, Model, PrimaryKey, Field

    class Person(Model):
        id = PrimaryKey()
        name = Field(str)

    store = Store('app', 'memory://', [Person])
    person = store.Person.create(name='Jean')
    await person.save()
"""

from .core import (
    Field,
    KeyField,
    PrimaryKey,
    ForeignKey,
    CreatedOn,
    UpdatedOn,
    Relation,
    RelationKind,
    HasOne,
    HasMany,
    BelongsTo,
    get_class_names,
    get_root_class,
    define_field,
    define_primary_key_field,
    define_foreign_key_field,
    define_relation,
    Model,
    Collection,
    Store,
    event,
)
from .common import (
    PylayerException,
    NotFoundError,
    AlreadyExistsError,
    ValidationError,
    FieldNotFoundError,
    ConfigurationError,
    SchemaError,
    AmbiguousHierarchyError,
    NoRootError,
    InvalidRelationDefinitionError,
    UnsupportedKeyTypeError,
    StoreVersionError,
    DowngradeError,
    UnsupportedVersionError,
    TransactionError,
    SerializationError,
    OperationOptions,
    CollectionDefinition,
    MemoryEngineOptions,
    JsonEngineOptions,
)

__version__ = '0.1.0'

__all__ = [
    # Fields
    'Field',
    'KeyField',
    'PrimaryKey',
    'ForeignKey',
    'CreatedOn',
    'UpdatedOn',
    # Relations
    'Relation',
    'RelationKind',
    'HasOne',
    'HasMany',
    'BelongsTo',
    # Schema
    'get_class_names',
    'get_root_class',
    'define_field',
    'define_primary_key_field',
    'define_foreign_key_field',
    'define_relation',
    # Model & Store
    'Model',
    'Collection',
    'Store',
    'event',
    # Exceptions
    'PylayerException',
    'NotFoundError',
    'AlreadyExistsError',
    'ValidationError',
    'FieldNotFoundError',
    'ConfigurationError',
    'SchemaError',
    'AmbiguousHierarchyError',
    'NoRootError',
    'InvalidRelationDefinitionError',
    'UnsupportedKeyTypeError',
    'StoreVersionError',
    'DowngradeError',
    'UnsupportedVersionError',
    'TransactionError',
    'SerializationError',
    # Options
    'OperationOptions',
    'CollectionDefinition',
    'MemoryEngineOptions',
    'JsonEngineOptions',
]
