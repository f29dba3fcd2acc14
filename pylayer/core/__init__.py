"""
Pylayer 核心模块

包含模型、字段、关系、Collection、Store 和事件系统
"""

from .fields import Field, KeyField, PrimaryKey, ForeignKey, CreatedOn, UpdatedOn
from .relation import Relation, RelationKind, Origin, HasOne, HasMany, BelongsTo
from .schema import (
    Schema,
    get_class_names,
    get_root_class,
    define_field,
    define_primary_key_field,
    define_foreign_key_field,
    define_relation,
)
from .model import Model
from .collection import Collection
from .storage import Store, StoredRecord
from .event import event, EventManager
from .types import TypeCodec, TypeRegistry

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
    'Origin',
    'HasOne',
    'HasMany',
    'BelongsTo',
    # Schema
    'Schema',
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
    'StoredRecord',
    # Events
    'event',
    'EventManager',
    # Types
    'TypeCodec',
    'TypeRegistry',
]
