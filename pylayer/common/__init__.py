"""
Pylayer 公共模块

异常定义和选项 dataclass
"""

from .exceptions import (
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
)
from .options import (
    OperationOptions,
    normalize_options,
    CollectionDefinition,
    MemoryEngineOptions,
    JsonEngineOptions,
    SYSTEM_SOURCES,
)

__all__ = [
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
    'OperationOptions',
    'normalize_options',
    'CollectionDefinition',
    'MemoryEngineOptions',
    'JsonEngineOptions',
    'SYSTEM_SOURCES',
]
