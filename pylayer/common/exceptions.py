"""
Pylayer 异常定义
"""

from typing import Any, Optional


class PylayerException(Exception):
    """Pylayer 基础异常类"""


class NotFoundError(PylayerException):
    """记录不存在异常"""
    def __init__(self, model_name: str, key: Any):
        self.model_name = model_name
        self.key = key
        super().__init__(f"Item '{model_name}#{key}' not found")


class AlreadyExistsError(PylayerException):
    """主键重复异常"""
    def __init__(self, model_name: str, key: Any):
        self.model_name = model_name
        self.key = key
        super().__init__(f"Item '{model_name}#{key}' already exists")


class ValidationError(PylayerException):
    """数据验证异常"""
    def __init__(self, message: str, field_name: Optional[str] = None, value: Any = None):
        self.field_name = field_name
        self.value = value
        super().__init__(message)


class FieldNotFoundError(PylayerException):
    """字段不存在异常"""
    def __init__(self, model_name: str, field_name: str):
        self.model_name = model_name
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' not found in model '{model_name}'")


class ConfigurationError(PylayerException):
    """配置异常（Store 参数、模型注册等）"""


class SchemaError(ConfigurationError):
    """模型元数据定义异常"""


class AmbiguousHierarchyError(SchemaError):
    """存在多个根模型"""


class NoRootError(SchemaError):
    """找不到根模型"""


class InvalidRelationDefinitionError(SchemaError):
    """关系定义不合法"""


class UnsupportedKeyTypeError(PylayerException):
    """不支持自动生成值的键类型"""
    def __init__(self, field_name: str, key_type: Any):
        self.field_name = field_name
        self.key_type = key_type
        type_name = getattr(key_type, '__name__', repr(key_type))
        super().__init__(f"Unsupported key type '{type_name}' for field '{field_name}'")


class StoreVersionError(PylayerException):
    """Store 版本异常"""
    def __init__(self, message: str, version: int):
        self.version = version
        super().__init__(message)


class DowngradeError(StoreVersionError):
    """Store 版本高于当前代码版本"""


class UnsupportedVersionError(StoreVersionError):
    """Store 版本过低，无法升级"""


class TransactionError(PylayerException):
    """事务异常"""


class SerializationError(PylayerException):
    """序列化/反序列化异常"""
