"""
Pylayer 字段定义

字段是 Model 子类上的描述符，值保存在实例的 _values 字典中。

    class Person(Model):
        id = PrimaryKey(str)
        group_id = ForeignKey(str)
        name = Field(str, nullable=False)
        age = Field(int, default=0)
        created_on = CreatedOn()
        updated_on = UpdatedOn()
"""

import copy
import secrets
import string
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, TYPE_CHECKING

from ..common.exceptions import (
    SchemaError,
    SerializationError,
    UnsupportedKeyTypeError,
    ValidationError,
)
from .event import Hook
from .types import FieldType, TypeRegistry

if TYPE_CHECKING:
    from ..common.options import OperationOptions
    from .model import Model


# 自动生成字符串键的长度和字符集
KEY_LENGTH = 16
KEY_ALPHABET = string.ascii_letters + string.digits

# 自动生成整数键的默认上限
DEFAULT_MAX_KEY_VALUE = 2000000000


class Field:
    """
    普通字段

    Args:
        field_type: 字段类型（str, int, float, bool, bytes, datetime, date, timedelta, list, dict）
        default: 默认值，可以是可调用对象
        nullable: 是否允许 None（False 时验证会拒绝 None）
        validator: 额外的验证函数，返回 False 或抛出 ValueError 表示验证失败
        comment: 字段备注
    """

    is_key = False
    is_primary_key = False

    def __init__(
        self,
        field_type: FieldType = str,
        default: Any = None,
        nullable: bool = True,
        validator: Optional[Callable[[Any], Any]] = None,
        comment: Optional[str] = None,
    ):
        if not TypeRegistry.is_supported(field_type):
            raise SchemaError(f"Unsupported field type: {field_type!r}")
        self.name: Optional[str] = None
        self.field_type = field_type
        self.default = default
        self.nullable = nullable
        self.validator = validator
        self.comment = comment

    def __set_name__(self, owner: type, name: str) -> None:
        if self.name is None:
            self.name = name

    def __get__(self, instance: Optional['Model'], owner: type) -> Any:
        if instance is None:
            return self
        return instance._values.get(self.name)

    def __set__(self, instance: 'Model', value: Any) -> None:
        instance._values[self.name] = value

    @property
    def codec(self):
        return TypeRegistry.get_codec(self.field_type)

    def get_default(self) -> Any:
        """获取默认值（可调用对象会被调用，可变对象会被拷贝）"""
        if callable(self.default):
            return self.default()
        return copy.deepcopy(self.default)

    def serialize(self, value: Any) -> Any:
        """将字段值转换为存储值"""
        if value is None:
            return None
        try:
            return self.codec.encode(value)
        except SerializationError as e:
            raise SerializationError(f"Field '{self.name}': {e}") from e

    def unserialize(self, data: Any) -> Any:
        """将存储值转换回字段值"""
        if data is None:
            return None
        return self.codec.decode(data)

    def validate(self, value: Any) -> None:
        """
        验证字段值

        Raises:
            ValidationError: 验证失败
        """
        if value is None:
            if not self.nullable:
                raise ValidationError(f"Field '{self.name}' cannot be None", self.name, value)
            return
        if not self.codec.check(value):
            type_name = TypeRegistry.get_type_name(self.field_type)
            raise ValidationError(
                f"Field '{self.name}' expects {type_name}, got {type(value).__name__}",
                self.name, value
            )
        if self.validator is not None:
            try:
                ok = self.validator(value)
            except ValueError as e:
                raise ValidationError(f"Field '{self.name}': {e}", self.name, value) from e
            if ok is False:
                raise ValidationError(f"Field '{self.name}' has an invalid value: {value!r}", self.name, value)

    def hooks(self) -> List[Hook]:
        """该字段提供的内置钩子"""
        return []

    def clone(self, name: str) -> 'Field':
        """以新名称复制字段定义"""
        field = copy.copy(self)
        field.name = name
        return field

    def __repr__(self) -> str:
        type_name = TypeRegistry.get_type_name(self.field_type)
        return f"{type(self).__name__}(name='{self.name}', type={type_name})"


class KeyField(Field):
    """
    键字段（主键或外键）

    Args:
        field_type: 键类型，只有 str 和 int 支持自动生成
        max: int 键自动生成的上限
        auto: 是否在 will_save 时自动生成键值
    """

    is_key = True

    def __init__(
        self,
        field_type: FieldType = str,
        max: Optional[int] = None,
        auto: bool = False,
        default: Any = None,
        comment: Optional[str] = None,
    ):
        super().__init__(field_type, default=default, comment=comment)
        self.max_key_value = max
        self.auto = auto

    def generate_value(self) -> Any:
        """
        生成随机键值

        Raises:
            UnsupportedKeyTypeError: 不支持的键类型
        """
        if self.field_type is str:
            return ''.join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_LENGTH))
        if self.field_type is int:
            max_value = self.max_key_value or DEFAULT_MAX_KEY_VALUE
            return secrets.randbelow(max_value) + 1
        raise UnsupportedKeyTypeError(self.name or '', self.field_type)

    def hooks(self) -> List[Hook]:
        if not self.auto:
            return []
        name = self.name

        def generate(item: 'Model', options: 'OperationOptions') -> None:
            item.generate_key_value(name)

        return [Hook('will_save', generate, name)]


class PrimaryKey(KeyField):
    """主键字段，默认自动生成"""

    is_primary_key = True

    def __init__(
        self,
        field_type: FieldType = str,
        max: Optional[int] = None,
        auto: bool = True,
        default: Any = None,
        comment: Optional[str] = None,
    ):
        super().__init__(field_type, max=max, auto=auto, default=default, comment=comment)


class ForeignKey(KeyField):
    """外键字段"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CreatedOn(Field):
    """创建时间字段，首次保存时写入"""

    def __init__(self, comment: Optional[str] = None):
        super().__init__(datetime, comment=comment)

    def hooks(self) -> List[Hook]:
        name = self.name

        def set_created_on(item: 'Model', options: 'OperationOptions') -> None:
            if item._values.get(name) is None:
                item._values[name] = utc_now()

        return [Hook('will_save', set_created_on, name)]


class UpdatedOn(Field):
    """更新时间字段，每次保存时刷新（系统来源的保存除外）"""

    def __init__(self, comment: Optional[str] = None):
        super().__init__(datetime, comment=comment)

    def hooks(self) -> List[Hook]:
        name = self.name

        def set_updated_on(item: 'Model', options: 'OperationOptions') -> None:
            if options.is_system_source:
                return
            item._values[name] = utc_now()

        return [Hook('will_save', set_updated_on, name)]
