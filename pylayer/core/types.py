"""
Pylayer 类型系统

定义字段值与存储值（JSON 兼容形式）之间的编解码器
"""

import base64
import copy
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import Any, Dict, Type

from ..common.exceptions import SerializationError


FieldType = Type[Any]


class TypeCodec(ABC):
    """类型编解码器抽象基类"""

    python_type: FieldType = object

    @abstractmethod
    def encode(self, value: Any) -> Any:
        """编码值为 JSON 兼容的存储值"""
        pass

    @abstractmethod
    def decode(self, data: Any) -> Any:
        """解码存储值为 Python 值"""
        pass

    def check(self, value: Any) -> bool:
        """检查值是否符合该类型"""
        return isinstance(value, self.python_type)


class PassthroughCodec(TypeCodec):
    """原样存储的标量类型（str）"""

    def __init__(self, python_type: FieldType):
        self.python_type = python_type

    def encode(self, value: Any) -> Any:
        if not self.check(value):
            raise SerializationError(f"Expected {self.python_type.__name__}, got {type(value).__name__}")
        return value

    def decode(self, data: Any) -> Any:
        return data


class IntCodec(TypeCodec):
    """整型编解码器"""

    python_type = int

    def check(self, value: Any) -> bool:
        # bool 是 int 的子类，这里不接受
        return isinstance(value, int) and not isinstance(value, bool)

    def encode(self, value: Any) -> Any:
        if not self.check(value):
            raise SerializationError(f"Expected int, got {type(value).__name__}")
        return value

    def decode(self, data: Any) -> int:
        if isinstance(data, int) and not isinstance(data, bool):
            return data
        try:
            return int(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot decode {data!r} as int") from e


class FloatCodec(TypeCodec):
    """浮点型编解码器（接受 int 值）"""

    python_type = float

    def check(self, value: Any) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool)

    def encode(self, value: Any) -> Any:
        if not self.check(value):
            raise SerializationError(f"Expected float, got {type(value).__name__}")
        return value

    def decode(self, data: Any) -> float:
        try:
            return float(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot decode {data!r} as float") from e


class BoolCodec(TypeCodec):
    """布尔型编解码器"""

    python_type = bool

    def encode(self, value: Any) -> Any:
        if not self.check(value):
            raise SerializationError(f"Expected bool, got {type(value).__name__}")
        return value

    def decode(self, data: Any) -> bool:
        if isinstance(data, bool):
            return data
        if isinstance(data, str):
            return data.lower() in ('true', '1', 'yes')
        return bool(data)


class BytesCodec(TypeCodec):
    """字节型编解码器（base64 字符串）"""

    python_type = bytes

    def encode(self, value: Any) -> Any:
        if not self.check(value):
            raise SerializationError(f"Expected bytes, got {type(value).__name__}")
        return base64.b64encode(value).decode('ascii')

    def decode(self, data: Any) -> bytes:
        if isinstance(data, bytes):
            return data
        return base64.b64decode(data)


class DatetimeCodec(TypeCodec):
    """日期时间编解码器（ISO 8601 字符串，保留时区）"""

    python_type = datetime

    def encode(self, value: Any) -> Any:
        if not self.check(value):
            raise SerializationError(f"Expected datetime, got {type(value).__name__}")
        return value.isoformat()

    def decode(self, data: Any) -> datetime:
        if isinstance(data, datetime):
            return data
        try:
            return datetime.fromisoformat(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot decode {data!r} as datetime") from e


class DateCodec(TypeCodec):
    """日期编解码器（ISO 8601 字符串）"""

    python_type = date

    def check(self, value: Any) -> bool:
        return isinstance(value, date) and not isinstance(value, datetime)

    def encode(self, value: Any) -> Any:
        if isinstance(value, datetime):
            value = value.date()
        if not self.check(value):
            raise SerializationError(f"Expected date, got {type(value).__name__}")
        return value.isoformat()

    def decode(self, data: Any) -> date:
        if isinstance(data, datetime):
            return data.date()
        if isinstance(data, date):
            return data
        try:
            return date.fromisoformat(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot decode {data!r} as date") from e


class TimedeltaCodec(TypeCodec):
    """时间间隔编解码器（总秒数）"""

    python_type = timedelta

    def encode(self, value: Any) -> Any:
        if not self.check(value):
            raise SerializationError(f"Expected timedelta, got {type(value).__name__}")
        return value.total_seconds()

    def decode(self, data: Any) -> timedelta:
        if isinstance(data, timedelta):
            return data
        return timedelta(seconds=float(data))


class ContainerCodec(TypeCodec):
    """list/dict 编解码器，存储深拷贝以避免共享引用"""

    def __init__(self, python_type: FieldType):
        self.python_type = python_type

    def encode(self, value: Any) -> Any:
        if not self.check(value):
            raise SerializationError(f"Expected {self.python_type.__name__}, got {type(value).__name__}")
        return copy.deepcopy(value)

    def decode(self, data: Any) -> Any:
        return copy.deepcopy(data)


class TypeRegistry:
    """类型注册表"""

    _codecs: Dict[FieldType, TypeCodec] = {
        str: PassthroughCodec(str),
        int: IntCodec(),
        float: FloatCodec(),
        bool: BoolCodec(),
        bytes: BytesCodec(),
        datetime: DatetimeCodec(),
        date: DateCodec(),
        timedelta: TimedeltaCodec(),
        list: ContainerCodec(list),
        dict: ContainerCodec(dict),
    }

    @classmethod
    def get_codec(cls, field_type: FieldType) -> TypeCodec:
        """获取类型的编解码器"""
        if field_type not in cls._codecs:
            raise SerializationError(f"Unsupported type: {field_type}")
        return cls._codecs[field_type]

    @classmethod
    def is_supported(cls, field_type: FieldType) -> bool:
        return field_type in cls._codecs

    @classmethod
    def register(cls, field_type: FieldType, codec: TypeCodec) -> None:
        """注册自定义类型"""
        cls._codecs[field_type] = codec

    @classmethod
    def get_type_name(cls, field_type: FieldType) -> str:
        """获取类型的字符串名称"""
        return getattr(field_type, '__name__', str(field_type))
