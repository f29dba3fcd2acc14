"""
异常处理测试

测试方法：
- 等价类划分：各异常类型的触发条件
- 错误推断：异常继承关系和属性

覆盖范围：
- 异常继承层次结构
- 异常消息和属性
- 实际操作中抛出的异常类型
"""

from typing import Type

import pytest

from pylayer import (
    Store, Model, Field, PrimaryKey,
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


class Person(Model):
    id = PrimaryKey()
    name = Field(str, nullable=False)


@pytest.fixture
def store() -> Store:
    return Store('TestExceptions', 'memory://', [Person])


class TestHierarchy:
    """异常继承关系测试"""

    @pytest.mark.parametrize('exception_class', [
        NotFoundError, AlreadyExistsError, ValidationError, FieldNotFoundError,
        ConfigurationError, UnsupportedKeyTypeError, StoreVersionError,
        TransactionError, SerializationError,
    ])
    def test_base_exception(self, exception_class: Type[Exception]) -> None:
        assert issubclass(exception_class, PylayerException)

    @pytest.mark.parametrize('exception_class', [
        AmbiguousHierarchyError, NoRootError, InvalidRelationDefinitionError,
    ])
    def test_schema_errors(self, exception_class: Type[Exception]) -> None:
        assert issubclass(exception_class, SchemaError)
        assert issubclass(exception_class, ConfigurationError)

    def test_version_errors(self) -> None:
        assert issubclass(DowngradeError, StoreVersionError)
        assert issubclass(UnsupportedVersionError, StoreVersionError)


class TestAttributes:
    """异常属性和消息测试"""

    def test_not_found(self) -> None:
        error = NotFoundError('Person', 'p1')
        assert error.model_name == 'Person'
        assert error.key == 'p1'
        assert 'Person#p1' in str(error)

    def test_already_exists(self) -> None:
        error = AlreadyExistsError('Person', 42)
        assert error.key == 42
        assert 'already exists' in str(error)

    def test_validation(self) -> None:
        error = ValidationError('bad value', 'age', -1)
        assert error.field_name == 'age'
        assert error.value == -1
        assert str(error) == 'bad value'

    def test_field_not_found(self) -> None:
        error = FieldNotFoundError('Person', 'nickname')
        assert error.field_name == 'nickname'
        assert "'nickname'" in str(error)

    def test_unsupported_key_type(self) -> None:
        error = UnsupportedKeyTypeError('id', float)
        assert error.key_type is float
        assert "'float'" in str(error)

    def test_store_version(self) -> None:
        error = DowngradeError('too recent', 3)
        assert error.version == 3
        assert str(error) == 'too recent'


class TestRaisedByOperations:
    """实际操作抛出的异常测试"""

    @pytest.mark.asyncio
    async def test_get_missing(self, store: Store) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await store.Person.get('nobody')
        assert exc_info.value.key == 'nobody'
        assert await store.Person.get('nobody', error_if_missing=False) is None

    @pytest.mark.asyncio
    async def test_put_existing(self, store: Store) -> None:
        await store.Person.put({'id': 'p1', 'name': 'Alice'})
        with pytest.raises(AlreadyExistsError):
            await store.Person.put({'id': 'p1', 'name': 'Bob'})

    @pytest.mark.asyncio
    async def test_put_invalid(self, store: Store) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await store.Person.put({'id': 'p1'})
        assert exc_info.value.field_name == 'name'

    @pytest.mark.asyncio
    async def test_delete_missing(self, store: Store) -> None:
        with pytest.raises(NotFoundError):
            await store.Person.delete('nobody')
        assert await store.Person.delete('nobody', error_if_missing=False) is False

    @pytest.mark.asyncio
    async def test_unknown_query_field(self, store: Store) -> None:
        with pytest.raises(FieldNotFoundError):
            await store.Person.find(query={'age': 3})

    def test_unknown_collection(self, store: Store) -> None:
        with pytest.raises(ConfigurationError):
            store['Company']
        with pytest.raises(AttributeError):
            store.Company

    def test_catch_all(self, store: Store) -> None:
        with pytest.raises(PylayerException):
            Person(nickname='x')
