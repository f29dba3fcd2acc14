"""
引擎测试

测试：
- 内存引擎的读写、范围读取和前缀删除
- 事务覆盖层的提交和回滚
- 引擎注册表和 URL 解析
- JSON 引擎的持久化和文件格式
"""

import json
from datetime import datetime
from pathlib import Path

import pytest

from pylayer import Store, Model, Field, PrimaryKey
from pylayer.backends import (
    EngineRegistry,
    JsonEngine,
    KeyValueEngine,
    MemoryEngine,
    get_available_engines,
    get_engine,
    parse_scheme,
)
from pylayer.common.exceptions import ConfigurationError, SerializationError, TransactionError
from pylayer.common.options import JsonEngineOptions, MemoryEngineOptions


class Person(Model):
    id = PrimaryKey()
    name = Field(str)
    age = Field(int)
    extra = Field(dict)


# ============================================================================
# 内存引擎
# ============================================================================

class TestMemoryEngine:
    """内存引擎测试"""

    @pytest.mark.asyncio
    async def test_get_put_delete(self) -> None:
        engine = MemoryEngine('memory://')
        assert await engine.get(('s', 'a')) is None
        await engine.put(('s', 'a'), {'value': 1})
        assert await engine.get(('s', 'a')) == {'value': 1}
        assert await engine.delete(('s', 'a')) is True
        assert await engine.delete(('s', 'a')) is False
        assert await engine.get(('s', 'a')) is None

    @pytest.mark.asyncio
    async def test_values_are_copied(self) -> None:
        engine = MemoryEngine('memory://')
        value = {'tags': ['a']}
        await engine.put(('s', 'a'), value)
        value['tags'].append('b')
        loaded = await engine.get(('s', 'a'))
        assert loaded == {'tags': ['a']}
        loaded['tags'].append('c')
        assert await engine.get(('s', 'a')) == {'tags': ['a']}

    @pytest.mark.asyncio
    async def test_get_range_order_and_pages(self) -> None:
        engine = MemoryEngine('memory://')
        for key in ['c', 'a', 'b', 10, 2]:
            await engine.put(('s', 'items', key), key)
        await engine.put(('other', 'items', 'a'), 'x')

        page = await engine.get_range(('s', 'items'))
        assert [value for _, value in page] == [2, 10, 'a', 'b', 'c']

        first = await engine.get_range(('s', 'items'), limit=2)
        assert [value for _, value in first] == [2, 10]
        rest = await engine.get_range(('s', 'items'), start_after=first[-1][0], limit=10)
        assert [value for _, value in rest] == ['a', 'b', 'c']

    @pytest.mark.asyncio
    async def test_destroy_all_prefix(self) -> None:
        engine = MemoryEngine('memory://')
        await engine.put(('s1', 'items', 'a'), 1)
        await engine.put(('s1', '$Store'), {})
        await engine.put(('s2', 'items', 'a'), 2)
        await engine.destroy_all(('s1',))
        assert await engine.get_range(('s1',)) == []
        assert await engine.get(('s2', 'items', 'a')) == 2

    @pytest.mark.asyncio
    async def test_lock(self) -> None:
        engine = MemoryEngine('memory://')
        await engine.lock()
        assert engine._lock.locked()
        await engine.unlock()
        assert not engine._lock.locked()


class TestMemoryTransaction:
    """事务覆盖层测试"""

    @pytest.mark.asyncio
    async def test_commit(self) -> None:
        engine = MemoryEngine('memory://')
        await engine.put(('s', 'a'), 1)
        async with engine.transaction() as transaction:
            await transaction.put(('s', 'b'), 2)
            assert await transaction.delete(('s', 'a')) is True
            assert await transaction.get(('s', 'a')) is None
            assert await transaction.get(('s', 'b')) == 2
            # 提交前父引擎不受影响
            assert await engine.get(('s', 'a')) == 1
            assert await engine.get(('s', 'b')) is None
        assert await engine.get(('s', 'a')) is None
        assert await engine.get(('s', 'b')) == 2

    @pytest.mark.asyncio
    async def test_rollback(self) -> None:
        engine = MemoryEngine('memory://')
        await engine.put(('s', 'a'), 1)
        with pytest.raises(RuntimeError):
            async with engine.transaction() as transaction:
                await transaction.put(('s', 'a'), 100)
                await transaction.destroy_all(('s',))
                raise RuntimeError('abort')
        assert await engine.get(('s', 'a')) == 1

    @pytest.mark.asyncio
    async def test_get_range_merges_writes(self) -> None:
        engine = MemoryEngine('memory://')
        await engine.put(('s', 'a'), 1)
        await engine.put(('s', 'c'), 3)
        async with engine.transaction() as transaction:
            await transaction.put(('s', 'b'), 2)
            await transaction.delete(('s', 'c'))
            page = await transaction.get_range(('s',))
            assert [value for _, value in page] == [1, 2]

    @pytest.mark.asyncio
    async def test_nested_transaction(self) -> None:
        engine = MemoryEngine('memory://')
        async with engine.transaction() as outer:
            async with outer.transaction() as inner:
                assert inner is outer

    @pytest.mark.asyncio
    async def test_closed_transaction(self) -> None:
        engine = MemoryEngine('memory://')
        async with engine.transaction() as transaction:
            pass
        with pytest.raises(TransactionError):
            await transaction.get(('s', 'a'))
        with pytest.raises(TransactionError):
            await transaction.put(('s', 'a'), 1)

    @pytest.mark.asyncio
    async def test_last_commit_wins(self) -> None:
        engine = MemoryEngine('memory://')
        async with engine.transaction() as first:
            async with engine.transaction() as second:
                await second.put(('s', 'a'), 'second')
            await first.put(('s', 'a'), 'first')
        assert await engine.get(('s', 'a')) == 'first'


# ============================================================================
# 引擎注册表
# ============================================================================

class TestRegistry:
    """引擎注册表测试"""

    def test_parse_scheme(self) -> None:
        assert parse_scheme('memory://') == 'memory'
        assert parse_scheme('JSON://data.json') == 'json'
        with pytest.raises(ConfigurationError):
            parse_scheme('data.json')
        with pytest.raises(ConfigurationError):
            parse_scheme('://data.json')

    def test_registered_engines(self) -> None:
        assert EngineRegistry.get('memory') is MemoryEngine
        assert EngineRegistry.get('json') is JsonEngine
        assert EngineRegistry.get('excel') is None
        assert get_available_engines() == {'json': True, 'memory': True}

    def test_get_engine(self, temp_file: Path) -> None:
        engine = get_engine('memory://')
        assert isinstance(engine, MemoryEngine)
        assert isinstance(engine.options, MemoryEngineOptions)

        engine = get_engine(f'json://{temp_file}')
        assert isinstance(engine, JsonEngine)
        assert engine.file_path == temp_file

    def test_unknown_engine(self) -> None:
        with pytest.raises(ConfigurationError, match='Unknown engine'):
            get_engine('redis://localhost')

    def test_missing_dependency(self) -> None:
        class RemoteEngine(MemoryEngine):
            ENGINE_NAME = 'remote'
            REQUIRED_DEPENDENCIES = ['surely_not_an_installed_package']

        assert not RemoteEngine.is_available()
        EngineRegistry.register(RemoteEngine)
        try:
            with pytest.raises(ConfigurationError, match='surely_not_an_installed_package'):
                get_engine('remote://')
        finally:
            EngineRegistry._engines.pop('remote', None)

    def test_engine_without_name(self) -> None:
        class Nameless(MemoryEngine):
            ENGINE_NAME = ''

        with pytest.raises(ConfigurationError):
            EngineRegistry.register(Nameless)

    def test_abstract_engine(self) -> None:
        with pytest.raises(TypeError):
            KeyValueEngine('x://', MemoryEngineOptions())  # type: ignore[abstract]


# ============================================================================
# JSON 引擎
# ============================================================================

class TestJsonEngine:
    """JSON 引擎测试"""

    def test_missing_path(self) -> None:
        with pytest.raises(ConfigurationError):
            JsonEngine('json://')

    @pytest.mark.asyncio
    async def test_persistence_across_stores(self, temp_file: Path) -> None:
        store = Store('TestJson', f'json://{temp_file}', [Person])
        await store.Person.put({'id': 'p1', 'name': 'Alice', 'age': 30})
        await store.Person.put({'id': 'p2', 'name': 'Bob'})
        store_id = await store.get_store_id()
        await store.close()

        assert temp_file.exists()
        reopened = Store('TestJson', f'json://{temp_file}', [Person])
        people = await reopened.Person.find()
        assert [person.serialize() for person in people] == [
            {'id': 'p1', 'name': 'Alice', 'age': 30},
            {'id': 'p2', 'name': 'Bob'},
        ]
        assert await reopened.get_store_id() == store_id

    @pytest.mark.asyncio
    async def test_file_format(self, temp_file: Path) -> None:
        store = Store('TestJson', f'json://{temp_file}', [Person])
        await store.Person.put({'id': 'p1', 'name': 'Alice'})

        content = json.loads(temp_file.read_text(encoding='utf-8'))
        assert content['format_version'] == JsonEngine.FORMAT_VERSION
        assert 'timestamp' in content
        keys = [entry['key'] for entry in content['entries']]
        assert ['TestJson', '$Store'] in keys
        assert ['TestJson', 'items', 'p1'] in keys
        record = next(entry['value'] for entry in content['entries'] if entry['key'][-1] == 'p1')
        assert record == {'class_names': ['Person'], 'key': 'p1', 'fields': {'id': 'p1', 'name': 'Alice'}}
        assert not (temp_file.parent / (temp_file.name + '.tmp')).exists()

    @pytest.mark.asyncio
    async def test_rollback_does_not_touch_file(self, temp_file: Path) -> None:
        store = Store('TestJson', f'json://{temp_file}', [Person])
        await store.Person.put({'id': 'p1', 'name': 'Alice'})
        before = json.loads(temp_file.read_text(encoding='utf-8'))['entries']

        with pytest.raises(RuntimeError):
            async with store.transaction() as tx:
                await tx.Person.put({'id': 'p2', 'name': 'Bob'})
                raise RuntimeError('abort')

        after = json.loads(temp_file.read_text(encoding='utf-8'))['entries']
        assert after == before

    @pytest.mark.asyncio
    async def test_failed_write_keeps_memory_unchanged(self, temp_file: Path) -> None:
        engine = JsonEngine(f'json://{temp_file}')
        await engine.open()
        await engine.put(('s', 'a'), 1)
        with pytest.raises(SerializationError):
            await engine.put(('s', 'b'), {'when': datetime.now()})
        assert await engine.get(('s', 'b')) is None
        assert await engine.get_range(('s',)) == [(('s', 'a'), 1)]
        assert not (temp_file.parent / (temp_file.name + '.tmp')).exists()

    @pytest.mark.asyncio
    async def test_failed_save_is_not_visible(self, temp_file: Path) -> None:
        store = Store('TestJson', f'json://{temp_file}', [Person])
        await store.Person.put({'id': 'p1', 'name': 'Alice'})

        person = store.Person.create(id='p2', name='Bob', extra={'when': datetime.now()})
        with pytest.raises(SerializationError):
            await person.save()

        assert person.is_new
        assert await store.Person.get('p2', error_if_missing=False) is None
        assert [item.id for item in await store.Person.find()] == ['p1']
        keys = [entry['key'] for entry in json.loads(temp_file.read_text(encoding='utf-8'))['entries']]
        assert ['TestJson', 'items', 'p2'] not in keys

    @pytest.mark.asyncio
    async def test_options(self, temp_file: Path) -> None:
        options = JsonEngineOptions(indent=None, ensure_ascii=True)
        store = Store('TestJson', f'json://{temp_file}', [Person], engine_options=options)
        await store.Person.put({'id': 'p1', 'name': 'Zoë'})
        text = temp_file.read_text(encoding='utf-8')
        assert '\n' not in text
        assert 'Zo\\u00eb' in text

    @pytest.mark.asyncio
    async def test_newer_format_version(self, temp_file: Path) -> None:
        temp_file.write_text(json.dumps({'format_version': 99, 'entries': []}), encoding='utf-8')
        store = Store('TestJson', f'json://{temp_file}', [Person])
        with pytest.raises(SerializationError):
            await store.initialize()

    @pytest.mark.asyncio
    async def test_corrupted_file(self, temp_file: Path) -> None:
        temp_file.write_text('{not json', encoding='utf-8')
        store = Store('TestJson', f'json://{temp_file}', [Person])
        with pytest.raises(SerializationError):
            await store.Person.find()

    @pytest.mark.asyncio
    async def test_destroy_all_keeps_other_stores(self, temp_file: Path) -> None:
        first = Store('First', f'json://{temp_file}', [Person])
        await first.Person.put({'id': 'p1'})
        await first.close()
        second = Store('Second', f'json://{temp_file}', [Person])
        await second.Person.put({'id': 'p2'})
        await second.destroy_all()
        await second.close()

        reopened = Store('First', f'json://{temp_file}', [Person])
        assert [person.id for person in await reopened.Person.find()] == ['p1']
