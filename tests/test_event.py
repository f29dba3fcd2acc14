"""
Pylayer 事件钩子系统测试

测试 Model 级和 Store 级事件的注册、触发、移除等功能。
"""

from typing import Any, List

import pytest

from pylayer import Store, Model, Field, PrimaryKey, event
from pylayer.core.event import EventManager, MODEL_EVENTS, STORE_EVENTS, ALL_EVENTS


class Element(Model):
    id = PrimaryKey()


class Person(Element):
    name = Field(str)
    age = Field(int)


@pytest.fixture
def store() -> Store:
    return Store('TestEvents', 'memory://', [Element, Person])


# ============================================================================
# 事件名称
# ============================================================================

class TestEventNames:
    """事件名称测试"""

    def test_event_sets(self) -> None:
        assert MODEL_EVENTS == {'will_save', 'did_save', 'will_delete', 'did_delete'}
        assert 'did_upgrade' in STORE_EVENTS
        assert ALL_EVENTS == MODEL_EVENTS | STORE_EVENTS

    def test_unknown_event(self) -> None:
        with pytest.raises(ValueError, match='Unknown event'):
            event.listen(Person, 'before_save', lambda item, options: None)

    def test_model_event_requires_class(self, store: Store) -> None:
        with pytest.raises(ValueError):
            event.listen(store, 'will_save', lambda item, options: None)


# ============================================================================
# Model 级事件
# ============================================================================

class TestModelEvents:
    """Model 级事件测试"""

    @pytest.mark.asyncio
    async def test_save_events(self, store: Store) -> None:
        calls: List[str] = []
        event.listen(Person, 'will_save', lambda item, options: calls.append(f'will_save:{item.name}'))
        event.listen(Person, 'did_save', lambda item, options: calls.append(f'did_save:{item.id}'))

        await store.Person.put({'id': 'p1', 'name': 'Alice'})
        assert calls == ['will_save:Alice', 'did_save:p1']

    @pytest.mark.asyncio
    async def test_delete_events(self, store: Store) -> None:
        calls: List[str] = []

        @event.listens_for(Person, 'will_delete')
        def before(item: Person, options: Any) -> None:
            calls.append('will_delete')

        @event.listens_for(Person, 'did_delete')
        def after(item: Person, options: Any) -> None:
            calls.append('did_delete')

        await store.Person.put({'id': 'p1'})
        await store.Person.delete('p1')
        assert calls == ['will_delete', 'did_delete']

    @pytest.mark.asyncio
    async def test_async_listener(self, store: Store) -> None:
        async def uppercase(item: Person, options: Any) -> None:
            item.name = item.name.upper()

        event.listen(Person, 'will_save', uppercase)
        person = await store.Person.put({'id': 'p1', 'name': 'alice'})
        assert person.name == 'ALICE'
        assert (await store.Person.get('p1')).name == 'ALICE'

    @pytest.mark.asyncio
    async def test_listener_receives_options(self, store: Store) -> None:
        sources: List[Any] = []
        event.listen(Person, 'will_save', lambda item, options: sources.append(options.source))
        await store.Person.put({'id': 'p1'}, source='remote')
        assert sources == ['remote']

    @pytest.mark.asyncio
    async def test_base_class_listeners_run_first(self, store: Store) -> None:
        calls: List[str] = []
        event.listen(Person, 'will_save', lambda item, options: calls.append('Person'))
        event.listen(Element, 'will_save', lambda item, options: calls.append('Element'))

        await store.Person.put({'id': 'p1'})
        assert calls == ['Element', 'Person']

    @pytest.mark.asyncio
    async def test_subclass_listener_not_called_for_base(self, store: Store) -> None:
        calls: List[str] = []
        event.listen(Person, 'will_save', lambda item, options: calls.append('Person'))
        await store.Element.put({'id': 'e1'})
        assert calls == []

    @pytest.mark.asyncio
    async def test_remove_listener(self, store: Store) -> None:
        calls: List[str] = []

        def listener(item: Person, options: Any) -> None:
            calls.append(item.id)

        event.listen(Person, 'did_save', listener)
        await store.Person.put({'id': 'p1'})
        event.remove(Person, 'did_save', listener)
        await store.Person.put({'id': 'p2'})
        assert calls == ['p1']

    def test_remove_unknown_listener(self) -> None:
        event.remove(Person, 'did_save', lambda item, options: None)

    @pytest.mark.asyncio
    async def test_will_save_failure_aborts_save(self, store: Store) -> None:
        def reject(item: Person, options: Any) -> None:
            if item.age is not None and item.age < 0:
                raise ValueError('age must be positive')

        event.listen(Person, 'will_save', reject)
        with pytest.raises(ValueError):
            await store.Person.put({'id': 'p1', 'age': -1})
        assert await store.Person.count() == 0

    @pytest.mark.asyncio
    async def test_did_save_sees_committed_record(self, store: Store) -> None:
        seen: List[Any] = []

        async def read_back(item: Person, options: Any) -> None:
            assert not item.inside_transaction
            seen.append(await store.Person.get(item.id, error_if_missing=False))

        event.listen(Person, 'did_save', read_back)
        await store.Person.put({'id': 'p1', 'name': 'Alice'})
        assert len(seen) == 1
        assert seen[0] is not None
        assert seen[0].name == 'Alice'

    @pytest.mark.asyncio
    async def test_failing_did_save_keeps_record(self, store: Store) -> None:
        def fail(item: Person, options: Any) -> None:
            raise RuntimeError('listener failed')

        event.listen(Person, 'did_save', fail)
        person = store.Person.create(id='p1', name='Alice')
        with pytest.raises(RuntimeError):
            await person.save()
        assert not person.is_new
        assert (await store.Person.get('p1')).name == 'Alice'

    @pytest.mark.asyncio
    async def test_did_delete_after_commit(self, store: Store) -> None:
        seen: List[Any] = []

        async def read_back(item: Person, options: Any) -> None:
            seen.append(await store.Person.get(item.id, error_if_missing=False))

        event.listen(Person, 'did_delete', read_back)
        await store.Person.put({'id': 'p1'})
        await store.Person.delete('p1')
        assert seen == [None]

    @pytest.mark.asyncio
    async def test_did_delete_skipped_when_nothing_deleted(self, store: Store) -> None:
        calls: List[str] = []
        event.listen(Person, 'did_delete', lambda item, options: calls.append(item.id))
        assert await store.Person.delete('nobody', error_if_missing=False) is False
        assert calls == []

    @pytest.mark.asyncio
    async def test_did_save_inside_store_transaction(self, store: Store) -> None:
        """测试已经在事务中时 did_save 在写入后立即触发"""
        calls: List[bool] = []
        event.listen(Person, 'did_save', lambda item, options: calls.append(item.inside_transaction))
        async with store.transaction() as tx:
            await tx.Person.put({'id': 'p1'})
            assert calls == [True]

    @pytest.mark.asyncio
    async def test_emit_without_store(self) -> None:
        calls: List[str] = []
        event.listen(Person, 'did_save', lambda item, options: calls.append(item.id))
        await Person('p1').emit('did_save')
        assert calls == ['p1']


# ============================================================================
# Store 级事件
# ============================================================================

class TestStoreEvents:
    """Store 级事件测试"""

    @pytest.mark.asyncio
    async def test_create_and_initialize(self, store: Store) -> None:
        calls: List[str] = []
        event.listen(store, 'did_create', lambda s: calls.append('did_create'))
        event.listen(store, 'did_initialize', lambda s: calls.append('did_initialize'))

        await store.initialize()
        await store.initialize()
        assert calls == ['did_create', 'did_initialize']

    @pytest.mark.asyncio
    async def test_listener_receives_root_store(self, store: Store) -> None:
        received: List[Store] = []
        async with store.transaction() as tx:
            event.listen(tx, 'will_destroy', received.append)
        await store.destroy_all()
        assert received == [store]

    @pytest.mark.asyncio
    async def test_destroy_events(self, store: Store) -> None:
        calls: List[str] = []
        event.listen(store, 'will_destroy', lambda s: calls.append('will_destroy'))
        event.listen(store, 'did_destroy', lambda s: calls.append('did_destroy'))
        await store.destroy_all()
        assert calls == ['will_destroy', 'did_destroy']

    @pytest.mark.asyncio
    async def test_listeners_are_per_store(self, store: Store) -> None:
        other = Store('OtherEvents', 'memory://', [Element, Person])
        calls: List[str] = []
        event.listen(other, 'did_create', lambda s: calls.append(s.name))
        await store.initialize()
        await other.initialize()
        assert calls == ['OtherEvents']

    @pytest.mark.asyncio
    async def test_clear_store_listeners(self, store: Store) -> None:
        calls: List[str] = []
        event.listen(store, 'did_create', lambda s: calls.append('did_create'))
        event.listen(Person, 'did_save', lambda item, options: calls.append('did_save'))
        event.clear(store)
        await store.Person.put({'id': 'p1'})
        assert calls == ['did_save']


class TestEventManager:
    """独立 EventManager 测试"""

    @pytest.mark.asyncio
    async def test_independent_manager(self) -> None:
        manager = EventManager()
        calls: List[str] = []
        manager.listen(Person, 'did_save', lambda item, options: calls.append('manager'))
        await manager.dispatch_model(Person, 'did_save', Person('p1'), None)
        await event.dispatch_model(Person, 'did_save', Person('p1'), None)
        assert calls == ['manager']

    @pytest.mark.asyncio
    async def test_clear_model_listeners(self) -> None:
        manager = EventManager()
        calls: List[str] = []
        manager.listen(Person, 'did_save', lambda item, options: calls.append('Person'))
        manager.listen(Element, 'did_save', lambda item, options: calls.append('Element'))
        manager.clear(Person)
        await manager.dispatch_model(Person, 'did_save', Person('p1'), None)
        assert calls == ['Element']
