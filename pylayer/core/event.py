"""
Pylayer 事件钩子系统

提供轻量级事件回调机制，支持 Model 级和 Store 级事件。回调可以是普通函数，
也可以是协程函数（会被 await）。

Model 级事件（回调签名 fn(item, options)）：
- will_save / did_save
- will_delete / did_delete

Store 级事件（回调签名 fn(store)）：
- did_create / did_initialize
- will_upgrade / did_upgrade
- will_destroy / did_destroy

使用方式：
    from pylayer import event

    # 装饰器注册
    @event.listens_for(Person, 'will_save')
    async def normalize_name(person, options):
        person.name = person.name.strip()

    # 函数式注册
    event.listen(Person, 'did_delete', audit_deletion)

    # Store 级事件
    event.listen(store, 'did_upgrade', lambda store: print("upgraded"))

    # 移除监听器
    event.remove(Person, 'will_save', normalize_name)

Model 级监听器对子类同样生效，按基类到子类的顺序触发。
"""

import inspect
from typing import Any, Callable, Dict, List, Set, Tuple


# 有效的事件名称
MODEL_EVENTS: Set[str] = {
    'will_save', 'did_save',
    'will_delete', 'did_delete',
}
STORE_EVENTS: Set[str] = {
    'did_create', 'did_initialize',
    'will_upgrade', 'did_upgrade',
    'will_destroy', 'did_destroy',
}
ALL_EVENTS: Set[str] = MODEL_EVENTS | STORE_EVENTS


async def call_hook(fn: Callable[..., Any], *args: Any) -> Any:
    """调用回调，协程结果会被 await"""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class EventManager:
    """
    事件管理器

    全局单例，管理所有 Model 级和 Store 级事件监听器。
    """

    def __init__(self) -> None:
        # Model 级: {(model_class, event_name): [callbacks]}
        self._model_listeners: Dict[Tuple[type, str], List[Callable[..., Any]]] = {}
        # Store 级: {(id(store), event_name): [callbacks]}
        self._store_listeners: Dict[Tuple[int, str], List[Callable[..., Any]]] = {}
        # 保存 store 引用，防止 id 复用
        self._store_refs: Dict[int, Any] = {}

    def listen(self, target: Any, event_name: str, fn: Callable[..., Any]) -> None:
        """
        注册事件监听器

        Args:
            target: 模型类（Model 级事件）或 Store 实例（Store 级事件）
            event_name: 事件名称
            fn: 回调函数（可以是协程函数）
        """
        if event_name not in ALL_EVENTS:
            raise ValueError(
                f"Unknown event: '{event_name}'. "
                f"Valid events: {', '.join(sorted(ALL_EVENTS))}"
            )

        if event_name in MODEL_EVENTS:
            if not isinstance(target, type):
                raise ValueError(f"Model event '{event_name}' requires a model class")
            key = (target, event_name)
            self._model_listeners.setdefault(key, []).append(fn)
        else:
            root = getattr(target, 'root', target)
            skey = (id(root), event_name)
            self._store_listeners.setdefault(skey, []).append(fn)
            self._store_refs[id(root)] = root

    def listens_for(self, target: Any, event_name: str) -> Callable[..., Any]:
        """
        装饰器方式注册事件监听器

        Args:
            target: 模型类或 Store 实例
            event_name: 事件名称

        Returns:
            装饰器函数
        """
        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.listen(target, event_name, fn)
            return fn
        return decorator

    def remove(self, target: Any, event_name: str, fn: Callable[..., Any]) -> None:
        """
        移除事件监听器

        Args:
            target: 模型类或 Store 实例
            event_name: 事件名称
            fn: 要移除的回调函数
        """
        if event_name in MODEL_EVENTS:
            listeners = self._model_listeners.get((target, event_name), [])
        else:
            root = getattr(target, 'root', target)
            listeners = self._store_listeners.get((id(root), event_name), [])
        if fn in listeners:
            listeners.remove(fn)

    async def dispatch_model(self, model_class: type, event_name: str, instance: Any, options: Any) -> None:
        """
        分发 Model 级事件

        沿继承链从基类到 model_class 依次调用监听器。

        Args:
            model_class: 模型类
            event_name: 事件名称
            instance: 模型实例
            options: 当前操作选项
        """
        for klass in reversed(model_class.__mro__):
            for fn in list(self._model_listeners.get((klass, event_name), [])):
                await call_hook(fn, instance, options)

    async def dispatch_store(self, store: Any, event_name: str) -> None:
        """
        分发 Store 级事件

        Args:
            store: Store 实例（事务视图会被映射到根 Store）
            event_name: 事件名称
        """
        root = getattr(store, 'root', store)
        for fn in list(self._store_listeners.get((id(root), event_name), [])):
            await call_hook(fn, root)

    def clear(self, target: Any = None) -> None:
        """
        清除监听器

        Args:
            target: 要清除的目标。None 清除所有，类型清除该模型的，实例清除该 Store 的。
        """
        if target is None:
            self._model_listeners.clear()
            self._store_listeners.clear()
            self._store_refs.clear()
        elif isinstance(target, type):
            model_keys = [mk for mk in self._model_listeners if mk[0] is target]
            for mk in model_keys:
                del self._model_listeners[mk]
        else:
            sid = id(getattr(target, 'root', target))
            store_keys = [sk for sk in self._store_listeners if sk[0] == sid]
            for sk in store_keys:
                del self._store_listeners[sk]
            self._store_refs.pop(sid, None)


class Hook:
    """
    模型元数据内置钩子

    由字段（主键生成、时间戳）和关系（级联删除）在类定义时提供，
    随 Schema 一起继承，先于全局监听器执行。
    """

    __slots__ = ('event_name', 'fn', 'owner')

    def __init__(self, event_name: str, fn: Callable[..., Any], owner: str) -> None:
        if event_name not in MODEL_EVENTS:
            raise ValueError(f"Unknown model event: '{event_name}'")
        self.event_name = event_name
        self.fn = fn
        self.owner = owner  # 提供该钩子的字段名或关系名

    async def __call__(self, instance: Any, options: Any) -> None:
        await call_hook(self.fn, instance, options)

    def __repr__(self) -> str:
        return f"Hook(event_name='{self.event_name}', owner='{self.owner}')"


# 全局单例
event = EventManager()
