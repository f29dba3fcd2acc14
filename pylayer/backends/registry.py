"""
引擎注册表

按 URL 协议名查找引擎类并创建实例。
"""

from typing import Dict, List, Optional, Type

from ..common.exceptions import ConfigurationError
from ..common.options import EngineOptions, get_default_engine_options
from .base import KeyValueEngine


class EngineRegistry:
    """引擎注册表"""

    _engines: Dict[str, Type[KeyValueEngine]] = {}

    @classmethod
    def register(cls, engine_class: Type[KeyValueEngine]) -> None:
        """注册引擎类（以 ENGINE_NAME 作为 URL 协议名）"""
        if not engine_class.ENGINE_NAME:
            raise ConfigurationError(f"Engine '{engine_class.__name__}' has no ENGINE_NAME")
        cls._engines[engine_class.ENGINE_NAME] = engine_class

    @classmethod
    def get(cls, name: str) -> Optional[Type[KeyValueEngine]]:
        return cls._engines.get(name)

    @classmethod
    def names(cls) -> List[str]:
        return sorted(cls._engines)


def parse_scheme(url: str) -> str:
    """
    解析引擎 URL 的协议名

    Raises:
        ConfigurationError: URL 格式错误
    """
    if not isinstance(url, str) or '://' not in url:
        raise ConfigurationError(f"Invalid engine url: {url!r}")
    scheme = url.split('://', 1)[0].lower()
    if not scheme:
        raise ConfigurationError(f"Engine scheme is missing in url '{url}'")
    return scheme


def get_engine(url: str, options: Optional[EngineOptions] = None) -> KeyValueEngine:
    """
    根据 URL 创建引擎实例

    Args:
        url: 引擎 URL，例如 'memory://' 或 'json://data/app.json'
        options: 引擎配置选项（None 时使用该引擎的默认选项）

    Raises:
        ConfigurationError: 未知的引擎或依赖未安装
    """
    scheme = parse_scheme(url)
    engine_class = EngineRegistry.get(scheme)
    if engine_class is None:
        raise ConfigurationError(
            f"Unknown engine '{scheme}'. Available engines: {', '.join(EngineRegistry.names())}"
        )
    if not engine_class.is_available():
        deps = ', '.join(engine_class.REQUIRED_DEPENDENCIES)
        raise ConfigurationError(f"Engine '{scheme}' requires: {deps}")
    if options is None:
        options = get_default_engine_options(scheme)
    return engine_class(url, options)


def get_available_engines() -> Dict[str, bool]:
    """所有已注册引擎及其依赖是否可用"""
    return {name: EngineRegistry._engines[name].is_available() for name in EngineRegistry.names()}
