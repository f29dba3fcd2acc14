"""
Pylayer JSON 文件引擎

在内存引擎的基础上，把全部数据保存在一个 JSON 文件中。每次提交后整体重写文件，
写入先落到临时文件再原子替换，文件不会处于写了一半的状态。
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..common.exceptions import ConfigurationError, SerializationError
from ..common.options import EngineOptions, JsonEngineOptions
from .backend_memory import MemoryEngine, _merge_writes
from .base import Key
from .versions import get_format_version


class JsonEngine(MemoryEngine):
    """JSON 文件引擎（URL: json://path/to/file.json）"""

    ENGINE_NAME = 'json'
    REQUIRED_DEPENDENCIES = []  # 标准库
    FORMAT_VERSION = get_format_version('json')

    def __init__(self, url: str, options: Optional[EngineOptions] = None):
        """
        初始化 JSON 引擎

        Args:
            url: 'json://' 加文件路径
            options: JSON 引擎配置选项

        Raises:
            ConfigurationError: URL 中没有文件路径
        """
        options = options or JsonEngineOptions()
        assert isinstance(options, JsonEngineOptions), "options must be an instance of JsonEngineOptions"
        super().__init__(url, options)
        self.options: JsonEngineOptions = options
        path = url.split('://', 1)[1] if '://' in url else ''
        if not path:
            raise ConfigurationError(f"File path is missing in engine url '{url}'")
        self.file_path = Path(path)

    def exists(self) -> bool:
        return self.file_path.exists()

    async def open(self) -> None:
        if self._opened:
            return
        self._data = self._load() if self.exists() else {}
        self._opened = True

    async def close(self) -> None:
        self._data = {}
        self._opened = False

    def _apply(self, writes: Mapping[Key, Any]) -> None:
        # 文件写入成功后才替换内存数据，失败的提交不可见
        if not writes:
            return
        data = dict(self._data)
        _merge_writes(data, writes)
        self._save(data)
        self._data = data

    def _load(self) -> Dict[Any, Any]:
        """从文件加载全部数据"""
        try:
            with open(self.file_path, 'r', encoding=self.options.encoding) as f:
                content = json.load(f)
        except (OSError, ValueError) as e:
            raise SerializationError(f"Failed to load JSON file '{self.file_path}': {e}") from e

        format_version = content.get('format_version')
        if not isinstance(format_version, int) or format_version > self.FORMAT_VERSION:
            raise SerializationError(
                f"Unsupported JSON format version {format_version!r} in '{self.file_path}'"
            )
        return {tuple(entry['key']): entry['value'] for entry in content.get('entries', [])}

    def _save(self, data: Mapping[Key, Any]) -> None:
        """保存全部数据到文件"""
        # 使用临时文件保证原子性
        temp_path = self.file_path.parent / (self.file_path.name + '.tmp')
        entries: List[Dict[str, Any]] = [
            {'key': list(key), 'value': value} for key, value in data.items()
        ]
        content = {
            'format_version': self.FORMAT_VERSION,
            'timestamp': datetime.now().isoformat(),
            'entries': entries,
        }
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding=self.options.encoding) as f:
                json.dump(content, f, indent=self.options.indent, ensure_ascii=self.options.ensure_ascii)
            temp_path.replace(self.file_path)
        except (OSError, TypeError, ValueError) as e:
            # 清理临时文件
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except FileNotFoundError:
                    pass
            raise SerializationError(f"Failed to save JSON file '{self.file_path}': {e}") from e
