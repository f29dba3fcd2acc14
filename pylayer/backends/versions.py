"""
格式版本定义

Store 版本记录的版本号和各引擎文件格式版本独立管理，便于向后兼容检测。
版本号为整数，每次格式变更时递增。
"""

# Store 版本记录的当前版本
STORE_VERSION = 2

# 仍然支持升级的最低 Store 版本
MIN_STORE_VERSION = 1

# 各引擎的当前格式版本
ENGINE_FORMAT_VERSIONS = {
    'json': 1,
}


def get_format_version(engine_name: str) -> int:
    """
    获取指定引擎的格式版本

    Args:
        engine_name: 引擎名称

    Returns:
        格式版本号
    """
    return ENGINE_FORMAT_VERSIONS.get(engine_name, 1)
