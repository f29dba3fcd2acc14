import tempfile
from pathlib import Path


def get_project_temp_dir() -> Path:
    """获取项目的临时目录路径"""
    temp_dir = Path(tempfile.gettempdir()) / 'Pylayer_Temp'
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


def json_store_url(name: str) -> str:
    """在项目临时目录中生成 JSON 引擎 URL（旧文件会被删除）"""
    file_path = get_project_temp_dir() / f'{name}.json'
    if file_path.exists():
        file_path.unlink()
    return f'json://{file_path}'
