"""
配置加载工具模块 (config/loader.py)
=================================
本模块负责驱动配置文件的加载、保存和格式转换：
- 配置文件默认路径: ~/.rocketdriver/config.json
- 配置文件使用 camelCase（与服务端 JSON 习惯一致），Python 内部使用 snake_case
- 加载时自动将 camelCase → snake_case，保存时自动将 snake_case → camelCase
"""

import json
from pathlib import Path
from typing import Any

from loguru import logger

from rocketdriver.config.schema import DriverConfig
from rocketdriver.utils.helpers import get_data_path


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.rocketdriver/config.json"""
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> DriverConfig:
    """
    从 JSON 文件加载配置，若文件不存在则返回默认配置（仍会读取环境变量）。

    文件中的值作为初始化参数传入，因此优先级高于环境变量；
    损坏的配置文件不会中断启动，而是记录警告后使用默认配置。

    参数:
        config_path: 可选的配置文件路径。为 None 时使用默认路径。

    返回:
        DriverConfig 配置对象实例
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            return DriverConfig(**convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return DriverConfig()


def save_config(config: DriverConfig, config_path: Path | None = None) -> None:
    """将配置对象以 camelCase 键名保存为 JSON 文件。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())

    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def convert_keys(data: Any) -> Any:
    """
    递归地将字典中所有 camelCase 键名转换为 snake_case。

    示例: {"roomCacheMaxAge": 1000} → {"room_cache_max_age": 1000}
    """
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """递归地将字典中所有 snake_case 键名转换为 camelCase。"""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """
    将 camelCase 字符串转换为 snake_case。
    例: "allPublic" → "all_public", "dmCacheMaxAge" → "dm_cache_max_age"
    """
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """将 snake_case 字符串转换为 camelCase。例: "use_ssl" → "useSsl" """
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
